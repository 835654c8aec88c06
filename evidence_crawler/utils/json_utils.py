"""
JSON parsing for semantic-service responses

Models are asked for strict JSON but routinely wrap it in code fences, leave
trailing commas, use single quotes, or get truncated mid-object. parse_json_response()
tries a strict parse, then exactly one repair pass, then gives up with
ExtractionParseFailure.
"""
import json
import logging
import re
from typing import Any

from ..exceptions import ExtractionParseFailure

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r'^\s*```(?:json)?\s*|\s*```\s*$', re.IGNORECASE)
# A single-quoted token is only rewritten where a JSON value or key can start
VALUE_START = '{[,:'
TRAILING_COMMA = re.compile(r',\s*[}\]]')


def _strip_fences(raw: str) -> str:
    return CODE_FENCE.sub('', raw.strip())


def _outermost_json(raw: str) -> str:
    """Cut to the first { or [ and the last matching-type closer, if any"""
    starts = [i for i in (raw.find('{'), raw.find('[')) if i != -1]
    if not starts:
        return raw
    start = min(starts)
    closer = '}' if raw[start] == '{' else ']'
    end = raw.rfind(closer)
    if end > start:
        return raw[start:end + 1]
    # Truncated: keep everything after start and let balancing close it
    return raw[start:]


def _balance(raw: str) -> str:
    """Close unterminated strings and brackets left by a truncated response"""
    stack = []
    in_string = False
    escaped = False
    for ch in raw:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in '{[':
            stack.append('}' if ch == '{' else ']')
        elif ch in '}]' and stack and stack[-1] == ch:
            stack.pop()

    repaired = raw
    if in_string:
        repaired += '"'
    repaired = repaired.rstrip().rstrip(',')
    return repaired + ''.join(reversed(stack))


def _read_single_quoted(raw: str, start: int):
    """
    Re-emit the single-quoted token opening at raw[start] as a JSON string.

    Returns (json_string, index after the closing quote). A token cut off by
    truncation is left unterminated for _balance to close.
    """
    chars = []
    i = start + 1
    while i < len(raw):
        ch = raw[i]
        if ch == "'":
            return '"' + ''.join(chars) + '"', i + 1
        if ch == '\\' and i + 1 < len(raw):
            nxt = raw[i + 1]
            chars.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        chars.append('\\"' if ch == '"' else ch)
        i += 1
    return '"' + ''.join(chars), i


def _fix_tokens(raw: str) -> str:
    """
    Single quotes to double quotes and trailing commas dropped, touching
    only text outside double-quoted strings.
    """
    out = []
    prev = ''
    in_string = False
    i = 0
    while i < len(raw):
        ch = raw[i]
        if in_string:
            if ch == '\\' and i + 1 < len(raw):
                out.append(raw[i:i + 2])
                i += 2
                continue
            out.append(ch)
            in_string = ch != '"'
            i += 1
            continue

        if ch == '"':
            in_string = True
        elif ch == "'" and prev and prev in VALUE_START:
            token, i = _read_single_quoted(raw, i)
            out.append(token)
            prev = '"'
            continue
        elif ch == ',' and TRAILING_COMMA.match(raw, i):
            i += 1
            continue

        out.append(ch)
        if not ch.isspace():
            prev = ch
        i += 1
    return ''.join(out)


def repair_json(raw: str) -> str:
    """Best-effort bracket/quote/trailing-comma correction"""
    text = _strip_fences(raw)
    text = _outermost_json(text)
    text = _fix_tokens(text)
    return _balance(text)


def parse_json_response(raw: str) -> Any:
    """
    Parse a model response as JSON with one repair attempt.

    Raises:
        ExtractionParseFailure: if neither the raw nor the repaired text parses
    """
    if raw is None or not str(raw).strip():
        raise ExtractionParseFailure("Empty response")

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        pass

    repaired = repair_json(str(raw))
    try:
        result = json.loads(repaired)
        logger.debug(f"🔧 Repaired malformed JSON ({len(raw)} chars)")
        return result
    except json.JSONDecodeError as e:
        raise ExtractionParseFailure(f"Unparseable JSON after repair: {e}; excerpt: {str(raw)[:200]}") from e
