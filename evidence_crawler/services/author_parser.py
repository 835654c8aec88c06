"""
Byline parsing.

A byline from page metadata can hold several people ("John Doe, Jane Smith"),
credentials ("Maria de la Cruz, PhD"), a bio sentence ("John covers China for
AP") or leaked CSS from a broken template. It can also hold a wire credit
("AP Staff"), which is kept but marked as not a person.

parse_byline() yields one BylineName per credited name. parse_author_name()
splits a single name into title/first/middle/last/suffix and keeps surname
particles ("van", "de la", "mac") with the last name.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models.content import AuthorName

logger = logging.getLogger(__name__)


@dataclass
class BylineName:
    name: str
    is_person: bool = True
    confidence: float = 1.0


# Style declarations that leak into bylines from page templates
_MARKUP_RE = re.compile(
    r'\b(?:display|flex|width|height|position|relative|absolute|padding|margin|align|justify'
    r'|font-size|font-weight|color|background|border|overflow|opacity|px)\b'
    r'|\.wp-block|:\s*\d|#[0-9a-f]{3,6}\b',
    re.IGNORECASE,
)

# Start of a bio sentence; everything from here on is dropped
_BIO_RE = re.compile(
    r'\b(?:covers?|reports?|reporting|based in|joined|received|graduated)\b'
    r'|\b(?:editor|correspondent|contributor|writer|journalist)\b.*\b(?:at|for|with)\b'
    r'|\b\d{4}\b',
    re.IGNORECASE,
)

NON_PERSON_CREDITS = frozenset({
    'ap', 'afp', 'reuters', 'associated press', 'ap staff', 'reuters staff',
    'staff', 'staff writer', 'staff reporter', 'editorial board', 'the editors',
    'news desk', 'newsroom', 'admin', 'contributor',
})

_HARD_SEPARATOR_RE = re.compile(r'\s+&\s+|[;|/]')
_AND_RE = re.compile(r'\s+and\s+', re.IGNORECASE)
_LEAD_IN_RE = re.compile(r'^(?:by|written by|authors?:?|more|additional)\s+', re.IGNORECASE)
_EMAIL_RE = re.compile(r'\S+@\S+\.\S+')
_BAD_CHARS_RE = re.compile(r'[\d<>{}\[\]@#$%^*+=]')

NAME_TITLES = {'dr', 'mr', 'mrs', 'ms', 'prof', 'rev', 'hon', 'sir'}

NAME_SUFFIXES = {
    'phd', 'md', 'do', 'ms', 'mba', 'bsc', 'jd', 'dds', 'rn', 'mph', 'dvm',
    'esq', 'jr', 'sr', 'ii', 'iii', 'iv',
}

# Lowercased; multi-word particles ("de la") are covered by chaining single ones
SURNAME_PARTICLES = {
    'de', 'del', 'della', 'da', 'di', 'van', 'von', 'der', 'den', 'ter',
    'bin', 'ibn', 'al', 'le', 'du', 'des', 'la', 'mc', 'mac', 'st', 'st.', "o'",
}


def _norm_token(token: str) -> str:
    """'Ph.D.' → 'phd', 'Dr.' → 'dr'"""
    return token.replace('.', '').strip(',').lower()


def is_name_suffix(token: str) -> bool:
    return _norm_token(token) in NAME_SUFFIXES


def is_name_title(token: str) -> bool:
    return _norm_token(token) in NAME_TITLES


def _is_credential(piece: str) -> bool:
    tokens = piece.split()
    return bool(tokens) and all(is_name_suffix(t) for t in tokens)


def _name_words(text: str) -> List[str]:
    return [w for w in text.replace(',', ' ').split() if not is_name_suffix(w)]


def _split_byline(byline: str) -> List[str]:
    """Comma, '&', ';', '|' and '/' always split; 'and' only between two names"""
    pieces: List[str] = []
    for piece in byline.split(','):
        if pieces and _is_credential(piece):
            pieces[-1] = f"{pieces[-1]}, {piece.strip()}"
        else:
            pieces.append(piece)

    parts: List[str] = []
    for piece in pieces:
        for part in _HARD_SEPARATOR_RE.split(piece):
            halves = _AND_RE.split(part)
            if len(halves) > 1 and all(_looks_like_name(_clean_name(h) or '') for h in halves):
                parts.extend(halves)
            else:
                parts.append(part)
    return parts


def parse_byline(byline: Optional[str]) -> List[BylineName]:
    """
    Credited names in a byline, deduplicated case-insensitively.

    A byline with markup in it is treated as corrupted and yields nothing.
    """
    if not byline or not byline.strip():
        return []

    if _MARKUP_RE.search(byline):
        logger.debug(f"Byline looks like leaked CSS, ignoring: {byline[:50]}")
        return []

    bio = _BIO_RE.search(byline)
    if bio:
        byline = byline[:bio.start()]

    names: List[BylineName] = []
    seen = set()
    for part in _split_byline(byline):
        name = _clean_name(part)
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())

        if name.lower() in NON_PERSON_CREDITS:
            names.append(BylineName(name, is_person=False, confidence=0.9))
        elif _looks_like_name(name):
            names.append(BylineName(name, confidence=0.95 if _has_name_structure(name) else 0.8))
    return names


def _clean_name(part: str) -> Optional[str]:
    """Strip lead-ins, parenthesized roles and emails; None if it can't be a name"""
    if not part:
        return None
    name = _LEAD_IN_RE.sub('', part.strip())
    name = _EMAIL_RE.sub('', re.sub(r'\([^)]*\)', ' ', name))
    name = ' '.join(name.rstrip(',;: ').split())

    if not 3 <= len(name) <= 60 or len(_name_words(name)) > 5:
        return None
    return name


def _looks_like_name(text: str) -> bool:
    """Two to five capitalized-first words, no digits or markup characters"""
    words = [w for w in _name_words(text) if not is_name_title(w)]
    return (
        2 <= len(words) <= 5
        and words[0][0].isupper()
        and not _BAD_CHARS_RE.search(text)
    )


def _has_name_structure(name: str) -> bool:
    """Capitalized words, allowing lowercase surname particles in between."""
    words = _name_words(name)
    return len(words) >= 2 and all(w[0].isupper() or w.lower() in SURNAME_PARTICLES for w in words)


def parse_author_name(raw: str, is_person: bool = True) -> AuthorName:
    """
    Decompose a single name into title/first/middle/last/suffix.

    - "Maria de la Cruz, PhD" → first "Maria", last "de la Cruz", suffix "PhD"
    - "Dr. Jan van der Berg Jr." → title "Dr.", first "Jan", last "van der Berg", suffix "Jr."
    - "Cruz, Maria" → first "Maria", last "Cruz" (citation-style inversion)
    """
    text = ' '.join((raw or '').split())
    result = AuthorName(raw=text, is_person=is_person)
    if not text or not is_person:
        return result

    suffixes = []
    if ',' in text:
        head, *rest = [p.strip() for p in text.split(',')]
        leftover = []
        for piece in rest:
            if piece and all(is_name_suffix(t) for t in piece.split()):
                suffixes.append(piece)
            elif piece:
                leftover.append(piece)
        if leftover and len(leftover) == 1 and len(head.split()) <= 3:
            # "Last, First Middle"
            text = f"{leftover[0]} {head}"
        else:
            text = ' '.join([head] + leftover)

    tokens = text.split()

    if tokens and len(tokens) > 1 and is_name_title(tokens[0]):
        result.title = tokens.pop(0)

    while len(tokens) > 1 and is_name_suffix(tokens[-1]):
        suffixes.insert(0, tokens.pop())

    result.suffix = ' '.join(suffixes)

    if not tokens:
        return result

    result.first = tokens[0]
    if len(tokens) == 1:
        return result

    start = len(tokens) - 1
    while start - 1 >= 1 and tokens[start - 1].lower() in SURNAME_PARTICLES:
        start -= 1

    result.last = ' '.join(tokens[start:])
    result.middle = ' '.join(tokens[1:start])
    return result


def merge_author_candidates(candidates: Iterable[str]) -> List[AuthorName]:
    """
    Byline strings from every source → unique AuthorNames, first-seen order.

    Dedup is case-insensitive on the normalized first/middle/last name, so
    "Maria de la Cruz" and "MARIA DE LA CRUZ, PhD" collapse to one entry.
    """
    merged: List[AuthorName] = []
    seen = set()
    for candidate in candidates:
        for parsed in parse_byline(candidate or ''):
            author = parse_author_name(parsed.name, is_person=parsed.is_person)
            if author.key in seen:
                continue
            seen.add(author.key)
            merged.append(author)
    return merged


def extract_authors(byline: str) -> List[str]:
    """Names of the people credited in a byline"""
    return [a.name for a in parse_byline(byline) if a.is_person]
