"""
Tests for parsing semantic-service JSON with one repair pass.
"""

import pytest

from evidence_crawler.exceptions import ExtractionParseFailure
from evidence_crawler.utils.json_utils import parse_json_response, repair_json


def test_valid_json_parses_directly():
    assert parse_json_response('{"claims": ["a", "b"]}') == {"claims": ["a", "b"]}


def test_code_fences_and_trailing_commas():
    raw = '```json\n{"generalTopic": "Health", "claims": ["Sleep helps memory.",],}\n```'
    assert parse_json_response(raw) == {"generalTopic": "Health", "claims": ["Sleep helps memory."]}


def test_prose_around_object_is_cut():
    raw = 'Sure! Here is the JSON you asked for: {"items": []} Let me know if you need more.'
    assert parse_json_response(raw) == {"items": []}


def test_single_quotes_are_converted():
    assert parse_json_response("{'generalTopic': 'Health'}") == {"generalTopic": "Health"}


def test_quoted_speech_inside_strings_survives_comma_repair():
    raw = '{"claims": ["The mayor said, \'we will rebuild\' by 2026.",]}'
    assert parse_json_response(raw) == {"claims": ["The mayor said, \'we will rebuild\' by 2026."]}


def test_single_quoted_keys_next_to_double_quoted_apostrophes():
    raw = "{'claims': [\"It's late, 'really' late\", 'Sleep helps.'],}"
    assert parse_json_response(raw) == {"claims": ["It's late, 'really' late", "Sleep helps."]}


def test_truncated_response_is_balanced():
    raw = '{"claims": ["Sleep improves recall.", "Adults need seven hou'
    assert parse_json_response(raw) == {"claims": ["Sleep improves recall.", "Adults need seven hou"]}


def test_repair_json_closes_nested_brackets():
    assert repair_json('{"a": {"b": [1, 2') == '{"a": {"b": [1, 2]}}'


@pytest.mark.parametrize("raw", ["", "   ", None, "not json at all", "{\"a\": }"])
def test_unrepairable_raises(raw):
    with pytest.raises(ExtractionParseFailure):
        parse_json_response(raw)
