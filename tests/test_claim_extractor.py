"""
Tests for chunking and per-chunk claim aggregation.
"""

import pytest

from evidence_crawler.exceptions import ExtractionParseFailure
from evidence_crawler.services.claim_extractor import (
    ClaimExtractor,
    chunk_text,
    claim_bounds,
    estimate_tokens,
)

from .fakes import FakeSemanticService

PARAGRAPHS = ["Paragraph one about sleep.", "Paragraph two about memory.", "Paragraph three about naps."]


# =============================================================================
# Chunking
# =============================================================================

class TestChunkText:

    def test_small_text_is_one_chunk(self):
        assert chunk_text("\n".join(PARAGRAPHS), budget=1000) == ["\n\n".join(PARAGRAPHS)]

    def test_paragraphs_are_packed_greedily(self):
        chunks = chunk_text("para one\n\npara two\npara three", budget=20)
        assert chunks == ["para one\n\npara two", "para three"]

    def test_oversized_paragraph_is_split_hard(self):
        assert chunk_text("short\n" + "x" * 25, budget=10) == ["short", "x" * 10, "x" * 10, "x" * 5]

    @pytest.mark.parametrize("text", ["", "  \n \n", None])
    def test_empty(self, text):
        assert chunk_text(text) == []


@pytest.mark.parametrize("tokens,bounds", [
    (0, (5, 12)),
    (2500, (5, 12)),
    (2501, (8, 16)),
    (5000, (8, 16)),
    (9000, (12, 24)),
    (9001, (16, 30)),
])
def test_claim_bounds(tokens, bounds):
    assert claim_bounds(tokens) == bounds


def test_estimate_tokens():
    assert estimate_tokens("a" * 400) == 100
    assert estimate_tokens(None) == 0


# =============================================================================
# Aggregation
# =============================================================================

@pytest.mark.asyncio
async def test_analyze_aggregates_across_chunks():
    service = FakeSemanticService(chunk_results=[
        {
            "generalTopic": "Public Health Policy",
            "specificTopics": ["sleep", "memory"],
            "claims": ["Sleep  improves memory.", "Adults need 7 hours."],
            "testimonials": [{"text": "I sleep more now", "name": "Jane"}, {"name": "no text"}],
        },
        ExtractionParseFailure("unterminated string"),
        {
            "generalTopic": "Public Health",
            "specificTopics": ["sleep"],
            "claims": ["Sleep improves memory.", "Naps help."],
        },
    ])
    extractor = ClaimExtractor(service, chunk_char_budget=30)

    analysis = await extractor.analyze("\n".join(PARAGRAPHS))

    assert len(service.chunk_calls) == 3
    assert analysis.chunks_total == 3
    assert analysis.chunks_failed == 1
    assert analysis.general_topic == "Public Health"
    assert analysis.specific_topics == ["sleep", "memory"]
    assert analysis.claims == ["Sleep improves memory.", "Adults need 7 hours.", "Naps help."]
    assert analysis.testimonials == [{"text": "I sleep more now", "name": "Jane"}]


@pytest.mark.asyncio
async def test_bounds_are_requested_per_chunk():
    service = FakeSemanticService(chunk_results=[{"claims": []}])
    await ClaimExtractor(service).analyze("x" * 12000)

    assert len(service.chunk_calls) == 2
    assert (service.chunk_calls[0]["min_claims"], service.chunk_calls[0]["max_claims"]) == (5, 12)


@pytest.mark.asyncio
async def test_service_error_drops_only_that_chunk():
    service = FakeSemanticService(chunk_results=[
        RuntimeError("upstream 500"),
        {"generalTopic": "Sleep", "claims": ["Naps help."]},
    ])
    analysis = await ClaimExtractor(service, chunk_char_budget=30).analyze("\n".join(PARAGRAPHS[:2]))

    assert analysis.chunks_failed == 1
    assert analysis.claims == ["Naps help."]
    assert analysis.general_topic == "Sleep"


@pytest.mark.asyncio
async def test_every_chunk_failing_yields_empty_analysis():
    service = FakeSemanticService(chunk_results=[ExtractionParseFailure("x"), ExtractionParseFailure("y")])
    analysis = await ClaimExtractor(service, chunk_char_budget=30).analyze("\n".join(PARAGRAPHS[:2]))

    assert analysis.claims == []
    assert analysis.general_topic is None
    assert analysis.chunks_failed == analysis.chunks_total == 2


@pytest.mark.asyncio
async def test_empty_text_makes_no_calls():
    service = FakeSemanticService()
    analysis = await ClaimExtractor(service).analyze("")
    assert analysis.chunks_total == 0
    assert service.chunk_calls == []
