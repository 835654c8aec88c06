"""
Tests for the OpenAI-backed semantic service, with the OpenAI client and the
search client replaced by scripted fakes.
"""

import json
from types import SimpleNamespace

import pytest

from evidence_crawler.exceptions import ExtractionParseFailure
from evidence_crawler.services.search_client import SearchResult
from evidence_crawler.services.semantic_client import OpenAISemanticService


class FakeCompletions:
    """chat.completions stand-in: replies are consumed in order"""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])

    def user_prompt(self, index=-1):
        return self.calls[index]["messages"][1]["content"]


class FakeSearch:
    def __init__(self, results=None):
        self.results = results or []
        self.calls = []

    async def search(self, query, max_results=5, include_domains=None, exclude_domains=None):
        self.calls.append({"query": query, "max_results": max_results, "exclude_domains": exclude_domains})
        return list(self.results)


def make_service(settings, replies, results=None):
    completions = FakeCompletions(replies)
    search = FakeSearch(results)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAISemanticService(client=client, search_client=search, settings=settings), completions, search


RESULTS = [
    SearchResult(url="https://reuters.com/sleep", title="Reuters on sleep", domain="reuters.com",
                 score=0.4, published_at="2024-05-02"),
    SearchResult(url="https://example.org/blog", title="A blog", domain="example.org", score=0.9),
    SearchResult(url="https://spam.example.net/x", title="Spam", domain="spam.example.net", score=0.95),
    SearchResult(url="https://apnews.com/sleep", title="AP on sleep", domain="apnews.com", score=0.1),
]
ITEM = {
    "claim": "Sleep improves memory.",
    "queries": ["q1", "q2", "q3", "q4", "q5"],
    "prefer_domains": ["reuters.com", "apnews.com"],
    "avoid_domains": ["spam.example.net"],
}


# =============================================================================
# Claims / queries
# =============================================================================

@pytest.mark.asyncio
async def test_extract_topics_parses_fenced_json(settings):
    reply = '```json\n{"generalTopic": "Health", "claims": ["Sleep improves memory.",]}\n```'
    service, completions, _ = make_service(settings, [reply])

    result = await service.extract_topics_and_claims(
        "Some text", testimonial_hints=[{"text": "It worked for me"}], min_claims=8, max_claims=16
    )

    assert result == {"generalTopic": "Health", "claims": ["Sleep improves memory."]}
    call = completions.calls[0]
    assert call["model"] == settings.openai_model
    assert call["response_format"] == {"type": "json_object"}
    prompt = completions.user_prompt()
    assert "AT LEAST 8 and AT MOST 16" in prompt
    assert "It worked for me" in prompt
    assert prompt.endswith("TEXT:\nSome text")


@pytest.mark.asyncio
async def test_non_object_response_is_a_parse_failure(settings):
    service, _, _ = make_service(settings, ['["just", "a", "list"]'])
    with pytest.raises(ExtractionParseFailure):
        await service.extract_topics_and_claims("Some text")


@pytest.mark.asyncio
async def test_rate_limit_is_retried_once(settings):
    service, completions, _ = make_service(settings, [Exception("Error code: 429 - Rate limit reached"), '{"claims": []}'])
    assert await service.extract_topics_and_claims("Some text") == {"claims": []}
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(settings):
    service, completions, _ = make_service(settings, [Exception("invalid api key"), '{"claims": []}'])
    with pytest.raises(Exception, match="invalid api key"):
        await service.extract_topics_and_claims("Some text")
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_suggest_queries_truncates_context(settings):
    service, completions, _ = make_service(settings, ['{"items": []}'])

    result = await service.suggest_queries_for_claims("a" * 5000, ["Sleep improves memory."])

    assert result == {"items": []}
    prompt = completions.user_prompt()
    assert "a" * 2000 in prompt
    assert "a" * 2001 not in prompt
    assert json.dumps({"claims": ["Sleep improves memory."]}) in prompt


# =============================================================================
# Search and selection
# =============================================================================

@pytest.mark.asyncio
async def test_selection_keeps_only_shown_urls(settings):
    reply = json.dumps({"claim": ITEM["claim"], "sources": [
        {"url": "https://invented.example.com/a", "stance": "supports"},
        {"url": "https://reuters.com/sleep", "stance": "supports", "why": "Reports the cohort"},
    ]})
    service, completions, search = make_service(settings, [reply], RESULTS)

    results = await service.search_and_rank_sources([ITEM])

    assert [c["query"] for c in search.calls] == ["q1", "q2", "q3", "q4"]
    assert all(c["exclude_domains"] == ["spam.example.net"] for c in search.calls)
    assert all(c["max_results"] == settings.search_max_results for c in search.calls)

    assert results == [{"claim": ITEM["claim"], "sources": [{
        "url": "https://reuters.com/sleep",
        "stance": "supports",
        "why": "Reports the cohort",
        "title": "Reuters on sleep",
        "score": 0.4,
        "publishedAt": "2024-05-02",
    }]}]
    assert "https://apnews.com/sleep" in completions.user_prompt()


@pytest.mark.asyncio
async def test_selection_error_keeps_top_ranked_as_related(settings):
    service, _, _ = make_service(settings, [RuntimeError("connection reset")], RESULTS)

    results = await service.search_and_rank_sources([ITEM])

    sources = results[0]["sources"]
    assert [s["url"] for s in sources] == [
        "https://reuters.com/sleep", "https://apnews.com/sleep", "https://example.org/blog",
    ]
    assert {s["stance"] for s in sources} == {"related"}


@pytest.mark.asyncio
async def test_unparseable_selection_drops_the_claim(settings):
    other = dict(ITEM, claim="Naps help.")
    service, _, _ = make_service(settings, ["no json here", '{"sources": []}'], RESULTS)

    results = await service.search_and_rank_sources([ITEM, other])

    assert results == [{"claim": "Naps help.", "sources": []}]


@pytest.mark.asyncio
async def test_claim_without_results_is_skipped(settings):
    service, completions, _ = make_service(settings, [], [])
    assert await service.search_and_rank_sources([ITEM, {"claim": "  "}]) == []
    assert completions.calls == []
