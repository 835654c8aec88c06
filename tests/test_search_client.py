"""
Tests for the Tavily client and domain-preference ranking.
"""

import json

import httpx
import pytest
import respx

from evidence_crawler.services.search_client import (
    TavilySearchClient,
    SearchResult,
    AVOID_SCORE,
    PREFER_SCORE,
    domain_preference,
    rank_results,
)

TAVILY_URL = "https://api.tavily.com/search"


@pytest.fixture
def client():
    return TavilySearchClient(api_key="tvly-test", url=TAVILY_URL, timeout=5.0)


# =============================================================================
# TavilySearchClient
# =============================================================================

@pytest.mark.asyncio
async def test_search_maps_results(client):
    payload = {"results": [
        {"url": "https://www.reuters.com/health/sleep", "title": "Sleep study", "content": "Adults who slept...",
         "score": 0.82, "published_date": "2024-05-01"},
        {"title": "Result without a URL"},
    ]}

    with respx.mock(assert_all_called=False) as router:
        route = router.post(TAVILY_URL).mock(return_value=httpx.Response(200, json=payload))
        results = await client.search("sleep memory study", max_results=3, exclude_domains=["example-blog.com"])

    assert len(results) == 1
    result = results[0]
    assert result.domain == "reuters.com"
    assert result.snippet == "Adults who slept..."
    assert result.score == 0.82
    assert result.published_at == "2024-05-01"

    body = json.loads(route.calls.last.request.content)
    assert body["query"] == "sleep memory study"
    assert body["max_results"] == 3
    assert body["exclude_domains"] == ["example-blog.com"]
    assert "include_domains" not in body


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="upstream error"),
    httpx.Response(200, text="<html>not json</html>"),
])
async def test_bad_responses_yield_no_results(client, response):
    with respx.mock(assert_all_called=False) as router:
        router.post(TAVILY_URL).mock(return_value=response)
        assert await client.search("sleep") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [httpx.ConnectError, httpx.ReadTimeout])
async def test_transport_errors_yield_no_results(client, error):
    with respx.mock(assert_all_called=False) as router:
        router.post(TAVILY_URL).mock(side_effect=error)
        assert await client.search("sleep") == []


@pytest.mark.asyncio
async def test_missing_key_disables_search():
    client = TavilySearchClient(api_key="")

    with respx.mock(assert_all_called=False) as router:
        assert await client.search("sleep") == []
    assert router.calls.call_count == 0
    assert not client.enabled


@pytest.mark.asyncio
async def test_blank_query_is_not_sent(client):
    with respx.mock(assert_all_called=False) as router:
        assert await client.search("   ") == []
    assert router.calls.call_count == 0


# =============================================================================
# Ranking
# =============================================================================

class TestDomainPreference:

    def test_prefer_and_avoid(self):
        assert domain_preference("https://www.reuters.com/a", prefer=["reuters.com"]) == PREFER_SCORE
        assert domain_preference("https://news.x.com/a", avoid=["x.com"]) == AVOID_SCORE
        assert domain_preference("https://example.com/a", prefer=["reuters.com"]) == 0.0

    def test_suffix_match_respects_label_boundary(self):
        assert domain_preference("https://fox.com/a", avoid=["x.com"]) == 0.0

    def test_avoid_wins_over_prefer(self):
        assert domain_preference("https://apnews.com/a", prefer=["apnews.com"], avoid=["apnews.com"]) == AVOID_SCORE


def test_rank_results_dedupes_and_orders():
    results = [
        SearchResult(url="https://x.com/post", score=0.9),
        SearchResult(url="https://fox.com/story", score=0.1),
        SearchResult(url="https://reuters.com/a", score=0.2),
        SearchResult(url="https://reuters.com/a", score=0.3),
        SearchResult(url="https://example.org/b", score=0.4),
    ]

    ranked = rank_results(results, prefer=["reuters.com"], avoid=["x.com"])

    assert [r.url for r in ranked] == [
        "https://reuters.com/a", "https://example.org/b", "https://fox.com/story", "https://x.com/post",
    ]
    assert rank_results(results, limit=2)[0].url == "https://x.com/post"
    assert len(rank_results(results, limit=2)) == 2
