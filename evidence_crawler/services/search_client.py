"""
Web search client (Tavily) and domain-preference ranking

Search failures never raise: a failed query yields no results, and the
evidence mapper carries on with whatever the other queries returned.
"""
import logging
from dataclasses import dataclass, asdict
from typing import List, Optional, Iterable

import httpx

from ..utils.url_utils import extract_domain

logger = logging.getLogger(__name__)

PREFER_SCORE = 5.0
AVOID_SCORE = -10.0


@dataclass
class SearchResult:
    url: str
    title: str = ""
    snippet: str = ""
    domain: Optional[str] = None
    published_at: Optional[str] = None
    score: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class TavilySearchClient:
    """POST https://api.tavily.com/search, mapped onto SearchResult"""

    def __init__(self, api_key: str, url: str = "https://api.tavily.com/search", timeout: float = 20.0):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        if not api_key:
            logger.warning("⚠️ TAVILY_API_KEY not set - web search disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        max_results: int = 5,
        include_domains: Optional[List[str]] = None,
        exclude_domains: Optional[List[str]] = None,
    ) -> List[SearchResult]:
        if not self.enabled or not query or not query.strip():
            return []

        body = {
            'api_key': self.api_key,
            'query': query.strip(),
            'max_results': max_results,
            'search_depth': 'basic',
        }
        if include_domains:
            body['include_domains'] = include_domains
        if exclude_domains:
            body['exclude_domains'] = exclude_domains

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=body)
            if response.status_code != 200:
                logger.warning(f"⚠️ Tavily HTTP {response.status_code} for query: {query[:80]}")
                return []
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"⏱️ Tavily timeout for query: {query[:80]}")
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Tavily request failed: {e}")
            return []

        results = []
        for item in data.get('results') or []:
            url = item.get('url')
            if not url:
                continue
            try:
                score = float(item.get('score') or 0.0)
            except (TypeError, ValueError):
                score = 0.0
            results.append(SearchResult(
                url=url,
                title=item.get('title') or '',
                snippet=item.get('content') or item.get('snippet') or '',
                domain=extract_domain(url),
                published_at=item.get('published_date') or item.get('publishedAt'),
                score=score,
            ))
        return results


def _domain_matches(domain: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns or []:
        pattern = (pattern or '').lower().lstrip('.')
        if pattern and (domain == pattern or domain.endswith('.' + pattern)):
            return True
    return False


def domain_preference(url: str, prefer: Iterable[str] = (), avoid: Iterable[str] = ()) -> float:
    """+5 for preferred domains, -10 for avoided ones (avoid wins)"""
    domain = extract_domain(url)
    if _domain_matches(domain, avoid):
        return AVOID_SCORE
    if _domain_matches(domain, prefer):
        return PREFER_SCORE
    return 0.0


def dedupe_results(results: Iterable[SearchResult]) -> List[SearchResult]:
    seen = set()
    unique = []
    for result in results:
        if result.url in seen:
            continue
        seen.add(result.url)
        unique.append(result)
    return unique


def rank_results(
    results: Iterable[SearchResult],
    prefer: Iterable[str] = (),
    avoid: Iterable[str] = (),
    limit: int = 10,
) -> List[SearchResult]:
    """Dedupe by URL, sort by domain preference + search score (stable), keep top N"""
    prefer, avoid = list(prefer or []), list(avoid or [])
    unique = dedupe_results(results)
    ranked = sorted(
        unique,
        key=lambda r: domain_preference(r.url, prefer, avoid) + r.score,
        reverse=True,
    )
    return ranked[:limit]
