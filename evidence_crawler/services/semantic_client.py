"""
Semantic Extraction Service - LLM-backed topic/claim extraction and evidence selection

Operations:
- extract_topics_and_claims(text, testimonial_hints, min_claims, max_claims)
- suggest_queries_for_claims(text, claims)
- search_and_rank_sources(items): web search per claim → rank → LLM picks 1-3 with stance

All LLM responses are requested as JSON objects and go through
parse_json_response (one repair pass). ExtractionParseFailure propagates to the
caller, which drops that unit (chunk or claim).
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from openai import AsyncOpenAI

from ..config.settings import Settings, get_settings
from ..exceptions import ExtractionParseFailure
from ..utils.json_utils import parse_json_response
from .search_client import TavilySearchClient, SearchResult, rank_results, domain_preference, AVOID_SCORE

logger = logging.getLogger(__name__)

RETRYABLE_MARKERS = ["429", "Rate limit", "rate_limit", "timeout", "Timeout", "500", "502", "503"]

CLAIMS_SYSTEM_PROMPT = "You are a precise claim extraction assistant. You must return strictly valid JSON."

CLAIMS_USER_PROMPT = """You are a fact-checking assistant.

TASKS
1) Identify the single most general topic (max 2 words).
2) List 2-5 specific subtopics under that topic.
3) Extract DISTINCT factual claims from the text.
   - Return AT LEAST {min_claims} and AT MOST {max_claims} claims, if available.
   - Each claim must be independently verifiable, one atomic assertion per item.
   - Prefer claims with numbers, dates, named entities, locations, or concrete actions.
   - Avoid duplicates, paraphrases, opinions, or vague summaries.
   - Phrase each claim as a full sentence.
4) Extract any testimonials/first-person case studies if present
   (objects with "text", optional "name", optional "imageUrl").

OUTPUT (STRICT JSON):
{{"generalTopic": "<string>", "specificTopics": ["<string>"], "claims": ["<claim>"],
  "testimonials": [{{"text": "<string>", "name": "<optional>", "imageUrl": "<optional>"}}]}}
{testimonials_block}
TEXT:
{text}"""

QUERIES_SYSTEM_PROMPT = "Return strict JSON only."

QUERIES_USER_PROMPT = (
    "Write up to 4 concise web search queries per claim that would find sources confirming or "
    "refuting it. Output exactly: "
    '{{"items":[{{"claim":"...","queries":["q1","q2"],"prefer_domains":["apnews.com","reuters.com"],'
    '"avoid_domains":[]}}]}} '
    "Context (may be truncated): {context}\n\nClaims: {claims}"
)

SELECT_SYSTEM_PROMPT = (
    "You map web results to a claim. Choose up to 3 that best SUPPORT or REFUTE the claim. "
    "Label each as supports/refutes/related and explain briefly. Return strict JSON only."
)

SELECT_USER_PROMPT = (
    "Claim:\n{claim}\n\nCandidates (JSON):\n{candidates}\n\n"
    'Return JSON: {{"claim": "...", "sources": [{{"url": "...", "title": "...", "stance": "...", "why": "..."}}]}}'
)


class SemanticService(ABC):
    """Abstract semantic extraction backend consumed by the claim extractor and evidence mapper."""

    @abstractmethod
    async def extract_topics_and_claims(self, text: str, testimonial_hints: Optional[List[Dict]] = None,
                                        min_claims: int = 5, max_claims: int = 12) -> dict:
        """Topic, subtopics, claims and testimonials for one chunk of text."""
        pass

    @abstractmethod
    async def suggest_queries_for_claims(self, text: str, claims: List[str]) -> dict:
        """Search queries plus preferred/avoided domains per claim."""
        pass

    @abstractmethod
    async def search_and_rank_sources(self, items: List[Dict]) -> List[Dict]:
        """Search, rank and pick up to 3 stance-labelled sources per claim."""
        pass


class OpenAISemanticService(SemanticService):
    """
    Semantic extraction via OpenAI chat completions (JSON mode)

    The web search client is owned here because source selection is a
    search-then-judge round trip.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        search_client: Optional[TavilySearchClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or AsyncOpenAI(
            api_key=self.settings.openai_api_key or None,
            timeout=self.settings.openai_timeout,
        )
        self.search_client = search_client or TavilySearchClient(
            api_key=self.settings.tavily_api_key,
            url=self.settings.tavily_url,
            timeout=self.settings.search_timeout,
        )
        self.model = self.settings.openai_model

    async def _with_retry(self, fn, *args, **kwargs):
        """Execute an API call, retrying once on rate limits / transient errors"""
        for i in range(2):
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                if i == 0 and any(t in str(e) for t in RETRYABLE_MARKERS):
                    await asyncio.sleep(1.2)
                    continue
                raise

    async def _complete_json(self, system: str, user: str, max_tokens: int = 4000) -> dict:
        response = await self._with_retry(
            self.client.chat.completions.create,
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user}
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
            max_tokens=max_tokens,
        )
        raw = response.choices[0].message.content or ''
        logger.debug(f"📥 Raw LLM response ({len(raw)} chars): {raw[:300]}...")

        parsed = parse_json_response(raw)
        if not isinstance(parsed, dict):
            raise ExtractionParseFailure(f"Expected a JSON object, got {type(parsed).__name__}")
        return parsed

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def extract_topics_and_claims(
        self,
        text: str,
        testimonial_hints: Optional[List[Dict]] = None,
        min_claims: int = 5,
        max_claims: int = 12,
    ) -> dict:
        """{"generalTopic", "specificTopics", "claims", "testimonials"} for one chunk"""
        testimonials_block = ''
        if testimonial_hints:
            testimonials_block = (
                "\nBelow is a list of testimonials detected elsewhere. Deduplicate or improve them "
                f"if they also appear in this text.\nExtracted testimonials:\n{json.dumps(testimonial_hints)}\n"
            )
        user = CLAIMS_USER_PROMPT.format(
            min_claims=min_claims,
            max_claims=max_claims,
            testimonials_block=testimonials_block,
            text=text,
        )
        return await self._complete_json(CLAIMS_SYSTEM_PROMPT, user)

    async def suggest_queries_for_claims(self, text: str, claims: List[str]) -> dict:
        """{"items": [{"claim", "queries", "prefer_domains", "avoid_domains"}]}"""
        user = QUERIES_USER_PROMPT.format(
            context=(text or '')[:2000],
            claims=json.dumps({"claims": claims}),
        )
        return await self._complete_json(QUERIES_SYSTEM_PROMPT, user, max_tokens=2000)

    async def search_and_rank_sources(self, items: List[Dict]) -> List[Dict]:
        """
        For each {claim, queries, prefer_domains, avoid_domains} item:
        search (≤4 queries) → dedupe → rank → LLM picks up to 3 sources with a stance.

        Returns [{"claim", "sources": [{url, title, stance, why, score, publishedAt}]}].
        Claims whose selection response is unparseable are dropped; if the
        selection call itself fails, the top 3 ranked results are kept as 'related'.
        """
        results = []
        for item in items:
            claim = (item.get('claim') or '').strip()
            if not claim:
                continue

            prefer = item.get('prefer_domains') or []
            avoid = item.get('avoid_domains') or []

            candidates: List[SearchResult] = []
            for query in (item.get('queries') or [])[:4]:
                candidates.extend(await self.search_client.search(
                    query,
                    max_results=self.settings.search_max_results,
                    exclude_domains=avoid or None,
                ))

            ranked = rank_results(candidates, prefer=prefer, avoid=avoid, limit=10)
            if not ranked:
                logger.info(f"🔍 No search results for claim: {claim[:80]}")
                continue

            try:
                sources = await self._select_sources(claim, ranked)
            except ExtractionParseFailure as e:
                logger.warning(f"⚠️ Dropping claim after unparseable source selection: {e}")
                continue
            except Exception as e:
                logger.warning(f"⚠️ Source selection failed, keeping top ranked results: {e}")
                kept = [r for r in ranked if domain_preference(r.url, prefer, avoid) != AVOID_SCORE]
                sources = [
                    {'url': r.url, 'title': r.title, 'stance': 'related', 'why': 'top ranked search result'}
                    for r in kept[:3]
                ]

            by_url = {r.url: r for r in ranked}
            for source in sources:
                match = by_url.get(source.get('url'))
                if match:
                    source.setdefault('title', match.title)
                    source['score'] = match.score
                    source['publishedAt'] = match.published_at

            results.append({'claim': claim, 'sources': sources})
        return results

    async def _select_sources(self, claim: str, ranked: List[SearchResult]) -> List[Dict]:
        candidates = [
            {'url': r.url, 'title': r.title, 'snippet': r.snippet[:400], 'domain': r.domain}
            for r in ranked
        ]
        user = SELECT_USER_PROMPT.format(claim=claim, candidates=json.dumps(candidates, indent=2))
        picked = await self._complete_json(SELECT_SYSTEM_PROMPT, user, max_tokens=1500)

        # Only URLs we actually showed the model; it occasionally invents some
        allowed = {r.url for r in ranked}
        sources = []
        for source in picked.get('sources') or []:
            if isinstance(source, dict) and source.get('url') in allowed:
                sources.append(dict(source))
        return sources[:3]
