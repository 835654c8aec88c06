"""
Evidence Mapper - claims → candidate evidence references

Phase (a): the semantic service suggests ≤4 queries per claim (batches of 10),
           with local fallback queries when it fails
Phase (b): search, rank and select 1-3 sources per claim with a stance

Output is keyed by claim text; flatten_evidence() merges by URL so a source
shared by several claims carries all of them.
"""
import logging
from typing import List, Dict, Optional

from ..models.claim import normalize_claim_text, coerce_stance
from ..models.content import ReferenceLink, ReferenceOrigin, merge_references
from .semantic_client import SemanticService

logger = logging.getLogger(__name__)

QUERY_BATCH_SIZE = 10
MAX_QUERIES_PER_CLAIM = 4

PREFER_DOMAINS = [
    'reuters.com', 'apnews.com', 'bbc.com', 'npr.org',
    'snopes.com', 'factcheck.org', 'politifact.com', 'fullfact.org',
]


def fallback_queries(claim: str) -> List[str]:
    """Queries used when the service can't suggest any"""
    claim = normalize_claim_text(claim)
    return [
        claim,
        f"{claim} fact check",
        f"site:wikipedia.org {claim}",
        f"(site:reuters.com OR site:apnews.com) {claim}",
    ]


def fallback_item(claim: str) -> Dict:
    return {
        'claim': claim,
        'queries': fallback_queries(claim),
        'prefer_domains': list(PREFER_DOMAINS),
        'avoid_domains': [],
    }


def flatten_evidence(mapping: Dict[str, List[ReferenceLink]]) -> List[ReferenceLink]:
    """All evidence links merged by URL (claims accumulate)"""
    return merge_references(*mapping.values())


class EvidenceMapper:
    """Maps claims to ReferenceLinks (origin=claim) via the semantic service"""

    def __init__(self, semantic_service: SemanticService):
        self.semantic_service = semantic_service

    async def map_claims_to_evidence(self, claims: List[str], text: str = '') -> Dict[str, List[ReferenceLink]]:
        """
        Returns {claim text: [ReferenceLink, ...]}; claims with no usable
        sources are absent.
        """
        claims = [c for c in (normalize_claim_text(c) for c in claims or []) if c]
        if not claims:
            return {}

        items = []
        for start in range(0, len(claims), QUERY_BATCH_SIZE):
            items.extend(await self._suggest_queries(text, claims[start:start + QUERY_BATCH_SIZE]))

        try:
            selections = await self.semantic_service.search_and_rank_sources(items)
        except Exception as e:
            logger.warning(f"⚠️ Evidence search failed: {e}")
            return {}

        mapping: Dict[str, List[ReferenceLink]] = {}
        for selection in selections or []:
            claim = normalize_claim_text(selection.get('claim') or '')
            if not claim:
                continue
            links = mapping.setdefault(claim, [])
            for source in selection.get('sources') or []:
                link = self._to_link(claim, source)
                if link and all(existing.url != link.url for existing in links):
                    links.append(link)
            if not links:
                del mapping[claim]

        logger.info(
            f"🔗 Evidence for {len(mapping)}/{len(claims)} claims, "
            f"{sum(len(v) for v in mapping.values())} links"
        )
        return mapping

    async def _suggest_queries(self, text: str, batch: List[str]) -> List[Dict]:
        """Service-suggested query items for a batch; local fallbacks fill any gaps"""
        try:
            response = await self.semantic_service.suggest_queries_for_claims(text, batch)
            suggested = response.get('items') or []
        except Exception as e:
            logger.warning(f"⚠️ Query suggestion failed, using fallback queries: {e}")
            suggested = []

        by_claim = {}
        for item in suggested:
            if not isinstance(item, dict):
                continue
            claim = normalize_claim_text(item.get('claim') or '')
            queries = [q for q in (item.get('queries') or []) if isinstance(q, str) and q.strip()]
            if claim and queries:
                by_claim[claim] = {
                    'claim': claim,
                    'queries': queries[:MAX_QUERIES_PER_CLAIM],
                    'prefer_domains': item.get('prefer_domains') or list(PREFER_DOMAINS),
                    'avoid_domains': item.get('avoid_domains') or [],
                }

        return [by_claim.get(claim) or fallback_item(claim) for claim in batch]

    @staticmethod
    def _to_link(claim: str, source: Dict) -> Optional[ReferenceLink]:
        url = (source.get('url') or '').strip() if isinstance(source, dict) else ''
        if not url.startswith('http'):
            return None
        score = source.get('score')
        return ReferenceLink(
            url=url,
            title=source.get('title') or '',
            origin=ReferenceOrigin.CLAIM,
            claims=[claim],
            stance=coerce_stance(source.get('stance')).value,
            why=source.get('why'),
            score=float(score) if isinstance(score, (int, float)) else None,
            published_at=source.get('publishedAt'),
        )
