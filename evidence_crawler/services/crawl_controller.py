"""
Crawl Controller - recursive ingest of a task URL and its evidence

Per node:
    start → fetching → extracting → extracting_claims → mapping_evidence
          → persisting → recursing → done
    skipped: already visited, feed, unusable fetch, extraction error
    failed:  persistence error (children are abandoned, siblings continue)

Recursion is depth-first and sequential. The visited set (normalized URLs)
and the cancellation event are shared by the whole run; a URL enters the
visited set before any work on it starts, so cycles terminate.

Children of a node = DOM references ∪ evidence references, merged by URL.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config.settings import Settings, get_settings
from ..exceptions import FatalInputFailure, PersistenceFailure
from ..models.claim import TopicAnalysis, coerce_stance, compute_support_level
from ..models.content import (
    ContentKind, ContentRecord, ExtractedContent, ReferenceLink, ResolvedContent, merge_references,
)
from ..models.crawl import CrawlContext, CrawlState
from ..repositories.persistence_gateway import PersistenceGateway
from ..utils.url_utils import visit_key, is_feed_url, extract_domain
from .claim_extractor import ClaimExtractor
from .content_extractor import ContentExtractor
from .evidence_mapper import EvidenceMapper, flatten_evidence
from .fetch_resolver import FetchResolver, FetchStrategy
from .heuristics import title_from_url

logger = logging.getLogger(__name__)


@dataclass
class _Origin:
    """How a child node was reached: the parent's link to it and the parent's claim ids"""
    link: ReferenceLink
    parent_claim_ids: Dict[str, str] = field(default_factory=dict)


class CrawlController:
    """
    Orchestrates fetch → extract → claims → evidence → persist → recurse

    node_states records the last state reached per normalized URL (latest run).
    """

    def __init__(
        self,
        resolver: FetchResolver,
        extractor: ContentExtractor,
        claim_extractor: ClaimExtractor,
        evidence_mapper: EvidenceMapper,
        gateway: PersistenceGateway,
        settings: Optional[Settings] = None,
    ):
        self.resolver = resolver
        self.extractor = extractor
        self.claim_extractor = claim_extractor
        self.evidence_mapper = evidence_mapper
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.node_states: Dict[str, CrawlState] = {}

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def ingest(
        self,
        url: str,
        name_hint: Optional[str] = None,
        kind: ContentKind = ContentKind.TASK,
        max_depth: Optional[int] = None,
        strategy: Optional[FetchStrategy] = None,
        ctx: Optional[CrawlContext] = None,
    ) -> Optional[str]:
        """
        Ingest a URL and (for tasks) its references recursively.

        Args:
            url: seed URL
            name_hint: display name supplied by the caller
            kind: 'task' or 'reference'
            max_depth: recursion bound (defaults to settings.max_depth)
            strategy: RemoteFetch (default) or LiveDom for the seed only
            ctx: existing run context to join (shares visited set and cancellation)

        Returns:
            Content id of the seed, or None if it was skipped, failed, or invalid
        """
        kind = ContentKind(kind)
        if ctx is None:
            depth = self.settings.max_depth if max_depth is None else max(0, max_depth)
            ctx = CrawlContext(max_depth=depth)

        logger.info(f"🚀 Ingesting {kind.value} {url} (max depth {ctx.max_depth})")
        content_id = await self._crawl(url, name_hint, kind, ctx, strategy=strategy)
        logger.info(f"🏁 Crawl finished for {url}: {content_id or 'nothing stored'} ({len(ctx.visited)} URLs visited)")
        return content_id

    # =========================================================================
    # NODE
    # =========================================================================

    def _transition(self, key: str, state: CrawlState, detail: str = ''):
        self.node_states[key] = state
        suffix = f" ({detail})" if detail else ''
        logger.debug(f"🔀 [{state.value}] {key}{suffix}")

    async def _crawl(
        self,
        url: str,
        name_hint: Optional[str],
        kind: ContentKind,
        ctx: CrawlContext,
        strategy: Optional[FetchStrategy] = None,
        origin: Optional[_Origin] = None,
    ) -> Optional[str]:
        key = visit_key(url)

        if ctx.is_cancelled:
            logger.info(f"🛑 Crawl cancelled, not starting {url}")
            return None
        if key in ctx.visited:
            logger.debug(f"♻️ Already visited {key}")
            return None
        ctx.visited.add(key)
        self._transition(key, CrawlState.START, f"depth {ctx.depth}")

        if kind == ContentKind.REFERENCE and is_feed_url(url):
            self._transition(key, CrawlState.SKIPPED, 'feed')
            return None

        # Fetch
        self._transition(key, CrawlState.FETCHING)
        try:
            resolved = await self.resolver.resolve(url, strategy)
        except FatalInputFailure as e:
            logger.warning(f"❌ {e}")
            self._transition(key, CrawlState.SKIPPED, 'invalid url')
            return None

        if resolved.is_placeholder:
            record = self._placeholder_record(resolved, name_hint, kind)
            content_id, _ = await self._persist_node(key, record, ctx, origin)
            return content_id

        if not resolved.usable:
            self._transition(key, CrawlState.SKIPPED, 'unusable')
            return None

        # Extract
        self._transition(key, CrawlState.EXTRACTING)
        try:
            extracted = await asyncio.to_thread(self.extractor.extract, resolved, name_hint)
        except Exception as e:
            logger.warning(f"⚠️ Extraction failed for {url}: {e}")
            self._transition(key, CrawlState.SKIPPED, 'extraction error')
            return None

        self._transition(key, CrawlState.EXTRACTING_CLAIMS)
        analysis = await self._analyze(url, extracted)

        evidence_refs: List[ReferenceLink] = []
        if kind == ContentKind.TASK and analysis.claims:
            self._transition(key, CrawlState.MAPPING_EVIDENCE)
            evidence_refs = await self._map_evidence(url, analysis.claims, extracted.text)

        children = merge_references(extracted.references, evidence_refs)
        record = self._build_record(resolved, extracted, analysis, kind, children)

        content_id, claim_ids = await self._persist_node(key, record, ctx, origin)
        if content_id is None:
            return None

        if self._should_recurse(kind, ctx) and children:
            self._transition(key, CrawlState.RECURSING, f"{len(children)} children")
            await self._recurse(children, ctx, claim_ids)

        self._transition(key, CrawlState.DONE)
        return content_id

    async def _analyze(self, url: str, extracted: ExtractedContent) -> TopicAnalysis:
        try:
            return await self.claim_extractor.analyze(extracted.text, extracted.testimonial_hints)
        except Exception as e:
            logger.warning(f"⚠️ Claim extraction failed for {url}: {e}")
            return TopicAnalysis()

    async def _map_evidence(self, url: str, claims: List[str], text: str) -> List[ReferenceLink]:
        try:
            mapping = await self.evidence_mapper.map_claims_to_evidence(claims, text)
        except Exception as e:
            logger.warning(f"⚠️ Evidence mapping failed for {url}: {e}")
            return []
        return flatten_evidence(mapping)

    def _should_recurse(self, kind: ContentKind, ctx: CrawlContext) -> bool:
        if not ctx.can_recurse:
            return False
        return kind == ContentKind.TASK or self.settings.recurse_from_references

    async def _recurse(self, children: List[ReferenceLink], ctx: CrawlContext, parent_claim_ids: Dict[str, str]):
        child_ctx = ctx.child()
        for link in children:
            if ctx.is_cancelled:
                logger.info("🛑 Crawl cancelled, skipping remaining children")
                break
            try:
                await self._crawl(
                    link.url, link.title or None, ContentKind.REFERENCE, child_ctx,
                    origin=_Origin(link=link, parent_claim_ids=parent_claim_ids),
                )
            except Exception as e:
                logger.error(f"❌ Unexpected failure crawling {link.url}: {e}", exc_info=True)

    # =========================================================================
    # RECORDS
    # =========================================================================

    def _placeholder_record(self, resolved: ResolvedContent, name_hint: Optional[str],
                            kind: ContentKind) -> ContentRecord:
        name = (name_hint or '').strip() or title_from_url(resolved.url) or resolved.url
        return ContentRecord(
            url=resolved.url,
            kind=kind,
            name=name,
            media_kind=resolved.media_kind,
            is_placeholder=True,
        )

    def _build_record(self, resolved: ResolvedContent, extracted: ExtractedContent, analysis: TopicAnalysis,
                      kind: ContentKind, references: List[ReferenceLink]) -> ContentRecord:
        return ContentRecord(
            url=resolved.url,
            kind=kind,
            name=extracted.title,
            text=extracted.text,
            media_kind=extracted.media_kind,
            topic=analysis.general_topic,
            subtopics=list(analysis.specific_topics),
            thumbnail=extracted.image,
            is_retracted=resolved.retracted,
            authors=list(extracted.authors),
            publisher=extracted.publisher,
            references=references,
            claims=list(analysis.claims),
            testimonials=analysis.testimonials or list(extracted.testimonial_hints),
            language=extracted.language,
            published_at=extracted.published_at,
            thumbnail_bytes=resolved.thumbnail,
        )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _persist_node(self, key: str, record: ContentRecord, ctx: CrawlContext,
                            origin: Optional[_Origin]) -> Tuple[Optional[str], Dict[str, str]]:
        self._transition(key, CrawlState.PERSISTING)
        try:
            content_id, claim_ids = await self._persist(record, ctx, origin)
        except PersistenceFailure as e:
            logger.error(f"❌ Persisting {record.url} failed: {e}", exc_info=True)
            self._transition(key, CrawlState.FAILED)
            return None, {}

        if record.kind == ContentKind.TASK and ctx.task_content_id is None:
            ctx.task_content_id = content_id
        logger.info(f"💾 Stored {record.kind.value} {content_id}: {record.name[:80]} ({len(claim_ids)} claims)")

        if record.is_placeholder:
            self._transition(key, CrawlState.DONE, 'placeholder')
        return content_id, claim_ids

    async def _persist(self, record: ContentRecord, ctx: CrawlContext,
                       origin: Optional[_Origin]) -> Tuple[str, Dict[str, str]]:
        """publisher → authors → content → relation → claims → claim links"""
        publisher_id = await self.gateway.upsert_publisher(record.publisher)
        author_ids = [await self.gateway.upsert_author(author) for author in record.authors]
        content_id = await self.gateway.upsert_content(record, publisher_id, author_ids)

        link = origin.link if origin else None
        if record.kind == ContentKind.REFERENCE and ctx.task_content_id and ctx.task_content_id != content_id:
            await self.gateway.link_content_relation(
                ctx.task_content_id, content_id, system_flag=bool(link and link.is_evidence)
            )

        claim_ids: Dict[str, str] = {}
        for text in record.claims:
            claim_id = await self.gateway.upsert_claim(text)
            await self.gateway.link_content_claim(content_id, claim_id, record.kind.value)
            claim_ids[text] = claim_id

        if link and link.is_evidence and claim_ids:
            stance = coerce_stance(link.stance)
            support_level = compute_support_level(stance, 1.0, extract_domain(link.url))
            for parent_claim in link.claims:
                source_id = origin.parent_claim_ids.get(parent_claim)
                if not source_id:
                    continue
                for target_id in claim_ids.values():
                    await self.gateway.upsert_claim_link(source_id, target_id, stance, support_level)

        return content_id, claim_ids
