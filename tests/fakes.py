"""
In-memory stand-ins for the network, browser, LLM and database collaborators.
"""
from typing import Callable, Dict, List, Optional

from evidence_crawler.exceptions import FatalInputFailure, PersistenceFailure, SoftFetchFailure
from evidence_crawler.models.claim import TopicAnalysis
from evidence_crawler.models.content import (
    ExtractedContent, ReferenceLink, ResolvedContent, ResolvedKind, UNKNOWN_PUBLISHER,
)
from evidence_crawler.repositories.memory_gateway import InMemoryPersistenceGateway
from evidence_crawler.services.pdf_service import PdfExtraction
from evidence_crawler.services.semantic_client import SemanticService
from evidence_crawler.utils.url_utils import is_valid_url


LOREM = (
    "Researchers followed two thousand adults for ten years and recorded how long they slept each night. "
    "Participants who slept less than six hours performed worse on memory tests than those who slept "
    "seven to eight hours. The effect held after adjusting for age, income and physical activity. "
    "The authors caution that the study is observational and cannot prove that sleep causes the difference. "
)


def article_html(title: str = "Sleep and memory in adults", body: str = LOREM * 2, extra: str = '') -> str:
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<article><h1>{title}</h1><p>{body}</p><p>{body}</p>{extra}</article>"
        f"</body></html>"
    )


class FakeRenderer:
    """render(url) → canned HTML; unknown URLs fail softly"""

    def __init__(self, pages: Optional[Dict[str, str]] = None):
        self.pages = pages or {}
        self.calls: List[str] = []

    async def render(self, url: str, timeout_ms: Optional[int] = None) -> str:
        self.calls.append(url)
        if url in self.pages:
            return self.pages[url]
        raise SoftFetchFailure(f"No rendering for {url}")


class FakePdfService:
    def __init__(self, extraction: Optional[PdfExtraction] = None, thumbnail: Optional[bytes] = b'\x89PNG'):
        self.extraction = extraction or PdfExtraction(text=LOREM * 2, title=None, author=None, pages=3)
        self.thumbnail = thumbnail

    async def extract_pdf_text(self, data: bytes) -> PdfExtraction:
        return self.extraction

    async def rasterize_first_page(self, data: bytes) -> Optional[bytes]:
        return self.thumbnail


class FakeResolver:
    """URL → ResolvedContent table; unknown URLs are unusable"""

    def __init__(self, resolved: Optional[Dict[str, ResolvedContent]] = None,
                 on_resolve: Optional[Callable[[str], None]] = None):
        self.resolved = resolved or {}
        self.on_resolve = on_resolve
        self.calls: List[str] = []

    async def resolve(self, url: str, strategy=None) -> ResolvedContent:
        if not is_valid_url(url):
            raise FatalInputFailure(f"Invalid URL: {url!r}")
        self.calls.append(url)
        if self.on_resolve:
            self.on_resolve(url)
        return self.resolved.get(url) or ResolvedContent(kind=ResolvedKind.UNUSABLE, url=url)


class FakeExtractor:
    """ResolvedContent → ExtractedContent with the references configured per URL"""

    def __init__(self, references: Optional[Dict[str, List[str]]] = None):
        self.references = references or {}

    def extract(self, resolved: ResolvedContent, name_hint: Optional[str] = None) -> ExtractedContent:
        return ExtractedContent(
            text=f"text of {resolved.url}",
            title=name_hint or f"Title of {resolved.url}",
            publisher=UNKNOWN_PUBLISHER,
            references=[ReferenceLink(url=u, title=f"ref {u}") for u in self.references.get(resolved.url, [])],
        )


class FakeClaimExtractor:
    """Claims per URL (keyed off FakeExtractor's 'text of <url>' text)"""

    def __init__(self, claims: Optional[Dict[str, List[str]]] = None):
        self.claims = claims or {}
        self.calls: List[str] = []

    async def analyze(self, text: str, testimonial_hints=None) -> TopicAnalysis:
        self.calls.append(text)
        url = text.replace('text of ', '', 1)
        return TopicAnalysis(general_topic='Health', claims=list(self.claims.get(url, [])), chunks_total=1)


class FakeEvidenceMapper:
    def __init__(self, mapping: Optional[Dict[str, List[ReferenceLink]]] = None):
        self.mapping = mapping or {}
        self.calls: List[List[str]] = []

    async def map_claims_to_evidence(self, claims: List[str], text: str = '') -> Dict[str, List[ReferenceLink]]:
        self.calls.append(list(claims))
        return {c: self.mapping[c] for c in claims if c in self.mapping}


class FailingGateway(InMemoryPersistenceGateway):
    """Fails upsert_content for the given URLs"""

    def __init__(self, fail_urls):
        super().__init__()
        self.fail_urls = set(fail_urls)

    async def upsert_content(self, record, publisher_id=None, author_ids=()):
        if record.url in self.fail_urls:
            raise PersistenceFailure(f"disk full while writing {record.url}")
        return await super().upsert_content(record, publisher_id, author_ids)


class FakeSemanticService(SemanticService):
    """
    Scripted semantic service.

    chunk_results: consumed in order by extract_topics_and_claims; an
    Exception instance is raised instead of returned.
    """

    def __init__(self, chunk_results=None, query_response=None, selections=None):
        self.chunk_results = list(chunk_results or [])
        self.query_response = query_response
        self.selections = selections
        self.chunk_calls: List[dict] = []
        self.query_calls: List[List[str]] = []
        self.search_calls: List[List[dict]] = []

    async def extract_topics_and_claims(self, text, testimonial_hints=None, min_claims=5, max_claims=12):
        self.chunk_calls.append({'text': text, 'min_claims': min_claims, 'max_claims': max_claims})
        result = self.chunk_results.pop(0) if self.chunk_results else {}
        if isinstance(result, Exception):
            raise result
        return result

    async def suggest_queries_for_claims(self, text, claims):
        self.query_calls.append(list(claims))
        if isinstance(self.query_response, Exception):
            raise self.query_response
        return self.query_response or {'items': []}

    async def search_and_rank_sources(self, items):
        self.search_calls.append(list(items))
        if isinstance(self.selections, Exception):
            raise self.selections
        return self.selections or []
