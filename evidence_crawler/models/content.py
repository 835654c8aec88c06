"""
Content domain models

ContentRecord is the unit of ingestion: one per distinct URL per crawl run.
ReferenceLink is an edge from a record to a candidate evidence URL.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Iterable


UNKNOWN_PUBLISHER = "Unknown Publisher"


class ContentKind(str, Enum):
    TASK = "task"
    REFERENCE = "reference"


class MediaKind(str, Enum):
    WEB = "Web"
    YOUTUBE = "YouTube"
    AUDIO = "Audio"
    VIDEO = "Video"
    DOCUMENT = "Document"


class ResolvedKind(str, Enum):
    HTML = "html"
    PDF = "pdf"
    UNUSABLE = "unusable"
    PLACEHOLDER = "placeholder"  # non-scrapable binary, never fetched


class ReferenceOrigin(str, Enum):
    DOM = "dom"
    CLAIM = "claim"


@dataclass
class AuthorName:
    """Author name decomposed into parts (raw string kept for display)"""
    raw: str
    first: str = ""
    middle: str = ""
    last: str = ""
    title: str = ""
    suffix: str = ""
    is_person: bool = True

    @property
    def display_name(self) -> str:
        parts = [self.first, self.middle, self.last]
        name = ' '.join(p for p in parts if p)
        return name or self.raw

    @property
    def key(self) -> str:
        """Case-insensitive dedup key"""
        return ' '.join(self.display_name.lower().split())


@dataclass
class ReferenceLink:
    """
    Candidate evidence URL discovered by DOM scan or by evidence mapping.

    Links sharing a target URL inside one crawl run are merged, never duplicated
    (see merge_references).
    """
    url: str
    title: str = ""
    origin: ReferenceOrigin = ReferenceOrigin.DOM
    claims: List[str] = field(default_factory=list)

    # Evidence metadata (origin == claim)
    stance: Optional[str] = None
    why: Optional[str] = None
    score: Optional[float] = None
    published_at: Optional[str] = None

    @property
    def is_evidence(self) -> bool:
        return self.origin == ReferenceOrigin.CLAIM

    def merge(self, other: 'ReferenceLink') -> 'ReferenceLink':
        """Fold another link for the same URL into this one (in place)"""
        if not self.title and other.title:
            self.title = other.title
        if other.origin == ReferenceOrigin.CLAIM:
            self.origin = ReferenceOrigin.CLAIM
        for claim in other.claims:
            if claim not in self.claims:
                self.claims.append(claim)
        # First stance/score wins; fill gaps only
        self.stance = self.stance or other.stance
        self.why = self.why or other.why
        if self.score is None:
            self.score = other.score
        self.published_at = self.published_at or other.published_at
        return self


def merge_references(*groups: Iterable[ReferenceLink]) -> List[ReferenceLink]:
    """
    Merge reference groups by target URL, preserving first-seen order.

    URLs are compared in normalized form, so a tracking-tagged or
    trailing-slash spelling merges into the first spelling seen.

    - claims are unioned
    - origin is promoted to 'claim' if any contributor says so
    - earliest non-empty title wins

    Input links are copied, never mutated.
    """
    from ..utils.url_utils import visit_key  # url_utils imports this module

    merged: Dict[str, ReferenceLink] = {}
    for group in groups:
        for ref in group or []:
            url = (ref.url or '').strip()
            if not url:
                continue
            key = visit_key(url)
            if key in merged:
                merged[key].merge(ref)
            else:
                merged[key] = ReferenceLink(
                    url=url,
                    title=ref.title,
                    origin=ref.origin,
                    claims=list(ref.claims),
                    stance=ref.stance,
                    why=ref.why,
                    score=ref.score,
                    published_at=ref.published_at,
                )
    return list(merged.values())


@dataclass
class ResolvedContent:
    """Output of the Fetch Resolver"""
    kind: ResolvedKind
    url: str
    body: str = ""
    retracted: bool = False

    # Which stage produced the body: live_dom, direct, headless, archive, pdf
    stage: Optional[str] = None
    media_kind: MediaKind = MediaKind.WEB

    # PDF extras
    pdf_title: Optional[str] = None
    pdf_author: Optional[str] = None
    thumbnail: Optional[bytes] = None

    @property
    def usable(self) -> bool:
        return self.kind in (ResolvedKind.HTML, ResolvedKind.PDF)

    @property
    def is_placeholder(self) -> bool:
        return self.kind == ResolvedKind.PLACEHOLDER


@dataclass
class ExtractedContent:
    """Output of the Content Extractor"""
    text: str
    title: str
    authors: List[AuthorName] = field(default_factory=list)
    publisher: str = UNKNOWN_PUBLISHER
    image: Optional[str] = None
    references: List[ReferenceLink] = field(default_factory=list)
    testimonial_hints: List[Dict] = field(default_factory=list)
    published_at: Optional[datetime] = None
    language: Optional[str] = None
    media_kind: MediaKind = MediaKind.WEB


@dataclass
class ContentRecord:
    """
    One ingested document (task or reference) with extracted metadata.

    Immutable after creation except for thumbnail, which may be back-filled.
    """
    url: str
    kind: ContentKind
    name: str
    text: str = ""
    media_kind: MediaKind = MediaKind.WEB
    topic: Optional[str] = None
    subtopics: List[str] = field(default_factory=list)
    thumbnail: Optional[str] = None
    is_retracted: bool = False
    authors: List[AuthorName] = field(default_factory=list)
    publisher: str = UNKNOWN_PUBLISHER
    references: List[ReferenceLink] = field(default_factory=list)

    claims: List[str] = field(default_factory=list)
    testimonials: List[Dict] = field(default_factory=list)
    language: Optional[str] = None
    published_at: Optional[datetime] = None
    is_placeholder: bool = False

    # Raw thumbnail bytes (PDF first page) awaiting upload by the gateway
    thumbnail_bytes: Optional[bytes] = field(default=None, repr=False)

    @property
    def word_count(self) -> int:
        return len(self.text.split()) if self.text else 0
