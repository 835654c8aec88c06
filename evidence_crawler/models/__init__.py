"""
Domain Models - Storage-agnostic data structures

Pipeline stages operate on these dataclasses; the Persistence Gateway maps
them onto storage.
"""

from .content import (
    UNKNOWN_PUBLISHER,
    ContentKind,
    MediaKind,
    ResolvedKind,
    ReferenceOrigin,
    AuthorName,
    ReferenceLink,
    ResolvedContent,
    ExtractedContent,
    ContentRecord,
    merge_references,
)
from .claim import (
    Stance,
    Claim,
    ClaimLink,
    TopicAnalysis,
    coerce_stance,
    compute_support_level,
    normalize_claim_text,
)
from .crawl import CrawlContext, CrawlState

__all__ = [
    # Content
    'UNKNOWN_PUBLISHER',
    'ContentKind',
    'MediaKind',
    'ResolvedKind',
    'ReferenceOrigin',
    'AuthorName',
    'ReferenceLink',
    'ResolvedContent',
    'ExtractedContent',
    'ContentRecord',
    'merge_references',

    # Claims
    'Stance',
    'Claim',
    'ClaimLink',
    'TopicAnalysis',
    'coerce_stance',
    'compute_support_level',
    'normalize_claim_text',

    # Crawl
    'CrawlContext',
    'CrawlState',
]
