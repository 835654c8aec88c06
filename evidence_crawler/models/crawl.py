"""
Crawl run state
"""
import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Set


class CrawlState(str, Enum):
    START = "start"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    EXTRACTING_CLAIMS = "extracting_claims"
    MAPPING_EVIDENCE = "mapping_evidence"
    PERSISTING = "persisting"
    RECURSING = "recursing"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CrawlContext:
    """
    Per-run crawl state, passed by reference through every recursive call.

    visited and cancelled are shared by all descendants of one run; depth is
    per-branch (child() returns a copy one level deeper).
    """
    visited: Set[str] = field(default_factory=set)
    depth: int = 0
    max_depth: int = 2
    task_content_id: Optional[str] = None
    cancelled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def can_recurse(self) -> bool:
        return self.depth < self.max_depth

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def cancel(self):
        self.cancelled.set()

    def child(self) -> 'CrawlContext':
        # replace() shares the visited set and the cancellation event
        return replace(self, depth=self.depth + 1)
