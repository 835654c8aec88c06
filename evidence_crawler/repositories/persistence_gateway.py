"""
Persistence Gateway - storage interface consumed by the crawl controller

Every upsert is upsert-or-get: calling it twice with the same natural key
(URL, claim text, author key, publisher name) returns the same id, so
concurrent crawl runs can share a store.

Implementations raise PersistenceFailure for any storage error.
"""
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..models.claim import Stance
from ..models.content import AuthorName, ContentRecord


class PersistenceGateway(ABC):
    """Abstract store for content records, authors, publishers and claims"""

    @abstractmethod
    async def upsert_publisher(self, name: str) -> str:
        """Publisher id for name (created if missing)."""
        pass

    @abstractmethod
    async def upsert_author(self, name: AuthorName) -> str:
        """Author id keyed by the case-insensitive display name."""
        pass

    @abstractmethod
    async def upsert_content(self, record: ContentRecord, publisher_id: Optional[str] = None,
                             author_ids: Sequence[str] = ()) -> str:
        """
        Content id keyed by URL.

        An existing record is left as-is except for a missing thumbnail,
        which is back-filled.
        """
        pass

    @abstractmethod
    async def link_content_relation(self, parent_id: str, child_id: str, system_flag: bool = False) -> None:
        """Edge from a task to one of its references."""
        pass

    @abstractmethod
    async def upsert_claim(self, text: str) -> str:
        """Claim id keyed by normalized text."""
        pass

    @abstractmethod
    async def link_content_claim(self, content_id: str, claim_id: str, relationship_type: str) -> None:
        """relationship_type is 'task' or 'reference'."""
        pass

    @abstractmethod
    async def upsert_claim_link(self, source_claim_id: str, target_claim_id: str,
                                stance: Stance, support_level: float) -> None:
        """Directed stance edge between two claims; re-linking updates the stance."""
        pass
