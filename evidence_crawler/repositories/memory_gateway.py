"""
In-memory Persistence Gateway

Used for --dry-run crawls and in tests. Same upsert-or-get semantics as the
PostgreSQL adapter, keyed by the same natural keys.
"""
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..exceptions import PersistenceFailure
from ..models.claim import Stance, ClaimLink, normalize_claim_text
from ..models.content import AuthorName, ContentRecord, UNKNOWN_PUBLISHER
from ..utils.id_generator import generate_id
from .persistence_gateway import PersistenceGateway


class InMemoryPersistenceGateway(PersistenceGateway):
    def __init__(self):
        self.publishers: Dict[str, str] = {}
        self.authors: Dict[str, str] = {}
        self.contents: Dict[str, ContentRecord] = {}
        self.content_ids: Dict[str, str] = {}
        self.content_authors: Dict[str, List[str]] = {}
        self.content_publishers: Dict[str, Optional[str]] = {}
        self.relations: Dict[Tuple[str, str], bool] = {}
        self.claims: Dict[str, str] = {}
        self.content_claims: Dict[Tuple[str, str], str] = {}
        self.claim_links: Dict[Tuple[str, str], ClaimLink] = {}

    async def upsert_publisher(self, name: str) -> str:
        name = ' '.join((name or '').split()) or UNKNOWN_PUBLISHER
        if name not in self.publishers:
            self.publishers[name] = generate_id('publisher')
        return self.publishers[name]

    async def upsert_author(self, name: AuthorName) -> str:
        if name.key not in self.authors:
            self.authors[name.key] = generate_id('author')
        return self.authors[name.key]

    async def upsert_content(self, record: ContentRecord, publisher_id: Optional[str] = None,
                             author_ids: Sequence[str] = ()) -> str:
        content_id = self.content_ids.get(record.url)
        if content_id is None:
            content_id = generate_id('content')
            self.content_ids[record.url] = content_id
            self.contents[content_id] = record
            self.content_publishers[content_id] = publisher_id
        elif not self.contents[content_id].thumbnail and record.thumbnail:
            self.contents[content_id] = replace(self.contents[content_id], thumbnail=record.thumbnail)

        linked = self.content_authors.setdefault(content_id, [])
        linked.extend(a for a in author_ids if a not in linked)
        return content_id

    async def link_content_relation(self, parent_id: str, child_id: str, system_flag: bool = False) -> None:
        self._require_content(parent_id, child_id)
        key = (parent_id, child_id)
        self.relations[key] = self.relations.get(key, False) or system_flag

    async def upsert_claim(self, text: str) -> str:
        text = normalize_claim_text(text)
        if not text:
            raise PersistenceFailure("upsert_claim called with empty text")
        if text not in self.claims:
            self.claims[text] = generate_id('claim')
        return self.claims[text]

    async def link_content_claim(self, content_id: str, claim_id: str, relationship_type: str) -> None:
        self._require_content(content_id)
        self.content_claims.setdefault((content_id, claim_id), relationship_type)

    async def upsert_claim_link(self, source_claim_id: str, target_claim_id: str,
                                stance: Stance, support_level: float) -> None:
        self.claim_links[(source_claim_id, target_claim_id)] = ClaimLink(
            source_claim_id=source_claim_id,
            target_claim_id=target_claim_id,
            stance=stance,
            support_level=support_level,
        )

    def record_for(self, url: str) -> Optional[ContentRecord]:
        content_id = self.content_ids.get(url)
        return self.contents.get(content_id) if content_id else None

    def _require_content(self, *content_ids: str):
        for content_id in content_ids:
            if content_id not in self.contents:
                raise PersistenceFailure(f"Unknown content id {content_id}")
