"""
PostgreSQL Persistence Gateway (asyncpg)

Upsert-or-get via INSERT ... ON CONFLICT ... RETURNING id. The DO UPDATE
branch is a no-op touch (or a thumbnail back-fill for contents) so RETURNING
yields the existing row's id.

ID format: ct_/cl_/au_/pb_ + 8 base36 chars (see utils.id_generator)
"""
import json
import logging
from importlib import resources
from typing import Optional, Sequence

import asyncpg

from ..exceptions import PersistenceFailure
from ..models.claim import Stance, normalize_claim_text, coerce_stance
from ..models.content import AuthorName, ContentRecord, UNKNOWN_PUBLISHER
from ..utils.id_generator import generate_id
from .persistence_gateway import PersistenceGateway

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgresPersistenceGateway(PersistenceGateway):
    """PersistenceGateway backed by the evidence.* tables in schema.sql"""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def ensure_schema(self) -> None:
        """Create tables if missing (idempotent)"""
        sql = resources.files(__package__).joinpath('schema.sql').read_text(encoding='utf-8')
        await self._execute('ensure_schema', sql)
        logger.info("🗄️ Evidence schema ready")

    async def _fetch_id(self, operation: str, query: str, *args) -> str:
        try:
            async with self.db_pool.acquire() as conn:
                return await conn.fetchval(query, *args)
        except STORAGE_ERRORS as e:
            raise PersistenceFailure(f"{operation} failed: {e}") from e

    async def _execute(self, operation: str, query: str, *args) -> None:
        try:
            async with self.db_pool.acquire() as conn:
                await conn.execute(query, *args)
        except STORAGE_ERRORS as e:
            raise PersistenceFailure(f"{operation} failed: {e}") from e

    # =========================================================================
    # PUBLISHERS / AUTHORS
    # =========================================================================

    async def upsert_publisher(self, name: str) -> str:
        name = ' '.join((name or '').split()) or UNKNOWN_PUBLISHER
        return await self._fetch_id('upsert_publisher', """
            INSERT INTO evidence.publishers (id, name)
            VALUES ($1, $2)
            ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
        """, generate_id('publisher'), name)

    async def upsert_author(self, name: AuthorName) -> str:
        return await self._fetch_id('upsert_author', """
            INSERT INTO evidence.authors (
                id, name_key, raw_name, title, first_name, middle_name, last_name, suffix, is_person
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (name_key) DO UPDATE SET name_key = EXCLUDED.name_key
            RETURNING id
        """, generate_id('author'), name.key, name.raw, name.title or None, name.first or None,
            name.middle or None, name.last or None, name.suffix or None, name.is_person)

    # =========================================================================
    # CONTENT
    # =========================================================================

    async def upsert_content(self, record: ContentRecord, publisher_id: Optional[str] = None,
                             author_ids: Sequence[str] = ()) -> str:
        try:
            async with self.db_pool.acquire() as conn:
                async with conn.transaction():
                    content_id = await conn.fetchval("""
                        INSERT INTO evidence.contents (
                            id, url, kind, name, content_text, media_kind, topic, subtopics,
                            thumbnail_url, thumbnail_data, is_retracted, is_placeholder,
                            language, pub_time, word_count, testimonials, publisher_id
                        )
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
                        ON CONFLICT (url) DO UPDATE SET
                            thumbnail_url = COALESCE(evidence.contents.thumbnail_url, EXCLUDED.thumbnail_url),
                            thumbnail_data = COALESCE(evidence.contents.thumbnail_data, EXCLUDED.thumbnail_data),
                            updated_at = NOW()
                        RETURNING id
                    """,
                        generate_id('content'),
                        record.url,
                        record.kind.value,
                        record.name,
                        record.text or None,
                        record.media_kind.value,
                        record.topic,
                        list(record.subtopics),
                        record.thumbnail,
                        record.thumbnail_bytes,
                        record.is_retracted,
                        record.is_placeholder,
                        record.language,
                        record.published_at,
                        record.word_count,
                        json.dumps(record.testimonials),
                        publisher_id,
                    )

                    for position, author_id in enumerate(author_ids):
                        await conn.execute("""
                            INSERT INTO evidence.content_authors (content_id, author_id, position)
                            VALUES ($1, $2, $3)
                            ON CONFLICT (content_id, author_id) DO NOTHING
                        """, content_id, author_id, position)
        except STORAGE_ERRORS as e:
            raise PersistenceFailure(f"upsert_content failed for {record.url}: {e}") from e

        logger.debug(f"💾 Content {content_id} ← {record.url}")
        return content_id

    async def link_content_relation(self, parent_id: str, child_id: str, system_flag: bool = False) -> None:
        await self._execute('link_content_relation', """
            INSERT INTO evidence.content_relations (parent_id, child_id, system_flag)
            VALUES ($1, $2, $3)
            ON CONFLICT (parent_id, child_id) DO UPDATE SET
                system_flag = evidence.content_relations.system_flag OR EXCLUDED.system_flag
        """, parent_id, child_id, system_flag)

    # =========================================================================
    # CLAIMS
    # =========================================================================

    async def upsert_claim(self, text: str) -> str:
        text = normalize_claim_text(text)
        if not text:
            raise PersistenceFailure("upsert_claim called with empty text")
        return await self._fetch_id('upsert_claim', """
            INSERT INTO evidence.claims (id, text)
            VALUES ($1, $2)
            ON CONFLICT (text) DO UPDATE SET text = EXCLUDED.text
            RETURNING id
        """, generate_id('claim'), text)

    async def link_content_claim(self, content_id: str, claim_id: str, relationship_type: str) -> None:
        await self._execute('link_content_claim', """
            INSERT INTO evidence.content_claims (content_id, claim_id, relationship_type)
            VALUES ($1, $2, $3)
            ON CONFLICT (content_id, claim_id) DO NOTHING
        """, content_id, claim_id, relationship_type)

    async def upsert_claim_link(self, source_claim_id: str, target_claim_id: str,
                                stance: Stance, support_level: float) -> None:
        await self._execute('upsert_claim_link', """
            INSERT INTO evidence.claim_links (source_claim_id, target_claim_id, stance, support_level)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (source_claim_id, target_claim_id) DO UPDATE SET
                stance = EXCLUDED.stance,
                support_level = EXCLUDED.support_level,
                updated_at = NOW()
        """, source_claim_id, target_claim_id, coerce_stance(stance).value, float(support_level))
