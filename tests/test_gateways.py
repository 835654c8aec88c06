"""
Tests for the persistence gateways and stored-entity ids.
"""

from contextlib import asynccontextmanager

import asyncpg
import pytest

from evidence_crawler.exceptions import PersistenceFailure
from evidence_crawler.models.claim import Stance
from evidence_crawler.models.content import AuthorName, ContentKind, ContentRecord, UNKNOWN_PUBLISHER
from evidence_crawler.repositories import InMemoryPersistenceGateway, PostgresPersistenceGateway
from evidence_crawler.utils.id_generator import generate_id, validate_id, get_id_type


def record(url="https://example.com/a", thumbnail=None, kind=ContentKind.TASK):
    return ContentRecord(url=url, kind=kind, name="A", text="some text", thumbnail=thumbnail)


# =============================================================================
# IDs
# =============================================================================

def test_generated_ids_are_prefixed():
    content_id = generate_id("content")
    assert content_id.startswith("ct_")
    assert validate_id(content_id)
    assert get_id_type(content_id) == "content"
    assert get_id_type(generate_id("claim")) == "claim"


def test_invalid_ids():
    assert not validate_id("xx_12345678")
    assert not validate_id("ct_ABC")
    assert get_id_type(None) is None
    with pytest.raises(ValueError):
        generate_id("event")


# =============================================================================
# In-memory gateway
# =============================================================================

class TestInMemoryGateway:

    @pytest.mark.asyncio
    async def test_publisher_and_author_upserts_are_idempotent(self):
        gateway = InMemoryPersistenceGateway()

        assert await gateway.upsert_publisher("The  Daily Planet") == await gateway.upsert_publisher("The Daily Planet")
        assert await gateway.upsert_publisher("") == await gateway.upsert_publisher(UNKNOWN_PUBLISHER)

        first = await gateway.upsert_author(AuthorName(raw="Jane Doe", first="Jane", last="Doe"))
        again = await gateway.upsert_author(AuthorName(raw="JANE DOE", first="JANE", last="DOE"))
        assert first == again
        assert get_id_type(first) == "author"

    @pytest.mark.asyncio
    async def test_content_is_keyed_by_url_and_back_fills_thumbnail(self):
        gateway = InMemoryPersistenceGateway()

        content_id = await gateway.upsert_content(record(), author_ids=["au_1"])
        again = await gateway.upsert_content(
            record(thumbnail="https://cdn.example.com/a.jpg"), author_ids=["au_1", "au_2"]
        )

        assert content_id == again
        assert gateway.contents[content_id].thumbnail == "https://cdn.example.com/a.jpg"
        assert gateway.content_authors[content_id] == ["au_1", "au_2"]

        await gateway.upsert_content(record(thumbnail="https://cdn.example.com/other.jpg"))
        assert gateway.contents[content_id].thumbnail == "https://cdn.example.com/a.jpg"

    @pytest.mark.asyncio
    async def test_relation_flag_is_sticky(self):
        gateway = InMemoryPersistenceGateway()
        parent = await gateway.upsert_content(record())
        child = await gateway.upsert_content(record("https://example.com/b", kind=ContentKind.REFERENCE))

        await gateway.link_content_relation(parent, child)
        await gateway.link_content_relation(parent, child, system_flag=True)
        await gateway.link_content_relation(parent, child, system_flag=False)

        assert gateway.relations == {(parent, child): True}

    @pytest.mark.asyncio
    async def test_links_to_unknown_content_fail(self):
        gateway = InMemoryPersistenceGateway()
        with pytest.raises(PersistenceFailure):
            await gateway.link_content_relation("ct_missing0", "ct_missing1")
        with pytest.raises(PersistenceFailure):
            await gateway.link_content_claim("ct_missing0", "cl_missing0", "task")

    @pytest.mark.asyncio
    async def test_claims(self):
        gateway = InMemoryPersistenceGateway()

        claim_id = await gateway.upsert_claim("Sleep   improves memory.")
        assert claim_id == await gateway.upsert_claim("Sleep improves memory.")
        with pytest.raises(PersistenceFailure):
            await gateway.upsert_claim("   ")

        other = await gateway.upsert_claim("Naps help.")
        await gateway.upsert_claim_link(claim_id, other, Stance.SUPPORTS, 1.0)
        await gateway.upsert_claim_link(claim_id, other, Stance.REFUTES, -0.5)

        link = gateway.claim_links[(claim_id, other)]
        assert (link.stance, link.support_level) == (Stance.REFUTES, -0.5)


# =============================================================================
# PostgreSQL gateway (fake pool)
# =============================================================================

class FakeConnection:
    def __init__(self, fetchval_result=None, error=None):
        self.fetchval_result = fetchval_result
        self.error = error
        self.fetchval_calls = []
        self.execute_calls = []

    async def fetchval(self, query, *args):
        self.fetchval_calls.append((query, args))
        if self.error:
            raise self.error
        return self.fetchval_result

    async def execute(self, query, *args):
        self.execute_calls.append((query, args))
        if self.error:
            raise self.error

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:
    def __init__(self, conn=None, acquire_error=None):
        self.conn = conn or FakeConnection()
        self.acquire_error = acquire_error

    @asynccontextmanager
    async def acquire(self):
        if self.acquire_error:
            raise self.acquire_error
        yield self.conn


class TestPostgresGateway:

    @pytest.mark.asyncio
    async def test_upsert_returns_row_id(self):
        conn = FakeConnection(fetchval_result="pb_existing")
        gateway = PostgresPersistenceGateway(FakePool(conn))

        assert await gateway.upsert_publisher("  The Daily   Planet ") == "pb_existing"
        query, args = conn.fetchval_calls[0]
        assert "ON CONFLICT (name)" in query
        assert get_id_type(args[0]) == "publisher"
        assert args[1] == "The Daily Planet"

    @pytest.mark.asyncio
    async def test_content_and_authors_in_one_transaction(self):
        conn = FakeConnection(fetchval_result="ct_existing")
        gateway = PostgresPersistenceGateway(FakePool(conn))

        content_id = await gateway.upsert_content(record(), publisher_id="pb_1", author_ids=["au_1", "au_2"])

        assert content_id == "ct_existing"
        _, args = conn.fetchval_calls[0]
        assert args[1] == "https://example.com/a"
        assert args[2] == "task"
        assert args[-1] == "pb_1"
        assert [call[1] for call in conn.execute_calls] == [("ct_existing", "au_1", 0), ("ct_existing", "au_2", 1)]

    @pytest.mark.asyncio
    async def test_claim_link_stance_is_stored_as_text(self):
        conn = FakeConnection()
        gateway = PostgresPersistenceGateway(FakePool(conn))

        await gateway.upsert_claim_link("cl_a", "cl_b", Stance.REFUTES, -1)

        assert conn.execute_calls[0][1] == ("cl_a", "cl_b", "refutes", -1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        OSError("connection refused"),
        asyncpg.InterfaceError("pool is closed"),
    ])
    async def test_storage_errors_become_persistence_failures(self, error):
        gateway = PostgresPersistenceGateway(FakePool(acquire_error=error))

        with pytest.raises(PersistenceFailure):
            await gateway.upsert_claim("Sleep improves memory.")
        with pytest.raises(PersistenceFailure):
            await gateway.upsert_content(record())
        with pytest.raises(PersistenceFailure):
            await gateway.link_content_relation("ct_a", "ct_b")

    @pytest.mark.asyncio
    async def test_ensure_schema_runs_packaged_sql(self):
        conn = FakeConnection()
        await PostgresPersistenceGateway(FakePool(conn)).ensure_schema()

        sql = conn.execute_calls[0][0]
        assert "CREATE SCHEMA IF NOT EXISTS evidence" in sql
        assert "evidence.claim_links" in sql
