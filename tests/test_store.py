"""
Tests for the document store implementations
"""
import asyncio
import importlib.util
import pytest
from pathlib import Path
from datetime import datetime, timezone

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

import sys
sys.path.insert(0, '.')

from graftwatch.core.exceptions import NotFoundError, TransientStoreError
from graftwatch.database.connection import DatabaseConnection
from graftwatch.store.base import SERVER_TIMESTAMP, Increment, Query, resolve_transforms
from graftwatch.store.memory import MemoryDocumentStore, TickingClock
from graftwatch.store.sql import SqlDocumentStore, decode_value, encode_value


def memory_store():
    return MemoryDocumentStore(clock=TickingClock())


def sql_store(database_url="sqlite://"):
    return SqlDocumentStore(DatabaseConnection(database_url=database_url))


@pytest.fixture(params=["memory", "sql-memory", "sql-file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        store = memory_store()
    elif request.param == "sql-memory":
        store = sql_store()
    else:
        store = sql_store(f"sqlite:///{tmp_path / 'documents.db'}")
    yield store
    asyncio.run(store.close())


class TestResolveTransforms:
    """Test suite for field transforms."""

    def test_increment_missing_field_starts_at_zero(self):
        """Test incrementing an absent counter."""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = resolve_transforms({"votes.true": Increment(1)}, {}, now)

        assert result == {"votes": {"true": 1}}

    def test_server_timestamp_resolved(self):
        """Test the timestamp sentinel takes the store time."""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = resolve_transforms({"createdAt": SERVER_TIMESTAMP}, {}, now)

        assert result["createdAt"] == now

    def test_dotted_path_keeps_siblings(self):
        """Test updating one nested field leaves the others."""
        base = {"location": {"lat": 1.0, "lng": 2.0, "address": ""}}
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = resolve_transforms({"location.address": "Dhaka"}, base, now)

        assert result["location"] == {"lat": 1.0, "lng": 2.0, "address": "Dhaka"}

    def test_map_value_replaces_map(self):
        """Test a whole-map value overwrites the stored map."""
        base = {"votes": {"true": 5, "suspicious": 1}}
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = resolve_transforms({"votes": {"true": 0}}, base, now)

        assert result["votes"] == {"true": 0}


class TestDocumentStore:
    """Test suite run against every store implementation."""

    def test_set_and_get(self, any_store):
        """Test writing and reading a document."""
        asyncio.run(any_store.set("reports", "r1", {"status": "pending", "createdAt": SERVER_TIMESTAMP}))
        snapshot = asyncio.run(any_store.get("reports", "r1"))

        assert snapshot.id == "r1"
        assert snapshot.data["status"] == "pending"
        assert isinstance(snapshot.data["createdAt"], datetime)

    def test_get_missing(self, any_store):
        """Test reading an absent document."""
        assert asyncio.run(any_store.get("reports", "nope")) is None

    def test_add_assigns_id(self, any_store):
        """Test store-assigned ids."""
        doc_id = asyncio.run(any_store.add("comments", {"text": "hello"}))

        assert doc_id
        assert asyncio.run(any_store.get("comments", doc_id)).data == {"text": "hello"}

    def test_merge_set(self, any_store):
        """Test set with merge keeps untouched fields."""
        asyncio.run(any_store.set("users", "u1", {"email": "a@example.com", "role": "user"}))
        asyncio.run(any_store.set("users", "u1", {"role": "admin"}, merge=True))

        assert asyncio.run(any_store.get("users", "u1")).data == {"email": "a@example.com", "role": "admin"}

    def test_increment(self, any_store):
        """Test the atomic counter."""
        asyncio.run(any_store.set("reports", "r1", {"votes": {"true": 2}}))
        asyncio.run(any_store.increment("reports", "r1", "votes.true", 1))
        asyncio.run(any_store.increment("reports", "r1", "votes.suspicious", 1))
        asyncio.run(any_store.increment("reports", "r1", "votes.true", -1))

        assert asyncio.run(any_store.get("reports", "r1")).data["votes"] == {"true": 2, "suspicious": 1}

    def test_concurrent_increments_are_not_lost(self, any_store):
        """Test simultaneous increments on one counter all land."""
        async def scenario():
            await any_store.set("reports", "r1", {"votes": {"true": 0}})
            await asyncio.gather(*(
                any_store.increment("reports", "r1", "votes.true", 1) for _ in range(25)
            ))
            return await any_store.get("reports", "r1")

        assert asyncio.run(scenario()).data["votes"]["true"] == 25

    def test_update_missing_document(self, any_store):
        """Test updates need an existing document."""
        with pytest.raises(NotFoundError):
            asyncio.run(any_store.update("reports", "ghost", {"status": "approved"}))

    def test_delete_is_idempotent(self, any_store):
        """Test deleting twice."""
        asyncio.run(any_store.set("votes", "v1", {"type": "true"}))
        asyncio.run(any_store.delete("votes", "v1"))
        asyncio.run(any_store.delete("votes", "v1"))

        assert asyncio.run(any_store.get("votes", "v1")) is None

    def test_query_filters_and_orders(self, any_store):
        """Test equality filters with descending order."""
        async def scenario():
            await any_store.set("reports", "a", {"userId": "u1", "createdAt": 1})
            await any_store.set("reports", "b", {"userId": "u2", "createdAt": 2})
            await any_store.set("reports", "c", {"userId": "u1", "createdAt": 3})
            return await any_store.query(
                Query("reports").where("userId", "u1").order("createdAt", descending=True)
            )

        result = asyncio.run(scenario())

        assert [doc.id for doc in result] == ["c", "a"]

    def test_subscription_pushes_full_result_set(self, any_store):
        """Test live queries receive the initial set and later changes."""
        pushes = []

        async def scenario():
            await any_store.set("reports", "a", {"status": "approved"})
            await any_store.subscribe(
                Query("reports").where("status", "approved"),
                lambda docs: pushes.append(sorted(d.id for d in docs)),
            )
            await any_store.set("reports", "b", {"status": "approved"})
            await any_store.set("reports", "c", {"status": "pending"})
            await any_store.update("reports", "a", {"status": "rejected"})

        asyncio.run(scenario())

        assert pushes == [["a"], ["a", "b"], ["b"]]

    def test_document_subscription(self, any_store):
        """Test a single-document live query sees deletion."""
        pushes = []

        async def scenario():
            await any_store.set("reports", "a", {"status": "approved"})
            await any_store.set("reports", "b", {"status": "approved"})
            await any_store.subscribe(Query.document("reports", "a"), lambda docs: pushes.append(len(docs)))
            await any_store.update("reports", "b", {"status": "pending"})
            await any_store.delete("reports", "a")

        asyncio.run(scenario())

        assert pushes == [1, 0]

    def test_closed_subscription_gets_nothing(self, any_store):
        """Test pushes stop after close."""
        pushes = []

        async def scenario():
            subscription = await any_store.subscribe(Query("reports"), pushes.append)
            subscription.close()
            await any_store.set("reports", "a", {"status": "approved"})

        asyncio.run(scenario())

        assert len(pushes) == 1


class TestMemoryStoreFaults:
    """Test suite for injected failures."""

    def test_failure_injected_once(self):
        """Test a failure rule fires the requested number of times."""
        store = memory_store()
        store.fail_when(lambda attempt: attempt.collection == "votes", times=1)

        with pytest.raises(TransientStoreError):
            asyncio.run(store.set("votes", "v1", {"type": "true"}))
        asyncio.run(store.set("votes", "v1", {"type": "true"}))

        assert store.count("votes") == 1


class TestSqlStore:
    """Test suite for SQL specifics."""

    def test_timestamp_encoding(self):
        """Test datetimes survive the JSON column."""
        value = {"createdAt": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc), "tags": ["a"]}

        assert decode_value(encode_value(value)) == value

    def test_writers_on_separate_connections_serialize(self, tmp_path):
        """Test increments from two engines on one SQLite file all land."""
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        first = sql_store(url)
        second = sql_store(url)

        async def scenario():
            await first.set("reports", "r1", {"votes": {"true": 0}})
            await asyncio.gather(*(
                (first if i % 2 else second).increment("reports", "r1", "votes.true", 1)
                for i in range(20)
            ))
            snapshot = await first.get("reports", "r1")
            await first.close()
            await second.close()
            return snapshot

        assert asyncio.run(scenario()).data["votes"]["true"] == 20

    def test_refresh_picks_up_other_writers(self):
        """Test polling pushes writes made by another store instance."""
        database = DatabaseConnection(database_url="sqlite://")
        reader = SqlDocumentStore(database)
        writer = SqlDocumentStore(database)
        pushes = []

        async def scenario():
            await reader.subscribe(Query("reports"), lambda docs: pushes.append(len(docs)))
            await writer.set("reports", "a", {"status": "pending"})
            first = await reader.refresh()
            second = await reader.refresh()
            return first, second

        first, second = asyncio.run(scenario())

        assert (first, second) == (1, 0)
        assert pushes == [0, 1]


class TestInitialMigration:
    """Test suite for the alembic revision."""

    def load_migration(self):
        path = Path(__file__).parent.parent / "graftwatch" / "database" / "migrations" / "versions" / "001_initial.py"
        spec = importlib.util.spec_from_file_location("migration_001_initial", path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def test_upgrade_and_downgrade(self):
        """Test the revision creates and drops the documents table."""
        migration = self.load_migration()
        engine = create_engine("sqlite://")

        with engine.begin() as connection:
            context = MigrationContext.configure(connection)
            with Operations.context(context):
                migration.upgrade()
                assert "documents" in inspect(connection).get_table_names()
                migration.downgrade()
                assert "documents" not in inspect(connection).get_table_names()
