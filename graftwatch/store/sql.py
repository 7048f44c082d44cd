"""
SQL-backed document store

Persists documents through SQLAlchemy, one row per document. Every write is
one short transaction on one row (a row lock on server databases, an
immediate write transaction on SQLite). That gives the single-document
atomicity the engine relies on and nothing more. Blocking database calls run
in worker threads.

Live queries are refreshed after writes made through this instance. Writes
made by other processes are picked up by an optional poller that re-runs
active queries and pushes when their content hash changes.
"""

import asyncio
import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from graftwatch.core.exceptions import NotFoundError, TransientStoreError
from graftwatch.database.connection import DatabaseConnection
from graftwatch.database.models import DocumentRecord
from graftwatch.store.base import (
    DocumentSnapshot,
    DocumentStore,
    Query,
    deep_merge,
    resolve_transforms,
    snapshot_fingerprint,
    utcnow,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_KEY = "__timestamp__"


def encode_value(value: Any) -> Any:
    """Make document data JSON-safe (datetimes become tagged ISO strings)."""
    if isinstance(value, datetime):
        return {_TIMESTAMP_KEY: value.isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Inverse of :func:`encode_value`."""
    if isinstance(value, dict):
        if set(value.keys()) == {_TIMESTAMP_KEY}:
            return datetime.fromisoformat(value[_TIMESTAMP_KEY])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


class SqlDocumentStore(DocumentStore):
    """
    DocumentStore on top of a relational database.

    Args:
        database: Connection manager (tables are created if missing)
        poll_interval: Seconds between live-query refreshes; 0 disables polling
    """

    def __init__(
        self,
        database: Optional[DatabaseConnection] = None,
        poll_interval: float = 0.0
    ):
        super().__init__()
        self.db = database or DatabaseConnection()
        self.db.create_tables()
        self.poll_interval = poll_interval
        self._poll_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Blocking helpers (run in threads)
    # -------------------------------------------------------------------------

    def _load(self, session, collection: str, doc_id: str, lock: bool = False) -> Optional[DocumentRecord]:
        stmt = select(DocumentRecord).where(
            DocumentRecord.collection == collection,
            DocumentRecord.doc_id == doc_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def _get_sync(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            record = self._load(session, collection, doc_id)
            return decode_value(record.data) if record else None

    def _write_sync(
        self,
        op: str,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """Apply one write in its own transaction and return (before, after)."""
        with self.db.get_session() as session:
            record = self._load(session, collection, doc_id, lock=True)
            before = decode_value(record.data) if record else None
            now = utcnow()

            if op == "delete":
                if record is not None:
                    session.delete(record)
                return before, None

            if op == "update":
                if record is None:
                    raise NotFoundError(f"No document to update: {collection}/{doc_id}")
                after = resolve_transforms(data, copy.deepcopy(before), now)
            else:
                resolved = resolve_transforms(data, {}, now)
                if merge and before is not None:
                    after = deep_merge(copy.deepcopy(before), resolved)
                else:
                    after = resolved

            if record is None:
                session.add(DocumentRecord(
                    collection=collection,
                    doc_id=doc_id,
                    data=encode_value(after),
                ))
            else:
                record.data = encode_value(after)
            return before, after

    def _query_sync(self, query: Query) -> List[DocumentSnapshot]:
        with self.db.get_session() as session:
            records = session.execute(
                select(DocumentRecord).where(DocumentRecord.collection == query.collection)
            ).scalars().all()
            documents = [
                DocumentSnapshot(id=r.doc_id, data=decode_value(r.data))
                for r in records
            ]
        return query.apply(documents)

    async def _run(self, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Store operation {func.__name__} failed: {e}")
            raise TransientStoreError(f"Document store unavailable: {e}") from e

    # -------------------------------------------------------------------------
    # DocumentStore API
    # -------------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        data = await self._run(self._get_sync, collection, doc_id)
        if data is None:
            return None
        return DocumentSnapshot(id=doc_id, data=data)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> None:
        before, after = await self._run(self._write_sync, "set", collection, doc_id, data, merge)
        await self._publish(collection, doc_id, before, after)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self.set(collection, doc_id, data)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        before, after = await self._run(self._write_sync, "update", collection, doc_id, fields)
        await self._publish(collection, doc_id, before, after)

    async def delete(self, collection: str, doc_id: str) -> None:
        before, _ = await self._run(self._write_sync, "delete", collection, doc_id, {})
        if before is not None:
            await self._publish(collection, doc_id, before, None)

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        return await self._run(self._query_sync, query)

    # -------------------------------------------------------------------------
    # Cross-process refresh
    # -------------------------------------------------------------------------

    def start_polling(self) -> None:
        """Start the background refresher on the running loop."""
        if self.poll_interval <= 0 or self._poll_task is not None:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info(f"Polling live queries every {self.poll_interval}s")

    async def refresh(self) -> int:
        """
        Re-run every live query once and push the ones whose content changed.

        Returns:
            Number of subscriptions that received a push
        """
        pushed = 0
        for subscription in self.active_subscriptions():
            try:
                documents = await self.query(subscription.query)
            except TransientStoreError as e:
                subscription.fail(e)
                continue
            if snapshot_fingerprint(documents) != subscription.fingerprint:
                subscription.deliver(documents)
                pushed += 1
        return pushed

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.refresh()

    async def close(self) -> None:
        await super().close()
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        self.db.close()
