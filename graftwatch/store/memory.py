"""
In-process document store

Keeps every collection in a dict and pushes live query results on the event
loop. Several engines sharing one instance behave like several clients
sharing one backend, which is how the tests exercise concurrent voters.
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from graftwatch.core.exceptions import NotFoundError, TransientStoreError
from graftwatch.store.base import (
    DocumentSnapshot,
    DocumentStore,
    Query,
    deep_merge,
    resolve_transforms,
    utcnow,
)

logger = logging.getLogger(__name__)


class TickingClock:
    """Deterministic store clock advancing a fixed step on every reading."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


@dataclass
class WriteAttempt:
    """Description of a write handed to failure predicates."""
    op: str
    collection: str
    doc_id: str
    data: Dict[str, Any]


@dataclass
class _FailureRule:
    predicate: Callable[[WriteAttempt], bool]
    remaining: int
    error: Exception


class MemoryDocumentStore(DocumentStore):
    """
    Dict-backed DocumentStore.

    Args:
        clock: Callable returning the server time stamped on writes
        yield_on_write: Suspend once before each write so concurrent tasks
            interleave the way independent network calls do
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        yield_on_write: bool = True
    ):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._clock = clock or utcnow
        self._yield_on_write = yield_on_write
        self._failures: List[_FailureRule] = []
        self.write_count = 0

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------

    def fail_when(
        self,
        predicate: Callable[[WriteAttempt], bool],
        times: int = 1,
        error: Optional[Exception] = None
    ) -> None:
        """Make the next ``times`` writes matching ``predicate`` fail."""
        self._failures.append(_FailureRule(
            predicate=predicate,
            remaining=times,
            error=error or TransientStoreError("Simulated network failure"),
        ))

    def _check_failures(self, attempt: WriteAttempt) -> None:
        for rule in self._failures:
            if rule.remaining > 0 and rule.predicate(attempt):
                rule.remaining -= 1
                logger.debug(f"Injected failure for {attempt.op} {attempt.collection}/{attempt.doc_id}")
                raise rule.error
        self._failures = [r for r in self._failures if r.remaining > 0]

    async def _before_write(self, attempt: WriteAttempt) -> None:
        if self._yield_on_write:
            await asyncio.sleep(0)
        self._check_failures(attempt)
        self.write_count += 1

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    # -------------------------------------------------------------------------
    # DocumentStore API
    # -------------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        data = self._docs(collection).get(doc_id)
        if data is None:
            return None
        return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> None:
        await self._before_write(WriteAttempt("set", collection, doc_id, data))
        docs = self._docs(collection)
        before = copy.deepcopy(docs.get(doc_id))

        resolved = resolve_transforms(data, {}, self._clock())
        if merge and before is not None:
            after = deep_merge(copy.deepcopy(before), resolved)
        else:
            after = resolved
        docs[doc_id] = after

        await self._publish(collection, doc_id, before, after)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        await self.set(collection, doc_id, data)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await self._before_write(WriteAttempt("update", collection, doc_id, fields))
        docs = self._docs(collection)
        if doc_id not in docs:
            raise NotFoundError(f"No document to update: {collection}/{doc_id}")
        before = copy.deepcopy(docs[doc_id])

        after = resolve_transforms(fields, copy.deepcopy(before), self._clock())
        docs[doc_id] = after

        await self._publish(collection, doc_id, before, after)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._before_write(WriteAttempt("delete", collection, doc_id, {}))
        before = self._docs(collection).pop(doc_id, None)
        if before is not None:
            await self._publish(collection, doc_id, before, None)

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        documents = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._docs(query.collection).items()
        ]
        return query.apply(documents)

    def count(self, collection: str) -> int:
        return len(self._docs(collection))
