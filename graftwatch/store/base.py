"""
Document store contract for GraftWatch

The engine talks to a real-time document database through this interface:
named collections of JSON-like documents addressed by id, single-document
atomic writes, an atomic numeric increment and live query subscriptions that
push the full result set on every change.
"""

import copy
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced by the store clock when a write is applied."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Field transform adding ``delta`` to the stored number."""
    delta: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_seconds(value: Any) -> float:
    """Sort key for store timestamps; unset (pending) values sort as 0."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


# =============================================================================
# FIELD PATHS
# =============================================================================

def get_path(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path such as ``votes.true``."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted field path, creating intermediate maps."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``source`` into ``target`` recursively (set with merge=True)."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def resolve_transforms(
    fields: Dict[str, Any],
    base: Dict[str, Any],
    now: datetime
) -> Dict[str, Any]:
    """
    Apply SERVER_TIMESTAMP and Increment sentinels against ``base``.

    Keys may be dotted paths; the result is written back into ``base``
    (which the caller owns) and also returned.
    """
    for path, value in fields.items():
        if isinstance(value, Increment):
            current = get_path(base, path, 0)
            if not isinstance(current, (int, float)):
                current = 0
            new_value = current + value.delta
            if isinstance(new_value, float) and new_value.is_integer():
                new_value = int(new_value)
            set_path(base, path, new_value)
        elif value is SERVER_TIMESTAMP:
            set_path(base, path, now)
        elif isinstance(value, dict):
            # A map value replaces the stored map; sentinels inside still resolve
            set_path(base, path, resolve_transforms(value, {}, now))
        else:
            set_path(base, path, copy.deepcopy(value))
    return base


def snapshot_fingerprint(documents: List["DocumentSnapshot"], *extra: Any) -> str:
    """Content hash of a result set plus optional parameters."""
    payload = json.dumps(
        [[doc.id, doc.data] for doc in documents] + list(extra),
        sort_keys=True,
        default=str,
    )
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


# =============================================================================
# SNAPSHOTS AND QUERIES
# =============================================================================

@dataclass
class DocumentSnapshot:
    """Immutable-by-convention copy of one stored document."""
    id: str
    data: Dict[str, Any]

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.data, path, default)

    def to_dict(self) -> Dict[str, Any]:
        result = copy.deepcopy(self.data)
        result["id"] = self.id
        return result


@dataclass(frozen=True)
class Query:
    """
    Collection query: equality filters plus an optional single ordering.

    Stores do not guarantee pushed results respect ``order_by`` for every
    query shape, so views sort again after receipt.
    """
    collection: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    doc_id: Optional[str] = None

    @classmethod
    def document(cls, collection: str, doc_id: str) -> "Query":
        """Live query over a single document addressed by id."""
        return cls(collection, doc_id=doc_id)

    def where(self, field_path: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + ((field_path, value),))

    def order(self, field_path: str, descending: bool = False) -> "Query":
        return replace(self, order_by=field_path, descending=descending)

    def matches(self, data: Optional[Dict[str, Any]], doc_id: Optional[str] = None) -> bool:
        if data is None:
            return False
        if self.doc_id is not None and doc_id != self.doc_id:
            return False
        return all(get_path(data, path) == value for path, value in self.filters)

    def apply(self, documents: List[DocumentSnapshot]) -> List[DocumentSnapshot]:
        """Filter and order a candidate list of documents."""
        result = [doc for doc in documents if self.matches(doc.data, doc.id)]
        if self.order_by:
            result.sort(
                key=lambda d: _order_key(d.get(self.order_by)),
                reverse=self.descending,
            )
        return result


def _order_key(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, (datetime, int, float)):
        return (1, timestamp_seconds(value))
    return (2, str(value))


SnapshotCallback = Callable[[List[DocumentSnapshot]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class Subscription:
    """Handle for a live query. ``close()`` stops further pushes."""
    query: Query
    callback: SnapshotCallback
    on_error: Optional[ErrorCallback] = None
    active: bool = True
    fingerprint: Optional[str] = None
    _on_close: Optional[Callable[["Subscription"], None]] = field(default=None, repr=False)

    def deliver(self, documents: List[DocumentSnapshot]) -> None:
        if not self.active:
            return
        self.fingerprint = snapshot_fingerprint(documents)
        try:
            self.callback(documents)
        except Exception:
            logger.exception(f"Listener for {self.query.collection} raised")

    def fail(self, error: Exception) -> None:
        if self.active and self.on_error:
            self.on_error(error)

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_close:
            self._on_close(self)


# =============================================================================
# STORE INTERFACE
# =============================================================================

class DocumentStore(ABC):
    """
    Real-time document store.

    Every method is a single network round trip and touches at most one
    document; nothing spans documents atomically.
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Fetch one document, or None if it does not exist."""

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> None:
        """Create or overwrite (or merge into) a document."""

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Update fields (dotted paths allowed) of an existing document."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    @abstractmethod
    async def query(self, query: Query) -> List[DocumentSnapshot]:
        """One-shot query."""

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field_path: str,
        delta: float = 1
    ) -> None:
        """Atomically add ``delta`` to a numeric field of one document."""
        await self.update(collection, doc_id, {field_path: Increment(delta)})

    async def subscribe(
        self,
        query: Query,
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        """
        Open a live query.

        The callback receives the current result set immediately and again
        after every change to a document that matches (or used to match).
        """
        subscription = Subscription(
            query=query,
            callback=callback,
            on_error=on_error,
            _on_close=self._remove_subscription,
        )
        documents = await self.query(query)
        self._subscriptions.setdefault(query.collection, []).append(subscription)
        subscription.deliver(documents)
        logger.debug(f"Subscribed to {query}")
        return subscription

    def active_subscriptions(self) -> List[Subscription]:
        return [s for subs in self._subscriptions.values() for s in subs if s.active]

    def _remove_subscription(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.query.collection, [])
        if subscription in subs:
            subs.remove(subscription)

    async def _publish(
        self,
        collection: str,
        doc_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]]
    ) -> None:
        """Push fresh result sets to every live query the change touched."""
        for subscription in list(self._subscriptions.get(collection, [])):
            if not subscription.active:
                continue
            query = subscription.query
            if not (query.matches(before, doc_id) or query.matches(after, doc_id)):
                continue
            try:
                documents = await self.query(subscription.query)
            except Exception as e:
                logger.warning(f"Refreshing {subscription.query} failed: {e}")
                subscription.fail(e)
                continue
            subscription.deliver(documents)

    async def close(self) -> None:
        for subscription in self.active_subscriptions():
            subscription.close()
