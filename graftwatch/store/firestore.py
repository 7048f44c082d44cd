"""
Cloud Firestore document store

Production backend. Firestore already provides everything the engine
relies on: single-document atomic writes, ``Increment`` and
``SERVER_TIMESTAMP`` transforms, dotted-path updates and live queries.
This adapter only translates sentinels and moves blocking SDK calls off the
event loop.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from graftwatch.core.config import settings
from graftwatch.core.exceptions import NotFoundError, TransientStoreError
from graftwatch.store.base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    Increment,
    Query,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


def get_firebase_app(
    credentials_path: Optional[str] = None,
    project_id: Optional[str] = None
) -> "firebase_admin.App":
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        path = credentials_path or settings.firebase_credentials_path
        cred = credentials.Certificate(path) if path else credentials.ApplicationDefault()
        project = project_id or settings.firebase_project_id
        app = firebase_admin.initialize_app(cred, {"projectId": project} if project else None)
        logger.info(f"Firebase app initialized for project {project or '(default)'}")
        return app


def to_firestore(value: Any) -> Any:
    """Replace store sentinels with their Firestore equivalents."""
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, Increment):
        return firestore.Increment(value.delta)
    if isinstance(value, dict):
        return {k: to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_firestore(v) for v in value]
    return value


def _snapshot(doc) -> DocumentSnapshot:
    return DocumentSnapshot(id=doc.id, data=doc.to_dict() or {})


class FirestoreDocumentStore(DocumentStore):
    """
    DocumentStore backed by Cloud Firestore.

    Args:
        client: Firestore client (built from the default Firebase app if None)
    """

    def __init__(self, client=None):
        super().__init__()
        if client is None:
            client = firestore.client(app=get_firebase_app())
        self.client = client
        self._watches: Dict[int, Any] = {}

    async def _run(self, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except google_exceptions.NotFound as e:
            raise NotFoundError(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Firestore call {getattr(func, '__name__', func)} failed: {e}")
            raise TransientStoreError(f"Firestore unavailable: {e}") from e

    def _ref(self, collection: str, doc_id: str):
        return self.client.collection(collection).document(doc_id)

    def _build_query(self, query: Query):
        ref = self.client.collection(query.collection)
        for path, value in query.filters:
            ref = ref.where(filter=FieldFilter(path, "==", value))
        if query.order_by:
            direction = firestore.Query.DESCENDING if query.descending else firestore.Query.ASCENDING
            ref = ref.order_by(query.order_by, direction=direction)
        return ref

    # -------------------------------------------------------------------------
    # DocumentStore API
    # -------------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        doc = await self._run(self._ref(collection, doc_id).get)
        return _snapshot(doc) if doc.exists else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> None:
        await self._run(self._ref(collection, doc_id).set, to_firestore(data), merge=merge)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        _, ref = await self._run(self.client.collection(collection).add, to_firestore(data))
        return ref.id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await self._run(self._ref(collection, doc_id).update, to_firestore(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._run(self._ref(collection, doc_id).delete)

    async def query(self, query: Query) -> List[DocumentSnapshot]:
        if query.doc_id is not None:
            snapshot = await self.get(query.collection, query.doc_id)
            return [snapshot] if snapshot and query.matches(snapshot.data, snapshot.id) else []
        docs = await self._run(lambda: list(self._build_query(query).stream()))
        return [_snapshot(doc) for doc in docs]

    async def subscribe(
        self,
        query: Query,
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None
    ) -> Subscription:
        """
        Open a Firestore listener.

        Listener callbacks arrive on an SDK thread and are handed to the
        event loop that opened the subscription.
        """
        loop = asyncio.get_running_loop()
        subscription = Subscription(
            query=query,
            callback=callback,
            on_error=on_error,
            _on_close=self._unwatch,
        )

        def on_snapshot(docs, changes, read_time):
            documents = query.apply([_snapshot(doc) for doc in docs if doc.exists])
            loop.call_soon_threadsafe(subscription.deliver, documents)

        if query.doc_id is not None:
            target = self._ref(query.collection, query.doc_id)
        else:
            target = self._build_query(query)

        try:
            watch = await asyncio.to_thread(target.on_snapshot, on_snapshot)
        except google_exceptions.GoogleAPICallError as e:
            raise TransientStoreError(f"Could not open listener: {e}") from e

        self._watches[id(subscription)] = watch
        self._subscriptions.setdefault(query.collection, []).append(subscription)
        logger.debug(f"Firestore listener opened for {query}")
        return subscription

    def _unwatch(self, subscription: Subscription) -> None:
        watch = self._watches.pop(id(subscription), None)
        if watch is not None:
            watch.unsubscribe()
        self._remove_subscription(subscription)
