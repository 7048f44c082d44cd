"""
Tests for the Firestore store and Firebase identity provider
"""
import asyncio
import pytest
from unittest.mock import patch, MagicMock

import sys
sys.path.insert(0, '.')

from firebase_admin import auth, firestore
from google.api_core import exceptions as google_exceptions

from graftwatch.auth.firebase import FirebaseIdentityProvider
from graftwatch.auth.identity import UserRole
from graftwatch.core.exceptions import NotFoundError, PermissionDeniedError, TransientStoreError
from graftwatch.store.base import SERVER_TIMESTAMP, Increment, Query
from graftwatch.store.firestore import FirestoreDocumentStore, to_firestore
from graftwatch.store.memory import MemoryDocumentStore


def firestore_doc(doc_id, data, exists=True):
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = exists
    doc.to_dict.return_value = data
    return doc


class TestSentinelTranslation:
    """Test suite for store sentinel conversion."""

    def test_server_timestamp(self):
        """Test the timestamp sentinel maps to Firestore's."""
        result = to_firestore({"createdAt": SERVER_TIMESTAMP})

        assert result["createdAt"] is firestore.SERVER_TIMESTAMP

    def test_increment(self):
        """Test counters map to Firestore increments."""
        result = to_firestore({"votes.true": Increment(-1)})

        assert isinstance(result["votes.true"], firestore.Increment)
        assert result["votes.true"].value == -1

    def test_plain_values_untouched(self):
        """Test nested plain values pass through."""
        data = {"location": {"lat": 1.0, "lng": 2.0}, "links": ["https://example.com"]}

        assert to_firestore(data) == data


class TestFirestoreDocumentStore:
    """Test suite for the Firestore adapter."""

    def setup_method(self):
        """Setup test fixtures."""
        self.client = MagicMock()
        self.doc_ref = self.client.collection.return_value.document.return_value
        self.store = FirestoreDocumentStore(client=self.client)

    def test_get_existing(self):
        """Test reading a document."""
        self.doc_ref.get.return_value = firestore_doc("r1", {"status": "approved"})

        snapshot = asyncio.run(self.store.get("reports", "r1"))

        assert snapshot.id == "r1"
        assert snapshot.data == {"status": "approved"}
        self.client.collection.assert_called_with("reports")

    def test_get_missing(self):
        """Test an absent document reads as None."""
        self.doc_ref.get.return_value = firestore_doc("r1", None, exists=False)

        assert asyncio.run(self.store.get("reports", "r1")) is None

    def test_increment_uses_native_transform(self):
        """Test counters are written with Firestore increments."""
        asyncio.run(self.store.increment("reports", "r1", "votes.true", 1))

        fields = self.doc_ref.update.call_args[0][0]
        assert isinstance(fields["votes.true"], firestore.Increment)

    def test_update_missing_document(self):
        """Test Firestore's NotFound becomes NotFoundError."""
        self.doc_ref.update.side_effect = google_exceptions.NotFound("No document to update")

        with pytest.raises(NotFoundError):
            asyncio.run(self.store.update("reports", "ghost", {"status": "approved"}))

    def test_unavailable_is_transient(self):
        """Test service outages become TransientStoreError."""
        self.doc_ref.set.side_effect = google_exceptions.ServiceUnavailable("try again")

        with pytest.raises(TransientStoreError):
            asyncio.run(self.store.set("votes", "r1_u1", {"type": "true"}))

    def test_add_returns_id(self):
        """Test store-assigned ids come from the new reference."""
        new_ref = MagicMock()
        new_ref.id = "c42"
        self.client.collection.return_value.add.return_value = (None, new_ref)

        assert asyncio.run(self.store.add("comments", {"text": "hi"})) == "c42"

    def test_subscription_delivers_on_loop(self):
        """Test listener callbacks reach the subscriber in filter order."""
        collection = self.client.collection.return_value
        query_ref = collection.where.return_value
        pushes = []

        async def scenario():
            await self.store.subscribe(
                Query("reports").where("status", "approved"),
                lambda docs: pushes.append([d.id for d in docs]),
            )
            on_snapshot = query_ref.on_snapshot.call_args[0][0]
            on_snapshot([
                firestore_doc("a", {"status": "approved"}),
                firestore_doc("b", {"status": "pending"}),
            ], [], None)
            await asyncio.sleep(0)

        asyncio.run(scenario())

        assert pushes == [["a"]]

    def test_close_unsubscribes_watch(self):
        """Test closing a subscription stops the Firestore listener."""
        watch = MagicMock()
        self.doc_ref.on_snapshot.return_value = watch

        async def scenario():
            subscription = await self.store.subscribe(Query.document("reports", "r1"), lambda docs: None)
            subscription.close()

        asyncio.run(scenario())

        watch.unsubscribe.assert_called_once()
        assert self.store.active_subscriptions() == []


class TestFirebaseIdentityProvider:
    """Test suite for ID token sign-in."""

    def setup_method(self):
        """Setup test fixtures."""
        self.store = MemoryDocumentStore()
        asyncio.run(self.store.set("users", "admin", {"uid": "admin", "role": "admin"}))
        self.provider = FirebaseIdentityProvider(self.store, app=MagicMock())

    @patch('graftwatch.auth.firebase.auth.verify_id_token')
    def test_valid_token_loads_profile(self, mock_verify):
        """Test the token's uid selects the profile."""
        mock_verify.return_value = {"uid": "admin"}

        user = asyncio.run(self.provider.resolve("token"))

        assert user.uid == "admin"
        assert user.role == UserRole.ADMIN

    @patch('graftwatch.auth.firebase.auth.verify_id_token')
    def test_invalid_token_rejected(self, mock_verify):
        """Test bad tokens are a permission error."""
        mock_verify.side_effect = auth.InvalidIdTokenError("bad token")

        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.provider.resolve("forged"))

    def test_anonymous(self):
        """Test a missing token is anonymous."""
        assert asyncio.run(self.provider.resolve(None)) is None
