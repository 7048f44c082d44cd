"""
Tests for report moderation
"""
import asyncio
import pytest

import sys
sys.path.insert(0, '.')

from graftwatch.auth.identity import CurrentUser, UserRole
from graftwatch.core.exceptions import NotFoundError, PermissionDeniedError, ReportValidationError
from graftwatch.crowdsource.moderation import ModerationStateMachine, can_transition
from graftwatch.crowdsource.models import ReportStatus
from graftwatch.store.memory import MemoryDocumentStore, TickingClock


class TestModerationStateMachine:
    """Test suite for status transitions and admin edits."""

    def setup_method(self):
        """Setup test fixtures."""
        self.store = MemoryDocumentStore(clock=TickingClock())
        self.moderation = ModerationStateMachine(self.store)
        self.admin = CurrentUser(uid="admin", role=UserRole.ADMIN)
        self.user = CurrentUser(uid="u1")
        asyncio.run(self.store.set("reports", "r1", {
            "userId": "u1",
            "description": "Police checkpoint extortion",
            "corruptionType": "police-corruption",
            "location": {"lat": 23.7, "lng": 90.4, "address": "Gulistan"},
            "evidenceBase64": ["data:image/png;base64,AAAA", "data:image/png;base64,BBBB"],
            "evidenceLinks": [],
            "status": "pending",
            "votes": {"true": 3, "suspicious": 0, "needEvidence": 1},
        }))

    def status(self):
        return asyncio.run(self.store.get("reports", "r1")).data["status"]

    def test_every_transition_allowed(self):
        """Test admins may move between all states."""
        for current in ReportStatus:
            for target in ReportStatus:
                assert can_transition(current, target)

    def test_approve_then_back_to_pending(self):
        """Test pending -> approved -> pending."""
        first = asyncio.run(self.moderation.approve("r1", self.admin))
        second = asyncio.run(self.moderation.reset_to_pending("r1", self.admin))

        assert first.previous == ReportStatus.PENDING
        assert first.current == ReportStatus.APPROVED
        assert second.current == ReportStatus.PENDING
        assert self.status() == "pending"

    def test_repeated_transition_is_idempotent(self):
        """Test approving twice leaves the report approved."""
        asyncio.run(self.moderation.approve("r1", self.admin))
        before = asyncio.run(self.store.get("reports", "r1")).data["updatedAt"]

        transition = asyncio.run(self.moderation.approve("r1", self.admin))
        after = asyncio.run(self.store.get("reports", "r1")).data["updatedAt"]

        assert not transition.changed
        assert self.status() == "approved"
        assert after > before

    def test_non_admin_cannot_moderate(self):
        """Test ordinary users and the author cannot change status."""
        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.moderation.approve("r1", self.user))
        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.moderation.reject("r1", None))
        assert self.status() == "pending"

    def test_invalid_status(self):
        """Test unknown statuses are refused."""
        with pytest.raises(ReportValidationError):
            asyncio.run(self.moderation.set_status("r1", self.admin, "archived"))

    def test_missing_report(self):
        """Test moderating a deleted report."""
        with pytest.raises(NotFoundError):
            asyncio.run(self.moderation.approve("gone", self.admin))

    def test_edit_keeps_status_and_votes(self):
        """Test content edits leave moderation state alone."""
        asyncio.run(self.moderation.approve("r1", self.admin))

        report = asyncio.run(self.moderation.edit_report(
            "r1",
            self.admin,
            description="Edited description",
            address="Gulistan, Dhaka",
            remove_image_indices=[0],
        ))

        assert report.status == ReportStatus.APPROVED
        assert report.description == "Edited description"
        assert report.location.address == "Gulistan, Dhaka"
        assert report.location.lat == 23.7
        assert report.evidence_base64 == ["data:image/png;base64,BBBB"]
        assert report.votes == {"true": 3, "suspicious": 0, "needEvidence": 1}

    def test_edit_rejects_bad_type(self):
        """Test edits are validated."""
        with pytest.raises(ReportValidationError):
            asyncio.run(self.moderation.edit_report("r1", self.admin, corruption_type="tax"))

    def test_delete_leaves_votes_and_comments(self):
        """Test deleting a report does not cascade."""
        asyncio.run(self.store.set("votes", "r1_u2", {"reportId": "r1", "userId": "u2", "type": "true"}))
        asyncio.run(self.store.set("comments", "c1", {"reportId": "r1", "userId": "u2", "text": "hi"}))

        asyncio.run(self.moderation.delete_report("r1", self.admin))

        assert asyncio.run(self.store.get("reports", "r1")) is None
        assert self.store.count("votes") == 1
        assert self.store.count("comments") == 1


class TestUserModeration:
    """Test suite for admin actions on user profiles."""

    def setup_method(self):
        """Setup test fixtures."""
        self.store = MemoryDocumentStore(clock=TickingClock())
        self.moderation = ModerationStateMachine(self.store)
        self.admin = CurrentUser(uid="admin", role=UserRole.ADMIN)
        asyncio.run(self.store.set("users", "u1", {"uid": "u1", "email": "u1@example.com", "role": "user"}))

    def test_disable_and_enable(self):
        """Test toggling the disabled flag."""
        asyncio.run(self.moderation.set_user_disabled("u1", self.admin, True))
        assert asyncio.run(self.store.get("users", "u1")).data["disabled"] is True

        asyncio.run(self.moderation.set_user_disabled("u1", self.admin, False))
        assert asyncio.run(self.store.get("users", "u1")).data["disabled"] is False

    def test_disable_unknown_user(self):
        """Test disabling a missing profile."""
        with pytest.raises(NotFoundError):
            asyncio.run(self.moderation.set_user_disabled("ghost", self.admin, True))

    def test_delete_profile(self):
        """Test removing a profile document."""
        asyncio.run(self.moderation.delete_user_profile("u1", self.admin))

        assert asyncio.run(self.store.get("users", "u1")) is None

    def test_user_actions_require_admin(self):
        """Test ordinary users cannot manage accounts."""
        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.moderation.delete_user_profile("u1", CurrentUser(uid="u2")))
