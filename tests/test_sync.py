"""
Tests for live views and the sync coordinator
"""
import asyncio
import pytest

import sys
sys.path.insert(0, '.')

from graftwatch.auth.identity import CurrentUser, UserRole
from graftwatch.core.exceptions import PermissionDeniedError
from graftwatch.crowdsource.comments import CommentService
from graftwatch.crowdsource.models import Location
from graftwatch.crowdsource.moderation import ModerationStateMachine
from graftwatch.crowdsource.report_handler import ReportHandler
from graftwatch.crowdsource.votes import VoteConsistencyEngine
from graftwatch.store.memory import MemoryDocumentStore, TickingClock
from graftwatch.sync.coordinator import SyncCoordinator

EVIDENCE = ["https://example.com/evidence"]


class TestSyncCoordinator:
    """Test suite for views kept current by pushes."""

    def setup_method(self):
        """Setup test fixtures."""
        self.store = MemoryDocumentStore(clock=TickingClock())
        self.sync = SyncCoordinator(self.store)
        self.reports = ReportHandler(self.store)
        self.moderation = ModerationStateMachine(self.store)
        self.votes = VoteConsistencyEngine(self.store)
        self.comments = CommentService(self.store)
        self.author = CurrentUser(uid="author")
        self.voter = CurrentUser(uid="voter")
        self.admin = CurrentUser(uid="admin", role=UserRole.ADMIN)

    async def submit(self, description, lat=23.81, lng=90.41, corruption_type="bribery"):
        report = await self.reports.submit_report(
            self.author,
            description=description,
            corruption_type=corruption_type,
            location=Location(lat=lat, lng=lng),
            evidence_links=EVIDENCE,
        )
        return report.id

    def test_feed_shows_only_approved(self):
        """Test pending reports stay out of the public feed."""
        async def scenario():
            feed = await self.sync.open_feed()
            own = await self.sync.open_own_reports(self.author)

            first = await self.submit("first")
            await self.submit("second")
            assert feed.state == []
            assert len(own.state) == 2

            await self.moderation.approve(first, self.admin)
            return feed, own, first

        feed, own, first = asyncio.run(scenario())

        assert [e.report.id for e in feed.state] == [first]
        assert {r.status.value for r in own.state} == {"approved", "pending"}

    def test_feed_newest_first(self):
        """Test the feed orders by creation time, newest first."""
        async def scenario():
            ids = [await self.submit(f"report {i}") for i in range(3)]
            for report_id in ids:
                await self.moderation.approve(report_id, self.admin)
            feed = await self.sync.open_feed()
            return feed, ids

        feed, ids = asyncio.run(scenario())

        assert [e.report.id for e in feed.state] == list(reversed(ids))

    def test_unapproving_removes_from_feed(self):
        """Test moving a report back to pending hides it again."""
        async def scenario():
            report_id = await self.submit("flip")
            feed = await self.sync.open_feed()
            await self.moderation.approve(report_id, self.admin)
            shown = len(feed.state)
            await self.moderation.reset_to_pending(report_id, self.admin)
            return shown, feed

        shown, feed = asyncio.run(scenario())

        assert shown == 1
        assert feed.state == []

    def test_nearby_and_type_filters(self):
        """Test feed parameters recompute from the last snapshot."""
        async def scenario():
            near = await self.submit("near", lat=23.82, lng=90.42)
            far = await self.submit("far", lat=22.35, lng=91.78)
            grab = await self.submit("grab", lat=23.80, lng=90.40, corruption_type="land-grab")
            for report_id in (near, far, grab):
                await self.moderation.approve(report_id, self.admin)
            feed = await self.sync.open_feed()
            return feed, near, far, grab

        feed, near, far, grab = asyncio.run(scenario())

        nearby = feed.set_nearby(23.8103, 90.4125)
        assert {e.report.id for e in nearby} == {near, grab}
        assert all(e.distance_km < 50 for e in nearby)

        only_grab = feed.set_type_filter("land-grab")
        assert [e.report.id for e in only_grab] == [grab]

        feed.set_type_filter(None)
        everything = feed.clear_nearby()
        assert {e.report.id for e in everything} == {near, far, grab}

    def test_vote_updates_detail_view(self):
        """Test the detail view follows the live tally and the viewer's vote."""
        async def scenario():
            report_id = await self.submit("detail")
            await self.moderation.approve(report_id, self.admin)
            detail = await self.sync.open_report_detail(report_id, self.voter)
            await self.votes.cast_vote(report_id, self.voter, "suspicious")
            return detail

        detail = asyncio.run(scenario())

        assert detail.state.report.votes["suspicious"] == 1
        assert detail.state.user_vote.value == "suspicious"

    def test_deleted_report_leaves_every_view(self):
        """Test deletion propagates to feed, map, own view and detail."""
        async def scenario():
            report_id = await self.submit("to delete")
            await self.moderation.approve(report_id, self.admin)
            feed = await self.sync.open_feed()
            map_view = await self.sync.open_map()
            own = await self.sync.open_own_reports(self.author)
            detail = await self.sync.open_report_detail(report_id)
            await self.moderation.delete_report(report_id, self.admin)
            return feed, map_view, own, detail

        feed, map_view, own, detail = asyncio.run(scenario())

        assert feed.state == []
        assert map_view.state == []
        assert own.state == []
        assert detail.state.report is None

    def test_no_thread_for_deleted_report(self):
        """Test comments of a deleted report are not shown as a thread."""
        async def scenario():
            report_id = await self.submit("discussed")
            await self.moderation.approve(report_id, self.admin)
            thread = await self.sync.open_comment_thread(report_id)
            await self.comments.add_comment(report_id, self.voter, "I saw this too")
            visible = thread.state.visible_count
            await self.moderation.delete_report(report_id, self.admin)
            return visible, thread

        visible, thread = asyncio.run(scenario())

        assert visible == 1
        assert thread.state.roots == []
        assert len(thread.state.excluded_ids) == 1

    def test_unchanged_snapshot_not_recomputed(self):
        """Test identical pushes reuse the memoized projection."""
        async def scenario():
            report_id = await self.submit("memo")
            await self.moderation.approve(report_id, self.admin)
            feed = await self.sync.open_feed()
            computed = feed.compute_count
            feed.recompute()
            feed.recompute()
            return feed, computed

        feed, computed = asyncio.run(scenario())

        assert feed.compute_count == computed

    def test_listeners_notified(self):
        """Test re-render callbacks receive each new state."""
        received = []

        async def scenario():
            feed = await self.sync.open_feed()
            feed.listen(received.append)
            report_id = await self.submit("listened")
            await self.moderation.approve(report_id, self.admin)

        asyncio.run(scenario())

        assert received[0] == []
        assert len(received[-1]) == 1

    def test_closed_view_stops_updating(self):
        """Test closing a view detaches it from the store."""
        async def scenario():
            feed = await self.sync.open_feed()
            self.sync.close(feed)
            report_id = await self.submit("after close")
            await self.moderation.approve(report_id, self.admin)
            return feed

        feed = asyncio.run(scenario())

        assert feed.state == []
        assert not feed.is_open
        assert self.store.active_subscriptions() == []

    def test_close_all(self):
        """Test sign-out closes every open view."""
        async def scenario():
            await self.sync.open_feed()
            await self.sync.open_map()
            await self.sync.open_comment_thread("r1")

        asyncio.run(scenario())
        self.sync.close_all()

        assert self.sync.open_views == []
        assert self.store.active_subscriptions() == []

    def test_admin_views_require_admin(self):
        """Test admin screens are refused to ordinary users."""
        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.sync.open_admin_reports(self.author))
        with pytest.raises(PermissionDeniedError):
            asyncio.run(self.sync.open_admin_users(None))

    def test_admin_reports_include_every_status(self):
        """Test the admin list shows pending and rejected reports."""
        async def scenario():
            first = await self.submit("one")
            await self.submit("two")
            await self.moderation.reject(first, self.admin)
            return await self.sync.open_admin_reports(self.admin)

        view = asyncio.run(scenario())

        assert {r.status.value for r in view.state} == {"pending", "rejected"}
