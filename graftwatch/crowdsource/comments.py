"""
Threaded discussion on reports

Comments are stored flat, each pointing at its parent. The thread is
rebuilt from the complete set of a report's comments every time the store
pushes a new snapshot, so the builder is a pure function of its input.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from graftwatch.auth.identity import CurrentUser, can_modify, require_user
from graftwatch.core.constants import COLLECTION_COMMENTS, COLLECTION_REPORTS
from graftwatch.core.exceptions import NotFoundError, PermissionDeniedError, ReportValidationError
from graftwatch.crowdsource.models import Comment
from graftwatch.store.base import DocumentStore, Query, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


def _chronological(comment: Comment):
    return (comment.created_seconds, comment.id)


@dataclass
class ThreadNode:
    """A comment and its direct replies (oldest first)."""
    comment: Comment
    children: List["ThreadNode"] = field(default_factory=list)

    @property
    def replies(self) -> List[Comment]:
        """
        Every descendant in display order.

        Replies to replies stay under their immediate parent but are shown
        in the same single indented tier as first-level replies.
        """
        flat: List[Comment] = []
        for child in self.children:
            flat.append(child.comment)
            flat.extend(child.replies)
        return flat

    def to_dict(self) -> Dict[str, object]:
        return {
            **self.comment.to_dict(),
            "replies": [reply.to_dict() for reply in self.replies],
        }


@dataclass
class CommentThread:
    """Ordered forest for one report."""
    roots: List[ThreadNode] = field(default_factory=list)
    excluded_ids: List[str] = field(default_factory=list)

    @property
    def visible_count(self) -> int:
        return sum(1 + len(root.replies) for root in self.roots)

    def to_dict(self) -> Dict[str, object]:
        return {
            "count": self.visible_count,
            "comments": [root.to_dict() for root in self.roots],
        }


def build_thread(
    comments: Iterable[Comment],
    report_id: Optional[str] = None
) -> CommentThread:
    """
    Rebuild the comment forest from an unordered snapshot.

    Roots and every group of siblings are ordered by creation time; comments
    whose creation time is still pending sort first. A comment whose parent
    is missing, or belongs to another report, is an orphan: it is left out
    together with its own replies rather than promoted to a root.

    Args:
        comments: All comments of the report, in any order
        report_id: When given, comments of other reports are ignored

    Returns:
        CommentThread
    """
    candidates = [
        c for c in comments
        if report_id is None or c.report_id == report_id
    ]
    by_id = {c.id: c for c in candidates}

    children: Dict[str, List[Comment]] = {}
    roots: List[Comment] = []
    for comment in candidates:
        if comment.parent_id is None:
            roots.append(comment)
            continue
        parent = by_id.get(comment.parent_id)
        if parent is not None and parent.report_id == comment.report_id:
            children.setdefault(parent.id, []).append(comment)

    placed = set()

    def attach(comment: Comment) -> ThreadNode:
        placed.add(comment.id)
        node = ThreadNode(comment)
        for child in sorted(children.get(comment.id, []), key=_chronological):
            if child.id not in placed:
                node.children.append(attach(child))
        return node

    thread = CommentThread(
        roots=[attach(root) for root in sorted(roots, key=_chronological)]
    )
    thread.excluded_ids = sorted(c.id for c in candidates if c.id not in placed)
    return thread


class CommentService:
    """
    Creates, edits and deletes comments.

    Any signed-in user may comment; only the author or an admin may edit or
    delete. Deleting a comment does not delete its replies, which become
    orphans and drop out of the rebuilt thread.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def add_comment(
        self,
        report_id: str,
        user: Optional[CurrentUser],
        text: str,
        parent_id: Optional[str] = None
    ) -> str:
        """
        Post a comment or a reply.

        Returns:
            The new comment id
        """
        author = require_user(user)
        body = (text or "").strip()
        if not body:
            raise ReportValidationError(["Comment text is required"])

        if await self.store.get(COLLECTION_REPORTS, report_id) is None:
            raise NotFoundError(f"Report {report_id} not found")

        if parent_id is not None:
            parent = await self.store.get(COLLECTION_COMMENTS, parent_id)
            if parent is None:
                raise NotFoundError(f"Comment {parent_id} not found")
            if parent.get("reportId") != report_id:
                raise ReportValidationError(["Replies must belong to the same report"])

        comment_id = await self.store.add(COLLECTION_COMMENTS, {
            "reportId": report_id,
            "userId": author.uid,
            "text": body,
            "parentId": parent_id,
            "createdAt": SERVER_TIMESTAMP,
        })
        logger.info(f"Comment {comment_id} added to {report_id} by {author.uid}")
        return comment_id

    async def get_comment(self, comment_id: str) -> Comment:
        snapshot = await self.store.get(COLLECTION_COMMENTS, comment_id)
        if snapshot is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        return Comment.from_snapshot(snapshot)

    async def edit_comment(self, comment_id: str, user: Optional[CurrentUser], text: str) -> None:
        require_user(user)
        body = (text or "").strip()
        if not body:
            raise ReportValidationError(["Comment text is required"])

        comment = await self.get_comment(comment_id)
        if not can_modify(user, comment.user_id):
            raise PermissionDeniedError("Only the author or an administrator can edit this comment")

        await self.store.update(COLLECTION_COMMENTS, comment_id, {"text": body})
        logger.info(f"Comment {comment_id} edited by {user.uid}")

    async def delete_comment(self, comment_id: str, user: Optional[CurrentUser]) -> None:
        require_user(user)
        comment = await self.get_comment(comment_id)
        if not can_modify(user, comment.user_id):
            raise PermissionDeniedError("Only the author or an administrator can delete this comment")

        await self.store.delete(COLLECTION_COMMENTS, comment_id)
        logger.info(f"Comment {comment_id} deleted by {user.uid}")

    async def list_comments(self, report_id: str) -> List[Comment]:
        snapshots = await self.store.query(Query(COLLECTION_COMMENTS).where("reportId", report_id))
        return [Comment.from_snapshot(s) for s in snapshots]

    async def get_thread(self, report_id: str) -> CommentThread:
        """One-shot thread build; an unknown report has no thread."""
        if await self.store.get(COLLECTION_REPORTS, report_id) is None:
            raise NotFoundError(f"Report {report_id} not found")
        return build_thread(await self.list_comments(report_id), report_id)

    async def count_comments(self, report_id: str) -> int:
        return len(await self.list_comments(report_id))
