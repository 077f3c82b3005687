"""
Comment tree manager.

Comments nest exactly one level: a comment is placed either at the root of
a recipe's thread or as a reply to a root comment. The placement is a
tagged variant (`Root` / `Reply`) resolved against the store before the
comment is written, and a reply whose parent is itself a reply is rejected.
Threads on a draft or private recipe are visible to its author only.

Deleting a root comment deletes its replies in the same operation. Every
delete in the cascade is idempotent, so a retry after a partial failure
converges on the same end state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from opentelemetry import trace
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.errors import AuthorizationError, ValidationError
from recipeshare.models import Comment, CommentLike, Notification, NotificationType
from recipeshare.pagination import Page, PageRequest, Pagination
from recipeshare.services.lookups import require_comment, require_visible_recipe
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.telemetry import ENGAGEMENT_ACTIONS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_COMMENT_LENGTH = 1000


@dataclass(frozen=True)
class Root:
    """Top-level comment attached directly to a recipe."""


@dataclass(frozen=True)
class Reply:
    parent_id: str


Placement = Union[Root, Reply]


def placement_for(parent_id: Optional[str]) -> Placement:
    return Reply(parent_id) if parent_id else Root()


@dataclass
class CommentView:
    comment: Comment
    likes_count: int
    replies: list["CommentView"]


@dataclass
class CommentLikeState:
    is_liked: bool
    likes_count: int


def _clean_content(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment cannot be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters")
    return content


class CommentService:
    def __init__(self, db: AsyncSession, notifier: NotificationPipeline):
        self._db = db
        self._notifier = notifier

    async def _resolve_parent(self, recipe_id: str, placement: Placement) -> Optional[Comment]:
        """Return the parent for a Reply, enforcing same recipe and root-only parents."""
        if isinstance(placement, Root):
            return None
        parent = await self._db.get(Comment, placement.parent_id)
        if parent is None or parent.recipe_id != recipe_id:
            raise ValidationError("Invalid parent comment")
        if not parent.is_root:
            raise ValidationError("Replies can only be added to top-level comments")
        return parent

    async def add_comment(
        self,
        recipe_id: str,
        author_id: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> Comment:
        with tracer.start_as_current_span("add_comment") as span:
            span.set_attribute("recipe.id", recipe_id)
            content = _clean_content(content)
            recipe = await require_visible_recipe(self._db, recipe_id, author_id)
            parent = await self._resolve_parent(recipe_id, placement_for(parent_id))

            comment = Comment(
                recipe_id=recipe_id,
                author_id=author_id,
                parent_id=parent.comment_id if parent else None,
                content=content,
            )
            self._db.add(comment)
            await self._db.commit()
            ENGAGEMENT_ACTIONS_TOTAL.labels(action="reply" if parent else "comment").inc()

        await self._notifier.notify(
            recipe.author_id,
            author_id,
            NotificationType.COMMENT,
            recipe_id=recipe_id,
            comment_id=comment.comment_id,
            recipe_title=recipe.title,
        )
        if parent is not None:
            await self._notifier.notify(
                parent.author_id,
                author_id,
                NotificationType.REPLY,
                recipe_id=recipe_id,
                comment_id=comment.comment_id,
            )
        return comment

    async def update_comment(self, comment_id: str, author_id: str, content: str) -> Comment:
        """Only the author may edit; the model hook flags the comment as edited."""
        content = _clean_content(content)
        comment = await require_comment(self._db, comment_id)
        if comment.author_id != author_id:
            raise AuthorizationError("You can only update your own comments")
        comment.content = content
        await self._db.commit()
        return comment

    async def delete_comment(self, comment_id: str, author_id: str) -> int:
        """
        Delete a comment the caller wrote, plus all of its replies.

        Returns the number of comments removed.
        """
        with tracer.start_as_current_span("delete_comment"):
            comment = await require_comment(self._db, comment_id)
            if comment.author_id != author_id:
                raise AuthorizationError("You can only delete your own comments")

            doomed = list(
                (
                    await self._db.scalars(
                        select(Comment.comment_id).where(Comment.parent_id == comment_id)
                    )
                ).all()
            )
            doomed.append(comment_id)

            await self._db.execute(
                delete(CommentLike).where(CommentLike.comment_id.in_(doomed))
            )
            await self._db.execute(
                delete(Notification).where(Notification.comment_id.in_(doomed))
            )
            # replies first: they reference the root through parent_id
            await self._db.execute(delete(Comment).where(Comment.parent_id == comment_id))
            await self._db.execute(delete(Comment).where(Comment.comment_id == comment_id))
            await self._db.commit()

        logger.info("Deleted comment %s and %d replies", comment_id, len(doomed) - 1)
        return len(doomed)

    async def likes_count(self, comment_id: str) -> int:
        count = await self._db.scalar(
            select(func.count())
            .select_from(CommentLike)
            .where(CommentLike.comment_id == comment_id)
        )
        return count or 0

    async def toggle_like(self, comment_id: str, user_id: str) -> CommentLikeState:
        comment = await require_comment(self._db, comment_id)
        await require_visible_recipe(self._db, comment.recipe_id, user_id)
        existing = await self._db.get(CommentLike, (comment_id, user_id))
        if existing is not None:
            await self._db.delete(existing)
        else:
            self._db.add(CommentLike(comment_id=comment_id, user_id=user_id))
        await self._db.commit()

        is_liked = existing is None
        ENGAGEMENT_ACTIONS_TOTAL.labels(
            action="comment_like" if is_liked else "comment_unlike"
        ).inc()
        state = CommentLikeState(is_liked=is_liked, likes_count=await self.likes_count(comment_id))

        if is_liked:
            await self._notifier.notify(
                comment.author_id,
                user_id,
                NotificationType.LIKE,
                recipe_id=comment.recipe_id,
                comment_id=comment_id,
            )
        return state

    # ─────────────────────────── Read side ────────────────────────────────

    async def _like_counts(self, comment_ids: list[str]) -> dict[str, int]:
        if not comment_ids:
            return {}
        rows = await self._db.execute(
            select(CommentLike.comment_id, func.count())
            .where(CommentLike.comment_id.in_(comment_ids))
            .group_by(CommentLike.comment_id)
        )
        return {comment_id: count for comment_id, count in rows.all()}

    async def list_recipe_comments(
        self, recipe_id: str, page: PageRequest, viewer_id: Optional[str] = None
    ) -> Page[CommentView]:
        """Root comments newest first, each carrying its replies oldest first."""
        await require_visible_recipe(self._db, recipe_id, viewer_id)
        roots_where = (Comment.recipe_id == recipe_id, Comment.parent_id.is_(None))
        total = await self._db.scalar(
            select(func.count()).select_from(Comment).where(*roots_where)
        )
        roots = list(
            (
                await self._db.scalars(
                    select(Comment)
                    .where(*roots_where)
                    .order_by(Comment.created_at.desc(), Comment.comment_id)
                    .offset(page.offset)
                    .limit(page.limit)
                )
            ).all()
        )
        root_ids = [c.comment_id for c in roots]
        replies: list[Comment] = []
        if root_ids:
            replies = list(
                (
                    await self._db.scalars(
                        select(Comment)
                        .where(Comment.parent_id.in_(root_ids))
                        .order_by(Comment.created_at, Comment.comment_id)
                    )
                ).all()
            )
        likes = await self._like_counts(root_ids + [r.comment_id for r in replies])

        by_parent: dict[str, list[CommentView]] = {cid: [] for cid in root_ids}
        for reply in replies:
            by_parent[reply.parent_id].append(
                CommentView(reply, likes.get(reply.comment_id, 0), [])
            )
        items = [
            CommentView(root, likes.get(root.comment_id, 0), by_parent[root.comment_id])
            for root in roots
        ]
        return Page(items=items, pagination=Pagination.build(page, total or 0))

    async def list_replies(
        self, comment_id: str, page: PageRequest, viewer_id: Optional[str] = None
    ) -> Page[CommentView]:
        comment = await require_comment(self._db, comment_id)
        await require_visible_recipe(self._db, comment.recipe_id, viewer_id)
        total = await self._db.scalar(
            select(func.count()).select_from(Comment).where(Comment.parent_id == comment_id)
        )
        replies = list(
            (
                await self._db.scalars(
                    select(Comment)
                    .where(Comment.parent_id == comment_id)
                    .order_by(Comment.created_at, Comment.comment_id)
                    .offset(page.offset)
                    .limit(page.limit)
                )
            ).all()
        )
        likes = await self._like_counts([r.comment_id for r in replies])
        items = [CommentView(r, likes.get(r.comment_id, 0), []) for r in replies]
        return Page(items=items, pagination=Pagination.build(page, total or 0))

