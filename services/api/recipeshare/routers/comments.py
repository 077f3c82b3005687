"""
Comment endpoints (creation and listing live under /recipes/{id}/comments):
  PUT    /comments/{id}          — edit (author only)
  DELETE /comments/{id}          — delete with replies (author only)
  POST   /comments/{id}/like     — toggle like
  GET    /comments/{id}/replies  — replies, oldest first
"""
from typing import Optional

from fastapi import APIRouter, Depends

from recipeshare.config import settings
from recipeshare.deps import get_comment_service, get_current_user_id, get_optional_user_id
from recipeshare.pagination import PageRequest
from recipeshare.schemas import CommentOut, CommentUpdate, LikeStateOut, envelope
from recipeshare.services.comment_service import CommentService

router = APIRouter()


@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    body: CommentUpdate,
    user_id: str = Depends(get_current_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    comment = await comments.update_comment(comment_id, user_id, body.content)
    likes = await comments.likes_count(comment_id)
    return envelope(
        data={"comment": CommentOut.build(comment, likes)},
        message="Comment updated successfully",
    )


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    user_id: str = Depends(get_current_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    removed = await comments.delete_comment(comment_id, user_id)
    return envelope(
        data={"deletedCount": removed},
        message="Comment deleted successfully",
    )


@router.post("/{comment_id}/like")
async def toggle_comment_like(
    comment_id: str,
    user_id: str = Depends(get_current_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    state = await comments.toggle_like(comment_id, user_id)
    return envelope(
        data=LikeStateOut.model_validate(state),
        message="Comment liked" if state.is_liked else "Comment unliked",
    )


@router.get("/{comment_id}/replies")
async def list_replies(
    comment_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    result = await comments.list_replies(
        comment_id, PageRequest.of(page, limit, settings.social_page_size), viewer_id
    )
    return envelope(
        data={"replies": [CommentOut.from_view(view) for view in result.items]},
        pagination=result.pagination,
    )
