"""
Comment service — append-only comments on the Post aggregate.

Each comment is one INSERT; nothing here reads the post's comment list
back and rewrites it, so concurrent appends cannot overwrite each other
and insertion order (the primary key) is the display order.  Comments are
never edited or removed individually; they go away only with their post.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blogapi.models import Comment, Post, User
from blogapi.schemas import CommentCreate
from blogapi.services.post_service import author_to_dict, comment_to_dict

logger = logging.getLogger(__name__)


async def add_comment(
    db: AsyncSession,
    post_id: int,
    author: User,
    data: CommentCreate,
) -> dict | None:
    """
    Append a comment by *author* to *post_id*.

    Any authenticated user may comment, including on posts they do not
    own.  Returns the serialised comment, or None when the post does not
    exist (or was deleted while the comment was being written).
    """
    exists = (await db.execute(select(Post.id).where(Post.id == post_id))).first()
    if exists is None:
        return None

    comment = Comment(content=data.content, post_id=post_id, user_id=author.id)
    db.add(comment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Comment on post %s dropped: post deleted concurrently", post_id)
        return None

    result = comment_to_dict(comment)
    result["user"] = author_to_dict(author)
    return result


async def get_comments(db: AsyncSession, post_id: int) -> list[dict]:
    """All comments of *post_id* in append order."""
    q = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .options(joinedload(Comment.user))
        .order_by(Comment.id)
    )
    result = await db.execute(q)
    return [comment_to_dict(c) for c in result.scalars().all()]
