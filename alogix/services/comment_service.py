"""
Comment service: the comment wall and its owner-only mutations.

Reads are public. Every write goes through :mod:`alogix.guard`, so the
authenticate / validate / exists / owns ordering lives in one place and
this module only supplies the lookup, the owner accessor and the actual
persistence step. Writes invalidate the cached wall once the request
transaction commits.
"""
from functools import partial
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from alogix.cache import COMMENTS_LIST_KEY, cache
from alogix.config import settings
from alogix.database import after_commit
from alogix.errors import NotFound
from alogix.guard import guarded_create, guarded_mutate
from alogix.models import Comment, utcnow
from alogix.schemas import CommentInput, Identity

COMMENT_NOT_FOUND = "Comment not found"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "user_id": comment.user_id,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "updated_at": comment.updated_at.isoformat() if comment.updated_at else None,
    }


def _comment_with_user_to_dict(comment: Comment) -> dict:
    data = _comment_to_dict(comment)
    user = comment.user
    data["user"] = (
        {"id": user.id, "name": user.name, "image": user.image} if user is not None else None
    )
    return data


def _owner_of(comment: Comment) -> str:
    return comment.user_id


async def _find_comment(db: AsyncSession, comment_id: str) -> Comment | None:
    result = await db.execute(select(Comment).where(Comment.id == comment_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_comments(db: AsyncSession) -> list[dict]:
    """Return every comment with its author, newest first (cache-aside)."""
    cached = await cache.get(COMMENTS_LIST_KEY)
    if cached is not None:
        return cached

    q = (
        select(Comment)
        .options(joinedload(Comment.user))
        .order_by(Comment.created_at.desc())
    )
    result = await db.execute(q)
    data = [_comment_with_user_to_dict(c) for c in result.unique().scalars().all()]
    await cache.set(COMMENTS_LIST_KEY, data, ttl=settings.CACHE_TTL_LIST)
    return data


async def get_comment(db: AsyncSession, comment_id: str) -> dict:
    q = select(Comment).where(Comment.id == comment_id).options(joinedload(Comment.user))
    comment = (await db.execute(q)).unique().scalar_one_or_none()
    if comment is None:
        raise NotFound(COMMENT_NOT_FOUND)
    return _comment_with_user_to_dict(comment)


# ---------------------------------------------------------------------------
# Guarded writes
# ---------------------------------------------------------------------------

async def create_comment(db: AsyncSession, identity: Identity | None, payload: Any) -> dict:
    """Create a comment owned by *identity* with the trimmed content."""

    async def _persist(actor: Identity, data: CommentInput) -> dict:
        comment = Comment(content=data.content, user_id=actor.id)
        db.add(comment)
        await db.flush()
        after_commit(db, cache.invalidate_comments)
        return _comment_to_dict(comment)

    return await guarded_create(
        identity, payload, _persist, schema=CommentInput, tag="COMMENT_POST"
    )


async def update_comment(
    db: AsyncSession, identity: Identity | None, comment_id: str, payload: Any
) -> dict:
    """Replace the content of a comment owned by *identity*."""

    async def _replace_content(comment: Comment, data: CommentInput) -> dict:
        comment.content = data.content
        comment.updated_at = utcnow()
        await db.flush()
        after_commit(db, cache.invalidate_comments)
        return _comment_to_dict(comment)

    return await guarded_mutate(
        identity,
        comment_id,
        _replace_content,
        find=partial(_find_comment, db),
        owner_of=_owner_of,
        tag="COMMENT_PATCH",
        payload=payload,
        schema=CommentInput,
        not_found_message=COMMENT_NOT_FOUND,
    )


async def delete_comment(db: AsyncSession, identity: Identity | None, comment_id: str) -> dict:
    """Permanently delete a comment owned by *identity*."""

    async def _delete(comment: Comment, _data: None) -> dict:
        await db.delete(comment)
        await db.flush()
        after_commit(db, cache.invalidate_comments)
        return {"success": True}

    return await guarded_mutate(
        identity,
        comment_id,
        _delete,
        find=partial(_find_comment, db),
        owner_of=_owner_of,
        tag="COMMENT_DELETE",
        not_found_message=COMMENT_NOT_FOUND,
    )
