from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.database import get_db
from alogix.dependencies import get_identity
from alogix.schemas import CommentResponse, CommentWithUser, DeleteResponse, Identity
from alogix.services import comment_service

router = APIRouter(prefix="/api/comments", tags=["comments"])

_GUARD_ERRORS = {
    400: {"description": "Missing or blank content"},
    401: {"description": "Not signed in"},
    403: {"description": "Not the comment's owner"},
    404: {"description": "Comment not found"},
    500: {"description": "Persistence failure"},
}


async def _read_json(request: Request) -> Any:
    """
    Decoded request body, or None if it is empty or not JSON.

    Bodies are validated by the mutation guard after the identity check,
    so parsing here must not reject anything on its own.
    """
    try:
        return await request.json()
    except ValueError:
        return None


@router.get("", response_model=list[CommentWithUser])
async def list_comments(db: AsyncSession = Depends(get_db)):
    return await comment_service.list_comments(db)


@router.get("/{comment_id}", response_model=CommentWithUser, responses={404: _GUARD_ERRORS[404]})
async def get_comment(comment_id: str, db: AsyncSession = Depends(get_db)):
    return await comment_service.get_comment(db, comment_id)


@router.post(
    "",
    response_model=CommentResponse,
    responses={k: _GUARD_ERRORS[k] for k in (400, 401, 500)},
)
async def create_comment(
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return await comment_service.create_comment(db, identity, await _read_json(request))


@router.patch("/{comment_id}", response_model=CommentResponse, responses=_GUARD_ERRORS)
async def update_comment(
    comment_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return await comment_service.update_comment(
        db, identity, comment_id, await _read_json(request)
    )


@router.delete(
    "/{comment_id}",
    response_model=DeleteResponse,
    responses={k: _GUARD_ERRORS[k] for k in (401, 403, 404, 500)},
)
async def delete_comment(
    comment_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_identity),
):
    return await comment_service.delete_comment(db, identity, comment_id)
