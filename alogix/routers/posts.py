from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.database import get_db
from alogix.dependencies import PaginationParams
from alogix.schemas import HomeResponse, PaginatedResponse, PostDetail
from alogix.services import post_service

router = APIRouter(prefix="/api", tags=["posts"])


@router.get("/home", response_model=HomeResponse)
async def home(db: AsyncSession = Depends(get_db)):
    return {"posts": await post_service.get_recent_posts(db)}


@router.get("/posts", response_model=PaginatedResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.get_posts(db, pagination.page, pagination.page_size)


@router.get("/posts/{slug}", response_model=PostDetail, responses={404: {"description": "Post not found"}})
async def get_post(slug: str, db: AsyncSession = Depends(get_db)):
    return await post_service.get_post_by_slug(db, slug)
