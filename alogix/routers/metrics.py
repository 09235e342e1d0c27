from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from alogix.database import get_db
from alogix.models import BlogPost, Comment, Session, User, utcnow
from alogix.schemas import MetricsResponse
from alogix.cache import cache

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    return MetricsResponse(
        total_posts=await _count(db, select(func.count()).select_from(BlogPost)),
        total_comments=await _count(db, select(func.count()).select_from(Comment)),
        total_users=await _count(db, select(func.count()).select_from(User)),
        active_sessions=await _count(
            db, select(func.count()).select_from(Session).where(Session.expires_at > utcnow())
        ),
        cache_info=cache.stats,
    )
