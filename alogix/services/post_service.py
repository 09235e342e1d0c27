"""
Post service: read paths for the blog.

Design notes
------------
- Listing, home feed and detail all go through the cache-aside pattern
  (Redis, falling back to the database). Keys encode every dimension that
  affects the result.
- Content is returned as stored (markdown source); rendering happens in
  the client.
- ``create_post`` has no HTTP route. It exists for the seeder and tests;
  it flushes but does not commit, like every other service function.
"""
import math
import re
import time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.cache import POST_DETAIL_KEY, POSTS_LIST_KEY, POSTS_RECENT_KEY, cache
from alogix.config import settings
from alogix.database import after_commit
from alogix.errors import NotFound
from alogix.models import BlogPost
from alogix.schemas import PaginatedResponse

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _post_to_dict(post: BlogPost) -> dict:
    """List view: no body."""
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


def _post_detail_to_dict(post: BlogPost) -> dict:
    data = _post_to_dict(post)
    data["content"] = post.content
    return data


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_recent_posts(db: AsyncSession, limit: int | None = None) -> list[dict]:
    """The *limit* newest posts for the home page."""
    limit = limit or settings.HOME_FEED_SIZE
    cache_key = POSTS_RECENT_KEY.format(limit=limit)
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    q = select(BlogPost).order_by(BlogPost.created_at.desc()).limit(limit)
    result = await db.execute(q)
    data = [_post_to_dict(p) for p in result.scalars().all()]
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_LIST)
    return data


async def get_posts(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse:
    """
    Return one page of posts, newest first.

    Two SQL statements on a cache miss: a COUNT and the LIMIT/OFFSET page.
    """
    cache_key = POSTS_LIST_KEY.format(page=page, page_size=page_size)
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    total: int = (await db.execute(select(func.count()).select_from(BlogPost))).scalar_one()

    q = (
        select(BlogPost)
        .order_by(BlogPost.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(q)

    response = PaginatedResponse(
        items=[_post_to_dict(p) for p in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_post_by_slug(db: AsyncSession, slug: str) -> dict:
    """Full post for *slug*; raises NotFound when there is none."""
    cache_key = POST_DETAIL_KEY.format(slug=slug)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    result = await db.execute(select(BlogPost).where(BlogPost.slug == slug))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")

    data = _post_detail_to_dict(post)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def create_post(db: AsyncSession, title: str, content: str) -> dict:
    """
    Insert a post, deriving its slug from *title*.

    On slug collision a Unix timestamp suffix is appended.
    """
    slug = slugify(title)
    existing = await db.execute(select(BlogPost.id).where(BlogPost.slug == slug))
    if existing.scalar_one_or_none() is not None:
        slug = f"{slug}-{int(time.time())}"

    post = BlogPost(title=title, slug=slug, content=content)
    db.add(post)
    await db.flush()
    after_commit(db, cache.invalidate_posts)
    return _post_detail_to_dict(post)
