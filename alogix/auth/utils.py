import hashlib
import json
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.config import AuthConfig
from alogix.models import Verification, utcnow


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    return as_utc(expires_at) <= (now or utcnow())


def safe_callback_url(config: AuthConfig, url: str | None) -> str:
    """
    Return *url* if it is a local path or points at a trusted origin,
    otherwise ``/``.
    """
    if not url:
        return "/"
    if url.startswith("/") and not url.startswith("//"):
        return url
    parts = urlsplit(url)
    origin = f"{parts.scheme}://{parts.netloc}"
    if parts.scheme in ("http", "https") and origin in config.trusted_origins:
        return url
    return "/"


# ---------------------------------------------------------------------------
# One-time verification values
# ---------------------------------------------------------------------------

async def store_verification(
    db: AsyncSession, identifier: str, value: dict, ttl_seconds: int
) -> None:
    db.add(
        Verification(
            identifier=identifier,
            value=json.dumps(value),
            expires_at=utcnow() + timedelta(seconds=ttl_seconds),
        )
    )
    await db.flush()


async def consume_verification(db: AsyncSession, identifier: str) -> dict | None:
    """
    Delete and return the value stored under *identifier*.

    Returns None when nothing is stored or the value has expired. The row
    is removed either way, so a value can be consumed at most once.
    """
    result = await db.execute(select(Verification).where(Verification.identifier == identifier))
    row = result.scalar_one_or_none()
    if row is None:
        return None
    expires_at, value = row.expires_at, row.value
    await db.delete(row)
    await db.flush()
    if is_expired(expires_at):
        return None
    return json.loads(value)
