import logging
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from alogix.auth.utils import generate_token, hash_token
from alogix.config import AuthConfig
from alogix.models import Session, User, utcnow

logger = logging.getLogger(__name__)


async def issue_session(
    db: AsyncSession,
    config: AuthConfig,
    user: User,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> str:
    """Create a session for *user* and return the raw token for the client."""
    token = generate_token()
    db.add(
        Session(
            token_hash=hash_token(token),
            user_id=user.id,
            expires_at=utcnow() + timedelta(seconds=config.session_ttl_seconds),
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
        )
    )
    await db.flush()
    logger.info("Session issued for user=%s", user.id)
    return token


async def revoke_session(db: AsyncSession, token: str) -> bool:
    """Delete the session behind *token*. Returns False if there was none."""
    result = await db.execute(delete(Session).where(Session.token_hash == hash_token(token)))
    return result.rowcount > 0


def set_session_cookie(response: Response, config: AuthConfig, token: str) -> None:
    response.set_cookie(
        config.cookie_name,
        token,
        max_age=config.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )


def clear_session_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        config.cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )
