"""
Passwordless sign-in by email.

A request stores a single-use token (hashed) and hands a verification link
to the configured :class:`EmailSender`. Following the link consumes the
token, finds or creates the user and opens a session.
"""
import logging
from typing import Protocol
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from alogix.auth.sessions import issue_session
from alogix.auth.users import create_user, get_user_by_email
from alogix.auth.utils import consume_verification, generate_token, hash_token, safe_callback_url, store_verification
from alogix.config import AuthConfig
from alogix.errors import InvalidInput
from alogix.models import utcnow

logger = logging.getLogger(__name__)

VERIFY_PATH = "/api/auth/magic-link/verify"


def _identifier(token: str) -> str:
    return f"magic-link:{hash_token(token)}"


class EmailSender(Protocol):
    async def send_magic_link(self, email: str, url: str) -> None: ...


class LoggingEmailSender:
    """
    Development sender: writes the link to the log instead of mailing it.

    The link is a bearer credential, so it only appears at DEBUG level.
    """

    async def send_magic_link(self, email: str, url: str) -> None:
        logger.info("Magic link issued for %s", email)
        logger.debug("Magic link for %s: %s", email, url)


async def request_magic_link(
    db: AsyncSession,
    config: AuthConfig,
    sender: EmailSender,
    email: str,
    name: str | None = None,
    callback_url: str | None = None,
) -> None:
    token = generate_token()
    callback = safe_callback_url(config, callback_url)
    await store_verification(
        db,
        _identifier(token),
        {"email": email, "name": name, "callback_url": callback},
        config.magic_link_ttl_seconds,
    )
    url = f"{config.base_url}{VERIFY_PATH}?" + urlencode({"token": token})
    await sender.send_magic_link(email, url)


async def verify_magic_link(
    db: AsyncSession,
    config: AuthConfig,
    token: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, str]:
    """
    Consume *token* and sign its owner in.

    Returns ``(session_token, callback_url)``. Unknown, reused or expired
    tokens raise InvalidInput.
    """
    data = await consume_verification(db, _identifier(token))
    if data is None:
        raise InvalidInput("Invalid or expired token")

    user = await get_user_by_email(db, data["email"])
    if user is None:
        user = await create_user(db, data["email"], name=data.get("name"), email_verified=True)
        logger.info("User created via magic link: %s", user.id)
    elif not user.email_verified:
        user.email_verified = True
        user.updated_at = utcnow()

    session_token = await issue_session(
        db, config, user, ip_address=ip_address, user_agent=user_agent
    )
    return session_token, data.get("callback_url") or "/"
