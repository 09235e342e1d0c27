from typing import Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from starlette.requests import cookie_parser

from alogix.auth.utils import hash_token, is_expired
from alogix.config import AuthConfig
from alogix.models import Session
from alogix.schemas import Identity


class SessionResolver:
    """
    Turns inbound request headers into the acting :class:`Identity`.

    The credential is an ``Authorization: Bearer`` token when that header
    is present, otherwise the session cookie named in the config. Having no
    session is an ordinary outcome and yields ``None``; database failures
    propagate to the caller.
    """

    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    @property
    def config(self) -> AuthConfig:
        return self._config

    def extract_token(self, headers: Mapping[str, str]) -> str | None:
        lowered = {k.lower(): v for k, v in headers.items()}

        authorization = lowered.get("authorization")
        if authorization:
            scheme, _, value = authorization.partition(" ")
            if scheme.lower() == "bearer" and value.strip():
                return value.strip()
            return None

        cookie_header = lowered.get("cookie")
        if cookie_header:
            return cookie_parser(cookie_header).get(self._config.cookie_name) or None
        return None

    async def resolve(self, db: AsyncSession, headers: Mapping[str, str]) -> Identity | None:
        token = self.extract_token(headers)
        if token is None:
            return None

        q = (
            select(Session)
            .where(Session.token_hash == hash_token(token))
            .options(joinedload(Session.user))
        )
        session = (await db.execute(q)).unique().scalar_one_or_none()
        if session is None or session.user is None or is_expired(session.expires_at):
            return None

        user = session.user
        return Identity(id=user.id, name=user.name, email=user.email, image=user.image)
