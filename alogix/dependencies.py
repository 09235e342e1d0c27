from typing import AsyncIterator

import httpx
from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.auth.magic_link import EmailSender
from alogix.auth.resolver import SessionResolver
from alogix.config import AuthConfig, settings
from alogix.database import get_db
from alogix.schemas import Identity


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates pagination
    query parameters.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    offset:
        Computed SQL OFFSET derived from *page* and *page_size*.
    """

    def __init__(
        self,
        page: int = Query(
            1,
            ge=1,
            description="Page number (1-based).",
        ),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_session_resolver(request: Request) -> SessionResolver:
    return request.app.state.session_resolver


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


async def get_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    resolver: SessionResolver = Depends(get_session_resolver),
) -> Identity | None:
    """
    The identity acting on this request, or None when anonymous.

    Never raises for a missing session; endpoints that need one hand the
    None to the mutation guard, which rejects it.
    """
    return await resolver.resolve(db, request.headers)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Outbound HTTP client for identity-provider calls."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        yield client
