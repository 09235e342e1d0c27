import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.auth import magic_link, social
from alogix.auth.resolver import SessionResolver
from alogix.auth.sessions import clear_session_cookie, revoke_session, set_session_cookie
from alogix.config import AuthConfig
from alogix.database import get_db
from alogix.dependencies import (
    get_auth_config,
    get_email_sender,
    get_http_client,
    get_identity,
    get_session_resolver,
)
from alogix.schemas import (
    Identity,
    MagicLinkRequest,
    SessionResponse,
    SocialSignInRequest,
    SocialSignInResponse,
    StatusResponse,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_meta(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _signed_in_redirect(config: AuthConfig, session_token: str, callback_url: str) -> RedirectResponse:
    response = RedirectResponse(callback_url, status_code=302)
    set_session_cookie(response, config, session_token)
    return response


@router.get("/session", response_model=SessionResponse | None)
async def get_session(identity: Identity | None = Depends(get_identity)):
    if identity is None:
        return None
    return {"user": identity}


@router.post("/sign-in/magic-link", response_model=StatusResponse)
async def sign_in_magic_link(
    data: MagicLinkRequest,
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    sender: magic_link.EmailSender = Depends(get_email_sender),
):
    await magic_link.request_magic_link(
        db, config, sender, data.email, name=data.name, callback_url=data.callback_url
    )
    return {"status": True}


@router.get("/magic-link/verify", responses={302: {"description": "Signed in"}, 400: {}})
async def verify_magic_link(
    request: Request,
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
):
    session_token, callback_url = await magic_link.verify_magic_link(
        db, config, token, **_client_meta(request)
    )
    return _signed_in_redirect(config, session_token, callback_url)


@router.post("/sign-in/social", response_model=SocialSignInResponse)
async def sign_in_social(
    data: SocialSignInRequest,
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
):
    url = await social.start_social_sign_in(db, config, data.provider, data.callback_url)
    return {"url": url, "redirect": True}


@router.get("/callback/{provider}", responses={302: {"description": "Signed in"}, 400: {}, 502: {}})
async def social_callback(
    provider: str,
    request: Request,
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    session_token, callback_url = await social.complete_social_sign_in(
        db, config, http, provider, code, state, **_client_meta(request)
    )
    return _signed_in_redirect(config, session_token, callback_url)


@router.post("/sign-out", response_model=None)
async def sign_out(
    request: Request,
    db: AsyncSession = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    resolver: SessionResolver = Depends(get_session_resolver),
):
    token = resolver.extract_token(request.headers)
    if token is not None:
        await revoke_session(db, token)
    response = JSONResponse({"success": True})
    clear_session_cookie(response, config)
    return response
