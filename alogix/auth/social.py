"""
Social sign-in (OAuth 2 authorization-code flow) for GitHub and Google.

``start_social_sign_in`` records a one-time ``state`` and returns the
provider's authorize URL. ``complete_social_sign_in`` runs on the callback:
it consumes the state, trades the code for an access token, fetches the
profile and maps it onto a local user, linking accounts by email when
account linking is enabled and the provider has verified the email.
"""
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from alogix.auth.sessions import issue_session
from alogix.auth.users import create_user, get_user_by_email
from alogix.auth.utils import consume_verification, generate_token, safe_callback_url, store_verification
from alogix.config import AuthConfig, OAuthProviderConfig
from alogix.errors import InvalidInput, UpstreamError
from alogix.models import Account, User, utcnow

logger = logging.getLogger(__name__)

GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


@dataclass(frozen=True)
class OAuthProfile:
    account_id: str
    email: str
    name: str | None
    image: str | None
    email_verified: bool = False


def _state_identifier(state: str) -> str:
    return f"oauth-state:{state}"


def redirect_uri(config: AuthConfig, provider: OAuthProviderConfig) -> str:
    return f"{config.base_url}/api/auth/callback/{provider.id}"


def _require_provider(config: AuthConfig, provider_id: str) -> OAuthProviderConfig:
    provider = config.provider(provider_id)
    if provider is None:
        raise InvalidInput(f"Unsupported provider: {provider_id}")
    return provider


async def start_social_sign_in(
    db: AsyncSession, config: AuthConfig, provider_id: str, callback_url: str | None = None
) -> str:
    provider = _require_provider(config, provider_id)
    state = generate_token()
    await store_verification(
        db,
        _state_identifier(state),
        {"provider": provider.id, "callback_url": safe_callback_url(config, callback_url)},
        config.oauth_state_ttl_seconds,
    )
    params = {
        "client_id": provider.client_id,
        "redirect_uri": redirect_uri(config, provider),
        "response_type": "code",
        "scope": " ".join(provider.scopes),
        "state": state,
    }
    return f"{provider.authorize_url}?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Provider HTTP calls
# ---------------------------------------------------------------------------

def _json_object(resp: httpx.Response) -> dict:
    data = resp.json()
    if not isinstance(data, dict):
        raise UpstreamError("Provider returned an unexpected response")
    return data


async def _exchange_code(
    http: httpx.AsyncClient, config: AuthConfig, provider: OAuthProviderConfig, code: str
) -> str:
    resp = await http.post(
        provider.token_url,
        data={
            "client_id": provider.client_id,
            "client_secret": provider.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri(config, provider),
        },
        headers={"Accept": "application/json"},
    )
    resp.raise_for_status()
    access_token = _json_object(resp).get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise UpstreamError("Provider did not return an access token")
    return access_token


async def _github_email(
    http: httpx.AsyncClient, headers: dict, public_email: str | None
) -> tuple[str | None, bool]:
    """
    Resolve the GitHub account's email and whether GitHub has verified it.

    ``/user`` never says whether its email is verified, so the flag always
    comes from ``/user/emails``. The public email wins when listed there;
    otherwise the primary address is used.
    """
    resp = await http.get(GITHUB_EMAILS_URL, headers=headers)
    resp.raise_for_status()
    emails = resp.json()
    if not isinstance(emails, list) or not all(isinstance(e, dict) for e in emails):
        raise UpstreamError("Provider returned an unexpected response")

    if public_email:
        for entry in emails:
            if str(entry.get("email") or "").lower() == public_email.lower():
                return public_email, entry.get("verified") is True
        return public_email, False
    for entry in emails:
        if entry.get("primary"):
            return entry.get("email"), entry.get("verified") is True
    if emails:
        return emails[0].get("email"), emails[0].get("verified") is True
    return None, False


async def fetch_profile(
    http: httpx.AsyncClient, provider: OAuthProviderConfig, access_token: str
) -> OAuthProfile:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    resp = await http.get(provider.userinfo_url, headers=headers)
    resp.raise_for_status()
    info = _json_object(resp)

    if provider.id == "github":
        public_email = info.get("email") if isinstance(info.get("email"), str) else None
        email, verified = await _github_email(http, headers, public_email)
        profile_id = info.get("id")
        name = info.get("name") or info.get("login")
        image = info.get("avatar_url")
    else:
        email, verified = info.get("email"), info.get("email_verified") is True
        profile_id = info.get("sub")
        name = info.get("name")
        image = info.get("picture")

    if profile_id is None or not email or not isinstance(email, str):
        raise UpstreamError("Provider profile is missing an id or email")
    return OAuthProfile(
        account_id=str(profile_id),
        email=email.lower(),
        name=name,
        image=image,
        email_verified=verified,
    )


# ---------------------------------------------------------------------------
# Account mapping
# ---------------------------------------------------------------------------

async def upsert_social_user(
    db: AsyncSession,
    config: AuthConfig,
    provider: OAuthProviderConfig,
    profile: OAuthProfile,
    access_token: str,
) -> User:
    q = (
        select(Account)
        .where(Account.provider_id == provider.id, Account.account_id == profile.account_id)
        .options(joinedload(Account.user))
    )
    account = (await db.execute(q)).unique().scalar_one_or_none()

    if account is not None:
        user = account.user
        account.access_token = access_token
    else:
        user = await get_user_by_email(db, profile.email)
        if user is not None and not config.account_linking_enabled:
            raise InvalidInput("An account with this email already exists")
        if user is not None and not profile.email_verified:
            logger.warning(
                "Refusing to link %s account %s: email not verified by provider",
                provider.id,
                profile.account_id,
            )
            raise InvalidInput("Account not linked")
        if user is None:
            user = await create_user(
                db,
                profile.email,
                name=profile.name,
                image=profile.image,
                email_verified=profile.email_verified,
            )
            logger.info("User created via %s: %s", provider.id, user.id)
        else:
            logger.info("Linking %s account to existing user %s", provider.id, user.id)
        db.add(
            Account(
                provider_id=provider.id,
                account_id=profile.account_id,
                access_token=access_token,
                user_id=user.id,
            )
        )

    if provider.override_user_info_on_sign_in:
        user.name = profile.name or user.name
        user.image = profile.image or user.image
        user.updated_at = utcnow()
    if profile.email_verified:
        user.email_verified = True

    await db.flush()
    return user


async def complete_social_sign_in(
    db: AsyncSession,
    config: AuthConfig,
    http: httpx.AsyncClient,
    provider_id: str,
    code: str,
    state: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, str]:
    """
    Finish the OAuth dance. Returns ``(session_token, callback_url)``.

    Bad or replayed state raises InvalidInput; provider failures raise
    UpstreamError after being logged.
    """
    provider = _require_provider(config, provider_id)

    stored = await consume_verification(db, _state_identifier(state))
    if stored is None or stored.get("provider") != provider.id:
        raise InvalidInput("Invalid or expired state")

    try:
        access_token = await _exchange_code(http, config, provider, code)
        profile = await fetch_profile(http, provider, access_token)
    except UpstreamError as exc:
        logger.warning("[OAUTH_%s] unusable provider response: %s", provider.id.upper(), exc)
        raise UpstreamError() from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("[OAUTH_%s] provider request failed: %s", provider.id.upper(), exc)
        raise UpstreamError() from exc

    user = await upsert_social_user(db, config, provider, profile, access_token)
    session_token = await issue_session(
        db, config, user, ip_address=ip_address, user_agent=user_agent
    )
    return session_token, stored.get("callback_url") or "/"
