"""
Authentication tests: session resolution, magic-link sign-in, social
sign-in against stubbed providers, and sign-out.
"""
import logging
from datetime import timedelta
from http.cookies import SimpleCookie
from urllib.parse import parse_qs, urlsplit

import httpx
import pydantic
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.auth.magic_link import LoggingEmailSender
from alogix.auth.resolver import SessionResolver
from alogix.auth.utils import hash_token, safe_callback_url
from alogix.config import auth_config
from alogix.dependencies import get_http_client
from alogix.main import app
from alogix.models import Account, Session, User, Verification, utcnow

COOKIE = auth_config.cookie_name


def _session_cookie(resp: httpx.Response) -> str | None:
    for header in resp.headers.get_list("set-cookie"):
        jar = SimpleCookie()
        jar.load(header)
        if COOKIE in jar:
            return jar[COOKIE].value
    return None


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_auth_config_is_immutable():
    with pytest.raises(pydantic.ValidationError):
        auth_config.base_url = "https://elsewhere.example"


def test_unconfigured_providers_are_disabled():
    assert auth_config.provider("github") is None
    assert auth_config.provider("gitlab") is None


@pytest.mark.parametrize(
    "url, expected",
    [
        (None, "/"),
        ("/comments", "/comments"),
        ("//evil.example/x", "/"),
        ("https://evil.example/x", "/"),
        ("http://localhost:3200/blog", "http://localhost:3200/blog"),
        ("javascript:alert(1)", "/"),
    ],
)
def test_safe_callback_url(url, expected):
    assert safe_callback_url(auth_config, url) == expected


# ---------------------------------------------------------------------------
# Session resolver
# ---------------------------------------------------------------------------

def test_extract_token_prefers_bearer():
    resolver = SessionResolver(auth_config)
    headers = {"Authorization": "Bearer abc", "Cookie": f"{COOKIE}=def"}
    assert resolver.extract_token(headers) == "abc"
    assert resolver.extract_token({"cookie": f"other=1; {COOKIE}=def"}) == "def"
    assert resolver.extract_token({"authorization": "Basic dXNlcjpwdw=="}) is None
    assert resolver.extract_token({}) is None


@pytest.mark.asyncio
async def test_resolve_returns_identity(db_session: AsyncSession, sign_in):
    alice = await sign_in("alice")
    identity = await SessionResolver(auth_config).resolve(db_session, alice.headers)
    assert identity is not None
    assert identity.id == alice.id
    assert identity.email == "alice@example.com"


@pytest.mark.asyncio
async def test_resolve_anonymous(db_session: AsyncSession):
    resolver = SessionResolver(auth_config)
    assert await resolver.resolve(db_session, {}) is None
    assert await resolver.resolve(db_session, {"Authorization": "Bearer nope"}) is None


@pytest.mark.asyncio
async def test_expired_session_is_anonymous(db_session: AsyncSession, sign_in):
    alice = await sign_in("alice")
    await db_session.execute(
        update(Session)
        .where(Session.token_hash == hash_token(alice.token))
        .values(expires_at=utcnow() - timedelta(seconds=1))
    )
    await db_session.commit()

    assert await SessionResolver(auth_config).resolve(db_session, alice.headers) is None


@pytest.mark.asyncio
async def test_session_endpoint(async_client: AsyncClient, sign_in):
    alice = await sign_in("alice")
    resp = await async_client.get("/api/auth/session", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == alice.id

    anon = await async_client.get("/api/auth/session")
    assert anon.status_code == 200
    assert anon.json() is None


@pytest.mark.asyncio
async def test_session_cookie_is_accepted(async_client: AsyncClient, sign_in):
    alice = await sign_in("alice")
    resp = await async_client.get("/api/auth/session", headers={"Cookie": f"{COOKIE}={alice.token}"})
    assert resp.json()["user"]["name"] == "alice"


# ---------------------------------------------------------------------------
# Sign-out
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sign_out_revokes_session(async_client: AsyncClient, sign_in):
    alice = await sign_in("alice")
    resp = await async_client.post("/api/auth/sign-out", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    after = await async_client.get("/api/auth/session", headers=alice.headers)
    assert after.json() is None
    denied = await async_client.post("/api/comments", json={"content": "hi"}, headers=alice.headers)
    assert denied.status_code == 401


@pytest.mark.asyncio
async def test_sign_out_when_anonymous(async_client: AsyncClient):
    resp = await async_client.post("/api/auth/sign-out")
    assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Magic link
# ---------------------------------------------------------------------------

async def _request_link(client: AsyncClient, outbox, **body) -> str:
    resp = await client.post("/api/auth/sign-in/magic-link", json=body)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"status": True}
    return _query(outbox[-1][1])["token"]


@pytest.mark.asyncio
async def test_magic_link_sign_in_creates_user(async_client: AsyncClient, email_outbox, db_session):
    token = await _request_link(
        async_client, email_outbox, email="Carol@Example.com", callback_url="/comments"
    )
    email, url = email_outbox[0]
    assert email == "carol@example.com"
    assert url.startswith(f"{auth_config.base_url}/api/auth/magic-link/verify?")

    resp = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    assert resp.status_code == 302
    assert resp.headers["location"] == "/comments"
    session_token = _session_cookie(resp)
    assert session_token

    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {session_token}"}
    )
    assert me.json()["user"]["email"] == "carol@example.com"
    assert me.json()["user"]["name"] == "carol"

    user = (await db_session.execute(select(User).where(User.email == "carol@example.com"))).scalar_one()
    assert user.email_verified is True


@pytest.mark.asyncio
async def test_magic_link_is_single_use(async_client: AsyncClient, email_outbox):
    token = await _request_link(async_client, email_outbox, email="dan@example.com")
    first = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    assert first.status_code == 302
    second = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    assert second.status_code == 400
    assert second.json() == {"error": "Invalid or expired token"}


@pytest.mark.asyncio
async def test_magic_link_expired(async_client: AsyncClient, email_outbox, db_session):
    token = await _request_link(async_client, email_outbox, email="erin@example.com")
    await db_session.execute(update(Verification).values(expires_at=utcnow() - timedelta(seconds=1)))
    await db_session.commit()

    resp = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_magic_link_signs_in_existing_user(async_client: AsyncClient, email_outbox, sign_in):
    alice = await sign_in("alice")
    token = await _request_link(async_client, email_outbox, email="alice@example.com")
    resp = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    session_token = _session_cookie(resp)

    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {session_token}"}
    )
    assert me.json()["user"]["id"] == alice.id


@pytest.mark.asyncio
async def test_magic_link_untrusted_callback_falls_back_to_root(async_client: AsyncClient, email_outbox):
    token = await _request_link(
        async_client, email_outbox, email="fay@example.com", callback_url="https://evil.example/"
    )
    resp = await async_client.get("/api/auth/magic-link/verify", params={"token": token})
    assert resp.headers["location"] == "/"


@pytest.mark.asyncio
async def test_magic_link_rejects_bad_email(async_client: AsyncClient, email_outbox):
    resp = await async_client.post("/api/auth/sign-in/magic-link", json={"email": "not-an-email"})
    assert resp.status_code == 422
    assert email_outbox == []


# ---------------------------------------------------------------------------
# Social sign-in
# ---------------------------------------------------------------------------

class FakeProviders:
    """Answers the token, profile and email endpoints of GitHub and Google."""

    def __init__(self) -> None:
        self.github_user = {"id": 4242, "login": "octo", "name": "Octo Cat",
                            "email": "octo@example.com", "avatar_url": "https://img/octo.png"}
        self.github_emails = [{"email": "octo@example.com", "primary": True, "verified": True}]
        self.google_user = {"sub": "g-1", "email": "gina@example.com", "email_verified": True,
                            "name": "Gina", "picture": "https://img/gina.png"}
        self.token_status = 200
        self.token_body = {"access_token": "provider-token"}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in ("https://github.com/login/oauth/access_token", "https://oauth2.googleapis.com/token"):
            return httpx.Response(self.token_status, json=self.token_body)
        if url == "https://api.github.com/user":
            return httpx.Response(200, json=self.github_user)
        if url == "https://api.github.com/user/emails":
            return httpx.Response(200, json=self.github_emails)
        if url == "https://openidconnect.googleapis.com/v1/userinfo":
            return httpx.Response(200, json=self.google_user)
        return httpx.Response(404)


@pytest_asyncio.fixture
async def providers():
    """Enable both providers and route their HTTP calls to FakeProviders."""
    fake = FakeProviders()
    enabled = tuple(
        p.model_copy(update={"client_id": f"{p.id}-id", "client_secret": f"{p.id}-secret"})
        for p in auth_config.providers
    )
    original_config = app.state.auth_config
    app.state.auth_config = auth_config.model_copy(update={"providers": enabled})

    async def _client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
            yield client

    app.dependency_overrides[get_http_client] = _client
    yield fake
    app.dependency_overrides.pop(get_http_client, None)
    app.state.auth_config = original_config


async def _social_sign_in(client: AsyncClient, provider: str, callback_url: str = "/comments") -> httpx.Response:
    start = await client.post(
        "/api/auth/sign-in/social", json={"provider": provider, "callback_url": callback_url}
    )
    assert start.status_code == 200, start.text
    assert start.json()["redirect"] is True
    state = _query(start.json()["url"])["state"]
    return await client.get(f"/api/auth/callback/{provider}", params={"code": "abc", "state": state})


@pytest.mark.asyncio
async def test_social_start_builds_authorize_url(async_client: AsyncClient, providers):
    resp = await async_client.post("/api/auth/sign-in/social", json={"provider": "github"})
    url = resp.json()["url"]
    assert url.startswith("https://github.com/login/oauth/authorize?")
    params = _query(url)
    assert params["client_id"] == "github-id"
    assert params["redirect_uri"] == f"{auth_config.base_url}/api/auth/callback/github"
    assert params["state"]


@pytest.mark.asyncio
async def test_github_sign_in_creates_user_and_account(async_client: AsyncClient, providers, db_session):
    resp = await _social_sign_in(async_client, "github")
    assert resp.status_code == 302
    assert resp.headers["location"] == "/comments"

    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {_session_cookie(resp)}"}
    )
    user = me.json()["user"]
    assert user["name"] == "Octo Cat"
    assert user["image"] == "https://img/octo.png"

    account = (await db_session.execute(select(Account))).scalar_one()
    assert account.provider_id == "github"
    assert account.account_id == "4242"
    assert account.user_id == user["id"]


@pytest.mark.asyncio
async def test_github_private_email_uses_emails_endpoint(async_client: AsyncClient, providers):
    providers.github_user = {**providers.github_user, "email": None}
    resp = await _social_sign_in(async_client, "github")
    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {_session_cookie(resp)}"}
    )
    assert me.json()["user"]["email"] == "octo@example.com"


@pytest.mark.asyncio
async def test_google_sign_in_links_existing_email(async_client: AsyncClient, providers, sign_in):
    gina = await sign_in("gina", email="gina@example.com")
    resp = await _social_sign_in(async_client, "google")
    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {_session_cookie(resp)}"}
    )
    assert me.json()["user"]["id"] == gina.id
    # Provider profile overrides the stored display data on sign-in.
    assert me.json()["user"]["name"] == "Gina"
    assert me.json()["user"]["image"] == "https://img/gina.png"


@pytest.mark.asyncio
async def test_repeat_social_sign_in_reuses_account(async_client: AsyncClient, providers, db_session):
    first = await _social_sign_in(async_client, "github")
    providers.github_user = {**providers.github_user, "name": "Renamed Cat"}
    second = await _social_sign_in(async_client, "github")
    assert first.status_code == second.status_code == 302

    users = (await db_session.execute(select(User))).scalars().all()
    assert len(users) == 1
    assert users[0].name == "Renamed Cat"


@pytest.mark.asyncio
async def test_social_callback_rejects_unknown_state(async_client: AsyncClient, providers):
    resp = await async_client.get("/api/auth/callback/github", params={"code": "abc", "state": "forged"})
    assert resp.status_code == 400
    assert providers.requests == []


@pytest.mark.asyncio
async def test_social_state_is_bound_to_provider(async_client: AsyncClient, providers):
    start = await async_client.post("/api/auth/sign-in/social", json={"provider": "github"})
    state = _query(start.json()["url"])["state"]
    resp = await async_client.get("/api/auth/callback/google", params={"code": "abc", "state": state})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_unsupported_provider(async_client: AsyncClient, providers):
    resp = await async_client.post("/api/auth/sign-in/social", json={"provider": "gitlab"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Unsupported provider: gitlab"}


@pytest.mark.asyncio
async def test_unconfigured_provider(async_client: AsyncClient):
    resp = await async_client.post("/api/auth/sign-in/social", json={"provider": "github"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_provider_failure_is_502(async_client: AsyncClient, providers, db_session):
    providers.token_status = 500
    resp = await _social_sign_in(async_client, "github")
    assert resp.status_code == 502
    assert resp.json() == {"error": "Authentication provider error"}
    assert (await db_session.execute(select(User))).scalars().all() == []


@pytest.mark.asyncio
async def test_token_endpoint_returning_non_object_is_502(async_client: AsyncClient, providers):
    providers.token_body = ["unexpected"]
    resp = await _social_sign_in(async_client, "google")
    assert resp.status_code == 502
    assert resp.json() == {"error": "Authentication provider error"}


@pytest.mark.asyncio
async def test_github_emails_endpoint_returning_non_list_is_502(async_client: AsyncClient, providers):
    providers.github_emails = {"message": "Requires authentication"}
    resp = await _social_sign_in(async_client, "github")
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_profile_endpoint_returning_non_object_is_502(async_client: AsyncClient, providers, db_session):
    providers.google_user = "not a profile"
    resp = await _social_sign_in(async_client, "google")
    assert resp.status_code == 502
    assert (await db_session.execute(select(User))).scalars().all() == []


# ---------------------------------------------------------------------------
# Account linking requires a provider-verified email
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_google_unverified_email_does_not_sign_in_as_existing_user(
    async_client: AsyncClient, providers, sign_in, db_session
):
    gina = await sign_in("gina", email="gina@example.com")
    providers.google_user = {**providers.google_user, "sub": "attacker-1", "email_verified": False,
                             "name": "Not Gina"}

    resp = await _social_sign_in(async_client, "google")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Account not linked"}
    assert _session_cookie(resp) is None

    assert (await db_session.execute(select(Account))).scalars().all() == []
    user = (await db_session.execute(select(User).where(User.id == gina.id))).scalar_one()
    assert user.name == "gina"


@pytest.mark.asyncio
async def test_unverified_email_cannot_edit_existing_users_comments(
    async_client: AsyncClient, providers, sign_in
):
    gina = await sign_in("gina", email="gina@example.com")
    created = await async_client.post("/api/comments", json={"content": "mine"}, headers=gina.headers)
    comment_id = created.json()["id"]

    providers.google_user = {**providers.google_user, "sub": "attacker-1", "email_verified": False}
    resp = await _social_sign_in(async_client, "google")
    token = _session_cookie(resp)
    headers = {"Authorization": f"Bearer {token}"} if token else {}

    edit = await async_client.patch(f"/api/comments/{comment_id}", json={"content": "pwned"}, headers=headers)
    assert edit.status_code in (401, 403)
    stored = await async_client.get(f"/api/comments/{comment_id}")
    assert stored.json()["content"] == "mine"


@pytest.mark.asyncio
async def test_github_public_email_verification_comes_from_emails_endpoint(
    async_client: AsyncClient, providers, sign_in
):
    await sign_in("octo", email="octo@example.com")
    providers.github_emails = [{"email": "octo@example.com", "primary": True, "verified": False}]

    resp = await _social_sign_in(async_client, "github")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Account not linked"}
    assert any(str(r.url) == "https://api.github.com/user/emails" for r in providers.requests)


@pytest.mark.asyncio
async def test_github_verified_email_links_existing_user(async_client: AsyncClient, providers, sign_in):
    octo = await sign_in("octo", email="octo@example.com")
    resp = await _social_sign_in(async_client, "github")
    assert resp.status_code == 302

    me = await async_client.get(
        "/api/auth/session", headers={"Authorization": f"Bearer {_session_cookie(resp)}"}
    )
    assert me.json()["user"]["id"] == octo.id


@pytest.mark.asyncio
async def test_unverified_email_still_creates_new_user(async_client: AsyncClient, providers, db_session):
    providers.google_user = {**providers.google_user, "email_verified": False}
    resp = await _social_sign_in(async_client, "google")
    assert resp.status_code == 302

    user = (await db_session.execute(select(User))).scalar_one()
    assert user.email == "gina@example.com"
    assert user.email_verified is False


# ---------------------------------------------------------------------------
# Development email sender
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_logging_sender_keeps_link_out_of_info_logs(caplog):
    url = f"{auth_config.base_url}/api/auth/magic-link/verify?token=secret-token"

    with caplog.at_level(logging.INFO, logger="alogix.auth.magic_link"):
        await LoggingEmailSender().send_magic_link("hal@example.com", url)
    assert "hal@example.com" in caplog.text
    assert "secret-token" not in caplog.text

    caplog.clear()
    with caplog.at_level(logging.DEBUG, logger="alogix.auth.magic_link"):
        await LoggingEmailSender().send_magic_link("hal@example.com", url)
    assert "secret-token" in caplog.text
