from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from datetime import datetime


# --- Identity ---

class Identity(BaseModel):
    """The authenticated user behind a request. Resolved per request, never cached."""

    id: str
    name: str
    email: str | None = None
    image: str | None = None
    model_config = ConfigDict(frozen=True)


class UserPublic(BaseModel):
    id: str
    name: str
    image: str | None = None
    model_config = ConfigDict(from_attributes=True)


# --- Comment ---

class CommentInput(BaseModel):
    """
    Validated body for comment create/update.

    ``content`` must be a JSON string (no coercion from numbers/booleans)
    that is non-empty once surrounding whitespace is stripped; the stripped
    text is what gets stored.
    """

    content: StrictStr = Field(min_length=1)
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class CommentResponse(BaseModel):
    id: str
    content: str
    user_id: str
    created_at: datetime
    updated_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class CommentWithUser(CommentResponse):
    user: UserPublic | None = None


class DeleteResponse(BaseModel):
    success: bool = True


# --- BlogPost ---

class PostSummary(BaseModel):
    id: str
    title: str
    slug: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PostDetail(PostSummary):
    content: str


class HomeResponse(BaseModel):
    posts: list[PostSummary] = []


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    page_size: int
    pages: int


# --- Auth ---

class MagicLinkRequest(BaseModel):
    email: str = Field(max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: str | None = Field(None, max_length=150)
    callback_url: str | None = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class SocialSignInRequest(BaseModel):
    provider: str
    callback_url: str | None = None


class SocialSignInResponse(BaseModel):
    url: str
    redirect: bool = True


class SessionResponse(BaseModel):
    user: Identity


class StatusResponse(BaseModel):
    status: bool = True


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_posts: int
    total_comments: int
    total_users: int
    active_sessions: int
    cache_info: dict = {}
