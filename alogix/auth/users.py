from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alogix.models import User


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    name: str | None = None,
    image: str | None = None,
    email_verified: bool = False,
) -> User:
    """Insert a user; the name falls back to the local part of the email."""
    user = User(
        email=email.lower(),
        name=name or email.split("@", 1)[0],
        image=image,
        email_verified=email_verified,
    )
    db.add(user)
    await db.flush()
    return user
