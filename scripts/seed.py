"""Development data seeder: users, blog posts and a comment wall."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from alogix.cache import cache
from alogix.database import engine, async_session, Base
from alogix.models import BlogPost, Comment, User
from alogix.services.post_service import slugify

TOPICS = ["python", "fastapi", "postgresql", "redis", "docker", "oauth",
          "react", "typescript", "testing", "performance", "security", "design"]

SAMPLE_COMMENTS = [
    "Great write-up, thanks!",
    "This cleared up a lot for me.",
    "Looking forward to the next post.",
    "Could you expand on the second section?",
    "Bookmarked.",
]


async def seed(small: bool = False, reset: bool = False):
    num_users = 5 if small else 25
    num_posts = 10 if small else 200
    num_comments = 20 if small else 500

    print(f"Seeding: {num_users} users, {num_posts} posts, {num_comments} comments")
    start = time.perf_counter()

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    now = datetime.now(timezone.utc)
    async with async_session() as session:
        users = []
        for i in range(num_users):
            user = User(
                name=f"User {i}",
                email=f"user_{i:04d}@example.com",
                email_verified=True,
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        for i in range(num_posts):
            topic = random.choice(TOPICS)
            title = f"Post {i}: Notes on {topic}"
            session.add(BlogPost(
                title=title,
                slug=slugify(title),
                content=f"# {title}\n\n" + f"Some thoughts about {topic}. " * 30,
                created_at=now - timedelta(days=random.randint(0, 365)),
            ))
        await session.flush()
        print(f"  Created {num_posts} posts")

        for _ in range(num_comments):
            session.add(Comment(
                content=random.choice(SAMPLE_COMMENTS),
                user_id=random.choice(users).id,
                created_at=now - timedelta(minutes=random.randint(0, 60 * 24 * 30)),
            ))
        await session.commit()
        print(f"  Created {num_comments} comments")

    # Cached listings are stale after a reseed.
    await cache.connect()
    await cache.invalidate_posts()
    await cache.invalidate_comments()
    await cache.disconnect()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the Alogix database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, reset=args.reset))


if __name__ == "__main__":
    main()
