import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alogix.auth.magic_link import LoggingEmailSender
from alogix.auth.resolver import SessionResolver
from alogix.cache import cache
from alogix.config import auth_config, settings
from alogix.database import create_tables, engine
from alogix.errors import install_error_handlers
from alogix.logging import setup_logging
from alogix.middleware import TimingMiddleware
from alogix.routers import auth, comments, metrics, posts

logger = logging.getLogger(__name__)

setup_logging(settings.DEBUG)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.APP_ENV == "development":
        await create_tables()
    await cache.connect()  # falls back to no-op caching without Redis
    logger.info("Alogix started (env=%s, base_url=%s)", settings.APP_ENV, auth_config.base_url)
    yield
    # Shutdown
    await cache.disconnect()
    await engine.dispose()


app = FastAPI(
    title="Alogix",
    description="Blog and community comments with social and magic-link sign-in",
    version="1.0.0",
    lifespan=lifespan,
)

# Built once; shared by reference with every request.
app.state.auth_config = auth_config
app.state.session_resolver = SessionResolver(auth_config)
app.state.email_sender = LoggingEmailSender()

install_error_handlers(app)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(auth_config.trusted_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(posts.router)
app.include_router(comments.router)
app.include_router(auth.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
