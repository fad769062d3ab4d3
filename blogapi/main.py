import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blogapi import __version__
from blogapi.cache import cache
from blogapi.config import settings
from blogapi.database import init_models
from blogapi.errors import install_error_handlers
from blogapi.middleware import TimingMiddleware
from blogapi.routers import auth, categories, metrics, posts, users
from blogapi.tokens import TokenConfig, TokenService

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.APP_ENV == "production" and settings.JWT_SECRET == "change-me-in-production":
        raise RuntimeError("JWT_SECRET must be set in production")
    await init_models()
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Cache unavailable, continuing without it: %s", exc)
    yield
    await cache.disconnect()


app = FastAPI(
    title="Blog API",
    description="Content publishing backend: auth, posts, categories and comments",
    version=__version__,
    lifespan=lifespan,
)

# Built once from settings and read-only afterwards.
app.state.token_service = TokenService(TokenConfig.from_settings(settings))

install_error_handlers(app)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(categories.router)
app.include_router(posts.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"success": True, "status": "healthy", "version": __version__}
