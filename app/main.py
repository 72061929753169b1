import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .friendship import routers as friend_router
from .chat import routers as chat_router
from .profiles import routers as profile_router

from .chat.service import ChatService
from .core.config import Settings, get_settings
from .core.dependencies import get_current_user_id
from .core.exceptions import register_exception_handlers
from .core.middleware import logging_middleware
from .core.supabase_client import create_supabase_client
from .friendship.service import RelationshipService
from .profiles.service import ProfileService
from .store.base import Store
from .store.feed import ChangeFeed
from .store.memory import MemoryStore
from .store.supabase_store import SupabaseStore
from .utils.logging_config import setup_logging

load_dotenv()
logger = logging.getLogger(__name__)


async def create_store(settings: Settings) -> Store:
    if settings.STORE_BACKEND == "memory":
        logger.warning("store_backend=memory, data is not persisted")
        return MemoryStore()
    if settings.STORE_BACKEND == "supabase":
        return SupabaseStore(await create_supabase_client(settings))
    raise RuntimeError(f"Unknown STORE_BACKEND {settings.STORE_BACKEND!r}")


def wire_services(app: FastAPI, store: Store, settings: Settings) -> None:
    feed = ChangeFeed(store)
    profiles = ProfileService(store)
    app.state.store = store
    app.state.profile_service = profiles
    app.state.relationship_service = RelationshipService(store, profiles, feed)
    app.state.chat_service = ChatService(
        store,
        profiles,
        feed,
        enrichment_timeout=settings.ENRICHMENT_TIMEOUT_SECONDS,
        media_bucket=settings.CHAT_MEDIA_BUCKET,
    )


def create_app(store: Optional[Store] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active_store = store or await create_store(settings)
        wire_services(app, active_store, settings)
        logger.info(f"app_started store={type(active_store).__name__}")
        try:
            yield
        finally:
            await app.state.chat_service.receipts.drain()
            await active_store.close()
            logger.info("app_stopped")

    app = FastAPI(lifespan=lifespan)
    app.include_router(friend_router.router, prefix="/friends", tags=["Friendship"])
    app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])
    app.include_router(profile_router.router, prefix="/profiles", tags=["Profiles"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(logging_middleware)
    register_exception_handlers(app)

    # For testing auth purposes
    @app.get("/protected")
    async def protected_route(me: str = Depends(get_current_user_id)):
        return {"message": f"Hello {me}, you are authenticated!"}

    return app


app = create_app()
