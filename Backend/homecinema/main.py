import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from homecinema.core.config import Settings, settings as default_settings
from homecinema.core.errors import RangeNotSatisfiable
from homecinema.core.logger import configure_logging
from homecinema.core.security import CredentialTable, get_current_user
from homecinema.services.access import AccessPolicy
from homecinema.services.library import DirectoryLister
from homecinema.services.paths import PathResolver
from homecinema.services.streaming import RangeStreamer
from homecinema.services.subtitles import SubtitleBridge
from homecinema.services.tags import TagStore

# Import API routers
from homecinema.api.v1 import files as files_router
from homecinema.api.v1 import stream as stream_router
from homecinema.api.v1 import subtitles as subtitles_router
from homecinema.api.v1 import tags as tags_router
from homecinema.api.v1 import users as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tags are read once at startup and written back after every change
    app.state.tag_store.load()
    logger.info("Media root: %s", app.state.resolver.root)
    yield


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and its services from `settings`.
    """
    if settings is None:
        settings = default_settings
    configure_logging(settings.LOG_LEVEL)

    # Ensure the root directory for media files exists on the server.
    os.makedirs(settings.MEDIA_ROOT_PATH, exist_ok=True)

    app = FastAPI(title="Home Cinema API", lifespan=lifespan)

    resolver = PathResolver(settings.MEDIA_ROOT_PATH)
    policy = AccessPolicy(settings.HIDDEN_FOLDERS, settings.GATED_FOLDERS)
    tag_store = TagStore(settings.TAGS_FILE)
    app.state.settings = settings
    app.state.credentials = CredentialTable(settings.USERS)
    app.state.resolver = resolver
    app.state.policy = policy
    app.state.tag_store = tag_store
    app.state.lister = DirectoryLister(resolver, policy, tag_store)
    app.state.streamer = RangeStreamer(resolver, policy, tag_store, settings.STREAM_CHUNK_SIZE)
    app.state.subtitles = SubtitleBridge(
        settings.SUBTITLE_CACHE_DIR,
        ffmpeg_bin=settings.FFMPEG_BIN,
        ffprobe_bin=settings.FFPROBE_BIN,
        timeout=settings.TOOL_TIMEOUT,
        grace=settings.KILL_GRACE_PERIOD,
    )
    if not len(app.state.credentials):
        logger.warning("No users configured: every request will be rejected. Set USERS.")

    # Configure CORS (Cross-Origin Resource Sharing)
    # Pre-flight requests are answered here, before authentication runs.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Range", "X-Folder-Key"],
        expose_headers=["Content-Length", "Content-Range", "Accept-Ranges", "Content-Disposition"],
    )

    @app.exception_handler(RangeNotSatisfiable)
    async def range_not_satisfiable(request: Request, exc: RangeNotSatisfiable):
        # 416 carries no body, only the size of the resource
        return Response(status_code=exc.status_code, headers=exc.headers)

    @app.get("/", dependencies=[Depends(get_current_user)])
    async def root():
        """
        Root endpoint to check if the API is running.
        """
        return {"message": "Welcome to Home Cinema API!"}

    # Include API Routers, every one of them behind Basic auth
    for router in (
            users_router.router,
            files_router.router,
            stream_router.router,
            subtitles_router.router,
            tags_router.router,
    ):
        app.include_router(router, prefix="/api", dependencies=[Depends(get_current_user)])

    return app
