"""Main FastAPI application for ScriptVision."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables using centralized loader
from scriptvision.core.env_loader import ensure_env_loaded
ensure_env_loaded()

from scriptvision.api.routers import script_images
from scriptvision.core.config import ScriptVisionConfig, get_config, set_config
from scriptvision.core.constants import PROJECT_NAME, VERSION, StreamErrorCode
from scriptvision.core.exceptions import (
    AuthenticationError,
    GenerationConflictError,
    InputValidationError,
    PlanningError,
    ScriptVisionError,
)
from scriptvision.core.logging_config import LogLevel, get_logger, route_server_logs
from scriptvision.llm.api_clients import OpenAIClient
from scriptvision.pipelines.script_images import ScriptImagesService
from scriptvision.streaming.channel import DeliveryChannel
from scriptvision.streaming.sessions import GenerationLockManager, SessionManager
from scriptvision.streaming.store import StateStore, create_store

logger = get_logger("api.main")


def _build_openai_client(config: ScriptVisionConfig) -> Optional[OpenAIClient]:
    provider = config.image_provider
    try:
        return OpenAIClient(base_url=provider.base_url, timeout=provider.timeout, api_key_env=provider.api_key_env)
    except ValueError as e:
        logger.warning(f"OpenAI client unavailable: {e}")
        return None


async def _session_gc(app: FastAPI) -> None:
    """Periodically drop expired sessions and stale generation locks."""
    state = app.state
    interval = state.config.streaming.cleanup_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await state.sessions.cleanup_expired()
            await state.locks.release_stale(state.config.streaming.max_connection_seconds)
        except ScriptVisionError as e:
            logger.error(f"Session cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    gc_task = asyncio.create_task(_session_gc(app))
    logger.info(f"{PROJECT_NAME} API started ({app.state.config.store.backend} store)")
    try:
        yield
    finally:
        gc_task.cancel()
        await asyncio.gather(gc_task, return_exceptions=True)
        await app.state.channel.shutdown()
        await app.state.store.close()
        logger.info(f"{PROJECT_NAME} API stopped")


def _error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InputValidationError)
    async def validation_error_handler(request: Request, exc: InputValidationError):
        return _error_response(400, "Invalid parameters", errors=exc.errors, warnings=exc.warnings)

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError):
        return _error_response(401, exc.message)

    @app.exception_handler(GenerationConflictError)
    async def conflict_error_handler(request: Request, exc: GenerationConflictError):
        return _error_response(
            409,
            "Image generation already in progress for this project",
            code=StreamErrorCode.GENERATION_IN_PROGRESS.value,
            projectId=exc.project_id,
        )

    @app.exception_handler(PlanningError)
    async def planning_error_handler(request: Request, exc: PlanningError):
        logger.error(f"Planning failed on {request.url.path}: {exc}")
        return _error_response(502, "Failed to plan scenes for this script", error=_internal(app, exc))

    @app.exception_handler(ScriptVisionError)
    async def internal_error_handler(request: Request, exc: ScriptVisionError):
        logger.error(f"Request failed on {request.url.path}: {exc}")
        return _error_response(500, "Failed to generate images from script", error=_internal(app, exc))


def _internal(app: FastAPI, exc: Exception) -> Optional[str]:
    """Error text for responses; hidden outside development."""
    return str(exc) if app.state.config.server.is_development else None


def create_app(
    config: Optional[ScriptVisionConfig] = None,
    image_client: Any = None,
    text_client: Any = None,
    store: Optional[StateStore] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Application config; defaults to the global config
        image_client: Image provider; defaults to an OpenAIClient from the environment
        text_client: Text provider for generative planning; defaults to the image client
        store: Session/lock store; defaults to the configured backend
    """
    config = config or get_config()
    set_config(config)

    if image_client is None:
        image_client = _build_openai_client(config)
    if text_client is None:
        text_client = image_client if isinstance(image_client, OpenAIClient) else None

    store = store or create_store(config.store)
    service = ScriptImagesService(config, image_client=image_client, text_client=text_client)
    sessions = SessionManager(store, ttl_seconds=config.streaming.session_ttl_seconds)
    locks = GenerationLockManager(store)

    app = FastAPI(
        title=f"{PROJECT_NAME} API",
        description="Timed image generation for narrated scripts",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.service = service
    app.state.sessions = sessions
    app.state.locks = locks
    app.state.channel = DeliveryChannel(service, sessions, locks, config.streaming)

    # Add rate limiter to app state
    app.state.limiter = script_images.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    _register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(script_images.router, prefix="/api/v1/script-images", tags=["script-images"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": f"{PROJECT_NAME} API", "version": VERSION}

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": VERSION,
            "activeSessions": await sessions.count(),
            "activeGenerations": await locks.active_count(),
        }

    return app


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    # Per-request access lines only at WARNING and above
    route_server_logs(LogLevel.WARNING)
    uvicorn.run(
        "scriptvision.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


if __name__ == "__main__":
    start_server()
