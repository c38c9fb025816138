import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException

from estate_chat.config import (
    APP_ADDR,
    APP_PORT,
    COMMIT_HASH,
    ENV,
    PRESENCE_BACKEND,
    REDIS_CHANNEL,
    REDIS_URL,
)
from estate_chat.database import close_db, get_db, init_db
from estate_chat.exceptions import ChatError
from estate_chat.logging_config import configure_logging
from estate_chat.models.api.envelope import ErrorEnvelope
from estate_chat.realtime.broadcast import BroadcastRouter
from estate_chat.realtime.presence import InMemoryPresenceRegistry, PresenceRegistry
from estate_chat.realtime.redis_presence import RedisPresenceRegistry
from estate_chat.routers.conversations import router as conversations_router
from estate_chat.routers.realtime import router as realtime_router

configure_logging()
logger = logging.getLogger(__name__)


def build_presence_registry(backend: str = PRESENCE_BACKEND) -> PresenceRegistry:
    """Pick the presence backend named by configuration."""
    if backend == "redis":
        return RedisPresenceRegistry.from_url(REDIS_URL, REDIS_CHANNEL)
    return InMemoryPresenceRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    await init_db()
    await app.state.presence.start()
    logger.info("Chat service started (presence: %s)", app.state.presence.backend)
    yield
    # Shutdown
    await app.state.presence.stop()
    await close_db()


app = FastAPI(
    title="Estate Chat",
    description="Realtime buyer/seller chat for marketplace listings",
    version=COMMIT_HASH or "dev",
    lifespan=lifespan,
)

presence = build_presence_registry()
app.state.presence = presence
app.state.broadcaster = BroadcastRouter(presence)


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    body = ErrorEnvelope(error=message, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    response = _error_response(exc.status_code, str(exc.detail), "http_error")
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    body: Dict[str, Any] = ErrorEnvelope(
        error="Request validation failed", code="validation_error"
    ).model_dump()
    body["details"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error", "internal_error")


# Include routers
app.include_router(conversations_router, prefix="/api/chat", tags=["chat"])
app.include_router(realtime_router, tags=["realtime"])


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Health check endpoint with database connectivity."""
    try:
        # Test database connection
        result = await db.execute(text("SELECT 1"))
        db_status = "connected" if result.scalar() == 1 else "error"
    except Exception:
        logger.exception("Health check database query failed")
        db_status = "disconnected"

    presence = app.state.presence
    presence_status = "connected" if presence.is_healthy else "disconnected"
    healthy = db_status == "connected" and presence.is_healthy

    return {
        "status": "healthy" if healthy else "degraded",
        "database": db_status,
        "presence": presence.backend,
        "presence_bus": presence_status,
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)
