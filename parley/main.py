"""
FastAPI Application Entry Point.
Initializes the FastAPI app with middleware, CORS, and routes.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from parley.config import settings
from parley.core.cache import cache
from parley.core.database import engine
from parley.core.errors import ChatError, ErrorKind
from parley.core.websocket import connection_manager

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    await cache.connect()
    logger.info(f"Parley server starting ({settings.environment})")
    yield
    # Shutdown
    await cache.disconnect()
    await engine.dispose()


# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)


# Initialize FastAPI application
app = FastAPI(
    title="Parley Chat Server",
    description="Direct and group chat backend with realtime delivery and key distribution",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter state and error handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Render domain errors as {"error": kind, "message": text}."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# CORS Middleware
# Socket.IO handles CORS for its own endpoint (cors_allowed_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.environment,
        "redis": cache.available,
        "local_connections": len(connection_manager.connections),
    }


# Include API routers
from parley.api.v1 import auth, conversations, friends, keys, messages, users  # noqa: E402

app.include_router(
    auth.router,
    prefix="/api/v1/auth",
    tags=["Authentication"]
)

app.include_router(
    users.router,
    prefix="/api/v1/users",
    tags=["Users"]
)

app.include_router(
    friends.router,
    prefix="/api/v1/friends",
    tags=["Friends"]
)

app.include_router(
    conversations.router,
    prefix="/api/v1/conversations",
    tags=["Conversations"]
)

app.include_router(
    messages.router,
    prefix="/api/v1/messages",
    tags=["Messages"]
)

app.include_router(
    keys.router,
    prefix="/api/v1/keys",
    tags=["Keys"]
)

# Save reference to FastAPI app (for testing)
fastapi_app = app

# Socket.IO wraps FastAPI: /socket.io/* goes to Socket.IO, everything else to FastAPI
app = connection_manager.get_asgi_app(fastapi_app)
