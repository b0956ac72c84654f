# main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api import admin
from api.middleware import ObservabilityMiddleware
from api.rate_limiter import limiter, rate_limit_exceeded_handler
from api.utils import mask_key
from slowapi.errors import RateLimitExceeded


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("auth-sync")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("=== Application Startup ===")

    logger.warning(
        "SUPABASE_URL=%s ANON=%s SERVICE=%s FUNCTION=%s",
        os.getenv("SUPABASE_URL", ""),
        mask_key(os.getenv("SUPABASE_ANON_KEY")),
        mask_key(os.getenv("SUPABASE_SERVICE_KEY")),
        os.getenv("AUTH_SYNC_FUNCTION", "create-auth-users"),
    )
    logger.info("=== Application Ready ===")

    yield

    logger.info("=== Application Shutdown ===")
    from api.dependencies import shutdown_clients
    shutdown_clients()
    logger.info("=== Shutdown Complete ===")


app = FastAPI(
    title="Auth Account Sync API",
    description="Admin surface for reconciling imported users with Supabase Auth identities.",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return rate_limit_exceeded_handler(request, exc)


# Handler global de exceções
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled exception: %s %s",
        request.method,
        request.url,
        exc_info=True
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# --- Configuração do CORS ---
ALLOWED_ORIGINS: List[str] = [
    "http://localhost:3000",
    "http://localhost:5173",
]

cors_origins_env = os.getenv("CORS_ORIGINS")
if cors_origins_env:
    for origin in cors_origins_env.split(","):
        origin = origin.strip()
        if origin and origin not in ALLOWED_ORIGINS:
            ALLOWED_ORIGINS.append(origin)

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)

app.add_middleware(ObservabilityMiddleware)

app.include_router(admin.router)


@app.get("/", tags=["Health Check"])
def read_root():
    return {"message": "Auth Account Sync API v1.0 is running", "status": "healthy"}


@app.get("/health", tags=["Health Check"])
def health_check():
    return {"status": "healthy", "uptime": "ok", "version": "1.0.0"}
