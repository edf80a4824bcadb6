# medixa/main.py
"""
FastAPI application entry point.
Sets up the web server, middleware, database migrations, and API routes.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medixa.routers import audio, auth, chat, consultations, health, sessions
from medixa.database import log_where_am_i
from medixa.config import settings
from medixa.schemas.common import ErrorResponse
from medixa.services.errors import ChatError, StorageError, ValidationError

# Configure logging level from environment variable
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[1]

# Create FastAPI application instance
app = FastAPI(title="Medixa API", version="0.1.0")

# ---- CORS Middleware ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],  # Must include Authorization
)

# ---- Database Migration Function ----
def run_migrations() -> None:
    """Run Alembic database migrations on startup."""
    # Ensure Alembic sees DATABASE_URL
    os.environ.setdefault("DATABASE_URL", settings.DATABASE_URL)
    logger.warning("Running Alembic migrations...")
    subprocess.check_call(["alembic", "upgrade", "head"], cwd=BACKEND_DIR)
    logger.warning("Migrations complete.")

# ---- Startup Event Handler ----
@app.on_event("startup")
def _bootstrap() -> None:
    """Initialize database and log connection details on app startup."""
    if settings.RUN_MIGRATIONS:
        run_migrations()
    log_where_am_i()  # Log database name + server address/port

# ---- Domain errors that escape a router ----
def _error_response(status_code: int, request: Request, e: ChatError) -> JSONResponse:
    body = ErrorResponse.from_error(e, path=request.url.path)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

@app.exception_handler(ValidationError)
async def _validation_error(request: Request, e: ValidationError) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, request, e)

@app.exception_handler(StorageError)
async def _storage_error(request: Request, e: StorageError) -> JSONResponse:
    logger.error(f"Storage failure on {request.url.path}: {e}")
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, request, e)

# ---- API Routes ----
# Include all router modules to register their endpoints
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(sessions.router)
app.include_router(chat.router)
app.include_router(audio.router)
app.include_router(consultations.router)

# ---- Root Endpoint ----
@app.get("/")
def root():
    """Health check endpoint for the root path."""
    return {"status": "ok", "message": "Medixa backend is running"}
