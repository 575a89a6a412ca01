# voice_relay/main.py

"""
Main FastAPI application entrypoint for the Voice Relay API.

This file is responsible for:
  - Creating the FastAPI app instance.
  - Configuring logging.
  - Registering all routers (modular endpoint groups).
  - Exposing a simple root endpoint and a /health endpoint.
  - Attaching lifecycle hooks (startup/shutdown).

CORS is not handled by middleware here: each relay computes its own CORS
headers so that every response path (204 preflight, 4xx/5xx errors,
provider passthrough) carries them.
"""

from dotenv import load_dotenv
load_dotenv()  # will read .env in project root, before settings are built

from fastapi import FastAPI

# Local imports (project-specific)
from voice_relay.core.config import settings               # Global settings (env-based, see config.py)
from voice_relay.core.logging import configure_logging     # Custom logging setup
from voice_relay.core.version import APP_NAME, APP_VERSION
from voice_relay.api.routers import (                      # All API routers (organized by feature)
    health,
    transcriptions,
    evaluate,
)
from voice_relay.lifespan import lifespan                  # Startup/shutdown event handler

# ---------------------------------------------------------------------
# 1. Configure logging
# ---------------------------------------------------------------------
# Controlled by settings.LOG_LEVEL (e.g. "INFO", "DEBUG").
configure_logging(settings.LOG_LEVEL)


# ---------------------------------------------------------------------
# 2. Create FastAPI app instance
# ---------------------------------------------------------------------
# - `lifespan`: builds the shared httpx client and the relays, closes
#   the client on shutdown.
# ---------------------------------------------------------------------
app = FastAPI(
    title=APP_NAME,
    version=APP_VERSION,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------
# 3. Register Routers (modular endpoints)
# ---------------------------------------------------------------------
# Example final paths:
#   - /health                   (health router, no prefix, good for LB checks)
#   - /api/transcriptions       (streaming audio relay; alias /api/whisper-proxy)
#   - /api/evaluate             (text evaluation relay; alias /api/gemini-proxy)
# ---------------------------------------------------------------------
app.include_router(health.router)                               # available at /health
app.include_router(transcriptions.router, prefix=settings.API_PREFIX)
app.include_router(evaluate.router,       prefix=settings.API_PREFIX)


# ---------------------------------------------------------------------
# 4. Optional root endpoint (nice for humans)
# ---------------------------------------------------------------------
@app.get("/", include_in_schema=False)
def root():
    return {
        "ok": True,
        "name": APP_NAME,
        "health": "/health",          # LB-friendly check
        "docs": "/docs",              # Swagger UI
        "openapi": "/openapi.json",   # Raw OpenAPI spec
        "api_prefix": settings.API_PREFIX,
    }
