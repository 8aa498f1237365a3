from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from totpkit.api.auth import router as auth_router
from totpkit.api.health import router as health_router
from totpkit.api.totp import router as totp_router
from totpkit.db.mongo import close_client, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan handler.

    Ensures MongoDB is reachable and indexes exist during startup, and closes
    the client on shutdown.

    Args:
        app: FastAPI application.

    Yields:
        None
    """

    await init_db()
    yield
    close_client()


# FastAPI application instance.
app = FastAPI(title="TotpKit", version="0.1.0", lifespan=lifespan)

# CORS origins (comma-separated), e.g. http://localhost:3000
_cors = os.environ.get("CORS_ALLOW_ORIGINS", "").strip()
if _cors:
    allow_origins = [o.strip() for o in _cors.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(totp_router)
