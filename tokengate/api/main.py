"""
tokengate.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn tokengate.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from tokengate.api.deps import get_engine  # noqa: E402
from tokengate.api.routes.accounts import router as accounts_router  # noqa: E402
from tokengate.api.routes.achievements import router as achievements_router  # noqa: E402
from tokengate.api.routes.challenges import router as challenges_router  # noqa: E402
from tokengate.api.routes.communities import router as communities_router  # noqa: E402
from tokengate.api.routes.posts import router as posts_router  # noqa: E402
from tokengate.api.routes.public import router as public_router  # noqa: E402
from tokengate.api.routes.settings import router as settings_router  # noqa: E402
from tokengate.database.engine import init_db  # noqa: E402
from tokengate.errors import (  # noqa: E402
    ActionRejected,
    DuplicateIgnored,
    ExternalUnavailable,
    NotFound,
    RewardApplicationFailed,
)
from tokengate.services.token_contract import ContractCallFailed  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine and seed defaults."""
    engine = get_engine()
    init_db(engine)
    logger.info("Tokengate API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Tokengate API shutting down")


app = FastAPI(
    title="Tokengate API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Domain errors → HTTP
# ---------------------------------------------------------------------------
@app.exception_handler(NotFound)
async def _not_found(request: Request, exc: NotFound):
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)


@app.exception_handler(ActionRejected)
async def _rejected(request: Request, exc: ActionRejected):
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_403_FORBIDDEN)


@app.exception_handler(DuplicateIgnored)
async def _duplicate(request: Request, exc: DuplicateIgnored):
    return JSONResponse({"detail": str(exc), "duplicate": True}, status_code=status.HTTP_200_OK)


@app.exception_handler(RewardApplicationFailed)
async def _reward_failed(request: Request, exc: RewardApplicationFailed):
    return JSONResponse(
        {"detail": str(exc), "action": exc.action, "retryable": True},
        status_code=status.HTTP_502_BAD_GATEWAY,
    )


@app.exception_handler(ContractCallFailed)
async def _contract_failed(request: Request, exc: ContractCallFailed):
    logger.warning("Contract call rejected: %s", exc)
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_502_BAD_GATEWAY)


@app.exception_handler(ExternalUnavailable)
async def _unavailable(request: Request, exc: ExternalUnavailable):
    logger.warning("External collaborator unavailable: %s", exc)
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


# Mount routers
app.include_router(accounts_router, prefix="/api")
app.include_router(posts_router, prefix="/api")
app.include_router(communities_router, prefix="/api")
app.include_router(challenges_router, prefix="/api")
app.include_router(achievements_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(settings_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
