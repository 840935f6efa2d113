"""FastAPI server for DGTL Dental.

Run with:
    uv run uvicorn dgtl_dental.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from dgtl_dental.admin import AdminSessions
from dgtl_dental.agent import SessionThreads, create_practice_agent, make_demo_streamer
from dgtl_dental.api.routes import router
from dgtl_dental.config import CORS_ORIGINS, DATABASE_URL, SERVER_HOST, SERVER_PORT
from dgtl_dental.services.checkout import CheckoutService
from dgtl_dental.services.mailer import Mailer
from dgtl_dental.services.metrics import metrics
from dgtl_dental.services.store import PracticeStore

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Open the database, compile the agent and build the API clients once."""
    store = PracticeStore(DATABASE_URL)
    store.init_db()
    store.ensure_demo_practice()
    application.state.store = store

    logger.info("Compiling LangGraph agent…")
    application.state.agent = create_practice_agent(store.load_facts)
    application.state.threads = SessionThreads(application.state.agent.checkpointer)
    application.state.demo_stream = make_demo_streamer()
    application.state.checkout = CheckoutService()
    application.state.mailer = Mailer()
    application.state.admin_sessions = AdminSessions()
    logger.info("Agent ready.")
    yield
    application.state.mailer.close()
    metrics.flush()
    store.engine.dispose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="DGTL Dental",
    description=(
        "Chat assistants for dental practice websites: per-practice chat, "
        "the landing-page demo, signup and checkout, and the admin console."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (the widget is embedded on practice websites) ───────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error body: {"error": "..."} ─────────────────────────────────────
@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "DGTL Dental",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting DGTL Dental API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "dgtl_dental.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
