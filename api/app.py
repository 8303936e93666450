"""
api/app.py — FastAPI app instance + session middleware + engine wiring
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import DRAFT_DIR, SESSION_CLEANUP_INTERVAL
from api.routes import router
from api.sample_sets import seed_sample_sets
import api.session as session
from practice_cbt.services.activity_service import ActivityTracker
from practice_cbt.services.draft_cache import FileDraftStorage
from practice_cbt.services.store import InMemoryStore

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


async def _close_expired_sessions() -> int:
    removed = session.cleanup_expired()
    for state in removed:
        practice = state.get("practice")
        if practice is not None:
            await practice.close()
    return len(removed)


async def _cleanup_loop(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = await _close_expired_sessions()
        if removed:
            logger.info(f"expired sessions cleaned up: {removed}")


def create_app(store=None, draft_storage=None, engine_options: dict | None = None) -> FastAPI:
    """
    Build the app. ``store`` defaults to an in-memory store seeded with the
    sample sets; ``engine_options`` are passed through to PracticeSession
    (tick interval, retry settings).
    """
    if store is None:
        store = InMemoryStore()
        seed_sample_sets(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = asyncio.create_task(_cleanup_loop(SESSION_CLEANUP_INTERVAL))
        try:
            yield
        finally:
            cleanup.cancel()

    app = FastAPI(title="CBT Practice", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.store = store
    app.state.draft_storage = draft_storage or FileDraftStorage(DRAFT_DIR)
    app.state.activity = ActivityTracker(store)
    app.state.engine_options = dict(engine_options or {})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Session middleware: read the session id cookie, issue a new one if absent
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)
    return app
