"""
api/session.py — multi-user in-memory browser sessions (cookie based)

Each browser gets a UUID session id holding its own state, most
importantly the active PracticeSession. Sessions expire after SESSION_TTL
seconds without access.
"""

import threading
import time
import uuid
from typing import Any

from config import SESSION_TTL

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {
        "practice": None,
    }


def create_session() -> str:
    """Create a session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """Session data for ``sid``; None if missing or expired. Access refreshes the TTL."""
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            return None
        _timestamps[sid] = time.time()
        return _sessions[sid]


def get(sid: str, key: str, default=None):
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def reset(sid: str) -> dict[str, Any] | None:
    """Reset a session; returns the previous state so the caller can release it."""
    with _lock:
        if sid not in _sessions:
            return None
        previous = _sessions[sid]
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
        return previous


def cleanup_expired() -> list[dict[str, Any]]:
    """Drop expired sessions and return their states."""
    now = time.time()
    removed = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            removed.append(_sessions.pop(sid))
            del _timestamps[sid]
    return removed
