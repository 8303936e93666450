"""
api/routes.py — FastAPI endpoints for taking and reviewing practice attempts
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from config import HISTORY_PAGE_SIZE
import api.session as session
from practice_cbt.models.attempt_model import AttemptStatus
from practice_cbt.services.errors import (
    FinalizeError, LoadFailureError, QuizNotFoundError, StoreError,
)
from practice_cbt.services.practice_engine import PracticeSession
from practice_cbt.services.review_projector import ReviewFilter

router = APIRouter()

USER_HEADER = "X-User-Id"


# ── Pydantic request bodies ──────────────────────────────────────────────────

class StartPracticeBody(BaseModel):
    attempt_id: Optional[str] = None


class AnswerBody(BaseModel):
    question_id: str
    option_id: str


class FlagBody(BaseModel):
    question_id: str
    flagged: Optional[bool] = None   # None toggles


class NavigateBody(BaseModel):
    index: int = 0


# ── Helpers ──────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _user_id(request: Request) -> str:
    """Identity comes from the upstream auth layer; anonymous browsers use their session id."""
    return (request.headers.get(USER_HEADER) or "").strip() or _sid(request)


def _practice(request: Request) -> PracticeSession:
    practice: PracticeSession = session.get(_sid(request), "practice")
    if practice is None:
        raise HTTPException(status_code=404, detail="No active practice session.")
    return practice


def _review_item_to_dict(item) -> dict:
    q = item.question
    return {
        "index": item.index,
        "question_id": q.id,
        "prompt": q.prompt,
        "explanation": q.explanation,
        "status": item.status.value,
        "flagged": item.flagged,
        "selected_option_id": item.selected_option_id,
        "selected_option": item.selected_option.model_dump() if item.selected_option else None,
        "correct_option": item.correct_option.model_dump() if item.correct_option else None,
    }


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post("/api/practice/{set_id}/start")
async def start_practice(set_id: str, body: StartPracticeBody, request: Request):
    sid = _sid(request)
    previous: Optional[PracticeSession] = session.get(sid, "practice")
    if previous is not None:
        await previous.close()
        session.put(sid, "practice", None)

    app_state = request.app.state
    try:
        practice = await PracticeSession.open(
            app_state.store,
            app_state.draft_storage,
            set_id,
            _user_id(request),
            attempt_hint=body.attempt_id,
            activity=app_state.activity,
            **app_state.engine_options,
        )
    except QuizNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LoadFailureError as e:
        raise HTTPException(status_code=503, detail=str(e))

    session.put(sid, "practice", practice)
    return practice.status_view()


@router.get("/api/practice/state")
async def practice_state(request: Request):
    return _practice(request).status_view()


@router.get("/api/practice/question/{index}")
async def get_question(index: int, request: Request):
    practice = _practice(request)
    try:
        return practice.question_view(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Question not found.")


@router.post("/api/practice/answer")
async def save_answer(body: AnswerBody, request: Request):
    practice = _practice(request)
    try:
        accepted = practice.choose(body.question_id, body.option_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not accepted:
        raise HTTPException(status_code=400, detail="This attempt no longer accepts answers.")
    return {"ok": True, "answered_count": practice.answered_count}


@router.post("/api/practice/flag")
async def flag_question(body: FlagBody, request: Request):
    practice = _practice(request)
    try:
        if body.flagged is None:
            flagged = practice.toggle_flag(body.question_id)
        elif body.flagged:
            practice.flag(body.question_id)
            flagged = True
        else:
            practice.unflag(body.question_id)
            flagged = False
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "flagged": flagged}


@router.post("/api/practice/navigate")
async def navigate(body: NavigateBody, request: Request):
    practice = _practice(request)
    if practice.is_submitted:
        raise HTTPException(status_code=400, detail="This attempt has already been submitted.")
    return {"index": practice.navigate(body.index), "ok": True}


@router.post("/api/practice/submit")
async def submit_practice(request: Request):
    practice = _practice(request)
    try:
        attempt = await practice.submit()
    except FinalizeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {
        "ok": True,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "time_spent_seconds": attempt.time_spent_seconds,
        "submit_reason": attempt.submit_reason,
    }


@router.get("/api/practice/review")
async def review_practice(request: Request, filter: ReviewFilter = ReviewFilter.ALL):
    practice = _practice(request)
    if not practice.is_submitted:
        raise HTTPException(status_code=400, detail="The attempt has not been submitted yet.")
    items = practice.review(filter)
    return {
        "filter": filter.value,
        "summary": practice.summary().model_dump(),
        "items": [_review_item_to_dict(item) for item in items],
    }


@router.get("/api/practice/latest")
async def latest_attempt(request: Request):
    try:
        attempt = await request.app.state.store.get_latest_attempt(_user_id(request))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if attempt is None:
        raise HTTPException(status_code=404, detail="No attempts yet.")
    return attempt.model_dump()


@router.get("/api/practice/history")
async def attempt_history(
    request: Request,
    page: int = Query(1, ge=1),
    status: Optional[AttemptStatus] = None,
):
    store = request.app.state.store
    offset = (page - 1) * HISTORY_PAGE_SIZE
    try:
        attempts, total = await store.list_attempts(
            _user_id(request), status=status, offset=offset, limit=HISTORY_PAGE_SIZE
        )
        sets = {}
        for set_id in {a.set_id for a in attempts}:
            sets[set_id] = await store.get_set(set_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    items = []
    for a in attempts:
        quiz_set = sets.get(a.set_id)
        items.append({
            **a.model_dump(),
            "title": quiz_set.title if quiz_set else None,
            "course_code": quiz_set.course_code if quiz_set else None,
        })
    return {
        "page": page,
        "total": total,
        "has_more": offset + len(attempts) < total,
        "items": items,
    }


@router.get("/api/practice/streak")
async def practice_streak(request: Request):
    streak, did_today = await request.app.state.activity.practice_streak(_user_id(request))
    return {"streak": streak, "did_practice_today": did_today}


@router.post("/api/reset")
async def reset_session(request: Request):
    previous = session.reset(_sid(request))
    if previous and previous.get("practice") is not None:
        await previous["practice"].close()
    return {"ok": True}
