"""
services/practice_engine.py

PracticeSession: one student taking (or reviewing) one attempt.

Wires QuizLoader -> AnswerRegistry + DraftCache -> DeadlineClock -> Finalizer
and exposes the operations the API layer needs. All work happens on the
running asyncio loop; nothing here starts threads.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

import config
from practice_cbt.models.attempt_model import Attempt, SubmitReason, utc_now
from practice_cbt.models.session_state import AttemptState, Phase
from practice_cbt.services.answer_registry import AnswerRegistry
from practice_cbt.services.deadline_clock import DeadlineClock, ExpiryEvent, format_remaining
from practice_cbt.services.draft_cache import DraftCache
from practice_cbt.services.errors import FinalizeError
from practice_cbt.services.finalizer import Finalizer
from practice_cbt.services.quiz_loader import LoadResult, QuizLoader
from practice_cbt.services.review_projector import (
    ReviewFilter, ReviewItem, ReviewSummary, filter_items, project, summarize,
)

logger = logging.getLogger(__name__)


class PracticeSession:
    def __init__(
        self,
        loaded: LoadResult,
        store,
        draft_storage,
        user_id: str,
        activity=None,
        now: Callable[[], datetime] = utc_now,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
        max_retries: int = config.FINALIZE_MAX_RETRIES,
        backoff_base: float = config.FINALIZE_BACKOFF_BASE,
    ) -> None:
        self.loaded = loaded
        self.user_id = user_id
        self._now = now
        attempt = loaded.attempt

        self.state = AttemptState(
            attempt_id=attempt.id,
            phase=Phase.SUBMITTED if attempt.is_submitted else Phase.IN_PROGRESS,
        )
        self.registry = AnswerRegistry(
            store, self.state, user_id, loaded.options_by_question,
            deadline_passed=self._deadline_passed,
        )
        self.registry.restore(loaded.answers, loaded.flagged)

        self.draft = DraftCache(draft_storage, loaded.quiz_set.id, attempt.id)
        self.registry.subscribe(self._mirror_to_draft)

        self.clock = DeadlineClock(
            attempt.id,
            attempt.started_at,
            loaded.quiz_set.time_limit_minutes,
            on_expire=self._on_expire,
            now=now,
            tick_interval=tick_interval,
        )
        self.finalizer = Finalizer(
            store, self.state, attempt, loaded.quiz_set, loaded.questions,
            loaded.options_by_question, self.registry, self.clock, self.draft,
            activity=activity, now=now,
            max_retries=max_retries, backoff_base=backoff_base,
        )
        self._expiry_task: Optional[asyncio.Task] = None

    @classmethod
    async def open(
        cls,
        store,
        draft_storage,
        set_id: str,
        user_id: str,
        attempt_hint: Optional[str] = None,
        activity=None,
        now: Callable[[], datetime] = utc_now,
        **options,
    ) -> "PracticeSession":
        """Load (resume or create) and start the session. Loader errors propagate."""
        loaded = await QuizLoader(store, draft_storage, now=now).load(set_id, user_id, attempt_hint)
        session = cls(loaded, store, draft_storage, user_id, activity=activity, now=now, **options)
        session.start()
        return session

    def start(self) -> None:
        if not self.state.accepts_answers:
            return
        # heal the server record with answers only the draft had
        for qid, oid in self.loaded.draft_only.items():
            self.registry.persist(qid, oid)
        self.draft.snapshot(self.registry.answers, self.registry.flagged)
        self.clock.start()

    def _deadline_passed(self) -> bool:
        # holds after a failed timeup submit rolled the phase back
        return self.clock.enabled and self.clock.expired

    def _mirror_to_draft(self, answers, flagged) -> None:
        # review-time flag changes must not recreate a purged draft
        if self.state.accepts_answers:
            self.draft.snapshot(answers, flagged)

    async def close(self) -> None:
        self.clock.stop()
        pending = [t for t in (self._expiry_task,) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.registry.drain()
        await self.finalizer.drain()

    async def __aenter__(self) -> "PracticeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── properties ───────────────────────────────────────────────────────────

    @property
    def attempt(self) -> Attempt:
        return self.finalizer.attempt

    @property
    def quiz_set(self):
        return self.loaded.quiz_set

    @property
    def questions(self):
        return self.loaded.questions

    @property
    def is_submitted(self) -> bool:
        return self.state.is_submitted

    @property
    def answered_count(self) -> int:
        return self.registry.answered_count

    @property
    def remaining_ms(self) -> Optional[float]:
        if self.is_submitted:
            return None
        remaining = self.clock.remaining_at(self._now())
        return None if remaining is None else max(0.0, remaining)

    @property
    def resume_path(self) -> str:
        return self.loaded.resume_path

    # ── taking the test ──────────────────────────────────────────────────────

    def choose(self, question_id: str, option_id: str) -> bool:
        return self.registry.choose(question_id, option_id)

    def flag(self, question_id: str) -> None:
        self.registry.flag(question_id)

    def unflag(self, question_id: str) -> None:
        self.registry.unflag(question_id)

    def toggle_flag(self, question_id: str) -> bool:
        return self.registry.toggle_flag(question_id)

    def navigate(self, index: int) -> int:
        last = max(0, len(self.questions) - 1)
        self.state.current_index = max(0, min(index, last))
        return self.state.current_index

    def submit(self) -> "asyncio.Future[Attempt]":
        """User-confirmed submit. The latch is taken before this returns."""
        return self.finalizer.finalize(SubmitReason.MANUAL)

    def _on_expire(self, event: ExpiryEvent) -> None:
        outcome = self.finalizer.finalize(SubmitReason.TIMEUP)
        self._expiry_task = asyncio.get_running_loop().create_task(self._await_expiry(outcome))

    async def _await_expiry(self, outcome) -> None:
        try:
            attempt = await outcome
            logger.info(f"attempt {attempt.id} auto-submitted at deadline ({attempt.score}/{attempt.total_questions})")
        except FinalizeError as e:
            logger.error(f"auto-submit failed: {e}")

    async def wait_auto_submit(self) -> Optional[Attempt]:
        """Await the deadline-triggered submit if it has started."""
        if self._expiry_task is None:
            return None
        await self._expiry_task
        return self.attempt if self.is_submitted else None

    # ── views ────────────────────────────────────────────────────────────────

    def question_view(self, index: int) -> Dict:
        """One question with its options; ``is_correct`` only after submission."""
        if not (0 <= index < len(self.questions)):
            raise IndexError(f"Question index out of range: {index}")
        q = self.questions[index]
        opts = self.loaded.options_by_question.get(q.id, [])
        show_key = self.is_submitted
        return {
            "index": index,
            "total": len(self.questions),
            "id": q.id,
            "prompt": q.prompt,
            "explanation": q.explanation if show_key else None,
            "options": [o.model_dump() if show_key else o.public_dict() for o in opts],
            "selected_option_id": self.registry.selected(q.id),
            "flagged": self.registry.is_flagged(q.id),
        }

    def status_view(self) -> Dict:
        remaining = self.remaining_ms
        return {
            "attempt_id": self.attempt.id,
            "set_id": self.quiz_set.id,
            "title": self.quiz_set.title,
            "course_code": self.quiz_set.course_code,
            "phase": self.state.phase.value,
            "current_index": self.state.current_index,
            "total": len(self.questions),
            "answered_count": self.answered_count,
            "flagged_count": len(self.registry.flagged),
            "started_at": self.attempt.started_at,
            "deadline": self.clock.deadline,
            "remaining_ms": remaining,
            "remaining_display": format_remaining(remaining),
            "resume_path": self.resume_path,
            "score": self.attempt.score,
            "total_questions": self.attempt.total_questions,
            "submit_reason": self.attempt.submit_reason,
        }

    def _require_submitted(self) -> None:
        if not self.is_submitted:
            raise RuntimeError("Review is only available after submission")

    def review(self, review_filter: ReviewFilter = ReviewFilter.ALL) -> List[ReviewItem]:
        self._require_submitted()
        items = project(
            self.questions, self.loaded.options_by_question,
            self.registry.answers, self.registry.flagged,
        )
        return filter_items(items, review_filter)

    def summary(self) -> ReviewSummary:
        return summarize(self.review(ReviewFilter.ALL))
