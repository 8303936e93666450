"""
services/finalizer.py

One-shot in_progress -> submitted transition with scoring.

finalize() is a plain function: the compare-and-set on AttemptState runs
synchronously at the call site, before any await, so a manual submit and
a deadline expiry cannot both start a write. The loser gets the winner's
task back.

The submit payload is computed once and written with bounded retries.
When every try fails the state rolls back to in_progress and the caller
receives FinalizeError; the draft stays in place.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

import config
from practice_cbt.models.attempt_model import Attempt, AttemptStatus, SubmitReason, utc_now
from practice_cbt.models.quiz_model import Option, Question, QuizSet
from practice_cbt.models.session_state import AttemptState
from practice_cbt.services.errors import FinalizeError, StoreError
from practice_cbt.services.review_projector import count_correct

logger = logging.getLogger(__name__)


def time_spent_seconds(
    started_at: datetime,
    submitted_at: datetime,
    time_limit_minutes: Optional[int],
) -> Optional[int]:
    """Elapsed seconds clamped to [0, limit] for timed sets; None when untimed."""
    if not time_limit_minutes or time_limit_minutes <= 0:
        return None
    elapsed = (submitted_at - started_at).total_seconds()
    return int(max(0, min(elapsed, time_limit_minutes * 60)))


class Finalizer:
    def __init__(
        self,
        store,
        state: AttemptState,
        attempt: Attempt,
        quiz_set: QuizSet,
        questions: List[Question],
        options_by_question: Dict[str, List[Option]],
        registry,
        clock,
        draft_cache,
        activity=None,
        now: Callable[[], datetime] = utc_now,
        max_retries: int = config.FINALIZE_MAX_RETRIES,
        backoff_base: float = config.FINALIZE_BACKOFF_BASE,
    ) -> None:
        self.store = store
        self.state = state
        self.attempt = attempt
        self.quiz_set = quiz_set
        self.questions = questions
        self.options_by_question = options_by_question
        self.registry = registry
        self.clock = clock
        self.draft_cache = draft_cache
        self.activity = activity
        self._now = now
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._task: Optional[asyncio.Task] = None
        self._side_tasks: Set[asyncio.Task] = set()

    def finalize(self, reason: SubmitReason) -> "asyncio.Future[Attempt]":
        """
        Submit the attempt once.

        Returns an awaitable resolving to the submitted Attempt. Calls after
        the first share the first call's outcome and never write.
        """
        loop = asyncio.get_running_loop()

        if not self.state.try_begin_finalize():
            if self._task is not None:
                return asyncio.shield(self._task)
            done = loop.create_future()
            done.set_result(self.attempt)
            return done

        # latch held: no more answers, no more ticks
        self.clock.stop()
        if self.clock.enabled and self.clock.expired:
            reason = SubmitReason.TIMEUP

        payload = self.build_payload(SubmitReason(reason))
        logger.info(
            f"finalizing attempt {self.attempt.id}: reason={payload['submit_reason'].value} "
            f"score={payload['score']}/{payload['total_questions']}"
        )
        self._task = loop.create_task(self._commit(payload))
        return asyncio.shield(self._task)

    def build_payload(self, reason: SubmitReason) -> dict:
        submitted_at = self._now()
        answers = self.registry.answers
        return {
            "status": AttemptStatus.SUBMITTED,
            "submitted_at": submitted_at,
            "score": count_correct(self.questions, self.options_by_question, answers),
            "total_questions": len(self.questions),
            "time_spent_seconds": time_spent_seconds(
                self.attempt.started_at, submitted_at, self.quiz_set.time_limit_minutes
            ),
            "submit_reason": reason,
        }

    async def _commit(self, payload: dict) -> Attempt:
        last_exception: Optional[Exception] = None
        updated: Optional[Attempt] = None

        for attempt_no in range(1, self.max_retries + 1):
            try:
                updated = await self.store.update_attempt(
                    self.attempt.id, self.attempt.user_id, **payload
                )
                break
            except StoreError as e:
                last_exception = e
                if attempt_no < self.max_retries:
                    wait = self.backoff_base * (2 ** (attempt_no - 1))
                    logger.warning(
                        f"submit write failed, retrying in {wait:.1f}s "
                        f"({attempt_no}/{self.max_retries}): {e}"
                    )
                    await asyncio.sleep(wait)
            except Exception as e:
                last_exception = e
                logger.error(f"unexpected submit error: {type(e).__name__}: {e}")
                break

        if updated is None:
            self.state.rollback_finalize()
            if self.clock.enabled and not self.clock.expired:
                self.clock.start()
            logger.error(f"attempt {self.attempt.id} left in progress: {last_exception}")
            raise FinalizeError(f"Could not submit attempt {self.attempt.id}") from last_exception

        self.state.mark_submitted()
        self.attempt = updated
        self.draft_cache.clear()
        self._run_bookkeeping(updated)
        return updated

    def _run_bookkeeping(self, attempt: Attempt) -> None:
        if self.activity is None:
            return
        task = asyncio.get_running_loop().create_task(self._record_activity(attempt))
        self._side_tasks.add(task)
        task.add_done_callback(self._side_tasks.discard)

    async def _record_activity(self, attempt: Attempt) -> None:
        try:
            await self.activity.record_submission(attempt)
        except Exception as e:
            logger.warning(f"activity update failed for attempt {attempt.id}: {type(e).__name__}: {e}")

    async def drain(self) -> None:
        while self._side_tasks:
            await asyncio.gather(*list(self._side_tasks), return_exceptions=True)
