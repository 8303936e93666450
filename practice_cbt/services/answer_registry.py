"""
services/answer_registry.py

In-memory source of truth for selected options and flags of one attempt.

choose() applies the selection synchronously and then schedules an
asynchronous upsert. Upsert failures are logged and swallowed; the
DraftCache listener already holds the selection.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from practice_cbt.models.attempt_model import AnswerRecord, utc_now
from practice_cbt.models.session_state import AttemptState
from practice_cbt.services.errors import StoreError

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Dict[str, str], Set[str]], None]


class AnswerRegistry:
    def __init__(
        self,
        store,
        state: AttemptState,
        user_id: str,
        options_by_question: Dict[str, list],
        deadline_passed: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.store = store
        self.state = state
        self.user_id = user_id
        self._valid: Dict[str, Set[str]] = {
            qid: {o.id for o in opts} for qid, opts in options_by_question.items()
        }
        self._answers: Dict[str, str] = {}
        self._flagged: Set[str] = set()
        self._listeners: List[ChangeListener] = []
        self._pending: Set[asyncio.Task] = set()
        # per-question selection counter; stale writes are skipped
        self._generation: Dict[str, int] = {}
        self._deadline_passed = deadline_passed or (lambda: False)

    # ── read side ────────────────────────────────────────────────────────────

    @property
    def answers(self) -> Dict[str, str]:
        return dict(self._answers)

    @property
    def flagged(self) -> Set[str]:
        return set(self._flagged)

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    def selected(self, question_id: str) -> Optional[str]:
        return self._answers.get(question_id)

    def is_flagged(self, question_id: str) -> bool:
        return question_id in self._flagged

    # ── mutation ─────────────────────────────────────────────────────────────

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def restore(self, answers: Dict[str, str], flagged: Set[str]) -> None:
        """Seed state on load. Does not notify listeners or persist."""
        self._answers = dict(answers)
        self._flagged = set(flagged)

    def choose(self, question_id: str, option_id: str) -> bool:
        """
        Select ``option_id`` for ``question_id``.

        Returns:
            False if the attempt no longer accepts answers or its deadline
            has passed (nothing changes), True otherwise.

        Raises:
            ValueError: unknown question, or option not belonging to it.
        """
        if not self.state.accepts_answers or self._deadline_passed():
            return False
        if question_id not in self._valid:
            raise ValueError(f"Unknown question: {question_id}")
        if option_id not in self._valid[question_id]:
            raise ValueError(f"Option {option_id} does not belong to question {question_id}")

        self._answers[question_id] = option_id
        self._notify()
        self.persist(question_id, option_id)
        return True

    def flag(self, question_id: str) -> None:
        self._set_flag(question_id, True)

    def unflag(self, question_id: str) -> None:
        self._set_flag(question_id, False)

    def toggle_flag(self, question_id: str) -> bool:
        on = question_id not in self._flagged
        self._set_flag(question_id, on)
        return on

    def _set_flag(self, question_id: str, on: bool) -> None:
        if question_id not in self._valid:
            raise ValueError(f"Unknown question: {question_id}")
        if on:
            self._flagged.add(question_id)
        else:
            self._flagged.discard(question_id)
        self._notify()

    def _notify(self) -> None:
        answers, flagged = self.answers, self.flagged
        for listener in self._listeners:
            listener(answers, flagged)

    # ── persistence ──────────────────────────────────────────────────────────

    def persist(self, question_id: str, option_id: str) -> None:
        """Schedule a fire-and-forget upsert for one selection."""
        generation = self._generation.get(question_id, 0) + 1
        self._generation[question_id] = generation
        task = asyncio.get_running_loop().create_task(
            self._upsert(question_id, option_id, generation)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _upsert(self, question_id: str, option_id: str, generation: int) -> None:
        if self._generation.get(question_id) != generation:
            return
        record = AnswerRecord(
            attempt_id=self.state.attempt_id,
            user_id=self.user_id,
            question_id=question_id,
            selected_option_id=option_id,
            updated_at=utc_now(),
        )
        try:
            await self.store.upsert_answer(record)
        except StoreError as e:
            logger.warning(f"answer save failed (kept in draft): q={question_id} - {e}")
        except Exception as e:
            logger.error(f"unexpected answer save error: q={question_id} - {type(e).__name__}: {e}")

    async def drain(self) -> None:
        """Wait for outstanding upserts. Failures are already handled per task."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
