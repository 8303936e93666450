"""
services/store.py

Async store collaborator used by the engine, plus an in-memory
implementation backing the local app and the tests.

Every method is a coroutine; implementations raise StoreError on failure.
"""

import asyncio
import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Tuple

from practice_cbt.models.attempt_model import (
    AnswerRecord, Attempt, AttemptStatus, DailyActivity,
)
from practice_cbt.models.quiz_model import Option, Question, QuizSet, sort_key
from practice_cbt.services.errors import StoreError

logger = logging.getLogger(__name__)


class QuizStore(Protocol):
    # ── reads ────────────────────────────────────────────────────────────────
    async def get_set(self, set_id: str) -> Optional[QuizSet]: ...

    async def list_questions(self, set_id: str) -> List[Question]: ...

    async def list_options(self, set_id: str) -> List[Option]: ...

    async def get_attempt(self, attempt_id: str, user_id: str) -> Optional[Attempt]: ...

    async def list_answers(self, attempt_id: str) -> List[AnswerRecord]: ...

    async def get_latest_attempt(self, user_id: str) -> Optional[Attempt]: ...

    async def list_attempts(
        self, user_id: str, status: Optional[AttemptStatus] = None, offset: int = 0, limit: int = 20,
    ) -> Tuple[List[Attempt], int]: ...

    async def list_daily_activity(self, user_id: str, since: date) -> List[DailyActivity]: ...

    # ── writes ───────────────────────────────────────────────────────────────
    async def create_attempt(self, user_id: str, set_id: str, started_at: datetime) -> Attempt: ...

    async def update_attempt(self, attempt_id: str, user_id: str, **fields) -> Attempt: ...

    async def upsert_answer(self, record: AnswerRecord) -> AnswerRecord: ...

    async def upsert_daily_activity(self, activity: DailyActivity) -> DailyActivity: ...


class InMemoryStore:
    """
    Dict-backed QuizStore.

    Rows are copied on the way in and out so callers never share mutable
    state with the store. Answers and daily activity are keyed by their
    composite keys, which gives upsert semantics for free.
    """

    def __init__(self) -> None:
        self._sets: Dict[str, QuizSet] = {}
        self._questions: Dict[str, Question] = {}
        self._options: Dict[str, Option] = {}
        self._attempts: Dict[str, Attempt] = {}
        self._answers: Dict[Tuple[str, str], AnswerRecord] = {}
        self._activity: Dict[Tuple[str, date], DailyActivity] = {}

    # ── seeding (content is read-only for the engine) ───────────────────────

    def add_set(self, quiz_set: QuizSet, questions: List[Question], options: List[Option]) -> None:
        question_ids = {q.id for q in questions}
        for o in options:
            if o.question_id not in question_ids:
                raise ValueError(f"Option {o.id} references unknown question {o.question_id}")
        self._sets[quiz_set.id] = quiz_set.model_copy()
        for q in questions:
            self._questions[q.id] = q.model_copy()
        for o in options:
            self._options[o.id] = o.model_copy()

    # ── reads ────────────────────────────────────────────────────────────────

    async def get_set(self, set_id: str) -> Optional[QuizSet]:
        await asyncio.sleep(0)
        found = self._sets.get(set_id)
        return found.model_copy() if found else None

    async def list_questions(self, set_id: str) -> List[Question]:
        await asyncio.sleep(0)
        rows = [q.model_copy() for q in self._questions.values() if q.set_id == set_id]
        return sorted(rows, key=sort_key)

    async def list_options(self, set_id: str) -> List[Option]:
        await asyncio.sleep(0)
        question_ids = {q.id for q in self._questions.values() if q.set_id == set_id}
        rows = [o.model_copy() for o in self._options.values() if o.question_id in question_ids]
        return sorted(rows, key=sort_key)

    async def get_attempt(self, attempt_id: str, user_id: str) -> Optional[Attempt]:
        await asyncio.sleep(0)
        found = self._attempts.get(attempt_id)
        if found is None or found.user_id != user_id:
            return None
        return found.model_copy()

    async def list_answers(self, attempt_id: str) -> List[AnswerRecord]:
        await asyncio.sleep(0)
        return [r.model_copy() for key, r in self._answers.items() if key[0] == attempt_id]

    async def get_latest_attempt(self, user_id: str) -> Optional[Attempt]:
        """In-progress attempts first, then the most recently started."""
        await asyncio.sleep(0)
        mine = [a for a in self._attempts.values() if a.user_id == user_id]
        if not mine:
            return None
        in_progress = [a for a in mine if a.status == AttemptStatus.IN_PROGRESS]
        pool = in_progress or mine
        return max(pool, key=lambda a: a.started_at).model_copy()

    async def list_attempts(
        self,
        user_id: str,
        status: Optional[AttemptStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Attempt], int]:
        """One page of the user's attempts, most recent activity first, plus the total count."""
        await asyncio.sleep(0)
        mine = [
            a for a in self._attempts.values()
            if a.user_id == user_id and (status is None or a.status == status)
        ]
        mine.sort(key=lambda a: (a.submitted_at or a.started_at, a.started_at), reverse=True)
        page = mine[max(0, offset):max(0, offset) + max(0, limit)]
        return [a.model_copy() for a in page], len(mine)

    async def list_daily_activity(self, user_id: str, since: date) -> List[DailyActivity]:
        await asyncio.sleep(0)
        rows = [
            a.model_copy() for (uid, day), a in self._activity.items()
            if uid == user_id and day >= since
        ]
        return sorted(rows, key=lambda a: a.activity_date, reverse=True)

    # ── writes ───────────────────────────────────────────────────────────────

    async def create_attempt(self, user_id: str, set_id: str, started_at: datetime) -> Attempt:
        await asyncio.sleep(0)
        if set_id not in self._sets:
            raise StoreError(f"Cannot create attempt for unknown set {set_id}")
        attempt = Attempt(
            id=uuid.uuid4().hex,
            user_id=user_id,
            set_id=set_id,
            status=AttemptStatus.IN_PROGRESS,
            started_at=started_at,
        )
        self._attempts[attempt.id] = attempt
        logger.debug(f"attempt created: {attempt.id} (user={user_id}, set={set_id})")
        return attempt.model_copy()

    async def update_attempt(self, attempt_id: str, user_id: str, **fields) -> Attempt:
        await asyncio.sleep(0)
        current = self._attempts.get(attempt_id)
        if current is None or current.user_id != user_id:
            raise StoreError(f"Attempt {attempt_id} not found for user {user_id}")
        data = current.model_dump()
        data.update(fields)
        updated = Attempt.model_validate(data)
        self._attempts[attempt_id] = updated
        return updated.model_copy()

    async def upsert_answer(self, record: AnswerRecord) -> AnswerRecord:
        await asyncio.sleep(0)
        if record.attempt_id not in self._attempts:
            raise StoreError(f"Attempt {record.attempt_id} does not exist")
        self._answers[record.key] = record.model_copy()
        return record

    async def upsert_daily_activity(self, activity: DailyActivity) -> DailyActivity:
        await asyncio.sleep(0)
        self._activity[(activity.user_id, activity.activity_date)] = activity.model_copy()
        return activity
