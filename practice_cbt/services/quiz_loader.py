"""
services/quiz_loader.py

Loads a practice set and establishes the attempt being taken.

Set, questions and options are fetched in parallel. An attempt id passed
in by the caller (e.g. from a resume link) is only a hint: it is adopted
when it belongs to the requesting user and to the requested set,
otherwise a fresh attempt is created.

Restored answers follow "server wins, local fills gaps".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import quote

from practice_cbt.models.attempt_model import Attempt, utc_now
from practice_cbt.models.quiz_model import Option, Question, QuizSet, sort_key
from practice_cbt.services.draft_cache import DraftCache, draft_flags, merge_gaps
from practice_cbt.services.errors import LoadFailureError, QuizNotFoundError, StoreError

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    quiz_set: QuizSet
    questions: List[Question]
    options_by_question: Dict[str, List[Option]]
    attempt: Attempt
    answers: Dict[str, str] = field(default_factory=dict)
    flagged: Set[str] = field(default_factory=set)
    # answers that only the local draft knew about
    draft_only: Dict[str, str] = field(default_factory=dict)
    created: bool = False

    @property
    def resume_path(self) -> str:
        return f"/study/practice/{quote(self.quiz_set.id)}?attempt={quote(self.attempt.id)}"


def group_options(questions: List[Question], options: List[Option]) -> Dict[str, List[Option]]:
    """{question_id: [options ordered by position]} for every question, empty lists included."""
    grouped: Dict[str, List[Option]] = {q.id: [] for q in questions}
    for o in options:
        if o.question_id in grouped:
            grouped[o.question_id].append(o)
    for qid in grouped:
        grouped[qid].sort(key=sort_key)
    return grouped


class QuizLoader:
    def __init__(self, store, draft_storage, now: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.draft_storage = draft_storage
        self._now = now

    async def load(self, set_id: str, user_id: str, attempt_hint: Optional[str] = None) -> LoadResult:
        """
        Raises:
            QuizNotFoundError: the set does not exist.
            LoadFailureError:  content, answers or attempt creation failed.
        """
        set_id = (set_id or "").strip()
        if not set_id:
            raise QuizNotFoundError("Missing set id")

        try:
            quiz_set, questions, options = await asyncio.gather(
                self.store.get_set(set_id),
                self.store.list_questions(set_id),
                self.store.list_options(set_id),
            )
        except StoreError as e:
            logger.error(f"load failed for set {set_id}: {e}")
            raise LoadFailureError(f"Failed to load practice set {set_id}") from e

        if quiz_set is None:
            raise QuizNotFoundError(f"Practice set not found: {set_id}")

        questions = sorted(questions, key=sort_key)
        grouped = group_options(questions, options)

        attempt = await self._verified_attempt(attempt_hint, set_id, user_id)
        if attempt is not None:
            return await self._resume(quiz_set, questions, grouped, attempt)
        return await self._create(quiz_set, questions, grouped, user_id)

    async def _verified_attempt(self, hint: Optional[str], set_id: str, user_id: str) -> Optional[Attempt]:
        hint = (hint or "").strip()
        if not hint:
            return None
        try:
            attempt = await self.store.get_attempt(hint, user_id)
        except StoreError as e:
            logger.warning(f"attempt lookup failed, starting fresh: {hint} - {e}")
            return None
        if attempt is None:
            logger.info(f"attempt hint rejected (not found for user {user_id}): {hint}")
            return None
        if attempt.set_id != set_id:
            logger.info(f"attempt hint rejected (belongs to set {attempt.set_id}): {hint}")
            return None
        return attempt

    async def _resume(
        self,
        quiz_set: QuizSet,
        questions: List[Question],
        grouped: Dict[str, List[Option]],
        attempt: Attempt,
    ) -> LoadResult:
        try:
            rows = await self.store.list_answers(attempt.id)
        except StoreError as e:
            raise LoadFailureError(f"Failed to load answers for attempt {attempt.id}") from e

        server_answers = {
            r.question_id: r.selected_option_id
            for r in rows
            if r.question_id and r.selected_option_id
        }
        cache = DraftCache(self.draft_storage, quiz_set.id, attempt.id)

        if attempt.is_submitted:
            # never resurrect in-progress state for a finished attempt
            cache.clear()
            return LoadResult(quiz_set, questions, grouped, attempt, answers=server_answers)

        draft = cache.load()
        valid = {qid: {o.id for o in opts} for qid, opts in grouped.items()}
        merged = merge_gaps(server_answers, draft, valid)
        draft_only = {qid: oid for qid, oid in merged.items() if qid not in server_answers}
        if draft_only:
            logger.info(f"attempt {attempt.id}: {len(draft_only)} answer(s) restored from draft")

        return LoadResult(
            quiz_set, questions, grouped, attempt,
            answers=merged,
            flagged=draft_flags(draft, grouped.keys()),
            draft_only=draft_only,
        )

    async def _create(
        self,
        quiz_set: QuizSet,
        questions: List[Question],
        grouped: Dict[str, List[Option]],
        user_id: str,
    ) -> LoadResult:
        try:
            attempt = await self.store.create_attempt(user_id, quiz_set.id, self._now())
        except StoreError as e:
            raise LoadFailureError(f"Failed to start an attempt on {quiz_set.id}") from e
        logger.info(f"new attempt {attempt.id} on set {quiz_set.id} for user {user_id}")
        return LoadResult(quiz_set, questions, grouped, attempt, created=True)
