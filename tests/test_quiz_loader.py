import unittest
from unittest.mock import patch

from practice_cbt.models.attempt_model import AnswerRecord, AttemptStatus, LocalDraft
from practice_cbt.models.quiz_model import Option, Question, QuizSet
from practice_cbt.services.draft_cache import MemoryDraftStorage, draft_key
from practice_cbt.services.errors import LoadFailureError, QuizNotFoundError, StoreError
from practice_cbt.services.quiz_loader import QuizLoader
from tests.support import (
    OTHER_USER, SET_ID, T0, USER, FakeClock, build_store, correct_option, wrong_option,
)


class QuizLoaderTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = build_store()
        self.drafts = MemoryDraftStorage()
        self.now = FakeClock(T0)
        self.loader = QuizLoader(self.store, self.drafts, now=self.now)

    async def _existing_attempt(self, user=USER, set_id=SET_ID):
        return await self.store.create_attempt(user, set_id, T0)

    async def test_creates_attempt_without_hint(self):
        self.now.advance(5)
        result = await self.loader.load(SET_ID, USER)
        self.assertTrue(result.created)
        self.assertEqual(result.attempt.status, AttemptStatus.IN_PROGRESS)
        self.assertEqual(result.attempt.started_at, self.now())
        self.assertEqual([q.id for q in result.questions], ["q1", "q2", "q3", "q4", "q5"])
        self.assertEqual(len(result.options_by_question["q1"]), 4)
        self.assertIn(f"attempt={result.attempt.id}", result.resume_path)

    async def test_resume_adopts_started_at_and_merges_draft_gaps(self):
        attempt = await self._existing_attempt()
        await self.store.upsert_answer(AnswerRecord(
            attempt_id=attempt.id, user_id=USER, question_id="q1", selected_option_id=correct_option(1),
        ))
        self.drafts.set_item(
            draft_key(SET_ID, attempt.id),
            LocalDraft(
                answers={"q1": wrong_option(1), "q2": wrong_option(2)},
                flagged={"q3": True},
            ).to_json(),
        )
        self.now.advance(600)

        result = await self.loader.load(SET_ID, USER, attempt.id)

        self.assertFalse(result.created)
        self.assertEqual(result.attempt.id, attempt.id)
        self.assertEqual(result.attempt.started_at, T0)
        self.assertEqual(result.answers, {"q1": correct_option(1), "q2": wrong_option(2)})
        self.assertEqual(result.draft_only, {"q2": wrong_option(2)})
        self.assertEqual(result.flagged, {"q3"})

    async def test_foreign_attempt_hint_is_not_adopted(self):
        theirs = await self._existing_attempt(user=OTHER_USER)
        result = await self.loader.load(SET_ID, USER, theirs.id)
        self.assertTrue(result.created)
        self.assertNotEqual(result.attempt.id, theirs.id)

    async def test_attempt_hint_for_another_set_is_not_adopted(self):
        other = await self._existing_attempt(set_id="set-2")
        result = await self.loader.load(SET_ID, USER, other.id)
        self.assertTrue(result.created)

    async def test_failed_hint_lookup_starts_fresh(self):
        with patch.object(self.store, "get_attempt", side_effect=StoreError("timeout")):
            result = await self.loader.load(SET_ID, USER, "whatever")
        self.assertTrue(result.created)

    async def test_missing_set(self):
        with self.assertRaises(QuizNotFoundError):
            await self.loader.load("no-such-set", USER)
        with self.assertRaises(QuizNotFoundError):
            await self.loader.load("  ", USER)

    async def test_question_fetch_error_is_a_load_failure(self):
        with patch.object(self.store, "list_questions", side_effect=StoreError("boom")):
            with self.assertRaises(LoadFailureError):
                await self.loader.load(SET_ID, USER)

    async def test_attempt_creation_error_is_a_load_failure(self):
        with patch.object(self.store, "create_attempt", side_effect=StoreError("boom")):
            with self.assertRaises(LoadFailureError):
                await self.loader.load(SET_ID, USER)

    async def test_submitted_attempt_ignores_and_purges_its_draft(self):
        attempt = await self._existing_attempt()
        await self.store.update_attempt(attempt.id, USER, status=AttemptStatus.SUBMITTED, score=0, total_questions=5)
        key = draft_key(SET_ID, attempt.id)
        self.drafts.set_item(key, LocalDraft(answers={"q2": wrong_option(2)}).to_json())

        result = await self.loader.load(SET_ID, USER, attempt.id)

        self.assertTrue(result.attempt.is_submitted)
        self.assertEqual(result.answers, {})
        self.assertIsNone(self.drafts.get_item(key))

    async def test_options_are_grouped_in_position_order(self):
        self.store.add_set(
            QuizSet(id="set-x", title="X"),
            [Question(id="x1", set_id="set-x", prompt="?", position=2),
             Question(id="x0", set_id="set-x", prompt="?", position=1)],
            [Option(id="b", question_id="x1", text="B", position=2),
             Option(id="a", question_id="x1", text="A", position=1),
             Option(id="c", question_id="x1", text="C", position=None)],
        )
        result = await self.loader.load("set-x", USER)
        self.assertEqual([q.id for q in result.questions], ["x0", "x1"])
        self.assertEqual([o.id for o in result.options_by_question["x1"]], ["a", "b", "c"])
        self.assertEqual(result.options_by_question["x0"], [])


if __name__ == "__main__":
    unittest.main()
