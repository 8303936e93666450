import asyncio
import unittest
from datetime import timedelta
from unittest.mock import patch

from practice_cbt.models.attempt_model import AttemptStatus, SubmitReason
from practice_cbt.models.session_state import Phase
from practice_cbt.services.activity_service import ActivityTracker
from practice_cbt.services.draft_cache import MemoryDraftStorage
from practice_cbt.services.errors import FinalizeError, StoreError
from practice_cbt.services.finalizer import time_spent_seconds
from practice_cbt.services.practice_engine import PracticeSession
from practice_cbt.services.review_projector import count_correct
from tests.support import FAST, SET_ID, T0, USER, FakeClock, build_store, correct_option, wrong_option


class TimeSpentTests(unittest.TestCase):
    def test_clamped_to_the_limit(self):
        self.assertEqual(time_spent_seconds(T0, T0 + timedelta(minutes=30), 20), 1200)
        self.assertEqual(time_spent_seconds(T0, T0 + timedelta(seconds=95), 20), 95)
        self.assertEqual(time_spent_seconds(T0, T0 - timedelta(seconds=5), 20), 0)

    def test_untimed_is_none(self):
        self.assertIsNone(time_spent_seconds(T0, T0 + timedelta(minutes=3), None))


class FinalizerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = build_store()
        self.drafts = MemoryDraftStorage()
        self.now = FakeClock(T0)
        self.activity = ActivityTracker(self.store)
        self.session = await PracticeSession.open(
            self.store, self.drafts, SET_ID, USER,
            activity=self.activity, now=self.now, **FAST,
        )

    async def asyncTearDown(self):
        await self.session.close()

    def _answer_three_right_one_wrong(self):
        for i in (1, 2, 3):
            self.session.choose(f"q{i}", correct_option(i))
        self.session.choose("q4", wrong_option(4))

    async def test_scores_correct_selections_over_all_questions(self):
        self._answer_three_right_one_wrong()
        self.now.advance(90)

        attempt = await self.session.submit()

        self.assertEqual(attempt.status, AttemptStatus.SUBMITTED)
        self.assertEqual(attempt.score, 3)
        self.assertEqual(attempt.total_questions, 5)
        self.assertEqual(attempt.time_spent_seconds, 90)
        self.assertEqual(attempt.submit_reason, SubmitReason.MANUAL)
        self.assertEqual(attempt.submitted_at, self.now())
        self.assertFalse(self.session.clock.running)

    async def test_double_submit_writes_once(self):
        self._answer_three_right_one_wrong()
        with patch.object(self.store, "update_attempt", wraps=self.store.update_attempt) as update, \
                patch("practice_cbt.services.finalizer.count_correct", wraps=count_correct) as scorer:
            first = self.session.submit()
            second = self.session.submit()
            a, b = await first, await second

        self.assertEqual(update.await_count, 1)
        self.assertEqual(scorer.call_count, 1)
        self.assertEqual(a.id, b.id)
        self.assertEqual(b.score, 3)

    async def test_submitted_output_is_frozen(self):
        self._answer_three_right_one_wrong()
        attempt = await self.session.submit()
        self.assertFalse(self.session.choose("q5", correct_option(5)))
        again = await self.session.submit()
        self.assertEqual(again.score, attempt.score)
        stored = await self.store.get_attempt(attempt.id, USER)
        self.assertEqual(stored.score, 3)

    async def test_draft_is_purged_after_success(self):
        self.session.choose("q1", correct_option(1))
        self.assertIsNotNone(self.session.draft.load())
        await self.session.submit()
        self.assertIsNone(self.session.draft.load())

    async def test_failed_write_rolls_back_and_keeps_the_draft(self):
        self.session.choose("q1", correct_option(1))
        with patch.object(self.store, "update_attempt", side_effect=StoreError("down")) as update:
            with self.assertLogs("practice_cbt.services.finalizer", level="WARNING"):
                with self.assertRaises(FinalizeError):
                    await self.session.submit()
        self.assertEqual(update.await_count, FAST["max_retries"])
        self.assertEqual(self.session.state.phase, Phase.IN_PROGRESS)
        self.assertIsNotNone(self.session.draft.load())
        self.assertTrue(self.session.clock.running)

        # store is back: a later submit completes
        self.session.choose("q2", correct_option(2))
        attempt = await self.session.submit()
        self.assertEqual(attempt.score, 2)

    async def test_bookkeeping_failure_does_not_block_submit(self):
        with patch.object(self.activity, "record_submission", side_effect=RuntimeError("no table")):
            with self.assertLogs("practice_cbt.services.finalizer", level="WARNING"):
                attempt = await self.session.submit()
                await self.session.finalizer.drain()
        self.assertTrue(attempt.is_submitted)
        self.assertTrue(self.session.is_submitted)

    async def test_records_daily_activity(self):
        self._answer_three_right_one_wrong()
        await self.session.submit()
        await self.session.finalizer.drain()
        rows = await self.store.list_daily_activity(USER, T0.date())
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].points, 3)
        self.assertTrue(rows[0].did_practice)


class FailedTimeupTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = build_store(time_limit_minutes=1)
        self.now = FakeClock(T0)
        self.session = await PracticeSession.open(
            self.store, MemoryDraftStorage(), SET_ID, USER, now=self.now, **FAST,
        )

    async def asyncTearDown(self):
        await self.session.close()

    async def test_answers_stay_frozen_after_a_failed_timeup_submit(self):
        self.session.choose("q1", correct_option(1))
        self.session.choose("q2", wrong_option(2))
        await self.session.registry.drain()

        with patch.object(self.store, "update_attempt", side_effect=StoreError("down")):
            with self.assertLogs("practice_cbt.services.practice_engine", level="ERROR"):
                self.now.advance(61)
                await asyncio.sleep(0.05)
                self.assertIsNone(await self.session.wait_auto_submit())

        self.assertEqual(self.session.state.phase, Phase.IN_PROGRESS)
        self.assertFalse(self.session.clock.running)
        self.assertFalse(self.session.choose("q3", correct_option(3)))
        self.assertFalse(self.session.choose("q2", correct_option(2)))
        self.assertEqual(
            self.session.registry.answers,
            {"q1": correct_option(1), "q2": wrong_option(2)},
        )

        self.now.advance(600)
        attempt = await self.session.submit()
        self.assertEqual(attempt.submit_reason, SubmitReason.TIMEUP)
        self.assertEqual(attempt.score, 1)
        self.assertEqual(attempt.time_spent_seconds, 60)
        self.assertIsNone(self.session.draft.load())


class UntimedFinalizerTests(unittest.IsolatedAsyncioTestCase):
    async def test_untimed_attempt_has_no_time_spent(self):
        store = build_store(time_limit_minutes=None)
        now = FakeClock(T0)
        async with await PracticeSession.open(store, MemoryDraftStorage(), SET_ID, USER, now=now, **FAST) as session:
            self.assertFalse(session.clock.enabled)
            now.advance(3600)
            attempt = await session.submit()
        self.assertIsNone(attempt.time_spent_seconds)
        self.assertEqual(attempt.score, 0)
        self.assertEqual(attempt.total_questions, 5)


if __name__ == "__main__":
    unittest.main()
