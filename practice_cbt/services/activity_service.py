"""
services/activity_service.py

Daily practice activity and streaks. Called after a successful submit;
nothing here may block or undo the submit itself.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import config
from practice_cbt.models.attempt_model import Attempt, DailyActivity, utc_now
from practice_cbt.services.errors import StoreError

logger = logging.getLogger(__name__)


class ActivityTracker:
    def __init__(self, store, window_days: int = config.STREAK_WINDOW_DAYS) -> None:
        self.store = store
        self.window_days = window_days

    async def record_submission(self, attempt: Attempt) -> DailyActivity:
        """Mark the submit day as practiced; points = max(1, score)."""
        when: datetime = attempt.submitted_at or utc_now()
        activity = DailyActivity(
            user_id=attempt.user_id,
            activity_date=when.date(),
            did_practice=True,
            points=max(1, attempt.score or 0),
            updated_at=when,
        )
        return await self.store.upsert_daily_activity(activity)

    async def practice_streak(self, user_id: str, today: Optional[date] = None) -> Tuple[int, bool]:
        """
        Consecutive practiced days ending today, or ending yesterday when
        today has no practice yet.

        Returns:
            (streak, did_practice_today). (0, False) when the store fails.
        """
        today = today or utc_now().date()
        since = today - timedelta(days=self.window_days)
        try:
            rows = await self.store.list_daily_activity(user_id, since)
        except StoreError as e:
            logger.warning(f"streak lookup failed for {user_id}: {e}")
            return 0, False

        practiced = {row.activity_date for row in rows if row.did_practice}
        did_today = today in practiced

        cursor = today if did_today else today - timedelta(days=1)
        streak = 0
        for _ in range(self.window_days):
            if cursor not in practiced:
                break
            streak += 1
            cursor -= timedelta(days=1)
        return streak, did_today
