"""
Daily Streak Tracking System

A streak is the count of consecutive calendar days with at least one
qualifying activity.

Rules:
- First activity ever: streak starts at 1
- Another activity on the same day: no change
- Activity the day after the last active day: streak + 1
- Any longer gap: streak resets to 1, longest streak is kept
- total_days_active grows by one per new active day

Writes are compare-and-set on the record version, so two simultaneous
activity events for one user count once.
"""

from datetime import date, timedelta
from typing import Optional
import logging

from engagement_engine.exceptions import ConcurrentUpdateError
from engagement_engine.gamification.store import PersistenceStore
from engagement_engine.models.gamification import (
    StreakRecord,
    StreakReward,
    StreakSummary,
    StreakUpdate,
)
from engagement_engine.observability import metrics
from engagement_engine.utils.calendar import Calendar

logger = logging.getLogger(__name__)

# Milestones shown alongside the streak (days, badge, xp)
STREAK_REWARDS: tuple[tuple[int, str, int], ...] = (
    (3, "Bronze Paw Badge", 50),
    (7, "Silver Streak Badge", 100),
    (14, "Gold Streak Badge", 200),
    (30, "Diamond Dedication Badge", 500),
    (60, "Platinum Persistence Badge", 1000),
    (90, "Legendary Learner Badge", 2000),
    (365, "Year of the Cat Badge", 5000),
)


class StreakTracker:
    """Applies activity events to a user's StreakRecord"""

    def __init__(self, store: PersistenceStore, calendar: Calendar):
        self.store = store
        self.calendar = calendar

    async def record_activity(self, user_id: str) -> StreakUpdate:
        """
        Record a qualifying activity for today

        Returns:
            StreakUpdate(current_streak, longest_streak, is_new_day, streak_maintained)

        Raises:
            ConcurrentUpdateError: the record changed underneath us twice
        """
        today = self.calendar.today()

        # A lost race means another request already wrote today's state;
        # evaluating once more against that state yields the same-day no-op.
        for _attempt in range(2):
            record = await self.store.get_streak(user_id)

            if record is None:
                created = StreakRecord(
                    user_id=user_id,
                    current_streak=1,
                    longest_streak=1,
                    last_active_date=today,
                    total_days_active=1,
                )
                if await self.store.insert_streak_if_absent(created):
                    metrics.streak_updates_total.labels(outcome="started").inc()
                    logger.info(f"Started streak for user {user_id}")
                    return StreakUpdate(
                        current_streak=1,
                        longest_streak=1,
                        is_new_day=True,
                        streak_maintained=True,
                    )
                continue

            if record.last_active_date == today:
                metrics.streak_updates_total.labels(outcome="same_day").inc()
                logger.debug(f"User {user_id} already active today, streak unchanged")
                return StreakUpdate(
                    current_streak=record.current_streak,
                    longest_streak=record.longest_streak,
                    is_new_day=False,
                    streak_maintained=True,
                )

            update, updated = self._advance(record, today)
            if await self.store.update_streak_if_version(updated, record.version):
                outcome = "continued" if update.streak_maintained else "reset"
                metrics.streak_updates_total.labels(outcome=outcome).inc()
                logger.info(
                    f"Updated streak for user {user_id}: "
                    f"{record.current_streak} → {updated.current_streak} days ({outcome})"
                )
                return update

        raise ConcurrentUpdateError(
            f"Streak for user {user_id} changed concurrently",
            record_type="streak",
            user_id=user_id,
            operation="record_activity",
        )

    def _advance(self, record: StreakRecord, today: date) -> tuple[StreakUpdate, StreakRecord]:
        """Next streak state for a new active day"""
        continued = (
            record.last_active_date is not None
            and record.last_active_date == today - timedelta(days=1)
        )

        if continued:
            current = record.current_streak + 1
            longest = max(record.longest_streak, current)
        else:
            if record.last_active_date is not None:
                gap = self.calendar.days_between(record.last_active_date, today)
                logger.info(
                    f"User {record.user_id} streak broken. "
                    f"Was {record.current_streak}, gap was {gap} days"
                )
            current = 1
            longest = max(record.longest_streak, current)

        updated = record.model_copy(update={
            "current_streak": current,
            "longest_streak": longest,
            "last_active_date": today,
            "total_days_active": record.total_days_active + 1,
        })
        update = StreakUpdate(
            current_streak=current,
            longest_streak=longest,
            is_new_day=True,
            streak_maintained=continued,
        )
        return update, updated

    async def get_streak_summary(self, user_id: str) -> StreakSummary:
        """
        Read-only streak view for display collaborators

        week_activity covers the last seven days, oldest first, marking the
        days that belong to the run ending at last_active_date.
        """
        record = await self.store.get_streak(user_id)
        if record is None:
            return StreakSummary(rewards=build_streak_rewards(0))

        today = self.calendar.today()
        week_activity = build_week_activity(record, today)
        is_active_today = record.last_active_date == today

        return StreakSummary(
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            last_active_date=record.last_active_date,
            total_days_active=record.total_days_active,
            week_activity=week_activity,
            is_active_today=is_active_today,
            is_at_risk=not is_active_today and record.current_streak > 0,
            rewards=build_streak_rewards(record.current_streak),
        )


def build_week_activity(record: StreakRecord, today: date) -> list[bool]:
    """Seven flags, six days ago → today"""
    last_active: Optional[date] = record.last_active_date
    if last_active is None or record.current_streak <= 0:
        return [False] * 7

    days_since_active = (today - last_active).days
    run_start = days_since_active + record.current_streak - 1
    return [
        days_since_active <= days_ago <= run_start
        for days_ago in range(6, -1, -1)
    ]


def build_streak_rewards(current_streak: int) -> list[StreakReward]:
    return [
        StreakReward(days=days, reward=reward, xp=xp, reached=current_streak >= days)
        for days, reward, xp in STREAK_REWARDS
    ]
