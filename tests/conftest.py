"""Global test fixtures and utilities for engagement engine tests"""
import asyncio
import random
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from engagement_engine.gamification.store import InMemoryStore
from engagement_engine.gamification.xp_system import LevelTable
from engagement_engine.models.gamification import MissionInstance, PeriodType
from engagement_engine.services.gamification_service import GamificationService
from engagement_engine.utils.calendar import Calendar


# ============================================================================
# Time Fixtures
# ============================================================================

class FixedClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, current: datetime):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    """Wednesday 2024-01-17 10:00 UTC"""
    return FixedClock(datetime(2024, 1, 17, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def calendar(clock):
    return Calendar("UTC", clock=clock)


# ============================================================================
# Store Fixtures
# ============================================================================

class YieldingStore(InMemoryStore):
    """
    InMemoryStore whose reads give up the event loop, so coroutines
    started with asyncio.gather interleave between read and write
    """

    async def get_streak(self, user_id):
        await asyncio.sleep(0)
        return await super().get_streak(user_id)

    async def list_active_missions(self, user_id, period_type, now):
        await asyncio.sleep(0)
        return await super().list_active_missions(user_id, period_type, now)

    async def get_mission(self, mission_id):
        await asyncio.sleep(0)
        return await super().get_mission(mission_id)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def yielding_store():
    return YieldingStore()


@pytest.fixture
def mission_factory(store, calendar):
    """Insert a single mission directly into the in-memory store"""
    counter = {"n": 0}

    async def _create(
        user_id: str = "user-1",
        mission_key: str = "watch_3",
        period_type: PeriodType = PeriodType.DAILY,
        target: int = 3,
        current: int = 0,
        xp_reward: int = 50,
        expires_at: Optional[datetime] = None,
        is_completed: bool = False,
        is_claimed: bool = False,
        target_store: Optional[InMemoryStore] = None,
    ) -> MissionInstance:
        counter["n"] += 1
        mission = MissionInstance(
            user_id=user_id,
            period_type=period_type,
            mission_key=mission_key,
            target=target,
            current=current,
            xp_reward=xp_reward,
            expires_at=expires_at or calendar.end_of_day(),
            is_completed=is_completed,
            is_claimed=is_claimed,
        )
        # A distinct window per mission keeps the set-level uniqueness out of the way
        window_start = date(2000, 1, 1) + timedelta(days=counter["n"])
        await (target_store or store).insert_missions_if_absent(
            user_id, period_type, window_start, [mission]
        )
        return mission

    return _create


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def rng():
    """Seeded random source for reproducible mission sets"""
    return random.Random(42)


@pytest.fixture
def level_table():
    return LevelTable()


@pytest.fixture
def service(store, calendar, rng):
    return GamificationService(store=store, calendar=calendar, rng=rng)
