"""
Persistence contract for the gamification engine

The engine holds no state between calls. Everything durable goes through a
PersistenceStore, and every state transition is a conditional write:
- streaks: compare-and-set on a version column
- mission sets: insert-if-absent per (user, period, window start)
- progress: increment clamped to target, only while active and unclaimed
- claims: flip is_claimed only when it is still false

InMemoryStore implements the same contract behind an asyncio.Lock so tests
can race coroutines against it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from engagement_engine.models.gamification import (
    MissionInstance,
    PeriodType,
    StreakRecord,
    XPRecord,
)

logger = logging.getLogger(__name__)


class PersistenceStore(ABC):
    """Narrow async interface the engine reads and writes through"""

    # Streaks

    @abstractmethod
    async def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        ...

    @abstractmethod
    async def insert_streak_if_absent(self, record: StreakRecord) -> bool:
        """Create the user's streak row; False if one already exists"""

    @abstractmethod
    async def update_streak_if_version(self, record: StreakRecord, expected_version: int) -> bool:
        """Overwrite the row only if its version is still expected_version"""

    # Missions

    @abstractmethod
    async def list_active_missions(
        self, user_id: str, period_type: PeriodType, now: datetime
    ) -> list[MissionInstance]:
        ...

    @abstractmethod
    async def list_all_active_missions(self, user_id: str, now: datetime) -> list[MissionInstance]:
        ...

    @abstractmethod
    async def list_claimable_by_key(
        self, user_id: str, mission_key: str, now: datetime
    ) -> list[MissionInstance]:
        """Active, unclaimed missions carrying mission_key"""

    @abstractmethod
    async def insert_missions_if_absent(
        self,
        user_id: str,
        period_type: PeriodType,
        window_start: date,
        missions: list[MissionInstance],
    ) -> bool:
        """Insert a period's mission set atomically; False on a duplicate window"""

    @abstractmethod
    async def advance_mission(self, mission_id: str, amount: int, now: datetime) -> Optional[MissionInstance]:
        """Clamp-increment progress; None if the mission is no longer active and unclaimed"""

    @abstractmethod
    async def get_mission(self, mission_id: str) -> Optional[MissionInstance]:
        ...

    @abstractmethod
    async def conditional_claim(self, mission_id: str) -> bool:
        """Set is_claimed where it is still false and the mission is completed"""

    # XP

    @abstractmethod
    async def get_xp(self, user_id: str) -> Optional[XPRecord]:
        ...

    @abstractmethod
    async def increment_xp(self, user_id: str, amount: int, initial_level: int) -> XPRecord:
        """Add amount to total_xp, creating the row at initial_level if absent"""

    @abstractmethod
    async def update_level_if_total(self, user_id: str, level: int, expected_total_xp: int) -> bool:
        """Persist level only while total_xp still equals expected_total_xp"""

    @abstractmethod
    async def add_xp_transaction(
        self,
        user_id: str,
        amount: int,
        source_type: str,
        source_id: Optional[str],
        reason: str,
    ) -> str:
        ...

    @abstractmethod
    async def get_xp_transactions(self, user_id: str, limit: int = 50) -> list[dict]:
        """Ledger entries for a user, newest first"""


class InMemoryStore(PersistenceStore):
    """In-process store honouring every conditional contract"""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._streaks: dict[str, StreakRecord] = {}
        self._missions: dict[str, MissionInstance] = {}
        self._mission_sets: set[tuple[str, PeriodType, date]] = set()
        self._xp: dict[str, XPRecord] = {}
        self._transactions: list[dict] = []
        logger.debug("InMemoryStore initialized")

    # Streaks

    async def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        record = self._streaks.get(user_id)
        return record.model_copy() if record else None

    async def insert_streak_if_absent(self, record: StreakRecord) -> bool:
        async with self._lock:
            if record.user_id in self._streaks:
                return False
            self._streaks[record.user_id] = record.model_copy(update={"version": 1})
            return True

    async def update_streak_if_version(self, record: StreakRecord, expected_version: int) -> bool:
        async with self._lock:
            stored = self._streaks.get(record.user_id)
            if stored is None or stored.version != expected_version:
                return False
            self._streaks[record.user_id] = record.model_copy(update={"version": expected_version + 1})
            return True

    # Missions

    async def list_active_missions(
        self, user_id: str, period_type: PeriodType, now: datetime
    ) -> list[MissionInstance]:
        return [
            m.model_copy() for m in self._missions.values()
            if m.user_id == user_id and m.period_type == period_type and m.is_active(now)
        ]

    async def list_all_active_missions(self, user_id: str, now: datetime) -> list[MissionInstance]:
        return [
            m.model_copy() for m in self._missions.values()
            if m.user_id == user_id and m.is_active(now)
        ]

    async def list_claimable_by_key(
        self, user_id: str, mission_key: str, now: datetime
    ) -> list[MissionInstance]:
        return [
            m.model_copy() for m in self._missions.values()
            if m.user_id == user_id
            and m.mission_key == mission_key
            and not m.is_claimed
            and m.is_active(now)
        ]

    async def insert_missions_if_absent(
        self,
        user_id: str,
        period_type: PeriodType,
        window_start: date,
        missions: list[MissionInstance],
    ) -> bool:
        key = (user_id, period_type, window_start)
        async with self._lock:
            if key in self._mission_sets:
                return False
            self._mission_sets.add(key)
            created_at = datetime.now(timezone.utc)
            for mission in missions:
                self._missions[mission.id] = mission.model_copy(update={"created_at": created_at})
            return True

    async def advance_mission(self, mission_id: str, amount: int, now: datetime) -> Optional[MissionInstance]:
        async with self._lock:
            mission = self._missions.get(mission_id)
            if mission is None or mission.is_claimed or not mission.is_active(now):
                return None
            new_current = min(mission.current + amount, mission.target)
            updated = mission.model_copy(update={
                "current": new_current,
                "is_completed": mission.is_completed or new_current >= mission.target,
            })
            self._missions[mission_id] = updated
            return updated.model_copy()

    async def get_mission(self, mission_id: str) -> Optional[MissionInstance]:
        mission = self._missions.get(mission_id)
        return mission.model_copy() if mission else None

    async def conditional_claim(self, mission_id: str) -> bool:
        async with self._lock:
            mission = self._missions.get(mission_id)
            if mission is None or mission.is_claimed or not mission.is_completed:
                return False
            self._missions[mission_id] = mission.model_copy(update={"is_claimed": True})
            return True

    # XP

    async def get_xp(self, user_id: str) -> Optional[XPRecord]:
        record = self._xp.get(user_id)
        return record.model_copy() if record else None

    async def increment_xp(self, user_id: str, amount: int, initial_level: int) -> XPRecord:
        async with self._lock:
            record = self._xp.get(user_id)
            if record is None:
                record = XPRecord(user_id=user_id, total_xp=amount, level=initial_level)
            else:
                record = record.model_copy(update={"total_xp": record.total_xp + amount})
            self._xp[user_id] = record
            return record.model_copy()

    async def update_level_if_total(self, user_id: str, level: int, expected_total_xp: int) -> bool:
        async with self._lock:
            record = self._xp.get(user_id)
            if record is None or record.total_xp != expected_total_xp:
                return False
            self._xp[user_id] = record.model_copy(update={"level": level})
            return True

    async def add_xp_transaction(
        self,
        user_id: str,
        amount: int,
        source_type: str,
        source_id: Optional[str],
        reason: str,
    ) -> str:
        transaction_id = str(uuid4())
        self._transactions.append({
            "id": transaction_id,
            "user_id": user_id,
            "amount": amount,
            "source_type": source_type,
            "source_id": source_id,
            "reason": reason,
            "awarded_at": datetime.now(timezone.utc),
        })
        return transaction_id

    async def get_xp_transactions(self, user_id: str, limit: int = 50) -> list[dict]:
        entries = [t for t in reversed(self._transactions) if t["user_id"] == user_id]
        return [dict(t) for t in entries[:limit]]
