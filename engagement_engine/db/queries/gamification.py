"""Gamification database queries"""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncGenerator, Optional
from uuid import UUID

import psycopg

from engagement_engine.db.connection import Database, db as default_db
from engagement_engine.exceptions import wrap_store_exception
from engagement_engine.gamification.store import PersistenceStore
from engagement_engine.models.gamification import (
    MissionInstance,
    PeriodType,
    StreakRecord,
    XPRecord,
)

logger = logging.getLogger(__name__)

STREAK_COLUMNS = """
    user_id, current_streak, longest_streak, last_active_date, total_days_active, version
"""

MISSION_COLUMNS = """
    id::text AS id, user_id, period_type, mission_key, target, current, xp_reward,
    expires_at, is_completed, is_claimed, created_at
"""


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


class PostgresStore(PersistenceStore):
    """
    PersistenceStore over PostgreSQL

    Every state transition is a single conditional statement, so the
    row-count or RETURNING result tells the engine whether it won.
    Driver failures surface as StoreUnavailableError.
    """

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    @asynccontextmanager
    async def _connection(
        self, operation: str, user_id: Optional[str] = None
    ) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        try:
            async with self.db.connection() as conn:
                yield conn
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation=operation, user_id=user_id) from e

    # ==========================================
    # Streak Functions
    # ==========================================

    async def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        async with self._connection("get_streak", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {STREAK_COLUMNS}
                    FROM user_streaks
                    WHERE user_id = %s
                    """,
                    (user_id,)
                )
                row = await cur.fetchone()
                return StreakRecord(**row) if row else None

    async def insert_streak_if_absent(self, record: StreakRecord) -> bool:
        async with self._connection("insert_streak", record.user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_streaks
                        (user_id, current_streak, longest_streak, last_active_date, total_days_active, version)
                    VALUES (%s, %s, %s, %s, %s, 1)
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    (
                        record.user_id,
                        record.current_streak,
                        record.longest_streak,
                        record.last_active_date,
                        record.total_days_active,
                    )
                )
                inserted = cur.rowcount == 1
                await conn.commit()
                if inserted:
                    logger.info(f"Created streak record for user {record.user_id}")
                return inserted

    async def update_streak_if_version(self, record: StreakRecord, expected_version: int) -> bool:
        async with self._connection("update_streak", record.user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_streaks
                    SET current_streak = %s,
                        longest_streak = %s,
                        last_active_date = %s,
                        total_days_active = %s,
                        version = version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s AND version = %s
                    """,
                    (
                        record.current_streak,
                        record.longest_streak,
                        record.last_active_date,
                        record.total_days_active,
                        record.user_id,
                        expected_version,
                    )
                )
                updated = cur.rowcount == 1
                await conn.commit()
                return updated

    # ==========================================
    # Mission Functions
    # ==========================================

    async def list_active_missions(
        self, user_id: str, period_type: PeriodType, now: datetime
    ) -> list[MissionInstance]:
        async with self._connection("list_active_missions", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {MISSION_COLUMNS}
                    FROM user_missions
                    WHERE user_id = %s AND period_type = %s AND expires_at >= %s
                    ORDER BY created_at
                    """,
                    (user_id, period_type.value, now)
                )
                rows = await cur.fetchall()
                return [MissionInstance(**row) for row in rows]

    async def list_all_active_missions(self, user_id: str, now: datetime) -> list[MissionInstance]:
        async with self._connection("list_all_active_missions", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {MISSION_COLUMNS}
                    FROM user_missions
                    WHERE user_id = %s AND expires_at >= %s
                    ORDER BY period_type, created_at
                    """,
                    (user_id, now)
                )
                rows = await cur.fetchall()
                return [MissionInstance(**row) for row in rows]

    async def list_claimable_by_key(
        self, user_id: str, mission_key: str, now: datetime
    ) -> list[MissionInstance]:
        async with self._connection("list_claimable_by_key", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {MISSION_COLUMNS}
                    FROM user_missions
                    WHERE user_id = %s
                      AND mission_key = %s
                      AND is_claimed = FALSE
                      AND expires_at >= %s
                    """,
                    (user_id, mission_key, now)
                )
                rows = await cur.fetchall()
                return [MissionInstance(**row) for row in rows]

    async def insert_missions_if_absent(
        self,
        user_id: str,
        period_type: PeriodType,
        window_start: date,
        missions: list[MissionInstance],
    ) -> bool:
        """
        Claim the (user, period, window) slot, then insert its missions

        Both statements share one transaction; the mission_sets primary key
        turns a concurrent second generation into a no-op.
        """
        async with self._connection("insert_missions_if_absent", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO mission_sets (user_id, period_type, window_start)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id, period_type, window_start) DO NOTHING
                    RETURNING user_id
                    """,
                    (user_id, period_type.value, window_start)
                )
                if await cur.fetchone() is None:
                    await conn.rollback()
                    return False

                await cur.executemany(
                    """
                    INSERT INTO user_missions
                        (id, user_id, period_type, window_start, mission_key, target, current,
                         xp_reward, expires_at, is_completed, is_claimed)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (
                            UUID(m.id),
                            m.user_id,
                            m.period_type.value,
                            window_start,
                            m.mission_key,
                            m.target,
                            m.current,
                            m.xp_reward,
                            m.expires_at,
                            m.is_completed,
                            m.is_claimed,
                        )
                        for m in missions
                    ]
                )
                await conn.commit()
                return True

    async def advance_mission(self, mission_id: str, amount: int, now: datetime) -> Optional[MissionInstance]:
        mission_uuid = _parse_uuid(mission_id)
        if mission_uuid is None:
            return None

        async with self._connection("advance_mission") as conn:
            async with conn.cursor() as cur:
                # SET expressions read the pre-update row
                await cur.execute(
                    f"""
                    UPDATE user_missions
                    SET current = LEAST(current + %s, target),
                        is_completed = is_completed OR (current + %s >= target)
                    WHERE id = %s AND is_claimed = FALSE AND expires_at >= %s
                    RETURNING {MISSION_COLUMNS}
                    """,
                    (amount, amount, mission_uuid, now)
                )
                row = await cur.fetchone()
                await conn.commit()
                return MissionInstance(**row) if row else None

    async def get_mission(self, mission_id: str) -> Optional[MissionInstance]:
        mission_uuid = _parse_uuid(mission_id)
        if mission_uuid is None:
            return None

        async with self._connection("get_mission") as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {MISSION_COLUMNS}
                    FROM user_missions
                    WHERE id = %s
                    """,
                    (mission_uuid,)
                )
                row = await cur.fetchone()
                return MissionInstance(**row) if row else None

    async def conditional_claim(self, mission_id: str) -> bool:
        mission_uuid = _parse_uuid(mission_id)
        if mission_uuid is None:
            return False

        async with self._connection("conditional_claim") as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_missions
                    SET is_claimed = TRUE,
                        claimed_at = CURRENT_TIMESTAMP
                    WHERE id = %s AND is_claimed = FALSE AND is_completed = TRUE
                    """,
                    (mission_uuid,)
                )
                claimed = cur.rowcount == 1
                await conn.commit()
                return claimed

    # ==========================================
    # XP System Functions
    # ==========================================

    async def get_xp(self, user_id: str) -> Optional[XPRecord]:
        async with self._connection("get_xp", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, total_xp, level
                    FROM user_xp
                    WHERE user_id = %s
                    """,
                    (user_id,)
                )
                row = await cur.fetchone()
                return XPRecord(**row) if row else None

    async def increment_xp(self, user_id: str, amount: int, initial_level: int) -> XPRecord:
        async with self._connection("increment_xp", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_xp (user_id, total_xp, level)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id) DO UPDATE
                    SET total_xp = user_xp.total_xp + EXCLUDED.total_xp,
                        updated_at = CURRENT_TIMESTAMP
                    RETURNING user_id, total_xp, level
                    """,
                    (user_id, amount, initial_level)
                )
                row = await cur.fetchone()
                await conn.commit()
                return XPRecord(**row)

    async def update_level_if_total(self, user_id: str, level: int, expected_total_xp: int) -> bool:
        async with self._connection("update_level", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_xp
                    SET level = %s,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s AND total_xp = %s
                    """,
                    (level, user_id, expected_total_xp)
                )
                updated = cur.rowcount == 1
                await conn.commit()
                return updated

    async def add_xp_transaction(
        self,
        user_id: str,
        amount: int,
        source_type: str,
        source_id: Optional[str],
        reason: str,
    ) -> str:
        """
        Add XP transaction

        Args:
            user_id: User identifier
            amount: XP amount
            source_type: 'mission' for claims; other collaborators use their own
            source_id: Optional id of the source record
            reason: Human-readable description

        Returns:
            Transaction ID (UUID string)
        """
        async with self._connection("add_xp_transaction", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO xp_transactions (user_id, amount, source_type, source_id, reason)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING id::text AS id
                    """,
                    (user_id, amount, source_type, source_id, reason)
                )
                result = await cur.fetchone()
                await conn.commit()
                return result["id"]

    async def get_xp_transactions(self, user_id: str, limit: int = 50) -> list[dict]:
        """
        Get recent XP transactions for user

        Returns:
            List of transactions ordered by awarded_at DESC
        """
        async with self._connection("get_xp_transactions", user_id) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id::text AS id, user_id, amount, source_type, source_id, reason, awarded_at
                    FROM xp_transactions
                    WHERE user_id = %s
                    ORDER BY awarded_at DESC
                    LIMIT %s
                    """,
                    (user_id, limit)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]
