"""
GamificationService - Gamification Business Logic

Single entry point the API layer calls:
- record_activity: streak update on user activity
- get_missions: lazily generate this period's missions, return the active set
- advance_mission: progress on a tracked user action
- claim_mission: credit a completed mission's XP
"""

import logging
from typing import Optional

from engagement_engine.gamification.missions import (
    DEFAULT_CATALOG,
    DEFAULT_MISSIONS_PER_PERIOD,
    MissionCatalog,
    MissionGenerator,
    MissionProgressTracker,
    RandomSource,
)
from engagement_engine.gamification.rewards import RewardClaimer
from engagement_engine.gamification.store import PersistenceStore
from engagement_engine.gamification.streak_system import StreakTracker
from engagement_engine.gamification.xp_system import LevelTable
from engagement_engine.models.gamification import (
    ClaimResult,
    MissionCategory,
    MissionInstance,
    MissionView,
    PeriodType,
    StreakSummary,
    StreakUpdate,
    XPSummary,
)
from engagement_engine.utils.calendar import Calendar

logger = logging.getLogger(__name__)

_PERIOD_ORDER = {PeriodType.DAILY: 0, PeriodType.WEEKLY: 1, PeriodType.SPECIAL: 2}

# Mission key advanced when a learning path item is completed
LEARNING_PATH_MISSION_KEY = "complete_path"


class GamificationService:
    """
    Service for gamification features.

    Responsibilities:
    - Streak tracking
    - Mission generation, progress and display mapping
    - Reward claiming and XP reporting

    All collaborators are supplied at construction; the service never reads
    environment variables.
    """

    def __init__(
        self,
        store: PersistenceStore,
        calendar: Optional[Calendar] = None,
        catalog: MissionCatalog = DEFAULT_CATALOG,
        level_table: Optional[LevelTable] = None,
        rng: Optional[RandomSource] = None,
        missions_per_period: int = DEFAULT_MISSIONS_PER_PERIOD,
    ):
        self.store = store
        self.calendar = calendar or Calendar()
        self.catalog = catalog
        self.level_table = level_table or LevelTable()

        self.streaks = StreakTracker(store, self.calendar)
        self.generator = MissionGenerator(
            store, catalog, self.calendar, rng=rng, missions_per_period=missions_per_period
        )
        self.progress = MissionProgressTracker(store, self.calendar)
        self.rewards = RewardClaimer(store, self.level_table)
        logger.debug("GamificationService initialized")

    async def record_activity(self, user_id: str) -> StreakUpdate:
        return await self.streaks.record_activity(user_id)

    async def get_missions(self, user_id: str) -> list[MissionView]:
        """
        Get the user's active missions, generating this period's sets first

        Returns:
            Active missions ordered daily → weekly → special
        """
        await self.generator.ensure_missions_for_period(user_id, PeriodType.DAILY)
        await self.generator.ensure_missions_for_period(user_id, PeriodType.WEEKLY)

        missions = await self.store.list_all_active_missions(user_id, self.calendar.now())
        missions.sort(key=lambda m: (_PERIOD_ORDER[m.period_type], m.expires_at, m.mission_key))
        return [self._to_view(m) for m in missions]

    async def advance_mission(self, user_id: str, mission_key: str, amount: int = 1) -> list[MissionInstance]:
        return await self.progress.advance(user_id, mission_key, amount)

    async def claim_mission(self, user_id: str, mission_id: str) -> ClaimResult:
        return await self.rewards.claim(user_id, mission_id)

    async def get_streak(self, user_id: str) -> StreakSummary:
        return await self.streaks.get_streak_summary(user_id)

    async def get_xp(self, user_id: str) -> XPSummary:
        return await self.rewards.get_user_xp(user_id)

    async def get_xp_history(self, user_id: str, limit: int = 50) -> list[dict]:
        return await self.rewards.get_xp_history(user_id, limit)

    async def complete_learning_path_item(self, user_id: str) -> list[MissionInstance]:
        """Hook for the learning path: one completed item is one unit of progress"""
        return await self.progress.advance(user_id, LEARNING_PATH_MISSION_KEY, 1)

    def _to_view(self, mission: MissionInstance) -> MissionView:
        template = self.catalog.get(mission.mission_key)
        return MissionView(
            id=mission.id,
            mission_key=mission.mission_key,
            title=template.title if template else mission.mission_key,
            description=template.description if template else "",
            period_type=mission.period_type,
            category=template.category if template else MissionCategory.LEARN,
            target=mission.target,
            current=mission.current,
            xp_reward=mission.xp_reward,
            bonus_reward=template.bonus_reward if template else None,
            expires_at=mission.expires_at,
            is_completed=mission.is_completed,
            is_claimed=mission.is_claimed,
        )
