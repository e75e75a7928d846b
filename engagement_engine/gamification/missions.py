"""
Mission System - daily and weekly missions

Provides the mission template catalog, per-period mission generation, and
progress tracking.

A user holds at most one mission set per period window: three daily missions
that expire at the end of the day and three weekly missions that expire at
the end of the week (Sunday night). Expired missions are never deleted, they
simply stop matching active queries.
"""

import logging
import random
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Protocol, Sequence

from engagement_engine.exceptions import (
    ConfigurationError,
    MissionTemplateNotFoundError,
    ValidationError,
)
from engagement_engine.gamification.store import PersistenceStore
from engagement_engine.models.gamification import (
    MissionCategory,
    MissionInstance,
    PeriodType,
)
from engagement_engine.observability import metrics
from engagement_engine.utils.calendar import Calendar

logger = logging.getLogger(__name__)

DEFAULT_MISSIONS_PER_PERIOD = 3


@dataclass(frozen=True)
class MissionTemplate:
    """Mission definition"""
    key: str
    title: str
    description: str
    category: MissionCategory
    target: int                # Count needed to complete
    xp_reward: int             # XP credited on claim
    period_type: PeriodType
    bonus_reward: Optional[str] = None  # Badge or perk label shown with the XP


# ============================================
# Mission Template Library
# ============================================

DAILY_MISSIONS: tuple[MissionTemplate, ...] = (
    MissionTemplate(
        key="watch_1",
        title="Daily Watch",
        description="Watch 1 video",
        category=MissionCategory.WATCH,
        target=1,
        xp_reward=10,
        period_type=PeriodType.DAILY,
    ),
    MissionTemplate(
        key="watch_3",
        title="Binge Watcher",
        description="Watch 3 videos",
        category=MissionCategory.WATCH,
        target=3,
        xp_reward=25,
        period_type=PeriodType.DAILY,
    ),
    MissionTemplate(
        key="comment_1",
        title="Join Discussion",
        description="Leave a comment",
        category=MissionCategory.ENGAGE,
        target=1,
        xp_reward=10,
        period_type=PeriodType.DAILY,
    ),
    MissionTemplate(
        key="comment_3",
        title="Conversation Starter",
        description="Leave 3 comments",
        category=MissionCategory.ENGAGE,
        target=3,
        xp_reward=20,
        period_type=PeriodType.DAILY,
    ),
    MissionTemplate(
        key="feed_post",
        title="Share Your Day",
        description="Post to the Pride Feed",
        category=MissionCategory.SOCIAL,
        target=1,
        xp_reward=15,
        period_type=PeriodType.DAILY,
    ),
    MissionTemplate(
        key="react_5",
        title="Show Some Love",
        description="React to 5 posts",
        category=MissionCategory.SOCIAL,
        target=5,
        xp_reward=10,
        period_type=PeriodType.DAILY,
    ),
)

WEEKLY_MISSIONS: tuple[MissionTemplate, ...] = (
    MissionTemplate(
        key="watch_10",
        title="Week Warrior",
        description="Watch 10 videos this week",
        category=MissionCategory.WATCH,
        target=10,
        xp_reward=100,
        period_type=PeriodType.WEEKLY,
        bonus_reward="Exclusive Badge",
    ),
    MissionTemplate(
        key="complete_path",
        title="Path Progress",
        description="Complete 5 learning path items",
        category=MissionCategory.LEARN,
        target=5,
        xp_reward=150,
        period_type=PeriodType.WEEKLY,
    ),
    MissionTemplate(
        key="comments_10",
        title="Community Voice",
        description="Leave 10 comments",
        category=MissionCategory.ENGAGE,
        target=10,
        xp_reward=75,
        period_type=PeriodType.WEEKLY,
    ),
    MissionTemplate(
        key="streak_7",
        title="Week Streak",
        description="Maintain a 7-day streak",
        category=MissionCategory.CHALLENGE,
        target=7,
        xp_reward=200,
        period_type=PeriodType.WEEKLY,
        bonus_reward="Streak Shield",
    ),
    MissionTemplate(
        key="feed_posts_5",
        title="Active Member",
        description="Post 5 times to Pride Feed",
        category=MissionCategory.SOCIAL,
        target=5,
        xp_reward=100,
        period_type=PeriodType.WEEKLY,
    ),
)


class MissionCatalog:
    """Immutable lookup table of mission templates keyed by template key"""

    def __init__(self, templates: Iterable[MissionTemplate]):
        by_key: dict[str, MissionTemplate] = {}
        for template in templates:
            if template.key in by_key:
                raise ConfigurationError(
                    f"Duplicate mission key '{template.key}'",
                    config_key="mission_catalog"
                )
            if template.target <= 0 or template.xp_reward <= 0:
                raise ConfigurationError(
                    f"Mission '{template.key}' needs a positive target and XP reward",
                    config_key="mission_catalog"
                )
            by_key[template.key] = template
        self._by_key = by_key

    def get(self, key: str) -> Optional[MissionTemplate]:
        return self._by_key.get(key)

    def require(self, key: str) -> MissionTemplate:
        template = self._by_key.get(key)
        if template is None:
            raise MissionTemplateNotFoundError(key)
        return template

    def for_period(self, period_type: PeriodType) -> list[MissionTemplate]:
        return [t for t in self._by_key.values() if t.period_type == period_type]

    def keys(self) -> list[str]:
        return list(self._by_key)

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[MissionTemplate]:
        return iter(self._by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_key


DEFAULT_CATALOG = MissionCatalog(DAILY_MISSIONS + WEEKLY_MISSIONS)


class RandomSource(Protocol):
    """Anything that can sample without replacement (random.Random fits)"""

    def sample(self, population: Sequence, k: int) -> list:
        ...


# ============================================
# Mission Generation
# ============================================

class MissionGenerator:
    """Issues a fresh random mission set when a period has none active"""

    def __init__(
        self,
        store: PersistenceStore,
        catalog: MissionCatalog,
        calendar: Calendar,
        rng: Optional[RandomSource] = None,
        missions_per_period: int = DEFAULT_MISSIONS_PER_PERIOD,
    ):
        if missions_per_period < 1:
            raise ConfigurationError(
                "missions_per_period must be at least 1",
                config_key="missions_per_period"
            )
        self.store = store
        self.catalog = catalog
        self.calendar = calendar
        self.rng = rng or random.Random()
        self.missions_per_period = missions_per_period

    async def ensure_missions_for_period(self, user_id: str, period_type: PeriodType) -> bool:
        """
        Make sure the user has missions for the current day or week

        Args:
            user_id: User identifier
            period_type: DAILY or WEEKLY

        Returns:
            True if this call inserted a new mission set, False if the
            period already had one (including one inserted concurrently)
        """
        if period_type == PeriodType.SPECIAL:
            raise ValidationError(
                "Special missions are not generated from the catalog",
                field="period_type",
                value=period_type.value,
                user_id=user_id,
            )

        now = self.calendar.now()
        existing = await self.store.list_active_missions(user_id, period_type, now)
        if existing:
            logger.debug(f"User {user_id} already has {len(existing)} active {period_type.value} missions")
            return False

        # Window and expiry both derive from the single clock read above
        today = now.date()
        if period_type == PeriodType.DAILY:
            expires_at = self.calendar.end_of_day(today)
            window_start = today
        else:
            expires_at = self.calendar.end_of_week(today)
            window_start = self.calendar.start_of_week(today)

        pool = self.catalog.for_period(period_type)
        if not pool:
            logger.warning(f"No {period_type.value} mission templates configured")
            return False

        selected = self.rng.sample(pool, min(self.missions_per_period, len(pool)))
        missions = [
            MissionInstance(
                user_id=user_id,
                period_type=period_type,
                mission_key=template.key,
                target=template.target,
                xp_reward=template.xp_reward,
                expires_at=expires_at,
            )
            for template in selected
        ]

        inserted = await self.store.insert_missions_if_absent(user_id, period_type, window_start, missions)
        if not inserted:
            # Another request generated this window first
            logger.debug(
                f"{period_type.value} missions for user {user_id} "
                f"(window {window_start.isoformat()}) were generated concurrently"
            )
            return False

        metrics.mission_sets_generated_total.labels(period_type=period_type.value).inc()
        logger.info(
            f"Generated {len(missions)} {period_type.value} missions for user {user_id}: "
            f"{', '.join(m.mission_key for m in missions)}"
        )
        return True


# ============================================
# Mission Progress
# ============================================

class MissionProgressTracker:
    """Moves active, unclaimed missions toward their target"""

    def __init__(self, store: PersistenceStore, calendar: Calendar):
        self.store = store
        self.calendar = calendar

    async def advance(self, user_id: str, mission_key: str, amount: int = 1) -> list[MissionInstance]:
        """
        Add progress to every active, unclaimed mission with this key

        A key may appear in both a daily and a weekly mission; both move.
        Progress is clamped to the target and completion is never undone.

        Returns:
            The missions after the update (empty if nothing matched)
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "Progress amount must be a positive integer",
                field="amount",
                value=amount,
                user_id=user_id,
            )

        now = self.calendar.now()
        matches = await self.store.list_claimable_by_key(user_id, mission_key, now)
        if not matches:
            logger.debug(f"No active '{mission_key}' missions for user {user_id}")
            return []

        updated: list[MissionInstance] = []
        for mission in matches:
            result = await self.store.advance_mission(mission.id, amount, now)
            if result is None:
                # Claimed or expired between the lookup and the update
                continue
            metrics.mission_progress_total.labels(completed=str(result.is_completed).lower()).inc()
            if result.is_completed and not mission.is_completed:
                logger.info(f"User {user_id} completed {result.period_type.value} mission '{mission_key}'")
            updated.append(result)

        return updated
