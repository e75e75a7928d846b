"""
Mission reward claiming

A claim is the one-way transition completed-unclaimed → claimed. The flip is
a conditional update and only the caller that wins it credits XP, so N
concurrent claims of one mission award the reward exactly once.
"""

import logging

from engagement_engine.exceptions import (
    MissionAlreadyClaimedError,
    MissionNotCompletedError,
    MissionNotFoundError,
    ValidationError,
)
from engagement_engine.gamification.store import PersistenceStore
from engagement_engine.gamification.xp_system import LevelTable
from engagement_engine.models.gamification import ClaimResult, XPSummary
from engagement_engine.observability import metrics

logger = logging.getLogger(__name__)


class RewardClaimer:
    """Validates claims, flips is_claimed, credits XP and re-derives the level"""

    def __init__(self, store: PersistenceStore, level_table: LevelTable):
        self.store = store
        self.level_table = level_table

    async def claim(self, user_id: str, mission_id: str) -> ClaimResult:
        """
        Claim the XP reward for a completed mission

        Args:
            user_id: Claiming user
            mission_id: MissionInstance id

        Returns:
            ClaimResult with the XP delta and resulting totals

        Raises:
            MissionNotFoundError: no such mission, or it belongs to someone else
            MissionNotCompletedError: target not reached yet
            MissionAlreadyClaimedError: reward already credited
        """
        mission = await self.store.get_mission(mission_id)
        if mission is None or mission.user_id != user_id:
            metrics.claims_total.labels(outcome="not_found").inc()
            raise MissionNotFoundError(mission_id, user_id=user_id, operation="claim_mission")

        if not mission.is_completed:
            metrics.claims_total.labels(outcome="not_completed").inc()
            raise MissionNotCompletedError(mission_id, user_id=user_id, operation="claim_mission")

        if mission.is_claimed:
            metrics.claims_total.labels(outcome="already_claimed").inc()
            raise MissionAlreadyClaimedError(mission_id, user_id=user_id, operation="claim_mission")

        # The conditional flip decides the race; losers never touch XP
        if not await self.store.conditional_claim(mission_id):
            metrics.claims_total.labels(outcome="already_claimed").inc()
            raise MissionAlreadyClaimedError(mission_id, user_id=user_id, operation="claim_mission")

        amount = mission.xp_reward
        xp = await self.store.increment_xp(
            user_id,
            amount,
            initial_level=self.level_table.level_for(amount),
        )
        old_total_xp = xp.total_xp - amount
        old_level = self.level_table.level_for(old_total_xp)
        new_level = self.level_table.level_for(xp.total_xp)

        if new_level != xp.level:
            # Skipped when a later credit already moved total_xp; that writer sets the level
            await self.store.update_level_if_total(user_id, new_level, xp.total_xp)

        await self.store.add_xp_transaction(
            user_id,
            amount,
            source_type="mission",
            source_id=mission_id,
            reason=f"Claimed {mission.period_type.value.lower()} mission '{mission.mission_key}'",
        )

        metrics.claims_total.labels(outcome="success").inc()
        metrics.xp_awarded_total.inc(amount)
        logger.info(
            f"Awarded {amount} XP to user {user_id} for mission {mission.mission_key}. "
            f"Total: {xp.total_xp} XP, Level: {new_level}"
        )
        if new_level > old_level:
            logger.info(f"User {user_id} leveled up from {old_level} to {new_level}!")

        return ClaimResult(
            mission_id=mission_id,
            xp_awarded=amount,
            new_total_xp=xp.total_xp,
            new_level=new_level,
            old_level=old_level,
            leveled_up=new_level > old_level,
        )

    async def get_user_xp(self, user_id: str) -> XPSummary:
        """
        Get user's current XP and level information

        Users with no XP record yet are reported at level 1 with 0 XP.
        """
        record = await self.store.get_xp(user_id)
        total_xp = record.total_xp if record else 0
        progress = self.level_table.progress(total_xp)

        return XPSummary(
            user_id=user_id,
            total_xp=total_xp,
            level=progress.level,
            current_level_xp=progress.current_level_xp,
            next_level_xp=progress.next_level_xp,
            progress=progress.progress,
        )

    async def get_xp_history(self, user_id: str, limit: int = 50) -> list[dict]:
        """Recent XP ledger entries, newest first"""
        if limit < 1:
            raise ValidationError("History limit must be at least 1", field="limit", value=limit, user_id=user_id)
        return await self.store.get_xp_transactions(user_id, limit)
