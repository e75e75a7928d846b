"""
XP and Leveling System

Maps total XP to a level through a fixed table of ascending thresholds.

Leveling Curve (default):
- Level 1 starts at 0 XP, level 2 at 100, level 3 at 250, level 4 at 500
- Gaps widen to 10000 XP by the top of the table
- Level 20 is the cap: XP keeps accruing, the level stops growing

The table is configuration data handed to each component, never a global
that gets mutated.
"""

from typing import Sequence
import bisect
import logging

from engagement_engine.exceptions import ConfigurationError
from engagement_engine.models.gamification import LevelProgress

logger = logging.getLogger(__name__)

DEFAULT_LEVEL_THRESHOLDS: tuple[int, ...] = (
    0, 100, 250, 500, 1000, 1750, 2750, 4000, 5500, 7500, 10000,
    13000, 16500, 20500, 25000, 30000, 36000, 43000, 51000, 60000,
)


class LevelTable:
    """Static, monotonic XP thresholds; index 0 is level 1"""

    def __init__(self, thresholds: Sequence[int] = DEFAULT_LEVEL_THRESHOLDS):
        thresholds = tuple(thresholds)
        if not thresholds or thresholds[0] != 0:
            raise ConfigurationError(
                "Level thresholds must start at 0",
                config_key="level_thresholds"
            )
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ConfigurationError(
                "Level thresholds must be strictly ascending",
                config_key="level_thresholds"
            )
        self._thresholds = thresholds

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def max_level(self) -> int:
        return len(self._thresholds)

    def level_for(self, total_xp: int) -> int:
        """Highest level whose threshold is <= total_xp (level 1 below zero)"""
        if total_xp <= 0:
            return 1
        return bisect.bisect_right(self._thresholds, total_xp)

    def threshold_of(self, level: int) -> int:
        """XP at which a level begins"""
        level = max(1, min(level, self.max_level))
        return self._thresholds[level - 1]

    def xp_for_next_level(self, level: int) -> int:
        """Threshold of level+1, or the top threshold at max level"""
        if level >= self.max_level:
            return self._thresholds[-1]
        return self._thresholds[max(level, 1)]

    def progress(self, total_xp: int) -> LevelProgress:
        """
        Calculate progress through the current level

        Returns:
            LevelProgress with the current/next thresholds and a
            percentage clamped to [0, 100]
        """
        total_xp = max(total_xp, 0)
        level = self.level_for(total_xp)
        current_level_xp = self.threshold_of(level)
        next_level_xp = self.xp_for_next_level(level)

        if level >= self.max_level:
            return LevelProgress(
                level=level,
                current_level_xp=current_level_xp,
                next_level_xp=next_level_xp,
                xp_to_next_level=0,
                progress=100.0,
            )

        span = next_level_xp - current_level_xp
        pct = (total_xp - current_level_xp) / span * 100
        return LevelProgress(
            level=level,
            current_level_xp=current_level_xp,
            next_level_xp=next_level_xp,
            xp_to_next_level=next_level_xp - total_xp,
            progress=round(min(max(pct, 0.0), 100.0), 2),
        )
