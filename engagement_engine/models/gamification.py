"""Gamification records and results"""
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class PeriodType(str, Enum):
    """Time window that scopes a mission"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    SPECIAL = "SPECIAL"


class MissionCategory(str, Enum):
    """Mission categories"""
    WATCH = "watch"
    ENGAGE = "engage"
    LEARN = "learn"
    SOCIAL = "social"
    CHALLENGE = "challenge"


# ==========================================
# Stored records
# ==========================================

class StreakRecord(BaseModel):
    """One per user; version guards compare-and-set writes"""
    user_id: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: Optional[date] = None
    total_days_active: int = Field(default=0, ge=0)
    version: int = 0


class MissionInstance(BaseModel):
    """A user's assignment of a mission template for one period"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    period_type: PeriodType
    mission_key: str
    target: int = Field(gt=0)
    current: int = Field(default=0, ge=0)
    xp_reward: int = Field(gt=0)
    expires_at: datetime
    is_completed: bool = False
    is_claimed: bool = False
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_progress(self) -> "MissionInstance":
        if self.current > self.target:
            raise ValueError("current cannot exceed target")
        if self.is_claimed and not self.is_completed:
            raise ValueError("a mission cannot be claimed before it is completed")
        return self

    def is_active(self, now: datetime) -> bool:
        return self.expires_at >= now


class XPRecord(BaseModel):
    """One per user; total_xp only ever grows"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)


# ==========================================
# Operation results
# ==========================================

class StreakUpdate(BaseModel):
    """Outcome of recording a user's activity"""
    current_streak: int
    longest_streak: int
    is_new_day: bool
    streak_maintained: bool


class StreakReward(BaseModel):
    """Streak milestone and whether the current streak has reached it"""
    days: int
    reward: str
    xp: int
    reached: bool = False


class StreakSummary(BaseModel):
    """Read-only view of a user's streak"""
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[date] = None
    total_days_active: int = 0
    week_activity: list[bool] = Field(default_factory=lambda: [False] * 7)
    is_active_today: bool = False
    is_at_risk: bool = False
    rewards: list[StreakReward] = Field(default_factory=list)


class LevelProgress(BaseModel):
    """Where a total XP sits inside the level table"""
    level: int
    current_level_xp: int
    next_level_xp: int
    xp_to_next_level: int
    progress: float


class XPSummary(BaseModel):
    """Read-only view of a user's XP"""
    user_id: str
    total_xp: int
    level: int
    current_level_xp: int
    next_level_xp: int
    progress: float


class ClaimResult(BaseModel):
    """Outcome of a successful reward claim"""
    mission_id: str
    xp_awarded: int
    new_total_xp: int
    new_level: int
    old_level: int
    leveled_up: bool


class MissionView(BaseModel):
    """Active mission joined with its catalog template"""
    id: str
    mission_key: str
    title: str
    description: str
    period_type: PeriodType
    category: MissionCategory
    target: int
    current: int
    xp_reward: int
    bonus_reward: Optional[str] = None
    expires_at: datetime
    is_completed: bool
    is_claimed: bool
