"""
Gamification engine

This package computes gamification state transitions:
- Daily streak tracking
- Daily and weekly mission generation and progress
- XP leveling and exactly-once reward claiming

Durable state lives behind PersistenceStore; nothing here holds per-user
state between calls.
"""

from engagement_engine.gamification.xp_system import LevelTable, DEFAULT_LEVEL_THRESHOLDS
from engagement_engine.gamification.streak_system import StreakTracker, STREAK_REWARDS
from engagement_engine.gamification.missions import (
    DEFAULT_CATALOG,
    MissionCatalog,
    MissionGenerator,
    MissionProgressTracker,
    MissionTemplate,
)
from engagement_engine.gamification.rewards import RewardClaimer
from engagement_engine.gamification.store import InMemoryStore, PersistenceStore

__all__ = [
    "LevelTable",
    "DEFAULT_LEVEL_THRESHOLDS",
    "StreakTracker",
    "STREAK_REWARDS",
    "DEFAULT_CATALOG",
    "MissionCatalog",
    "MissionGenerator",
    "MissionProgressTracker",
    "MissionTemplate",
    "RewardClaimer",
    "InMemoryStore",
    "PersistenceStore",
]
