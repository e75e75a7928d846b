"""
Prometheus metrics for the gamification engine.

- Streak metrics: activity outcomes
- Mission metrics: generated sets, progress updates
- Reward metrics: claim outcomes, XP credited

Exposition (an HTTP /metrics endpoint) belongs to the hosting service.
"""

import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# =============================================================================
# Streak Metrics
# =============================================================================

streak_updates_total = Counter(
    "gamification_streak_updates_total",
    "Streak activity records by outcome",
    ["outcome"],  # outcome: started/same_day/continued/reset
)

# =============================================================================
# Mission Metrics
# =============================================================================

mission_sets_generated_total = Counter(
    "gamification_mission_sets_generated_total",
    "Mission sets issued for a new period",
    ["period_type"],
)

mission_progress_total = Counter(
    "gamification_mission_progress_total",
    "Mission progress increments applied",
    ["completed"],  # completed: true/false after the increment
)

# =============================================================================
# Reward Metrics
# =============================================================================

claims_total = Counter(
    "gamification_claims_total",
    "Reward claim attempts by outcome",
    ["outcome"],  # outcome: success/not_found/not_completed/already_claimed
)

xp_awarded_total = Counter(
    "gamification_xp_awarded_total",
    "XP credited through mission claims",
)
