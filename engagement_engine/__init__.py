"""Gamification engine for a membership content platform: streaks, missions, XP"""

__version__ = "1.0.0"
