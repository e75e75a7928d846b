"""
Database queries

- gamification.py: PostgresStore (streaks, missions, XP ledger)
"""

from engagement_engine.db.queries.gamification import PostgresStore

__all__ = ["PostgresStore"]
