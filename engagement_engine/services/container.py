"""
Service Container - wires the gamification engine from configuration

The engine classes take every collaborator as a constructor argument; this
module is the one place that reads config values and hands them over.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from engagement_engine import config
from engagement_engine.db.connection import Database

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    """

    db: Database

    _gamification_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def gamification_service(self):
        """Get GamificationService instance (lazy-loaded)"""
        if self._gamification_service is None:
            self._gamification_service = build_gamification_service(self.db)
            logger.debug("GamificationService instantiated")
        return self._gamification_service


def build_gamification_service(database: Optional[Database] = None):
    """Create a Postgres-backed GamificationService from config values"""
    from engagement_engine.db.queries.gamification import PostgresStore
    from engagement_engine.services.gamification_service import GamificationService
    from engagement_engine.utils.calendar import Calendar

    return GamificationService(
        store=PostgresStore(database),
        calendar=Calendar(config.GAMIFICATION_TIMEZONE),
        missions_per_period=config.MISSIONS_PER_PERIOD,
    )


# Global container instance (initialized in main.py)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Get the global service container"""
    if _container is None:
        raise RuntimeError("Service container not initialized. Call init_container() first.")
    return _container


def init_container(database: Database) -> ServiceContainer:
    """Initialize the global service container"""
    global _container
    _container = ServiceContainer(db=database)
    logger.info("Service container initialized")
    return _container
