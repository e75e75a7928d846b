"""
Service Layer Package

GamificationService is the facade the API layer calls; the container wires
it to PostgreSQL from configuration.
"""

from engagement_engine.services.container import ServiceContainer, get_container, init_container
from engagement_engine.services.gamification_service import GamificationService

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "GamificationService",
]
