"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from streakkeeper.utils.cache import ResultCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    Infrastructure dependencies (db, cache) are injected.
    """

    # Infrastructure dependencies (injected)
    db: object  # Database instance
    cache: ResultCache
    lookback_days: int = 366

    # Services (lazy-loaded via properties)
    _habit_service: Optional[object] = field(default=None, init=False, repr=False)
    _progress_service: Optional[object] = field(default=None, init=False, repr=False)
    _achievement_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def habit_service(self):
        """Get HabitService instance (lazy-loaded)"""
        if self._habit_service is None:
            from streakkeeper.services.habit_service import HabitService
            self._habit_service = HabitService(self.db, self.cache)
            logger.debug("HabitService instantiated")
        return self._habit_service

    @property
    def progress_service(self):
        """Get ProgressService instance (lazy-loaded)"""
        if self._progress_service is None:
            from streakkeeper.services.progress_service import ProgressService
            self._progress_service = ProgressService(
                self.db,
                self.cache,
                lookback_days=self.lookback_days
            )
            logger.debug("ProgressService instantiated")
        return self._progress_service

    @property
    def achievement_service(self):
        """Get AchievementService instance (lazy-loaded)"""
        if self._achievement_service is None:
            from streakkeeper.services.achievement_service import AchievementService
            self._achievement_service = AchievementService(self.db, self.progress_service)
            logger.debug("AchievementService instantiated")
        return self._achievement_service


# Global container instance (initialized by the API lifespan)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Returns:
        ServiceContainer: The global container instance

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() at startup before using services."
        )
    return _container


def init_container(
    db: object,
    cache: ResultCache,
    lookback_days: int = 366
) -> ServiceContainer:
    """
    Initialize the global service container.

    Args:
        db: Database instance
        cache: Shared ResultCache
        lookback_days: Progress calculation window limit

    Returns:
        ServiceContainer: The initialized container
    """
    global _container

    _container = ServiceContainer(db=db, cache=cache, lookback_days=lookback_days)

    logger.info("Service container initialized")
    return _container


def reset_container() -> None:
    """Drop the global container (used on shutdown and in tests)"""
    global _container
    _container = None
