"""
Dashboard service: normalization, aggregation and caching for one source.

`DashboardService.get_dashboard` serves the cached bundle while it is
fresh; `build` always recomputes from the spreadsheet and is what
snapshot creation uses.
"""

import logging
from datetime import date
from typing import Callable

from ..schemas import DashboardData
from .aggregator import aggregate
from .cache import MemoryCache
from .normalizer import EntityNormalizer

logger = logging.getLogger(__name__)


class DashboardService:
    def __init__(
        self,
        normalizer: EntityNormalizer,
        cache: MemoryCache,
        ttl: float = 60.0,
        today: Callable[[], date] = date.today,
    ):
        self.normalizer = normalizer
        self.cache = cache
        self.ttl = ttl
        self._today = today

    @staticmethod
    def cache_key(source_id: str) -> str:
        return f"dashboard:{source_id}"

    async def build(self, source_id: str) -> DashboardData:
        """Normalize and aggregate the source without consulting the cache."""
        projects = await self.normalizer.normalize(source_id)
        return aggregate(projects, today=self._today())

    async def get_dashboard(self, source_id: str, force_refresh: bool = False) -> DashboardData:
        key = self.cache_key(source_id)
        if force_refresh:
            self.cache.delete(key)
        else:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Dashboard cache hit for %s", source_id)
                return cached
        logger.debug("Dashboard cache miss for %s", source_id)
        data = await self.build(source_id)
        self.cache.set(key, data, self.ttl)
        return data

    def invalidate(self, source_id: str) -> None:
        self.cache.delete(self.cache_key(source_id))
