"""
Inventory aggregation across every configured yard.

Each query fans out to all yards through the bounded pool. A yard that fails
contributes nothing instead of failing the whole query.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
import httpx

from yardwatch.config import get_settings
from yardwatch.errors import ValidationError
from yardwatch.scrapers.base import BROWSER_HEADERS, InventorySource, Yard
from yardwatch.scrapers.registry import build_source, configured_yards
from yardwatch.services.cache import ResultCache, build_redis_client
from yardwatch.services.pool import run_pool

logger = logging.getLogger(__name__)

SourceFactory = Callable[[Yard, httpx.AsyncClient], InventorySource]
Fetch = Callable[[InventorySource], Awaitable[List[Any]]]


def _year_value(row: Dict) -> int:
    try:
        return int(row.get("year") or 0)
    except (TypeError, ValueError):
        return 0


def sort_rows(rows: List[Dict]) -> List[Dict]:
    """Group by yard name (ascending), newest year first within a yard"""
    return sorted(rows, key=lambda r: (str(r.get("yardName") or ""), -_year_value(r)))


class InventoryAggregator:
    """
    Fans queries out to all yards.

    Usage:
        aggregator = InventoryAggregator()
        rows = await aggregator.search("TOYOTA", "PRIUS")
    """

    def __init__(
        self,
        yards: Optional[Sequence[Yard]] = None,
        source_factory: SourceFactory = build_source,
        pool_size: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        lookup_cache_ttl: Optional[float] = None,
        timeout: Optional[float] = None,
        redis_url: Optional[str] = None,
    ):
        settings = get_settings()
        self.yards = list(yards) if yards is not None else configured_yards()
        self.source_factory = source_factory
        self.pool_size = pool_size or settings.scraper_concurrent_requests
        self.timeout = timeout or settings.scraper_request_timeout

        redis_client = build_redis_client(settings.redis_url if redis_url is None else redis_url)
        self.inventory_cache = ResultCache(
            "inventory",
            settings.cache_ttl if cache_ttl is None else cache_ttl,
            redis_client=redis_client,
            maxsize=settings.cache_max_entries,
        )
        self.lookup_cache = ResultCache(
            "lookup",
            settings.lookup_cache_ttl if lookup_cache_ttl is None else lookup_cache_ttl,
            redis_client=redis_client,
            maxsize=settings.cache_max_entries,
        )

    def yard_summaries(self) -> List[Dict[str, str]]:
        return [{"id": y.id, "name": y.name} for y in self.yards]

    async def search(self, make: str, model: str = "") -> List[Dict]:
        """
        Search every yard for a make and optional model.

        Returns:
            All yards' rows, sorted by yard name then year descending.
            Vehicles present at two yards appear twice.
        """
        make = (make or "").strip()
        model = (model or "").strip()
        if not make:
            raise ValidationError("VehicleMake is required")

        per_yard = await self._fan_out(
            ("inventory", make, model),
            self.inventory_cache,
            lambda source: source.fetch_inventory(make, model),
        )
        rows = [row for rows in per_yard for row in rows]
        return sort_rows(rows)

    async def list_makes(self) -> List[str]:
        per_yard = await self._fan_out(("makes",), self.lookup_cache, lambda source: source.fetch_makes())
        return sorted({name for names in per_yard for name in names})

    async def list_models(self, make: str) -> List[str]:
        make = (make or "").strip()
        if not make:
            raise ValidationError("makeName is required")

        per_yard = await self._fan_out(
            ("models", make),
            self.lookup_cache,
            lambda source: source.fetch_models(make),
        )
        return sorted({name for names in per_yard for name in names})

    def clear_cache(self):
        self.inventory_cache.clear()
        self.lookup_cache.clear()

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=BROWSER_HEADERS,
            follow_redirects=True,
            timeout=self.timeout,
        )

    async def _fan_out(self, query: Tuple, cache: ResultCache, fetch: Fetch) -> List[List[Any]]:
        async with self._http_client() as client:
            jobs = [self._yard_job(yard, client, query, cache, fetch) for yard in self.yards]
            return await run_pool(jobs, self.pool_size)

    def _yard_job(self, yard: Yard, client: httpx.AsyncClient, query: Tuple, cache: ResultCache, fetch: Fetch):
        key = (yard.id, yard.kind) + query

        async def job() -> List[Any]:
            cached = await cache.get(key)
            if cached is not None:
                return cached

            try:
                result = list(await fetch(self.source_factory(yard, client)))
            except Exception as e:
                logger.warning(f"Yard {yard.name} ({yard.id}) failed for {query}: {e}")
                raise

            await cache.set(key, result)
            return result

        return job


# Process-wide aggregator, shared so the inventory cache is shared
_aggregator: Optional[InventoryAggregator] = None


def get_aggregator() -> InventoryAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = InventoryAggregator()
    return _aggregator
