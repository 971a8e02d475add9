"""In-process memoization for the engine's read paths.

``MemoCache`` stores results per (method, arguments) with a per-method TTL,
evicts through a pluggable policy and shares one in-flight computation
between concurrent callers asking for the same key. Write methods go
straight to the wrapped service and then drop the cached entries of the
read methods they affect.
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson
import structlog
from pydantic import BaseModel

from personalization_service.config import get_settings
from shared.constants import CACHE_INVALIDATION, CACHE_TTL_SECONDS, DEFAULT_CACHE_TTL_SECONDS

logger = structlog.get_logger()

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


@dataclass
class CacheStats:
    size: int
    max_entries: int
    hits: int
    misses: int
    deduplicated: int
    evictions: int
    in_flight: int


class EvictionPolicy(ABC):
    """Chooses which entry to drop when the cache is full."""

    @abstractmethod
    def select_victim(self, entries: "OrderedDict[str, CacheEntry]") -> str | None:
        """Return the key to evict, or None if nothing can be evicted."""


class FifoEviction(EvictionPolicy):
    """Evict the oldest-inserted entry, regardless of how often it is read."""

    def select_victim(self, entries: "OrderedDict[str, CacheEntry]") -> str | None:
        return next(iter(entries), None)


def _encode(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


class MemoCache:
    """TTL cache with insertion-ordered eviction and request de-duplication."""

    def __init__(
        self,
        max_entries: int = 100,
        policy: EvictionPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.policy = policy or FifoEviction()
        self.clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._in_flight: dict[str, asyncio.Future] = {}
        # Bumped by every invalidation; reads started under an older value are not stored
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._deduplicated = 0
        self._evictions = 0

    @staticmethod
    def make_key(method: str, *args: Any, **kwargs: Any) -> str:
        payload = orjson.dumps([list(args), kwargs], default=_encode, option=orjson.OPT_SORT_KEYS)
        return f"{method}:{payload.decode()}"

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.expires_at <= self.clock():
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if key in self._entries:
            del self._entries[key]
        else:
            while len(self._entries) >= self.max_entries:
                victim = self.policy.select_victim(self._entries)
                if victim is None:
                    break
                del self._entries[victim]
                self._evictions += 1
        self._entries[key] = CacheEntry(value=value, expires_at=self.clock() + ttl_seconds)

    def invalidate(self, prefix: str) -> int:
        """
        Drop every entry whose key starts with ``prefix``; returns the count.

        Matching in-flight computations are detached, so later callers
        recompute instead of joining a read that started before the write.
        """
        self._generation += 1
        for key in [key for key in self._in_flight if key.startswith(prefix)]:
            del self._in_flight[key]
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def invalidate_methods(self, methods: list[str]) -> int:
        return sum(self.invalidate(f"{method}:") for method in methods)

    def clear(self) -> None:
        self._generation += 1
        self._in_flight.clear()
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_entries=self.max_entries,
            hits=self._hits,
            misses=self._misses,
            deduplicated=self._deduplicated,
            evictions=self._evictions,
            in_flight=len(self._in_flight),
        )

    async def memoize(
        self,
        method: str,
        fn: Callable[..., Any],
        *args: Any,
        ttl_seconds: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Return a cached result for ``method(*args, **kwargs)`` or compute it.

        Concurrent callers with the same key await a single computation.
        Errors propagate to every waiting caller and are never cached.

        Args:
            method: Read method name, used as the key prefix
            fn: Sync or async callable producing the result
            ttl_seconds: Lifetime of the entry; defaults to the method's TTL
        """
        key = self.make_key(method, *args, **kwargs)

        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            self._hits += 1
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            self._deduplicated += 1
            return await asyncio.shield(pending)

        self._misses += 1
        generation = self._generation
        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future does not log a warning
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            if ttl_seconds is None:
                ttl_seconds = CACHE_TTL_SECONDS.get(method, DEFAULT_CACHE_TTL_SECONDS)
            if generation == self._generation:
                self.set(key, result, ttl_seconds)
            future.set_result(result)
            return result
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]


_memo_cache: MemoCache | None = None


def get_memo_cache() -> MemoCache:
    """Get the process-wide cache."""
    global _memo_cache
    if _memo_cache is None:
        _memo_cache = MemoCache(max_entries=get_settings().cache_max_entries)
    return _memo_cache


class _CachedService:
    def __init__(self, cache: MemoCache):
        self.cache = cache

    def _invalidate_after(self, write_method: str) -> None:
        methods = CACHE_INVALIDATION.get(write_method, [])
        removed = self.cache.invalidate_methods(methods)
        logger.debug("Invalidated cache", write_method=write_method, removed=removed)


class CachedGoalService(_CachedService):
    """Goal service with memoized reads and invalidating writes."""

    def __init__(self, service: Any, cache: MemoCache):
        super().__init__(cache)
        self.service = service

    async def get_user_goals(self, user_id: str, active_only: bool = True):
        return await self.cache.memoize(
            "get_user_goals", self.service.get_user_goals, user_id, active_only=active_only
        )

    async def get_goal_stats(self, user_id: str):
        return await self.cache.memoize("get_goal_stats", self.service.get_goal_stats, user_id)

    async def get_goal_progress(self, user_id: str, goal_id: str):
        return await self.cache.memoize(
            "get_goal_progress", self.service.get_goal_progress, user_id, goal_id
        )

    async def check_product_meets_goals(self, user_id: str, product_id: str):
        return await self.cache.memoize(
            "check_product_meets_goals",
            self.service.check_product_meets_goals,
            user_id,
            product_id,
        )

    async def generate_goal_description(self, goal_type: str, goal_config: dict[str, Any]):
        return await self.cache.memoize(
            "generate_goal_description",
            self.service.generate_goal_description,
            goal_type,
            goal_config,
        )

    async def validate_goal_config(self, goal_type: str, goal_config: dict[str, Any]):
        return await self.cache.memoize(
            "validate_goal_config", self.service.validate_goal_config, goal_type, goal_config
        )

    async def get_goal_progress_status(self, progress_percentage: float, target_percentage: float):
        return await self.cache.memoize(
            "get_goal_progress_status",
            self.service.get_goal_progress_status,
            progress_percentage,
            target_percentage,
        )

    async def get_goal(self, user_id: str, goal_id: str):
        return await self.service.get_goal(user_id, goal_id)

    async def create_goal(self, user_id: str, payload: Any):
        goal = await self.service.create_goal(user_id, payload)
        self._invalidate_after("create_goal")
        return goal

    async def update_goal(self, user_id: str, goal_id: str, payload: Any):
        goal = await self.service.update_goal(user_id, goal_id, payload)
        self._invalidate_after("update_goal")
        return goal

    async def delete_goal(self, user_id: str, goal_id: str):
        await self.service.delete_goal(user_id, goal_id)
        self._invalidate_after("delete_goal")

    async def track_purchase(self, user_id: str, order_id: str):
        result = await self.service.track_purchase(user_id, order_id)
        self._invalidate_after("track_purchase")
        return result


class CachedRecommendationService(_CachedService):
    """Recommendations and behaviour insights with tracking writes that invalidate them."""

    def __init__(self, engine: Any, tracker: Any, cache: MemoCache):
        super().__init__(cache)
        self.engine = engine
        self.tracker = tracker

    async def get_recommendations(self, user_id: str, limit: int):
        return await self.cache.memoize(
            "get_recommendations", self.engine.get_recommendations, user_id, limit
        )

    async def get_behavior_insights(self, user_id: str):
        return await self.cache.memoize(
            "get_behavior_insights", self.engine.get_behavior_insights, user_id
        )

    async def track_interaction(self, user_id: str, payload: Any):
        result = await self.tracker.track_interaction(user_id, payload)
        if result.accepted:
            self._invalidate_after("track_interaction")
        return result

    async def track_interactions(self, user_id: str, payloads: list[Any]):
        try:
            return await self.tracker.track_interactions(user_id, payloads)
        finally:
            # Events before a malformed one are already committed
            self._invalidate_after("track_interaction")

    async def record_survey(self, user_id: str, survey: Any):
        profile = await self.tracker.record_survey(user_id, survey)
        self._invalidate_after("record_survey")
        return profile
