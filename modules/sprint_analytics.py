"""
Sprint Analytics Module
Request-deduplicating cache for read-only sprint reports

- summary / burndown are keyed by sprint id
- velocity is keyed by normalized (metric, limit, include_active)
- concurrent callers for an in-flight key share one backend request
- force bypasses the committed result and any non-forced request in flight,
  but concurrent forced calls for one key still share a request
- a result only replaces the cache entry if no newer request for the key
  has already committed
"""
import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Hashable, NamedTuple, Optional
from modules.backend import SprintBackend
from utils.constants import (
    DEFAULT_VELOCITY_INCLUDE_ACTIVE,
    DEFAULT_VELOCITY_LIMIT,
    DEFAULT_VELOCITY_METRIC,
    VELOCITY_METRICS,
)

logger = logging.getLogger(__name__)


class VelocityParams(NamedTuple):
    metric: str
    limit: int
    include_active: bool

    def to_dict(self) -> dict:
        return {
            'metric': self.metric,
            'limit': self.limit,
            'include_active': self.include_active,
        }


DEFAULT_VELOCITY_PARAMS = VelocityParams(
    metric=DEFAULT_VELOCITY_METRIC,
    limit=DEFAULT_VELOCITY_LIMIT,
    include_active=DEFAULT_VELOCITY_INCLUDE_ACTIVE,
)


def normalize_velocity_params(params: Optional[dict] = None) -> VelocityParams:
    """
    Fill defaults so equivalent velocity requests share one cache key

    Args:
        params: Optional dict with metric, limit, include_active

    Returns:
        VelocityParams with every field set

    Raises:
        ValueError: If metric is not one of tasks/points/hours
    """
    if isinstance(params, VelocityParams):
        params = params.to_dict()
    params = params or {}

    limit = params.get('limit')
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit <= 0:
        limit = DEFAULT_VELOCITY_PARAMS.limit
    else:
        limit = max(1, int(limit))

    include_active = params.get('include_active')
    if not isinstance(include_active, bool):
        include_active = DEFAULT_VELOCITY_PARAMS.include_active

    metric = params.get('metric') or DEFAULT_VELOCITY_PARAMS.metric
    metric = str(metric).strip().lower()
    if metric not in VELOCITY_METRICS:
        raise ValueError(
            f"Unknown velocity metric '{metric}' (expected one of {', '.join(VELOCITY_METRICS)})"
        )

    return VelocityParams(metric=metric, limit=limit, include_active=include_active)


def velocity_key(params: VelocityParams) -> str:
    return f"{params.metric}:{params.limit}:{'1' if params.include_active else '0'}"


class _Request(NamedTuple):
    future: asyncio.Future
    generation: int
    forced: bool


class ReportCache:
    """Committed results, in-flight requests, loading counts and errors for one report type"""

    def __init__(self, name: str, fetcher: Callable[[Any], Awaitable[Any]]):
        self.name = name
        self._fetcher = fetcher
        self._results: Dict[Hashable, Any] = {}
        self._errors: Dict[Hashable, Optional[str]] = {}
        self._pending: Dict[Hashable, _Request] = {}
        self._outstanding: Counter = Counter()
        self._issued: Counter = Counter()
        self._committed: Dict[Hashable, int] = {}

    async def fetch(self, key: Hashable, argument: Any, force: bool = False) -> Any:
        pending = self._pending.get(key)
        if not force:
            if key in self._results:
                logger.debug(f"{self.name} cache hit for {key}")
                return self._results[key]
            if pending is not None:
                logger.debug(f"{self.name} joining in-flight request for {key}")
                return await asyncio.shield(pending.future)
        elif pending is not None and pending.forced:
            logger.debug(f"{self.name} joining forced request for {key}")
            return await asyncio.shield(pending.future)

        request = self._start(key, argument, force)
        return await asyncio.shield(request.future)

    def _start(self, key: Hashable, argument: Any, forced: bool) -> _Request:
        self._issued[key] += 1
        generation = self._issued[key]
        self._outstanding[key] += 1
        self._errors[key] = None
        future = asyncio.ensure_future(self._run(key, argument, generation))
        request = _Request(future=future, generation=generation, forced=forced)
        self._pending[key] = request
        return request

    async def _run(self, key: Hashable, argument: Any, generation: int) -> Any:
        try:
            result = await self._fetcher(argument)
        except Exception as e:
            if generation >= self._committed.get(key, 0):
                self._errors[key] = str(e) or f"Failed to load sprint {self.name}"
            logger.error(f"Error loading sprint {self.name} for {key}: {e}")
            raise
        else:
            if generation > self._committed.get(key, 0):
                self._results[key] = result
                self._committed[key] = generation
                self._errors[key] = None
            else:
                logger.debug(f"Dropping stale sprint {self.name} result for {key}")
            return result
        finally:
            self._outstanding[key] -= 1
            if self._outstanding[key] <= 0:
                del self._outstanding[key]
            current = self._pending.get(key)
            if current is not None and current.generation == generation:
                del self._pending[key]

    def get(self, key: Hashable) -> Any:
        return self._results.get(key)

    def is_loading(self, key: Hashable) -> bool:
        return self._outstanding.get(key, 0) > 0

    def get_error(self, key: Hashable) -> Optional[str]:
        return self._errors.get(key)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop committed results (one key or all); in-flight requests are kept"""
        if key is None:
            self._results.clear()
            self._errors.clear()
        else:
            self._results.pop(key, None)
            self._errors.pop(key, None)


class SprintAnalyticsCache:
    """
    Lazily fetched, cached sprint reports

    Getters are synchronous and never trigger a fetch.
    """

    def __init__(self, backend: SprintBackend):
        self.backend = backend
        self._summary = ReportCache('summary', backend.fetch_summary)
        self._burndown = ReportCache('burndown', backend.fetch_burndown)
        self._velocity = ReportCache('velocity', backend.fetch_velocity)

    @staticmethod
    def _check_sprint_id(sprint_id: int) -> None:
        if isinstance(sprint_id, bool) or not isinstance(sprint_id, int) or sprint_id <= 0:
            raise ValueError('sprint_id must be greater than zero')

    async def fetch_summary(self, sprint_id: int, force: bool = False) -> Any:
        self._check_sprint_id(sprint_id)
        return await self._summary.fetch(sprint_id, sprint_id, force)

    async def fetch_burndown(self, sprint_id: int, force: bool = False) -> Any:
        self._check_sprint_id(sprint_id)
        return await self._burndown.fetch(sprint_id, sprint_id, force)

    async def fetch_velocity(self, params: Optional[dict] = None, force: bool = False) -> Any:
        normalized = normalize_velocity_params(params)
        return await self._velocity.fetch(velocity_key(normalized), normalized.to_dict(), force)

    async def fetch_sprint_analytics(self, sprint_id: int, force: bool = False):
        """Fetch summary and burndown together; returns (summary, burndown)"""
        return await asyncio.gather(
            self.fetch_summary(sprint_id, force=force),
            self.fetch_burndown(sprint_id, force=force),
        )

    def get_summary(self, sprint_id: Optional[int]) -> Any:
        if not sprint_id:
            return None
        return self._summary.get(sprint_id)

    def is_summary_loading(self, sprint_id: Optional[int]) -> bool:
        if not sprint_id:
            return False
        return self._summary.is_loading(sprint_id)

    def get_summary_error(self, sprint_id: Optional[int]) -> Optional[str]:
        if not sprint_id:
            return None
        return self._summary.get_error(sprint_id)

    def get_burndown(self, sprint_id: Optional[int]) -> Any:
        if not sprint_id:
            return None
        return self._burndown.get(sprint_id)

    def is_burndown_loading(self, sprint_id: Optional[int]) -> bool:
        if not sprint_id:
            return False
        return self._burndown.is_loading(sprint_id)

    def get_burndown_error(self, sprint_id: Optional[int]) -> Optional[str]:
        if not sprint_id:
            return None
        return self._burndown.get_error(sprint_id)

    def get_velocity(self, params: Optional[dict] = None) -> Any:
        return self._velocity.get(velocity_key(normalize_velocity_params(params)))

    def is_velocity_loading(self, params: Optional[dict] = None) -> bool:
        return self._velocity.is_loading(velocity_key(normalize_velocity_params(params)))

    def get_velocity_error(self, params: Optional[dict] = None) -> Optional[str]:
        return self._velocity.get_error(velocity_key(normalize_velocity_params(params)))

    def invalidate(self, sprint_id: Optional[int] = None) -> None:
        """
        Drop cached reports so the next fetch goes to the backend

        Velocity spans many sprints, so it is always dropped.
        """
        self._summary.invalidate(sprint_id)
        self._burndown.invalidate(sprint_id)
        self._velocity.invalidate()
