"""
Vehicle resolver - the caller-facing engine.

    plate -> normalize -> cache (fresh?) -> single-flight -> orchestrator
          -> merge -> normalize -> derive -> cache write -> ResolveResult

Cache hits are rebuilt from the stored raw payloads with the same pipeline
a fresh fetch uses, so a change to merge or normalization rules applies to
cached vehicles without refetching them.

Usage:
    resolver = build_resolver(load_config())
    result = await resolver.resolve("ab12 cde")
    print(result.profile.display_title, result.cost.total_cost)
"""

import logging
from dataclasses import fields as dataclass_fields
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import aiohttp

from .cache import CacheStore, MemoryCacheStore, SQLiteCacheStore, is_fresh
from .config import ResolverConfig
from .costs import CostAccountant
from .derived import fill_derived
from .merge import FieldMergeResolver
from .models import CacheEntry, CostReport, ProviderName, ResolveResult, VehicleProfile
from .normalize import normalize_profile
from .orchestrator import ProviderOrchestrator
from .parsers import parse_payload
from .plate import normalize_plate
from .providers import RegistryClient, SpecsClient, key_preview
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = timedelta(days=30)

_PROFILE_FIELDS = {f.name for f in dataclass_fields(VehicleProfile)}
_KNOWN_PROVIDERS = {p.value: p for p in ProviderName}


def build_profile(plate: str, payloads: Dict[str, Dict[str, Any]], resolved_at: datetime,
                  merger: Optional[FieldMergeResolver] = None) -> VehicleProfile:
    """
    Turn raw provider payloads into a VehicleProfile.

    Pure: the same payloads and timestamp always give the same profile.
    Unknown provider names in `payloads` are ignored.
    """
    merger = merger or FieldMergeResolver()
    parsed = {
        name: parse_payload(_KNOWN_PROVIDERS[name], raw)
        for name, raw in payloads.items()
        if name in _KNOWN_PROVIDERS
    }
    merged = merger.merge(parsed)
    normalized = normalize_profile(merged.values, merged.sources)
    values, sources = normalized.values, normalized.sources
    fill_derived(values, sources, today=resolved_at.date())

    kwargs = {k: v for k, v in values.items() if k in _PROFILE_FIELDS and k != "plate"}
    return VehicleProfile(plate=plate, sources=sources, resolved_at=resolved_at, **kwargs)


class VehicleResolver:
    """Resolves plates to profiles with at most one paid fetch per plate per window."""

    def __init__(
        self,
        cache: CacheStore,
        orchestrator: ProviderOrchestrator,
        accountant: CostAccountant,
        single_flight: Optional[SingleFlight] = None,
        merger: Optional[FieldMergeResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
        freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW,
    ):
        self.cache = cache
        self.orchestrator = orchestrator
        self.accountant = accountant
        self.single_flight = single_flight or SingleFlight()
        self.merger = merger or FieldMergeResolver()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.freshness_window = freshness_window

    async def resolve(self, plate: str, force_refresh: bool = False,
                      mileage: Optional[int] = None) -> ResolveResult:
        """
        Resolve a plate.

        Args:
            plate: Raw registration as typed by a user.
            force_refresh: Ignore cached data and fetch from providers.
            mileage: Optional odometer reading passed to providers that use it.

        Raises:
            InvalidFormatError: plate cannot be canonicalised (no network call).
            AllProvidersFailedError: no provider returned usable data.
        """
        key = normalize_plate(plate)

        if not force_refresh:
            cached = await self._from_cache(key)
            if cached is not None:
                return cached

        async def fetch() -> ResolveResult:
            if not force_refresh:
                # A flight that finished while we were reading the cache
                cached = await self._from_cache(key)
                if cached is not None:
                    return cached
            return await self._fetch(key, mileage)

        return await self.single_flight.do(key, fetch, on_complete=self._write_back)

    async def invalidate(self, plate: str) -> bool:
        """Drop the cached entry for a plate. Returns True if one existed."""
        key = normalize_plate(plate)
        removed = await self.cache.delete(key)
        logger.info(f"Cache invalidated for {key}" if removed else f"No cache entry for {key}")
        return removed

    async def close(self):
        await self.single_flight.drain()
        for client in self.orchestrator.clients:
            await client.close()
        await self.cache.close()

    # ------------------------------------------------------------------

    def _unit_cost(self, provider: str) -> float:
        for client in self.orchestrator.clients:
            if client.name.value == provider:
                return client.cost
        return 0.0

    async def _from_cache(self, key: str) -> Optional[ResolveResult]:
        entry = await self.cache.get(key)
        if entry is None:
            logger.info(f"Cache miss: {key}")
            return None
        if not is_fresh(entry, self.clock(), self.freshness_window):
            logger.info(f"Cache stale: {key} ({entry.age(self.clock()).days} days old)")
            return None

        saved = round(sum(self._unit_cost(p) for p in entry.payloads), 4)
        self.accountant.record_saving(key, saved)
        logger.info(f"Cache hit: {key} (saved £{saved:.2f})")
        profile = build_profile(key, entry.payloads, entry.fetched_at, self.merger)
        return ResolveResult(
            profile=profile,
            cost=CostReport(cache_hit=True, saved_cost=saved),
            entry=entry,
        )

    async def _fetch(self, key: str, mileage: Optional[int]) -> ResolveResult:
        outcome = await self.orchestrator.fetch_all(key, mileage)
        fetched_at = self.clock()
        entry = CacheEntry(plate=key, payloads=outcome.payloads, fetched_at=fetched_at)
        profile = build_profile(key, entry.payloads, fetched_at, self.merger)
        return ResolveResult(
            profile=profile,
            cost=CostReport(paid_calls=tuple(outcome.paid_calls)),
            entry=entry,
        )

    async def _write_back(self, result: ResolveResult):
        if result.cost.cache_hit or result.entry is None:
            return
        await self.cache.put(result.entry.plate, result.entry)
        logger.info(f"Cached {result.entry.plate} from {result.entry.providers}")


def build_resolver(config: ResolverConfig,
                   session: Optional[aiohttp.ClientSession] = None,
                   clock: Optional[Callable[[], datetime]] = None) -> VehicleResolver:
    """Wire a resolver from configuration."""
    clients = [
        RegistryClient(
            api_key=config.registry_api_key,
            url=config.registry_url,
            cost=config.registry_call_cost,
            timeout=config.provider_timeout,
            session=session,
        ),
        SpecsClient(
            api_key=config.specs_api_key,
            base_url=config.specs_base_url,
            datapoint=config.specs_datapoint,
            cost=config.specs_call_cost,
            timeout=config.provider_timeout,
            test_mode=config.specs_test_mode,
            session=session,
        ),
    ]
    accountant = CostAccountant(clock=clock)
    orchestrator = ProviderOrchestrator(
        clients,
        accountant,
        timeout=config.provider_timeout,
        max_retries=config.max_retries,
        retry_backoff=config.retry_backoff,
    )
    cache: CacheStore = SQLiteCacheStore(config.cache_path) if config.cache_path else MemoryCacheStore()

    logger.info(
        f"Resolver ready: registry key {key_preview(config.registry_api_key)}, "
        f"specs key {key_preview(config.specs_api_key)}"
        f"{' (test mode)' if config.specs_test_mode else ''}, "
        f"cache {'sqlite:' + config.cache_path if config.cache_path else 'memory'}"
    )
    return VehicleResolver(
        cache=cache,
        orchestrator=orchestrator,
        accountant=accountant,
        clock=clock,
        freshness_window=timedelta(days=config.freshness_days),
    )
