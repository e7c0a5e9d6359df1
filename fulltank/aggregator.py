"""Fan-out/fan-in aggregation across provider adapters."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .address import Geocoder, Location, LocationResolver
from .config import Config
from .exceptions import ConfigurationError
from .merge import dedupe, matches_query, merge_with_store, sort_stations
from .models import Station, StationQuery
from .providers import ProviderAdapter, build_adapters
from .store import DocumentStore

_LOGGER = logging.getLogger(__name__)


class Aggregator:
    """Runs every applicable adapter concurrently and merges the results."""

    def __init__(self, config: Config, store: DocumentStore,
                 adapters: Optional[list[ProviderAdapter]] = None,
                 resolver: Optional[LocationResolver] = None):
        self.config = config
        self.store = store
        self.adapters = build_adapters(config) if adapters is None else adapters
        if resolver is None:
            geocoder = Geocoder.from_config(config) if config.geocoding_enabled else None
            resolver = LocationResolver(geocoder)
        self.resolver = resolver

    def adapter(self, name: str) -> Optional[ProviderAdapter]:
        return next((a for a in self.adapters if a.name == name), None)

    def scheduled_adapters(self, state: str = "") -> list[ProviderAdapter]:
        """Enabled adapters serving the requested state (all when empty)."""
        enabled = {a.name for a in self.adapters if a.enabled}
        scheduled = []
        for adapter in self.adapters:
            if adapter.name not in enabled or not adapter.serves(state):
                continue
            if adapter.fallback_for and adapter.fallback_for in enabled:
                continue
            scheduled.append(adapter)
        return scheduled

    async def _collect(self, adapter: ProviderAdapter, query: StationQuery,
                       location: Location) -> list[Station]:
        """One adapter's records; failures and timeouts contribute nothing."""
        try:
            records = await asyncio.wait_for(
                adapter.fetch_stations(query, location),
                timeout=float(self.config.adapter_timeout),
            )
        except asyncio.TimeoutError:
            _LOGGER.warning("[%s] timed out after %ss", adapter.source, self.config.adapter_timeout)
            return []
        except ConfigurationError as exc:
            _LOGGER.info("[%s] unavailable: %s", adapter.source, exc)
            return []
        except Exception as exc:
            _LOGGER.exception("[%s] adapter failed: %s", adapter.source, exc)
            return []

        _LOGGER.info("[%s] +%d", adapter.source, len(records))
        return records

    async def fetch_live(self, query: StationQuery, location: Location) -> list[Station]:
        adapters = self.scheduled_adapters(query.state)
        results = await asyncio.gather(*(self._collect(a, query, location) for a in adapters))
        live = []
        for records in results:
            live.extend(records)
        return live

    async def get_stations(self, query: StationQuery) -> list[Station]:
        """Aggregated, merged and sorted stations for one query."""
        location = await self.resolver.resolve(query.q, query.lat, query.lng)
        live = await self.fetch_live(query, location)

        # Postcode and explicit-coordinate queries were scoped upstream
        skip_text_filter = location.is_postcode or query.has_coordinates
        want_state = query.state
        filtered = [
            s for s in live
            if (not want_state or s.state.upper() == want_state)
            and (skip_text_filter or matches_query(s, query.q))
        ]
        _LOGGER.info(
            "[AGG] before filter count %d after %d skipTextFilter %s wantState %r",
            len(live), len(filtered), skip_text_filter, want_state
        )

        local = [
            s for s in self.store.stations()
            if (not want_state or s.state.upper() == want_state)
            and matches_query(s, query.q)
        ]
        _LOGGER.info("[LIVE] filtered count %d", len(filtered))
        _LOGGER.info("[LOCAL] filtered count %d", len(local))

        stations = merge_with_store(dedupe(filtered), local)
        return sort_stations(stations, query.sort, fuel=query.fuel)
