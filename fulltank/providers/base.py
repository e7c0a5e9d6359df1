"""Common adapter contract and per-provider caches."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

import httpx

from ..address import Location, haversine_km
from ..exceptions import ConfigurationError, ProviderError
from ..models import Station, StationQuery

_LOGGER = logging.getLogger(__name__)

# Refresh tokens this many seconds before they actually expire
TOKEN_SAFETY_MARGIN = 60


class TokenCache:
    """In-memory bearer token with expiry, owned by one adapter."""

    def __init__(self, margin: float = TOKEN_SAFETY_MARGIN, clock: Callable[[], float] = time.monotonic):
        self.margin = margin
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> Optional[str]:
        """Cached token, or None once inside the safety margin."""
        if self._token and self._clock() < self._expires_at - self.margin:
            return self._token
        return None

    def set(self, token: str, expires_in: float):
        self._token = token
        self._expires_at = self._clock() + float(expires_in)

    def clear(self):
        self._token = None
        self._expires_at = 0.0


class DailyCache:
    """Reference data cached until the provider's local calendar day ends.

    An empty refresh never replaces a populated entry.
    """

    def __init__(self, timezone: str = "Australia/Sydney", today: Optional[Callable[[], Any]] = None):
        self._tz = ZoneInfo(timezone)
        self._today = today or (lambda: datetime.now(self._tz).date())
        self._entries: dict[str, tuple[Any, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Value cached today, or None."""
        entry = self._entries.get(key)
        if entry and entry[0] == self._today():
            return entry[1]
        return None

    def stale(self, key: str) -> Optional[Any]:
        """Whatever is cached for key, regardless of age."""
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def set(self, key: str, value: Any) -> Any:
        """Store value for today and return what is now cached."""
        previous = self.stale(key)
        if not value and previous:
            _LOGGER.warning("Empty refresh for %s, keeping previous copy", key)
            self._entries[key] = (self._today(), previous)
            return previous
        self._entries[key] = (self._today(), value)
        return value


def pick(raw: dict, candidates: Sequence[str], default: Any = None) -> Any:
    """First candidate field present with a non-empty value."""
    for name in candidates:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return default


def map_fields(raw: dict, table: dict[str, Sequence[str]]) -> dict[str, Any]:
    """Apply a canonical-field -> candidate-source-fields table."""
    return {canonical: pick(raw, candidates) for canonical, candidates in table.items()}


def to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ProviderAdapter:
    """Base class for one upstream fuel price source.

    Subclasses implement ``_fetch`` and may override
    ``check_configuration``. ``fetch_stations`` never raises for upstream
    failures: those are logged and produce an empty list.
    """

    name = ""
    source = ""
    states: tuple = ()
    # Source whose enablement makes this adapter redundant
    fallback_for: Optional[str] = None
    default_location = ""
    request_timeout = 10.0

    def __init__(self, config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.config.source_enabled(self.name)

    def serves(self, state: str) -> bool:
        return not state or state in self.states

    def credential(self, name: str) -> str:
        return self.config.credential(self.name, name)

    def check_configuration(self):
        """Raise ConfigurationError when required credentials are missing."""

    def client(self, **kwargs) -> httpx.AsyncClient:
        headers = {"User-Agent": self.config.user_agent}
        headers.update(kwargs.pop("headers", {}))
        return httpx.AsyncClient(
            timeout=kwargs.pop("timeout", self.request_timeout),
            headers=headers,
            transport=self._transport,
            **kwargs,
        )

    async def get_json(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> Any:
        response = await client.request(method, url, **kwargs)
        if response.status_code >= 300:
            raise ProviderError(f"{self.source} HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.source} returned a non-JSON body") from exc

    async def fetch_stations(self, query: StationQuery, location: Location) -> list[Station]:
        """Fetch and normalise stations for one query."""
        try:
            self.check_configuration()
        except ConfigurationError as exc:
            _LOGGER.info("[%s] not configured, skipping: %s", self.source, exc)
            return []

        try:
            stations = await self._fetch(query, location)
        except (httpx.HTTPError, ProviderError) as exc:
            _LOGGER.warning("[%s] fetch failed: %s", self.source, exc)
            return []
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            _LOGGER.warning("[%s] malformed response: %s", self.source, exc)
            return []

        stations = [s for s in stations if s.has_coordinates]
        return self.within_radius(stations, query, location)

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        raise NotImplementedError

    def within_radius(self, stations: Iterable[Station], query: StationQuery,
                      location: Location) -> list[Station]:
        """Stations near caller-supplied coordinates; all of them otherwise."""
        stations = list(stations)
        if not location.pinned:
            return stations
        radius = query.radius_km or self.config.default_radius_km
        return [
            s for s in stations
            if haversine_km(location.lat, location.lng, s.lat, s.lng) <= radius
        ]
