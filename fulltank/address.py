"""Address parsing and location resolution for Australian queries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from math import asin, cos, radians, sin, sqrt
from typing import Any, Optional

import httpx

_LOGGER = logging.getLogger(__name__)

POSTCODE_RE = re.compile(r"^\d{4}$")

# "481 Pacific Highway, Wyoming NSW 2250"
_FULL_ADDRESS_RE = re.compile(r"^(.+?),\s*([A-Za-z \-']+)\s+([A-Z]{2,3})\s+(\d{4})$")
_STATE_POSTCODE_RE = re.compile(r"([A-Z]{2,3})\s+(\d{4})$")

STATE_NAMES = {
    "new south wales": "NSW",
    "victoria": "VIC",
    "queensland": "QLD",
    "western australia": "WA",
    "south australia": "SA",
    "tasmania": "TAS",
    "australian capital territory": "ACT",
    "northern territory": "NT",
}

# suburb -> (postcode, state, lat, lng)
KNOWN_SUBURBS = {
    "sydney": ("2000", "NSW", -33.8688, 151.2093),
    "parramatta": ("2150", "NSW", -33.8150, 151.0011),
    "chatswood": ("2067", "NSW", -33.7969, 151.1803),
    "st leonards": ("2065", "NSW", -33.8233, 151.1953),
    "newcastle": ("2300", "NSW", -32.9283, 151.7817),
    "wyoming": ("2250", "NSW", -33.4050, 151.3590),
    "melbourne": ("3000", "VIC", -37.8136, 144.9631),
    "docklands": ("3008", "VIC", -37.8183, 144.9537),
    "southbank": ("3006", "VIC", -37.8239, 144.9652),
    "carlton": ("3053", "VIC", -37.8000, 144.9660),
    "geelong": ("3220", "VIC", -38.1499, 144.3617),
    "brisbane": ("4000", "QLD", -27.4698, 153.0251),
    "southport": ("4215", "QLD", -27.9673, 153.4000),
    "toowoomba": ("4350", "QLD", -27.5598, 151.9507),
    "perth": ("6000", "WA", -31.9505, 115.8605),
    "fremantle": ("6160", "WA", -32.0569, 115.7439),
    "adelaide": ("5000", "SA", -34.9285, 138.6007),
    "hobart": ("7000", "TAS", -42.8821, 147.3272),
    "launceston": ("7250", "TAS", -41.4332, 147.1441),
    "canberra": ("2601", "ACT", -35.2809, 149.1300),
    "darwin": ("0800", "NT", -12.4634, 130.8456),
}


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * 6371 * asin(sqrt(a))


def parse_au_address(address: str = "", postcode: str = "", state_hint: str = "",
                     g1: str = "", g2: str = "") -> dict[str, str]:
    """Split an Australian street address into street/suburb/state/postcode.

    Explicit postcode and state hints win over values parsed from the
    address; region names g1/g2 fill an otherwise unknown suburb.
    """
    addr = str(address or "").strip()
    state = str(state_hint or "").strip().upper()
    pc = str(postcode or "").strip()

    street = ""
    suburb = ""
    out_state = state
    out_postcode = pc

    match = _FULL_ADDRESS_RE.match(addr)
    if match:
        street = match.group(1).strip()
        suburb = match.group(2).strip()
        out_state = out_state or match.group(3).strip().upper()
        out_postcode = out_postcode or match.group(4).strip()
    elif addr:
        parts = [p.strip() for p in addr.split(",") if p.strip()]
        if len(parts) >= 2:
            street = parts[0]
            last_match = _STATE_POSTCODE_RE.search(parts[-1])
            if last_match:
                out_state = out_state or last_match.group(1).upper()
                out_postcode = out_postcode or last_match.group(2)
                suburb = parts[-2]
            else:
                suburb = parts[-1]
        else:
            street = addr

    if not suburb:
        if g1:
            suburb = str(g1).strip()
        elif g2:
            suburb = str(g2).strip()

    return {
        "street": street,
        "suburb": suburb,
        "state": out_state or "",
        "postcode": out_postcode or "",
    }


@dataclass
class Location:
    """Resolved location parameters handed to every adapter."""

    query: str = ""
    postcode: str = ""
    suburb: str = ""
    state: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    strategy: str = "default"

    @property
    def is_postcode(self) -> bool:
        return bool(POSTCODE_RE.match(self.query))

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def pinned(self) -> bool:
        """True when the caller supplied the coordinates themselves."""
        return self.has_coordinates and self.strategy in ("postcode", "coordinates")

    @property
    def name(self) -> str:
        """Best named location: suburb, postcode, then raw query."""
        return self.suburb or self.postcode or self.query


def _state_code(name: Any) -> str:
    text = str(name or "").strip()
    return STATE_NAMES.get(text.lower(), text.upper() if len(text) <= 3 else "")


class Geocoder:
    """Forward/reverse geocoding against a Nominatim-compatible service."""

    def __init__(self, search_url: str, reverse_url: str, timeout: float = 5.0,
                 user_agent: str = "FullTank/1.0", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.search_url = search_url
        self.reverse_url = reverse_url
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_config(cls, config) -> "Geocoder":
        return cls(
            config.geocode_url,
            config.reverse_geocode_url,
            timeout=float(config.geocode_timeout),
            user_agent=config.user_agent,
        )

    async def _get(self, url: str, params: dict) -> Any:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        ) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _from_address(address: dict) -> dict[str, str]:
        return {
            "postcode": str(address.get("postcode") or ""),
            "suburb": str(
                address.get("suburb") or address.get("town")
                or address.get("city") or address.get("village") or ""
            ),
            "state": _state_code(address.get("state")),
        }

    async def forward(self, name: str) -> Optional[Location]:
        """Geocode a place name; None when nothing usable comes back."""
        params = {
            "q": f"{name}, Australia",
            "format": "jsonv2",
            "addressdetails": 1,
            "countrycodes": "au",
            "limit": 1,
        }
        try:
            data = await self._get(self.search_url, params)
            if not data:
                return None
            hit = data[0]
            details = self._from_address(hit.get("address") or {})
            return Location(
                query=name,
                lat=float(hit["lat"]),
                lng=float(hit["lon"]),
                strategy="geocode",
                **details,
            )
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            _LOGGER.warning("Geocoding failed for %r: %s", name, exc)
            return None

    async def reverse(self, lat: float, lng: float) -> Optional[dict[str, str]]:
        """Postcode/suburb/state for a coordinate, best effort."""
        params = {"lat": lat, "lon": lng, "format": "jsonv2", "addressdetails": 1}
        try:
            data = await self._get(self.reverse_url, params)
            address = (data or {}).get("address")
            if not address:
                return None
            return self._from_address(address)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            _LOGGER.warning("Reverse geocoding failed for %s,%s: %s", lat, lng, exc)
            return None


class LocationResolver:
    """Resolve a free-text query into adapter location parameters.

    Strategies run in order; each returns a Location or None. Resolution
    never raises: the last resort is a name-only location.
    """

    def __init__(self, geocoder: Optional[Geocoder] = None, suburbs: Optional[dict] = None):
        self.geocoder = geocoder
        self.suburbs = KNOWN_SUBURBS if suburbs is None else suburbs
        self.strategies = [
            ("postcode", self._from_postcode),
            ("coordinates", self._from_coordinates),
            ("lookup", self._from_lookup),
            ("geocode", self._from_geocoder),
        ]

    async def resolve(self, q: str = "", lat: Optional[float] = None,
                      lng: Optional[float] = None) -> Location:
        q = (q or "").strip()
        if not q and (lat is None or lng is None):
            return Location()

        for name, strategy in self.strategies:
            try:
                location = await strategy(q, lat, lng)
            except Exception as exc:
                _LOGGER.warning("Location strategy %s failed: %s", name, exc)
                continue
            if location is not None:
                _LOGGER.debug("Resolved %r via %s", q, name)
                return location

        return Location(query=q, suburb=q, strategy="name")

    async def _from_postcode(self, q, lat, lng) -> Optional[Location]:
        if not POSTCODE_RE.match(q):
            return None
        return Location(query=q, postcode=q, lat=lat, lng=lng, strategy="postcode")

    async def _from_coordinates(self, q, lat, lng) -> Optional[Location]:
        if lat is None or lng is None:
            return None
        return Location(query=q, suburb=q, lat=lat, lng=lng, strategy="coordinates")

    async def _from_lookup(self, q, lat, lng) -> Optional[Location]:
        hit = self.suburbs.get(q.lower())
        if not hit:
            return None
        postcode, state, hit_lat, hit_lng = hit
        return Location(
            query=q, postcode=postcode, suburb=q, state=state,
            lat=hit_lat, lng=hit_lng, strategy="lookup",
        )

    async def _from_geocoder(self, q, lat, lng) -> Optional[Location]:
        if self.geocoder is None:
            return None
        location = await self.geocoder.forward(q)
        if location is None:
            return None
        return replace(location, query=q, suburb=location.suburb or q)

    async def describe(self, lat: float, lng: float) -> dict[str, str]:
        """Reverse lookup used to fill in suburb/postcode on submissions."""
        if self.geocoder is None:
            return {}
        return await self.geocoder.reverse(lat, lng) or {}
