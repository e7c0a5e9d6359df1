"""NSW FuelCheck (also serving Tasmania) with OAuth client credentials."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from ..address import Location, parse_au_address
from ..exceptions import ConfigurationError, ProviderError
from ..models import Station, StationQuery
from ..normalize import DEFAULT_FUEL, PriceEncoding, normalize_price, normalize_timestamp, parse_timestamp
from .base import ProviderAdapter, TokenCache, map_fields, pick, to_float

_LOGGER = logging.getLogger(__name__)

TOKEN_URL = "https://api.onegov.nsw.gov.au/oauth/client_credential/accesstoken"
BASE_V2 = "https://api.onegov.nsw.gov.au/FuelPriceCheck/v2"

# NSW fuel code -> canonical fuel key. E10, PDL and friends are dropped.
NSW_FUELS = {"U91": "U91", "P95": "P95", "P98": "P98", "DL": "Diesel", "LPG": "LPG"}
CANONICAL_TO_NSW = {v: k for k, v in NSW_FUELS.items()}

STATION_FIELDS = {
    "id": ("code", "stationcode", "stationid"),
    "brand": ("brand", "stationname"),
    "name": ("name", "stationname", "brand"),
    "address": ("address",),
    "state": ("state",),
    "lat": ("latitude", "lat"),
    "lng": ("longitude", "lng"),
}

PRICE_FIELDS = {
    "station": ("stationcode", "code", "stationid"),
    "fuel": ("fueltype", "FuelType"),
    "price": ("price", "Price"),
    "updated": ("lastupdated", "LastUpdated"),
}

LAST_UPDATED_FORMAT = "%d/%m/%Y %H:%M:%S"
NSW_TZ = ZoneInfo("Australia/Sydney")


class NswFuelCheckAdapter(ProviderAdapter):
    """FuelCheck v2: stations and prices come back as two lists joined by code."""

    name = "nsw"
    source = "NSW_FUELCHECK_V2"
    states = ("NSW", "TAS")
    default_location = "2065"

    def __init__(self, config, transport: Optional[httpx.AsyncBaseTransport] = None,
                 token_cache: Optional[TokenCache] = None):
        super().__init__(config, transport)
        self.tokens = token_cache or TokenCache()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop = None

    def check_configuration(self):
        if not self.credential("client_id") or not self.credential("client_secret"):
            raise ConfigurationError("NSW_CLIENT_ID/SECRET missing")

    def _refresh_lock(self) -> asyncio.Lock:
        # Flask runs each async view on its own loop; a lock belongs to one
        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def get_token(self, client: httpx.AsyncClient) -> str:
        """Cached access token, refreshed shortly before expiry.

        Concurrent callers on one loop share a single refresh request.
        """
        token = self.tokens.get()
        if token:
            return token

        async with self._refresh_lock():
            token = self.tokens.get()
            if token:
                return token

            response = await client.get(
                TOKEN_URL,
                params={"grant_type": "client_credentials"},
                auth=(self.credential("client_id"), self.credential("client_secret")),
            )
            if response.status_code >= 300:
                raise ProviderError(f"NSW token HTTP {response.status_code}")
            try:
                payload = response.json()
                token = payload["access_token"]
                expires_in = float(payload.get("expires_in") or 0)
            except (AttributeError, ValueError, KeyError, TypeError) as exc:
                raise ProviderError("NSW token response malformed") from exc

            self.tokens.set(token, expires_in)
        _LOGGER.debug("NSW token refreshed, expires in %ss", expires_in)
        return token

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "apikey": self.credential("client_id"),
            "transactionid": str(uuid.uuid4()),
            "requesttimestamp": datetime.now(timezone.utc).strftime("%d/%m/%Y %I:%M:%S %p"),
        }

    def _request(self, query: StationQuery, location: Location) -> tuple[str, dict]:
        fuel = CANONICAL_TO_NSW.get(query.fuel or DEFAULT_FUEL, "U91")
        if location.has_coordinates:
            body = {
                "fueltype": fuel,
                "latitude": str(location.lat),
                "longitude": str(location.lng),
                "radius": str(query.radius_km or self.config.default_radius_km),
                "sortby": "price",
                "sortascending": "true",
            }
            if location.postcode:
                body["namedlocation"] = location.postcode
            return f"{BASE_V2}/fuel/prices/nearby", body
        return f"{BASE_V2}/fuel/prices/location", {
            "fueltype": fuel,
            "namedlocation": location.name or self.default_location,
            "sortby": "price",
            "sortascending": "true",
        }

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        async with self.client() as client:
            token = await self.get_token(client)
            url, body = self._request(query, location)
            response = await client.post(url, json=body, headers=self._headers(token))
            if response.status_code == 401:
                self.tokens.clear()
            if response.status_code >= 300:
                raise ProviderError(f"NSW location HTTP {response.status_code}")
            try:
                data = response.json()
            except ValueError as exc:
                raise ProviderError("NSW returned a non-JSON body") from exc

        return self.parse(data, query.fuel)

    def parse(self, data: dict, fuel: Optional[str] = None) -> list[Station]:
        """Join the stations and prices lists into station records."""
        data = data or {}
        price_rows = data.get("prices") if isinstance(data.get("prices"), list) else []
        station_rows = data.get("stations") if isinstance(data.get("stations"), list) else None
        if station_rows is None:
            # Older flat shape: each price row carries its own station fields
            station_rows = price_rows

        bags: dict[str, dict[str, float]] = {}
        updated: dict[str, object] = {}
        for row in price_rows:
            fields = map_fields(row, PRICE_FIELDS)
            code = str(fields["station"] or "")
            key = NSW_FUELS.get(str(fields["fuel"] or "").upper())
            price = normalize_price(fields["price"], PriceEncoding.CENTS)
            if not code or key is None or price is None:
                continue
            bags.setdefault(code, {})[key] = price
            ts = parse_timestamp(fields["updated"], fmt=LAST_UPDATED_FORMAT, tz=NSW_TZ)
            if ts and (code not in updated or ts > updated[code]):
                updated[code] = ts

        stations = []
        seen = set()
        for row in station_rows:
            fields = map_fields(row, STATION_FIELDS)
            code = str(fields["id"] or "")
            if not code or code in seen:
                continue
            seen.add(code)

            loc = row.get("location")
            lat, lng = fields["lat"], fields["lng"]
            if isinstance(loc, dict):
                lat = pick(loc, ("latitude", "lat"), lat)
                lng = pick(loc, ("longitude", "lng"), lng)

            prices = bags.get(code, {})
            if fuel and fuel not in prices:
                continue

            address = parse_au_address(fields["address"] or "", state_hint=fields["state"] or "")
            stations.append(Station(
                id=code,
                state=address["state"] or "NSW",
                brand=fields["brand"] or "Unknown",
                name=fields["name"] or "Station",
                suburb=address["suburb"] or (loc if isinstance(loc, str) else ""),
                street=address["street"],
                postcode=address["postcode"],
                lat=to_float(lat),
                lng=to_float(lng),
                prices=dict(prices),
                updated_at=normalize_timestamp(updated.get(code)),
                source=self.source,
            ))
        return stations
