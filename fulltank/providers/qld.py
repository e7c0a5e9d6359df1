"""Fuel Prices Direct API adapters (Queensland, and the SA platform).

Sites and prices are separate calls joined on site id. Prices are
reported in tenths of a cent; brand, fuel and region names come from
reference dictionaries cached for the provider's local day.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..address import Location, parse_au_address
from ..exceptions import ConfigurationError, ProviderError
from ..models import Station, StationQuery
from ..normalize import PriceEncoding, canonical_fuel, normalize_price, normalize_timestamp, parse_timestamp
from .base import DailyCache, ProviderAdapter, map_fields, to_float

_LOGGER = logging.getLogger(__name__)

COUNTRY_ID = 21

# Price value the platform uses for "no longer sold"
UNAVAILABLE_PRICE = 9999

# Fallback when the fuel dictionary is unavailable
DEFAULT_FUEL_IDS = {2: "U91", 5: "P95", 8: "P98", 3: "Diesel", 4: "LPG"}

SITE_FIELDS = {
    "id": ("S", "SiteId", "Site Id"),
    "name": ("N", "Name", "Site Name"),
    "brand": ("B", "BrandId", "Site Brand"),
    "address": ("A", "Address", "Site Address"),
    "postcode": ("P", "Postcode", "Site Post Code"),
    "g1": ("G1",),
    "g2": ("G2",),
    "lat": ("Lat", "Latitude", "Site Latitude"),
    "lng": ("Lng", "Longitude", "Site Longitude"),
    "modified": ("M", "Modified"),
}

PRICE_FIELDS = {
    "site": ("SiteId", "S"),
    "fuel": ("FuelId", "F"),
    "price": ("Price", "P"),
    "updated": ("TransactionDateUtc", "T"),
}

# Geographic region levels
LEVEL_SUBURB = 1
LEVEL_CITY = 2
LEVEL_STATE = 3


class FuelPricesDirectAdapter(ProviderAdapter):
    """Common client for the Fuel Prices Direct subscriber API."""

    base_url = ""
    state = ""
    state_region_id = 1
    timezone = "Australia/Brisbane"

    def __init__(self, config, transport: Optional[httpx.AsyncBaseTransport] = None,
                 reference_cache: Optional[DailyCache] = None):
        super().__init__(config, transport)
        self.reference_cache = reference_cache or DailyCache(self.timezone)

    @property
    def states(self):
        return (self.state,)

    def check_configuration(self):
        if not self.credential("subscriber_token"):
            raise ConfigurationError(f"{self.source} subscriber token missing")

    def client(self, **kwargs) -> httpx.AsyncClient:
        headers = {"Authorization": f"FPDAPI SubscriberToken={self.credential('subscriber_token')}"}
        return super().client(headers=headers, **kwargs)

    async def _get(self, client: httpx.AsyncClient, path: str, **params) -> Any:
        params.setdefault("countryId", COUNTRY_ID)
        return await self.get_json(client, "GET", f"{self.base_url}{path}", params=params)

    # --- reference data ---

    async def _reference(self, client: httpx.AsyncClient, kind: str) -> Any:
        cached = self.reference_cache.get(kind)
        if cached is not None:
            return cached
        try:
            fresh = await self._load_reference(client, kind)
        except (httpx.HTTPError, ProviderError, AttributeError, KeyError, TypeError, ValueError) as exc:
            stale = self.reference_cache.stale(kind)
            _LOGGER.warning("[%s] %s refresh failed: %s", self.source, kind, exc)
            if stale is not None:
                return stale
            return {} if kind != "regions" else []
        return self.reference_cache.set(kind, fresh)

    async def _load_reference(self, client: httpx.AsyncClient, kind: str) -> Any:
        if kind == "brands":
            data = await self._get(client, "/Subscriber/GetCountryBrands")
            return {int(b["BrandId"]): b["Name"] for b in data.get("Brands") or []}
        if kind == "fuels":
            data = await self._get(client, "/Subscriber/GetCountryFuelTypes")
            return {int(f["FuelId"]): f["Name"] for f in data.get("Fuels") or []}
        if kind == "regions":
            data = await self._get(client, "/Subscriber/GetCountryGeographicRegions")
            return [r for r in data.get("GeographicRegions") or [] if isinstance(r, dict)]
        raise ValueError(f"Unknown reference data: {kind}")

    async def reference(self, kind: str) -> Any:
        """Reference dictionary for the HTTP debug routes."""
        self.check_configuration()
        async with self.client() as client:
            return await self._reference(client, kind)

    # --- region resolution ---

    def region_for(self, location: Location, regions: list) -> tuple[int, int]:
        """(level, id) for the query: suburb, then city, else the state."""
        wanted = (location.suburb or location.query or "").strip().lower()
        if wanted and not location.is_postcode:
            for level in (LEVEL_SUBURB, LEVEL_CITY):
                for region in regions:
                    if int(region.get("GeoRegionLevel") or 0) != level:
                        continue
                    if str(region.get("Name") or "").strip().lower() == wanted:
                        return level, int(region["GeoRegionId"])
        return LEVEL_STATE, self.state_region_id

    # --- fetch ---

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        async with self.client() as client:
            brands = await self._reference(client, "brands")
            fuels = await self._reference(client, "fuels")
            regions = await self._reference(client, "regions")

            level, region_id = self.region_for(location, regions)
            _LOGGER.debug("[%s] region level %d id %d", self.source, level, region_id)
            sites = await self._get(client, "/Subscriber/GetFullSiteDetails",
                                    geoRegionLevel=level, geoRegionId=region_id)
            prices = await self._get(client, "/Price/GetSitesPrices",
                                     geoRegionLevel=level, geoRegionId=region_id)

        region_names = {int(r["GeoRegionId"]): r.get("Name", "") for r in regions if "GeoRegionId" in r}
        return self.join(sites, prices, brands=brands, fuels=fuels,
                         region_names=region_names, fuel=query.fuel)

    def fuel_key(self, fuel_id: Any, fuels: dict) -> Optional[str]:
        try:
            fuel_id = int(fuel_id)
        except (TypeError, ValueError):
            return None
        if fuel_id in fuels:
            return canonical_fuel(fuels[fuel_id])
        return DEFAULT_FUEL_IDS.get(fuel_id)

    def join(self, sites: Any, prices: Any, brands: Optional[dict] = None, fuels: Optional[dict] = None,
             region_names: Optional[dict] = None, fuel: Optional[str] = None) -> list[Station]:
        """Build station records from the site and price payloads.

        Sites without prices are kept (empty price map) unless a fuel was
        requested, in which case sites lacking that fuel are dropped.
        """
        brands = brands or {}
        fuels = fuels or {}
        region_names = region_names or {}
        site_rows = sites.get("S") if isinstance(sites, dict) else sites
        price_rows = prices.get("SitePrices") if isinstance(prices, dict) else prices

        bags: dict[str, dict[str, float]] = {}
        updated: dict[str, object] = {}
        for row in price_rows or []:
            fields = map_fields(row, PRICE_FIELDS)
            site_id = str(fields["site"] or "")
            key = self.fuel_key(fields["fuel"], fuels)
            if not site_id or key is None:
                continue
            if to_float(fields["price"]) == UNAVAILABLE_PRICE:
                continue
            price = normalize_price(fields["price"], PriceEncoding.TENTHS_OF_CENT)
            if price is None:
                continue
            bags.setdefault(site_id, {})[key] = price
            ts = parse_timestamp(fields["updated"])
            if ts and (site_id not in updated or ts > updated[site_id]):
                updated[site_id] = ts

        stations = []
        for row in site_rows or []:
            fields = map_fields(row, SITE_FIELDS)
            site_id = str(fields["id"] or "")
            if not site_id:
                continue
            site_prices = bags.get(site_id, {})
            if fuel and fuel not in site_prices:
                continue

            brand = fields["brand"]
            if isinstance(brand, int) or str(brand or "").isdigit():
                brand = brands.get(int(brand), "")
            address = parse_au_address(
                fields["address"] or "",
                postcode=fields["postcode"] or "",
                state_hint=self.state,
                g1=region_names.get(to_int(fields["g1"]), ""),
                g2=region_names.get(to_int(fields["g2"]), ""),
            )
            stations.append(Station(
                id=site_id,
                state=self.state,
                brand=brand or self.state,
                name=fields["name"] or fields["address"] or "Station",
                suburb=address["suburb"],
                street=address["street"],
                postcode=address["postcode"],
                lat=to_float(fields["lat"]),
                lng=to_float(fields["lng"]),
                prices=dict(site_prices),
                updated_at=normalize_timestamp(updated.get(site_id) or fields["modified"]),
                source=self.source,
            ))
        return stations


def to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class QldFuelAdapter(FuelPricesDirectAdapter):
    """Queensland Fuel Price Reporting scheme."""

    name = "qld"
    source = "QLD_FPD"
    state = "QLD"
    state_region_id = 1
    timezone = "Australia/Brisbane"
    default_location = "Brisbane"
    base_url = "https://fppdirectapi-prod.fuelpricesqld.com.au"
