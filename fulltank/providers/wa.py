"""WA FuelWatch RSS feed (no authentication, prices in cents)."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from zoneinfo import ZoneInfo

from ..address import Location, parse_au_address
from ..exceptions import ProviderError
from ..models import Station, StationQuery
from ..normalize import DEFAULT_FUEL, PriceEncoding, normalize_price, normalize_timestamp
from .base import ProviderAdapter, map_fields, to_float

_LOGGER = logging.getLogger(__name__)

RSS_URL = "https://www.fuelwatch.wa.gov.au/fuelwatch/fuelWatchRSS"

# FuelWatch product codes
PRODUCT_CODE = {"U91": 1, "P95": 2, "Diesel": 4, "LPG": 5, "P98": 6}

ITEM_FIELDS = {
    "site": ("site", "site-id"),
    "name": ("trading-name", "title", "brand"),
    "brand": ("brand",),
    "suburb": ("location",),
    "address": ("address",),
    "lat": ("latitude",),
    "lng": ("longitude",),
    "price": ("price",),
    "date": ("date",),
}

WA_TZ = ZoneInfo("Australia/Perth")


class WaFuelWatchAdapter(ProviderAdapter):
    """State-wide feed for one product per request."""

    name = "wa"
    source = "WA_FUELWATCH"
    states = ("WA",)
    default_location = "Perth"

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        fuel = query.fuel or DEFAULT_FUEL
        product = PRODUCT_CODE.get(fuel)
        if product is None:
            _LOGGER.debug("FuelWatch has no product for %s", fuel)
            return []

        async with self.client() as client:
            response = await client.get(RSS_URL, params={"Product": product})
            if response.status_code >= 300:
                raise ProviderError(f"FuelWatch HTTP {response.status_code}")
            body = response.content

        return self.parse(body, fuel)

    def parse(self, body: bytes, fuel: str) -> list[Station]:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as exc:
            raise ProviderError(f"FuelWatch returned malformed XML: {exc}") from exc

        stations = []
        for idx, item in enumerate(root.iter("item")):
            raw = {child.tag: (child.text or "").strip() for child in item}
            fields = map_fields(raw, ITEM_FIELDS)
            name = fields["name"] or "Station"
            address = parse_au_address(fields["address"] or "", state_hint="WA",
                                       g1=fields["suburb"] or "")
            price = normalize_price(fields["price"], PriceEncoding.CENTS)
            stations.append(Station(
                id=str(fields["site"] or f"{name}|{fields['address'] or ''}|{idx}"),
                state="WA",
                brand=fields["brand"] or "WA",
                name=name,
                suburb=fields["suburb"] or address["suburb"],
                street=address["street"],
                postcode=address["postcode"],
                lat=to_float(fields["lat"]),
                lng=to_float(fields["lng"]),
                prices={fuel: price} if price is not None else {},
                updated_at=normalize_timestamp(fields["date"], fmt="%Y-%m-%d", tz=WA_TZ),
                source=self.source,
            ))
        return stations
