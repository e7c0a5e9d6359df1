"""Victorian station feed (public JSON, unit inferred per value)."""

from __future__ import annotations

import logging

from ..address import Location
from ..exceptions import ProviderError
from ..models import Station, StationQuery
from ..normalize import PriceEncoding, canonical_fuel, normalize_price, normalize_prices, normalize_timestamp
from .base import ProviderAdapter, map_fields, to_float

_LOGGER = logging.getLogger(__name__)

FEED_URL = "https://www.fuelpriceaustralia.com.au/fuel-vic.json"

SITE_FIELDS = {
    "id": ("id", "ID"),
    "brand": ("Brand", "brand"),
    "name": ("Name", "name"),
    "suburb": ("Suburb", "suburb", "Town"),
    "street": ("Address", "address", "Street"),
    "postcode": ("Postcode", "P"),
    "lat": ("Latitude", "lat", "Lat"),
    "lng": ("Longitude", "lng", "Lng"),
    "price": ("Price", "price"),
    "prices": ("Prices", "prices"),
    "updated": ("Updated", "LastUpdated"),
}


def matches(site: dict, query: str) -> bool:
    """Feed-side filter on suburb, postcode or name."""
    if not query:
        return True
    for candidates in (("Suburb", "suburb"), ("Postcode", "P"), ("Name", "name")):
        for name in candidates:
            if query in str(site.get(name) or "").lower():
                return True
    return False


class VicFeedAdapter(ProviderAdapter):
    """Whole-state JSON dump filtered locally."""

    name = "vic"
    source = "VIC_FEED"
    states = ("VIC",)
    default_location = "Melbourne"

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        async with self.client() as client:
            data = await self.get_json(client, "GET", FEED_URL)

        if not isinstance(data, dict) or not isinstance(data.get("stations"), list):
            raise ProviderError("VIC feed has an unexpected payload shape")

        wanted = "" if location.pinned else location.query.lower()
        hits = [s for s in data["stations"] if matches(s, wanted)]
        _LOGGER.info("[VIC] fetched %d rows for query %r", len(hits), location.query)
        return [self.to_station(s, query.fuel) for s in hits]

    def to_station(self, site: dict, fuel=None) -> Station:
        fields = map_fields(site, SITE_FIELDS)
        name = str(fields["name"] or "")
        brand = fields["brand"] or (name.split(" ")[0] if name else "")
        lat, lng = to_float(fields["lat"]), to_float(fields["lng"])

        if isinstance(fields["prices"], dict):
            prices = normalize_prices(fields["prices"], PriceEncoding.VIC_HEURISTIC)
        elif fuel and canonical_fuel(fuel):
            price = normalize_price(fields["price"], PriceEncoding.VIC_HEURISTIC)
            prices = {canonical_fuel(fuel): price} if price is not None else {}
        else:
            prices = {}

        return Station(
            id=str(fields["id"] or f"{brand}-{lat}-{lng}"),
            state="VIC",
            brand=str(brand),
            name=name,
            suburb=str(fields["suburb"] or ""),
            street=str(fields["street"] or ""),
            postcode=str(fields["postcode"] or ""),
            lat=lat,
            lng=lng,
            prices=prices,
            updated_at=normalize_timestamp(fields["updated"]),
            source=self.source,
        )
