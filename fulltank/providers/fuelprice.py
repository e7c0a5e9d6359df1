"""fuelprice.io API, used for VIC when the VIC feed is disabled."""

from __future__ import annotations

from ..address import Location
from ..exceptions import ConfigurationError
from ..models import Station, StationQuery
from ..normalize import DEFAULT_FUEL, PriceEncoding, normalize_price, normalize_prices, normalize_timestamp
from .base import ProviderAdapter, map_fields, to_float

API_URL = "https://fuelprice.io/api/v1/prices"

FIELDS = {
    "id": ("id", "code", "name"),
    "brand": ("brand",),
    "name": ("name", "brand"),
    "suburb": ("suburb",),
    "postcode": ("postcode",),
    "state": ("state",),
    "lat": ("lat", "latitude"),
    "lng": ("lng", "longitude"),
    "prices": ("prices",),
    "price": ("price",),
    "updated": ("updatedAt", "updated_at"),
}


class FuelPriceAdapter(ProviderAdapter):
    name = "fuelprice"
    source = "FUELPRICE_AU"
    states = ("VIC",)
    fallback_for = "vic"
    default_location = "Melbourne"

    def check_configuration(self):
        if not self.credential("api_key"):
            raise ConfigurationError("FUELPRICE_API_KEY missing")

    async def _fetch(self, query: StationQuery, location: Location) -> list[Station]:
        fuel = query.fuel or DEFAULT_FUEL
        params = {"suburb": location.name or self.default_location, "fuel": fuel}
        async with self.client(headers={"x-api-key": self.credential("api_key")}) as client:
            data = await self.get_json(client, "GET", API_URL, params=params)

        rows = data.get("stations") if isinstance(data, dict) else data
        return [self.to_station(r, fuel) for r in rows or [] if isinstance(r, dict)]

    def to_station(self, row: dict, fuel: str) -> Station:
        fields = map_fields(row, FIELDS)
        if isinstance(fields["prices"], dict):
            prices = normalize_prices(fields["prices"])
        else:
            price = normalize_price(fields["price"])
            prices = {fuel: price} if price is not None else {}
        return Station(
            id=str(fields["id"] or ""),
            state=str(fields["state"] or "VIC").upper(),
            brand=fields["brand"] or "VIC",
            name=fields["name"] or "Station",
            suburb=fields["suburb"] or "",
            postcode=str(fields["postcode"] or ""),
            lat=to_float(fields["lat"]),
            lng=to_float(fields["lng"]),
            prices=prices,
            updated_at=normalize_timestamp(fields["updated"]),
            source=self.source,
        )
