"""Tests for the provider adapters against mocked upstream APIs."""

import asyncio
import json
from datetime import date

import httpx
import pytest

from fulltank.address import Location
from fulltank.models import StationQuery
from fulltank.providers import (
    DailyCache,
    FuelPriceAdapter,
    NswFuelCheckAdapter,
    QldFuelAdapter,
    SaSafpisAdapter,
    TokenCache,
    VicFeedAdapter,
    WaFuelWatchAdapter,
    build_adapters,
)
from fulltank.providers.base import map_fields, pick


def enable(config, name, **creds):
    config.sources[name]["enabled"] = True
    config.sources[name].update(creds)


class TestCaches:
    """Per-adapter token and reference data caches."""

    def test_token_expires_inside_margin(self):
        now = [1000.0]
        cache = TokenCache(margin=60, clock=lambda: now[0])
        cache.set("tok", 3600)
        assert cache.get() == "tok"
        now[0] += 3541
        assert cache.get() is None

    def test_token_clear(self):
        cache = TokenCache()
        cache.set("tok", 3600)
        cache.clear()
        assert cache.get() is None

    def test_daily_cache_rolls_over(self):
        today = [date(2024, 5, 1)]
        cache = DailyCache("Australia/Brisbane", today=lambda: today[0])
        cache.set("brands", {1: "BP"})
        assert cache.get("brands") == {1: "BP"}
        today[0] = date(2024, 5, 2)
        assert cache.get("brands") is None
        assert cache.stale("brands") == {1: "BP"}

    def test_daily_cache_keeps_previous_on_empty_refresh(self):
        cache = DailyCache()
        cache.set("brands", {1: "BP"})
        assert cache.set("brands", {}) == {1: "BP"}
        assert cache.get("brands") == {1: "BP"}


class TestFieldMapping:

    def test_first_present_candidate_wins(self):
        raw = {"Name": "", "name": "Shell", "lat": 0}
        assert pick(raw, ("Name", "name")) == "Shell"
        assert map_fields(raw, {"name": ("Name", "name"), "lat": ("Lat", "lat"), "x": ("y",)}) == {
            "name": "Shell", "lat": 0, "x": None,
        }


WA_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>FuelWatch</title>
<item>
  <title>155.3: Caltex Perth</title>
  <brand>Caltex</brand>
  <date>2024-05-01</date>
  <price>155.3</price>
  <trading-name>Caltex Perth</trading-name>
  <location>PERTH</location>
  <address>1 Hay St</address>
  <latitude>-31.9505</latitude>
  <longitude>115.8605</longitude>
</item>
<item>
  <title>No coordinates</title>
  <brand>BP</brand>
  <price>160.1</price>
  <trading-name>BP Nowhere</trading-name>
</item>
</channel></rss>"""


class TestWaFuelWatch:
    """State-wide RSS feed, prices in cents."""

    @pytest.mark.asyncio
    async def test_fetch(self, config):
        enable(config, "wa")
        seen = []

        def handler(request):
            seen.append(request.url.params.get("Product"))
            return httpx.Response(200, content=WA_RSS)

        adapter = WaFuelWatchAdapter(config, transport=httpx.MockTransport(handler))
        stations = await adapter.fetch_stations(StationQuery(fuel="U91"), Location())

        assert seen == ["1"]
        assert len(stations) == 1
        station = stations[0]
        assert station.prices == {"U91": 1.553}
        assert station.state == "WA"
        assert station.brand == "Caltex"
        assert station.suburb == "PERTH"
        assert station.updated_at == "2024-05-01T00:00:00+08:00"
        assert station.source == "WA_FUELWATCH"

    @pytest.mark.asyncio
    async def test_product_codes(self, config):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("Product"))
            return httpx.Response(200, content=WA_RSS)

        adapter = WaFuelWatchAdapter(config, transport=httpx.MockTransport(handler))
        for fuel in ("P95", "Diesel", "LPG", "P98"):
            await adapter.fetch_stations(StationQuery(fuel=fuel), Location())
        assert seen == ["2", "4", "5", "6"]

    @pytest.mark.asyncio
    async def test_malformed_xml(self, config):
        adapter = WaFuelWatchAdapter(
            config, transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<rss"))
        )
        assert await adapter.fetch_stations(StationQuery(), Location()) == []

    @pytest.mark.asyncio
    async def test_radius_applies_to_caller_coordinates(self, config):
        adapter = WaFuelWatchAdapter(
            config, transport=httpx.MockTransport(lambda request: httpx.Response(200, content=WA_RSS))
        )
        fremantle = Location(lat=-32.0569, lng=115.7439, strategy="coordinates")
        assert await adapter.fetch_stations(StationQuery(radius_km=5), fremantle) == []
        assert len(await adapter.fetch_stations(StationQuery(radius_km=50), fremantle)) == 1

    @pytest.mark.asyncio
    async def test_lookup_coordinates_do_not_scope(self, config):
        adapter = WaFuelWatchAdapter(
            config, transport=httpx.MockTransport(lambda request: httpx.Response(200, content=WA_RSS))
        )
        fremantle = Location(query="Fremantle", suburb="Fremantle", lat=-32.0569, lng=115.7439, strategy="lookup")
        assert len(await adapter.fetch_stations(StationQuery(radius_km=5), fremantle)) == 1


NSW_PAYLOAD = {
    "stations": [
        {
            "code": 101,
            "brand": "Shell",
            "name": "Shell Wyoming",
            "address": "481 Pacific Highway, Wyoming NSW 2250",
            "location": {"latitude": -33.405, "longitude": 151.359},
        },
        {
            "code": 102,
            "brand": "BP",
            "name": "BP Gosford",
            "address": "1 Mann St, Gosford NSW 2250",
            "location": {"latitude": -33.42, "longitude": 151.34},
        },
    ],
    "prices": [
        {"stationcode": 101, "fueltype": "U91", "price": 189.9, "lastupdated": "01/05/2024 10:30:00"},
        {"stationcode": 101, "fueltype": "E10", "price": 180.0, "lastupdated": "01/05/2024 10:30:00"},
        {"stationcode": 101, "fueltype": "DL", "price": 199.9, "lastupdated": "01/05/2024 11:00:00"},
        {"stationcode": 102, "fueltype": "P98", "price": 215.9, "lastupdated": "01/05/2024 09:00:00"},
    ],
}


class NswUpstream:
    """Mock FuelCheck: token endpoint plus price endpoints."""

    def __init__(self, price_status=200):
        self.token_calls = 0
        self.requests = []
        self.price_status = price_status

    def __call__(self, request):
        if request.url.path.endswith("/accesstoken"):
            self.token_calls += 1
            assert request.headers["Authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "tok", "expires_in": "43199"})
        self.requests.append(request)
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["apikey"] == "id"
        if self.price_status != 200:
            return httpx.Response(self.price_status, json={})
        return httpx.Response(200, json=NSW_PAYLOAD)


class TestNswFuelCheck:
    """OAuth client-credentials adapter serving NSW and TAS."""

    @pytest.mark.asyncio
    async def test_fetch_joins_stations_and_prices(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        upstream = NswUpstream()
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(upstream))

        stations = await adapter.fetch_stations(StationQuery(q="2250"), Location(query="2250", postcode="2250",
                                                                                 strategy="postcode"))

        assert [s.id for s in stations] == ["101", "102"]
        wyoming = stations[0]
        assert wyoming.prices == {"U91": 1.899, "Diesel": 1.999}
        assert wyoming.suburb == "Wyoming"
        assert wyoming.postcode == "2250"
        assert wyoming.street == "481 Pacific Highway"
        assert wyoming.state == "NSW"
        assert wyoming.updated_at == "2024-05-01T11:00:00+10:00"

        request = upstream.requests[0]
        assert request.url.path.endswith("/fuel/prices/location")
        assert json.loads(request.content)["namedlocation"] == "2250"

    @pytest.mark.asyncio
    async def test_requested_fuel_excludes_stations_without_it(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(NswUpstream()))
        stations = await adapter.fetch_stations(StationQuery(fuel="P98"), Location(query="2250"))
        assert [s.id for s in stations] == ["102"]

    @pytest.mark.asyncio
    async def test_token_is_cached(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        upstream = NswUpstream()
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(upstream))
        await adapter.fetch_stations(StationQuery(), Location(query="2250"))
        await adapter.fetch_stations(StationQuery(), Location(query="2250"))
        assert upstream.token_calls == 1
        assert len(upstream.requests) == 2

    @pytest.mark.asyncio
    async def test_unauthorised_clears_token(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(NswUpstream(price_status=401)))
        assert await adapter.fetch_stations(StationQuery(), Location(query="2250")) == []
        assert adapter.tokens.get() is None

    @pytest.mark.asyncio
    async def test_nearby_for_coordinates(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        upstream = NswUpstream()
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(upstream))
        location = Location(lat=-33.405, lng=151.359, strategy="coordinates")

        stations = await adapter.fetch_stations(StationQuery(radius_km=3), location)

        assert upstream.requests[0].url.path.endswith("/fuel/prices/nearby")
        body = json.loads(upstream.requests[0].content)
        assert body["radius"] == "3.0"
        assert body["fueltype"] == "U91"
        assert [s.id for s in stations] == ["101", "102"]

    @pytest.mark.asyncio
    async def test_default_location(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        upstream = NswUpstream()
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(upstream))
        await adapter.fetch_stations(StationQuery(), Location())
        assert json.loads(upstream.requests[0].content)["namedlocation"] == "2065"

    @pytest.mark.asyncio
    async def test_missing_credentials_skip_network(self, config):
        upstream = NswUpstream()
        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(upstream))
        assert await adapter.fetch_stations(StationQuery(), Location(query="2065")) == []
        assert upstream.token_calls == 0
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_token_request(self, config):
        enable(config, "nsw", client_id="id", client_secret="secret")
        upstream = NswUpstream()

        async def slow_token(request):
            if request.url.path.endswith("/accesstoken"):
                await asyncio.sleep(0.01)
            return upstream(request)

        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(slow_token))
        results = await asyncio.gather(*(
            adapter.fetch_stations(StationQuery(), Location(query="2250")) for _ in range(3)
        ))

        assert upstream.token_calls == 1
        assert all(len(stations) == 2 for stations in results)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        [1, 2],
        {"prices": ["oops"], "stations": ["oops"]},
    ])
    async def test_wrong_shape_body_yields_nothing(self, config, payload):
        enable(config, "nsw", client_id="id", client_secret="secret")

        def handler(request):
            if request.url.path.endswith("/accesstoken"):
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json=payload)

        adapter = NswFuelCheckAdapter(config, transport=httpx.MockTransport(handler))
        assert await adapter.fetch_stations(StationQuery(), Location(query="2250")) == []

    def test_serves_nsw_and_tas(self, config):
        adapter = NswFuelCheckAdapter(config)
        assert adapter.serves("NSW")
        assert adapter.serves("TAS")
        assert adapter.serves("")
        assert not adapter.serves("VIC")


class FpdUpstream:
    """Mock Fuel Prices Direct subscriber API."""

    def __init__(self):
        self.calls = []

    def __call__(self, request):
        path = request.url.path
        self.calls.append(request)
        assert request.headers["Authorization"] == "FPDAPI SubscriberToken=tok"
        assert request.url.params["countryId"] == "21"
        if path.endswith("/GetCountryBrands"):
            return httpx.Response(200, json={"Brands": [{"BrandId": 5, "Name": "BP"}]})
        if path.endswith("/GetCountryFuelTypes"):
            return httpx.Response(200, json={"Fuels": [
                {"FuelId": 2, "Name": "Unleaded"},
                {"FuelId": 3, "Name": "Diesel"},
                {"FuelId": 12, "Name": "e10"},
            ]})
        if path.endswith("/GetCountryGeographicRegions"):
            return httpx.Response(200, json={"GeographicRegions": [
                {"GeoRegionLevel": 3, "GeoRegionId": 1, "Name": "Queensland"},
                {"GeoRegionLevel": 2, "GeoRegionId": 20, "Name": "Brisbane"},
            ]})
        if path.endswith("/GetFullSiteDetails"):
            return httpx.Response(200, json={"S": [
                {"S": 61401, "N": "BP Milton", "B": 5, "A": "Cnr Milton Rd", "P": "4064",
                 "G1": 0, "G2": 20, "Lat": -27.47, "Lng": 153.0, "M": "2024-05-01T00:00:00"},
                {"S": 61402, "N": "Closed Site", "B": 99, "A": "1 Nowhere St", "P": "4000",
                 "Lat": -27.46, "Lng": 153.02},
            ]})
        if path.endswith("/GetSitesPrices"):
            return httpx.Response(200, json={"SitePrices": [
                {"SiteId": 61401, "FuelId": 3, "Price": 1899, "TransactionDateUtc": "2024-05-01T01:00:00"},
                {"SiteId": 61401, "FuelId": 2, "Price": 9999, "TransactionDateUtc": "2024-05-01T01:00:00"},
                {"SiteId": 61401, "FuelId": 12, "Price": 1799, "TransactionDateUtc": "2024-05-01T01:00:00"},
            ]})
        return httpx.Response(404)

    def paths(self):
        return [c.url.path.rsplit("/", 1)[-1] for c in self.calls]


class TestFuelPricesDirect:
    """QLD and SA share the Fuel Prices Direct platform."""

    @pytest.mark.asyncio
    async def test_qld_fetch(self, config):
        enable(config, "qld", subscriber_token="tok")
        upstream = FpdUpstream()
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(upstream))
        location = Location(query="Brisbane", suburb="Brisbane", lat=-27.47, lng=153.02, strategy="lookup")

        stations = await adapter.fetch_stations(StationQuery(q="Brisbane"), location)

        milton = stations[0]
        assert milton.prices == {"Diesel": 1.899}
        assert milton.brand == "BP"
        assert milton.state == "QLD"
        assert milton.postcode == "4064"
        assert milton.suburb == "Brisbane"
        assert milton.updated_at == "2024-05-01T01:00:00+00:00"

        # Unpriced site kept when no fuel was requested
        closed = stations[1]
        assert closed.prices == {}
        assert closed.brand == "QLD"

        sites_call = next(c for c in upstream.calls if c.url.path.endswith("/GetFullSiteDetails"))
        assert sites_call.url.params["geoRegionLevel"] == "2"
        assert sites_call.url.params["geoRegionId"] == "20"

    @pytest.mark.asyncio
    async def test_requested_fuel_filters_sites(self, config):
        enable(config, "qld", subscriber_token="tok")
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(FpdUpstream()))
        stations = await adapter.fetch_stations(StationQuery(fuel="Diesel"), Location(query="4000"))
        assert [s.id for s in stations] == ["61401"]

    @pytest.mark.asyncio
    async def test_reference_data_cached_for_the_day(self, config):
        enable(config, "qld", subscriber_token="tok")
        upstream = FpdUpstream()
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(upstream))
        await adapter.fetch_stations(StationQuery(), Location())
        await adapter.fetch_stations(StationQuery(), Location())
        assert upstream.paths().count("GetCountryBrands") == 1
        assert upstream.paths().count("GetFullSiteDetails") == 2

    @pytest.mark.asyncio
    async def test_state_region_for_unknown_names(self, config):
        enable(config, "sa", subscriber_token="tok")
        upstream = FpdUpstream()
        adapter = SaSafpisAdapter(config, transport=httpx.MockTransport(upstream))
        stations = await adapter.fetch_stations(StationQuery(), Location(query="Glenelg", suburb="Glenelg"))

        sites_call = next(c for c in upstream.calls if c.url.path.endswith("/GetFullSiteDetails"))
        assert sites_call.url.params["geoRegionLevel"] == "3"
        assert sites_call.url.params["geoRegionId"] == "4"
        assert sites_call.url.host == "fppdirectapi-prod.safuelpricinginformation.com.au"
        assert all(s.state == "SA" and s.source == "SA_SAFPIS" for s in stations)

    @pytest.mark.asyncio
    async def test_reference_endpoint(self, config):
        enable(config, "qld", subscriber_token="tok")
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(FpdUpstream()))
        assert await adapter.reference("brands") == {5: "BP"}

    @pytest.mark.asyncio
    async def test_missing_token(self, config):
        upstream = FpdUpstream()
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(upstream))
        assert await adapter.fetch_stations(StationQuery(), Location()) == []
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_upstream_failure(self, config):
        enable(config, "qld", subscriber_token="tok")
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        assert await adapter.fetch_stations(StationQuery(), Location()) == []

    @pytest.mark.asyncio
    async def test_wrong_shape_body_yields_nothing(self, config):
        enable(config, "qld", subscriber_token="tok")
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=[1, 2])))
        assert await adapter.fetch_stations(StationQuery(), Location()) == []

    @pytest.mark.asyncio
    async def test_malformed_refresh_keeps_stale_reference(self, config):
        enable(config, "qld", subscriber_token="tok")
        upstream = FpdUpstream()
        broken = [False]

        def handler(request):
            if broken[0]:
                return httpx.Response(200, json=[1, 2])
            return upstream(request)

        today = [date(2024, 5, 1)]
        cache = DailyCache("Australia/Brisbane", today=lambda: today[0])
        adapter = QldFuelAdapter(config, transport=httpx.MockTransport(handler), reference_cache=cache)
        assert await adapter.reference("brands") == {5: "BP"}

        today[0] = date(2024, 5, 2)
        broken[0] = True
        assert await adapter.reference("brands") == {5: "BP"}


VIC_FEED = {
    "stations": [
        {"ID": "v1", "Brand": "Shell", "Name": "Shell Docklands", "Suburb": "Docklands", "Postcode": "3008",
         "Latitude": -37.8183, "Longitude": 144.9537, "Prices": {"U91": 1899, "Diesel": 185.9}},
        {"ID": "v2", "Name": "United Geelong", "Suburb": "Geelong", "Postcode": "3220",
         "Latitude": -38.15, "Longitude": 144.36, "Prices": {"U91": 1759}},
    ]
}


class TestVicFeed:

    @pytest.mark.asyncio
    async def test_filters_by_query(self, config):
        adapter = VicFeedAdapter(config, transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=VIC_FEED)))
        stations = await adapter.fetch_stations(StationQuery(q="Docklands"), Location(query="Docklands"))
        assert len(stations) == 1
        assert stations[0].prices == {"U91": 1.899, "Diesel": 1.859}
        assert stations[0].state == "VIC"

    @pytest.mark.asyncio
    async def test_brand_from_name(self, config):
        adapter = VicFeedAdapter(config, transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=VIC_FEED)))
        stations = await adapter.fetch_stations(StationQuery(q="3220"), Location(query="3220"))
        assert stations[0].brand == "United"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, config):
        adapter = VicFeedAdapter(config, transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=[1, 2, 3])))
        assert await adapter.fetch_stations(StationQuery(), Location()) == []


class TestFuelPrice:
    """fuelprice.io fallback for VIC."""

    @pytest.mark.asyncio
    async def test_fetch(self, config):
        enable(config, "fuelprice", api_key="key")

        def handler(request):
            assert request.headers["x-api-key"] == "key"
            assert request.url.params["suburb"] == "Carlton"
            assert request.url.params["fuel"] == "U91"
            return httpx.Response(200, json={"stations": [
                {"id": "f1", "brand": "7-Eleven", "name": "7-Eleven Carlton", "suburb": "Carlton",
                 "lat": -37.8, "lng": 144.966, "price": 1.85},
            ]})

        adapter = FuelPriceAdapter(config, transport=httpx.MockTransport(handler))
        stations = await adapter.fetch_stations(StationQuery(q="Carlton"), Location(query="Carlton", suburb="Carlton"))
        assert stations[0].prices == {"U91": 1.85}
        assert stations[0].state == "VIC"

    @pytest.mark.asyncio
    async def test_missing_key(self, config):
        adapter = FuelPriceAdapter(config, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        assert await adapter.fetch_stations(StationQuery(), Location()) == []


def test_build_adapters(config):
    names = [a.name for a in build_adapters(config)]
    assert names == ["vic", "fuelprice", "nsw", "wa", "qld", "sa"]
