"""Shared fixtures for the FullTank test suite."""

import asyncio

import pytest

from fulltank.config import Config
from fulltank.models import Station
from fulltank.providers.base import ProviderAdapter
from fulltank.store import DocumentStore


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Config rooted in a temp dir with every source off and no geocoding."""
    monkeypatch.chdir(tmp_path)
    cfg = Config(data_dir=str(tmp_path))
    cfg.geocoding_enabled = False
    return cfg


@pytest.fixture
def store(config):
    return DocumentStore(config.store_path)


@pytest.fixture
def make_station():
    """Factory for station records with sensible defaults."""
    def _make(id="s1", **overrides):
        fields = {
            "id": id,
            "state": "VIC",
            "brand": "Shell",
            "name": "Shell Docklands",
            "suburb": "Docklands",
            "postcode": "3008",
            "lat": -37.8183,
            "lng": 144.9537,
            "prices": {"U91": 1.79},
            "updated_at": "2024-05-01T10:00:00+00:00",
            "source": "TEST",
        }
        fields.update(overrides)
        return Station(**fields)
    return _make


class StaticAdapter(ProviderAdapter):
    """Adapter returning canned stations, optionally slow or failing."""

    enabled = True

    def __init__(self, config, name="static", stations=None, delay=0.0, error=None, states=("VIC",)):
        super().__init__(config)
        self.name = name
        self.source = name.upper()
        self.states = states
        self.stations = stations or []
        self.delay = delay
        self.error = error
        self.calls = 0

    async def _fetch(self, query, location):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.stations)


@pytest.fixture
def static_adapter(config):
    """Factory for StaticAdapter instances bound to the test config."""
    def _make(**kwargs):
        return StaticAdapter(config, **kwargs)
    return _make
