"""Provider adapters, one per upstream fuel price source."""

from __future__ import annotations

from .base import DailyCache, ProviderAdapter, TokenCache
from .fuelprice import FuelPriceAdapter
from .nsw import NswFuelCheckAdapter
from .qld import QldFuelAdapter
from .sa import SaSafpisAdapter
from .vic import VicFeedAdapter
from .wa import WaFuelWatchAdapter

# Scheduling order; results are concatenated in this order
ADAPTER_CLASSES = [
    VicFeedAdapter,
    FuelPriceAdapter,
    NswFuelCheckAdapter,
    WaFuelWatchAdapter,
    QldFuelAdapter,
    SaSafpisAdapter,
]


def build_adapters(config) -> list[ProviderAdapter]:
    """One adapter instance per source; each owns its caches."""
    return [cls(config) for cls in ADAPTER_CLASSES]


__all__ = [
    "ADAPTER_CLASSES",
    "DailyCache",
    "FuelPriceAdapter",
    "NswFuelCheckAdapter",
    "ProviderAdapter",
    "QldFuelAdapter",
    "SaSafpisAdapter",
    "TokenCache",
    "VicFeedAdapter",
    "WaFuelWatchAdapter",
    "build_adapters",
]
