"""Unit and identity normalisation shared by every provider."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# Canonical fuel keys, in display order
FUEL_TYPES = ["U91", "P95", "P98", "Diesel", "LPG"]

DEFAULT_FUEL = "U91"

_FUEL_ALIASES = {
    "U91": "U91",
    "ULP": "U91",
    "UNLEADED": "U91",
    "UNLEADED 91": "U91",
    "91": "U91",
    "P95": "P95",
    "PULP": "P95",
    "PULP 95": "P95",
    "PULP 95/96 RON": "P95",
    "PREMIUM 95": "P95",
    "PREMIUM UNLEADED 95": "P95",
    "95": "P95",
    "P98": "P98",
    "PULP 98": "P98",
    "PULP 98 RON": "P98",
    "PREMIUM 98": "P98",
    "PREMIUM UNLEADED 98": "P98",
    "98 RON": "P98",
    "98": "P98",
    "DIESEL": "Diesel",
    "DL": "Diesel",
    "LPG": "LPG",
    "AUTOGAS": "LPG",
}

# Prices outside this band (dollars per litre) are treated as garbage
MAX_PRICE_DOLLARS = 10.0

# Fuel Prices Direct feeds report tenths of a cent; above this the
# VIC feed is assumed to use that encoding as well.
VIC_TENTHS_THRESHOLD = 1000


class PriceEncoding(Enum):
    """How a provider encodes a price per litre."""

    DOLLARS = "dollars"
    CENTS = "cents"
    TENTHS_OF_CENT = "tenths_of_cent"
    VIC_HEURISTIC = "vic_heuristic"


def canonical_fuel(name: Any) -> Optional[str]:
    """Map a provider fuel name/code to a canonical fuel key.

    Unknown fuels map to None and are dropped by callers.
    """
    if name is None:
        return None
    key = " ".join(str(name).strip().upper().split())
    return _FUEL_ALIASES.get(key)


def normalize_price(raw: Any, encoding: PriceEncoding = PriceEncoding.DOLLARS) -> Optional[float]:
    """Convert a raw provider price to decimal dollars per litre.

    Returns None for anything that is not a finite positive price so a
    coerced zero or NaN never reaches a station record.
    """
    if raw is None or isinstance(raw, bool) or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None

    if encoding is PriceEncoding.CENTS:
        value = value / 100
    elif encoding is PriceEncoding.TENTHS_OF_CENT:
        value = value / 1000
    elif encoding is PriceEncoding.VIC_HEURISTIC:
        # Provisional: the feed gives no unit, only magnitude. 1899 is
        # read as 189.9 c/L, anything smaller as c/L.
        value = value / 1000 if value > VIC_TENTHS_THRESHOLD else value / 100

    value = round(value, 4)
    if value <= 0 or value > MAX_PRICE_DOLLARS:
        return None
    return value


def normalize_prices(raw: dict, encoding: PriceEncoding = PriceEncoding.DOLLARS) -> dict[str, float]:
    """Normalise a whole fuel->price mapping, dropping unknown fuels."""
    prices: dict[str, float] = {}
    for fuel, value in (raw or {}).items():
        key = canonical_fuel(fuel)
        price = normalize_price(value, encoding)
        if key and price is not None:
            prices[key] = price
    return prices


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def identity_key(station) -> Optional[str]:
    """Key recognising the same physical station across providers.

    Stations without finite coordinates have no key.
    """
    try:
        lat = float(station.lat)
        lng = float(station.lng)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return "|".join([
        _norm(station.state),
        _norm(station.brand),
        _norm(station.name),
        f"{lat:.5f}",
        f"{lng:.5f}",
    ])


def lowest_price(station, fuel: Optional[str] = None) -> Optional[float]:
    """Lowest price on a station, or the price of one fuel when given."""
    if fuel:
        return station.prices.get(fuel)
    values = [p for p in station.prices.values() if p is not None and math.isfinite(p)]
    return min(values) if values else None


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any, fmt: Optional[str] = None, tz=None) -> Optional[datetime]:
    """Parse a provider timestamp into an aware datetime.

    Naive values are interpreted in ``tz`` (UTC when not given).
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        try:
            if fmt:
                parsed = datetime.strptime(text, fmt)
            else:
                if text.endswith("Z"):
                    text = text[:-1] + "+00:00"
                parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or timezone.utc)
    return parsed


def normalize_timestamp(value: Any, fmt: Optional[str] = None, tz=None) -> str:
    """ISO-8601 form of a provider timestamp, defaulting to now."""
    parsed = parse_timestamp(value, fmt=fmt, tz=tz)
    if parsed is None:
        return now_iso()
    return parsed.isoformat(timespec="seconds")


def timestamp_value(value: Any) -> float:
    """Sortable epoch seconds for an ISO timestamp; unknown sorts oldest."""
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else 0.0
