"""Merging live provider records with persisted local records."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from .models import Station
from .normalize import identity_key, lowest_price, timestamp_value

_LOGGER = logging.getLogger(__name__)

SORT_MODES = ("price", "updated", "brand")


def record_key(station: Station) -> str:
    """Identity key, or the provider-native id for unplaceable records."""
    return identity_key(station) or f"id:{station.source}:{station.id}"


def merge_records(base: Station, incoming: Station) -> Station:
    """Fold ``incoming`` into ``base`` without mutating either.

    Prices are unioned; on the same fuel the incoming price wins only
    when its timestamp is strictly newer. The result carries the later
    of the two timestamps.
    """
    base_time = timestamp_value(base.updated_at)
    incoming_time = timestamp_value(incoming.updated_at)
    incoming_newer = incoming_time > base_time

    prices = dict(base.prices)
    for fuel, price in incoming.prices.items():
        if fuel not in prices or incoming_newer:
            prices[fuel] = price

    return replace(
        base,
        prices=prices,
        updated_at=incoming.updated_at if incoming_newer else base.updated_at,
    )


def dedupe(stations: Iterable[Station]) -> list[Station]:
    """One record per identity key, in order of first appearance."""
    index: dict[str, Station] = {}
    for station in stations:
        key = record_key(station)
        if key in index:
            index[key] = merge_records(index[key], station)
        else:
            index[key] = station
    return list(index.values())


def merge_with_store(live: Iterable[Station], stored: Iterable[Station]) -> list[Station]:
    """Fold persisted records into the live list by identity key.

    Persisted records with no live counterpart are appended as-is, so
    user-submitted stations stay visible.
    """
    merged = dedupe(live)
    index = {record_key(s): i for i, s in enumerate(merged)}
    for local in stored:
        key = record_key(local)
        if key in index:
            position = index[key]
            merged[position] = merge_records(merged[position], local)
        else:
            index[key] = len(merged)
            merged.append(local)
    return merged


def matches_query(station: Station, q: str) -> bool:
    """Case-insensitive substring match on suburb, brand, name or postcode."""
    if not q:
        return True
    query = q.lower()
    return any(
        query in (value or "").lower()
        for value in (station.suburb, station.brand, station.name, station.postcode)
    )


def sort_stations(stations: list[Station], sort: str = "", fuel: Optional[str] = None) -> list[Station]:
    """Stable sort by price, update time or brand; unknown modes keep order.

    With ``fuel`` the price sort uses that fuel, otherwise the lowest
    price on the station. Unpriced stations always sort last.
    """
    mode = (sort or "").lower()
    if mode == "price":
        def price_key(station):
            price = lowest_price(station, fuel)
            return (price is None, price if price is not None else 0.0)
        return sorted(stations, key=price_key)
    if mode == "updated":
        return sorted(stations, key=lambda s: timestamp_value(s.updated_at), reverse=True)
    if mode == "brand":
        return sorted(stations, key=lambda s: ((s.brand or "").casefold(), s.brand or ""))
    return list(stations)
