"""Local JSON document store and user price submissions."""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Optional

from .exceptions import StoreError, ValidationError
from .models import PriceUpdate, Station, finite_float
from .normalize import canonical_fuel, normalize_price, now_iso

_LOGGER = logging.getLogger(__name__)

COLLECTIONS = ("stations", "updates", "alerts")


def empty_document() -> dict[str, list]:
    return {name: [] for name in COLLECTIONS}


class DocumentStore:
    """Whole-document JSON store with serialised, last-writer-wins writes.

    Readers always get the most recently accepted document. A write that
    arrives while another is on disk is queued; only the newest queued
    document is written next. A failed write stays queued and is retried
    by the next write or by ``flush``.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mutate_lock = threading.RLock()
        self._pending: Optional[str] = None
        self._writing = False
        self._doc = self._load()

    def _load(self) -> dict:
        if not self.path.exists():
            _LOGGER.info("Store not found, seeding %s", self.path)
            doc = empty_document()
            self._pending = json.dumps(doc, indent=2)
            self._drain()
            return doc

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                doc = json.load(f)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed to read store {self.path}: {exc}") from exc

        if not isinstance(doc, dict):
            raise StoreError(f"Store {self.path} does not hold a JSON object")
        for name in COLLECTIONS:
            doc.setdefault(name, [])
        return doc

    @property
    def dirty(self) -> bool:
        """True while a document is waiting to reach disk."""
        with self._lock:
            return self._pending is not None

    def read(self) -> dict:
        """Copy of the current document."""
        with self._lock:
            return copy.deepcopy(self._doc)

    def write(self, doc: dict):
        """Replace the whole document and persist it."""
        payload = json.dumps(doc, indent=2)
        with self._lock:
            self._doc = copy.deepcopy(doc)
            self._pending = payload
            if self._writing:
                return
            self._writing = True
        self._drain()

    def update(self, mutate: Callable[[dict], Any]) -> Any:
        """Read-modify-write under one lock so concurrent edits are not lost."""
        with self._mutate_lock:
            doc = self.read()
            result = mutate(doc)
            self.write(doc)
            return result

    def flush(self):
        """Retry a pending write; raise StoreError if it still fails."""
        with self._lock:
            if self._pending is None or self._writing:
                return
            self._writing = True
        self._drain()
        if self.dirty:
            raise StoreError(f"Store {self.path} could not be written")

    def _drain(self):
        while True:
            with self._lock:
                payload = self._pending
                self._pending = None
                if payload is None:
                    self._writing = False
                    return
            try:
                self._persist(payload)
            except OSError as exc:
                _LOGGER.error("Store write failed for %s: %s", self.path, exc)
                with self._lock:
                    if self._pending is None:
                        self._pending = payload
                    self._writing = False
                return

    def _persist(self, payload: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(payload)
        os.replace(tmp_path, self.path)

    def stations(self) -> list[Station]:
        """Persisted station records."""
        records = []
        for data in self.read()["stations"]:
            station = Station.from_dict(data)
            station.source = station.source or "USER"
            records.append(station)
        return records


def parse_prices(raw: Any) -> dict[str, float]:
    """Validate a submitted fuel->price mapping (decimal dollars)."""
    if raw is None or raw == "":
        raise ValidationError("prices is required")
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("Invalid prices JSON") from exc
    if not isinstance(raw, dict):
        raise ValidationError("prices must be an object of fuel: price")

    prices = {}
    for fuel, value in raw.items():
        key = canonical_fuel(fuel)
        price = normalize_price(value)
        if key and price is not None:
            prices[key] = price
    if not prices:
        raise ValidationError("Provide at least one valid fuel price")
    return prices


def _new_station(station_id: str, body: dict, created_at: str) -> dict:
    return {
        "id": station_id,
        "brand": body.get("brand") or "Unknown",
        "name": body.get("name") or "Station",
        "suburb": body.get("suburb") or "",
        "street": body.get("street") or "",
        "postcode": str(body.get("postcode") or ""),
        "lat": finite_float(body.get("lat")),
        "lng": finite_float(body.get("lng")),
        "prices": {},
        "updatedAt": created_at,
        "state": str(body.get("state") or "VIC").upper(),
        "source": "USER",
    }


def submit_price(store: DocumentStore, station_id: str, body: dict,
                 photo_url: Optional[str] = None) -> tuple[dict, dict]:
    """Apply a user price submission and append its audit entry.

    Unknown stations are created from the body. Validation happens before
    anything is written.
    """
    station_id = str(station_id)
    prices = parse_prices(body.get("prices"))

    def mutate(doc):
        timestamp = now_iso()
        stations = doc["stations"]
        station = next((s for s in stations if str(s.get("id")) == station_id), None)
        if station is None:
            station = _new_station(station_id, body, timestamp)
            stations.append(station)
            _LOGGER.info("Created local station %s", station_id)

        station["prices"] = {**(station.get("prices") or {}), **prices}
        station["updatedAt"] = timestamp

        update = PriceUpdate(
            id=f"upd_{uuid.uuid4().hex[:12]}",
            station_id=station_id,
            prices=prices,
            created_at=timestamp,
            photo_url=photo_url,
        ).to_dict()
        doc["updates"].append(update)
        return copy.deepcopy(station), update

    station, update = store.update(mutate)
    _LOGGER.info("Price submitted for %s: %s", station_id, prices)
    return station, update
