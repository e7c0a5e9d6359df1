"""Price alerts: persistence and on-demand evaluation."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from .address import haversine_km
from .exceptions import ValidationError
from .models import Alert, Station, finite_float
from .normalize import DEFAULT_FUEL, canonical_fuel, now_iso
from .store import DocumentStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 5.0

EDITABLE_FIELDS = ('fuelType', 'threshold', 'radiusKm', 'center', 'suburb', 'enabled')


def _center(value: Any) -> Optional[dict[str, float]]:
    if not isinstance(value, dict):
        return None
    lat, lng = finite_float(value.get('lat')), finite_float(value.get('lng'))
    if lat is None or lng is None:
        return None
    return {'lat': lat, 'lng': lng}


def _fuel(value: Any) -> str:
    fuel = canonical_fuel(value or DEFAULT_FUEL)
    if fuel is None:
        raise ValidationError(f"Unknown fuel type: {value}")
    return fuel


def _threshold(value: Any) -> float:
    threshold = finite_float(value)
    if threshold is None or threshold <= 0:
        raise ValidationError("threshold (price) is required")
    return threshold


def _radius(value: Any) -> float:
    radius = finite_float(value)
    if radius is None or radius <= 0:
        raise ValidationError("radiusKm must be a positive number")
    return radius


def list_alerts(store: DocumentStore) -> list[dict]:
    return store.read()['alerts']


def create_alert(store: DocumentStore, body: dict) -> dict:
    """Validate and persist a new alert."""
    body = body or {}
    alert = Alert(
        id=f"al_{uuid.uuid4().hex[:12]}",
        fuel_type=_fuel(body.get('fuelType')),
        threshold=_threshold(body.get('threshold')),
        radius_km=_radius(body.get('radiusKm', DEFAULT_RADIUS_KM)),
        center=_center(body.get('center')),
        suburb=str(body.get('suburb') or ''),
        enabled=bool(body.get('enabled', True)),
        created_at=now_iso(),
    ).to_dict()

    def mutate(doc):
        doc['alerts'].append(alert)
        return alert

    return store.update(mutate)


def update_alert(store: DocumentStore, alert_id: str, body: dict) -> Optional[dict]:
    """Patch the editable fields of an alert; None if it does not exist."""
    body = body or {}
    changes = {}
    for key in EDITABLE_FIELDS:
        if key not in body:
            continue
        value = body[key]
        if key == 'fuelType':
            value = _fuel(value)
        elif key == 'threshold':
            value = _threshold(value)
        elif key == 'radiusKm':
            value = _radius(value)
        elif key == 'center':
            value = _center(value)
        elif key == 'suburb':
            value = str(value or '')
        elif key == 'enabled':
            value = bool(value)
        changes[key] = value

    def mutate(doc):
        for alert in doc['alerts']:
            if str(alert.get('id')) == str(alert_id):
                alert.update(changes)
                return alert
        return None

    return store.update(mutate)


def delete_alert(store: DocumentStore, alert_id: str) -> int:
    """Remove an alert; returns how many records were removed."""
    def mutate(doc):
        before = len(doc['alerts'])
        doc['alerts'] = [a for a in doc['alerts'] if str(a.get('id')) != str(alert_id)]
        return before - len(doc['alerts'])

    return store.update(mutate)


def alert_matches(alert: Alert, station: Station) -> bool:
    """Price at or under threshold, and near the centre or in the suburb."""
    price = station.prices.get(alert.fuel_type)
    if price is None or price > alert.threshold:
        return False

    if alert.center:
        if not station.has_coordinates:
            return False
        distance = haversine_km(alert.center['lat'], alert.center['lng'], station.lat, station.lng)
        return distance <= (alert.radius_km or DEFAULT_RADIUS_KM)
    if alert.suburb:
        return alert.suburb.lower() in (station.suburb or '').lower()
    return True


def check_alerts(alerts: list[dict], stations: list[Station]) -> list[dict]:
    """Enabled alerts that would fire now, with their matching stations."""
    hits = []
    for data in alerts:
        alert = Alert.from_dict(data)
        if not alert.enabled:
            continue
        matching = [s for s in stations if alert_matches(alert, s)]
        if matching:
            hits.append({
                'alert': data,
                'stations': [s.to_dict() for s in matching],
            })
    _LOGGER.debug("%d of %d alerts matched", len(hits), len(alerts))
    return hits
