"""Flask web application for the FullTank aggregation service."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from flask import Blueprint, Flask, jsonify, request, send_from_directory
from werkzeug.exceptions import HTTPException

from .aggregator import Aggregator
from .alerts import check_alerts, create_alert, delete_alert, list_alerts, update_alert
from .blobs import PhotoStore
from .config import Config
from .exceptions import ValidationError
from .models import StationQuery
from .normalize import FUEL_TYPES, canonical_fuel
from .store import DocumentStore, parse_prices, submit_price

_LOGGER = logging.getLogger(__name__)

app = Flask(__name__)

# Every route is served under /api and at the bare path
api = Blueprint('api', __name__)

# Global instances
config: Optional[Config] = None
store: Optional[DocumentStore] = None
aggregator: Optional[Aggregator] = None
photos: Optional[PhotoStore] = None


def init_app(config_obj: Config, store_obj: Optional[DocumentStore] = None,
             aggregator_obj: Optional[Aggregator] = None) -> Flask:
    """Initialize the Flask app with configuration."""
    global config, store, aggregator, photos
    config = config_obj
    store = store_obj or DocumentStore(config.store_path)
    aggregator = aggregator_obj or Aggregator(config, store)
    photos = PhotoStore(config.upload_dir)
    app.config['UPLOAD_FOLDER'] = config.upload_dir
    return app


def _query_from_args(args) -> StationQuery:
    fuel = args.get('fuel') or None
    return StationQuery(
        q=args.get('q', ''),
        fuel=canonical_fuel(fuel) if fuel else None,
        state=args.get('state', ''),
        lat=args.get('lat'),
        lng=args.get('lng'),
        radius_km=args.get('radius'),
        sort=args.get('sort', ''),
    )


def _not_ready():
    return jsonify({'error': 'Service not initialised'}), 500


@app.errorhandler(Exception)
def handle_exception(exc):
    """Unexpected failures surface as 500 {error}."""
    if isinstance(exc, HTTPException):
        return jsonify({'error': exc.description}), exc.code
    _LOGGER.exception("Unhandled error: %s", exc)
    return jsonify({'error': str(exc)}), 500


@app.route('/uploads/<path:name>')
def uploaded_file(name):
    """Serve a stored price photo."""
    return send_from_directory(app.config['UPLOAD_FOLDER'], name)


@api.route('/health')
def health():
    return jsonify({'ok': True, 'time': datetime.now(timezone.utc).isoformat()})


@api.route('/integrations/status')
def integrations_status():
    """Enabled flag per data source."""
    if not config:
        return _not_ready()
    return jsonify(config.integration_status())


@api.route('/fuel-types')
def fuel_types():
    return jsonify({'fuel_types': FUEL_TYPES})


@api.route('/stations', methods=['GET'])
async def get_stations():
    """Aggregated stations across every enabled source plus local records."""
    if not aggregator:
        return _not_ready()
    query = _query_from_args(request.args)
    stations = await aggregator.get_stations(query)
    return jsonify([s.to_dict() for s in stations])


@api.route('/stations/<station_id>', methods=['GET'])
def get_station(station_id):
    """A persisted station record."""
    if not store:
        return _not_ready()
    for station in store.read()['stations']:
        if str(station.get('id')) == str(station_id):
            return jsonify(station)
    return jsonify({'error': 'Not found'}), 404


@api.route('/stations/<station_id>/price', methods=['POST'])
def submit_station_price(station_id):
    """Submit prices for a station, with an optional photo."""
    if not store:
        return _not_ready()

    if request.is_json:
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400
    else:
        body = request.form.to_dict()

    # Rejected submissions leave nothing behind, photo included
    try:
        parse_prices(body.get('prices'))
    except ValidationError as exc:
        return jsonify({'error': str(exc)}), 400

    has_place = body.get('suburb') or body.get('postcode')
    if not has_place and body.get('lat') not in (None, '') and body.get('lng') not in (None, ''):
        try:
            place = asyncio.run(aggregator.resolver.describe(float(body['lat']), float(body['lng'])))
        except (TypeError, ValueError):
            place = {}
        for key in ('suburb', 'postcode'):
            if place.get(key):
                body.setdefault(key, place[key])

    photo_url = photos.save(request.files.get('photo')) if photos else None

    try:
        station, update = submit_price(store, station_id, body, photo_url=photo_url)
    except ValidationError as exc:
        if photos:
            photos.discard(photo_url)
        return jsonify({'error': str(exc)}), 400

    return jsonify({'ok': True, 'station': station, 'update': update})


@api.route('/alerts', methods=['GET'])
def get_alerts():
    if not store:
        return _not_ready()
    return jsonify(list_alerts(store))


@api.route('/alerts', methods=['POST'])
def add_alert():
    """Create a price alert."""
    if not store:
        return _not_ready()
    try:
        alert = create_alert(store, request.get_json(silent=True) or {})
    except ValidationError as exc:
        return jsonify({'error': str(exc)}), 400
    return jsonify(alert)


@api.route('/alerts/<alert_id>', methods=['PATCH'])
def patch_alert(alert_id):
    if not store:
        return _not_ready()
    try:
        alert = update_alert(store, alert_id, request.get_json(silent=True) or {})
    except ValidationError as exc:
        return jsonify({'error': str(exc)}), 400
    if alert is None:
        return jsonify({'error': 'Not found'}), 404
    return jsonify(alert)


@api.route('/alerts/<alert_id>', methods=['DELETE'])
def remove_alert(alert_id):
    if not store:
        return _not_ready()
    removed = delete_alert(store, alert_id)
    return jsonify({'ok': True, 'removed': removed})


@api.route('/alerts/check', methods=['GET'])
async def alerts_check():
    """Alerts that would fire now, each with its matching stations."""
    if not aggregator:
        return _not_ready()
    query = _query_from_args(request.args)
    stations = await aggregator.get_stations(query)
    return jsonify(check_alerts(list_alerts(store), stations))


async def _qld_reference(kind: str):
    adapter = aggregator.adapter('qld') if aggregator else None
    if adapter is None:
        return jsonify({'error': 'QLD source not available'}), 500
    try:
        return jsonify(await adapter.reference(kind))
    except Exception as exc:
        _LOGGER.error("QLD %s lookup failed: %s", kind, exc)
        return jsonify({'error': str(exc)}), 500


@api.route('/qld/brands')
async def qld_brands():
    return await _qld_reference('brands')


@api.route('/qld/fuels')
async def qld_fuels():
    return await _qld_reference('fuels')


@api.route('/qld/regions')
async def qld_regions():
    return await _qld_reference('regions')


app.register_blueprint(api, url_prefix='/api')
app.register_blueprint(api, name='bare')


def run_web_app(config_obj: Config, host='0.0.0.0', port=5000, debug=False):
    """Run the Flask web application."""
    init_app(config_obj)
    app.run(host=host, port=port, debug=debug)
