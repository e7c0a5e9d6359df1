"""Main application for the FullTank fuel price service."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time

import schedule

from .aggregator import Aggregator
from .alerts import check_alerts, list_alerts
from .config import Config, setup_logging
from .exceptions import StoreError
from .models import StationQuery
from .normalize import canonical_fuel
from .store import DocumentStore

_LOGGER = logging.getLogger(__name__)

# Global flag for graceful shutdown
running = True


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global running
    _LOGGER.info("Shutdown signal received, stopping...")
    running = False


class FullTankApp:
    """Runs one-off queries and the scheduled alert check loop."""

    def __init__(self, config: Config, store: DocumentStore = None, aggregator: Aggregator = None):
        self.config = config
        self.store = store or DocumentStore(config.store_path)
        self.aggregator = aggregator or Aggregator(config, self.store)

    def query(self, query: StationQuery) -> list[dict]:
        stations = asyncio.run(self.aggregator.get_stations(query))
        return [s.to_dict() for s in stations]

    def check_alerts(self) -> list[dict]:
        """Evaluate every enabled alert against a fresh aggregation."""
        alert_query = self.config.alert_query
        fuel = alert_query.get('fuel') or None
        query = StationQuery(
            q=alert_query.get('q', ''),
            state=alert_query.get('state', ''),
            fuel=canonical_fuel(fuel) if fuel else None,
        )
        _LOGGER.info("Starting alert check cycle")
        try:
            stations = asyncio.run(self.aggregator.get_stations(query))
        except Exception as exc:
            _LOGGER.error("Alert check failed: %s", exc)
            return []

        hits = check_alerts(list_alerts(self.store), stations)
        for hit in hits:
            alert = hit['alert']
            _LOGGER.info(
                "Alert %s matched %d station(s): %s <= %s",
                alert.get('id'), len(hit['stations']),
                alert.get('fuelType'), alert.get('threshold')
            )
        if not hits:
            _LOGGER.info("No alerts matched")
        return hits

    def run_once(self, query: StationQuery) -> bool:
        """Print one aggregated query as JSON."""
        print(json.dumps(self.query(query), indent=2))
        return self.close()

    def run_scheduled(self):
        """Run the alert check on a fixed interval until stopped."""
        interval = int(self.config.alert_interval)
        schedule.every(interval).minutes.do(self.check_alerts)

        _LOGGER.info("Starting scheduled alert checks (interval: %d minutes)", interval)

        # Run once immediately
        self.check_alerts()

        global running
        try:
            while running:
                schedule.run_pending()
                time.sleep(1)
        except KeyboardInterrupt:
            _LOGGER.info("Keyboard interrupt received")
        finally:
            _LOGGER.info("Shutting down...")
            self.close()

    def close(self) -> bool:
        """Flush pending store writes; False if they cannot be persisted."""
        try:
            self.store.flush()
        except StoreError as exc:
            _LOGGER.error("%s", exc)
            return False
        return True


def main():
    """Main entry point for the application."""
    parser = argparse.ArgumentParser(
        description='FullTank: Australian fuel price aggregation service'
    )
    parser.add_argument(
        '-c', '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run one station query, print it as JSON and exit'
    )
    parser.add_argument(
        '--web',
        action='store_true',
        help='Run the HTTP API server'
    )
    parser.add_argument(
        '--host',
        default='0.0.0.0',
        help='Web server host (default: 0.0.0.0)'
    )
    parser.add_argument(
        '--port',
        default=5000,
        type=int,
        help='Web server port (default: 5000)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override log level from config'
    )
    parser.add_argument('--q', default='', help='Suburb, postcode, brand or name (with --once)')
    parser.add_argument('--fuel', default=None, help='Fuel type, e.g. U91 (with --once)')
    parser.add_argument('--state', default='', help='State code, e.g. VIC (with --once)')
    parser.add_argument(
        '--sort',
        default='',
        choices=['', 'price', 'updated', 'brand'],
        help='Sort order (with --once)'
    )

    args = parser.parse_args()

    # Load configuration
    config = Config()

    if not config.load_from_file(args.config):
        print(f"Error: Failed to load configuration from {args.config}")
        print("Please create a config file based on config.yaml.example")
        sys.exit(1)

    # Environment variables override file config
    config.load_from_env()

    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level)

    _LOGGER.info("FullTank starting...")

    if not config.validate():
        _LOGGER.error("Invalid configuration, exiting")
        sys.exit(1)

    # Setup signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if args.web:
        _LOGGER.info("Starting web server on %s:%d", args.host, args.port)
        from .web import run_web_app
        run_web_app(config, host=args.host, port=args.port, debug=False)
        return

    app = FullTankApp(config)

    if args.once:
        _LOGGER.info("Running in single-shot mode")
        fuel = canonical_fuel(args.fuel) if args.fuel else None
        query = StationQuery(q=args.q, fuel=fuel, state=args.state, sort=args.sort)
        success = app.run_once(query)
        sys.exit(0 if success else 1)
    else:
        app.run_scheduled()


if __name__ == '__main__':
    main()
