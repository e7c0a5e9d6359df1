#!/usr/bin/env python3
"""
Collapse persisted stations that describe the same physical site.

Stations sharing an identity key (state, brand, name and rounded
coordinates) are merged: prices are unioned and the newest price for each
fuel is kept. Update history is left as is.
"""

import argparse
import logging
import os
import sys

# Add project root to path to import fulltank
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fulltank.config import Config
from fulltank.merge import dedupe
from fulltank.models import Station
from fulltank.store import DocumentStore

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def deduplicate(store: DocumentStore, dry_run: bool = False) -> int:
    """Merge duplicate stations; returns how many records were removed."""
    def mutate(doc):
        stations = [Station.from_dict(s) for s in doc['stations']]
        merged = dedupe(stations)
        removed = len(stations) - len(merged)
        if not dry_run:
            doc['stations'] = [s.to_dict() for s in merged]
        return removed

    if dry_run:
        return mutate(store.read())
    return store.update(mutate)


def main():
    parser = argparse.ArgumentParser(description='Deduplicate stations in the local store')
    parser.add_argument('--dry-run', action='store_true', help='Report without writing')
    args = parser.parse_args()

    config = Config()
    config_path = os.getenv('CONFIG_FILE', 'config.yaml')
    if not config.load_from_file(config_path):
        sys.exit(1)
    config.load_from_env()

    store = DocumentStore(config.store_path)
    removed = deduplicate(store, dry_run=args.dry_run)
    if args.dry_run:
        logger.info("Would remove %d duplicate station(s)", removed)
    else:
        store.flush()
        logger.info("Removed %d duplicate station(s) from %s", removed, config.store_path)


if __name__ == '__main__':
    main()
