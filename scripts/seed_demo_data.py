#!/usr/bin/env python3
"""
Seed the local store with demo stations.

Existing stations with the same id are left untouched, so the script can be
run repeatedly.
"""

import logging
import os
import sys

# Add project root to path to import fulltank
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fulltank.config import Config
from fulltank.normalize import now_iso
from fulltank.store import DocumentStore

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

DEMO_STATIONS = [
    {
        'id': 'demo123', 'brand': 'Shell', 'name': 'Shell Melbourne CBD',
        'suburb': 'Docklands', 'postcode': '3008', 'state': 'VIC',
        'lat': -37.8183, 'lng': 144.9537,
        'prices': {'U91': 1.79, 'P95': 1.93, 'P98': 2.05, 'Diesel': 1.89},
    },
    {
        'id': 'demo456', 'brand': 'BP', 'name': 'BP Southbank',
        'suburb': 'Southbank', 'postcode': '3006', 'state': 'VIC',
        'lat': -37.8239, 'lng': 144.9652,
        'prices': {'U91': 1.77, 'P95': 1.92, 'P98': 2.04, 'Diesel': 1.87},
    },
]


def seed(store: DocumentStore) -> int:
    """Add missing demo stations; returns how many were added."""
    def mutate(doc):
        known = {str(s.get('id')) for s in doc['stations']}
        added = 0
        for station in DEMO_STATIONS:
            if station['id'] in known:
                continue
            doc['stations'].append({
                **station,
                'street': '',
                'updatedAt': now_iso(),
                'source': 'USER',
            })
            added += 1
        return added

    return store.update(mutate)


def main():
    config = Config()
    config_path = os.getenv('CONFIG_FILE', 'config.yaml')
    if not config.load_from_file(config_path):
        sys.exit(1)
    config.load_from_env()

    store = DocumentStore(config.store_path)
    added = seed(store)
    store.flush()
    logger.info("Seeded %d demo station(s) into %s", added, config.store_path)


if __name__ == '__main__':
    main()
