#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes, including the one-active-tender-per-issue
constraint that tender creation relies on.

Usage:
    python -m civic_api.scripts.create_indexes [--uri URI] [--database NAME]
"""

import argparse
import sys
import logging

from civic_api.services.mongodb import MongoDBService
from civic_api.services.store import (
    ISSUES,
    TENDERS,
    BIDS,
    WORK_PROGRESS,
    ASSIGNMENTS,
    PROFILES,
    POSTS,
    AREAS,
    DEPARTMENTS
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

COLLECTIONS = (ISSUES, TENDERS, BIDS, WORK_PROGRESS, ASSIGNMENTS, PROFILES, POSTS, AREAS, DEPARTMENTS)


def main(argv=None):
    """Create indexes and report what each collection ends up with."""
    parser = argparse.ArgumentParser(description="Create civic resolution MongoDB indexes")
    parser.add_argument("--uri", help="MongoDB connection string (default: MONGODB_URI)")
    parser.add_argument("--database", help="Database name (default: MONGODB_DATABASE)")
    args = parser.parse_args(argv)

    store = MongoDBService(args.uri, args.database)
    try:
        health = store.health_check()
        if health['status'] != 'healthy':
            logger.error("MongoDB is not healthy", extra={"error": health.get('error')})
            sys.exit(1)

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")
        store.create_indexes()

        for name in COLLECTIONS:
            indexes = sorted(store.get_collection(name).index_information())
            logger.info(f"{name}: {', '.join(indexes)}")
    finally:
        store.close_connection()


if __name__ == "__main__":
    main()
