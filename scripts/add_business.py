#!/usr/bin/env python3
"""
Register a business in the CFP database.

Usage:
    python scripts/add_business.py --name "Acme Dental" --url https://acmedental.com \
        --city "San Jose" --state CA --category dentist --tier pro
"""

import os
import sys
import logging
import argparse

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cfp.automation import TIER_AUTOMATION
from cfp.config import load_env
from cfp.db import create_business, init_db

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def main():
    load_env()
    parser = argparse.ArgumentParser(description="Add a business to the CFP database")
    parser.add_argument("--name", required=True, help="Business name")
    parser.add_argument("--url", help="Website URL")
    parser.add_argument("--category", help="Business category (e.g. dentist, hvac)")
    parser.add_argument("--city", help="City")
    parser.add_argument("--state", help="State / region")
    parser.add_argument("--country", default="US", help="Country code (default: US)")
    parser.add_argument("--tier", choices=sorted(TIER_AUTOMATION), default="free", help="Subscription tier")
    args = parser.parse_args()

    init_db()
    business_id = create_business(
        name=args.name,
        url=args.url,
        category=args.category,
        city=args.city,
        state=args.state,
        country=args.country,
        tier=args.tier,
    )
    logger.info("Business id: %s", business_id)
    print(business_id)


if __name__ == "__main__":
    main()
