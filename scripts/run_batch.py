#!/usr/bin/env python3
"""
Run the CFP pipeline for a batch of businesses.

With no --business-ids, processes every business whose scheduled crawl is
due (and, with CFP_CATCH_MISSED, those never crawled or stale > 30 days).

Usage:
    python scripts/run_batch.py
    python scripts/run_batch.py --business-ids 1,2,3 --batch-size 2
"""

import os
import sys
import json
import logging
import argparse
from dataclasses import replace

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cfp.config import CFPConfig
from cfp.db import init_db
from cfp.orchestrator import CFPOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def _parse_ids(raw: str):
    try:
        return [int(x) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid id list: {raw!r}")


def main():
    parser = argparse.ArgumentParser(description="Run the CFP pipeline for several businesses")
    parser.add_argument("--business-ids", type=_parse_ids, default=None, help="Comma-separated ids (default: all due)")
    parser.add_argument("--batch-size", type=int, default=None, help="Worker pool size (default: CFP_BATCH_SIZE)")
    parser.add_argument("--dry-run", action="store_true", help="Authenticate and validate but never submit edits")
    parser.add_argument("--json", action="store_true", help="Print per-business results as JSON")
    args = parser.parse_args()

    try:
        config = CFPConfig.from_env()
        if args.batch_size is not None:
            config = replace(config, batch_size=args.batch_size)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)
    if args.dry_run:
        config = replace(config, dry_run=True)

    init_db()
    summary = CFPOrchestrator(config=config).process_batch(args.business_ids, caller="cli")

    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    logger.info("Processed %d: %d succeeded, %d failed", summary["processed"], summary["succeeded"], summary["failed"])
    for r in summary["results"]:
        logger.info("  business %s: %s%s", r.get("business_id"), r.get("status", "rejected"),
                    f" ({r['error']})" if r.get("error") else "")
    if summary["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
