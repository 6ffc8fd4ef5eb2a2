#!/usr/bin/env python3
"""
Run the Crawl -> Fingerprint -> Publish pipeline for one business.

Usage:
    python scripts/run_cfp.py --business-id 1
    python scripts/run_cfp.py --business-id 1 --publish --dry-run

Environment Variables:
    OPENROUTER_API_KEY: Required for fingerprinting and the notability judge.
    SERPAPI_API_KEY: Required for the notability search.
    WIKIDATA_BOT_USERNAME / WIKIDATA_BOT_PASSWORD: Required to publish.
    CFP_DB_PATH: SQLite path (default data/cfp.db).
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
from cfp.errors import CFPError
from cfp.orchestrator import CFPOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the CFP pipeline for one business")
    parser.add_argument("--business-id", type=int, required=True, help="Business id in the CFP database")
    parser.add_argument("--publish", action="store_true", help="Run the publish step regardless of tier")
    parser.add_argument("--no-publish", action="store_true", help="Skip the publish step regardless of tier")
    parser.add_argument("--force", action="store_true", help="Ignore cached results and re-query every model")
    parser.add_argument("--dry-run", action="store_true", help="Authenticate and validate but never submit edits")
    parser.add_argument("--target", choices=("test", "production"), default=None, help="Knowledge base (default: CFP_TARGET or test)")
    parser.add_argument("--json", action="store_true", help="Print the full run result as JSON")
    args = parser.parse_args()

    if args.publish and args.no_publish:
        parser.error("--publish and --no-publish are mutually exclusive")

    try:
        config = CFPConfig.from_env()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)
    if args.dry_run:
        config = replace(config, dry_run=True)
    if args.target:
        config = replace(config, target=args.target)

    init_db()
    orchestrator = CFPOrchestrator(config=config)
    publish = True if args.publish else (False if args.no_publish else None)

    logger.info("=" * 60)
    logger.info("CFP RUN: business %s (target=%s, dry_run=%s)", args.business_id, config.target, config.dry_run)
    logger.info("=" * 60)

    try:
        result = orchestrator.run(args.business_id, publish=publish, force=args.force, caller="cli")
    except CFPError as e:
        logger.error("%s: %s", e.code, e.message)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))

    fp = result.fingerprint or {}
    logger.info("Status:           %s", result.status)
    if fp:
        logger.info("Visibility score: %s", fp.get("visibility_score"))
        logger.info("Mention rate:     %s%%", fp.get("mention_rate"))
    if result.notability:
        logger.info("Notable:          %s (%s)", result.notability.get("is_notable"), result.notability.get("summary"))
    if result.publish:
        logger.info("Published:        %s -> %s", result.publish.get("published_to"), result.publish.get("qid"))
    if not result.success:
        logger.error("Run failed: %s", result.error)
        sys.exit(1)


if __name__ == "__main__":
    main()
