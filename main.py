#!/usr/bin/env python3
"""
CFP Engine - Main Entry Point

Convenience wrapper around scripts/run_cfp.py.

Usage:
    python main.py --business-id 1 [--publish] [--force] [--dry-run]

Environment Variables:
    OPENROUTER_API_KEY: Required. LLM gateway key.
    SERPAPI_API_KEY: Required for notability checks.
    WIKIDATA_BOT_USERNAME / WIKIDATA_BOT_PASSWORD: Required to publish.
"""

from scripts.run_cfp import main

if __name__ == "__main__":
    main()
