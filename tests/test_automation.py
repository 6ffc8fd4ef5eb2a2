"""
Tests for tier automation settings.

  a) free is manual; pro and agency crawl weekly and auto-publish
  b) unknown tier falls back to free
  c) next crawl date per frequency
"""

import os
import sys
from datetime import datetime, timezone

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.automation import calculate_next_crawl_date, get_automation_config, should_auto_crawl

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_tiers():
    free = get_automation_config("free")
    assert free.crawl_frequency == "manual"
    assert free.auto_publish is False
    pro = get_automation_config("PRO")
    assert pro.crawl_frequency == "weekly"
    assert pro.auto_publish is True
    assert get_automation_config("agency").auto_crawl is True


def test_unknown_tier_is_free():
    assert get_automation_config("platinum") == get_automation_config("free")
    assert get_automation_config(None) == get_automation_config("free")


def test_next_crawl_date():
    assert calculate_next_crawl_date("weekly", NOW) == datetime(2026, 5, 8, 12, 0, tzinfo=timezone.utc)
    assert calculate_next_crawl_date("monthly", NOW) == datetime(2026, 5, 31, 12, 0, tzinfo=timezone.utc)
    assert calculate_next_crawl_date("manual", NOW) is None


def test_should_auto_crawl():
    assert should_auto_crawl({"tier": "pro"}) is True
    assert should_auto_crawl({"tier": "free"}) is False
    assert should_auto_crawl({}, tier="agency") is True
