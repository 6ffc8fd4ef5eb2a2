"""
Subscription tier -> automation settings.

Only the gates the pipeline needs: how often a business is re-crawled and
whether a notable business is published without a manual trigger.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

FREQUENCY_DAYS = {
    "weekly": 7,
    "monthly": 30,
}


@dataclass(frozen=True)
class AutomationConfig:
    crawl_frequency: str      # manual | weekly | monthly
    auto_publish: bool
    auto_crawl: bool


TIER_AUTOMATION: Dict[str, AutomationConfig] = {
    "free": AutomationConfig(crawl_frequency="manual", auto_publish=False, auto_crawl=False),
    "pro": AutomationConfig(crawl_frequency="weekly", auto_publish=True, auto_crawl=True),
    "agency": AutomationConfig(crawl_frequency="weekly", auto_publish=True, auto_crawl=True),
}


def get_automation_config(tier: Optional[str]) -> AutomationConfig:
    """Unknown tiers fall back to free."""
    return TIER_AUTOMATION.get((tier or "free").lower(), TIER_AUTOMATION["free"])


def calculate_next_crawl_date(frequency: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Next scheduled crawl, or None for manual."""
    days = FREQUENCY_DAYS.get(frequency)
    if days is None:
        return None
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=days)


def should_auto_crawl(business: Dict, tier: Optional[str] = None) -> bool:
    """True if the business's tier schedules crawls automatically."""
    config = get_automation_config(tier or business.get("tier"))
    return config.auto_crawl and config.crawl_frequency != "manual"
