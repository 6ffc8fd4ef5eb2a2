"""
Unit tests for prompt generation.

  a) one prompt per category, all naming the business and its location
  b) industry detection from category, crawl text and URL
  c) seeded random source -> reproducible prompts
  d) no location -> no dangling " in " fragment
"""

import os
import sys
import random

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.models import BusinessContext, Location
from cfp.prompts import (
    INDUSTRY_MAPPINGS,
    PROMPT_TEMPERATURES,
    all_template_variables,
    build_location_context,
    build_variables,
    extract_industry,
    generate_prompts,
)


def _ctx(name="Acme Dental", category="Dental", city="San Jose", state="CA", url=None, crawl_data=None):
    location = Location(city=city, state=state) if (city or state) else None
    return BusinessContext(
        business_id=1, name=name, url=url, category=category, location=location, crawl_data=crawl_data
    )


def test_one_prompt_per_category():
    prompts = generate_prompts(_ctx(), random.Random(3))
    assert set(prompts) == {"factual", "opinion", "recommendation"}
    assert "Acme Dental" in prompts["factual"]
    assert "Acme Dental" in prompts["opinion"]
    assert "San Jose, CA" in prompts["recommendation"]
    assert "dental practices" in prompts["recommendation"]
    for text in prompts.values():
        assert "{" not in text and "}" not in text


def test_seeded_prompts_are_reproducible():
    assert generate_prompts(_ctx(), random.Random(11)) == generate_prompts(_ctx(), random.Random(11))


def test_industry_detection():
    assert extract_industry(_ctx(category="Family Dental Clinic")) == "dental"
    assert extract_industry(_ctx(category="Attorney at law")) == "legal"
    assert extract_industry(_ctx(category=None, crawl_data={"description": "Trusted family doctor and clinic"})) == "healthcare"
    assert extract_industry(_ctx(category=None, url="https://cityrestaurant.example.com")) == "restaurant"
    assert extract_industry(_ctx(category="Widgets")) == "default"


def test_default_industry_wording():
    variables = build_variables(_ctx(category=None))
    assert variables["industry"] == "local business"
    assert variables["industry_plural"] == INDUSTRY_MAPPINGS["default"]["plural"]


def test_service_context_from_crawl():
    variables = build_variables(_ctx(crawl_data={"services": ["Teeth Whitening", "Implants"]}))
    assert variables["service_context"] == "teeth whitening"


def test_location_context():
    assert build_location_context(None) == ""
    assert build_location_context(Location(city="Austin", state="TX")) == " in Austin, TX"
    assert build_location_context(Location(city="", state="TX")) == " in TX"
    prompts = generate_prompts(_ctx(city=None, state=None), random.Random(0))
    for text in prompts.values():
        assert " in ?" not in text
        assert " in ." not in text
    recommendation = prompts["recommendation"]
    assert "dental practices?" in recommendation or "dental practices." in recommendation


def test_template_variables_and_temperatures():
    variables = all_template_variables()
    assert "business_name" in variables
    assert "location_context" in variables
    assert PROMPT_TEMPERATURES["factual"] < PROMPT_TEMPERATURES["recommendation"]
