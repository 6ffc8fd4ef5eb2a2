"""
Tests for the entity builder.

Scenarios:
  D) an entity with empty descriptions fails validation
  a) full crawl data -> P31, P856, P625, P1448, P1329, P969, P571 and a social handle
  b) property / QID budgets keep the highest-confidence claims (P31 survives)
  c) API payload drops the internal _confidence annotation
  d) description fallback from location and truncation to 250 characters
  e) without a crawled name the label is the business name minus its numeric suffix
"""

import os
import sys

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.entity_builder import (
    BUSINESS_QID,
    CONFIDENCE_KEY,
    MAX_DESCRIPTION_LENGTH,
    build_description,
    build_entity,
    entity_summary,
    entity_to_api_payload,
    social_handle,
    validate_entity,
)
from cfp.models import BusinessContext, Location, NotabilityAssessment, Reference

CRAWL = {
    "name": "Acme Dental",
    "description": "Family dental practice in San Jose",
    "phone": "(408) 555-0100",
    "address": "100 Main St, San Jose, CA 95110",
    "founded": "Since 2004",
    "coordinates": {"lat": 37.3382, "lng": -121.8863},
    "social_links": {
        "facebook": "https://www.facebook.com/acmedental",
        "twitter": "https://twitter.com/intent/tweet",
    },
}


def _business(crawl_data=None, city="San Jose", state="CA", name="Acme Dental"):
    return BusinessContext(
        business_id=3,
        name=name,
        url="https://acmedental.example.com",
        category="Dental",
        location=Location(city=city, state=state) if (city or state) else None,
        crawl_data=crawl_data,
    )


def _notability():
    ref = Reference(
        url="https://www.mercurynews.com/acme-dental-opens",
        title="Acme Dental opens second office",
        is_serious=True,
        is_publicly_available=True,
        is_independent=True,
        source_type="news",
        trust_score=85,
    )
    return NotabilityAssessment(
        is_notable=True, confidence=0.85, serious_reference_count=1,
        references=[ref], summary="Covered by local news", top_references=[ref],
    )


def test_full_entity():
    entity = build_entity(_business(), CRAWL, _notability())
    assert validate_entity(entity)
    assert entity["labels"]["en"] == {"language": "en", "value": "Acme Dental"}
    assert entity["descriptions"]["en"]["value"] == "Family dental practice in San Jose"
    claims = entity["claims"]
    for prop in ("P31", "P856", "P625", "P1448", "P1329", "P969", "P571", "P2013"):
        assert prop in claims, prop
    assert "P2002" not in claims
    assert claims["P31"][0]["mainsnak"]["datavalue"]["value"]["id"] == BUSINESS_QID
    assert claims["P2013"][0]["mainsnak"]["datavalue"]["value"] == "acmedental"
    assert claims["P571"][0]["mainsnak"]["datavalue"]["value"]["time"] == "+2004-00-00T00:00:00Z"
    # Website needs no citation; everything derived from crawl cites the top reference
    assert "references" not in claims["P856"][0]
    ref_snaks = claims["P31"][0]["references"][0]["snaks"]
    assert ref_snaks["P854"][0]["datavalue"]["value"] == "https://www.mercurynews.com/acme-dental-opens"
    assert "P813" in ref_snaks


def test_crawl_data_defaults_to_business():
    entity = build_entity(_business(crawl_data=CRAWL))
    assert "P1329" in entity["claims"]
    assert "references" not in entity["claims"]["P31"][0]


def test_label_falls_back_to_normalized_business_name():
    entity = build_entity(_business(name="Acme Dental 1700000000000"), {"description": "Family dental practice"})
    assert entity["labels"]["en"]["value"] == "Acme Dental"
    assert entity["claims"]["P1448"][0]["mainsnak"]["datavalue"]["value"]["text"] == "Acme Dental"


def test_property_budget_keeps_highest_confidence():
    entity = build_entity(_business(), CRAWL, max_properties=3)
    assert set(entity["claims"]) == {"P31", "P856", "P625"}


def test_qid_budget_zero_drops_item_claims():
    entity = build_entity(_business(), CRAWL, max_qids=0)
    assert "P31" not in entity["claims"]
    assert "P856" in entity["claims"]


def test_payload_strips_confidence():
    entity = build_entity(_business(), CRAWL)
    payload = entity_to_api_payload(entity)
    for claims in payload["claims"].values():
        for claim in claims:
            assert CONFIDENCE_KEY not in claim
    # Source entity keeps its annotations
    assert CONFIDENCE_KEY in entity["claims"]["P31"][0]

    update = entity_to_api_payload(entity, preserve_terms=True)
    assert "labels" not in update
    assert "descriptions" not in update
    assert update["claims"]


# --- Scenario D ---
def test_validation_requires_label_and_description():
    entity = build_entity(_business(), CRAWL)
    assert validate_entity(entity)
    assert not validate_entity(dict(entity, descriptions={}))
    assert not validate_entity(dict(entity, labels={"en": {"language": "en", "value": "  "}}))
    assert not validate_entity(None)
    assert not validate_entity({"labels": {}, "descriptions": {}, "claims": {}})


def test_description_fallback_and_truncation():
    assert build_description(_business(), {}) == "Local business in San Jose, CA"
    assert build_description(_business(city="", state="TX"), {}) == "Local business in TX"
    assert build_description(_business(city=None, state=None), {}) == "Local business"
    long_text = "Dental care " * 40
    description = build_description(_business(), {"description": long_text})
    assert len(description) <= MAX_DESCRIPTION_LENGTH
    assert description.endswith("...")


def test_bad_crawl_values_skipped():
    crawl = {"name": "Acme Dental", "founded": "3021", "coordinates": {"lat": 200, "lng": 5}}
    entity = build_entity(_business(), crawl)
    assert "P571" not in entity["claims"]
    assert "P625" not in entity["claims"]


def test_social_handle():
    assert social_handle("twitter", "https://x.com/AcmeDental") == "AcmeDental"
    assert social_handle("instagram", "https://www.instagram.com/acme.dental/") == "acme.dental"
    assert social_handle("linkedin", "https://www.linkedin.com/company/acme-dental") == "acme-dental"
    assert social_handle("facebook", "https://www.facebook.com/sharer") is None
    assert social_handle("myspace", "https://myspace.com/acme") is None


def test_entity_summary():
    summary = entity_summary(build_entity(_business(), CRAWL))
    assert summary["label"] == "Acme Dental"
    assert "P31" in summary["properties"]
    assert summary["claim_count"] == len(summary["properties"])
