"""
Entity builder.

Turns a business snapshot (plus crawl data and a notability verdict) into a
Wikibase entity document:

    {"labels": {"en": {"language": "en", "value": ...}},
     "descriptions": {"en": {...}},
     "claims": {"P31": [claim, ...], ...}}

Every claim carries an internal "_confidence" used by the property/QID
budgets; entity_to_api_payload strips it before the document leaves the
process.
"""

import re
import copy
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from .models import BusinessContext, NotabilityAssessment
from .notability import normalize_business_name

logger = logging.getLogger(__name__)

BUSINESS_QID = "Q4830453"
MAX_DESCRIPTION_LENGTH = 250
CONFIDENCE_KEY = "_confidence"

WIKIDATA_GLOBE = "http://www.wikidata.org/entity/Q2"
GREGORIAN_CALENDAR = "http://www.wikidata.org/entity/Q1985727"

# Property -> confidence of the claim we derive for it
PROPERTY_CONFIDENCE = {
    "P31": 1.0,      # instance of
    "P856": 0.95,    # official website
    "P625": 0.9,     # coordinate location
    "P1448": 0.85,   # official name
    "P1329": 0.8,    # phone number
    "P969": 0.75,    # located at street address
    "P571": 0.7,     # inception
    "P2002": 0.6,    # Twitter username
    "P2013": 0.6,    # Facebook ID
    "P2003": 0.6,    # Instagram username
    "P4264": 0.6,    # LinkedIn company ID
}

SOCIAL_PROPERTIES = {
    "twitter": ("P2002", re.compile(r"(?:twitter|x)\.com/(?:#!/)?@?([A-Za-z0-9_]{1,15})", re.I)),
    "facebook": ("P2013", re.compile(r"facebook\.com/(?:pg/)?([A-Za-z0-9.\-]+)", re.I)),
    "instagram": ("P2003", re.compile(r"instagram\.com/([A-Za-z0-9_.]+)", re.I)),
    "linkedin": ("P4264", re.compile(r"linkedin\.com/company/([A-Za-z0-9\-_%]+)", re.I)),
}

# Path segments that are never account handles
_RESERVED_HANDLES = {"share", "sharer", "intent", "home", "pages", "profile.php", "p", "explore", "company"}


# =============================================================================
# SNAK / CLAIM CONSTRUCTORS
# =============================================================================

def _statement(prop: str, datavalue: Dict, confidence: float, references: Optional[List[Dict]] = None) -> Dict:
    claim = {
        "mainsnak": {
            "snaktype": "value",
            "property": prop,
            "datavalue": datavalue,
        },
        "type": "statement",
        "rank": "normal",
        CONFIDENCE_KEY: confidence,
    }
    if references:
        claim["references"] = copy.deepcopy(references)
    return claim


def _item_value(qid: str) -> Dict:
    return {
        "value": {"entity-type": "item", "numeric-id": int(qid[1:]), "id": qid},
        "type": "wikibase-entityid",
    }


def _string_value(value: str) -> Dict:
    return {"value": value, "type": "string"}


def _monolingual_value(text: str, language: str = "en") -> Dict:
    return {"value": {"text": text, "language": language}, "type": "monolingualtext"}


def _coordinate_value(lat: float, lng: float) -> Dict:
    return {
        "value": {
            "latitude": lat,
            "longitude": lng,
            "altitude": None,
            "precision": 0.0001,
            "globe": WIKIDATA_GLOBE,
        },
        "type": "globecoordinate",
    }


def _time_value(year: int, precision: int = 9, day: Optional[date] = None) -> Dict:
    if day is not None:
        time = f"+{day.isoformat()}T00:00:00Z"
    else:
        time = f"+{year:04d}-00-00T00:00:00Z"
    return {
        "value": {
            "time": time,
            "timezone": 0,
            "before": 0,
            "after": 0,
            "precision": precision,
            "calendarmodel": GREGORIAN_CALENDAR,
        },
        "type": "time",
    }


def build_reference(url: str, retrieved: Optional[date] = None) -> Dict:
    """P854 reference URL + P813 retrieved date."""
    retrieved = retrieved or date.today()
    return {
        "snaks": {
            "P854": [{"snaktype": "value", "property": "P854", "datavalue": _string_value(url)}],
            "P813": [{
                "snaktype": "value",
                "property": "P813",
                "datavalue": _time_value(retrieved.year, precision=11, day=retrieved),
            }],
        },
        "snaks-order": ["P854", "P813"],
    }


# =============================================================================
# FIELD EXTRACTION
# =============================================================================

def _parse_year(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        year = value
    else:
        m = re.search(r"\b(1[6-9]\d{2}|20\d{2})\b", str(value or ""))
        if not m:
            return None
        year = int(m.group(1))
    if 1600 <= year <= date.today().year:
        return year
    return None


def _coordinates(crawl_data: Dict) -> Optional[Tuple[float, float]]:
    coords = crawl_data.get("coordinates") or {}
    lat = coords.get("lat", coords.get("latitude"))
    lng = coords.get("lng", coords.get("longitude"))
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def social_handle(network: str, url: str) -> Optional[str]:
    """Account handle from a social profile URL, or None."""
    if network not in SOCIAL_PROPERTIES or not url:
        return None
    m = SOCIAL_PROPERTIES[network][1].search(url)
    if not m:
        return None
    handle = m.group(1).strip("/")
    if not handle or handle.lower() in _RESERVED_HANDLES:
        return None
    return handle


def build_description(business: BusinessContext, crawl_data: Dict) -> str:
    description = (crawl_data.get("description") or "").strip()
    if not description:
        loc = business.location
        if loc and loc.city and loc.state:
            description = f"Local business in {loc.city}, {loc.state}"
        elif loc and (loc.city or loc.state):
            description = f"Local business in {loc.city or loc.state}"
        else:
            description = "Local business"
    description = re.sub(r"\s+", " ", description)
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[: MAX_DESCRIPTION_LENGTH - 3].rstrip() + "..."
    return description


# =============================================================================
# BUILD
# =============================================================================

def build_entity(
    business: BusinessContext,
    crawl_data: Optional[Dict] = None,
    notability: Optional[NotabilityAssessment] = None,
    max_properties: Optional[int] = None,
    max_qids: Optional[int] = None,
) -> Dict:
    """
    Build an entity document for a business.

    Args:
        business: Business snapshot.
        crawl_data: Extracted page data; defaults to business.crawl_data.
        notability: Verdict whose top_references become claim references.
        max_properties: Cap on distinct properties (None = no cap).
        max_qids: Cap on item-valued snaks (None = no cap).

    Returns:
        Entity dict with labels, descriptions and claims. Never raises on
        missing data; budgets drop the lowest-confidence claims first.
    """
    crawl_data = crawl_data if crawl_data is not None else (business.crawl_data or {})
    name = normalize_business_name(crawl_data.get("name") or business.name or "")
    url = business.url or crawl_data.get("url")

    references: List[Dict] = []
    if notability and notability.top_references:
        references = [build_reference(notability.top_references[0].url)]

    candidates: List[Dict] = [
        _statement("P31", _item_value(BUSINESS_QID), PROPERTY_CONFIDENCE["P31"], references),
    ]
    if url:
        candidates.append(_statement("P856", _string_value(url), PROPERTY_CONFIDENCE["P856"]))
    coords = _coordinates(crawl_data)
    if coords:
        candidates.append(_statement("P625", _coordinate_value(*coords), PROPERTY_CONFIDENCE["P625"], references))
    if name:
        candidates.append(_statement("P1448", _monolingual_value(name), PROPERTY_CONFIDENCE["P1448"], references))
    if crawl_data.get("phone"):
        candidates.append(_statement("P1329", _string_value(str(crawl_data["phone"])), PROPERTY_CONFIDENCE["P1329"], references))
    if crawl_data.get("address"):
        candidates.append(_statement("P969", _string_value(str(crawl_data["address"])), PROPERTY_CONFIDENCE["P969"], references))
    founded = _parse_year(crawl_data.get("founded"))
    if founded:
        candidates.append(_statement("P571", _time_value(founded), PROPERTY_CONFIDENCE["P571"], references))
    for network, link in sorted((crawl_data.get("social_links") or {}).items()):
        handle = social_handle(network, link)
        if handle:
            prop = SOCIAL_PROPERTIES[network][0]
            candidates.append(_statement(prop, _string_value(handle), PROPERTY_CONFIDENCE[prop]))

    claims = apply_budgets(candidates, max_properties, max_qids)
    description = build_description(business, crawl_data)

    entity = {
        "labels": {"en": {"language": "en", "value": name}} if name else {},
        "descriptions": {"en": {"language": "en", "value": description}},
        "claims": claims,
    }
    logger.debug(
        "Built entity for business %s: %d properties (%d candidates)",
        business.business_id, len(claims), len(candidates),
    )
    return entity


def apply_budgets(candidates: List[Dict], max_properties: Optional[int] = None,
                  max_qids: Optional[int] = None) -> Dict[str, List[Dict]]:
    """Keep the highest-confidence claims that fit both budgets."""
    ranked = sorted(candidates, key=lambda c: -c.get(CONFIDENCE_KEY, 0.0))
    claims: Dict[str, List[Dict]] = {}
    qids = 0
    for claim in ranked:
        prop = claim["mainsnak"]["property"]
        if prop not in claims and max_properties is not None and len(claims) >= max_properties:
            continue
        is_item = claim["mainsnak"]["datavalue"]["type"] == "wikibase-entityid"
        if is_item and max_qids is not None and qids >= max_qids:
            continue
        claims.setdefault(prop, []).append(claim)
        if is_item:
            qids += 1
    return claims


# =============================================================================
# VALIDATION / SERIALIZATION
# =============================================================================

def validate_entity(entity: Any) -> bool:
    """Non-empty en label and en description required."""
    if not isinstance(entity, dict):
        return False
    for key in ("labels", "descriptions"):
        terms = entity.get(key)
        if not isinstance(terms, dict) or not terms:
            return False
        en = terms.get("en")
        if not isinstance(en, dict) or not str(en.get("value") or "").strip():
            return False
    return isinstance(entity.get("claims", {}), dict)


def entity_to_api_payload(entity: Dict, preserve_terms: bool = False) -> Dict:
    """
    Copy of the entity without internal annotations.

    preserve_terms=True drops labels/descriptions so an update leaves the
    remote terms untouched.
    """
    payload = {}
    if not preserve_terms:
        payload["labels"] = copy.deepcopy(entity.get("labels") or {})
        payload["descriptions"] = copy.deepcopy(entity.get("descriptions") or {})
    payload["claims"] = {
        prop: [{k: copy.deepcopy(v) for k, v in claim.items() if k != CONFIDENCE_KEY} for claim in claim_list]
        for prop, claim_list in (entity.get("claims") or {}).items()
    }
    return payload


def entity_summary(entity: Dict) -> Dict:
    """Compact view for storage and API responses."""
    return {
        "label": ((entity.get("labels") or {}).get("en") or {}).get("value"),
        "description": ((entity.get("descriptions") or {}).get("en") or {}).get("value"),
        "properties": sorted((entity.get("claims") or {}).keys()),
        "claim_count": sum(len(v) for v in (entity.get("claims") or {}).values()),
    }
