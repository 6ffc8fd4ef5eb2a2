"""
Customer-style prompt generation for fingerprinting.

Three prompt categories are asked of every model:
- factual: what the model knows about the business
- opinion: whether the model would vouch for it
- recommendation: an open "best X in <city>" question where the business
  has to surface on its own (drives ranking and the competitor leaderboard)
"""

import random
import string
from typing import Dict, List, Optional

from .models import BusinessContext, Location

FACTUAL_TEMPLATES = [
    "What information do you have about {business_name}{location_context}? Please provide factual details about their services, reputation, contact information, and any notable characteristics.",
    "Can you tell me about {business_name}{location_context}? I'm looking for factual information about what they do, their background, and their reputation in the community.",
    "I need information about {business_name}{location_context}. What can you tell me about their services, experience, and standing in the {industry} industry?",
]

OPINION_TEMPLATES = [
    "I'm considering using the services of {business_name}{location_context}. Based on what you know, would you say they are a reputable and reliable {business_type}? What's your assessment of their quality and trustworthiness?",
    "I'm thinking about going to {business_name}{location_context} for {service_context}. Do you think they're a good choice? What's your opinion on their reputation and service quality?",
    "A friend recommended {business_name}{location_context} to me. What's your take on them? Are they known for being professional and delivering good results in the {industry} space?",
]

RECOMMENDATION_TEMPLATES = [
    "What are the best {industry_plural}{location_context}? I'm looking for top recommendations for quality {service_type} providers in the area.",
    "Can you recommend the top 5 {industry_plural}{location_context}? I need reliable options for {service_context} and want to know who the leading providers are.",
    "I'm looking for the most reputable {industry_plural}{location_context}. Who would you recommend for someone seeking high-quality {service_type} services?",
]

TEMPLATES = {
    "factual": FACTUAL_TEMPLATES,
    "opinion": OPINION_TEMPLATES,
    "recommendation": RECOMMENDATION_TEMPLATES,
}

# Lower temperature for facts, higher for open-ended recommendations
PROMPT_TEMPERATURES = {
    "factual": 0.3,
    "opinion": 0.5,
    "recommendation": 0.7,
}

INDUSTRY_MAPPINGS = {
    # Healthcare & medical
    "healthcare": {"plural": "healthcare providers", "service": "medical care", "type": "healthcare provider"},
    "dental": {"plural": "dental practices", "service": "dental care", "type": "dental practice"},
    "medical": {"plural": "medical practices", "service": "medical services", "type": "medical provider"},
    "veterinary": {"plural": "veterinary clinics", "service": "pet care", "type": "veterinary clinic"},
    # Professional services
    "legal": {"plural": "law firms", "service": "legal services", "type": "law firm"},
    "accounting": {"plural": "accounting firms", "service": "financial services", "type": "accounting firm"},
    "consulting": {"plural": "consulting firms", "service": "business consulting", "type": "consulting company"},
    "real estate": {"plural": "real estate agencies", "service": "property services", "type": "real estate agency"},
    # Food & hospitality
    "restaurant": {"plural": "restaurants", "service": "dining", "type": "restaurant"},
    "cafe": {"plural": "cafes", "service": "coffee and food", "type": "cafe"},
    "catering": {"plural": "catering companies", "service": "event catering", "type": "catering service"},
    "hotel": {"plural": "hotels", "service": "accommodation", "type": "hotel"},
    # Retail & commerce
    "retail": {"plural": "retail stores", "service": "shopping", "type": "retail business"},
    "automotive": {"plural": "auto services", "service": "vehicle maintenance", "type": "automotive service"},
    "beauty": {"plural": "beauty salons", "service": "beauty services", "type": "beauty salon"},
    "fitness": {"plural": "fitness centers", "service": "fitness training", "type": "fitness facility"},
    # Technology & services
    "technology": {"plural": "tech companies", "service": "technology solutions", "type": "technology company"},
    "marketing": {"plural": "marketing agencies", "service": "marketing services", "type": "marketing agency"},
    "construction": {"plural": "construction companies", "service": "construction services", "type": "construction company"},
    "cleaning": {"plural": "cleaning services", "service": "cleaning", "type": "cleaning service"},
    "default": {"plural": "businesses", "service": "professional services", "type": "business"},
}

# (substring, industry) checks applied after direct key matches
_CATEGORY_FUZZY = [
    (("food", "dining"), "restaurant"),
    (("health", "medical"), "healthcare"),
    (("law", "attorney"), "legal"),
    (("tech", "software"), "technology"),
    (("shop", "store"), "retail"),
]

_CRAWL_FUZZY = [
    (("doctor", "clinic"), "healthcare"),
    (("lawyer", "attorney"), "legal"),
    (("restaurant", "food"), "restaurant"),
    (("software", "app"), "technology"),
]

SERVICE_KEYWORDS = [
    "consulting", "design", "development", "marketing", "sales",
    "repair", "maintenance", "installation", "training", "support",
    "care", "treatment", "therapy", "advice", "planning",
]


def _match_industry(text: str, fuzzy) -> Optional[str]:
    for industry in INDUSTRY_MAPPINGS:
        if industry != "default" and industry in text:
            return industry
    for needles, industry in fuzzy:
        if any(n in text for n in needles):
            return industry
    return None


def extract_industry(ctx: BusinessContext) -> str:
    """Category first, then crawl text, then URL; 'default' when nothing matches."""
    if ctx.category:
        found = _match_industry(ctx.category.lower(), _CATEGORY_FUZZY)
        if found:
            return found

    crawl = ctx.crawl_data or {}
    if crawl:
        details = crawl.get("business_details") or {}
        parts = [
            crawl.get("description"),
            details.get("industry"),
            details.get("sector"),
            *(crawl.get("services") or []),
        ]
        text = " ".join(str(p) for p in parts if p).lower()
        if text:
            found = _match_industry(text, _CRAWL_FUZZY)
            if found:
                return found

    if ctx.url:
        url = ctx.url.lower()
        for industry in INDUSTRY_MAPPINGS:
            if industry != "default" and industry in url:
                return industry

    return "default"


def build_location_context(location: Optional[Location]) -> str:
    """' in City, State' or '' when no location is known."""
    if not location:
        return ""
    parts = [p for p in (location.city, location.state) if p]
    if not parts:
        return ""
    return " in " + ", ".join(parts)


def build_service_context(ctx: BusinessContext, default_service: str) -> str:
    crawl = ctx.crawl_data or {}
    services = crawl.get("services") or []
    if services:
        return str(services[0]).lower()
    description = (crawl.get("description") or "").lower()
    for keyword in SERVICE_KEYWORDS:
        if keyword in description:
            return keyword
    return default_service


def build_variables(ctx: BusinessContext) -> Dict[str, str]:
    industry = extract_industry(ctx)
    mapping = INDUSTRY_MAPPINGS.get(industry, INDUSTRY_MAPPINGS["default"])
    return {
        "business_name": ctx.name,
        "location_context": build_location_context(ctx.location),
        "industry": industry if industry != "default" else "local business",
        "industry_plural": mapping["plural"],
        "business_type": mapping["type"],
        "service_type": mapping["service"],
        "service_context": build_service_context(ctx, mapping["service"]),
    }


def generate_prompts(
    ctx: BusinessContext,
    rng: Optional[random.Random] = None,
) -> Dict[str, str]:
    """
    Build one prompt per category for a business.

    Args:
        ctx: Business snapshot.
        rng: Random source for template choice; pass a seeded Random for
             reproducible prompts.

    Returns:
        {"factual": str, "opinion": str, "recommendation": str}
    """
    rng = rng or random.Random()
    variables = build_variables(ctx)
    return {
        prompt_type: rng.choice(templates).format(**variables)
        for prompt_type, templates in TEMPLATES.items()
    }


def all_template_variables() -> List[str]:
    return sorted(
        {
            name
            for templates in TEMPLATES.values()
            for t in templates
            for name in _placeholders(t)
        }
    )


def _placeholders(template: str) -> List[str]:
    return [field for _, field, _, _ in string.Formatter().parse(template) if field]
