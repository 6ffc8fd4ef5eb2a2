"""
Response analysis: turn one raw model answer into an LLMResult.

Deterministic text heuristics, no model calls:
- mention detection (exact, name variations, contextual)
- sentiment toward the business (indicator lists, then implicit phrases)
- competitor extraction from numbered / bulleted lists
- rank extraction for the target business
- an overall confidence used as the result's `accuracy`
"""

import re
import time
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .models import LLMResponse, LLMResult

logger = logging.getLogger(__name__)


# =============================================================================
# PATTERNS
# =============================================================================

POSITIVE_INDICATORS = [
    "excellent", "outstanding", "great", "amazing", "fantastic", "wonderful",
    "professional", "reliable", "trustworthy", "reputable", "quality",
    "highly recommended", "top-rated", "best", "leading", "premier",
    "experienced", "skilled", "expert", "knowledgeable", "competent",
    "friendly", "helpful", "responsive", "efficient", "thorough",
    "satisfied", "pleased", "happy", "impressed", "delighted",
]

NEGATIVE_INDICATORS = [
    "terrible", "awful", "horrible", "disappointing", "poor", "bad",
    "unprofessional", "unreliable", "untrustworthy", "questionable",
    "avoid", "warning", "complaint", "problem", "issue", "concern",
    "rude", "unhelpful", "slow", "inefficient", "careless",
    "overpriced", "expensive", "cheap", "low-quality", "subpar",
    "dissatisfied", "unhappy", "frustrated", "disappointed", "regret",
]

NEUTRAL_INDICATORS = [
    "okay", "average", "decent", "standard", "typical", "normal",
    "adequate", "acceptable", "reasonable", "fair", "moderate",
    "mixed", "varies", "depends", "sometimes", "generally",
]

IMPLICIT_POSITIVE = [
    r"would\s+recommend", r"good\s+choice", r"solid\s+option",
    r"worth\s+considering", r"established\s+presence", r"professional\s+standards",
]

IMPLICIT_NEGATIVE = [
    r"would\s+not\s+recommend", r"avoid", r"be\s+careful",
    r"limited\s+information", r"don't\s+have\s+enough", r"insufficient\s+data",
]

RANKING_PATTERNS = [
    re.compile(r"(?:number\s+|#)(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)(?:st|nd|rd|th)\s+(?:place|choice|option)", re.IGNORECASE),
    re.compile(r"top\s+(\d+)", re.IGNORECASE),
    re.compile(r"ranked\s+(\d+)", re.IGNORECASE),
    re.compile(r"position\s+(\d+)", re.IGNORECASE),
]

CONTEXTUAL_PATTERNS = [
    re.compile(r"this\s+(?:business|company|establishment|place|location)", re.IGNORECASE),
    re.compile(r"they\s+(?:are|offer|provide|specialize)", re.IGNORECASE),
    re.compile(r"their\s+(?:services|reputation|quality|experience)", re.IGNORECASE),
    re.compile(r"it\s+(?:is|appears|seems|looks)", re.IGNORECASE),
]

BUSINESS_CONTEXT_WORDS = [
    "services", "reputation", "quality", "professional", "experience",
    "customers", "clients", "staff", "team", "location", "business",
]

NAME_SUFFIXES = ["inc", "llc", "corp", "company", "co", "ltd", "group", "services", "solutions"]
NAME_PREFIXES = ["the", "a", "an"]
NAME_REPLACEMENTS = [("&", "and"), ("and", "&"), ("centre", "center"), ("center", "centre")]

_LIST_SUFFIX = r"(?:Inc|LLC|Corp|Company|Co|Ltd|Group|Services|Solutions)?"
NUMBERED_ITEM = re.compile(r"^\s*\d+[.)]\s+(?:\*\*)?([A-Z][a-zA-Z &']+" + _LIST_SUFFIX + r")(?=\s*(?:\*\*)?\s*[-:–—]|\s*(?:\*\*)?\s*$)", re.MULTILINE)
BULLET_ITEM = re.compile(r"^\s*[-*•]\s+(?:\*\*)?([A-Z][a-zA-Z &'-]+" + _LIST_SUFFIX + r")", re.MULTILINE)
NUMBERED_LINE = re.compile(r"^\s*(\d+)[.)]")

INVALID_NAME_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"^(here are|i'd recommend|i recommend|to give you|that's a|i need|quality recommendations)",
    r"^(each of these|these businesses|professional standards|local community)",
    r"^(demonstrated|serves the|effectively|strong community presence)",
    r"^(with strong|community presence|demonstrated professional)",
    r"^(some top|top recommendations|recommendations for)",
    r"^(a great|great question|little more|more information)",
    r"^(what you're|you're looking|looking for)",
    r"^(and|or|but|if|when|where|why|how)\s+",
    r"^(is|are|was|were|be|been|being)\s+",
    r"^(can|could|should|would|will|may|might)\s+",
    r"^(this|that|these|those)\s+",
    r"^(it|they|we|you|he|she)\s+",
)]

PROSE_PHRASES = [
    "quality professional services",
    "professional services providers",
    "strong community presence",
    "demonstrated professional standards",
    "serves the local community",
    "professional service with",
    "established local reputation",
    "each of these businesses",
]

GENERIC_WORDS = {"quality", "professional", "local", "community", "excellence", "choice", "group", "services", "solutions"}

FALSE_POSITIVES = [
    "google", "facebook", "twitter", "linkedin", "instagram",
    "better business bureau", "bbb", "yelp", "tripadvisor",
    "united states", "new york", "california", "texas",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# Overall confidence weights
MENTION_WEIGHT = 0.5
SENTIMENT_WEIGHT = 0.3
COMPETITOR_WEIGHT = 0.2


# =============================================================================
# INTERMEDIATE RESULTS
# =============================================================================

@dataclass
class MentionAnalysis:
    mentioned: bool
    confidence: float
    match_type: str                  # exact | partial | contextual | none
    variants: List[str] = field(default_factory=list)


@dataclass
class SentimentAnalysis:
    sentiment: str
    confidence: float
    score: float
    keywords: List[str] = field(default_factory=list)


@dataclass
class CompetitorAnalysis:
    competitors: List[str]
    target_rank: Optional[int]
    confidence: float


# =============================================================================
# NAME MATCHING
# =============================================================================

def generate_name_variations(business_name: str, include_acronym: bool = True) -> List[str]:
    """Original name plus suffix/prefix-stripped, replaced and acronym forms."""
    name = business_name.strip()
    variations = [name]

    def _add(v: str) -> None:
        v = v.strip()
        if v and v not in variations:
            variations.append(v)

    for suffix in NAME_SUFFIXES:
        pattern = re.compile(r"[\s,]+" + re.escape(suffix) + r"\.?$", re.IGNORECASE)
        if pattern.search(name):
            _add(pattern.sub("", name))
    for prefix in NAME_PREFIXES:
        pattern = re.compile(r"^" + re.escape(prefix) + r"\s+", re.IGNORECASE)
        if pattern.search(name):
            _add(pattern.sub("", name))
    for old, new in NAME_REPLACEMENTS:
        pattern = re.compile(r"(?<!\w)" + re.escape(old) + r"(?!\w)", re.IGNORECASE)
        if pattern.search(name):
            _add(pattern.sub(new, name))

    words = name.split()
    if include_acronym and len(words) > 1:
        acronym = "".join(w[0].upper() for w in words if w[0].isalnum())
        if len(acronym) >= 2:
            _add(acronym)
    return variations


def _contains_phrase(text: str, phrase: str) -> bool:
    """Whole-phrase match; short all-caps acronyms must match case exactly."""
    if phrase.isupper() and len(phrase) <= 5 and " " not in phrase:
        return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text) is not None
    return re.search(r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)", text.lower()) is not None


def is_same_business(candidate: str, business_name: str) -> bool:
    a = candidate.lower().strip()
    b = business_name.lower().strip()
    if a == b:
        return True
    va = {v.lower() for v in generate_name_variations(candidate, include_acronym=False)}
    vb = {v.lower() for v in generate_name_variations(business_name, include_acronym=False)}
    return bool(va & vb)


def _line_names_business(line: str, business_name: str) -> bool:
    return any(_contains_phrase(line, v) for v in generate_name_variations(business_name, include_acronym=False))


# =============================================================================
# ANALYSIS STEPS
# =============================================================================

def analyze_mention(response: str, business_name: str) -> MentionAnalysis:
    if business_name.lower() in response.lower():
        return MentionAnalysis(True, 0.95, "exact", [business_name])

    for variant in generate_name_variations(business_name)[1:]:
        if _contains_phrase(response, variant):
            return MentionAnalysis(True, 0.85, "partial", [variant])

    if any(p.search(response) for p in CONTEXTUAL_PATTERNS):
        lowered = response.lower()
        hits = sum(1 for w in BUSINESS_CONTEXT_WORDS if w in lowered)
        if hits >= 2:
            return MentionAnalysis(True, 0.6, "contextual")

    return MentionAnalysis(False, 0.9, "none")


def analyze_sentiment(response: str, mention: MentionAnalysis) -> SentimentAnalysis:
    if not mention.mentioned:
        return SentimentAnalysis("neutral", 0.5, 0.0)

    lowered = response.lower()
    positives = [w for w in POSITIVE_INDICATORS if w in lowered]
    negatives = [w for w in NEGATIVE_INDICATORS if w in lowered]
    neutrals = [w for w in NEUTRAL_INDICATORS if w in lowered]
    total = len(positives) + len(negatives) + len(neutrals)

    if total == 0:
        pos = sum(1 for p in IMPLICIT_POSITIVE if re.search(p, response, re.IGNORECASE))
        neg = sum(1 for p in IMPLICIT_NEGATIVE if re.search(p, response, re.IGNORECASE))
        if pos > neg:
            return SentimentAnalysis("positive", 0.6, 0.5)
        if neg > pos:
            return SentimentAnalysis("negative", 0.6, -0.5)
        return SentimentAnalysis("neutral", 0.8, 0.0)

    score = (len(positives) - len(negatives)) / total
    if score > 0.3:
        sentiment, confidence = "positive", min(0.95, 0.6 + score * 0.35)
    elif score < -0.3:
        sentiment, confidence = "negative", min(0.95, 0.6 + abs(score) * 0.35)
    else:
        sentiment, confidence = "neutral", 0.7
    return SentimentAnalysis(sentiment, confidence, score, positives + negatives + neutrals)


def _is_valid_business_name(name: str) -> bool:
    trimmed = name.strip()
    if len(trimmed) < 2 or len(trimmed) > 80:
        return False
    if not trimmed[0].isupper():
        return False
    if any(p.search(trimmed) for p in INVALID_NAME_PATTERNS):
        return False
    lowered = trimmed.lower()
    if any(phrase in lowered for phrase in PROSE_PHRASES):
        return False
    if lowered in GENERIC_WORDS:
        return False
    if "\n" in trimmed or re.search(r"\.\s+[A-Z]", trimmed):
        return False
    return True


def _is_false_positive(name: str) -> bool:
    lowered = name.lower()
    return any(re.search(r"(?<!\w)" + re.escape(fp) + r"(?!\w)", lowered) for fp in FALSE_POSITIVES)


def extract_list_names(response: str) -> List[str]:
    """Candidate business names from numbered and bulleted list items, in order."""
    names: List[str] = []
    for match in NUMBERED_ITEM.finditer(response):
        name = re.split(r"\s*[-:–—]\s*", match.group(1).strip())[0].strip()
        if name and name not in names:
            names.append(name)
    for match in BULLET_ITEM.finditer(response):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def extract_ranking(response: str, business_name: str, mention: MentionAnalysis) -> Optional[int]:
    """Rank 1-10 for the target, or None. Only ranked when mentioned."""
    if not mention.mentioned:
        return None

    # A numbered line that names the business is the most direct evidence
    for line in response.split("\n"):
        m = NUMBERED_LINE.match(line)
        if m and _line_names_business(line, business_name):
            rank = int(m.group(1))
            if 1 <= rank <= 10:
                return rank

    for pattern in RANKING_PATTERNS:
        m = pattern.search(response)
        if m:
            rank = int(m.group(1))
            if 1 <= rank <= 10:
                return rank
    return None


def analyze_competitors(response: str, business_name: str, mention: MentionAnalysis) -> CompetitorAnalysis:
    competitors = []
    for name in extract_list_names(response):
        if not _is_valid_business_name(name):
            continue
        if is_same_business(name, business_name):
            continue
        if _is_false_positive(name):
            continue
        if name not in competitors:
            competitors.append(name)

    confidence = 0.5
    lowered = response.lower()
    if "recommend" in lowered or "top" in lowered or "best" in lowered:
        confidence += 0.2
    if re.search(r"^\s*\d+[.)]", response, re.MULTILINE):
        confidence += 0.2
    if len(competitors) > 10:
        confidence -= 0.2
    elif not competitors:
        confidence -= 0.3
    confidence = max(0.1, min(0.95, confidence))

    return CompetitorAnalysis(
        competitors=competitors,
        target_rank=extract_ranking(response, business_name, mention),
        confidence=confidence,
    )


def overall_confidence(mention: MentionAnalysis, sentiment: SentimentAnalysis, competitor: CompetitorAnalysis) -> float:
    value = (
        mention.confidence * MENTION_WEIGHT
        + sentiment.confidence * SENTIMENT_WEIGHT
        + competitor.confidence * COMPETITOR_WEIGHT
    )
    return round(max(0.0, min(1.0, value)), 4)


def analyze_response(response: LLMResponse, business_name: str, prompt_type: str, prompt: str = "") -> LLMResult:
    """
    Analyze one model answer for the target business.

    Never raises: a failure inside the heuristics yields an error-tagged
    result that the result filter will drop.
    """
    started = time.time()
    try:
        mention = analyze_mention(response.content, business_name)
        sentiment = analyze_sentiment(response.content, mention)
        competitor = analyze_competitors(response.content, business_name, mention)
        result = LLMResult(
            model=response.model,
            prompt_type=prompt_type,
            mentioned=mention.mentioned,
            sentiment=sentiment.sentiment,
            rank_position=competitor.target_rank,
            accuracy=overall_confidence(mention, sentiment, competitor),
            raw_response=response.content,
            tokens_used=response.tokens_used,
            competitor_mentions=competitor.competitors,
            prompt=prompt,
            processing_time_ms=int((time.time() - started) * 1000),
        )
        logger.debug(
            "Analyzed %s/%s: mentioned=%s sentiment=%s rank=%s competitors=%d",
            response.model, prompt_type, result.mentioned, result.sentiment,
            result.rank_position, len(result.competitor_mentions),
        )
        return result
    except (re.error, TypeError, ValueError, AttributeError) as e:
        logger.warning("Response analysis failed for %s/%s: %s", response.model, prompt_type, e)
        return LLMResult(
            model=response.model,
            prompt_type=prompt_type,
            raw_response=response.content or "",
            tokens_used=response.tokens_used,
            prompt=prompt,
            processing_time_ms=int((time.time() - started) * 1000),
            error=f"analysis failed: {e}",
        )
