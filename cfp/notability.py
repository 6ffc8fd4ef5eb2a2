"""
Notability checker.

Decides whether a business has enough serious, independent, publicly
available references to justify a public knowledge-base entity:

1. normalize the name (drop trailing timestamp / id suffixes)
2. quoted-phrase web search with location terms; dedupe by URL
3. zero hits -> not notable, confidence 0.9, no LLM call
4. otherwise an LLM judge classifies every hit and returns a verdict
5. notable = judge says so AND at least one serious+independent+public
   reference exists (the business's own site never counts)

Every failure path returns is_notable=False. Nothing is auto-published on an
infrastructure error.
"""

import re
import json
import logging
import threading
from datetime import date
from typing import Dict, List, Optional
from urllib.parse import urlparse

from .errors import CFPError, NotabilityError, sanitize_for_logging
from .llm_client import LLMClient, strip_json_fence
from .models import Location, NotabilityAssessment, Reference
from .search import SerpApiSearch

logger = logging.getLogger(__name__)

JUDGE_MODEL = "openai/gpt-4-turbo"
JUDGE_TEMPERATURE = 0.3
MAX_REFERENCES = 15
TOP_REFERENCES = 5
DEFAULT_DAILY_LIMIT = 100

NO_REFERENCES_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5

SOURCE_TYPES = ("news", "government", "academic", "database", "directory", "review", "company", "other")

SOURCE_TYPE_RANK = {
    "government": 1,
    "news": 2,
    "academic": 3,
    "database": 4,
    "directory": 5,
    "review": 6,
    "other": 7,
    "company": 8,
}

TRUST_SCORES = {
    "government": 90,
    "news": 85,
    "academic": 85,
    "database": 80,
    "directory": 75,
    "review": 70,
    "company": 50,
    "other": 60,
}

LEGAL_SUFFIXES = [", Inc.", " Inc.", ", Inc", " Inc", ", LLC", " LLC", ", Ltd.", " Ltd.", " Corporation", " Corp.", " Corp"]

_TRAILING_ID = re.compile(r"\s+\d{6,}$")

JUDGE_SYSTEM_PROMPT = (
    "You assess whether web references meet Wikidata's notability standard "
    "for local businesses. Output valid JSON only, no markdown."
)

JUDGE_PROMPT_TEMPLATE = """Assess if these references meet Wikidata's "serious and publicly available" standard for LOCAL BUSINESSES:

Business: {business_name}

References:
{references}

Standards for LOCAL BUSINESSES:
1. From reputable sources (news, government, academic, official databases, OR legitimate business directories/review sites)
2. Publicly available (not paywalled, not private documents)
3. Independent third-party verification (the company's own website alone is not enough)

Source types:
- "news": news articles from reputable outlets
- "government": registrations, licenses, official directories
- "academic": academic publications or databases
- "database": official business databases, chamber of commerce listings
- "directory": business directories (Yelp, Better Business Bureau, local directories)
- "review": review platforms
- "company": the business's own website (never independent)
- "other": other publicly available sources

For each reference assess isSerious, isPubliclyAvailable, isIndependent, sourceType, trustScore (0-100) and reasoning.

Overall:
- meetsNotability: at least 1 serious independent reference (government, news, academic, database, directory or review)
- confidence: 0-1
- seriousReferenceCount, publiclyAvailableCount, independentCount
- summary: brief explanation
- recommendations: what to do if not notable

Return ONLY valid JSON with this exact structure:
{{
  "meetsNotability": boolean,
  "confidence": number,
  "seriousReferenceCount": number,
  "publiclyAvailableCount": number,
  "independentCount": number,
  "summary": string,
  "references": [
    {{"index": number, "isSerious": boolean, "isPubliclyAvailable": boolean, "isIndependent": boolean,
      "sourceType": string, "trustScore": number, "reasoning": string}}
  ],
  "recommendations": [string]
}}"""


def normalize_business_name(name: str) -> str:
    """Strip uniqueness suffixes: 'Acme Dental 1700000000000' -> 'Acme Dental'."""
    return _TRAILING_ID.sub("", (name or "").strip()).strip()


def build_search_query(name: str, location: Optional[Location] = None) -> str:
    query = f'"{name}"'
    if location:
        terms = [t for t in (location.city, location.state) if t]
        if terms:
            query += " " + " ".join(terms)
    return query


def name_variations(name: str) -> List[str]:
    """Legal-suffix-stripped variants (excluding the name itself)."""
    out = []
    for suffix in LEGAL_SUFFIXES:
        if name.endswith(suffix):
            variant = name[: -len(suffix)].rstrip(" ,")
            if variant and variant != name and variant not in out:
                out.append(variant)
    return out


def _domain(url: str) -> str:
    return (urlparse(url).netloc or "").lower().replace("www.", "")


def _clamp01(value) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def _clamp_trust(value, source_type: str) -> int:
    try:
        return int(max(0, min(100, float(value))))
    except (TypeError, ValueError):
        return TRUST_SCORES.get(source_type, 60)


class NotabilityChecker:
    """
    Search-plus-judge notability gate.

    Attributes:
        daily_queries: Search queries issued since the last reset
        llm_calls: Judge calls made (used by tests to assert cost control)
    """

    def __init__(
        self,
        search_client=None,
        llm_client: Optional[LLMClient] = None,
        judge_model: str = JUDGE_MODEL,
        daily_limit: Optional[int] = DEFAULT_DAILY_LIMIT,
    ):
        self.search_client = search_client or SerpApiSearch()
        self.llm_client = llm_client or LLMClient()
        self.judge_model = judge_model
        self.daily_limit = daily_limit
        self.daily_queries = 0
        self.llm_calls = 0
        self._budget_day = date.today()
        self._lock = threading.Lock()

    def check_notability(self, name: str, location: Optional[Location] = None) -> NotabilityAssessment:
        """
        Args:
            name: Business name (may carry a numeric uniqueness suffix).
            location: Optional city/state used in the search query.

        Returns:
            NotabilityAssessment; never raises.
        """
        normalized = normalize_business_name(name)
        if not self._take_budget():
            logger.warning("Daily search limit reached; skipping notability for %s", normalized)
            return NotabilityAssessment(
                is_notable=False,
                confidence=0.0,
                serious_reference_count=0,
                references=[],
                summary="Daily search limit reached; try again later",
                recommendations=["Retry the notability check after the daily quota resets"],
            )

        try:
            references = self.find_references(normalized, location)
        except CFPError as e:
            logger.warning("Reference search failed for %s: %s", normalized, sanitize_for_logging(e))
            return NotabilityAssessment(
                is_notable=False,
                confidence=0.0,
                serious_reference_count=0,
                references=[],
                summary=f"Reference search failed: {e.message}",
                recommendations=["Retry once the search service is available"],
            )

        if not references:
            return NotabilityAssessment(
                is_notable=False,
                confidence=NO_REFERENCES_CONFIDENCE,
                serious_reference_count=0,
                references=[],
                summary="No public references found",
                recommendations=[
                    "Get listed in independent business directories or review platforms",
                    "Seek local news coverage",
                ],
            )

        verdict = self._judge(references, normalized)
        if verdict is None:
            return NotabilityAssessment(
                is_notable=False,
                confidence=FALLBACK_CONFIDENCE,
                serious_reference_count=0,
                references=references,
                summary="Unable to assess references automatically; manual review required",
                recommendations=["Review the references manually before publishing"],
            )
        return self._apply_verdict(references, verdict)

    def find_references(self, name: str, location: Optional[Location] = None) -> List[Reference]:
        """Exact-name search, plus one legal-suffix variant; deduped by URL, top 15."""
        queries = [build_search_query(name, location)]
        for variant in name_variations(name)[:1]:
            queries.append(build_search_query(variant, location))

        seen = set()
        references: List[Reference] = []
        for i, query in enumerate(queries):
            if i > 0 and not self._take_budget():
                break
            hits = self.search_client.search(query, 10 if i == 0 else 5)
            for hit in hits or []:
                url = hit.get("link") or hit.get("url")
                title = hit.get("title")
                if not url or not title or url in seen:
                    continue
                seen.add(url)
                references.append(Reference(
                    url=url,
                    title=title,
                    snippet=hit.get("snippet") or "",
                    source=_domain(url),
                ))
        return references[:MAX_REFERENCES]

    def _judge(self, references: List[Reference], business_name: str) -> Optional[Dict]:
        prompt = JUDGE_PROMPT_TEMPLATE.format(
            business_name=business_name,
            references="\n".join(
                f"{i + 1}. {r.title}\n   URL: {r.url}\n   Source: {r.source}\n   Snippet: {r.snippet}"
                for i, r in enumerate(references)
            ),
        )
        raw = ""
        try:
            self.llm_calls += 1
            response = self.llm_client.query(
                self.judge_model,
                prompt,
                temperature=JUDGE_TEMPERATURE,
                system_prompt=JUDGE_SYSTEM_PROMPT,
            )
            raw = response.content
            data = json.loads(strip_json_fence(raw))
            if not isinstance(data, dict):
                raise ValueError("judge response is not an object")
            return data
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning("Notability judge parse error: %s; raw=%r", e, raw[:500])
            return None
        except CFPError as e:
            logger.warning("Notability judge failed: %s", sanitize_for_logging(e))
            return None

    def _apply_verdict(self, references: List[Reference], verdict: Dict) -> NotabilityAssessment:
        assessed = {}
        for item in verdict.get("references") or []:
            if not isinstance(item, dict):
                continue
            try:
                idx = int(item.get("index")) - 1
            except (TypeError, ValueError):
                continue
            if 0 <= idx < len(references):
                assessed[idx] = item

        judged: List[Reference] = []
        for i, ref in enumerate(references):
            item = assessed.get(i)
            if item is None:
                judged.append(ref)
                continue
            source_type = item.get("sourceType") if item.get("sourceType") in SOURCE_TYPES else "other"
            judged.append(Reference(
                url=ref.url,
                title=ref.title,
                snippet=ref.snippet,
                source=ref.source,
                is_serious=item.get("isSerious") is True,
                is_publicly_available=item.get("isPubliclyAvailable") is True,
                # Self-published pages never count as independent
                is_independent=item.get("isIndependent") is True and source_type != "company",
                source_type=source_type,
                trust_score=_clamp_trust(item.get("trustScore"), source_type),
            ))

        qualifying = [r for r in judged if r.qualifies]
        meets = verdict.get("meetsNotability") is True
        is_notable = meets and len(qualifying) >= 1

        summary = str(verdict.get("summary") or "")
        if meets and not qualifying:
            summary = (summary + " " if summary else "") + "No serious independent public reference was confirmed."
        recommendations = [str(r) for r in (verdict.get("recommendations") or []) if r]

        top = sorted(
            [r for r in judged if r.is_publicly_available],
            key=lambda r: (SOURCE_TYPE_RANK.get(r.source_type, 7), -r.trust_score),
        )[:TOP_REFERENCES]

        return NotabilityAssessment(
            is_notable=is_notable,
            confidence=_clamp01(verdict.get("confidence")),
            serious_reference_count=len(qualifying),
            references=judged,
            summary=summary,
            recommendations=recommendations,
            top_references=top,
        )

    def _take_budget(self) -> bool:
        """Count one search query against the daily budget."""
        with self._lock:
            today = date.today()
            if today != self._budget_day:
                self._budget_day = today
                self.daily_queries = 0
            if self.daily_limit is not None and self.daily_queries >= self.daily_limit:
                return False
            self.daily_queries += 1
            return True


def require_notable(assessment: NotabilityAssessment) -> None:
    """Raise NotabilityError unless the assessment clears the publish gate."""
    if not assessment.is_notable:
        raise NotabilityError(
            assessment.summary or "Business is not notable",
            code="NOT_NOTABLE",
            status=422,
            details={"confidence": assessment.confidence},
        )
