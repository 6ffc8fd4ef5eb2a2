"""
Web search collaborator (SerpAPI).

search(query, num) -> [{"title", "link", "snippet"}]

Raises NotabilityError on missing configuration or request failure so the
notability checker can fail closed; an empty list means the search worked
and found nothing.
"""

import os
import logging
from typing import Dict, List, Optional

import requests

from .errors import NotabilityError, sanitize_for_logging

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"
SEARCH_TIMEOUT = 15  # seconds


class SerpApiSearch:
    """Google organic results via SerpAPI."""

    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.api_key = api_key or os.getenv("SERPAPI_API_KEY")
        self.session = session or requests.Session()
        self.request_count = 0

    def search(self, query: str, num: int = 10) -> List[Dict[str, str]]:
        if not self.api_key:
            raise NotabilityError(
                "SERPAPI_API_KEY not set",
                code="SEARCH_NOT_CONFIGURED",
                status=500,
            )
        params = {
            "engine": "google",
            "q": query,
            "num": num,
            "api_key": self.api_key,
            "gl": "us",
            "hl": "en",
        }
        try:
            resp = self.session.get(SERPAPI_URL, params=params, timeout=SEARCH_TIMEOUT)
            self.request_count += 1
        except requests.exceptions.RequestException as e:
            raise NotabilityError(
                f"Search request failed: {sanitize_for_logging(e)}",
                code="SEARCH_FAILED",
                status=504 if isinstance(e, requests.exceptions.Timeout) else 502,
                retryable=True,
            )
        if resp.status_code != 200:
            raise NotabilityError(
                f"Search returned HTTP {resp.status_code}",
                code="SEARCH_FAILED",
                details={"http_status": resp.status_code},
            )
        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            raise NotabilityError("Search returned a non-JSON body", code="SEARCH_FAILED", status=502)
        if not isinstance(data, dict):
            raise NotabilityError("Search returned an unexpected payload", code="SEARCH_FAILED", status=502)
        if data.get("error"):
            # SerpAPI reports "no results" as an error string
            if "hasn't returned any results" in str(data["error"]):
                return []
            raise NotabilityError(f"Search error: {data['error']}", code="SEARCH_FAILED")

        hits = []
        for item in data.get("organic_results") or []:
            link = item.get("link")
            title = item.get("title")
            if not link or not title:
                continue
            hits.append({"title": title, "link": link, "snippet": item.get("snippet") or ""})
        logger.debug("Search %r returned %d hits", query, len(hits))
        return hits[:num]
