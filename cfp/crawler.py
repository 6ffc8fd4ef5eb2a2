"""
Business website crawler.

One GET per site (plus an HTTP fallback for broken certificates), then
regex extraction over the raw HTML. No headless browser, no JS.

Extracted crawl_data keys:
    name, description, phone, address, founded, coordinates {lat, lng},
    social_links {twitter, facebook, instagram, linkedin}, services, url,
    crawled_at
"""

import re
import json
import time
import logging
from html import unescape
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .errors import CrawlerError, RETRY_CONFIGS, RetryConfig, sanitize_for_logging, with_retry
from .models import CrawlResult, utc_now_iso

logger = logging.getLogger(__name__)

CRAWL_TIMEOUT = 10  # seconds
MAX_HTML_BYTES = 2_000_000
MAX_SERVICES = 10
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_TITLE = re.compile(r"<title[^>]*>(.*?)</title>", re.I | re.S)
_META = re.compile(r"<meta\s+[^>]*>", re.I)
_ATTR = re.compile(r'([a-zA-Z:_-]+)\s*=\s*("([^"]*)"|\'([^\']*)\')')
_JSON_LD = re.compile(r'<script[^>]+type=["\']application/ld\+json["\'][^>]*>(.*?)</script>', re.I | re.S)
_TEL_LINK = re.compile(r'href=["\']tel:([+\d\s().\-]{7,20})["\']', re.I)
_PHONE_TEXT = re.compile(r"\(?\b\d{3}\)?[\s.\-]\d{3}[\s.\-]\d{4}\b")
_HREF = re.compile(r'href=["\']([^"\']+)["\']', re.I)
_HEADING = re.compile(r"<h[23][^>]*>(.*?)</h[23]>", re.I | re.S)
_TAGS = re.compile(r"<[^>]+>")
_FOUNDED_TEXT = re.compile(r"\b(?:since|established|est\.|founded(?: in)?)\s+(1[89]\d{2}|20\d{2})\b", re.I)

SOCIAL_DOMAINS = {
    "twitter": re.compile(r"https?://(?:www\.)?(?:twitter|x)\.com/[^\"'\s?#]+", re.I),
    "facebook": re.compile(r"https?://(?:www\.)?facebook\.com/[^\"'\s?#]+", re.I),
    "instagram": re.compile(r"https?://(?:www\.)?instagram\.com/[^\"'\s?#]+", re.I),
    "linkedin": re.compile(r"https?://(?:www\.)?linkedin\.com/company/[^\"'\s?#]+", re.I),
}

SERVICE_HINTS = ("service", "repair", "install", "cleaning", "treatment", "consult", "care", "maintenance")

_TITLE_SPLIT = re.compile(r"\s+[|\-–—:]\s+")


# =============================================================================
# FETCH
# =============================================================================

def fetch_html(url: str, session: Optional[requests.Session] = None) -> Tuple[str, str]:
    """
    GET a page with an HTTP fallback on SSL errors.

    Returns:
        (html, final_url)

    Raises:
        CrawlerError: retryable for timeouts / connection errors / 5xx.
    """
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    http = session or requests
    headers = {"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"}

    try:
        resp = http.get(url, headers=headers, timeout=CRAWL_TIMEOUT, allow_redirects=True)
    except requests.exceptions.SSLError:
        if not url.startswith("https://"):
            raise CrawlerError(f"SSL error fetching {url}")
        http_url = url.replace("https://", "http://", 1)
        logger.debug("SSL error for %s, trying HTTP fallback", url)
        try:
            resp = http.get(http_url, headers=headers, timeout=CRAWL_TIMEOUT, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise CrawlerError(f"Fetch failed for {http_url}: {sanitize_for_logging(e)}", retryable=True)
    except requests.exceptions.Timeout:
        raise CrawlerError(f"Timed out fetching {url}", code="CRAWL_TIMEOUT", status=504, retryable=True)
    except requests.exceptions.RequestException as e:
        raise CrawlerError(f"Fetch failed for {url}: {sanitize_for_logging(e)}", retryable=True)

    if resp.status_code != 200:
        raise CrawlerError(
            f"{url} returned HTTP {resp.status_code}",
            details={"http_status": resp.status_code},
            retryable=resp.status_code >= 500,
        )
    return resp.text[:MAX_HTML_BYTES], resp.url or url


# =============================================================================
# EXTRACTION
# =============================================================================

def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", unescape(_TAGS.sub(" ", text or ""))).strip()


def _meta_tags(html: str) -> Dict[str, str]:
    """name/property -> content for every <meta> tag."""
    out: Dict[str, str] = {}
    for tag in _META.findall(html):
        attrs = {}
        for m in _ATTR.finditer(tag):
            attrs[m.group(1).lower()] = m.group(3) if m.group(3) is not None else m.group(4)
        key = (attrs.get("property") or attrs.get("name") or "").lower()
        if key and "content" in attrs and key not in out:
            out[key] = unescape(attrs["content"]).strip()
    return out


def _json_ld_nodes(html: str) -> List[Dict]:
    nodes: List[Dict] = []
    for block in _JSON_LD.findall(html):
        try:
            data = json.loads(block.strip())
        except ValueError:
            continue
        stack = data if isinstance(data, list) else [data]
        while stack:
            node = stack.pop(0)
            if not isinstance(node, dict):
                continue
            if isinstance(node.get("@graph"), list):
                stack.extend(node["@graph"])
            nodes.append(node)
    return nodes


def _business_node(nodes: List[Dict]) -> Dict:
    """First JSON-LD node that looks like an organization / local business."""
    for node in nodes:
        types = node.get("@type")
        types = types if isinstance(types, list) else [types]
        for t in types:
            if isinstance(t, str) and (
                t in ("Organization", "LocalBusiness", "Corporation")
                or t.endswith("Business") or t.endswith("Store")
                or t in ("Dentist", "Restaurant", "Plumber", "Electrician", "HVACBusiness", "Attorney")
            ):
                return node
    return {}


def _format_address(address) -> Optional[str]:
    if isinstance(address, str):
        return _clean(address) or None
    if not isinstance(address, dict):
        return None
    street = address.get("streetAddress")
    city = address.get("addressLocality")
    region = address.get("addressRegion")
    postal = address.get("postalCode")
    parts = [p for p in (street, city) if p]
    tail = " ".join(p for p in (region, postal) if p)
    if tail:
        parts.append(tail)
    return ", ".join(str(p).strip() for p in parts) or None


def _coordinates(node: Dict) -> Optional[Dict[str, float]]:
    geo = node.get("geo") or {}
    if not isinstance(geo, dict):
        return None
    try:
        return {"lat": float(geo["latitude"]), "lng": float(geo["longitude"])}
    except (KeyError, TypeError, ValueError):
        return None


def _social_links(html: str, node: Dict) -> Dict[str, str]:
    candidates = list(_HREF.findall(html))
    same_as = node.get("sameAs") or []
    if isinstance(same_as, str):
        same_as = [same_as]
    candidates = [s for s in same_as if isinstance(s, str)] + candidates
    links: Dict[str, str] = {}
    for link in candidates:
        for network, pattern in SOCIAL_DOMAINS.items():
            if network in links:
                continue
            m = pattern.match(link)
            if m and "/share" not in link and "/intent" not in link:
                links[network] = m.group(0).rstrip("/")
    return links


def _services(html: str, node: Dict) -> List[str]:
    services: List[str] = []
    catalog = node.get("hasOfferCatalog") or {}
    for item in (catalog.get("itemListElement") if isinstance(catalog, dict) else None) or []:
        offered = item.get("itemOffered") if isinstance(item, dict) else None
        name = (offered or {}).get("name") if isinstance(offered, dict) else None
        if name:
            services.append(_clean(name))
    for heading in _HEADING.findall(html):
        text = _clean(heading)
        if 3 <= len(text) <= 60 and any(h in text.lower() for h in SERVICE_HINTS):
            services.append(text)
    return list(dict.fromkeys(services))[:MAX_SERVICES]


def _name_from_title(title: str) -> Optional[str]:
    if not title:
        return None
    return _TITLE_SPLIT.split(title)[0].strip() or None


def extract_business_data(html: str, url: str) -> Dict:
    """Structured business fields from a page's HTML."""
    meta = _meta_tags(html)
    node = _business_node(_json_ld_nodes(html))

    title_match = _TITLE.search(html)
    title = _clean(title_match.group(1)) if title_match else ""

    name = node.get("name") if isinstance(node.get("name"), str) else None
    name = name or meta.get("og:site_name") or _name_from_title(title)

    description = (
        (node.get("description") if isinstance(node.get("description"), str) else None)
        or meta.get("description")
        or meta.get("og:description")
    )

    phone = node.get("telephone") if isinstance(node.get("telephone"), str) else None
    if not phone:
        tel = _TEL_LINK.search(html)
        if tel:
            phone = tel.group(1).strip()
    if not phone:
        text_phone = _PHONE_TEXT.search(_clean(html))
        phone = text_phone.group(0) if text_phone else None

    founded = node.get("foundingDate") or node.get("foundingYear")
    if not founded:
        m = _FOUNDED_TEXT.search(_clean(html))
        founded = m.group(1) if m else None

    return {
        "name": _clean(name) if name else None,
        "description": _clean(description) if description else None,
        "phone": phone,
        "address": _format_address(node.get("address")),
        "founded": str(founded) if founded else None,
        "coordinates": _coordinates(node),
        "social_links": _social_links(html, node),
        "services": _services(html, node),
        "url": url,
    }


# =============================================================================
# CRAWLER
# =============================================================================

class HttpCrawler:
    """Default crawler: requests + regex extraction, with retries."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        retry_config: RetryConfig = RETRY_CONFIGS["crawler"],
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.retry_config = retry_config
        self.sleep = sleep

    def crawl(self, url: str, job_id: Optional[int] = None) -> CrawlResult:
        if not url:
            return CrawlResult(success=False, error="Business has no website URL")
        try:
            html, final_url = with_retry(
                lambda: fetch_html(url, self.session),
                self.retry_config,
                operation=f"crawl {url}",
                sleep=self.sleep,
            )
        except CrawlerError as e:
            logger.warning("Crawl failed (job %s): %s", job_id, e.message)
            return CrawlResult(success=False, error=e.message)

        data = extract_business_data(html, final_url)
        data["crawled_at"] = utc_now_iso()
        logger.info(
            "Crawled %s (job %s): name=%r phone=%s socials=%d services=%d",
            final_url, job_id, data.get("name"), bool(data.get("phone")),
            len(data["social_links"]), len(data["services"]),
        )
        return CrawlResult(success=True, data=data)
