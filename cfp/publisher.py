"""
Wikibase publishing client (MediaWiki Action API).

Per call: fresh requests.Session -> login token -> action=login ->
CSRF token -> label search (dedup) -> wbeditentity. The session is closed
when the call returns, so cookies never leak between calls.

Remote error bodies from wbeditentity come back as PublishResult(success=False);
authentication, configuration and transport failures raise WikidataError.
"""

import os
import json
import logging
from typing import Callable, Dict, Optional

import requests

from .entity_builder import entity_to_api_payload, validate_entity
from .errors import WikidataError, sanitize_for_logging
from .models import Location, PublishResult

logger = logging.getLogger(__name__)

API_URLS = {
    "test": "https://test.wikidata.org/w/api.php",
    "production": "https://www.wikidata.org/w/api.php",
}

REQUEST_TIMEOUT = 30  # seconds
USER_AGENT = "CFPEngine/1.0 (knowledge-base publisher; contact via project maintainers)"
EDIT_SUMMARY = "Created via CFP engine"
UPDATE_SUMMARY = "Updated via CFP engine"
SEARCH_LIMIT = 5


class WikidataPublisher:
    """
    Publishes entity documents to test or production Wikidata.

    Attributes:
        username / password: Bot credentials (env WIKIDATA_BOT_USERNAME / WIKIDATA_BOT_PASSWORD)
        session_factory: Builds a new session per call (tests inject fakes)
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.username = username or os.getenv("WIKIDATA_BOT_USERNAME")
        self.password = password or os.getenv("WIKIDATA_BOT_PASSWORD")
        self.session_factory = session_factory

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def publish_entity(
        self,
        entity: Dict,
        target: str = "test",
        dry_run: bool = False,
        location: Optional[Location] = None,
    ) -> PublishResult:
        """
        Create the entity, or update the existing item with the same label.

        Raises:
            WikidataError: INVALID_ENTITY before any network call; auth,
                config or transport failures.
        """
        api_url = self._api_url(target)
        self._require_valid(entity)
        label = entity["labels"]["en"]["value"]

        session = self.session_factory()
        try:
            csrf_token = self._authenticate(session, api_url)
            existing = self._find_existing(session, api_url, label, location)
            if existing:
                logger.info("Found existing entity %s for %r; updating instead of creating", existing, label)
            if dry_run:
                logger.info("[DRY RUN] Would %s entity %r on %s", "update" if existing else "create", label, target)
                return PublishResult(success=True, qid=existing, entity_id=existing, published_to=target, dry_run=True)
            return self._submit(session, api_url, csrf_token, entity, target, qid=existing)
        finally:
            session.close()

    def update_entity(
        self,
        qid: str,
        entity: Dict,
        target: str = "test",
        dry_run: bool = False,
        preserve_terms: bool = False,
    ) -> PublishResult:
        """Edit an existing item. preserve_terms leaves its labels/descriptions alone."""
        api_url = self._api_url(target)
        self._require_valid(entity)
        if not qid:
            raise WikidataError("update_entity requires a QID", code="INVALID_ENTITY", status=400)

        session = self.session_factory()
        try:
            csrf_token = self._authenticate(session, api_url)
            if dry_run:
                logger.info("[DRY RUN] Would update %s on %s", qid, target)
                return PublishResult(success=True, qid=qid, entity_id=qid, published_to=target, dry_run=True)
            return self._submit(
                session, api_url, csrf_token, entity, target, qid=qid, preserve_terms=preserve_terms
            )
        finally:
            session.close()

    def find_existing_entity(self, label: str, target: str = "test",
                             location: Optional[Location] = None) -> Optional[str]:
        """Anonymous label search; QID of an exact (case-insensitive) match or None."""
        api_url = self._api_url(target)
        session = self.session_factory()
        try:
            return self._find_existing(session, api_url, label, location)
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Protocol steps
    # -------------------------------------------------------------------------

    def _authenticate(self, session: requests.Session, api_url: str) -> str:
        """Log in on this session and return a CSRF token."""
        if not self.username or not self.password:
            raise WikidataError(
                "WIKIDATA_BOT_USERNAME / WIKIDATA_BOT_PASSWORD not set",
                code="WIKIDATA_NOT_CONFIGURED",
                status=500,
            )

        data = self._request(session, "GET", api_url, params={
            "action": "query", "meta": "tokens", "type": "login", "format": "json",
        })
        login_token = ((data.get("query") or {}).get("tokens") or {}).get("logintoken")
        if not login_token:
            raise WikidataError("No login token returned", code="WIKIDATA_AUTH_FAILED", status=401)

        result = self._login(session, api_url, login_token)
        if result.get("result") == "NeedToken" and result.get("token"):
            result = self._login(session, api_url, result["token"])
        if result.get("result") != "Success":
            reason = result.get("reason") or result.get("result") or "unknown"
            raise WikidataError(
                f"Login failed: {reason}",
                code="WIKIDATA_AUTH_FAILED",
                status=401,
            )
        logger.debug("Logged in to %s as %s", api_url, result.get("lgusername") or self.username)

        data = self._request(session, "GET", api_url, params={
            "action": "query", "meta": "tokens", "type": "csrf", "format": "json",
        })
        csrf_token = ((data.get("query") or {}).get("tokens") or {}).get("csrftoken")
        # "+\\" is the anonymous token: the login did not stick
        if not csrf_token or csrf_token == "+\\":
            raise WikidataError("No CSRF token returned", code="WIKIDATA_AUTH_FAILED", status=401)
        return csrf_token

    def _login(self, session: requests.Session, api_url: str, token: str) -> Dict:
        data = self._request(session, "POST", api_url, data={
            "action": "login",
            "lgname": self.username,
            "lgpassword": self.password,
            "lgtoken": token,
            "format": "json",
        })
        return data.get("login") or {}

    def _find_existing(self, session: requests.Session, api_url: str, label: str,
                       location: Optional[Location] = None) -> Optional[str]:
        data = self._request(session, "GET", api_url, params={
            "action": "wbsearchentities",
            "search": label,
            "language": "en",
            "type": "item",
            "limit": SEARCH_LIMIT,
            "format": "json",
        })
        wanted = label.strip().lower()
        matches = [
            hit for hit in data.get("search") or []
            if str(hit.get("label") or "").strip().lower() == wanted and hit.get("id")
        ]
        if not matches:
            return None
        if location and location.city:
            city = location.city.lower()
            for hit in matches:
                if city in str(hit.get("description") or "").lower():
                    return hit["id"]
        return matches[0]["id"]

    def _submit(self, session: requests.Session, api_url: str, csrf_token: str, entity: Dict,
                target: str, qid: Optional[str] = None, preserve_terms: bool = False) -> PublishResult:
        payload = entity_to_api_payload(entity, preserve_terms=preserve_terms and bool(qid))
        form = {
            "action": "wbeditentity",
            "data": json.dumps(payload),
            "token": csrf_token,
            "summary": UPDATE_SUMMARY if qid else EDIT_SUMMARY,
            "bot": "1",
            "format": "json",
        }
        if qid:
            form["id"] = qid
        else:
            form["new"] = "item"

        data = self._request(session, "POST", api_url, data=form)
        if data.get("error"):
            err = data["error"]
            message = f"{err.get('code', 'unknown')}: {err.get('info', '')}".strip()
            logger.warning("wbeditentity rejected on %s: %s", target, message)
            return PublishResult(success=False, qid=qid, entity_id=qid, published_to=target, error=message)

        new_id = (data.get("entity") or {}).get("id")
        if data.get("success") != 1 or not new_id:
            return PublishResult(
                success=False, qid=qid, entity_id=qid, published_to=target,
                error="Unexpected wbeditentity response",
            )
        logger.info("%s entity %s on %s", "Updated" if qid else "Created", new_id, target)
        return PublishResult(success=True, qid=new_id, entity_id=new_id, published_to=target)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _request(self, session: requests.Session, method: str, api_url: str,
                 params: Optional[Dict] = None, data: Optional[Dict] = None) -> Dict:
        try:
            resp = session.request(
                method,
                api_url,
                params=params,
                data=data,
                headers={"User-Agent": USER_AGENT},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.exceptions.Timeout as e:
            raise WikidataError(
                f"Wikidata request timed out: {sanitize_for_logging(e)}",
                code="WIKIDATA_NETWORK_ERROR",
                status=504,
                retryable=True,
            )
        except requests.exceptions.RequestException as e:
            raise WikidataError(
                f"Wikidata request failed: {sanitize_for_logging(e)}",
                code="WIKIDATA_NETWORK_ERROR",
                status=502,
                retryable=True,
            )
        if resp.status_code != 200:
            raise WikidataError(
                f"Wikidata returned HTTP {resp.status_code}",
                code="WIKIDATA_NETWORK_ERROR",
                status=502,
                details={"http_status": resp.status_code},
                retryable=resp.status_code >= 500,
            )
        try:
            return resp.json()
        except ValueError:
            raise WikidataError("Wikidata returned a non-JSON body", code="WIKIDATA_NETWORK_ERROR", status=502)

    @staticmethod
    def _api_url(target: str) -> str:
        if target not in API_URLS:
            raise WikidataError(f"Unknown publish target: {target}", code="INVALID_TARGET", status=400)
        return API_URLS[target]

    @staticmethod
    def _require_valid(entity: Dict) -> None:
        if not validate_entity(entity):
            raise WikidataError(
                "Entity requires a non-empty English label and description",
                code="INVALID_ENTITY",
                status=400,
            )
