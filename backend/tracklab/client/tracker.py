"""
Tracker client - the SDK side of the wire contract.

Signs every request, runs A/B tests with sticky sessions, logs impressions
once per session window and reports page events. Every network failure is
caught and logged: a visitor whose request fails simply sees the original
page.
"""
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, MutableMapping, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import structlog

from tracklab.client.session_store import SessionStore
from tracklab.services.signature import sign_payload

logger = structlog.get_logger()

USER_ID_KEY = "tracker_user_id"
VISIT_COUNT_KEY = "tracker_visit_count"
DEFAULT_SESSION_DURATION = 720


@dataclass(frozen=True)
class PageView:
    """What a browser knows about the page it is rendering."""
    url: str
    user_agent: str = ""
    language: str = "unknown"
    referrer: str = ""


@dataclass(frozen=True)
class PageSwitches:
    """URL query switches understood by the SDK.

    gh_void=0 disables tracking and impression logs; gh_void=1 also skips
    A/B tests. gh_id + gh_creative force one creative of one test.
    """
    skip_tracking: bool = False
    skip_abtest: bool = False
    force_abtest_id: Optional[str] = None
    force_creative: Optional[str] = None

    @property
    def force_mode(self) -> bool:
        return bool(self.force_abtest_id) and self.force_creative is not None

    @classmethod
    def from_url(cls, url: str) -> "PageSwitches":
        params = parse_qs(urlsplit(url).query, keep_blank_values=True)
        void = params.get("gh_void", [None])[0]
        return cls(
            skip_tracking=void in ("0", "1"),
            skip_abtest=void == "1",
            force_abtest_id=params.get("gh_id", [None])[0],
            force_creative=params.get("gh_creative", [None])[0],
        )


@dataclass(frozen=True)
class Assignment:
    """A creative the client should apply on this page view."""
    abtest_id: str
    abtest_name: Optional[str]
    creative: Dict[str, Any]
    from_cache: bool = False
    forced: bool = False


class TrackerClient:
    """
    Async client for one project.

    Args:
        project_id: Project the SDK was issued for
        api_key: The project's key; credential and signing secret
        server_url: Base URL of the tracking server
        storage: Persistent string mapping for visitor id, visit count and
            session entries (a plain dict when omitted)
        http_client: Pre-built httpx.AsyncClient (tests pass a MockTransport)
        clock: Returns epoch milliseconds
    """

    def __init__(
        self,
        project_id: str,
        api_key: str,
        server_url: str = "",
        storage: Optional[MutableMapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], int]] = None,
        timeout: float = 5.0
    ):
        self.project_id = project_id
        self.api_key = api_key
        self.storage = storage if storage is not None else {}
        self.sessions = SessionStore(self.storage)
        self.clock = clock or (lambda: int(time.time() * 1000))
        self._client = http_client or httpx.AsyncClient(
            base_url=server_url.rstrip("/"),
            timeout=timeout
        )

    async def close(self):
        await self._client.aclose()

    # Visitor identity

    def _ensure_user_id(self) -> bool:
        """Create the visitor id on first contact. Returns True if it was new."""
        if self.storage.get(USER_ID_KEY):
            return False
        self.storage[USER_ID_KEY] = f"user_{uuid.uuid4().hex[:9]}_{self.clock()}"
        return True

    @property
    def user_id(self) -> str:
        self._ensure_user_id()
        return self.storage[USER_ID_KEY]

    @property
    def visit_count(self) -> int:
        try:
            return int(self.storage.get(VISIT_COUNT_KEY) or 0)
        except ValueError:
            return 0

    def _increment_visit_count(self) -> int:
        count = self.visit_count + 1
        self.storage[VISIT_COUNT_KEY] = str(count)
        return count

    # Transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        signed = sign_payload(payload, self.api_key, timestamp=self.clock())
        try:
            response = await self._client.post(path, json=signed)
        except httpx.HTTPError as e:
            logger.warning("tracker_request_failed", path=path, error=str(e))
            return None
        if response.status_code >= 400:
            logger.warning("tracker_request_rejected", path=path, status_code=response.status_code)
            return None
        try:
            return response.json()
        except ValueError:
            return None

    # A/B tests

    async def execute(self, page: PageView) -> Optional[Dict[str, Any]]:
        """Ask the server which test and creative apply to this page view."""
        return await self._post("/api/abtests/execute", {
            "projectId": self.project_id,
            "url": page.url,
            "userAgent": page.user_agent,
            "language": page.language or "unknown",
            "visitCount": self.visit_count,
            "referrer": page.referrer,
        })

    async def log_impression(self, abtest_id: str, creative: Dict[str, Any], page: PageView) -> bool:
        result = await self._post("/api/abtests/log-impression", {
            "projectId": self.project_id,
            "apiKey": self.api_key,
            "abtestId": abtest_id,
            "userId": self.user_id,
            "creativeIndex": creative.get("index"),
            "creativeName": creative.get("name") or "",
            "isOriginal": bool(creative.get("isOriginal")),
            "url": page.url,
            "userAgent": page.user_agent,
            "language": page.language or "unknown",
        })
        return result is not None

    async def run_abtest(self, page: PageView, record: bool = True) -> Optional[Assignment]:
        """
        Execute, then honour the sticky session.

        A valid cached creative wins over the fresh server pick and is not
        logged again. Otherwise the server pick is cached for the test's
        sessionDuration and exactly one impression is logged.
        """
        result = await self.execute(page)
        if not result or not result.get("matched") or not result.get("abtestId"):
            return None

        abtest_id = str(result["abtestId"])
        now = self.clock()
        cached = self.sessions.get(abtest_id, now)
        if cached is not None:
            return Assignment(abtest_id, result.get("abtestName"), cached, from_cache=True)

        creative = result.get("creative") or {}
        self.sessions.put(abtest_id, creative, result.get("sessionDuration") or DEFAULT_SESSION_DURATION, now)
        logger.info("abtest_new_creative", abtest_id=abtest_id, creative_index=creative.get("index"))

        if record:
            await self.log_impression(abtest_id, creative, page)
        return Assignment(abtest_id, result.get("abtestName"), creative)

    async def run_forced(self, page: PageView, abtest_id: str, creative_index, record: bool = True) -> Optional[Assignment]:
        """Preview one creative; bypasses targeting and the session cache."""
        try:
            response = await self._client.get(f"/api/abtests/{abtest_id}/creative/{creative_index}")
        except httpx.HTTPError as e:
            logger.warning("tracker_request_failed", path="creative", error=str(e))
            return None
        if response.status_code != 200:
            logger.warning("forced_creative_not_found", abtest_id=abtest_id, creative_index=creative_index)
            return None

        try:
            result = response.json()
        except ValueError:
            logger.warning("forced_creative_malformed", abtest_id=abtest_id, creative_index=creative_index)
            return None
        if not isinstance(result, dict) or not result.get("abtestId"):
            logger.warning("forced_creative_malformed", abtest_id=abtest_id, creative_index=creative_index)
            return None

        resolved_id = str(result["abtestId"])
        creative = result.get("creative") or {}
        if record:
            await self.log_impression(resolved_id, creative, page)
        return Assignment(resolved_id, result.get("abtestName"), creative, forced=True)

    # Events

    async def track(self, event: str, page: PageView, exit: bool = False) -> bool:
        payload = {
            "projectId": self.project_id,
            "apiKey": self.api_key,
            "userId": self.user_id,
            "url": page.url,
            "event": event,
            "language": page.language or None,
        }
        if exit:
            payload["exitTimestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.clock() / 1000))
        return await self._post("/track", payload) is not None

    async def page_view(self, page: PageView) -> Optional[Assignment]:
        """
        Everything the SDK does when a page loads: count the visit, report
        first_view / page_view, and run the A/B test (or the forced preview).
        """
        switches = PageSwitches.from_url(page.url)
        is_first_visit = self._ensure_user_id()
        self._increment_visit_count()

        assignment = None
        if switches.force_mode:
            assignment = await self.run_forced(
                page,
                switches.force_abtest_id,
                switches.force_creative,
                record=not switches.skip_tracking
            )
        elif not switches.skip_abtest:
            assignment = await self.run_abtest(page, record=not switches.skip_tracking)

        if not switches.skip_tracking:
            await self.track("first_view" if is_first_visit else "page_view", page)

        return assignment
