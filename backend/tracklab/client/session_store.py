"""Sticky A/B assignments kept on the visitor's side.

The storage is any string-to-string mapping (a dict, a shelf, a browser
localStorage bridge). One entry per test, ``abtest_session_<abtestId>``,
holds ``{"creative": {...}, "expiresAt": <epoch ms>}``.
"""
import json
from typing import Any, Dict, MutableMapping, Optional

import structlog

logger = structlog.get_logger()

SESSION_KEY_PREFIX = "abtest_session_"


class SessionStore:
    """Per-test creative cache with an expiry."""

    def __init__(self, storage: Optional[MutableMapping[str, str]] = None):
        self.storage = storage if storage is not None else {}

    @staticmethod
    def key(abtest_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{abtest_id}"

    def get_entry(self, abtest_id: str) -> Optional[Dict[str, Any]]:
        raw = self.storage.get(self.key(abtest_id))
        if not raw:
            return None
        try:
            entry = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning("session_entry_corrupt", abtest_id=abtest_id, error=str(e))
            return None
        return entry if isinstance(entry, dict) else None

    def get(self, abtest_id: str, now_ms: int) -> Optional[Dict[str, Any]]:
        """The cached creative while ``now < expiresAt``, else None."""
        entry = self.get_entry(abtest_id)
        if not entry:
            return None
        expires_at = entry.get("expiresAt")
        if not isinstance(expires_at, (int, float)) or now_ms >= expires_at:
            return None
        return entry.get("creative")

    def put(self, abtest_id: str, creative: Dict[str, Any], session_duration: int, now_ms: int) -> int:
        """Cache a fresh assignment for `session_duration` minutes. Returns expiresAt."""
        expires_at = now_ms + int(session_duration) * 60 * 1000
        self.storage[self.key(abtest_id)] = json.dumps({
            "creative": creative,
            "expiresAt": expires_at,
        })
        return expires_at

    def clear(self, abtest_id: str) -> None:
        self.storage.pop(self.key(abtest_id), None)
