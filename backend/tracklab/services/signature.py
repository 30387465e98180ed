"""HMAC request signing for SDK → server communication.

The SDK signs every outbound request with HMAC-SHA256 over
``<timestamp>.<projectId>.<url>`` keyed by the project's API key, and sends
the result as ``_sig`` next to ``_ts`` (epoch milliseconds). The server
re-derives the signature from the stored key and rejects requests whose
timestamp falls outside the replay window.

Signing adds integrity and expiry, not confidentiality: the key is the same
credential the SDK already holds.
"""
import enum
import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

if TYPE_CHECKING:
    from tracklab.models.project import Project

DEFAULT_WINDOW_MS = 300_000

REQUIRED_FIELDS = ("projectId", "url", "_ts", "_sig")


class SignatureFailure(str, enum.Enum):
    """Why a signed request was rejected."""
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID_PROJECT = "invalid_project"
    INVALID = "invalid"

    @property
    def code(self) -> str:
        return _FAILURE_CODES[self]


_FAILURE_CODES = {
    SignatureFailure.MISSING: "SIGNATURE_MISSING",
    SignatureFailure.EXPIRED: "SIGNATURE_EXPIRED",
    SignatureFailure.INVALID_PROJECT: "SIGNATURE_INVALID",
    SignatureFailure.INVALID: "SIGNATURE_INVALID",
}

_FAILURE_MESSAGES = {
    SignatureFailure.MISSING: "Missing signature fields",
    SignatureFailure.EXPIRED: "Request timestamp out of allowed window",
    SignatureFailure.INVALID_PROJECT: "Invalid project",
    SignatureFailure.INVALID: "Invalid request signature",
}


class SignatureError(Exception):
    """Raised when a signed request fails verification."""

    def __init__(self, failure: SignatureFailure):
        super().__init__(_FAILURE_MESSAGES[failure])
        self.failure = failure

    @property
    def code(self) -> str:
        return self.failure.code


@dataclass(frozen=True)
class VerifiedRequest:
    """A request whose signature checked out, with its resolved project."""
    project: "Project"
    timestamp: int


def now_ms() -> int:
    return int(time.time() * 1000)


def build_signature_payload(timestamp, project_id, url) -> str:
    """Canonical payload. SDK and server must agree on this exactly."""
    return f"{timestamp}.{project_id}.{url}"


def compute_signature(timestamp, project_id, url, secret: str) -> str:
    """HMAC-SHA256 hex digest of the canonical payload."""
    payload = build_signature_payload(timestamp, project_id, url)
    return hmac.new(
        secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def sign_payload(payload: Mapping[str, Any], secret: str, timestamp: Optional[int] = None) -> Dict[str, Any]:
    """Return a copy of `payload` carrying ``_ts`` and ``_sig``."""
    ts = now_ms() if timestamp is None else int(timestamp)
    signed = dict(payload)
    signed["_ts"] = ts
    signed["_sig"] = compute_signature(ts, payload["projectId"], payload["url"], secret)
    return signed


def parse_timestamp(value) -> Optional[int]:
    """Parse ``_ts`` as integer milliseconds, None if it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def verify(
    payload: Mapping[str, Any],
    lookup_project: Callable[[str], Optional["Project"]],
    *,
    now: Optional[int] = None,
    window_ms: int = DEFAULT_WINDOW_MS
) -> VerifiedRequest:
    """
    Verify a signed SDK payload.

    Args:
        payload: Decoded request body with projectId, url, _ts and _sig
        lookup_project: Resolves a project id to a Project (or None)
        now: Server time in epoch milliseconds; authoritative for the window
        window_ms: Maximum allowed |now - _ts|

    Returns:
        VerifiedRequest carrying the resolved project

    Raises:
        SignatureError: with the failure kind of the first check that failed
    """
    if any(not payload.get(field) for field in REQUIRED_FIELDS):
        raise SignatureError(SignatureFailure.MISSING)

    current = now_ms() if now is None else now
    ts = parse_timestamp(payload["_ts"])
    if ts is None or abs(current - ts) > window_ms:
        raise SignatureError(SignatureFailure.EXPIRED)

    project_id = str(payload["projectId"])
    project = lookup_project(project_id)
    if project is None or not project.api_key:
        raise SignatureError(SignatureFailure.INVALID_PROJECT)

    expected = compute_signature(ts, project_id, payload["url"], project.api_key)
    sig = payload["_sig"]
    if not isinstance(sig, str) or len(sig) != len(expected):
        raise SignatureError(SignatureFailure.INVALID)
    if not hmac.compare_digest(sig.encode("utf-8"), expected.encode("utf-8")):
        raise SignatureError(SignatureFailure.INVALID)

    return VerifiedRequest(project=project, timestamp=ts)
