"""Per-project origin allow-listing for SDK-facing endpoints.

Each project carries an ordered ``allowed_origins`` list of exact origins
(``https://shop.example.com``) or wildcard sub-domain entries
(``https://*.example.com``). Projects without a list fall back to the global
``ALLOWED_ORIGINS`` setting; when that is empty too, every origin is allowed
outside production and none inside it.
"""
import re
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

from tracklab.models.project import Project

_WILDCARD_RE = re.compile(r"^(https?)://\*\.(.+)$", re.IGNORECASE)
_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_origin(raw: Optional[str]) -> str:
    """Trim, strip trailing slashes and lowercase an origin string."""
    if not raw or not isinstance(raw, str):
        return ""
    return raw.strip().rstrip("/").lower()


def _split_origin(origin: str):
    try:
        parts = urlsplit(origin)
        return parts.scheme, (parts.hostname or "")
    except ValueError:
        return "", ""


def origin_matches_entry(origin: str, entry: str) -> bool:
    """Match a normalized request origin against one allow-list entry.

    Wildcard entries match the bare domain and any sub-domain, but only for
    the scheme written in the entry: ``https://*.example.com`` does not admit
    ``http://sub.example.com``.
    """
    normalized_entry = normalize_origin(entry)
    if not normalized_entry:
        return False
    if origin == normalized_entry:
        return True

    wildcard = _WILDCARD_RE.match(normalized_entry)
    if not wildcard:
        return False

    scheme, domain = wildcard.group(1), wildcard.group(2)
    origin_scheme, host = _split_origin(origin)
    if not host or origin_scheme != scheme:
        return False
    return host == domain or host.endswith("." + domain)


def _any_match(origin: str, entries: Iterable[str]) -> bool:
    return any(origin_matches_entry(origin, entry) for entry in entries)


def is_allowed(
    origin: Optional[str],
    project: Optional[Project],
    *,
    global_origins: Sequence[str] = (),
    production: bool = False
) -> bool:
    """
    Decide whether a browser origin may call SDK endpoints for a project.

    Args:
        origin: Value of the Origin header, None when absent
        project: Resolved project, or None when unknown
        global_origins: Fallback allow-list from configuration
        production: Whether this deployment is production

    Returns:
        True if the origin is permitted. Callers log rejections.
    """
    if not origin:
        # Same-origin or server-to-server
        return True

    normalized = normalize_origin(origin)

    project_origins = list(project.allowed_origins or []) if project is not None else []
    if project_origins:
        return _any_match(normalized, project_origins)

    if global_origins:
        return _any_match(normalized, global_origins)

    return not production


def is_valid_origin_entry(entry) -> bool:
    """Validate an allow-list entry before it is stored on a project."""
    if not isinstance(entry, str) or not entry.strip():
        return False
    entry = entry.strip()

    wildcard = _WILDCARD_RE.match(entry)
    if wildcard:
        return bool(_DOMAIN_RE.match(wildcard.group(2)))
    if "*" in entry:
        return False

    scheme, host = _split_origin(entry)
    return scheme in ("http", "https") and bool(host)
