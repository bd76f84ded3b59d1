"""Website identity normalization used as the company dedup key."""

import logging
import re
from typing import Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.I)


def normalize_website(url: Optional[str]) -> str:
    """Canonical identity of a website.

    Lowercases the host and strips the protocol, a leading ``www.``, the query
    string, the fragment, and trailing slashes. Two URLs are the same site iff
    their identities are equal. Never raises: empty input gives ``""`` and
    input that ``urlsplit`` rejects is trimmed as plain text instead.
    """
    if not url:
        return ""

    text = str(url).strip()
    if not text:
        return ""

    try:
        return _normalize_parsed(text)
    except ValueError:
        logger.debug(f"Unparsable website {text!r}, falling back to text trimming")
        return _normalize_text(text)


def _normalize_parsed(text: str) -> str:
    # Bare hosts have no scheme; give urlsplit one so the host lands in netloc
    candidate = text if _SCHEME_RE.match(text) else f"http://{text}"
    parts = urlsplit(candidate)

    host = parts.netloc.lower()
    if not host:
        return _normalize_text(text)
    host = _strip_www(host)

    path = parts.path.rstrip("/")
    return f"{host}{path}"


def _normalize_text(text: str) -> str:
    """Best-effort trimming that mirrors the parsed rules on raw text."""
    text = _SCHEME_RE.sub("", text.strip())
    text = text.split("#", 1)[0].split("?", 1)[0]

    host, sep, path = text.partition("/")
    host = _strip_www(host.lower())
    return f"{host}{sep}{path}".rstrip("/")


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def same_site(first: Optional[str], second: Optional[str]) -> bool:
    """True when both URLs normalize to the same non-empty identity."""
    first_identity = normalize_website(first)
    return bool(first_identity) and first_identity == normalize_website(second)
