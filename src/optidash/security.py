"""Security helpers shared by the clients and the dispatcher."""

from __future__ import annotations

import datetime as _dt
from email.utils import parsedate_to_datetime
from typing import Mapping
from urllib.parse import urlparse


SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
}


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with credentials redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def redact_proxy(proxy: str | None) -> str | None:
    """Strip userinfo from a proxy URL before it reaches a log line."""
    if not proxy:
        return proxy
    parsed = urlparse(proxy)
    if parsed.username is None and parsed.password is None:
        return proxy
    host = parsed.hostname or ""
    if parsed.port:
        host = f"{host}:{parsed.port}"
    return parsed._replace(netloc=f"[REDACTED]@{host}").geturl()


LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def validate_base_url(url: str) -> None:
    """Require HTTPS for the API base URL; plain HTTP is only accepted for loopback test servers.

    The API key travels as basic auth on every request.
    """
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError("base_url must include scheme and host")
    if parsed.scheme == "https":
        return
    if parsed.scheme == "http" and parsed.hostname.lower() in LOOPBACK_HOSTS:
        return
    raise ValueError(f"Non-HTTPS base_url is only allowed for loopback hosts: {url}")


def parse_retry_after(raw: str | None) -> float | None:
    """Seconds to wait from a 429 `Retry-After` header (delta-seconds or HTTP-date)."""
    if not raw or not raw.strip():
        return None
    raw = raw.strip()
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(raw)
    except (ValueError, TypeError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=_dt.timezone.utc)
    return max(0.0, (when - _dt.datetime.now(_dt.timezone.utc)).total_seconds())
