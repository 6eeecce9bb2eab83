from __future__ import annotations

from urllib.parse import urlparse

HTTP_PREFIXES = ("http://", "https://")

# Characters a browser URL parser refuses in a host.
_FORBIDDEN_HOST_CHARS = set(" \t\r\n<>\"{}|\\^`%")


def has_http_scheme(value: str) -> bool:
    return value.lower().startswith(HTTP_PREFIXES)


def normalize_url(url: str) -> str:
    """Prefix `https://` unless the value already carries an http(s) scheme.

    An existing scheme is kept but lower-cased: "HTTPS://a.com" -> "https://a.com".
    """
    if has_http_scheme(url):
        scheme, rest = url.split("://", 1)
        return f"{scheme.lower()}://{rest}"
    return f"https://{url}"


def is_valid_url(value: str) -> bool:
    """True when `value` (with or without scheme) parses as a URL whose host has a dot.

    Bare hostnames such as "localhost" are rejected.
    """
    if not value or not isinstance(value, str):
        return False
    candidate = value if has_http_scheme(value) else f"https://{value}"
    try:
        p = urlparse(candidate)
        host = p.hostname
        # Accessing .port validates it; bad ports raise ValueError.
        _ = p.port
    except ValueError:
        return False
    if p.scheme.lower() not in ("http", "https") or not host:
        return False
    if any(ch in _FORBIDDEN_HOST_CHARS for ch in host):
        return False
    return "." in host


def domain_of(url: str) -> str:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return url
    if not host:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host


def derive_title(url: str) -> str:
    """Fallback display title from the url's host: "https://my-cool-site.com" -> "My cool site"."""
    label = domain_of(url).split(".")[0]
    label = label.replace("-", " ").strip()
    if not label:
        return url
    return label[0].upper() + label[1:]


def origin_of(url: str) -> str | None:
    try:
        p = urlparse(url)
        _ = p.port
    except ValueError:
        return None
    if not p.scheme or not p.netloc:
        return None
    return f"{p.scheme}://{p.netloc}"
