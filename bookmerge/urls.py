"""
URL canonicalization for duplicate detection.

Normalization never touches the network. Well-formed URLs get their scheme
and host lowercased, default ports and fragments dropped, a trailing slash
stripped from the path and query parameters sorted by key. Anything that
cannot be parsed falls back to a trimmed, lowercased copy of the input.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit, urlunsplit

from bookmerge.constants import DEFAULT_PORTS
from bookmerge.errors import MalformedUrlError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UrlNormalization:
    """Normalized URL together with the parts it was rebuilt from."""
    original: str
    normalized: str
    domain: str = ''
    path: str = ''
    query_params: Dict[str, str] = field(default_factory=dict)
    fragment: str = ''


def parse_url(url: str) -> SplitResult:
    """
    Split a URL, insisting on a scheme and a host.

    Raises:
        MalformedUrlError: If the URL has no scheme or host, or a bad port
    """
    if not isinstance(url, str):
        raise MalformedUrlError(f"URL must be a string, got {type(url).__name__}")

    text = url.strip()
    try:
        parts = urlsplit(text)
        # Accessing .port validates it
        parts.port
    except ValueError as e:
        raise MalformedUrlError(f"Cannot parse URL {url!r}: {e}") from e

    if not parts.scheme or not parts.hostname:
        raise MalformedUrlError(f"URL needs a scheme and host: {url!r}")

    return parts


def _fallback(url) -> str:
    return str(url or '').strip().lower()


def _netloc(parts: SplitResult) -> str:
    host = parts.hostname
    if ':' in host:
        host = f"[{host}]"

    port = parts.port
    if port is not None and DEFAULT_PORTS.get(parts.scheme) != port:
        host = f"{host}:{port}"

    if '@' in parts.netloc:
        userinfo = parts.netloc.rsplit('@', 1)[0]
        host = f"{userinfo}@{host}"

    return host


def _path(path: str) -> str:
    if not path:
        return '/'
    if len(path) > 1 and path.endswith('/'):
        return path[:-1]
    return path


def _sorted_query(query: str) -> List[Tuple[str, str]]:
    params = parse_qsl(query, keep_blank_values=True)
    # sorted() is stable, so repeated keys keep their relative order
    return sorted(params, key=lambda kv: kv[0])


def normalize_url(url: str) -> str:
    """
    Canonicalize a URL for equivalence comparison.

    Args:
        url: Raw URL string

    Returns:
        Normalized URL string (never raises)

    Example:
        >>> normalize_url("HTTPS://Example.com:443/path/?b=2&a=1#top")
        'https://example.com/path?a=1&b=2'
    """
    return normalize_url_parts(url).normalized


def normalize_url_parts(url: str) -> UrlNormalization:
    """
    Normalize a URL and report the components it was rebuilt from.

    Falls back to the lowercased raw string (with empty components) when the
    URL cannot be parsed.
    """
    try:
        parts = parse_url(url)
    except MalformedUrlError as e:
        logger.debug(f"Falling back to string normalization: {e}")
        return UrlNormalization(original=url, normalized=_fallback(url))

    path = _path(parts.path)
    query_pairs = _sorted_query(parts.query)
    normalized = urlunsplit((
        parts.scheme,
        _netloc(parts),
        path,
        urlencode(query_pairs),
        '',
    ))

    return UrlNormalization(
        original=url,
        normalized=normalized,
        domain=parts.hostname,
        path=path,
        query_params=dict(query_pairs),
        fragment=parts.fragment,
    )


def is_normalized_match(url_a: str, url_b: str) -> bool:
    """True when two URLs differ as written but normalize identically."""
    return url_a != url_b and normalize_url(url_a) == normalize_url(url_b)
