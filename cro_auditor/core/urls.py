"""
URL helpers shared by the crawler, the models and the analyzers.
"""
from urllib.parse import urljoin, urlparse, urlunparse

SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")


def normalize_seed_url(url: str) -> str:
    """Force a scheme (https) and default the path to '/'."""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse((parsed.scheme, parsed.netloc, path, parsed.params, parsed.query, ""))


def normalize_url_key(url: str) -> str:
    """Canonical form used for visited-set membership and page identity.

    Scheme and host are lowercased, an empty path becomes '/', the fragment
    is dropped and the query string is kept as-is.
    """
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or "/",
        parsed.params,
        parsed.query,
        "",
    ))


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def resolve_href(page_url: str, href: str | None) -> str | None:
    """Resolve an anchor href against the page URL.

    Returns None for empty, fragment-only, javascript:, mailto: and tel:
    targets, and for anything that does not resolve to http(s).
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
        return None
    try:
        absolute = urljoin(page_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            return None
        return normalize_url_key(absolute)
    except ValueError:
        # Malformed netloc, e.g. an unbalanced IPv6 bracket
        return None


def url_path(url: str) -> str:
    return urlparse(url).path or "/"


def with_netloc(url: str, netloc: str) -> str:
    """Move a URL onto another host, keeping path and query."""
    return urlparse(url)._replace(netloc=netloc).geturl()
