"""URL scraping service for fetching pages and extracting title and favicon."""
import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; Linkshelf/1.0)'
DEFAULT_TIMEOUT = 10.0
DEFAULT_FAVICON_PATH = '/favicon.ico'

# <link rel> values accepted as a page icon, compared as lowercase token lists
FAVICON_RELS = (['icon'], ['shortcut', 'icon'])


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Unparseable addresses count as private.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


async def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname (without blocking the event loop) and checks every
    address it maps to, so a public name pointing at an internal IP is refused.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL has no hostname or the hostname does not resolve.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    loop = asyncio.get_running_loop()
    try:
        addrinfo = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    # sockaddr is (ip, port) for IPv4 or (ip, port, flow, scope) for IPv6
    for *_, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


@dataclass
class FetchResult:
    """Result of fetching a URL (raw HTML before extraction)."""

    html: str | None
    final_url: str
    status_code: int | None
    content_type: str | None
    error: str | None


@dataclass
class ExtractedMetadata:
    """Title and favicon extracted from an HTML document."""

    title: str | None
    favicon_url: str | None


@dataclass
class PageMetadata:
    """
    Metadata used to build a bookmark.

    `title` is always set (falls back to the URL). `html` is None when the
    page could not be fetched.
    """

    title: str
    favicon_url: str | None
    html: str | None


def _is_html_content_type(content_type: str) -> bool:
    # Missing header counts as HTML
    lowered = content_type.lower()
    return not lowered or 'text/html' in lowered or 'application/xhtml' in lowered


async def fetch_url(url: str, timeout: float = DEFAULT_TIMEOUT) -> FetchResult:  # noqa: ASYNC109
    """
    Fetch HTML from a URL.

    Best-effort fetch that returns error info on failure rather than raising.
    Follows redirects and captures the final URL. Issues a single request with
    no retries.

    Security: Validates that the URL, and the final URL after redirects, do not
    target private/internal networks.

    Args:
        url:
            The URL to fetch.
        timeout:
            Request timeout in seconds.

    Returns:
        FetchResult with the HTML body or error info.
    """
    try:
        await validate_url_not_private(url)
    except (SSRFBlockedError, ValueError) as e:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=str(e),
        )

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client:
            response = await client.get(url)

            final_url = str(response.url)
            if final_url != url:
                try:
                    await validate_url_not_private(final_url)
                except (SSRFBlockedError, ValueError) as e:
                    return FetchResult(
                        html=None,
                        final_url=final_url,
                        status_code=response.status_code,
                        content_type=None,
                        error=f"Redirect blocked: {e}",
                    )

            content_type = response.headers.get('content-type', '')

            if not response.is_success:
                return FetchResult(
                    html=None,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"HTTP {response.status_code}",
                )

            if not _is_html_content_type(content_type):
                return FetchResult(
                    html=None,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"Unsupported content type: {content_type}",
                )

            return FetchResult(
                html=response.text,
                final_url=final_url,
                status_code=response.status_code,
                content_type=content_type,
                error=None,
            )
    except httpx.TimeoutException:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error="Request timed out",
        )
    except (httpx.RequestError, httpx.InvalidURL) as e:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=f"Request failed: {e}",
        )


def resolve_url(base_url: str, href: str) -> str | None:
    """
    Resolve `href` against `base_url`.

    Absolute http(s) hrefs are returned unchanged. Returns None when the base
    is not an absolute http(s) URL and so cannot anchor a relative href.
    """
    if href.startswith(('http://', 'https://')):
        return href
    try:
        parsed = urlparse(base_url)
    except ValueError:
        return None
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return None
    return urljoin(base_url, href)


def extract_html_metadata(html: str, page_url: str) -> ExtractedMetadata:
    """
    Extract title and favicon URL from HTML.

    Pure function with no I/O. Uses BeautifulSoup for parsing.

    Title is the text of the first <title> tag, trimmed; None if missing or blank.

    Favicon resolution order:
    1. First <link rel="icon"> or <link rel="shortcut icon"> with an href,
       resolved against the page URL when relative.
    2. /favicon.ico on the page's origin.
    3. None if the page URL cannot be used as a base.

    Args:
        html:
            Raw HTML string to parse.
        page_url:
            URL the HTML was served from (final URL after redirects).

    Returns:
        ExtractedMetadata with title and favicon_url.
    """
    soup = BeautifulSoup(html, 'lxml')

    title = None
    title_tag = soup.find('title')
    if title_tag:
        title = title_tag.get_text().strip() or None

    favicon_href = None
    for link in soup.find_all('link', href=True):
        rel = [token.lower() for token in link.get('rel') or []]
        if rel in FAVICON_RELS and link['href'].strip():
            favicon_href = link['href'].strip()
            break

    favicon_url = resolve_url(page_url, favicon_href or DEFAULT_FAVICON_PATH)

    return ExtractedMetadata(title=title, favicon_url=favicon_url)


async def fetch_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> PageMetadata:  # noqa: ASYNC109
    """
    Fetch a page and derive its bookmark metadata.

    Never raises: any fetch failure yields `PageMetadata(title=url,
    favicon_url=None, html=None)` so ingestion can continue.
    """
    result = await fetch_url(url, timeout)

    if result.html is None:
        logger.warning("Failed to fetch URL %s: %s", url, result.error)
        return PageMetadata(title=url, favicon_url=None, html=None)

    metadata = extract_html_metadata(result.html, result.final_url or url)
    return PageMetadata(
        title=metadata.title or url,
        favicon_url=metadata.favicon_url,
        html=result.html,
    )
