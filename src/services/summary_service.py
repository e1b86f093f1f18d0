"""
Summary generation for bookmarks.

Summaries come from three sources, in order:

1. An external reader service that returns a page's readable text. The text is
   normalized and bounded to a few sentences.
2. The page HTML already fetched for metadata, stripped to text and truncated.
3. A placeholder naming the host, so a bookmark always carries a summary.

Nothing in this module raises on network failure.
"""
import logging
import re
from urllib.parse import quote, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

READER_USER_AGENT = 'Linkshelf/1.0'
DEFAULT_READER_BASE_URL = 'https://r.jina.ai/'
DEFAULT_READER_TIMEOUT = 15.0

# Reader text must be longer than this to count as a usable extraction
MIN_READER_TEXT_LENGTH = 50
# Stripped HTML must be longer than this to be used as a fallback summary
MIN_FALLBACK_TEXT_LENGTH = 100
SHORT_SUMMARY_LENGTH = 300
MAX_SUMMARY_LENGTH = 400
ELLIPSIS = '...'

PLACEHOLDER_TEMPLATE = (
    "Bookmark saved from {hostname}. "
    "AI summary will be generated when the page becomes accessible."
)

_WHITESPACE_RE = re.compile(r'\s+')
_SENTENCE_END_RE = re.compile(r'[.!?]+')


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run (including newlines) to one space and trim."""
    return _WHITESPACE_RE.sub(' ', text).strip()


def bound_summary_length(text: str) -> str:
    """
    Bound normalized text to a short summary.

    Text up to SHORT_SUMMARY_LENGTH characters is returned unchanged. Longer
    text is cut into sentences on runs of '.', '!' and '?', and whole sentences
    are accumulated (each followed by '. ') while the running text plus the
    next sentence stays under MAX_SUMMARY_LENGTH. If not even the first
    sentence fits, the first SHORT_SUMMARY_LENGTH characters are returned with
    an ellipsis.

    Args:
        text: Whitespace-normalized text.

    Returns:
        The bounded summary, never longer than MAX_SUMMARY_LENGTH characters
        except for the ellipsis fallback (SHORT_SUMMARY_LENGTH + 3).
    """
    if len(text) <= SHORT_SUMMARY_LENGTH:
        return text

    accumulated = ''
    for sentence in _SENTENCE_END_RE.split(text):
        stripped = sentence.strip()
        if not stripped:
            continue
        if len(accumulated + sentence) >= MAX_SUMMARY_LENGTH:
            break
        accumulated += stripped + '. '

    return accumulated.strip() or text[:SHORT_SUMMARY_LENGTH] + ELLIPSIS


def build_reader_url(url: str, reader_base_url: str = DEFAULT_READER_BASE_URL) -> str:
    """Build the reader service URL for a target page (target is percent-encoded)."""
    return f"{reader_base_url}{quote(url, safe='')}"


async def fetch_reader_text(
    url: str,
    reader_base_url: str = DEFAULT_READER_BASE_URL,
    timeout: float = DEFAULT_READER_TIMEOUT,  # noqa: ASYNC109
) -> str | None:
    """
    Ask the reader service for a page's plain text.

    Returns:
        Normalized text, or None if the call failed, returned non-2xx, or the
        text was too short to be useful.
    """
    reader_url = build_reader_url(url, reader_base_url)
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            headers={'Accept': 'text/plain', 'User-Agent': READER_USER_AGENT},
        ) as client:
            response = await client.get(reader_url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Reader request failed for %s: %s", url, e)
        return None

    if not response.is_success:
        logger.info("Reader returned HTTP %s for %s", response.status_code, url)
        return None

    text = normalize_whitespace(response.text or '')
    if len(text) <= MIN_READER_TEXT_LENGTH:
        logger.info("Reader text too short for %s (%d chars)", url, len(text))
        return None
    return text


def summarize_html(html: str) -> str | None:
    """
    Build a fallback summary from raw HTML.

    Strips markup, collapses whitespace and returns the first
    SHORT_SUMMARY_LENGTH characters plus an ellipsis. Returns None when the
    remaining text is too short.
    """
    text = normalize_whitespace(BeautifulSoup(html, 'lxml').get_text(' '))
    if len(text) <= MIN_FALLBACK_TEXT_LENGTH:
        return None
    return text[:SHORT_SUMMARY_LENGTH] + ELLIPSIS


def placeholder_summary(url: str) -> str:
    """Placeholder summary naming the URL's host (or the raw URL if it has none)."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    return PLACEHOLDER_TEMPLATE.format(hostname=hostname or url)


async def generate_summary(
    url: str,
    html: str | None,
    reader_base_url: str = DEFAULT_READER_BASE_URL,
    timeout: float = DEFAULT_READER_TIMEOUT,  # noqa: ASYNC109
) -> str:
    """
    Produce a non-empty summary for a page.

    The reader service is only asked about pages whose fetch succeeded. A
    failed fetch (html is None) goes straight to the placeholder.

    Args:
        url: The page URL.
        html: Page HTML if it was fetched, else None.
        reader_base_url: Reader service prefix; the encoded URL is appended.
        timeout: Reader request timeout in seconds.

    Returns:
        A reader summary, an HTML-derived summary, or the placeholder.
    """
    if html is None:
        logger.info("Page fetch failed for %s, using placeholder summary", url)
        return placeholder_summary(url)

    text = await fetch_reader_text(url, reader_base_url, timeout)
    if text:
        return bound_summary_length(text)

    if html:
        summary = summarize_html(html)
        if summary:
            logger.info("Using page text fallback summary for %s", url)
            return summary

    logger.info("Using placeholder summary for %s", url)
    return placeholder_summary(url)
