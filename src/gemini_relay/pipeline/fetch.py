"""URL fetching and replacement of URLs in prompt text with their content."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from gemini_relay.core.errors import ErrorList
from gemini_relay.log import get_logger
from gemini_relay.media.sniff import OCTET_STREAM, base_mime_type, detect_mime_type

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"'`]+[^\s<>\"'`.,;:!?)\]}]")

YOUTUBE_HOSTS = frozenset({"www.youtube.com", "youtube.com", "m.youtube.com", "youtu.be"})

USER_AGENT = "Mozilla/5.0 (compatible; telegram-gemini-relay)"

# file types the provider accepts as uploads
_FILE_MIME_PREFIXES = ("image/", "audio/", "video/")
_FILE_MIME_TYPES = frozenset({"application/pdf"})

_TEXT_MIME_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-javascript",
    "application/x-python",
    "application/x-typescript",
})

_BLANK_LINES = re.compile(r"\n[ \t]*(?:\n[ \t]*)+")


def extract_urls(text: str) -> list[str]:
    """Unique URLs in `text`, in order of first appearance."""
    return list(dict.fromkeys(URL_PATTERN.findall(text)))


def is_youtube_url(url: str) -> bool:
    return (urlparse(url).hostname or "").lower() in YOUTUBE_HOSTS


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES


def is_file_type(mime_type: str) -> bool:
    return mime_type.startswith(_FILE_MIME_PREFIXES) or mime_type in _FILE_MIME_TYPES


def html_to_text(html: str) -> str:
    """Visible text of an HTML document with scripts and styles removed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return collapse_blank_lines(soup.get_text("\n"))


def collapse_blank_lines(text: str) -> str:
    lines = [line.rstrip() for line in text.strip().splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines))


def substitute_urls(text: str, replacements: dict[str, str]) -> tuple[str, tuple[tuple[int, str], ...]]:
    """Apply `replacements` to the URLs of `text` in a single pass.

    Returns the new text and the `(offset, url)` of every YouTube URL of the
    input as it sits in the new text. URLs that only appear inside inserted
    content are not reported.
    """
    pieces: list[str] = []
    video_links: list[tuple[int, str]] = []
    size = 0
    position = 0
    for match in URL_PATTERN.finditer(text):
        url = match.group(0)
        before = text[position:match.start()]
        pieces.append(before)
        size += len(before)
        if is_youtube_url(url):
            video_links.append((size, url))
        replacement = replacements.get(url, url)
        pieces.append(replacement)
        size += len(replacement)
        position = match.end()
    pieces.append(text[position:])
    return "".join(pieces), tuple(video_links)


@dataclass(frozen=True, slots=True)
class FetchedUrl:
    url: str
    mime_type: str
    body: bytes


class UrlFetcher:
    """Fetches URL contents with a per-fetch deadline."""

    def __init__(self, http: httpx.AsyncClient, timeout: float):
        self._http = http
        self._timeout = timeout

    async def fetch(self, url: str) -> FetchedUrl:
        async with asyncio.timeout(self._timeout):
            response = await self._http.get(
                url,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        response.raise_for_status()

        mime_type = base_mime_type(response.headers.get("content-type", ""))
        if not mime_type or mime_type == OCTET_STREAM:
            mime_type = detect_mime_type(response.content)
        logger.debug("url_fetched", url=url, mime_type=mime_type, size=len(response.content))
        return FetchedUrl(url=url, mime_type=mime_type, body=response.content)


@dataclass
class UrlReplacement:
    text: str
    files: list[bytes]
    errors: ErrorList
    video_links: tuple[tuple[int, str], ...] = ()


async def replace_urls(text: str, fetcher: UrlFetcher, first_file_index: int = 1) -> UrlReplacement:
    """Replace every non-YouTube URL in `text` with its fetched content.

    Text-like bodies are inlined inside a `<link>` element. Binary bodies of an
    accepted file type become attached files, referenced from the text by a
    placeholder. A URL whose fetch fails (or whose type is not accepted) is
    left untouched and the failure is recorded.
    """
    errors = ErrorList()
    urls = [u for u in extract_urls(text) if not is_youtube_url(u)]
    if not urls:
        text, video_links = substitute_urls(text, {})
        return UrlReplacement(text=text, files=[], errors=errors, video_links=video_links)

    results = await asyncio.gather(*(fetcher.fetch(u) for u in urls), return_exceptions=True)

    replacements: dict[str, str] = {}
    files: list[bytes] = []
    for url, result in zip(urls, results):
        if isinstance(result, BaseException):
            logger.warning("url_fetch_failed", url=url, error=str(result) or type(result).__name__)
            errors.add(str(result) or type(result).__name__, context=f"failed to fetch {url}")
            continue

        if is_text_type(result.mime_type):
            body = result.body.decode("utf-8", errors="replace")
            if result.mime_type == "text/html":
                body = html_to_text(body)
            replacements[url] = f'<link content-type="{result.mime_type}">\n{body}\n</link>'
        elif is_file_type(result.mime_type):
            name = f"file {first_file_index + len(files)}"
            files.append(result.body)
            replacements[url] = f'<link content-type="{result.mime_type}" file="{name}"/>'
        else:
            errors.add(f"unsupported content type {result.mime_type}", context=f"failed to fetch {url}")

    text, video_links = substitute_urls(text, replacements)
    return UrlReplacement(text=text, files=files, errors=errors, video_links=video_links)
