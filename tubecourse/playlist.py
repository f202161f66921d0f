"""
Expand a playlist id into an ordered list of video ids.

YouTube has no unauthenticated playlist API, so several independent
extraction strategies are tried in order and the first one that returns
at least one id wins. Results are never merged across strategies.

A strategy is any callable ``(playlist_id, client) -> list[str]``. It may
raise; the runner treats an exception the same as an empty result and
moves on to the next strategy.
"""

from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .errors import PlaylistExpansionFailed, TransportError
from .http_client import DESKTOP_USER_AGENT, MOBILE_USER_AGENT, HttpClient

logger = logging.getLogger(__name__)

PLAYLIST_PAGE_URL = "https://www.youtube.com/playlist?list={playlist_id}"
PLAYLIST_FEED_URL = "https://www.youtube.com/feeds/videos.xml?playlist_id={playlist_id}"
PLAYLIST_EMBED_URL = "https://www.youtube.com/embed/videoseries?list={playlist_id}"

DESKTOP_HEADERS = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept-Language": "en-US,en;q=0.9",
}
MOBILE_HEADERS = {"User-Agent": MOBILE_USER_AGENT}

# Playlist, uploads and radio-mix ids share the videoId shape in page JSON
NON_VIDEO_PREFIXES = ("PL", "UU", "RD")

INITIAL_DATA_MARKERS = ("var ytInitialData = ", 'window["ytInitialData"] = ')
INITIAL_DATA_END = ";</script>"

_RENDERER_VIDEO_ID_RE = re.compile(
    r'"playlistVideoRenderer"\s*:\s*\{[^}]*"videoId"\s*:\s*"([a-zA-Z0-9_-]{11})"'
)
_VIDEO_ID_FIELD_RE = re.compile(r'"videoId"\s*:\s*"([a-zA-Z0-9_-]{11})"')
_PAGE_PATTERNS = (
    _VIDEO_ID_FIELD_RE,
    re.compile(r"watch\?v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"/watch\?v=([a-zA-Z0-9_-]{11})"),
)
_EMBED_VIDEO_ID_RE = re.compile(r'"video_id"\s*:\s*"([a-zA-Z0-9_-]{11})"')

_FEED_VIDEO_ID_TAG = "{http://www.youtube.com/xml/schemas/2015}videoId"

Strategy = Callable[[str, HttpClient], list]


@dataclass
class StrategyOutcome:
    """What one strategy did during an expansion, for logging and dashboards."""

    playlist_id: str
    strategy: str
    elapsed: float
    ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.ids)

    @property
    def succeeded(self) -> bool:
        return self.count > 0


def unique_ids(ids: Iterable[str], excluded_prefixes: tuple[str, ...] = ()) -> list[str]:
    """Drop duplicates (keeping first occurrence) and ids with excluded prefixes."""
    seen: set[str] = set()
    result: list[str] = []
    for video_id in ids:
        if excluded_prefixes and video_id.startswith(excluded_prefixes):
            continue
        if video_id not in seen:
            seen.add(video_id)
            result.append(video_id)
    return result


def find_initial_data(html: str) -> Optional[str]:
    """Return the ytInitialData JSON text embedded in a page, or None."""
    for marker in INITIAL_DATA_MARKERS:
        start = html.find(marker)
        if start < 0:
            continue
        start += len(marker)
        end = html.find(INITIAL_DATA_END, start)
        if end < 0:
            continue
        return html[start:end]
    return None


def ids_from_initial_data(blob: str) -> list[str]:
    """Video ids from the initial-data blob, renderer rows first, any videoId second."""
    ids = unique_ids(m.group(1) for m in _RENDERER_VIDEO_ID_RE.finditer(blob))
    if ids:
        return ids
    return unique_ids(
        (m.group(1) for m in _VIDEO_ID_FIELD_RE.finditer(blob)),
        NON_VIDEO_PREFIXES,
    )


def ids_from_page(html: str) -> list[str]:
    """Video ids from anywhere in the page HTML, pattern by pattern."""
    matches = (m.group(1) for pattern in _PAGE_PATTERNS for m in pattern.finditer(html))
    return unique_ids(matches, NON_VIDEO_PREFIXES)


def ids_from_feed(xml_text: str) -> list[str]:
    """Video ids from the playlist Atom feed (<yt:videoId> elements)."""
    root = ET.fromstring(xml_text)
    return unique_ids(
        el.text.strip() for el in root.iter(_FEED_VIDEO_ID_TAG) if el.text and el.text.strip()
    )


def ids_from_embed(html: str) -> list[str]:
    """Video ids from the embed player config (``video_id`` fields)."""
    return unique_ids(m.group(1) for m in _EMBED_VIDEO_ID_RE.finditer(html))


def from_initial_data(playlist_id: str, client: HttpClient) -> list[str]:
    """
    Strategy 1: the ytInitialData blob on the playlist page.

    The only source that is not truncated, so it goes first.
    """
    headers = dict(DESKTOP_HEADERS)
    headers["Accept"] = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    html = client.get_text(PLAYLIST_PAGE_URL.format(playlist_id=playlist_id), headers)
    blob = find_initial_data(html)
    if blob is None:
        return []
    return ids_from_initial_data(blob)


def from_page_html(playlist_id: str, client: HttpClient) -> list[str]:
    """Strategy 2: regex over the whole playlist page."""
    html = client.get_text(PLAYLIST_PAGE_URL.format(playlist_id=playlist_id), DESKTOP_HEADERS)
    return ids_from_page(html)


def from_feed(playlist_id: str, client: HttpClient) -> list[str]:
    """Strategy 3: the Atom feed. Reliable, but capped to the ~15 newest entries."""
    xml_text = client.get_text(PLAYLIST_FEED_URL.format(playlist_id=playlist_id))
    return ids_from_feed(xml_text)


def from_embed(playlist_id: str, client: HttpClient) -> list[str]:
    """Strategy 4: the mobile embed player for the playlist."""
    html = client.get_text(PLAYLIST_EMBED_URL.format(playlist_id=playlist_id), MOBILE_HEADERS)
    return ids_from_embed(html)


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("initial_data", from_initial_data),
    ("page_html", from_page_html),
    ("feed", from_feed),
    ("embed", from_embed),
)


def _run_strategy(name: str, strategy: Strategy, playlist_id: str, client: HttpClient) -> StrategyOutcome:
    started = time.monotonic()
    error: Optional[str] = None
    ids: list[str] = []
    try:
        ids = unique_ids(strategy(playlist_id, client) or [])
    except TransportError as e:
        error = str(e)
        logger.warning("Playlist strategy %s failed for %s: %s", name, playlist_id, e)
    except (ValueError, ET.ParseError) as e:
        error = f"unparseable response: {e}"
        logger.warning("Playlist strategy %s could not parse %s: %s", name, playlist_id, e)
    except Exception as e:
        error = repr(e)
        logger.exception("Playlist strategy %s crashed for %s", name, playlist_id)
    return StrategyOutcome(
        playlist_id=playlist_id,
        strategy=name,
        elapsed=time.monotonic() - started,
        ids=ids,
        error=error,
    )


def expand_playlist(
    playlist_id: str,
    client: HttpClient,
    strategies: Optional[Iterable[tuple[str, Strategy]]] = None,
    on_outcome: Optional[Callable[[StrategyOutcome], None]] = None,
) -> list[str]:
    """
    Return the playlist's video ids, deduplicated, in discovery order.

    Strategies run one after another until one returns ids; later ones are
    not called. Raises PlaylistExpansionFailed when every strategy comes
    back empty.
    """
    for name, strategy in strategies if strategies is not None else DEFAULT_STRATEGIES:
        outcome = _run_strategy(name, strategy, playlist_id, client)
        if on_outcome:
            on_outcome(outcome)
        if outcome.succeeded:
            logger.info(
                "Playlist %s: %d videos via %s (%.2fs)",
                playlist_id,
                outcome.count,
                name,
                outcome.elapsed,
            )
            return outcome.ids
        if outcome.error is None:
            logger.info("Playlist %s: strategy %s found nothing", playlist_id, name)

    logger.warning("Playlist %s: all strategies came back empty", playlist_id)
    raise PlaylistExpansionFailed(f"no videos resolved for playlist {playlist_id}")
