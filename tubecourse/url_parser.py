"""Classify user-supplied strings into YouTube video or playlist references."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import parse_qs, urlparse

# YouTube video ID: 11 chars, alphanumeric + underscore + hyphen
YOUTUBE_VIDEO_ID_LENGTH = 11
YOUTUBE_VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")

_SHORT_HOSTS = ("youtu.be", "www.youtu.be")
# Path segments followed by a video id: /embed/ID, /shorts/ID, /live/ID
_PATH_MARKERS = ("embed", "shorts", "live")

# Links recognized inside shared free text (first match wins)
_SHARED_URL_PATTERNS = (
    re.compile(r"https?://(?:www\.|m\.)?youtube\.com/watch\?[^\s]+", re.IGNORECASE),
    re.compile(r"https?://(?:www\.|m\.)?youtube\.com/playlist\?[^\s]+", re.IGNORECASE),
    re.compile(r"https?://youtu\.be/[^\s]+", re.IGNORECASE),
    re.compile(r"https?://(?:www\.|m\.)?youtube\.com/shorts/[^\s]+", re.IGNORECASE),
)
_SUPPORTED_URL_MARKERS = (
    "youtube.com/watch",
    "youtube.com/playlist",
    "youtu.be/",
    "youtube.com/shorts",
)


@dataclass(frozen=True)
class VideoReference:
    """A single video."""

    video_id: str

    kind = "video"


@dataclass(frozen=True)
class PlaylistReference:
    """A playlist, plus any video id found in the same URL.

    The seed ids are only a last-resort fallback when the playlist itself
    cannot be expanded.
    """

    playlist_id: str
    seed_video_ids: tuple[str, ...] = field(default_factory=tuple)

    kind = "playlist"


@dataclass(frozen=True)
class UnrecognizedReference:
    """Nothing usable in the input."""

    raw: str = ""

    kind = "invalid"


Reference = Union[VideoReference, PlaylistReference, UnrecognizedReference]


def _segment_after(path: str, marker: str) -> Optional[str]:
    """Return the path segment following ``marker`` (e.g. ``embed``), if any."""
    parts = [p for p in path.split("/") if p]
    try:
        idx = parts.index(marker)
    except ValueError:
        return None
    if idx + 1 < len(parts):
        return parts[idx + 1]
    return None


def _truncated_id(candidate: Optional[str]) -> Optional[str]:
    """First 11 characters of ``candidate`` if they form a valid id."""
    if not candidate or len(candidate) < YOUTUBE_VIDEO_ID_LENGTH:
        return None
    video_id = candidate[:YOUTUBE_VIDEO_ID_LENGTH]
    if not YOUTUBE_VIDEO_ID_RE.match(video_id):
        return None
    return video_id


def extract_video_id(url: str) -> Optional[str]:
    """
    Recover a video id from a parsed YouTube URL.

    Tries, in order: the ``v`` query parameter, the youtu.be path, then
    /embed/, /shorts/ and /live/ path segments. Trailing garbage after
    the 11-character id is tolerated.
    """
    parsed = urlparse(url)

    qs = parse_qs(parsed.query)
    if qs.get("v"):
        video_id = _truncated_id(qs["v"][0])
        if video_id:
            return video_id

    if parsed.netloc.lower() in _SHORT_HOSTS:
        video_id = _truncated_id(parsed.path.strip("/"))
        if video_id:
            return video_id

    for marker in _PATH_MARKERS:
        if f"/{marker}/" in parsed.path:
            return _truncated_id(_segment_after(parsed.path, marker))

    return None


def extract_playlist_id(url: str) -> Optional[str]:
    """Return the ``list`` query parameter, if present."""
    qs = parse_qs(urlparse(url).query)
    if qs.get("list") and qs["list"][0]:
        return qs["list"][0]
    return None


def classify(raw: str) -> Reference:
    """
    Classify a raw string as a video, a playlist, or invalid.

    A bare 11-character token without a path separator is a video id.
    Anything else must parse as a URL with a host; a missing scheme is
    taken to be https. Pure: no network access, same output for the same
    input.
    """
    if not raw or not isinstance(raw, str):
        return UnrecognizedReference(raw="")

    value = raw.strip()
    if len(value) == YOUTUBE_VIDEO_ID_LENGTH and "/" not in value:
        return VideoReference(video_id=value)

    try:
        parsed = urlparse(value)
        if not parsed.scheme and not any(c.isspace() for c in value):
            # Typed without a scheme, e.g. "youtube.com/playlist?list=..."
            value = "https://" + value
            parsed = urlparse(value)
    except ValueError:
        return UnrecognizedReference(raw=raw.strip())
    if not parsed.scheme or not parsed.netloc:
        return UnrecognizedReference(raw=raw.strip())

    playlist_id = extract_playlist_id(value)
    if playlist_id:
        seed = extract_video_id(value)
        return PlaylistReference(
            playlist_id=playlist_id,
            seed_video_ids=(seed,) if seed else (),
        )

    video_id = extract_video_id(value)
    if video_id:
        return VideoReference(video_id=video_id)

    return UnrecognizedReference(raw=raw.strip())


def is_supported_url(text: str) -> bool:
    """Cheap check used for share payloads before classification."""
    if not text:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in _SUPPORTED_URL_MARKERS)


def extract_youtube_url(text: str) -> Optional[str]:
    """Find the first YouTube link inside free text (e.g. a shared message)."""
    if not text:
        return None
    for pattern in _SHARED_URL_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None
