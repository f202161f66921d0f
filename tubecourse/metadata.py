"""Video metadata lookup: oEmbed, then noembed, then a synthesized record."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote

from .errors import MetadataUnavailable, TransportError
from .http_client import HttpClient

logger = logging.getLogger(__name__)

OEMBED_URL = "https://www.youtube.com/oembed?url={watch_url}&format=json"
NOEMBED_URL = "https://noembed.com/embed?url={watch_url}"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_THUMBNAIL_FILES = {
    "default": "default.jpg",
    "medium": "mqdefault.jpg",
    "high": "hqdefault.jpg",
    "maxres": "maxresdefault.jpg",
}
THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/{filename}"


@dataclass
class VideoMetadata:
    """Display metadata for one video. ``duration`` 0 means unknown."""

    id: str
    title: str
    thumbnail_url: str
    duration: float = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "duration": self.duration,
        }


def thumbnail_url(video_id: str, quality: str = "medium") -> str:
    """Deterministic thumbnail URL for ``video_id``."""
    filename = _THUMBNAIL_FILES.get(quality, _THUMBNAIL_FILES["medium"])
    return THUMBNAIL_URL.format(video_id=video_id, filename=filename)


def placeholder_title(video_id: str) -> str:
    return f"Video {video_id}"


def synthesized_metadata(video_id: str, quality: str = "medium") -> VideoMetadata:
    """Metadata built from the id alone. Needs no network."""
    return VideoMetadata(
        id=video_id,
        title=placeholder_title(video_id),
        thumbnail_url=thumbnail_url(video_id, quality),
        duration=0,
    )


def _watch_url(video_id: str) -> str:
    return quote(WATCH_URL.format(video_id=video_id), safe="")


def _fetch_json(client: HttpClient, url: str) -> dict[str, Any]:
    body = client.get_text(url)
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise MetadataUnavailable(f"invalid JSON from {url}: {e}") from e
    if not isinstance(payload, dict):
        raise MetadataUnavailable(f"unexpected payload type from {url}")
    return payload


def _text_field(payload: dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def fetch_oembed(video_id: str, client: HttpClient, quality: str = "medium") -> VideoMetadata:
    """YouTube's own oEmbed endpoint. Title and thumbnail are both required."""
    payload = _fetch_json(client, OEMBED_URL.format(watch_url=_watch_url(video_id)))
    title = _text_field(payload, "title")
    thumb = _text_field(payload, "thumbnail_url")
    if not title or not thumb:
        raise MetadataUnavailable(f"oEmbed payload for {video_id} missing title or thumbnail")
    return VideoMetadata(id=video_id, title=title, thumbnail_url=thumb, duration=0)


def fetch_noembed(video_id: str, client: HttpClient, quality: str = "medium") -> VideoMetadata:
    """
    noembed.com lookup.

    Every field is optional here. A missing title or thumbnail falls back to
    the placeholder title and the synthesized thumbnail. noembed reports
    lookup failures as a 200 with an ``error`` field, which counts as a failure.
    """
    payload = _fetch_json(client, NOEMBED_URL.format(watch_url=_watch_url(video_id)))
    if payload.get("error"):
        raise MetadataUnavailable(f"noembed error for {video_id}: {payload['error']}")
    return VideoMetadata(
        id=video_id,
        title=_text_field(payload, "title") or placeholder_title(video_id),
        thumbnail_url=_text_field(payload, "thumbnail_url") or thumbnail_url(video_id, quality),
        duration=0,
    )


MetadataStage = Callable[[str, HttpClient, str], VideoMetadata]

METADATA_STAGES: tuple[tuple[str, MetadataStage], ...] = (
    ("oembed", fetch_oembed),
    ("noembed", fetch_noembed),
)


def resolve_metadata(
    video_id: str,
    client: HttpClient,
    quality: str = "medium",
    stages: Optional[tuple[tuple[str, MetadataStage], ...]] = None,
) -> VideoMetadata:
    """
    Return display metadata for ``video_id``. Never raises.

    Stages are tried in order; a stage that fails for any transport or
    payload reason hands over to the next one. When all stages fail the
    synthesized record is returned.
    """
    for name, stage in stages if stages is not None else METADATA_STAGES:
        try:
            return stage(video_id, client, quality)
        except (TransportError, MetadataUnavailable) as e:
            logger.debug("Metadata stage %s failed for %s: %s", name, video_id, e)
        except Exception:
            logger.exception("Metadata stage %s crashed for %s", name, video_id)

    logger.info("No metadata source answered for %s, using placeholder", video_id)
    return synthesized_metadata(video_id, quality)
