"""Turn user-supplied references into titled course items."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Union

from . import config as config_store
from .config import AppConfig
from .errors import InvalidReference, NoItemsResolved, PlaylistExpansionFailed, ResolutionError
from .http_client import HttpClient
from .metadata import VideoMetadata, resolve_metadata
from .playlist import StrategyOutcome, expand_playlist
from .url_parser import (
    PlaylistReference,
    Reference,
    VideoReference,
    classify,
    extract_youtube_url,
)

logger = logging.getLogger(__name__)

PLAYLIST_TITLE_PREFIX = "Playlist: "

ProgressCallback = Callable[[float], None]
EventCallback = Callable[[str], None]
MetadataResolver = Callable[[str], VideoMetadata]
PlaylistExpander = Callable[[str], list]


@dataclass
class ResolvedCourse:
    """An ordered set of resolved videos plus the course-level title and thumbnail."""

    title: str
    thumbnail_url: str
    items: list[VideoMetadata] = field(default_factory=list)
    kind: str = "playlist"
    source_id: Optional[str] = None

    @property
    def total_duration(self) -> float:
        return sum(item.duration for item in self.items)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "kind": self.kind,
            "source_id": self.source_id,
            "total_duration": self.total_duration,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class ImportResult:
    """Outcome of importing one shared link."""

    url: str
    course: Optional[ResolvedCourse] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.course is not None


def playlist_title(first_item_title: str) -> str:
    """Course title derived from the first video, e.g. ``"Playlist: Intro"``."""
    return PLAYLIST_TITLE_PREFIX + first_item_title.split(" - ")[0]


def _as_reference(reference: Union[str, Reference]) -> Reference:
    if isinstance(reference, str):
        return classify(reference)
    return reference


class CourseResolver:
    """
    Resolve references into videos and courses.

    Holds no state between calls apart from its collaborators, so one
    instance can serve any number of independent requests. Metadata for a
    course is fetched one video at a time with ``config.item_delay``
    seconds between requests.
    """

    def __init__(
        self,
        client: HttpClient,
        config: Optional[AppConfig] = None,
        metadata_resolver: Optional[MetadataResolver] = None,
        playlist_expander: Optional[PlaylistExpander] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self.client = client
        self.config = config or client.config
        self._resolve_metadata = metadata_resolver or self._default_metadata
        self._expand_playlist = playlist_expander or self._default_expand
        self._sleep = sleep
        self._on_event = on_event

    def _default_metadata(self, video_id: str) -> VideoMetadata:
        return resolve_metadata(video_id, self.client, self.config.thumbnail_quality)

    def _default_expand(self, playlist_id: str) -> list[str]:
        return expand_playlist(playlist_id, self.client, on_outcome=self._record_outcome)

    def _record_outcome(self, outcome: StrategyOutcome) -> None:
        if outcome.succeeded:
            self._event(f"{outcome.strategy}: {outcome.count} videos")
        elif outcome.error:
            self._event(f"{outcome.strategy}: error")
        else:
            self._event(f"{outcome.strategy}: nothing found")

    def _event(self, msg: str) -> None:
        if self._on_event:
            self._on_event(msg)

    def resolve_single(self, reference: Union[str, Reference]) -> VideoMetadata:
        """Metadata for a reference that must name one video."""
        ref = _as_reference(reference)
        if not isinstance(ref, VideoReference):
            raise InvalidReference("expected a single video")
        return self._resolve_metadata(ref.video_id)

    def video_ids_for(self, reference: Union[str, Reference]) -> list[str]:
        """
        The ordered video ids a reference stands for.

        A failed playlist expansion falls back to the seed ids captured from
        the original URL, if there are any.
        """
        ref = _as_reference(reference)
        if isinstance(ref, VideoReference):
            return [ref.video_id]
        if not isinstance(ref, PlaylistReference):
            raise InvalidReference("not a video or playlist")

        self._event(f"Expanding playlist {ref.playlist_id}")
        try:
            video_ids = self._expand_playlist(ref.playlist_id)
        except PlaylistExpansionFailed:
            if not ref.seed_video_ids:
                raise
            logger.warning(
                "Playlist %s could not be expanded, falling back to %d seed video(s)",
                ref.playlist_id,
                len(ref.seed_video_ids),
            )
            self._event("Playlist unavailable, using video from link")
            video_ids = list(ref.seed_video_ids)

        if not video_ids:
            raise NoItemsResolved(f"playlist {ref.playlist_id} is empty")
        return video_ids

    def iter_items(
        self,
        video_ids: list[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Iterator[VideoMetadata]:
        """
        Yield metadata for each id, in order, pausing between fetches.

        Progress is reported after every id, resolved or not, so it ends at
        exactly 1.0. An id whose lookup fails is logged and skipped. Stop
        iterating to abandon the rest; nothing already yielded is lost.
        """
        total = len(video_ids)
        for index, video_id in enumerate(video_ids):
            if index > 0 and self.config.item_delay > 0:
                self._sleep(self.config.item_delay)
            item: Optional[VideoMetadata] = None
            try:
                item = self._resolve_metadata(video_id)
            except Exception:
                logger.exception("Metadata lookup failed for %s, skipping", video_id)
                self._event(f"Skipped {video_id}")
            if on_progress:
                on_progress((index + 1) / total)
            if item is not None:
                yield item

    def resolve_course(
        self,
        reference: Union[str, Reference],
        title: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ResolvedCourse:
        """
        Resolve a video or playlist reference into a full course.

        Raises InvalidReference, PlaylistExpansionFailed or NoItemsResolved.
        A course that comes back shorter than its playlist had some ids that
        could not be resolved at all.
        """
        ref = _as_reference(reference)
        video_ids = self.video_ids_for(ref)
        items = list(self.iter_items(video_ids, on_progress))
        if not items:
            raise NoItemsResolved(f"none of {len(video_ids)} video(s) resolved")

        first = items[0]
        if isinstance(ref, VideoReference):
            course = ResolvedCourse(
                title=title or first.title,
                thumbnail_url=first.thumbnail_url,
                items=items,
                kind="video",
                source_id=ref.video_id,
            )
        else:
            course = ResolvedCourse(
                title=title or playlist_title(first.title),
                thumbnail_url=first.thumbnail_url,
                items=items,
                kind="playlist",
                source_id=ref.playlist_id,
            )

        if len(items) < len(video_ids):
            logger.warning("Course %r: %d of %d videos resolved", course.title, len(items), len(video_ids))
        else:
            logger.info("Course %r: %d videos resolved", course.title, len(items))
        self._event(f"Resolved {len(items)}/{len(video_ids)}: {course.title[:40]}")
        return course

    def resolve_manual_course(
        self,
        title: str,
        urls: Iterable[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ResolvedCourse:
        """
        Build a course from a hand-picked list of video links.

        Entries that are not single videos are skipped. Raises
        NoItemsResolved when none of them yields a video.
        """
        entries = list(urls)
        video_ids = []
        for raw in entries:
            ref = classify(raw)
            if isinstance(ref, VideoReference):
                video_ids.append(ref.video_id)
            else:
                logger.info("Skipping non-video entry in manual course: %s", raw[:80])

        items = list(self.iter_items(video_ids, on_progress)) if video_ids else []
        if not items:
            raise NoItemsResolved(f"none of {len(entries)} link(s) resolved")

        return ResolvedCourse(
            title=title,
            thumbnail_url=items[0].thumbnail_url,
            items=items,
            kind="manual",
        )

    def import_shared_urls(self, db_path: Optional[Path] = None) -> list[ImportResult]:
        """
        Resolve every pending shared link into a course.

        Each entry is removed from the inbox once attempted and its outcome
        written to the import history. One failure never stops the rest.
        """
        results = []
        for entry in config_store.load_shared_urls(db_path):
            raw = extract_youtube_url(entry.url) or entry.url
            kind = classify(raw).kind
            try:
                course = self.resolve_course(raw, title=entry.title)
            except ResolutionError as e:
                logger.warning("Import of %s failed: %s", raw[:80], e)
                config_store.add_import(raw, kind, entry.title, 0, "failed", e.user_message, db_path)
                results.append(ImportResult(url=raw, error=e.user_message))
            except Exception as e:
                logger.exception("Import of %s crashed", raw[:80])
                config_store.add_import(raw, kind, entry.title, 0, "failed", str(e), db_path)
                results.append(ImportResult(url=raw, error=str(e)))
            else:
                config_store.add_import(raw, kind, course.title, len(course.items), "ok", None, db_path)
                results.append(ImportResult(url=raw, course=course))
            finally:
                config_store.remove_shared_url(entry.id, db_path)
        return results
