"""Tests for resolver module."""

import json
from unittest.mock import MagicMock

import pytest

from tubecourse.config import AppConfig, add_shared_url, get_recent_imports, load_shared_urls
from tubecourse.errors import InvalidReference, NoItemsResolved, PlaylistExpansionFailed
from tubecourse.metadata import VideoMetadata, synthesized_metadata
from tubecourse.resolver import CourseResolver, playlist_title
from tubecourse.url_parser import PlaylistReference, VideoReference

A, B, C, D = "AAAAAAAAAAA", "BBBBBBBBBBB", "CCCCCCCCCCC", "DDDDDDDDDDD"


def _meta(video_id):
    return VideoMetadata(
        id=video_id,
        title=f"Lesson {video_id[0]} - Intro",
        thumbnail_url=f"https://img.youtube.com/vi/{video_id}/mqdefault.jpg",
    )


def _resolver(fake_client, expander=None, metadata=None, delay=0.1, **kwargs):
    config = AppConfig.defaults()
    config.item_delay = delay
    sleep = MagicMock()
    resolver = CourseResolver(
        fake_client(config=config),
        config,
        metadata_resolver=metadata or MagicMock(side_effect=_meta),
        playlist_expander=expander,
        sleep=sleep,
        **kwargs,
    )
    return resolver, sleep


class TestResolveSingle:
    def test_video(self, fake_client):
        resolver, _ = _resolver(fake_client)
        assert resolver.resolve_single("https://youtu.be/" + A) == _meta(A)

    def test_accepts_reference(self, fake_client):
        resolver, _ = _resolver(fake_client)
        assert resolver.resolve_single(VideoReference(video_id=B)).id == B

    def test_playlist_rejected(self, fake_client):
        resolver, _ = _resolver(fake_client)
        with pytest.raises(InvalidReference):
            resolver.resolve_single("https://www.youtube.com/playlist?list=PLabc")

    def test_invalid(self, fake_client):
        resolver, _ = _resolver(fake_client)
        with pytest.raises(InvalidReference) as exc:
            resolver.resolve_single("not a url")
        assert exc.value.user_message == "Invalid YouTube URL"


class TestResolveCourse:
    def test_playlist_course(self, fake_client):
        expander = MagicMock(return_value=[A, B, C])
        resolver, sleep = _resolver(fake_client, expander=expander)
        course = resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc")

        expander.assert_called_once_with("PLabc")
        assert [item.id for item in course.items] == [A, B, C]
        assert course.kind == "playlist"
        assert course.source_id == "PLabc"
        assert course.title == "Playlist: Lesson A"
        assert course.thumbnail_url == _meta(A).thumbnail_url
        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_caller_title_wins(self, fake_client):
        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[A]))
        course = resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc", title="My Course")
        assert course.title == "My Course"

    def test_single_video_course(self, fake_client):
        expander = MagicMock()
        resolver, sleep = _resolver(fake_client, expander=expander)
        course = resolver.resolve_course(A)
        assert course.kind == "video"
        assert course.title == _meta(A).title
        assert [item.id for item in course.items] == [A]
        expander.assert_not_called()
        sleep.assert_not_called()

    def test_invalid_reference(self, fake_client):
        resolver, _ = _resolver(fake_client)
        with pytest.raises(InvalidReference):
            resolver.resolve_course("not a url")

    def test_progress_monotonic_and_ends_at_one(self, fake_client):
        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[A, B, C, D]))
        progress = []
        resolver.resolve_course(PlaylistReference(playlist_id="PLabc"), on_progress=progress.append)
        assert progress == [0.25, 0.5, 0.75, 1.0]
        assert progress == sorted(progress)
        assert progress[-1] == 1.0

    def test_failed_item_skipped(self, fake_client):
        def flaky(video_id):
            if video_id == B:
                raise RuntimeError("boom")
            return _meta(video_id)

        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[A, B, C]), metadata=flaky)
        progress = []
        course = resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc", on_progress=progress.append)
        assert [item.id for item in course.items] == [A, C]
        assert progress[-1] == 1.0

    def test_title_from_first_resolved_item(self, fake_client):
        def first_fails(video_id):
            if video_id == A:
                raise RuntimeError("boom")
            return _meta(video_id)

        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[A, B]), metadata=first_fails)
        course = resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc")
        assert course.title == "Playlist: Lesson B"
        assert course.thumbnail_url == _meta(B).thumbnail_url

    def test_no_items_resolved(self, fake_client):
        resolver, _ = _resolver(
            fake_client,
            expander=MagicMock(return_value=[A, B]),
            metadata=MagicMock(side_effect=RuntimeError("down")),
        )
        with pytest.raises(NoItemsResolved) as exc:
            resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc")
        assert exc.value.user_message == "No videos found"

    def test_expansion_failure_without_seed(self, fake_client):
        resolver, _ = _resolver(fake_client, expander=MagicMock(side_effect=PlaylistExpansionFailed("empty")))
        with pytest.raises(PlaylistExpansionFailed) as exc:
            resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc")
        assert "individually" in exc.value.user_message

    def test_seed_fallback(self, fake_client):
        """All strategies empty, but the link carried a video id."""
        resolver, _ = _resolver(fake_client, expander=MagicMock(side_effect=PlaylistExpansionFailed("empty")))
        course = resolver.resolve_course(f"https://www.youtube.com/watch?v={D}&list=PLabc")
        assert [item.id for item in course.items] == [D]
        assert course.items[0] == _meta(D)

    def test_seed_fallback_with_real_strategies(self, fake_client):
        """End to end: every endpoint unreachable, metadata synthesized for the seed id."""
        config = AppConfig.defaults()
        client = fake_client(config=config)
        resolver = CourseResolver(client, config, sleep=MagicMock())
        course = resolver.resolve_course(f"https://www.youtube.com/watch?v={D}&list=PLabc")
        assert course.items == [synthesized_metadata(D)]
        assert client.calls_to("/feeds/videos.xml")
        assert client.calls_to("/embed/videoseries")

    def test_seed_not_used_when_expansion_succeeds(self, fake_client):
        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[A, B]))
        course = resolver.resolve_course(f"https://www.youtube.com/watch?v={D}&list=PLabc")
        assert [item.id for item in course.items] == [A, B]

    def test_events_reported(self, fake_client):
        events = []
        oembed = json.dumps({"title": "T", "thumbnail_url": "https://i.ytimg.com/t.jpg"})
        config = AppConfig.defaults()
        client = fake_client({"/feeds/videos.xml": f"<feed xmlns:yt='http://www.youtube.com/xml/schemas/2015'><yt:videoId>{A}</yt:videoId></feed>", "/oembed": oembed}, config=config)
        resolver = CourseResolver(client, config, sleep=MagicMock(), on_event=events.append)
        course = resolver.resolve_course("https://www.youtube.com/playlist?list=PLabc")
        assert course.items[0].title == "T"
        assert "feed: 1 videos" in events
        assert "initial_data: error" in events


class TestIterItems:
    def test_abandon_midway(self, fake_client):
        metadata = MagicMock(side_effect=_meta)
        resolver, _ = _resolver(fake_client, metadata=metadata)
        items = resolver.iter_items([A, B, C])
        assert next(items).id == A
        items.close()
        assert metadata.call_count == 1

    def test_no_delay_when_disabled(self, fake_client):
        resolver, sleep = _resolver(fake_client, delay=0)
        assert len(list(resolver.iter_items([A, B, C]))) == 3
        sleep.assert_not_called()


class TestManualCourse:
    def test_manual_course(self, fake_client):
        resolver, _ = _resolver(fake_client)
        progress = []
        course = resolver.resolve_manual_course(
            "Picked",
            [f"https://youtu.be/{A}", "https://www.youtube.com/playlist?list=PLabc", "junk", B],
            on_progress=progress.append,
        )
        assert course.title == "Picked"
        assert course.kind == "manual"
        assert [item.id for item in course.items] == [A, B]
        assert course.thumbnail_url == _meta(A).thumbnail_url
        assert progress == [0.5, 1.0]

    def test_manual_course_nothing_usable(self, fake_client):
        resolver, _ = _resolver(fake_client)
        with pytest.raises(NoItemsResolved):
            resolver.resolve_manual_course("Empty", ["junk", "https://vimeo.com/1"])


class TestImportSharedUrls:
    def test_imports_and_records(self, fake_client, temp_db):
        add_shared_url(f"Watch this https://youtu.be/{A} now", "Shared Title", temp_db)
        add_shared_url("not a link", None, temp_db)
        add_shared_url("https://www.youtube.com/playlist?list=PLabc", None, temp_db)
        resolver, _ = _resolver(fake_client, expander=MagicMock(return_value=[B, C]))

        results = resolver.import_shared_urls(temp_db)

        assert [r.ok for r in results] == [True, False, True]
        assert results[0].course.title == "Shared Title"
        assert results[0].url == f"https://youtu.be/{A}"
        assert results[1].error == "Invalid YouTube URL"
        assert len(results[2].course.items) == 2
        assert load_shared_urls(temp_db) == []

        history = get_recent_imports(10, temp_db)
        assert len(history) == 3
        assert history[0]["status"] == "ok"
        assert history[0]["item_count"] == 2
        assert history[1]["status"] == "failed"
        assert history[1]["kind"] == "invalid"


def test_playlist_title():
    assert playlist_title("Python Basics - Lesson 1") == "Playlist: Python Basics"
    assert playlist_title("Untitled") == "Playlist: Untitled"
