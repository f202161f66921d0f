"""Tests for the web interface."""

from queue import Queue
from unittest.mock import MagicMock

import pytest

from tubecourse import debug_log
from tubecourse.config import load_config, load_shared_urls
from tubecourse.errors import InvalidReference, PlaylistExpansionFailed
from tubecourse.metadata import synthesized_metadata
from tubecourse.resolver import ResolvedCourse
from tubecourse.web.app import create_app

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.fixture
def resolver():
    return MagicMock()


@pytest.fixture
def share_queue():
    return Queue()


@pytest.fixture
def client(temp_db, resolver, share_queue):
    debug_log.clear()
    app = create_app(config_path=temp_db, share_queue=share_queue, resolver=resolver)
    app.config["TESTING"] = True
    return app.test_client()


def _course():
    item = synthesized_metadata(VIDEO_ID)
    return ResolvedCourse(title="My Course", thumbnail_url=item.thumbnail_url, items=[item], kind="video", source_id=VIDEO_ID)


def test_dashboard(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Course Importer" in resp.data


def test_settings_page(client):
    assert client.get("/settings").status_code == 200


def test_settings_saved(client, temp_db):
    resp = client.post(
        "/settings",
        data={
            "request_timeout": "4",
            "resource_timeout": "12",
            "item_delay": "0",
            "thumbnail_quality": "maxres",
            "relaxed_tls_hosts": "noembed.com",
            "web_port": "8081",
            "relaxed_tls": "1",
        },
    )
    assert resp.status_code == 302
    config = load_config(temp_db)
    assert config.request_timeout == 4.0
    assert config.thumbnail_quality == "maxres"
    assert config.relaxed_tls is True
    assert config.debug_mode is False


def test_settings_rejects_unknown_quality(client, temp_db):
    resp = client.post("/settings", data={"thumbnail_quality": "huge"})
    assert resp.status_code == 200
    assert load_config(temp_db).thumbnail_quality == "medium"


class TestApi:
    def test_classify_playlist(self, client):
        resp = client.get("/api/classify", query_string={"q": f"https://youtu.be/{VIDEO_ID}?list=PLabc"})
        assert resp.get_json() == {"kind": "playlist", "id": "PLabc", "seed_video_ids": [VIDEO_ID]}

    def test_classify_invalid(self, client):
        resp = client.get("/api/classify", query_string={"q": "hello"})
        assert resp.get_json() == {"kind": "invalid", "id": None, "seed_video_ids": []}

    def test_resolve(self, client, resolver):
        resolver.resolve_course.return_value = _course()
        resp = client.post("/api/resolve", json={"url": f"watch https://youtu.be/{VIDEO_ID}", "title": "My Course"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["title"] == "My Course"
        assert body["items"][0]["id"] == VIDEO_ID
        assert body["total_duration"] == 0
        resolver.resolve_course.assert_called_once_with(f"https://youtu.be/{VIDEO_ID}", title="My Course")

    def test_resolve_invalid(self, client, resolver):
        resolver.resolve_course.side_effect = InvalidReference("nope")
        resp = client.post("/api/resolve", json={"url": "nope"})
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Invalid YouTube URL", "kind": "InvalidReference"}

    def test_resolve_upstream_failure(self, client, resolver):
        resolver.resolve_course.side_effect = PlaylistExpansionFailed("empty")
        resp = client.post("/api/resolve", json={"url": "https://www.youtube.com/playlist?list=PLabc"})
        assert resp.status_code == 502
        assert "individually" in resp.get_json()["error"]

    @pytest.mark.parametrize("body", [[1, 2], "https://youtu.be/dQw4w9WgXcQ", 7])
    def test_resolve_rejects_non_object_body(self, client, resolver, body):
        resp = client.post("/api/resolve", json=body)
        assert resp.status_code == 400
        resolver.resolve_course.assert_not_called()


class TestResolveForm:
    def test_shows_course(self, client, resolver):
        resolver.resolve_course.return_value = _course()
        resp = client.post("/resolve", data={"url": f"https://youtu.be/{VIDEO_ID}", "title": ""})
        assert resp.status_code == 200
        assert b"My Course" in resp.data
        resolver.resolve_course.assert_called_once_with(f"https://youtu.be/{VIDEO_ID}", title=None)

    def test_shows_error(self, client, resolver):
        resolver.resolve_course.side_effect = InvalidReference("nope")
        resp = client.post("/resolve", data={"url": "nope"})
        assert resp.status_code == 400
        assert b"Invalid YouTube URL" in resp.data


class TestShare:
    def test_share_json(self, client, temp_db, share_queue):
        resp = client.post("/share", json={"url": f"look https://youtu.be/{VIDEO_ID} !", "title": "Song"})
        assert resp.status_code == 202
        assert resp.get_json() == {"queued": True}
        pending = load_shared_urls(temp_db)
        assert [(s.url, s.title) for s in pending] == [(f"https://youtu.be/{VIDEO_ID}", "Song")]
        assert share_queue.get_nowait() == f"https://youtu.be/{VIDEO_ID}"

    def test_share_json_missing_url(self, client, temp_db):
        resp = client.post("/share", json={"title": "x"})
        assert resp.status_code == 400
        assert load_shared_urls(temp_db) == []

    @pytest.mark.parametrize("body", [["https://youtu.be/dQw4w9WgXcQ"], "https://youtu.be/dQw4w9WgXcQ"])
    def test_share_rejects_non_object_body(self, client, temp_db, body):
        resp = client.post("/share", json=body)
        assert resp.status_code == 400
        assert load_shared_urls(temp_db) == []

    def test_share_form_redirects(self, client, temp_db):
        resp = client.post("/share", data={"url": f"https://youtu.be/{VIDEO_ID}"})
        assert resp.status_code == 302
        assert "shared=1" in resp.headers["Location"]
        assert len(load_shared_urls(temp_db)) == 1

    def test_share_path_keeps_query(self, client, temp_db):
        resp = client.get(f"/share/www.youtube.com/watch?v={VIDEO_ID}&list=PLabc")
        assert resp.status_code == 200
        url = load_shared_urls(temp_db)[0].url
        assert url.endswith(f"watch?v={VIDEO_ID}&list=PLabc")

    def test_inbox_clear(self, client, temp_db):
        client.post("/share", json={"url": f"https://youtu.be/{VIDEO_ID}"})
        resp = client.post("/inbox/clear")
        assert resp.status_code == 302
        assert load_shared_urls(temp_db) == []

    def test_inbox_import_wakes_loop(self, client, share_queue):
        resp = client.post("/inbox/import")
        assert resp.status_code == 302
        assert share_queue.get_nowait() == ""
