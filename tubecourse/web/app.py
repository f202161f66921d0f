"""Flask web interface: resolve links, manage the shared inbox, edit settings."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from queue import Queue
from typing import Optional
from urllib.parse import unquote

from flask import Flask, jsonify, redirect, render_template_string, request, url_for

from .. import debug_log
from ..config import (
    THUMBNAIL_QUALITIES,
    AppConfig,
    add_shared_url,
    clear_shared_urls,
    get_db_path,
    get_recent_imports,
    load_config,
    load_shared_urls,
    save_config,
)
from ..errors import InvalidReference, ResolutionError
from ..http_client import HttpClient
from ..resolver import CourseResolver
from ..url_parser import PlaylistReference, VideoReference, classify, extract_youtube_url

logger = logging.getLogger(__name__)

DASHBOARD_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Course Importer - Dashboard</title>
    <style>
        body { font-family: system-ui, sans-serif; max-width: 700px; margin: 2rem auto; padding: 0 1rem; }
        h1 { font-size: 1.5rem; }
        .card { background: #f5f5f5; padding: 1rem; border-radius: 8px; margin: 1rem 0; }
        .card h2 { margin-top: 0; font-size: 1rem; }
        table { width: 100%; border-collapse: collapse; }
        th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid #ddd; }
        th { font-weight: 600; }
        img.thumb { width: 96px; border-radius: 4px; }
        .btn { display: inline-block; padding: 0.5rem 1rem; background: #333; color: white; border: none;
            text-decoration: none; border-radius: 4px; margin-top: 0.5rem; cursor: pointer; }
        .btn:hover { background: #555; }
        .status { color: #0a0; }
        .error { color: #a00; }
        pre { white-space: pre-wrap; font-size: 0.8rem; }
    </style>
</head>
<body>
    <h1>Course Importer</h1>
    <div class="card">
        <h2>Status</h2>
        {% if request.args.get('shared') %}
        <p class="status">Link added to the import inbox.</p>
        {% elif request.args.get('importing') %}
        <p class="status">Import started.</p>
        {% else %}
        <p class="status">Running</p>
        {% endif %}
    </div>
    <div class="card">
        <h2>Resolve Link</h2>
        <form method="post" action="{{ url_for('resolve') }}" style="display: flex; gap: 0.5rem; flex-wrap: wrap;">
            <input type="text" name="url" placeholder="Paste YouTube video or playlist URL..." required
                value="{{ submitted_url or '' }}" style="flex: 1; min-width: 200px; padding: 0.5rem;">
            <input type="text" name="title" placeholder="Course title (optional)"
                style="flex: 1; min-width: 150px; padding: 0.5rem;">
            <button type="submit" class="btn">Resolve</button>
        </form>
        {% if error %}
        <p class="error">{{ error }}</p>
        {% endif %}
        {% if course %}
        <h3>{{ course.title }} ({{ course.items|length }} videos)</h3>
        <table>
            <tr><th>#</th><th></th><th>Title</th></tr>
            {% for item in course.items %}
            <tr>
                <td>{{ loop.index }}</td>
                <td><img class="thumb" src="{{ item.thumbnail_url }}" alt=""></td>
                <td>{{ item.title }}</td>
            </tr>
            {% endfor %}
        </table>
        {% endif %}
    </div>
    <div class="card">
        <h2>Import Inbox</h2>
        {% if shared_urls %}
        <table>
            <tr><th>Added</th><th>URL</th><th>Title</th></tr>
            {% for s in shared_urls %}
            <tr>
                <td>{{ s.added_at_fmt }}</td>
                <td>{{ s.url }}</td>
                <td>{{ s.title or '' }}</td>
            </tr>
            {% endfor %}
        </table>
        <form method="post" action="{{ url_for('import_inbox') }}" style="display: inline;">
            <button type="submit" class="btn">Import All</button>
        </form>
        <form method="post" action="{{ url_for('clear_inbox') }}" style="display: inline;">
            <button type="submit" class="btn">Clear</button>
        </form>
        {% else %}
        <p>No pending links.</p>
        {% endif %}
    </div>
    <div class="card">
        <h2>Current Settings</h2>
        <p><strong>Request timeout (s):</strong> {{ config.request_timeout }}</p>
        <p><strong>Resource timeout (s):</strong> {{ config.resource_timeout }}</p>
        <p><strong>Delay between videos (s):</strong> {{ config.item_delay }}</p>
        <p><strong>Relaxed TLS:</strong> {{ 'On (' ~ config.relaxed_tls_hosts ~ ')' if config.relaxed_tls else 'Off' }}</p>
        <p><strong>CA bundle:</strong> {{ config.ca_bundle_path or 'System default' }}</p>
        <p><strong>Thumbnail quality:</strong> {{ config.thumbnail_quality }}</p>
        <p><strong>Web port:</strong> {{ config.web_port }}</p>
        <p><strong>Debug mode:</strong> {{ 'On' if config.debug_mode else 'Off' }}</p>
        <a href="{{ url_for('settings') }}" class="btn">Edit Settings</a>
    </div>
    <div class="card">
        <h2>Recent Imports</h2>
        {% if recent_imports %}
        <table>
            <tr><th>Time</th><th>Title</th><th>Videos</th><th>Status</th></tr>
            {% for i in recent_imports %}
            <tr>
                <td>{{ i.imported_at_fmt }}</td>
                <td>{{ i.title or i.url }}</td>
                <td>{{ i.item_count }}</td>
                <td>{{ i.status }}{% if i.message %}: {{ i.message }}{% endif %}</td>
            </tr>
            {% endfor %}
        </table>
        {% else %}
        <p>No imports yet.</p>
        {% endif %}
    </div>
    {% if config.debug_mode %}
    <div class="card">
        <h2>Debug Log</h2>
        <pre>{{ debug_lines|join('\n') }}</pre>
    </div>
    {% endif %}
</body>
</html>
"""

SETTINGS_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Course Importer - Settings</title>
    <style>
        body { font-family: system-ui, sans-serif; max-width: 500px; margin: 2rem auto; padding: 0 1rem; }
        h1 { font-size: 1.5rem; }
        form { display: flex; flex-direction: column; gap: 1rem; }
        label { font-weight: 500; }
        input, select { padding: 0.5rem; font-size: 1rem; }
        .btn { padding: 0.5rem 1rem; background: #333; color: white; border: none;
            border-radius: 4px; cursor: pointer; font-size: 1rem; }
        .btn:hover { background: #555; }
        .back { display: inline-block; margin-top: 1rem; color: #666; }
        .note { color: #666; font-size: 0.9rem; }
    </style>
</head>
<body>
    <h1>Settings</h1>
    <p class="note">Network settings take effect after a restart.</p>
    <form method="post">
        <label for="request_timeout">Request timeout (seconds)</label>
        <input type="number" id="request_timeout" name="request_timeout"
            value="{{ config.request_timeout }}" min="1" step="0.5" required>
        <label for="resource_timeout">Resource timeout (seconds)</label>
        <input type="number" id="resource_timeout" name="resource_timeout"
            value="{{ config.resource_timeout }}" min="1" step="0.5" required>
        <label for="item_delay">Delay between videos (seconds)</label>
        <input type="number" id="item_delay" name="item_delay"
            value="{{ config.item_delay }}" min="0" step="0.05" required>
        <label for="thumbnail_quality">Thumbnail quality</label>
        <select id="thumbnail_quality" name="thumbnail_quality">
            {% for q in qualities %}
            <option value="{{ q }}" {{ 'selected' if q == config.thumbnail_quality else '' }}>{{ q }}</option>
            {% endfor %}
        </select>
        <label for="ca_bundle_path">CA bundle path (optional, e.g. corporate proxy root certificate)</label>
        <input type="text" id="ca_bundle_path" name="ca_bundle_path"
            value="{{ config.ca_bundle_path or '' }}" placeholder="Leave empty for system default">
        <label>
            <input type="checkbox" name="relaxed_tls" value="1" {{ 'checked' if config.relaxed_tls else '' }}>
            Relaxed TLS (skip certificate checks for the hosts below; insecure)
        </label>
        <label for="relaxed_tls_hosts">Relaxed TLS hosts (comma-separated)</label>
        <input type="text" id="relaxed_tls_hosts" name="relaxed_tls_hosts" value="{{ config.relaxed_tls_hosts }}">
        <label for="web_port">Web interface port</label>
        <input type="number" id="web_port" name="web_port" value="{{ config.web_port }}" min="1024" max="65535">
        <label>
            <input type="checkbox" name="debug_mode" value="1" {{ 'checked' if config.debug_mode else '' }}>
            Debug mode (show recent engine events on the dashboard)
        </label>
        <button type="submit" class="btn">Save</button>
    </form>
    <a href="{{ url_for('dashboard') }}" class="back">← Back to Dashboard</a>
</body>
</html>
"""


def _format_timestamp(ts: float) -> str:
    from datetime import datetime

    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def _error_status(error: ResolutionError) -> int:
    return 400 if isinstance(error, InvalidReference) else 502


def create_app(
    config_path: Optional[Path] = None,
    share_queue: Optional[Queue] = None,
    resolver: Optional[CourseResolver] = None,
) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    app.secret_key = "tubecourse-secret"  # Fixed key for local use

    if resolver is None:
        resolver = CourseResolver(HttpClient(load_config(config_path)), on_event=debug_log.events)

    def _share(url: str, title: Optional[str]) -> bool:
        """Add a link to the inbox and wake the import loop. Returns True if accepted."""
        url = (url or "").strip()
        if not url:
            return False
        link = extract_youtube_url(url) or url
        add_shared_url(link, (title or "").strip() or None, config_path)
        debug_log.add(f"Shared: {link[:60]}")
        if share_queue is not None:
            share_queue.put(link)
        return True

    def _render_dashboard(**extra):
        config = load_config(config_path)
        shared = load_shared_urls(config_path)
        recent = get_recent_imports(50, config_path)
        for i in recent:
            i["imported_at_fmt"] = _format_timestamp(i["imported_at"])
        shared_rows = [dict(asdict(s), added_at_fmt=_format_timestamp(s.added_at)) for s in shared]
        return render_template_string(
            DASHBOARD_TEMPLATE,
            config=config,
            shared_urls=shared_rows,
            recent_imports=recent,
            debug_lines=debug_log.get_lines(),
            **extra,
        )

    @app.route("/")
    def dashboard():
        return _render_dashboard()

    @app.route("/resolve", methods=["POST"])
    def resolve():
        """Resolve a pasted link and show the resulting course."""
        raw = request.form.get("url", "").strip()
        title = request.form.get("title", "").strip() or None
        link = extract_youtube_url(raw) or raw
        try:
            course = resolver.resolve_course(link, title=title)
        except ResolutionError as e:
            logger.info("Could not resolve %s: %s", link[:80], e)
            return _render_dashboard(error=e.user_message, submitted_url=raw), _error_status(e)
        return _render_dashboard(course=course, submitted_url=raw)

    @app.route("/settings", methods=["GET", "POST"])
    def settings():
        config = load_config(config_path)
        if request.method == "POST":
            try:
                quality = request.form.get("thumbnail_quality", config.thumbnail_quality)
                if quality not in THUMBNAIL_QUALITIES:
                    raise ValueError(f"unknown thumbnail quality {quality!r}")
                config = AppConfig(
                    request_timeout=float(request.form.get("request_timeout", config.request_timeout)),
                    resource_timeout=float(request.form.get("resource_timeout", config.resource_timeout)),
                    item_delay=float(request.form.get("item_delay", config.item_delay)),
                    relaxed_tls=request.form.get("relaxed_tls") == "1",
                    relaxed_tls_hosts=request.form.get("relaxed_tls_hosts", config.relaxed_tls_hosts),
                    ca_bundle_path=request.form.get("ca_bundle_path") or None,
                    thumbnail_quality=quality,
                    web_port=int(request.form.get("web_port", config.web_port)),
                    debug_mode=request.form.get("debug_mode") == "1",
                )
                save_config(config, config_path)
                return redirect(url_for("dashboard"))
            except (ValueError, TypeError) as e:
                logger.warning("Invalid settings: %s", e)
        return render_template_string(SETTINGS_TEMPLATE, config=config, qualities=THUMBNAIL_QUALITIES)

    @app.route("/share", methods=["POST"])
    def share():
        """Accept a link from a share action (form or JSON body)."""
        data = request.get_json(silent=True) if request.is_json else request.form
        if not isinstance(data, dict):
            return jsonify({"error": "Expected a JSON object"}), 400
        if _share(data.get("url", ""), data.get("title")):
            if request.is_json:
                return jsonify({"queued": True}), 202
            return redirect(url_for("dashboard", shared=1))
        if request.is_json:
            return jsonify({"error": "Missing URL"}), 400
        return redirect(url_for("dashboard"))

    @app.route("/share/<path:shared_url>")
    def share_direct(shared_url: str):
        """Add a link from the URL path.
        E.g. /share/https%3A%2F%2Fyoutube.com%2Fplaylist%3Flist%3DPLAYLISTID
        Or:  /share/https://youtube.com/watch?v=VIDEOID (query string preserved)
        """
        decoded = unquote(shared_url)
        if request.query_string:
            decoded = decoded + "?" + request.query_string.decode()
        if _share(decoded, None):
            return "<!DOCTYPE html><html><body><p>Link added to the import inbox.</p></body></html>", 200
        return "<!DOCTYPE html><html><body><p>Invalid or missing URL.</p></body></html>", 400

    @app.route("/inbox/import", methods=["POST"])
    def import_inbox():
        if share_queue is not None:
            share_queue.put("")
        return redirect(url_for("dashboard", importing=1))

    @app.route("/inbox/clear", methods=["POST"])
    def clear_inbox():
        clear_shared_urls(config_path)
        return redirect(url_for("dashboard"))

    @app.route("/api/classify")
    def api_classify():
        raw = request.args.get("q", "")
        ref = classify(extract_youtube_url(raw) or raw)
        payload = {"kind": ref.kind, "id": None, "seed_video_ids": []}
        if isinstance(ref, VideoReference):
            payload["id"] = ref.video_id
        elif isinstance(ref, PlaylistReference):
            payload["id"] = ref.playlist_id
            payload["seed_video_ids"] = list(ref.seed_video_ids)
        return jsonify(payload)

    @app.route("/api/resolve", methods=["POST"])
    def api_resolve():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Expected a JSON object", "kind": "InvalidReference"}), 400
        raw = str(data.get("url", "")).strip()
        title = data.get("title") or None
        link = extract_youtube_url(raw) or raw
        try:
            course = resolver.resolve_course(link, title=title)
        except ResolutionError as e:
            return jsonify({"error": e.user_message, "kind": type(e).__name__}), _error_status(e)
        return jsonify(course.to_dict())

    return app


def run_web_server(
    host: str = "0.0.0.0",
    port: Optional[int] = None,
    db_path: Optional[Path] = None,
    share_queue: Optional[Queue] = None,
    resolver: Optional[CourseResolver] = None,
) -> None:
    """Run the Flask development server."""
    path = db_path or get_db_path()
    config = load_config(path)
    port = port or config.web_port
    app = create_app(config_path=path, share_queue=share_queue, resolver=resolver)
    app.run(host=host, port=port, threaded=True, use_reloader=False)
