"""SQLite engine settings, shared-link inbox and import history persistence."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_PATH = DEFAULT_DATA_DIR / "tubecourse.db"

# Default config values
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RESOURCE_TIMEOUT = 20.0
DEFAULT_ITEM_DELAY = 0.1
DEFAULT_RELAXED_TLS = False
# Hosts the relaxed transport may be used for, never anything else
DEFAULT_RELAXED_TLS_HOSTS = "www.youtube.com,youtube.com,noembed.com"
DEFAULT_THUMBNAIL_QUALITY = "medium"
DEFAULT_WEB_PORT = 8080
DEFAULT_DEBUG_MODE = False

THUMBNAIL_QUALITIES = ("default", "medium", "high", "maxres")


@dataclass
class AppConfig:
    """Engine and service configuration."""

    request_timeout: float
    resource_timeout: float
    item_delay: float
    relaxed_tls: bool
    relaxed_tls_hosts: str
    ca_bundle_path: Optional[str]
    thumbnail_quality: str
    web_port: int
    debug_mode: bool

    @classmethod
    def defaults(cls) -> AppConfig:
        return cls(
            request_timeout=DEFAULT_REQUEST_TIMEOUT,
            resource_timeout=DEFAULT_RESOURCE_TIMEOUT,
            item_delay=DEFAULT_ITEM_DELAY,
            relaxed_tls=DEFAULT_RELAXED_TLS,
            relaxed_tls_hosts=DEFAULT_RELAXED_TLS_HOSTS,
            ca_bundle_path=None,
            thumbnail_quality=DEFAULT_THUMBNAIL_QUALITY,
            web_port=DEFAULT_WEB_PORT,
            debug_mode=DEFAULT_DEBUG_MODE,
        )

    @property
    def relaxed_hosts(self) -> frozenset[str]:
        """Allow-list of hosts for the relaxed transport, lowercased."""
        return frozenset(h.strip().lower() for h in self.relaxed_tls_hosts.split(",") if h.strip())


@dataclass
class SharedURL:
    """A link handed to us by a share action, waiting to be imported."""

    id: int
    url: str
    title: Optional[str]
    added_at: float


def _ensure_data_dir(db_path: Path) -> None:
    """Create the data directory if it doesn't exist."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _init_schema(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS shared_urls (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            url TEXT NOT NULL,
            title TEXT,
            added_at REAL NOT NULL
        );
        CREATE TABLE IF NOT EXISTS import_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            imported_at REAL NOT NULL,
            url TEXT NOT NULL,
            kind TEXT NOT NULL,
            title TEXT,
            item_count INTEGER NOT NULL,
            status TEXT NOT NULL,
            message TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_import_history_imported_at
            ON import_history(imported_at);
    """)


def _connect(db_path: Optional[Path]) -> sqlite3.Connection:
    path = db_path or get_db_path()
    _ensure_data_dir(path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    _init_schema(conn)
    return conn


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _config_to_dict(config: AppConfig) -> dict[str, str]:
    return {
        "request_timeout": str(config.request_timeout),
        "resource_timeout": str(config.resource_timeout),
        "item_delay": str(config.item_delay),
        "relaxed_tls": "true" if config.relaxed_tls else "false",
        "relaxed_tls_hosts": config.relaxed_tls_hosts,
        "ca_bundle_path": config.ca_bundle_path or "",
        "thumbnail_quality": config.thumbnail_quality,
        "web_port": str(config.web_port),
        "debug_mode": "true" if config.debug_mode else "false",
    }


def _dict_to_config(d: dict[str, str]) -> AppConfig:
    quality = d.get("thumbnail_quality", DEFAULT_THUMBNAIL_QUALITY)
    if quality not in THUMBNAIL_QUALITIES:
        quality = DEFAULT_THUMBNAIL_QUALITY
    return AppConfig(
        request_timeout=float(d.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        resource_timeout=float(d.get("resource_timeout", DEFAULT_RESOURCE_TIMEOUT)),
        item_delay=float(d.get("item_delay", DEFAULT_ITEM_DELAY)),
        relaxed_tls=_parse_bool(d.get("relaxed_tls", "false")),
        relaxed_tls_hosts=d.get("relaxed_tls_hosts", DEFAULT_RELAXED_TLS_HOSTS),
        ca_bundle_path=d.get("ca_bundle_path") or None,
        thumbnail_quality=quality,
        web_port=int(d.get("web_port", DEFAULT_WEB_PORT)),
        debug_mode=_parse_bool(d.get("debug_mode", "false")),
    )


def get_db_path() -> Path:
    """Return the database path, ensuring the directory exists."""
    _ensure_data_dir(DEFAULT_DB_PATH)
    return DEFAULT_DB_PATH


def load_config(db_path: Optional[Path] = None) -> AppConfig:
    """Load config from SQLite. Returns defaults if no config exists."""
    conn = _connect(db_path)
    rows = conn.execute("SELECT key, value FROM config").fetchall()
    conn.close()

    if not rows:
        return AppConfig.defaults()

    d = {row["key"]: row["value"] for row in rows}
    return _dict_to_config(d)


def save_config(config: AppConfig, db_path: Optional[Path] = None) -> None:
    """Save config to SQLite."""
    conn = _connect(db_path)
    for key, value in _config_to_dict(config).items():
        conn.execute(
            "INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
            (key, value),
        )
    conn.commit()
    conn.close()


def add_shared_url(url: str, title: Optional[str] = None, db_path: Optional[Path] = None) -> int:
    """Append a shared link to the inbox. Returns its row id."""
    conn = _connect(db_path)
    cur = conn.execute(
        "INSERT INTO shared_urls (url, title, added_at) VALUES (?, ?, ?)",
        (url, title or None, time.time()),
    )
    conn.commit()
    row_id = cur.lastrowid
    conn.close()
    return row_id


def load_shared_urls(db_path: Optional[Path] = None) -> list[SharedURL]:
    """Pending shared links, oldest first."""
    conn = _connect(db_path)
    rows = conn.execute(
        "SELECT id, url, title, added_at FROM shared_urls ORDER BY id ASC"
    ).fetchall()
    conn.close()
    return [SharedURL(id=r["id"], url=r["url"], title=r["title"], added_at=r["added_at"]) for r in rows]


def remove_shared_url(url_id: int, db_path: Optional[Path] = None) -> None:
    conn = _connect(db_path)
    conn.execute("DELETE FROM shared_urls WHERE id = ?", (url_id,))
    conn.commit()
    conn.close()


def clear_shared_urls(db_path: Optional[Path] = None) -> None:
    conn = _connect(db_path)
    conn.execute("DELETE FROM shared_urls")
    conn.commit()
    conn.close()


def add_import(
    url: str,
    kind: str,
    title: Optional[str],
    item_count: int,
    status: str,
    message: Optional[str] = None,
    db_path: Optional[Path] = None,
) -> None:
    """Record the outcome of one import attempt."""
    conn = _connect(db_path)
    conn.execute(
        """
        INSERT INTO import_history (imported_at, url, kind, title, item_count, status, message)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (time.time(), url, kind, title, item_count, status, message),
    )
    conn.commit()
    conn.close()


def get_recent_imports(limit: int = 50, db_path: Optional[Path] = None) -> list[dict]:
    """Get recent import history for the dashboard."""
    conn = _connect(db_path)
    rows = conn.execute(
        """
        SELECT imported_at, url, kind, title, item_count, status, message
        FROM import_history
        ORDER BY imported_at DESC, id DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]
