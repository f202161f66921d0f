"""HTTP transport shared by the metadata resolver and the playlist expander.

One client is created per process (or per test) and passed into the engine.
It owns two ``requests`` sessions:

* a secure session that always verifies certificates, optionally against a
  custom CA bundle (e.g. a corporate proxy's root certificate);
* a relaxed session with certificate verification disabled, created only
  when ``relaxed_tls`` is switched on in the config.

The relaxed session is tried first only for hosts on the configured
allow-list. If it cannot connect, the same request is retried once on the
secure session. Every other host goes straight to the secure session.

SECURITY: the relaxed session accepts any certificate. It exists so the
engine works behind intercepting proxies on managed networks. Prefer
``ca_bundle_path`` where the proxy's root certificate is available.
"""

from __future__ import annotations

import logging
import time
import warnings
from typing import Optional
from urllib.parse import urlparse

import requests
from urllib3.exceptions import InsecureRequestWarning

from .config import AppConfig
from .errors import TransportError

logger = logging.getLogger(__name__)

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15"
)
_CHUNK_SIZE = 16 * 1024


class HttpClient:
    """Long-lived transport injected into the resolution engine."""

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self.config = config or AppConfig.defaults()
        self._secure = requests.Session()
        self._secure.verify = self.config.ca_bundle_path or True
        self._relaxed: Optional[requests.Session] = None
        if self.config.relaxed_tls:
            self._relaxed = requests.Session()
            self._relaxed.verify = False
            warnings.filterwarnings("ignore", category=InsecureRequestWarning)
            logger.warning(
                "Relaxed TLS enabled for %s; certificates from these hosts are not verified",
                ", ".join(sorted(self.config.relaxed_hosts)) or "no hosts",
            )

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled connections."""
        self._secure.close()
        if self._relaxed is not None:
            self._relaxed.close()

    def _uses_relaxed(self, url: str) -> bool:
        if self._relaxed is None:
            return False
        host = (urlparse(url).hostname or "").lower()
        return host in self.config.relaxed_hosts

    def _read_body(self, response: requests.Response, started: float) -> bytes:
        """Stream the body, aborting once the whole-resource ceiling passes."""
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if time.monotonic() - started > self.config.resource_timeout:
                raise TransportError(f"resource timeout after {self.config.resource_timeout}s")
            chunks.append(chunk)
        return b"".join(chunks)

    def _fetch(self, session: requests.Session, url: str, headers: Optional[dict]) -> bytes:
        started = time.monotonic()
        with session.get(
            url,
            headers=headers,
            timeout=self.config.request_timeout,
            stream=True,
        ) as response:
            if not 200 <= response.status_code < 300:
                raise TransportError(f"HTTP {response.status_code} for {url}")
            return self._read_body(response, started)

    def get_bytes(self, url: str, headers: Optional[dict] = None) -> bytes:
        """
        GET ``url`` and return the raw body.

        Raises TransportError for connection failures, timeouts and non-2xx
        responses.
        """
        if self._uses_relaxed(url):
            try:
                return self._fetch(self._relaxed, url, headers)
            except requests.ConnectionError as e:
                logger.debug("Relaxed transport could not connect to %s (%s), retrying securely", url, e)
            except requests.RequestException as e:
                raise TransportError(str(e)) from e

        try:
            return self._fetch(self._secure, url, headers)
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

    def get_text(self, url: str, headers: Optional[dict] = None) -> str:
        """GET ``url`` and decode the body as UTF-8 (undecodable bytes replaced)."""
        return self.get_bytes(url, headers).decode("utf-8", errors="replace")
