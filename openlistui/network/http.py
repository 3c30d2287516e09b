"""Thin urllib transport: text GET, HEAD probe, streamed download."""

import logging
import os
import re
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import HTTPRedirectHandler, Request, build_opener, urlopen

from openlistui.branding import AppBranding

logger = logging.getLogger(__name__)

# Buffer size for streaming downloads (80 KB)
DOWNLOAD_BUFFER = 81920

API_TIMEOUT = 30
PROBE_TIMEOUT = 30
DOWNLOAD_TIMEOUT = 300

_PROXIED_HOSTS = re.compile(
    r'^https?://(raw\.githubusercontent\.com|gist\.githubusercontent\.com|github\.com)/'
)


def apply_proxy(url: str, proxy: str | None) -> str:
    """Rewrite a GitHub download/page URL through ``proxy``.

    API URLs are never rewritten so auth and rate-limit headers stay intact.
    """
    if not proxy or not proxy.strip():
        return url
    if not _PROXIED_HOSTS.match(url):
        return url
    proxied = f"{proxy.strip().rstrip('/')}?q={quote(url, safe='-._~')}"
    logger.info("Applied proxy to download URL: %s", proxied)
    return proxied


def _headers(extra: dict | None) -> dict:
    headers = {'User-Agent': AppBranding.user_agent()}
    if extra:
        headers.update(extra)
    return headers


class _NoRedirect(HTTPRedirectHandler):
    """Leave 3xx responses alone so a HEAD check reports them as-is."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


class HttpClient:
    """Blocking HTTP helper. Swap out in tests."""

    def __init__(self):
        self._probe_opener = build_opener(_NoRedirect)

    def get_text(self, url: str, headers: dict | None = None,
                 timeout: float = API_TIMEOUT) -> str:
        """GET ``url`` and return the decoded body.

        Raises URLError/OSError on transport failure or HTTP error status.
        """
        req = Request(url, headers=_headers(headers))
        with urlopen(req, timeout=timeout) as resp:
            return resp.read().decode('utf-8', errors='replace')

    def probe(self, url: str, timeout: float = PROBE_TIMEOUT) -> int:
        """HEAD ``url`` without following redirects.

        Returns the status code (a release asset answers 302), or 0 on
        transport failure.
        """
        req = Request(url, headers=_headers(None), method='HEAD')
        try:
            with self._probe_opener.open(req, timeout=timeout) as resp:
                return resp.status
        except HTTPError as e:
            return e.code
        except (URLError, OSError, HTTPException) as e:
            logger.debug("Probe failed for %s: %s", url, e)
            return 0

    def download(self, url: str, dest: str,
                 timeout: float = DOWNLOAD_TIMEOUT) -> int:
        """Stream ``url`` into ``dest``. Returns bytes written.

        A transfer that ends before Content-Length is reached raises OSError.
        ``dest`` is removed whenever the download fails.
        """
        req = Request(url, headers=_headers(None))
        written = 0
        os.makedirs(os.path.dirname(dest) or '.', exist_ok=True)
        try:
            with urlopen(req, timeout=timeout) as resp, open(dest, 'wb') as f:
                expected = int(resp.headers.get('Content-Length') or 0)
                while True:
                    chunk = resp.read(DOWNLOAD_BUFFER)
                    if not chunk:
                        break
                    f.write(chunk)
                    written += len(chunk)
            if expected and written < expected:
                raise OSError(f"Incomplete download: {written} of {expected} bytes")
        except (OSError, HTTPException) as e:
            if os.path.exists(dest):
                os.remove(dest)
            if isinstance(e, OSError):
                raise
            raise OSError(f"Download failed: {e}") from e
        return written
