"""Release resolver — finds the newest OpenList release.

Primary source is the GitHub releases API. If it errors or yields nothing
usable, the human-facing releases page is scraped for ``/releases/tag/<TAG>``
links. Results are cached for the TTL of the shared ``ResponseCache``.
"""

import json
import logging
import re
from urllib.error import URLError
from urllib.parse import unquote

from openlistui.branding import AppBranding
from openlistui.core.cache import ResponseCache
from openlistui.core.errors import NetworkFailureError
from openlistui.core.models import ReleaseInfo
from openlistui.network.http import HttpClient, API_TIMEOUT, apply_proxy

logger = logging.getLogger(__name__)

LATEST_VERSION_KEY = "openlist_latest_version"

# Releases scraped from HTML carry no metadata; keep the list short
SCRAPE_LIMIT = 20

_TAG_LINK = re.compile(r'/releases/tag/([^"\'?#<>\s]+)')


class ReleaseResolver:
    """Looks up releases of a GitHub repository (OpenList by default)."""

    def __init__(self, cache: ResponseCache, http: HttpClient | None = None,
                 token: str | None = None, proxy: str | None = None,
                 api_url: str | None = None, page_url: str | None = None,
                 cache_prefix: str = "openlist"):
        self.cache = cache
        self.cache_prefix = cache_prefix
        self.http = http or HttpClient()
        self.token = token
        self.proxy = proxy
        self.api_url = api_url or AppBranding.releases_api_url()
        self.page_url = page_url or AppBranding.releases_page_url()

    # ── Cache keys ───────────────────────────────────────────────────

    @property
    def latest_key(self) -> str:
        return f"{self.cache_prefix}_latest_version"

    def releases_key(self, include_prerelease: bool) -> str:
        scope = 'all' if include_prerelease else 'stable'
        return f"{self.cache_prefix}_releases_{scope}"

    # ── Public ───────────────────────────────────────────────────────

    def list_releases(self, include_prerelease: bool = False) -> list[ReleaseInfo]:
        """All selectable releases, newest first.

        Drafts are always dropped, pre-releases unless ``include_prerelease``.
        Raises NetworkFailureError if neither source produced a release.
        """
        key = self.releases_key(include_prerelease)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Using cached release list (%d entries)", len(cached))
            return list(cached)

        releases = self._from_api(include_prerelease)
        if not releases:
            releases = self._from_page()
        if not releases:
            logger.error("Failed to get %s releases - all sources failed", self.cache_prefix)
            raise NetworkFailureError("Failed to fetch releases from GitHub")

        self.cache.set(key, tuple(releases))
        return releases

    def resolve_latest(self, include_prerelease: bool = False) -> ReleaseInfo:
        """Newest release satisfying the draft/prerelease filter."""
        latest = self.list_releases(include_prerelease)[0]
        logger.info("Latest %s release: %s", self.cache_prefix, latest.tag)
        return latest

    def latest_version(self) -> str:
        """Latest stable version with any leading ``v`` removed."""
        key = self.latest_key
        cached = self.cache.get(key)
        if cached:
            logger.info("Using cached %s version: %s", self.cache_prefix, cached)
            return cached

        version = self.resolve_latest(include_prerelease=False).version
        self.cache.set(key, version)
        return version

    # ── Sources ──────────────────────────────────────────────────────

    def _api_headers(self) -> dict:
        headers = {'Accept': 'application/vnd.github+json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
            logger.info("Using GitHub token for API authentication")
        else:
            logger.info("No GitHub token configured, using anonymous access")
        return headers

    def _from_api(self, include_prerelease: bool) -> list[ReleaseInfo]:
        logger.info("Querying release API: %s", self.api_url)
        try:
            body = self.http.get_text(self.api_url, headers=self._api_headers(),
                                      timeout=API_TIMEOUT)
            data = json.loads(body)
        except (URLError, OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to fetch releases: %s", e)
            return []

        if isinstance(data, dict):
            if 'tag_name' not in data:
                # Rate limit or auth error: {"message": "..."}
                logger.warning("Release API returned an error: %s", data.get('message', data))
                return []
            data = [data]
        if not isinstance(data, list):
            return []

        releases = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            info = ReleaseInfo.from_api(entry)
            if info is None or info.is_draft:
                continue
            if info.is_prerelease and not include_prerelease:
                continue
            releases.append(info)
        logger.info("Release API returned %d usable releases", len(releases))
        return releases

    def _from_page(self) -> list[ReleaseInfo]:
        url = apply_proxy(self.page_url, self.proxy)
        logger.info("Fallback to HTML scraping: %s", url)
        try:
            html = self.http.get_text(url, timeout=API_TIMEOUT)
        except (URLError, OSError) as e:
            logger.warning("Failed to fetch releases page: %s", e)
            return []

        releases: list[ReleaseInfo] = []
        seen = set()
        for match in _TAG_LINK.finditer(html):
            tag = unquote(match.group(1))
            if tag in seen:
                continue
            seen.add(tag)
            releases.append(ReleaseInfo.from_tag(tag))
            if len(releases) >= SCRAPE_LIMIT:
                break
        logger.info("Scraped %d release tags", len(releases))
        return releases
