"""Update system — ties the resolver, fetcher and installer together.

Architecture:
  ReleaseResolver  — which version is newest
  ArtifactFetcher  — download the artifact for that version
  Installer        — unpack, chmod, self-test, record install dir
  UpdateChecker    — the operations the web UI calls; every failure is
                     returned as ``{success: false, message}``

The LuCI front-end package is checked against its own repository through a
second resolver with separate cache keys.
"""

import json
import logging
import os
import re
import subprocess
from datetime import datetime
from urllib.error import URLError

from packaging.version import Version, InvalidVersion

from openlistui.branding import AppBranding
from openlistui.config.settings import AppSettings
from openlistui.core.arch import arch_display_name, detect_host_arch, map_arch
from openlistui.core.cache import ResponseCache
from openlistui.core.errors import NetworkFailureError, UpdateError
from openlistui.core.fetcher import ArtifactFetcher
from openlistui.core.installer import Installer
from openlistui.core.models import (
    SENTINEL_VERSIONS, UpdateResult, normalize_version,
)
from openlistui.core.resolver import ReleaseResolver
from openlistui.network.http import HttpClient, API_TIMEOUT

logger = logging.getLogger(__name__)

NOT_INSTALLED = "Not installed"
INSTALLED_UNKNOWN = "installed"
UNKNOWN = "unknown"

# Searched after the configured install dir
COMMON_BINARY_PATHS = (
    "/usr/bin/openlist",
    "/usr/local/bin/openlist",
    "/opt/bin/openlist",
    "/tmp/openlist/openlist",
    "/etc/openlistui/openlist",
    "/usr/share/openlistui/openlist",
)

# Written by the LuCI package at build time
LUCI_VERSION_FILE = "/usr/lib/lua/luci/version-openlistui"

_VERSION_RE = r'([vV]?\d+\.\d+\.\d+[\w.\-]*)'
_SKIP_PREFIXES = ("Go Version:", "Built At:", "Author:", "Commit ID:")

# Process-wide; rebuilt empty on restart
_shared_cache = ResponseCache()


def parse_version_output(output: str) -> str | None:
    """Pick the OpenList version out of ``openlist version`` output.

    Prefers the ``Version:`` line, then ``WebVersion:``, then any bare
    version that is not on a Go/build metadata line. Returns a ``v``-prefixed
    version or None.
    """
    lines = [line.strip() for line in (output or '').splitlines()]

    for prefix in ("Version:", "WebVersion:"):
        for line in lines:
            if line.startswith(prefix):
                m = re.match(prefix + r'\s*' + _VERSION_RE, line)
                if m:
                    return _with_v(m.group(1))

    for line in lines:
        if line.startswith(_SKIP_PREFIXES):
            continue
        m = re.match(_VERSION_RE, line)
        # 1.x.y on its own is the Go toolchain, not OpenList
        if m and not re.match(r'[vV]?1\.\d+\.\d+', m.group(1)):
            return _with_v(m.group(1))
    return None


def _with_v(version: str) -> str:
    return version if version[:1] in ('v', 'V') else f"v{version}"


def is_newer(current: str, latest: str) -> bool:
    """True when ``latest`` is a usable version different from/newer than ``current``."""
    invalid = SENTINEL_VERSIONS | {NOT_INSTALLED, INSTALLED_UNKNOWN}
    if current in invalid or latest in invalid:
        return False
    cur, new = normalize_version(current), normalize_version(latest)
    try:
        return Version(new) > Version(cur)
    except InvalidVersion:
        return cur != new


class UpdateChecker:
    """Checks GitHub Releases, downloads and installs OpenList."""

    def __init__(self, settings: AppSettings, cache: ResponseCache | None = None,
                 http: HttpClient | None = None, runner=subprocess.run):
        self.settings = settings
        self.cache = cache if cache is not None else _shared_cache
        self.http = http or HttpClient()
        self._run = runner

        self.resolver = ReleaseResolver(
            self.cache, self.http, token=settings.token, proxy=settings.proxy)
        self.luci_resolver = ReleaseResolver(
            self.cache, self.http, token=settings.token, proxy=settings.proxy,
            api_url=AppBranding.releases_api_url(AppBranding.LUCI_REPO),
            page_url=AppBranding.releases_page_url(AppBranding.LUCI_REPO),
            cache_prefix="luci")
        self.luci_version_file = LUCI_VERSION_FILE
        self.fetcher = ArtifactFetcher(
            settings.kernel_save_path, self.http, proxy=settings.proxy,
            cache=self.cache)
        self.installer = Installer(settings, runner=runner)

    # ── Environment ──────────────────────────────────────────────────

    def arch(self) -> str:
        """Release suffix for the configured (or detected) architecture."""
        return map_arch(self.settings.target_arch or detect_host_arch())

    def find_binary(self) -> str | None:
        """Locate the installed binary, updating the install dir if it moved."""
        configured = os.path.join(self.settings.kernel_save_path,
                                  AppBranding.BINARY_NAME)
        if os.path.isfile(configured):
            return configured

        for path in COMMON_BINARY_PATHS:
            if os.path.isfile(path):
                logger.info("OpenList binary found at: %s", path)
                self.settings.set_install_dir(os.path.dirname(path))
                return path

        logger.info("OpenList binary not found in any common location")
        return None

    def current_version(self) -> str:
        binary = self.find_binary()
        if binary is None:
            return NOT_INSTALLED
        try:
            result = self._run([binary, 'version'], capture_output=True,
                               text=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Failed to run %s version: %s", binary, e)
            return INSTALLED_UNKNOWN

        version = parse_version_output(result.stdout)
        if version is None:
            logger.info("OpenList binary found but version unknown")
            return INSTALLED_UNKNOWN
        logger.info("OpenList version detected: %s", version)
        return version

    # ── Check ────────────────────────────────────────────────────────

    def latest_version(self) -> str:
        """Latest stable version, or ``"unknown"`` when GitHub is unreachable."""
        try:
            return self.resolver.latest_version()
        except NetworkFailureError as e:
            logger.warning("Failed to get OpenList latest version: %s", e)
            return UNKNOWN

    def check_for_update(self) -> dict:
        current = self.current_version()
        latest = self.latest_version()
        available = is_newer(current, latest)
        logger.info("OpenList: %s -> %s (update: %s)", current, latest, available)
        return {
            'updates': {
                'openlist': {
                    'current': current,
                    'latest': latest,
                    'update_available': available,
                },
            },
        }

    def list_releases(self, include_prerelease: bool | None = None) -> dict:
        if include_prerelease is None:
            include_prerelease = self.settings.include_prerelease
        arch = self.arch()
        result = {
            'current_version': self.current_version(),
            'system_arch': arch,
            'arch_display': arch_display_name(arch),
        }
        try:
            releases = self.resolver.list_releases(include_prerelease)
        except NetworkFailureError as e:
            result.update(success=False, message=str(e), releases=[])
            return result

        entries = []
        for release in releases:
            entry = release.to_dict()
            entry['download_url'] = self.fetcher.candidate_urls(release.tag, arch)[0]
            entry['download_url_lite'] = self.fetcher.candidate_urls(
                release.tag, arch, lite=True)[0]
            entries.append(entry)
        result.update(success=True, releases=entries)
        return result

    def download_urls(self, version: str = "latest", lite: bool | None = None) -> dict:
        """Candidate URLs for a version without downloading anything."""
        if lite is None:
            lite = self.settings.use_lite
        arch = self.arch()
        if version in ("", "latest"):
            version = self.latest_version()
        result = {'arch': arch, 'version': version, 'lite': lite}
        if version in SENTINEL_VERSIONS:
            result.update(success=False,
                          message=f"Failed to get latest version: {version}")
            return result
        result.update(success=True, urls=self.fetcher.candidate_urls(version, arch, lite))
        return result

    # ── LuCI package ─────────────────────────────────────────────────

    def current_luci_version(self) -> str:
        """Installed LuCI package version: version file first, then opkg."""
        try:
            with open(self.luci_version_file, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except OSError:
            lines = []
        for prefix in ("PKG_VERSION=", "VERSION="):
            for line in lines:
                if line.startswith(prefix):
                    version = line[len(prefix):].replace('"', '').strip()
                    if version:
                        return version

        package = AppBranding.LUCI_PACKAGE
        # "<name> - <version>"
        for line in self._opkg('list-installed').splitlines():
            parts = line.split()
            if len(parts) >= 3 and parts[0] == package:
                return parts[2]
        for line in self._opkg('info', package).splitlines():
            if line.startswith("Version:"):
                version = line[len("Version:"):].strip()
                if version:
                    return version
        return UNKNOWN

    def _opkg(self, *args: str) -> str:
        try:
            result = self._run(['opkg', *args], capture_output=True,
                               text=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("opkg %s failed: %s", ' '.join(args), e)
            return ''
        if result.returncode != 0:
            return ''
        return result.stdout or ''

    def latest_luci_version(self) -> str:
        try:
            return self.luci_resolver.latest_version()
        except NetworkFailureError as e:
            logger.warning("Failed to get latest LuCI app version: %s", e)
            return UNKNOWN

    def check_luci_updates(self) -> dict:
        current = self.current_luci_version()
        latest = self.latest_luci_version()
        available = is_newer(current, latest)
        logger.info("LuCI app: %s -> %s (update: %s)", current, latest, available)
        return {
            'success': True,
            'current_version': current,
            'latest_version': latest,
            'update_available': available,
            'download_url': AppBranding.releases_page_url(AppBranding.LUCI_REPO),
        }

    # ── Install ──────────────────────────────────────────────────────

    def install(self, version: str | None = None, lite: bool | None = None) -> UpdateResult:
        """Download and install ``version`` (latest when None/"latest")."""
        if lite is None:
            lite = self.settings.use_lite
        if not version or version == "latest":
            version = self.latest_version()
        label = f"{version}{' (Lite)' if lite else ''}"
        logger.info("Starting OpenList installation - version: %s", label)

        if version in SENTINEL_VERSIONS:
            return UpdateResult(
                False,
                "Unable to determine version to install - check network connection")

        arch = self.arch()
        artifact = None
        try:
            artifact = self.fetcher.fetch(version, arch, lite)
            self.installer.install(artifact, self.settings.kernel_save_path)
        except UpdateError as e:
            logger.error("Installation failed: %s", e)
            return UpdateResult(False, str(e))
        except OSError as e:
            logger.error("Installation failed: %s", e)
            return UpdateResult(False, f"Installation failed: {e}")
        finally:
            if artifact:
                self.fetcher.discard(artifact)

        installed = self.current_version()
        logger.info("OpenList %s installed successfully (version: %s)", label, installed)
        return UpdateResult(True, f"OpenList {label} installed successfully",
                            version=installed)

    def update(self) -> UpdateResult:
        return self.install("latest")

    # ── Diagnostics ──────────────────────────────────────────────────

    def test_token(self) -> dict:
        """Check the configured GitHub token against the rate-limit API."""
        token = self.settings.token
        if not token:
            return {'success': False, 'message': "No GitHub token configured",
                    'authenticated': False, 'rate_limit': "N/A"}

        logger.info("Testing GitHub token validity")
        headers = {'Accept': 'application/vnd.github+json',
                   'Authorization': f"Bearer {token}"}
        try:
            data = json.loads(self.http.get_text(
                AppBranding.rate_limit_url(), headers=headers, timeout=API_TIMEOUT))
            core = data['resources']['core']
            limit = {
                'limit': int(core.get('limit', 0)),
                'remaining': int(core.get('remaining', 0)),
                'reset_time': int(core.get('reset', 0)),
            }
        except (URLError, OSError) as e:
            logger.warning("GitHub token test failed: %s", e)
            return {'success': False, 'authenticated': False, 'rate_limit': "API error",
                    'message': "Failed to contact GitHub API or invalid token"}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Unexpected rate limit response: %s", e)
            return {'success': False, 'authenticated': False, 'rate_limit': "Parse error",
                    'message': "GitHub token response received but unable to parse "
                               "rate limit info"}

        if limit['reset_time'] > 0:
            limit['reset_date'] = datetime.fromtimestamp(
                limit['reset_time']).strftime('%Y-%m-%d %H:%M:%S')
        logger.info("Token valid - Limit: %d, Remaining: %d",
                    limit['limit'], limit['remaining'])
        return {'success': True, 'authenticated': True, 'rate_limit': limit,
                'message': "GitHub token is valid and working"}

    def cache_status(self) -> dict:
        stats = self.cache.stats()
        return {
            'success': True,
            'cache': stats,
            'cache_details': self.cache.details(),
            'message': (f"Cache contains {stats['total']} entries "
                        f"({stats['valid']} valid, {stats['expired']} expired)"),
        }
