"""Artifact fetcher — guesses release download URLs and pulls the first
one that answers."""

import logging
import os
from urllib.error import URLError

from openlistui.branding import AppBranding
from openlistui.core.cache import ResponseCache, fingerprint
from openlistui.core.errors import InvalidVersionError, TooSmallError, UnreachableError
from openlistui.core.models import SENTINEL_VERSIONS, version_tag
from openlistui.network.http import HttpClient, apply_proxy

logger = logging.getLogger(__name__)

# Anything smaller is an error page saved as the artifact
MIN_ARTIFACT_SIZE = 1000

ACCEPTED_PROBE_STATUS = (200, 302)


def artifact_extension(arch_suffix: str) -> str:
    return ".zip" if "windows" in arch_suffix else ".tar.gz"


def artifact_name(arch_suffix: str, lite: bool = False) -> str:
    suffix = "-lite" if lite else ""
    return f"openlist-{arch_suffix}{suffix}{artifact_extension(arch_suffix)}"


def _alternate_arch(arch_suffix: str) -> str:
    """Older releases used glibc-style names without the musl marker."""
    return arch_suffix.replace("-musleabihf", "").replace("-musl", "")


class ArtifactFetcher:
    """Downloads an OpenList release artifact into ``download_dir``."""

    def __init__(self, download_dir: str, http: HttpClient | None = None,
                 proxy: str | None = None, cache: ResponseCache | None = None,
                 repo_url: str | None = None):
        self.download_dir = download_dir
        self.http = http or HttpClient()
        self.proxy = proxy
        self.cache = cache
        self.repo_url = repo_url or f"{AppBranding.WEB_BASE}/{AppBranding.VENDOR_REPO}"

    def candidate_urls(self, version: str, arch_suffix: str,
                       lite: bool = False) -> list[str]:
        """Ordered download URLs for a version/arch, canonical first."""
        tag = version_tag(version)
        name = artifact_name(arch_suffix, lite)
        alt_name = artifact_name(_alternate_arch(arch_suffix), lite)
        urls = [
            f"{self.repo_url}/releases/download/{tag}/{name}",
            f"{self.repo_url}/releases/download/{tag}/{alt_name}",
            f"{self.repo_url}/releases/latest/download/{name}",
            f"{self.repo_url}/releases/latest/download/{alt_name}",
        ]
        # alt_name == name for suffixes without a musl marker
        return list(dict.fromkeys(urls))

    def fetch(self, version: str, arch_suffix: str, lite: bool = False) -> str:
        """Download the artifact and return its local path.

        Raises InvalidVersionError for sentinel versions (no network I/O),
        TooSmallError if the only transfers that completed were undersized,
        UnreachableError if every candidate failed otherwise.
        """
        if not version or version.strip() in SENTINEL_VERSIONS:
            logger.error("Invalid version specified: %r", version)
            raise InvalidVersionError(f"Invalid version specified: {version!r}")

        dest = os.path.join(self.download_dir,
                            f"openlist-download{artifact_extension(arch_suffix)}")
        try:
            os.makedirs(self.download_dir, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create download directory %s: %s", self.download_dir, e)
            raise UnreachableError(
                f"Cannot create download directory {self.download_dir}: {e}") from e

        too_small = False
        urls = self.candidate_urls(version, arch_suffix, lite)
        for i, url in enumerate(urls, 1):
            logger.info("Trying URL %d/%d: %s", i, len(urls), url)
            target = apply_proxy(url, self.proxy)

            if not self._probe(target):
                logger.info("Skipping URL %d - not accessible", i)
                continue

            try:
                size = self.http.download(target, dest)
            except (URLError, OSError) as e:
                logger.warning("Download failed for URL %d: %s", i, e)
                self.discard(dest)
                continue

            if size < MIN_ARTIFACT_SIZE:
                logger.warning("Downloaded file too small: %d bytes", size)
                too_small = True
                self.discard(dest)
                continue

            logger.info("Downloaded %s (%d bytes)", url, size)
            return dest

        logger.error("All download URLs failed")
        if too_small:
            raise TooSmallError(
                f"Downloaded file smaller than {MIN_ARTIFACT_SIZE} bytes")
        raise UnreachableError(
            "Failed to download OpenList binary from all available sources")

    def _probe(self, url: str) -> bool:
        key = fingerprint(url, {'method': 'HEAD'})
        if self.cache is not None and self.cache.get(key) is not None:
            return True
        status = self.http.probe(url)
        logger.debug("HEAD %s -> %s", url, status)
        if status not in ACCEPTED_PROBE_STATUS:
            return False
        if self.cache is not None:
            self.cache.set(key, status)
        return True

    @staticmethod
    def discard(path: str):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove partial download %s: %s", path, e)
