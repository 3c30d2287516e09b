"""Update system data models."""

import os
from dataclasses import dataclass, asdict

from openlistui.branding import AppBranding

UNKNOWN_PUBLISHED = "unknown"

# Version values that mean "resolution failed" and must never be downloaded
SENTINEL_VERSIONS = frozenset({"", "unknown", "Unknown", "Network error", "null"})


def normalize_version(tag: str) -> str:
    """Strip a single leading ``v``/``V`` from a release tag."""
    if tag[:1] in ('v', 'V'):
        return tag[1:]
    return tag


def version_tag(version: str) -> str:
    """Return ``version`` with the ``v`` prefix used in download URLs."""
    return version if version.startswith('v') else f"v{version}"


@dataclass(frozen=True)
class ReleaseInfo:
    """One entry of the vendor release listing."""

    tag: str                    # Original tag, e.g. "v4.2.0"
    display_name: str
    published_at: str           # ISO timestamp or UNKNOWN_PUBLISHED
    is_prerelease: bool = False
    is_draft: bool = False

    @property
    def version(self) -> str:
        return normalize_version(self.tag)

    @classmethod
    def from_api(cls, entry: dict) -> 'ReleaseInfo | None':
        """Build from a GitHub release object. Returns None without a tag."""
        tag = entry.get('tag_name') or ''
        if not isinstance(tag, str) or not tag:
            return None
        return cls(
            tag=tag,
            display_name=entry.get('name') or tag,
            published_at=entry.get('published_at') or UNKNOWN_PUBLISHED,
            is_prerelease=bool(entry.get('prerelease')),
            is_draft=bool(entry.get('draft')),
        )

    @classmethod
    def from_tag(cls, tag: str) -> 'ReleaseInfo':
        """Minimal record synthesized from a scraped releases page."""
        return cls(tag=tag, display_name=tag, published_at=UNKNOWN_PUBLISHED)

    def to_dict(self) -> dict:
        return {
            'tag_name': self.tag,
            'name': self.display_name,
            'published_at': self.published_at,
            'prerelease': self.is_prerelease,
        }


@dataclass
class CacheEntry:
    """A cached response body."""

    key: str
    payload: object
    stored_at: float


@dataclass
class InstallTarget:
    """Where a downloaded artifact ends up."""

    install_dir: str
    artifact_path: str
    binary_name: str = AppBranding.BINARY_NAME

    @property
    def binary_path(self) -> str:
        return os.path.join(self.install_dir, self.binary_name)


@dataclass
class UpdateResult:
    """Structured outcome handed back to the UI."""

    success: bool
    message: str
    version: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data['version'] is None:
            del data['version']
        return data
