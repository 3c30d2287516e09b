"""Application settings — persistence via JSON."""

import json
import logging
import os
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.environ.get('OPENLISTUI_DATA_DIR', '/etc/openlistui')
DEFAULT_INSTALL_DIR = "/tmp/openlist"


@dataclass
class AppSettings:
    """Persistent application settings."""
    # Service
    port: int = 5244
    data_dir: str = ""

    # Integration
    kernel_save_path: str = DEFAULT_INSTALL_DIR   # install dir of the binary
    target_arch: str = ""                         # '' = detect from host
    release_branch: str = "master"                # 'master' or 'dev'
    core_type: str = "full"                       # 'full' or 'lite'
    proxy_url: str = ""                           # download proxy, never used for API
    github_token: str = ""

    # Logging
    enable_logging: bool = True
    log_file: str = "/var/log/openlistui.log"
    log_max_size: int = 4                         # MiB

    def __post_init__(self):
        if not self.data_dir:
            self.data_dir = DEFAULT_DATA_DIR
        if not self.kernel_save_path:
            self.kernel_save_path = DEFAULT_INSTALL_DIR

    @property
    def path(self) -> str:
        return os.path.join(self.data_dir, 'settings.json')

    @property
    def proxy(self) -> str | None:
        return self.proxy_url.strip() or None

    @property
    def token(self) -> str | None:
        return self.github_token.strip() or None

    @property
    def include_prerelease(self) -> bool:
        return self.release_branch == "dev"

    @property
    def use_lite(self) -> bool:
        return self.core_type == "lite"

    @staticmethod
    def load(path: str | None = None) -> 'AppSettings':
        """Load settings from JSON. Returns defaults if file doesn't exist."""
        if path is None:
            path = os.path.join(DEFAULT_DATA_DIR, 'settings.json')

        if not os.path.isfile(path):
            logger.info("No settings file, using defaults")
            return AppSettings(data_dir=os.path.dirname(path))

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            data['data_dir'] = data.get('data_dir') or os.path.dirname(path)
            settings = AppSettings(**{k: v for k, v in data.items()
                                      if k in AppSettings.__dataclass_fields__})
            logger.info("Loaded settings from %s", path)
            return settings
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Failed to load settings: %s", e)
            return AppSettings(data_dir=os.path.dirname(path))

    def save(self, path: str | None = None):
        """Save settings to JSON."""
        if path is None:
            path = self.path

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2)
            logger.info("Saved settings to %s", path)
        except OSError as e:
            logger.warning("Failed to save settings: %s", e)

    def set_install_dir(self, install_dir: str):
        """Point the config at a new install location and persist it."""
        self.kernel_save_path = install_dir
        self.save()

