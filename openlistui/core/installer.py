"""Installer — unpacks a downloaded artifact into the install directory.

The binary at ``<install_dir>/openlist`` is overwritten on every run. There
is no backup of the previous binary.
"""

import logging
import os
import shutil
import stat
import subprocess
import tarfile
import threading
import zipfile

from openlistui.config.settings import AppSettings
from openlistui.core.errors import ExtractFailedError, NotFoundError, VerifyFailedError
from openlistui.core.models import InstallTarget

logger = logging.getLogger(__name__)

SELF_TEST_TIMEOUT = 10

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(install_dir: str) -> threading.Lock:
    key = os.path.realpath(install_dir)
    with _locks_guard:
        return _locks.setdefault(key, threading.Lock())


class Installer:
    """Places the OpenList binary and records where it lives."""

    def __init__(self, settings: AppSettings | None = None, runner=subprocess.run):
        self.settings = settings
        self._run = runner

    def install(self, artifact_path: str, install_dir: str) -> str:
        """Install ``artifact_path`` into ``install_dir``; returns the binary path.

        Raises NotFoundError if the artifact is missing and ExtractFailedError
        if it cannot be unpacked, does not contain ``openlist`` or the install
        directory is not writable.
        """
        if not artifact_path or not os.path.isfile(artifact_path):
            raise NotFoundError(f"Binary file not found: {artifact_path}")

        target = InstallTarget(install_dir=install_dir, artifact_path=artifact_path)
        with _lock_for(install_dir):
            try:
                os.makedirs(install_dir, exist_ok=True)
            except OSError as e:
                raise ExtractFailedError(
                    f"Cannot create install directory {install_dir}: {e}") from e
            logger.info("Installing %s into %s", artifact_path, install_dir)

            name = artifact_path.lower()
            if name.endswith(('.tar.gz', '.tgz')):
                self._extract_tar(target)
            elif name.endswith('.zip'):
                self._extract_zip(target)
            else:
                self._copy_binary(target)

            if not os.path.isfile(target.binary_path):
                logger.error("Extracted binary not found at %s", target.binary_path)
                raise ExtractFailedError("Extracted binary not found")

            try:
                mode = os.stat(target.binary_path).st_mode
                os.chmod(target.binary_path,
                         mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            except OSError as e:
                raise ExtractFailedError(f"Cannot make binary executable: {e}") from e

            self.self_test(target.binary_path)

        if self.settings is not None:
            self.settings.set_install_dir(install_dir)

        logger.info("OpenList binary installed to %s", target.binary_path)
        return target.binary_path

    def self_test(self, binary: str) -> bool:
        """Run ``<binary> --version``. Failure is only a warning."""
        try:
            self._verify(binary)
        except VerifyFailedError as e:
            logger.warning("Binary installed but %s", e)
            return False
        return True

    def _verify(self, binary: str):
        try:
            result = self._run([binary, '--version'], capture_output=True,
                               text=True, timeout=SELF_TEST_TIMEOUT)
        except (OSError, subprocess.SubprocessError) as e:
            raise VerifyFailedError(f"version check failed: {e}") from e
        if result.returncode != 0:
            raise VerifyFailedError(
                f"version check exited with {result.returncode}")

    @staticmethod
    def _require_binary(names: list[str], target: InstallTarget):
        members = {os.path.normpath(n) for n in names}
        if target.binary_name not in members:
            logger.error("Archive %s does not contain %s",
                         target.artifact_path, target.binary_name)
            raise ExtractFailedError(
                f"Archive does not contain {target.binary_name}")

    @classmethod
    def _extract_tar(cls, target: InstallTarget):
        try:
            with tarfile.open(target.artifact_path, 'r:*') as tf:
                cls._require_binary(tf.getnames(), target)
                tf.extractall(target.install_dir, filter='data')
        except (tarfile.TarError, OSError) as e:
            logger.error("Failed to extract tar.gz file: %s", e)
            raise ExtractFailedError(f"Failed to extract downloaded archive: {e}") from e

    @classmethod
    def _extract_zip(cls, target: InstallTarget):
        try:
            with zipfile.ZipFile(target.artifact_path, 'r') as zf:
                cls._require_binary(zf.namelist(), target)
                zf.extractall(target.install_dir)
        except (zipfile.BadZipFile, OSError) as e:
            logger.error("Failed to extract zip file: %s", e)
            raise ExtractFailedError(f"Failed to extract downloaded archive: {e}") from e

    @staticmethod
    def _copy_binary(target: InstallTarget):
        if os.path.abspath(target.artifact_path) == os.path.abspath(target.binary_path):
            return
        try:
            shutil.copyfile(target.artifact_path, target.binary_path)
        except OSError as e:
            raise ExtractFailedError(
                f"Failed to copy binary to installation directory: {e}") from e
        logger.info("Copied binary to %s", target.binary_path)
