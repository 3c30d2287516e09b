import io
import os
import subprocess
import tarfile
from urllib.error import URLError

import pytest

from openlistui.config.settings import AppSettings
from openlistui.core.cache import ResponseCache


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeHttp:
    """Records every call; answers from canned tables."""

    def __init__(self):
        self.pages: dict[str, object] = {}
        self.statuses: dict[str, int] = {}
        self.files: dict[str, object] = {}
        self.calls: list[tuple] = []

    def get_text(self, url, headers=None, timeout=30):
        self.calls.append(('GET', url, headers))
        body = self.pages.get(url)
        if body is None:
            raise URLError("connection refused")
        if isinstance(body, Exception):
            raise body
        return body

    def probe(self, url, timeout=30):
        self.calls.append(('HEAD', url, None))
        return self.statuses.get(url, 404)

    def download(self, url, dest, timeout=300):
        self.calls.append(('DOWNLOAD', url, None))
        data = self.files.get(url)
        if data is None:
            raise URLError("not found")
        if isinstance(data, Exception):
            raise data
        with open(dest, 'wb') as f:
            f.write(data)
        return len(data)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


def make_tarball(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode='w:gz') as tf:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def fake_runner(returncode: int = 0, stdout: str = "Version: v4.2.0\n"):
    calls = []

    def run(args, **kwargs):
        calls.append(list(args))
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")

    run.calls = calls
    return run


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(clock=clock)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def settings(tmp_path):
    s = AppSettings(
        data_dir=str(tmp_path / 'etc'),
        kernel_save_path=str(tmp_path / 'openlist'),
        target_arch='x86_64',
        enable_logging=False,
    )
    return s


@pytest.fixture
def openlist_tarball():
    # ~230 KB of incompressible data
    return make_tarball({'openlist': os.urandom(230 * 1024)})
