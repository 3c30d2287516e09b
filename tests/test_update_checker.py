import json
import os
import subprocess
from unittest import mock

import pytest

from conftest import fake_runner, make_tarball
from openlistui.core.cache import ResponseCache
from openlistui.core.resolver import LATEST_VERSION_KEY
from openlistui.core.update_checker import (
    NOT_INSTALLED, UpdateChecker, is_newer, parse_version_output,
)

API = "https://api.github.com/repos/OpenListTeam/OpenList/releases"
CANONICAL = ("https://github.com/OpenListTeam/OpenList/releases/download/"
             "v4.2.0/openlist-linux-musl-amd64.tar.gz")

VERSION_OUTPUT = """\
Built At: 2025-08-01 10:00:00 +0000
Go Version: go1.24.5 linux/amd64
Author: The OpenList Projects Contributors
Commit ID: abc1234
Version: v4.2.0
WebVersion: v4.2.1
"""


@pytest.fixture
def checker(settings, cache, http, monkeypatch):
    monkeypatch.setattr('openlistui.core.update_checker.COMMON_BINARY_PATHS', ())
    return UpdateChecker(settings, cache=cache, http=http, runner=fake_runner())


# ── Version parsing ──────────────────────────────────────────────────

def test_parse_prefers_version_line():
    assert parse_version_output(VERSION_OUTPUT) == 'v4.2.0'


def test_parse_falls_back_to_web_version():
    assert parse_version_output("Go Version: go1.24.5\nWebVersion: 4.1.0\n") == 'v4.1.0'


def test_parse_bare_version_skips_go_style():
    assert parse_version_output("1.24.5\n4.0.9\n") == 'v4.0.9'


def test_parse_nothing():
    assert parse_version_output("usage: openlist [command]") is None
    assert parse_version_output("") is None


@pytest.mark.parametrize('current, latest, expected', [
    ('v4.1.0', '4.2.0', True),
    ('v4.2.0', '4.2.0', False),
    ('v4.3.0', '4.2.0', False),
    (NOT_INSTALLED, '4.2.0', False),
    ('v4.1.0', 'unknown', False),
    ('installed', '4.2.0', False),
    ('beta-x', 'beta-y', True),
])
def test_is_newer(current, latest, expected):
    assert is_newer(current, latest) is expected


# ── Check / list ─────────────────────────────────────────────────────

def test_arch_from_settings(checker, settings, monkeypatch):
    assert checker.arch() == 'linux-musl-amd64'
    settings.target_arch = ''
    monkeypatch.setattr('openlistui.core.update_checker.detect_host_arch', lambda: 'aarch64')
    assert checker.arch() == 'linux-musl-arm64'


def test_not_installed(checker):
    assert checker.find_binary() is None
    assert checker.current_version() == NOT_INSTALLED


def test_check_for_update(checker, settings, cache):
    os.makedirs(settings.kernel_save_path)
    with open(os.path.join(settings.kernel_save_path, 'openlist'), 'w') as f:
        f.write('bin')
    checker._run = fake_runner(stdout="Version: v4.1.0\n")
    cache.set(LATEST_VERSION_KEY, '4.2.0')

    result = checker.check_for_update()['updates']['openlist']
    assert result == {'current': 'v4.1.0', 'latest': '4.2.0', 'update_available': True}


def test_latest_version_unknown_when_offline(checker):
    assert checker.latest_version() == 'unknown'


def test_list_releases(checker, http):
    http.pages[API] = json.dumps([
        {'tag_name': 'v4.2.0', 'name': 'v4.2.0', 'published_at': '2025-08-01T00:00:00Z',
         'prerelease': False, 'draft': False},
    ])
    result = checker.list_releases(False)
    assert result['success'] is True
    assert result['system_arch'] == 'linux-musl-amd64'
    assert result['arch_display'] == 'x86_64 (64-bit)'
    release = result['releases'][0]
    assert release['download_url'] == CANONICAL
    assert release['download_url_lite'].endswith('-lite.tar.gz')


def test_list_releases_offline(checker):
    result = checker.list_releases()
    assert result['success'] is False
    assert result['releases'] == []


def test_download_urls_resolves_latest(checker, cache):
    cache.set(LATEST_VERSION_KEY, '4.2.0')
    result = checker.download_urls()
    assert result['success'] is True
    assert result['urls'][0] == CANONICAL


def test_download_urls_offline(checker):
    assert checker.download_urls()['success'] is False


# ── Install ──────────────────────────────────────────────────────────

def test_end_to_end_install(checker, settings, http, openlist_tarball):
    http.statuses[CANONICAL] = 200
    http.files[CANONICAL] = openlist_tarball

    result = checker.install('4.2.0', lite=False)

    assert result.success is True
    assert result.version == 'v4.2.0'
    assert result.to_dict() == {'success': True, 'version': 'v4.2.0',
                                'message': 'OpenList 4.2.0 installed successfully'}
    assert http.calls[0] == ('HEAD', CANONICAL, None)
    binary = os.path.join(settings.kernel_save_path, 'openlist')
    assert os.access(binary, os.X_OK)
    # temporary artifact cleaned up
    assert os.listdir(settings.kernel_save_path) == ['openlist']
    with open(settings.path, encoding='utf-8') as f:
        assert json.load(f)['kernel_save_path'] == settings.kernel_save_path


def test_install_latest_from_cache(checker, cache, http, openlist_tarball):
    cache.set(LATEST_VERSION_KEY, '4.2.0')
    http.statuses[CANONICAL] = 200
    http.files[CANONICAL] = openlist_tarball
    assert checker.update().success is True
    assert http.count('GET') == 0


def test_install_without_network(checker, http):
    result = checker.install()
    assert result.success is False
    assert 'Unable to determine version' in result.message
    assert http.count('HEAD') == 0


def test_install_reports_download_failure(checker):
    result = checker.install('4.2.0')
    assert result.to_dict() == {
        'success': False,
        'message': 'Failed to download OpenList binary from all available sources',
    }


def test_install_lite_uses_lite_artifact(checker, settings, http, openlist_tarball):
    settings.core_type = 'lite'
    lite = CANONICAL.replace('.tar.gz', '-lite.tar.gz')
    http.statuses[lite] = 200
    http.files[lite] = openlist_tarball
    result = checker.install('4.2.0')
    assert result.success is True
    assert '(Lite)' in result.message


def test_install_dir_under_a_file_is_reported(settings, cache, http, tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('not a directory')
    settings.kernel_save_path = str(blocker / 'openlist')
    checker = UpdateChecker(settings, cache=cache, http=http, runner=fake_runner())
    http.statuses[CANONICAL] = 200

    result = checker.install('4.2.0')

    assert result.success is False
    assert 'Cannot create download directory' in result.message
    assert http.count('HEAD') == 0


def test_install_os_error_becomes_failed_result(checker, settings, http,
                                                openlist_tarball):
    http.statuses[CANONICAL] = 200
    http.files[CANONICAL] = openlist_tarball
    checker.installer.install = mock.Mock(side_effect=PermissionError("read-only"))

    result = checker.install('4.2.0')

    assert result.success is False
    assert result.message == "Installation failed: read-only"
    # downloaded artifact removed even though install blew up
    assert os.listdir(settings.kernel_save_path) == []


def test_install_without_archive_binary_fails(checker, http):
    http.statuses[CANONICAL] = 200
    http.files[CANONICAL] = make_tarball({'openlist-server': os.urandom(4096)})
    result = checker.install('4.2.0')
    assert result.success is False
    assert 'does not contain openlist' in result.message


# ── LuCI package ─────────────────────────────────────────────────────

LUCI_API = "https://api.github.com/repos/drfccv/luci-app-openlistui/releases"

LUCI_VERSION_FILE = """\
# OpenList UI Version Information
PKG_NAME=luci-app-openlistui
PKG_VERSION="1.0.5"
PKG_VERSION_BASE=1.0
"""


def opkg_runner(outputs: dict[str, str]):
    """Answers ``opkg <subcommand>`` from ``outputs``; anything else fails."""
    def run(args, **kwargs):
        if args[0] != 'opkg' or args[1] not in outputs:
            raise FileNotFoundError(args[0])
        return subprocess.CompletedProcess(args, 0, stdout=outputs[args[1]], stderr="")
    return run


def test_luci_version_from_version_file(checker, tmp_path):
    path = tmp_path / 'version-openlistui'
    path.write_text(LUCI_VERSION_FILE)
    checker.luci_version_file = str(path)
    assert checker.current_luci_version() == '1.0.5'


def test_luci_version_file_plain_version_key(checker, tmp_path):
    path = tmp_path / 'version-openlistui'
    path.write_text('VERSION=1.0.4\n')
    checker.luci_version_file = str(path)
    assert checker.current_luci_version() == '1.0.4'


def test_luci_version_from_opkg_list(settings, cache, http, tmp_path):
    checker = UpdateChecker(settings, cache=cache, http=http, runner=opkg_runner({
        'list-installed': "luci-base - git-24.1\nluci-app-openlistui - 1.0.3-r1\n",
    }))
    checker.luci_version_file = str(tmp_path / 'missing')
    assert checker.current_luci_version() == '1.0.3-r1'


def test_luci_version_from_opkg_info(settings, cache, http, tmp_path):
    checker = UpdateChecker(settings, cache=cache, http=http, runner=opkg_runner({
        'list-installed': "luci-base - git-24.1\n",
        'info': "Package: luci-app-openlistui\nVersion: 1.0.2\nStatus: installed\n",
    }))
    checker.luci_version_file = str(tmp_path / 'missing')
    assert checker.current_luci_version() == '1.0.2'


def test_luci_version_unknown_without_opkg(settings, cache, http, tmp_path):
    checker = UpdateChecker(settings, cache=cache, http=http, runner=opkg_runner({}))
    checker.luci_version_file = str(tmp_path / 'missing')
    assert checker.current_luci_version() == 'unknown'


def test_latest_luci_version_from_cache(checker, cache, http):
    cache.set('luci_latest_version', '1.0.7')
    assert checker.latest_luci_version() == '1.0.7'
    assert http.calls == []


def test_latest_luci_version_unknown_when_offline(checker):
    assert checker.latest_luci_version() == 'unknown'


def test_check_luci_updates(checker, http, tmp_path):
    path = tmp_path / 'version-openlistui'
    path.write_text(LUCI_VERSION_FILE)
    checker.luci_version_file = str(path)
    http.pages[LUCI_API] = json.dumps([
        {'tag_name': 'v1.0.7', 'prerelease': False, 'draft': False},
        {'tag_name': 'v1.0.5', 'prerelease': False, 'draft': False},
    ])

    result = checker.check_luci_updates()

    assert result == {
        'success': True,
        'current_version': '1.0.5',
        'latest_version': '1.0.7',
        'update_available': True,
        'download_url': "https://github.com/drfccv/luci-app-openlistui/releases",
    }
    assert http.calls[0][1] == LUCI_API


def test_check_luci_updates_offline(settings, cache, http, tmp_path):
    checker = UpdateChecker(settings, cache=cache, http=http, runner=opkg_runner({}))
    checker.luci_version_file = str(tmp_path / 'missing')
    result = checker.check_luci_updates()
    assert result['success'] is True
    assert result['current_version'] == 'unknown'
    assert result['update_available'] is False
    assert result['latest_version'] == 'unknown'


# ── Diagnostics ──────────────────────────────────────────────────────

def test_token_not_configured(checker):
    result = checker.test_token()
    assert result['success'] is False
    assert result['rate_limit'] == 'N/A'


def test_token_valid(checker, settings, http):
    settings.github_token = 'ghp_x'
    http.pages["https://api.github.com/rate_limit"] = json.dumps(
        {'resources': {'core': {'limit': 5000, 'remaining': 4999, 'reset': 1700000000}}})
    result = checker.test_token()
    assert result['success'] is True
    assert result['rate_limit']['limit'] == 5000
    assert result['rate_limit']['remaining'] == 4999
    assert 'reset_date' in result['rate_limit']
    assert http.calls[0][2]['Authorization'] == 'Bearer ghp_x'


def test_token_unparsable(checker, settings, http):
    settings.github_token = 'ghp_x'
    http.pages["https://api.github.com/rate_limit"] = json.dumps({'message': 'Bad credentials'})
    assert checker.test_token()['rate_limit'] == 'Parse error'


def test_token_api_unreachable(checker, settings):
    settings.github_token = 'ghp_x'
    assert checker.test_token()['rate_limit'] == 'API error'


def test_cache_status(checker, cache):
    cache.set(LATEST_VERSION_KEY, '4.2.0')
    result = checker.cache_status()
    assert result['cache']['valid'] == 1
    assert LATEST_VERSION_KEY in result['cache_details']
    assert result['message'] == "Cache contains 1 entries (1 valid, 0 expired)"


def test_default_cache_is_shared(settings, http):
    a = UpdateChecker(settings, http=http)
    b = UpdateChecker(settings, http=http)
    assert a.cache is b.cache
    assert isinstance(a.cache, ResponseCache)
