"""OpenListUI — command-line entry point used by the web UI backend.

Every command prints one JSON object and exits 0 on success, 1 otherwise.
"""

import argparse
import json
import logging
import logging.handlers
import os
import sys

from openlistui.branding import AppBranding
from openlistui.config.settings import AppSettings, DEFAULT_DATA_DIR
from openlistui.core.service import ServiceMonitor
from openlistui.core.update_checker import UpdateChecker

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(settings: AppSettings, verbose: bool = False):
    """Configure logging to a size-rotated file and stderr."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.enable_logging and settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                settings.log_file,
                maxBytes=max(settings.log_max_size, 1) * 1024 * 1024,
                backupCount=1,
                encoding='utf-8',
            ))
        except OSError as e:
            print(f"Cannot open log file {settings.log_file}: {e}", file=sys.stderr)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='openlistui',
        description="Install, update and inspect the OpenList service.",
    )
    parser.add_argument('--config', default=os.path.join(DEFAULT_DATA_DIR, 'settings.json'),
                        help="settings file (default: %(default)s)")
    parser.add_argument('-v', '--verbose', action='store_true')
    parser.add_argument('--version', action='version',
                        version=f"{AppBranding.APP_NAME} {AppBranding.VERSION}")

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('check', help="compare installed and latest versions")
    sub.add_parser('check-luci', help="compare installed and latest LuCI app versions")

    releases = sub.add_parser('releases', help="list available releases")
    releases.add_argument('--prerelease', action='store_true', default=None,
                          help="include pre-releases")

    install = sub.add_parser('install', help="download and install a version")
    install.add_argument('--version', dest='target_version', default='latest')
    install.add_argument('--lite', action='store_true', default=None)

    urls = sub.add_parser('urls', help="show candidate download URLs")
    urls.add_argument('--version', dest='target_version', default='latest')
    urls.add_argument('--lite', action='store_true', default=None)

    sub.add_parser('update', help="install the latest version")
    sub.add_parser('status', help="service and install status")
    sub.add_parser('cache-status', help="release cache statistics")
    sub.add_parser('test-token', help="validate the GitHub token")
    return parser


def run(args: argparse.Namespace, checker: UpdateChecker) -> dict:
    command = args.command
    if command == 'check':
        return {'success': True, **checker.check_for_update()}
    if command == 'check-luci':
        return checker.check_luci_updates()
    if command == 'releases':
        return checker.list_releases(args.prerelease)
    if command == 'install':
        return checker.install(args.target_version, args.lite).to_dict()
    if command == 'update':
        return checker.update().to_dict()
    if command == 'urls':
        return checker.download_urls(args.target_version, args.lite)
    if command == 'status':
        return {
            'success': True,
            'service': ServiceMonitor().status(),
            'version': checker.current_version(),
            'binary': checker.find_binary(),
            'install_dir': checker.settings.kernel_save_path,
        }
    if command == 'cache-status':
        return checker.cache_status()
    if command == 'test-token':
        return checker.test_token()
    return {'success': False, 'message': f"Unknown command: {command}"}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = AppSettings.load(args.config)
    setup_logging(settings, args.verbose)
    logger = logging.getLogger(__name__)
    logger.debug("%s %s: %s", AppBranding.APP_NAME, AppBranding.VERSION, args.command)

    result = run(args, UpdateChecker(settings))
    print(json.dumps(result, indent=2))
    return 0 if result.get('success') else 1


if __name__ == '__main__':
    sys.exit(main())
