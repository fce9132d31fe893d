"""Run configuration from the environment and the command line.

Precedence: CLI flag, then environment variable, then default. ``load_config``
never reads ``os.environ`` unless told to, which keeps it easy to test; the
CLI loads a ``.env`` file into the environment first.
"""

import argparse
import os
from pathlib import Path
from typing import Mapping, Optional, Sequence
from urllib.parse import urlparse

from .errors import ConfigError
from .models import ExportFormat, RunConfig

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}

GUEST_URL_VARS = ('SE_RANKING_GUEST_URL', 'GUEST_URL')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

_DEFAULTS = RunConfig(guest_url='')


def parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f'{name} must be a boolean (got {value!r})')


def parse_positive_int(name: str, value) -> int:
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigError(f'{name} must be an integer (got {value!r})') from None
    if number <= 0:
        raise ConfigError(f'{name} must be positive (got {number})')
    return number


def _check_url(name: str, url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigError(f'{name} must be an http(s) URL (got {url!r})')
    return url


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rankings-export',
        description='Export a rankings report from a guest dashboard link and relay it to a webhook.',
    )
    parser.add_argument('--guest-url', help='Guest link to the rankings page (env: SE_RANKING_GUEST_URL)')
    parser.add_argument('--webhook-url', help='Webhook that receives the file (env: WEBHOOK_URL)')
    parser.add_argument('--format', dest='export_format',
                        help='Export format (env: EXPORT_FORMAT, default csv)')
    parser.add_argument('--download-dir', help='Where the export is saved (env: DOWNLOAD_DIR)')
    parser.add_argument('--debug-dir', help='Where failure artifacts go (env: DEBUG_DIR)')
    parser.add_argument('--headless', action=argparse.BooleanOptionalAction, default=None,
                        help='Run the browser headless (env: HEADLESS, default true)')
    parser.add_argument('--headed', dest='headless', action='store_false', default=None,
                        help='Show the browser window (same as --no-headless)')
    parser.add_argument('--debug', action=argparse.BooleanOptionalAction, default=None,
                        help='Save screenshot/HTML on failure (env: DEBUG, default true)')
    parser.add_argument('--export-timeout-ms', help='Capture timeout (env: EXPORT_TIMEOUT_MS)')
    parser.add_argument('--navigation-timeout-ms', help='Page load timeout (env: NAVIGATION_TIMEOUT_MS)')
    parser.add_argument('--ui-timeout-ms', help='Per-element timeout (env: UI_TIMEOUT_MS)')
    parser.add_argument('--webhook-mode',
                        help='Upload style (env: WEBHOOK_MODE, default multipart)')
    parser.add_argument('--source-tag', help='Source field sent with the file (env: SOURCE_TAG)')
    parser.add_argument('--project', dest='project_label', help='Project label (env: PROJECT_LABEL)')
    parser.add_argument('--company', dest='company_label', help='Company label (env: COMPANY_LABEL)')
    parser.add_argument('--log-level', help='Logging level (env: LOG_LEVEL, default INFO)')
    return parser


def load_config(argv: Optional[Sequence[str]] = None,
                environ: Optional[Mapping[str, str]] = None) -> RunConfig:
    """Build a RunConfig. Raises ConfigError on missing or malformed input."""
    args = build_parser().parse_args(list(argv) if argv is not None else [])
    env = dict(environ or {})

    def pick(cli_value, *names):
        if cli_value is not None and cli_value != '':
            return cli_value
        for name in names:
            value = env.get(name, '').strip()
            if value:
                return value
        return None

    guest_url = pick(args.guest_url, *GUEST_URL_VARS)
    if not guest_url:
        raise ConfigError('Guest URL missing: pass --guest-url or set SE_RANKING_GUEST_URL')
    _check_url('Guest URL', guest_url)

    webhook_url = pick(args.webhook_url, 'WEBHOOK_URL') or ''
    if webhook_url:
        _check_url('WEBHOOK_URL', webhook_url)

    def bool_setting(cli_value, name, default):
        if cli_value is not None:
            return cli_value
        raw = env.get(name, '').strip()
        return parse_bool(name, raw) if raw else default

    def int_setting(cli_value, name, default):
        raw = pick(cli_value, name)
        return parse_positive_int(name, raw) if raw is not None else default

    fmt = pick(args.export_format, 'EXPORT_FORMAT')
    webhook_mode = (pick(args.webhook_mode, 'WEBHOOK_MODE') or _DEFAULTS.webhook_mode).lower()
    if webhook_mode not in ('multipart', 'raw'):
        raise ConfigError(f'WEBHOOK_MODE must be multipart or raw (got {webhook_mode!r})')

    log_level = (pick(args.log_level, 'LOG_LEVEL') or _DEFAULTS.log_level).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f'LOG_LEVEL must be one of {", ".join(LOG_LEVELS)} (got {log_level!r})')

    labels = env.get('EXPORT_LABELS', '').strip()
    export_labels = (tuple(s.strip() for s in labels.split(',') if s.strip())
                     if labels else _DEFAULTS.export_labels)

    return RunConfig(
        guest_url=guest_url,
        webhook_url=webhook_url,
        export_format=ExportFormat.parse(fmt) if fmt else _DEFAULTS.export_format,
        download_dir=Path(pick(args.download_dir, 'DOWNLOAD_DIR') or Path.cwd() / 'downloads'),
        debug_dir=Path(pick(args.debug_dir, 'DEBUG_DIR') or Path.cwd() / 'debug'),
        headless=bool_setting(args.headless, 'HEADLESS', _DEFAULTS.headless),
        debug=bool_setting(args.debug, 'DEBUG', _DEFAULTS.debug),
        navigation_timeout_ms=int_setting(args.navigation_timeout_ms, 'NAVIGATION_TIMEOUT_MS',
                                          _DEFAULTS.navigation_timeout_ms),
        ui_timeout_ms=int_setting(args.ui_timeout_ms, 'UI_TIMEOUT_MS', _DEFAULTS.ui_timeout_ms),
        export_timeout_ms=int_setting(args.export_timeout_ms, 'EXPORT_TIMEOUT_MS',
                                      _DEFAULTS.export_timeout_ms),
        webhook_mode=webhook_mode,
        webhook_timeout_s=int_setting(None, 'WEBHOOK_TIMEOUT_S', _DEFAULTS.webhook_timeout_s),
        source_tag=pick(args.source_tag, 'SOURCE_TAG') or _DEFAULTS.source_tag,
        project_label=pick(args.project_label, 'PROJECT_LABEL') or '',
        company_label=pick(args.company_label, 'COMPANY_LABEL') or '',
        scrape_project_name=bool_setting(None, 'SCRAPE_PROJECT_NAME', _DEFAULTS.scrape_project_name),
        export_labels=export_labels,
        prefer_last_confirm=bool_setting(None, 'PREFER_LAST_CONFIRM', _DEFAULTS.prefer_last_confirm),
        log_level=log_level,
    )


def load_from_environment(argv: Optional[Sequence[str]] = None) -> RunConfig:
    """``load_config`` against the real process environment."""
    return load_config(argv, os.environ)
