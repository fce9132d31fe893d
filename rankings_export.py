#!/usr/bin/env python3
"""
Rankings export relay.
Opens a guest rankings link, exports the report (CSV/XLSX) and posts it to a webhook.
Requires: pip install -e . && playwright install chromium
"""

import logging
import sys

from dotenv import load_dotenv

from exporter import (  # noqa: F401
    ConfigError,
    ExportError,
    ExportFormat,
    RunConfig,
    RunResult,
    load_from_environment,
    run_export,
)

log = logging.getLogger('rankings_export')


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv=None) -> int:
    """CLI entry point. Returns the process exit code."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='[%(levelname)s] %(message)s',
    )

    try:
        config = load_from_environment(sys.argv[1:] if argv is None else argv)
    except ConfigError as exc:
        log.error('Configuration error: %s', exc)
        return 2
    logging.getLogger().setLevel(config.log_level)

    print('\nRankings export relay')
    print(f'Format: {config.export_format.label}')
    print('-' * 40)

    try:
        result = run_export(config)
    except ExportError as exc:
        log.error('Fatal: %s', exc)
        return 1

    log.info('Export saved to: %s', result.artifact.path)
    if result.delivered:
        log.info('Delivered to webhook via %s upload', config.webhook_mode)
    return 0


if __name__ == '__main__':
    sys.exit(main())
