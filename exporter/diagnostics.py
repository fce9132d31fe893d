"""Debug artifacts written when a run fails.

``Diagnostics.capture`` is called once, at the runner's error boundary. Each
write is best-effort: a screenshot that cannot be taken must never hide
the error that caused the failure.
"""

import json
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError, Page, Response

log = logging.getLogger(__name__)


class NetworkLog:
    """Keeps the most recent responses seen by a page."""

    def __init__(self, limit: int = 200):
        self.entries: deque = deque(maxlen=limit)

    def attach(self, page: Page) -> None:
        page.on('response', self.on_response)

    def on_response(self, response: Response) -> None:
        try:
            entry = {
                'time': datetime.now(timezone.utc).isoformat(timespec='milliseconds'),
                'method': response.request.method,
                'url': response.url,
                'status': response.status,
                'content_type': response.headers.get('content-type', ''),
            }
        except PlaywrightError as exc:
            log.debug('Could not record response: %s', exc)
            return
        self.entries.append(entry)

    def to_list(self) -> list:
        return list(self.entries)


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S_%f')


class Diagnostics:
    """Writes a screenshot, the page HTML and optionally a JSON blob to ``debug_dir``."""

    def __init__(self, debug_dir: Path, network_log: Optional[NetworkLog] = None):
        self.debug_dir = Path(debug_dir)
        self.network_log = network_log

    def capture(self, page: Page, prefix: str = 'fail', context: Optional[dict] = None) -> list:
        """Write debug artifacts for ``page``. Returns the paths actually written."""
        written = []
        try:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.warning('Could not create debug dir %s: %s', self.debug_dir, exc)
            return written

        stamp = _stamp()
        png = self.debug_dir / f'{prefix}-{stamp}.png'
        html = self.debug_dir / f'{prefix}-{stamp}.html'
        blob = self.debug_dir / f'{prefix}-{stamp}.json'

        try:
            page.screenshot(path=str(png), full_page=True)
            written.append(png)
        except (PlaywrightError, OSError) as exc:
            log.warning('Could not save screenshot: %s', exc)

        try:
            html.write_text(page.content(), encoding='utf-8')
            written.append(html)
        except (PlaywrightError, OSError) as exc:
            log.warning('Could not save page HTML: %s', exc)

        network = self.network_log.to_list() if self.network_log else []
        if network or context:
            payload = {'context': context or {}, 'network': network}
            try:
                blob.write_text(json.dumps(payload, indent=2, default=str), encoding='utf-8')
                written.append(blob)
            except (OSError, TypeError, ValueError) as exc:
                log.warning('Could not save network log: %s', exc)

        if written:
            log.info('Debug artifacts saved: %s', ', '.join(str(p) for p in written))
        return written
