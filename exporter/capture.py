"""Multi-strategy file capture.

After the export is confirmed, the target site delivers the file through
one of several channels: a browser download, a plain network response
carrying the bytes, or a response whose body cannot be read in-band and
has to be fetched again. ``capture_export`` arms listeners for the first
two before the trigger fires, keeps whichever resolves first, and falls
back to the replay when the winning response body comes back empty.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from playwright.sync_api import Download, Error as PlaywrightError, Page, Response

from .errors import CaptureError
from .headers import (
    extension_for_content_type,
    fallback_filename,
    filename_from_content_disposition,
    format_for_filename,
    is_export_response,
    replay_headers,
    safe_filename,
    timestamped_filename,
)
from .models import CapturedArtifact, RunConfig

log = logging.getLogger(__name__)

DOWNLOAD = 'download'
RESPONSE = 'response'
REPLAY = 'replay'


class CaptureRace:
    """Listeners for the download and response channels. First candidate wins.

    Use as a context manager: listeners are attached on enter and always
    detached on exit.
    """

    def __init__(self, page: Page, config: RunConfig):
        self.page = page
        self.context = page.context
        self.config = config
        self.winner: Optional[tuple] = None  # (channel, Download | Response)
        self.late: list = []
        self._armed: list = []

    # -- listeners ----------------------------------------------------------

    def _listen(self, emitter, event: str, handler) -> None:
        emitter.on(event, handler)
        self._armed.append((emitter, event, handler))

    def _on_download(self, download: Download) -> None:
        self._offer(DOWNLOAD, download)

    def _on_response(self, response: Response) -> None:
        try:
            matched = is_export_response(response.url, response.headers,
                                         self.config.response_url_markers)
        except PlaywrightError as exc:
            log.debug('Could not inspect response %s: %s', response.url, exc)
            return
        if matched:
            self._offer(RESPONSE, response)

    def _on_page(self, new_page: Page) -> None:
        # Exports sometimes open in a new tab; its download belongs to us too.
        self._listen(new_page, 'download', self._on_download)

    def _offer(self, channel: str, candidate) -> None:
        if self.winner is None:
            log.info('Capture: %s channel resolved first', channel)
            self.winner = (channel, candidate)
        else:
            log.info('Capture: ignoring later %s event', channel)
            self.late.append(channel)

    def __enter__(self) -> 'CaptureRace':
        self._listen(self.page, 'download', self._on_download)
        self._listen(self.context, 'response', self._on_response)
        self._listen(self.context, 'page', self._on_page)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        while self._armed:
            emitter, event, handler = self._armed.pop()
            try:
                emitter.remove_listener(event, handler)
            except (KeyError, ValueError):
                pass

    # -- waiting ------------------------------------------------------------

    def wait(self) -> tuple:
        """Pump browser events until a candidate arrives or the timeout passes."""
        timeout_ms = self.config.export_timeout_ms
        interval = self.config.poll_interval_ms
        waited = 0
        while self.winner is None:
            if waited >= timeout_ms:
                raise CaptureError(
                    f'No artifact observed within {timeout_ms} ms '
                    '(no download event and no matching export response)'
                )
            self.page.wait_for_timeout(interval)
            waited += interval
        return self.winner


# ---------------------------------------------------------------------------
# Channel handlers
# ---------------------------------------------------------------------------

def _save_download(download: Download, config: RunConfig) -> CapturedArtifact:
    failure = download.failure()
    if failure:
        raise CaptureError(f'Browser download failed: {failure}')

    default_ext = config.export_format.extension
    filename = safe_filename(download.suggested_filename or '') or fallback_filename(default_ext)
    path = Path(config.download_dir) / filename
    download.save_as(path)

    size = path.stat().st_size
    if size == 0:
        path.unlink()
        raise CaptureError(f'Downloaded file {filename} has an empty body')
    return CapturedArtifact(
        path=path,
        filename=filename,
        export_format=format_for_filename(filename, default_ext),
        method=DOWNLOAD,
        size=size,
    )


def _read_body(response: Response) -> bytes:
    try:
        return response.body()
    except PlaywrightError as exc:
        log.warning('Could not read response body in-band: %s', exc)
        return b''


def replay_request(page: Page, response: Response, config: RunConfig) -> bytes:
    """Fetch the export again through the page's request client.

    The client shares the browser context's cookies, so the guest session
    carries over. Only an allow-list of the original headers is sent.
    """
    request = response.request
    log.info('Replaying %s %s', request.method, request.url)
    try:
        reply = page.request.fetch(
            request.url,
            method=request.method,
            headers=replay_headers(request.headers),
            data=request.post_data_buffer,
            timeout=config.export_timeout_ms,
        )
    except PlaywrightError as exc:
        raise CaptureError(f'Replay of {request.url} failed: {exc}') from exc

    if not reply.ok:
        raise CaptureError(f'Replay of {request.url} failed status={reply.status}')
    body = reply.body()
    if not body:
        raise CaptureError(f'Export response from {request.url} has an empty body, also after replay')
    return body


def _save_response(page: Page, response: Response, config: RunConfig) -> CapturedArtifact:
    headers = response.headers
    content_type = headers.get('content-type', '')
    default_ext = extension_for_content_type(content_type, config.export_format.extension)
    filename = (filename_from_content_disposition(headers.get('content-disposition'))
                or timestamped_filename(default_ext))

    method = RESPONSE
    body = _read_body(response)
    if not body:
        log.info('Export response body empty, refetching: %s', response.url)
        body = replay_request(page, response, config)
        method = REPLAY

    path = Path(config.download_dir) / filename
    path.write_bytes(body)
    return CapturedArtifact(
        path=path,
        filename=filename,
        export_format=format_for_filename(filename, default_ext),
        method=method,
        size=len(body),
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def capture_export(page: Page, trigger: Callable[[], None], config: RunConfig) -> CapturedArtifact:
    """Arm both channels, fire ``trigger`` and return the captured artifact.

    Only the winning channel writes to ``config.download_dir``.
    """
    Path(config.download_dir).mkdir(parents=True, exist_ok=True)

    with CaptureRace(page, config) as race:
        trigger()
        channel, candidate = race.wait()

    if channel == DOWNLOAD:
        artifact = _save_download(candidate, config)
    else:
        artifact = _save_response(page, candidate, config)

    log.info('Export saved: %s (%d bytes, via %s)', artifact.path, artifact.size, artifact.method)
    return artifact
