"""Run orchestrator: bootstrap, navigation, capture, delivery."""

import logging
from pathlib import Path

from playwright.sync_api import sync_playwright

from .capture import capture_export
from .delivery import deliver
from .diagnostics import Diagnostics, NetworkLog
from .errors import ConfigError
from .models import CapturedArtifact, RunConfig, RunMetadata, RunResult, RunState
from .navigation import (
    click_confirm,
    confirm_locator,
    dismiss_popups,
    open_export_menu,
    open_guest_url,
    open_session,
    scrape_project_name,
    select_format,
)

log = logging.getLogger(__name__)


class ExportRun:
    """Tracks the state of one run and enforces its transitions."""

    def __init__(self, config: RunConfig, progress_callback=None):
        self.config = config
        self.state = RunState.IDLE
        self.history = [RunState.IDLE]
        self._progress = progress_callback or (lambda msg: None)

    def advance(self, state: RunState) -> None:
        if self.state in (RunState.FAILED, RunState.DELIVERED):
            raise RuntimeError(f'Run already finished in state {self.state.value}')
        log.info('State: %s -> %s', self.state.value, state.value)
        self.state = state
        self.history.append(state)
        self._progress(state.value.upper())

    def fail(self) -> RunState:
        """Mark the run failed. Returns the state it failed in."""
        failed_in = self.state
        self.state = RunState.FAILED
        self.history.append(RunState.FAILED)
        return failed_in

    @property
    def navigated(self) -> bool:
        return self.state is not RunState.IDLE


def build_metadata(config: RunConfig, artifact: CapturedArtifact, project_name=None) -> RunMetadata:
    return RunMetadata(
        source=config.source_tag,
        guest_url=config.guest_url,
        capture_method=artifact.method,
        filename=artifact.filename,
        export_format=artifact.export_format,
        project_name=config.project_label or project_name,
        company=config.company_label or None,
    )


def _export_steps(page, run: ExportRun) -> RunResult:
    config = run.config

    open_guest_url(page, config)
    run.advance(RunState.NAVIGATED)
    dismiss_popups(page)

    project_name = None
    if config.scrape_project_name and not config.project_label:
        project_name = scrape_project_name(page)
        if project_name:
            log.info('Project: %s', project_name)

    open_export_menu(page, config)
    run.advance(RunState.EXPORT_UI_OPENED)

    select_format(page, config)
    run.advance(RunState.FORMAT_SELECTED)

    confirm = confirm_locator(page, config)

    def trigger():
        click_confirm(confirm, config)
        run.advance(RunState.TRIGGERED)
        run.advance(RunState.CAPTURING)

    artifact = capture_export(page, trigger, config)
    run.advance(RunState.CAPTURED)

    metadata = build_metadata(config, artifact, project_name)
    delivered = False
    if config.webhook_url:
        deliver(config, artifact, metadata)
        delivered = True
        run.advance(RunState.DELIVERED)
    else:
        log.info('WEBHOOK_URL not set, export only stored locally: %s', artifact.path)

    return RunResult(
        artifact=artifact,
        metadata=metadata,
        delivered=delivered,
        state=run.state,
        history=list(run.history),
    )


def run_export(config: RunConfig, progress_callback=None) -> RunResult:
    """Run one export end to end and return the result.

    Args:
        config: Run configuration.
        progress_callback: Optional callable(str), called on every state change.

    Any failure after navigation writes debug artifacts (when ``config.debug``
    is set) before the error propagates. The browser is closed on every path.
    """
    if not config.guest_url:
        raise ConfigError('Guest URL missing')

    run = ExportRun(config, progress_callback)
    Path(config.download_dir).mkdir(parents=True, exist_ok=True)

    with sync_playwright() as p:
        browser, page = open_session(p, config)
        network_log = NetworkLog()
        network_log.attach(page)
        try:
            return _export_steps(page, run)
        except Exception as exc:
            if run.navigated:
                failed_in = run.fail()
                log.error('Run failed in state %s: %s', failed_in.value, exc)
                if config.debug:
                    Diagnostics(config.debug_dir, network_log).capture(
                        page,
                        prefix='fail',
                        context={
                            'state': failed_in.value,
                            'error': f'{type(exc).__name__}: {exc}',
                            'url': page.url,
                        },
                    )
            raise
        finally:
            browser.close()
