"""Page interaction steps: session bootstrap, popup dismissal, export UI."""

import logging
from typing import Optional

from playwright.sync_api import Error as PlaywrightError, Locator, Page

from .errors import UIInteractionError
from .locators import Strategy, click, click_first, exact_text, first_usable, label_pattern
from .models import RunConfig

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Selector tables
# ---------------------------------------------------------------------------

_LAUNCH_ARGS = ['--disable-dev-shm-usage', '--no-sandbox', '--disable-gpu']

_POPUP_SELECTORS = [
    'button:has-text("Accept")',
    'button:has-text("Accept All")',
    'button:has-text("Accepteren")',
    'button:has-text("Got it")',
    '[aria-label="Close"]',
]

_BUTTON_TEXT = '.se-button-2__text'
_POPUP = '.export-popup-wrapper'
_FORMAT_TILE = '.export-format-buttons__btn'
_FORMAT_TILE_LABEL = '.export-format-buttons__btn-label'

_PROJECT_NAME_SELECTORS = [
    '[data-test="project-name"]',
    '[class*="project-name"]',
    '[class*="project-title"]',
    'header h1',
    'h1',
]

_POPUP_WAIT_MS = 10000


def _export_trigger_strategies(labels) -> list:
    rx = label_pattern(labels)
    return [
        Strategy('site button text', lambda p: p.locator(
            'button:visible', has=p.locator(_BUTTON_TEXT, has_text=rx)).first),
        Strategy('aria button', lambda p: p.get_by_role('button', name=rx).first),
        Strategy('ancestor of label', lambda p: p.get_by_text(rx).locator(
            'xpath=ancestor::button[1]').first),
        Strategy('text', lambda p: p.get_by_text(rx).first),
    ]


def _popup_strategies() -> list:
    return [
        Strategy('export popup', lambda p: p.locator(_POPUP).first),
        Strategy('aria dialog', lambda p: p.get_by_role('dialog').first),
        Strategy('format tiles', lambda p: p.locator(_FORMAT_TILE).first),
    ]


def _format_strategies(label: str) -> list:
    rx = exact_text(label)
    return [
        Strategy('format tile', lambda p: p.locator(
            _FORMAT_TILE, has=p.locator(_FORMAT_TILE_LABEL, has_text=rx)).first),
        Strategy('aria radio', lambda p: p.get_by_role('radio', name=rx).first),
        Strategy('aria button', lambda p: p.get_by_role('button', name=rx).first),
        Strategy('ancestor of label', lambda p: p.get_by_text(rx).locator(
            'xpath=ancestor::*[self::button or self::label or @role="button"][1]').first),
    ]


def _confirm_strategies(labels, prefer_last: bool) -> list:
    rx = label_pattern(labels)
    strategies = [
        Strategy('popup footer button', lambda p: p.locator(
            f'{_POPUP}__footer button:visible', has=p.locator(_BUTTON_TEXT, has_text=rx)).first),
        Strategy('dialog button', lambda p: p.get_by_role('dialog').get_by_role(
            'button', name=rx).first),
        Strategy('popup button', lambda p: p.locator(_POPUP).get_by_role(
            'button', name=rx).first),
    ]
    if prefer_last:
        strategies.append(Strategy('last labelled button', lambda p: p.locator(
            'button:visible').filter(has_text=rx).last))
    return strategies


# ---------------------------------------------------------------------------
# Session bootstrap
# ---------------------------------------------------------------------------

def _forward_console(msg) -> None:
    if msg.type == 'error':
        log.warning('[browser error] %s', msg.text)
    elif msg.type == 'warning':
        log.info('[browser warning] %s', msg.text)


def open_session(playwright, config: RunConfig):
    """Launch Chromium and open a download-enabled page. Returns (browser, page)."""
    browser = playwright.chromium.launch(headless=config.headless, args=_LAUNCH_ARGS)
    context = browser.new_context(
        accept_downloads=True,
        viewport={'width': config.viewport_width, 'height': config.viewport_height},
    )
    page = context.new_page()
    page.on('console', _forward_console)
    return browser, page


def open_guest_url(page: Page, config: RunConfig) -> None:
    log.info('Opening %s', config.guest_url)
    page.goto(config.guest_url, wait_until='domcontentloaded', timeout=config.navigation_timeout_ms)
    page.wait_for_timeout(config.settle_ms)


def dismiss_popups(page: Page) -> None:
    """Dismiss common popups (cookie banners, welcome dialogs, etc.)."""
    for selector in _POPUP_SELECTORS:
        try:
            button = page.locator(selector).first
            if button.is_visible():
                button.click(timeout=2000)
                page.wait_for_timeout(300)
        except PlaywrightError as exc:
            log.debug('Popup dismissal failed for %s: %s', selector, exc)


# ---------------------------------------------------------------------------
# Export UI
# ---------------------------------------------------------------------------

def open_export_menu(page: Page, config: RunConfig) -> None:
    """Click the toolbar export trigger and wait for the export popup."""
    click_first(page, _export_trigger_strategies(config.export_labels),
                config.ui_timeout_ms, 'Export button', config.poll_interval_ms)
    # Format selection has its own wait; an unrecognised popup container is not fatal.
    try:
        first_usable(page, _popup_strategies(), _POPUP_WAIT_MS, 'Export popup',
                     config.poll_interval_ms)
    except UIInteractionError as exc:
        log.warning('%s, continuing to format selection', exc)


def select_format(page: Page, config: RunConfig) -> None:
    label = config.export_format.label
    click_first(page, _format_strategies(label), config.ui_timeout_ms, f'{label} format option',
                config.poll_interval_ms)


def confirm_locator(page: Page, config: RunConfig) -> Locator:
    """Find the confirmation button without clicking it.

    Capture listeners must be armed before the click, so the caller clicks
    it through ``click_confirm``.
    """
    return first_usable(page, _confirm_strategies(config.export_labels, config.prefer_last_confirm),
                        config.ui_timeout_ms, 'Export confirmation button', config.poll_interval_ms)


def click_confirm(locator: Locator, config: RunConfig) -> None:
    click(locator, config.ui_timeout_ms, 'Export confirmation button')


def scrape_project_name(page: Page) -> Optional[str]:
    """Best-effort read of the report's project name."""
    for selector in _PROJECT_NAME_SELECTORS:
        try:
            element = page.locator(selector).first
            if not element.is_visible():
                continue
            text = ' '.join(element.inner_text(timeout=2000).split())
        except PlaywrightError as exc:
            log.debug('Project name lookup failed for %s: %s', selector, exc)
            continue
        if text:
            return text[:200]
    return None
