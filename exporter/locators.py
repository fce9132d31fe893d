"""Layered selector fallback.

The target page's markup is not stable, so every UI element is described
as an ordered list of strategies. Strategies are checked in priority order,
round after round, until one yields a visible element or the budget runs out.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from playwright.sync_api import Error as PlaywrightError, Locator

from .errors import UIInteractionError

log = logging.getLogger(__name__)

POLL_INTERVAL_MS = 250


@dataclass(frozen=True)
class Strategy:
    """One way of finding an element.

    ``build`` receives the page (or frame) and must return a single-element
    locator, i.e. end in ``.first``, ``.last`` or ``.nth()``.
    """
    name: str
    build: Callable[..., Locator]


def exact_text(label: str) -> re.Pattern:
    return re.compile(rf'^\s*{re.escape(label)}\s*$', re.IGNORECASE)


def label_pattern(labels: Sequence[str]) -> re.Pattern:
    """Anchored, case-insensitive alternation over several labels."""
    alternatives = '|'.join(re.escape(label) for label in labels)
    return re.compile(rf'^\s*(?:{alternatives})\s*$', re.IGNORECASE)


def _visible(scope, strategy: Strategy):
    try:
        locator = strategy.build(scope)
        if locator.is_visible():
            return locator
    except PlaywrightError as exc:
        log.debug('Strategy %s failed: %s', strategy.name, exc)
    return None


def first_usable(scope, strategies: Sequence[Strategy], timeout_ms: int, what: str,
                 poll_interval_ms: int = POLL_INTERVAL_MS) -> Locator:
    """Return the locator of the highest-priority strategy that is visible.

    All strategies share one ``timeout_ms`` budget and are re-checked every
    ``poll_interval_ms``. Raises UIInteractionError naming every strategy
    tried once the budget has passed without a match.
    """
    waited = 0
    while True:
        for strategy in strategies:
            locator = _visible(scope, strategy)
            if locator is not None:
                log.info('%s: located via %s', what, strategy.name)
                return locator
        if waited >= timeout_ms:
            break
        scope.wait_for_timeout(poll_interval_ms)
        waited += poll_interval_ms

    tried = ', '.join(s.name for s in strategies)
    raise UIInteractionError(f'{what} not found within {timeout_ms} ms (tried: {tried})')


def click(locator: Locator, timeout_ms: int, what: str) -> None:
    try:
        locator.scroll_into_view_if_needed(timeout=timeout_ms)
        locator.click(timeout=timeout_ms)
    except PlaywrightError as exc:
        raise UIInteractionError(f'{what} could not be clicked: {exc}') from exc


def click_first(scope, strategies: Sequence[Strategy], timeout_ms: int, what: str,
                poll_interval_ms: int = POLL_INTERVAL_MS) -> Locator:
    """Locate an element via ``first_usable`` and click it."""
    locator = first_usable(scope, strategies, timeout_ms, what, poll_interval_ms)
    click(locator, timeout_ms, what)
    return locator
