"""Shared test fixtures and Playwright fakes.

The fakes implement just enough of the sync Playwright surface for the
exporter: event registration, ``wait_for_timeout`` driving a virtual clock,
responses, downloads and the page's request client.
"""

from collections import defaultdict
from pathlib import Path

import pytest
from playwright.sync_api import Error as PlaywrightError

from exporter import RunConfig


class FakeEmitter:
    def __init__(self):
        self.handlers = defaultdict(list)

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def remove_listener(self, event, handler):
        self.handlers[event].remove(handler)

    def emit(self, event, *args):
        for handler in list(self.handlers[event]):
            handler(*args)

    def listener_count(self, event):
        return len(self.handlers[event])


class FakeRequest:
    def __init__(self, url, method='GET', headers=None, post_data_buffer=None):
        self.url = url
        self.method = method
        self.headers = headers or {}
        self.post_data_buffer = post_data_buffer


class FakeResponse:
    def __init__(self, url, headers=None, body=b'', status=200, request=None, body_error=None):
        self.url = url
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.status = status
        self.request = request or FakeRequest(url)
        self._body = body
        self._body_error = body_error

    def body(self):
        if self._body_error:
            raise PlaywrightError(self._body_error)
        return self._body


class FakeDownload:
    def __init__(self, suggested_filename='', content=b'a,b\n1,2\n', failure=None):
        self.suggested_filename = suggested_filename
        self.content = content
        self._failure = failure
        self.saved_to = None

    def failure(self):
        return self._failure

    def save_as(self, path):
        self.saved_to = Path(path)
        Path(path).write_bytes(self.content)


class FakeAPIResponse:
    def __init__(self, status=200, body=b''):
        self.status = status
        self._body = body

    @property
    def ok(self):
        return 200 <= self.status < 300

    def body(self):
        return self._body


class FakeRequestClient:
    def __init__(self):
        self.replies = []
        self.calls = []

    def fetch(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.replies:
            return self.replies.pop(0)
        return FakeAPIResponse(status=200, body=b'')


class FakeLocator:
    """A locator that becomes visible once the page clock reaches ``visible_at``."""

    def __init__(self, page=None, visible=True, visible_at=0, click_error=None, text=''):
        self.page = page
        self.visible = visible
        self.visible_at = visible_at
        self.click_error = click_error
        self.text = text
        self.clicks = 0

    @property
    def first(self):
        return self

    @property
    def last(self):
        return self

    def is_visible(self):
        if not self.visible:
            return False
        return self.page is None or self.page.clock >= self.visible_at

    def scroll_into_view_if_needed(self, timeout=None):
        pass

    def click(self, timeout=None):
        if self.click_error:
            raise PlaywrightError(self.click_error)
        self.clicks += 1

    def inner_text(self, timeout=None):
        return self.text

    # Chained lookups resolve to nothing unless a test registers them on the page.
    def locator(self, selector, **kwargs):
        return FakeLocator(visible=False)

    def get_by_role(self, role, name=None):
        return FakeLocator(visible=False)

    def filter(self, **kwargs):
        return FakeLocator(visible=False)


class FakeContext(FakeEmitter):
    pass


class FakePage(FakeEmitter):
    def __init__(self):
        super().__init__()
        self.context = FakeContext()
        self.request = FakeRequestClient()
        self.url = 'https://app.example.com/guest/abc'
        self.html = '<html><body>rankings</body></html>'
        self.clock = 0
        self.scheduled = []
        self.screenshot_error = None
        self.locators = {}
        self.visits = []

    def schedule(self, at_ms, fn):
        self.scheduled.append((at_ms, fn))

    def wait_for_timeout(self, ms):
        self.clock += ms
        due = [item for item in self.scheduled if item[0] <= self.clock]
        self.scheduled = [item for item in self.scheduled if item[0] > self.clock]
        for _, fn in due:
            fn()

    def emit_download(self, download):
        self.emit('download', download)

    def emit_response(self, response):
        self.context.emit('response', response)

    def screenshot(self, path, full_page=False):
        if self.screenshot_error:
            raise PlaywrightError(self.screenshot_error)
        Path(path).write_bytes(b'\x89PNG fake')

    def content(self):
        return self.html

    def goto(self, url, wait_until=None, timeout=None):
        self.visits.append((url, wait_until, timeout))

    def locator(self, selector, **kwargs):
        return self.locators.get(selector, FakeLocator(visible=False))

    def get_by_role(self, role, name=None):
        return self.locators.get(f'role={role}', FakeLocator(visible=False))

    def get_by_text(self, text):
        return self.locators.get('text', FakeLocator(visible=False))


class FakeBrowser:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def run_config(tmp_path):
    """A RunConfig with short timeouts and temp directories."""
    return RunConfig(
        guest_url='https://app.example.com/guest/abc',
        download_dir=tmp_path / 'downloads',
        debug_dir=tmp_path / 'debug',
        export_timeout_ms=2000,
        ui_timeout_ms=1000,
        poll_interval_ms=250,
    )


@pytest.fixture
def csv_response():
    """A matching attachment response carrying CSV bytes."""
    return FakeResponse(
        'https://app.example.com/api.llm_rankings.rankings.export.html?do=download',
        headers={
            'Content-Type': 'text/csv; charset=utf-8',
            'Content-Disposition': 'attachment; filename="report.csv"',
        },
        body=b'keyword,position\nshoes,3\n',
    )
