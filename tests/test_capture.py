"""Tests for the download/response capture race."""

import pytest

from conftest import FakeAPIResponse, FakeDownload, FakeRequest, FakeResponse
from exporter import CaptureError, ExportFormat, UIInteractionError
from exporter.capture import CaptureRace, capture_export


def _fire(action):
    """Build a trigger that runs ``action`` when the confirm button is 'clicked'."""
    calls = []

    def trigger():
        calls.append(1)
        action()

    trigger.calls = calls
    return trigger


class TestDownloadChannel:
    """Tests for captures delivered as browser downloads."""

    def test_uses_suggested_filename(self, fake_page, run_config):
        download = FakeDownload('rankings-2026.csv', b'k,p\nx,1\n')
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_download(download)), run_config)

        assert artifact.filename == 'rankings-2026.csv'
        assert artifact.method == 'download'
        assert artifact.export_format == 'csv'
        assert artifact.path == run_config.download_dir / 'rankings-2026.csv'
        assert artifact.path.read_bytes() == b'k,p\nx,1\n'
        assert artifact.size == len(b'k,p\nx,1\n')

    def test_fallback_name_without_suggestion(self, fake_page, run_config):
        download = FakeDownload('')
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_download(download)), run_config)
        assert artifact.filename == 'export.csv'

    def test_fallback_name_follows_preferred_format(self, fake_page, run_config):
        from dataclasses import replace
        config = replace(run_config, export_format=ExportFormat.XLSX)
        download = FakeDownload('', content=b'PK\x03\x04')
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_download(download)), config)
        assert artifact.filename == 'export.xlsx'
        assert artifact.export_format == 'xlsx'

    def test_failed_download_raises(self, fake_page, run_config):
        download = FakeDownload('a.csv', failure='canceled')
        with pytest.raises(CaptureError, match='canceled'):
            capture_export(fake_page, _fire(lambda: fake_page.emit_download(download)), run_config)

    def test_empty_download_raises_and_leaves_no_file(self, fake_page, run_config):
        download = FakeDownload('a.csv', content=b'')
        with pytest.raises(CaptureError, match='empty body'):
            capture_export(fake_page, _fire(lambda: fake_page.emit_download(download)), run_config)
        assert not (run_config.download_dir / 'a.csv').exists()

    def test_download_from_new_tab(self, fake_page, run_config):
        """A download fired on a page opened by the export is captured too."""
        from conftest import FakePage
        popup = FakePage()
        download = FakeDownload('tab.csv')

        def open_tab():
            fake_page.context.emit('page', popup)
            popup.emit('download', download)

        artifact = capture_export(fake_page, _fire(open_tab), run_config)
        assert artifact.filename == 'tab.csv'
        assert popup.listener_count('download') == 0


class TestResponseChannel:
    """Tests for captures delivered as matching network responses."""

    def test_filename_from_quoted_header(self, fake_page, run_config, csv_response):
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_response(csv_response)), run_config)

        assert artifact.filename == 'report.csv'
        assert artifact.method == 'response'
        assert artifact.path.read_bytes() == b'keyword,position\nshoes,3\n'
        assert fake_page.request.calls == []

    def test_filename_from_extended_header(self, fake_page, run_config):
        response = FakeResponse(
            'https://app.example.com/export/file',
            headers={'content-type': 'text/csv',
                     'content-disposition': "attachment; filename*=UTF-8''r%C3%A9sum%C3%A9.csv"},
            body=b'a\n',
        )
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)
        assert artifact.filename == 'résumé.csv'
        assert (run_config.download_dir / 'résumé.csv').exists()

    def test_generated_name_uses_content_type(self, fake_page, run_config):
        response = FakeResponse(
            'https://app.example.com/download?id=7',
            headers={'content-type': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'},
            body=b'PK\x03\x04',
        )
        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)
        assert artifact.filename.startswith('export-')
        assert artifact.filename.endswith('.xlsx')
        assert artifact.export_format == 'xlsx'

    def test_unrelated_responses_are_ignored(self, fake_page, run_config, csv_response):
        image = FakeResponse('https://cdn.example.com/download/icon.png',
                             headers={'content-type': 'image/png',
                                      'content-disposition': 'attachment; filename="icon.png"'},
                             body=b'\x89PNG')
        page_json = FakeResponse('https://app.example.com/api/export/status',
                                 headers={'content-type': 'application/json'}, body=b'{}')

        def fire():
            fake_page.emit_response(image)
            fake_page.emit_response(page_json)
            fake_page.schedule(500, lambda: fake_page.emit_response(csv_response))

        artifact = capture_export(fake_page, _fire(fire), run_config)
        assert artifact.filename == 'report.csv'

    def test_image_alone_is_never_captured(self, fake_page, run_config):
        image = FakeResponse('https://cdn.example.com/download/icon.png',
                             headers={'content-type': 'image/png'}, body=b'\x89PNG')
        with pytest.raises(CaptureError, match='No artifact observed'):
            capture_export(fake_page, _fire(lambda: fake_page.emit_response(image)), run_config)
        assert list(run_config.download_dir.iterdir()) == []


class TestReplay:
    """Tests for the secondary request replay on empty bodies."""

    def _empty_response(self, **kwargs):
        request = FakeRequest(
            'https://app.example.com/export?do=download',
            method='POST',
            headers={'accept': 'text/csv', 'cookie': 'sid=1', 'x-csrf-token': 'tok'},
            post_data_buffer=b'format=csv',
        )
        return FakeResponse(
            request.url,
            headers={'content-type': 'text/csv', 'content-disposition': 'attachment; filename="r.csv"'},
            request=request,
            **kwargs,
        )

    def test_empty_body_is_replayed_once(self, fake_page, run_config):
        fake_page.request.replies = [FakeAPIResponse(200, b'k\n1\n')]
        response = self._empty_response(body=b'')

        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)

        assert artifact.method == 'replay'
        assert artifact.path.read_bytes() == b'k\n1\n'
        assert len(fake_page.request.calls) == 1
        url, kwargs = fake_page.request.calls[0]
        assert url == 'https://app.example.com/export?do=download'
        assert kwargs['method'] == 'POST'
        assert kwargs['data'] == b'format=csv'
        assert kwargs['headers'] == {'accept': 'text/csv', 'x-csrf-token': 'tok'}

    def test_unreadable_body_is_replayed(self, fake_page, run_config):
        fake_page.request.replies = [FakeAPIResponse(200, b'k\n1\n')]
        response = self._empty_response(body_error='Response body is unavailable for redirect responses')

        artifact = capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)
        assert artifact.method == 'replay'

    def test_empty_replay_fails_with_empty_body(self, fake_page, run_config):
        fake_page.request.replies = [FakeAPIResponse(200, b'')]
        response = self._empty_response(body=b'')

        with pytest.raises(CaptureError, match='empty body'):
            capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)

        assert len(fake_page.request.calls) == 1
        assert not (run_config.download_dir / 'r.csv').exists()

    def test_failed_replay_status(self, fake_page, run_config):
        fake_page.request.replies = [FakeAPIResponse(403, b'denied')]
        response = self._empty_response(body=b'')

        with pytest.raises(CaptureError, match='status=403'):
            capture_export(fake_page, _fire(lambda: fake_page.emit_response(response)), run_config)


class TestRace:
    """Tests for arming, first-wins selection and timeouts."""

    def test_both_channels_produce_one_artifact(self, fake_page, run_config, csv_response):
        download = FakeDownload('from-download.csv')

        def fire():
            fake_page.emit_download(download)
            fake_page.emit_response(csv_response)

        artifact = capture_export(fake_page, _fire(fire), run_config)

        assert artifact.method == 'download'
        assert sorted(p.name for p in run_config.download_dir.iterdir()) == ['from-download.csv']

    def test_listeners_armed_before_trigger(self, fake_page, run_config):
        seen = {}

        def fire():
            seen['download'] = fake_page.listener_count('download')
            seen['response'] = fake_page.context.listener_count('response')
            fake_page.emit_download(FakeDownload('a.csv'))

        capture_export(fake_page, _fire(fire), run_config)
        assert seen == {'download': 1, 'response': 1}

    def test_listeners_removed_after_capture(self, fake_page, run_config):
        capture_export(fake_page, _fire(lambda: fake_page.emit_download(FakeDownload('a.csv'))), run_config)
        assert fake_page.listener_count('download') == 0
        assert fake_page.context.listener_count('response') == 0
        assert fake_page.context.listener_count('page') == 0

    def test_late_event_is_captured(self, fake_page, run_config):
        fake_page.schedule(1500, lambda: fake_page.emit_download(FakeDownload('late.csv')))
        artifact = capture_export(fake_page, _fire(lambda: None), run_config)
        assert artifact.filename == 'late.csv'

    def test_timeout_without_events(self, fake_page, run_config):
        with pytest.raises(CaptureError, match='No artifact observed within 2000 ms'):
            capture_export(fake_page, _fire(lambda: None), run_config)
        assert fake_page.clock == 2000
        assert fake_page.listener_count('download') == 0

    def test_trigger_failure_detaches_listeners(self, fake_page, run_config):
        def broken():
            raise UIInteractionError('Export confirmation button could not be clicked')

        with pytest.raises(UIInteractionError):
            capture_export(fake_page, broken, run_config)
        assert fake_page.context.listener_count('response') == 0

    def test_race_records_late_channels(self, fake_page, run_config, csv_response):
        with CaptureRace(fake_page, run_config) as race:
            fake_page.emit_response(csv_response)
            fake_page.emit_download(FakeDownload('b.csv'))
            channel, candidate = race.wait()
        assert channel == 'response'
        assert candidate is csv_response
        assert race.late == ['download']
