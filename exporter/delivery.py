"""Webhook sink: posts the captured artifact and its metadata."""

import logging
from urllib.parse import quote

import requests

from .errors import DeliveryError
from .headers import mime_type_for
from .models import CapturedArtifact, RunConfig, RunMetadata

log = logging.getLogger(__name__)

WEBHOOK_MODES = ('multipart', 'raw')


def _header_value(value: str) -> str:
    """HTTP headers are latin-1; percent-encode anything else."""
    try:
        value.encode('latin-1')
        return value
    except UnicodeEncodeError:
        return quote(value, safe=" !#$&'()*+,/:;=?@[]~")


def _post_multipart(url: str, artifact: CapturedArtifact, metadata: RunMetadata, timeout: int):
    with open(artifact.path, 'rb') as fh:
        files = {'file': (artifact.filename, fh, mime_type_for(artifact.export_format))}
        return requests.post(url, data=metadata.to_fields(), files=files, timeout=timeout)


def _post_raw(url: str, artifact: CapturedArtifact, metadata: RunMetadata, timeout: int):
    headers = {k: _header_value(v) for k, v in metadata.to_headers().items()}
    headers['content-type'] = mime_type_for(artifact.export_format)
    with open(artifact.path, 'rb') as fh:
        body = fh.read()
    return requests.post(url, data=body, headers=headers, timeout=timeout)


def deliver(config: RunConfig, artifact: CapturedArtifact, metadata: RunMetadata) -> str:
    """Post the artifact to ``config.webhook_url``. Returns the sink's response text.

    Raises DeliveryError on a non-2xx status or a transport failure.
    """
    if config.webhook_mode not in WEBHOOK_MODES:
        raise DeliveryError(f'Unknown webhook mode: {config.webhook_mode}')

    post = _post_raw if config.webhook_mode == 'raw' else _post_multipart
    log.info('Posting %s to webhook (%s)', artifact.filename, config.webhook_mode)
    try:
        resp = post(config.webhook_url, artifact, metadata, config.webhook_timeout_s)
    except requests.exceptions.RequestException as exc:
        raise DeliveryError(f'Webhook request failed: {exc}') from exc

    text = resp.text or ''
    if not 200 <= resp.status_code < 300:
        raise DeliveryError(
            f'Webhook error status={resp.status_code} body={text[:500]}',
            status=resp.status_code,
            body=text,
        )
    log.info('Webhook OK: %s %s', resp.status_code, text[:500])
    return text
