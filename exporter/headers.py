"""Header tables and pure helpers for recognising and naming exported files.

Nothing in here touches a browser, so all of it can be tested directly.
"""

import re
from datetime import datetime, timezone
from pathlib import PurePosixPath, PureWindowsPath
from typing import Mapping, Optional
from urllib.parse import unquote


# ---------------------------------------------------------------------------
# Content-type tables
# ---------------------------------------------------------------------------

CONTENT_TYPE_EXTENSIONS = {
    'text/csv': 'csv',
    'application/csv': 'csv',
    'text/comma-separated-values': 'csv',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': 'xlsx',
    'application/vnd.ms-excel': 'xls',
}

MIME_TYPES = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'xls': 'application/vnd.ms-excel',
}

# Unrelated traffic that can share keywords like "download" in its URL.
_REJECTED_PREFIXES = ('image/', 'video/', 'audio/', 'font/')

# Request headers worth carrying over when a request is replayed. Cookies
# come from the browser context the replay client shares.
REPLAY_HEADER_ALLOWLIST = frozenset({
    'accept',
    'accept-language',
    'authorization',
    'content-type',
    'origin',
    'referer',
    'x-csrf-token',
    'x-requested-with',
    'x-xsrf-token',
})


# ---------------------------------------------------------------------------
# Content-Disposition
# ---------------------------------------------------------------------------

_EXT_FILENAME_RE = re.compile(r"filename\*\s*=\s*([^']*)'[^']*'([^;]+)", re.IGNORECASE)
_QUOTED_FILENAME_RE = re.compile(r'filename\s*=\s*"([^"]*)"', re.IGNORECASE)
_BARE_FILENAME_RE = re.compile(r'filename\s*=\s*([^;]+)', re.IGNORECASE)


def safe_filename(name: str) -> str:
    """Drop quotes, whitespace and any directory part a server sent along."""
    name = name.strip().strip('"').strip()
    name = PureWindowsPath(PurePosixPath(name).name).name
    if name in ('.', '..'):
        return ''
    return name


def filename_from_content_disposition(value: Optional[str]) -> Optional[str]:
    """Extract a filename from a Content-Disposition header value.

    The extended ``filename*=UTF-8''...`` form wins over the plain one. If
    percent-decoding fails, the raw encoded token is used as-is.
    """
    if not value:
        return None

    match = _EXT_FILENAME_RE.search(value)
    if match:
        charset = match.group(1).strip() or 'utf-8'
        raw = match.group(2).strip().strip('"')
        try:
            decoded = unquote(raw, encoding=charset, errors='strict')
        except (UnicodeDecodeError, LookupError):
            decoded = raw
        name = safe_filename(decoded)
        if name:
            return name

    match = _QUOTED_FILENAME_RE.search(value) or _BARE_FILENAME_RE.search(value)
    if match:
        name = safe_filename(match.group(1))
        if name:
            return name
    return None


def is_attachment(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower().startswith('attachment')


# ---------------------------------------------------------------------------
# Content-Type
# ---------------------------------------------------------------------------

def media_type(value: Optional[str]) -> str:
    """Return the bare media type, lowercased, without parameters."""
    if not value:
        return ''
    return value.split(';', 1)[0].strip().lower()


def extension_for_content_type(value: Optional[str], default: str) -> str:
    return CONTENT_TYPE_EXTENSIONS.get(media_type(value), default)


def is_known_file_type(value: Optional[str]) -> bool:
    return media_type(value) in CONTENT_TYPE_EXTENSIONS


def is_rejected_content_type(value: Optional[str]) -> bool:
    return media_type(value).startswith(_REJECTED_PREFIXES)


# ---------------------------------------------------------------------------
# Response matching
# ---------------------------------------------------------------------------

def is_export_response(url: str, headers: Mapping[str, str], markers) -> bool:
    """Decide whether a network response carries the exported file.

    The URL must contain one of ``markers`` and the headers must announce an
    attachment or a known spreadsheet type. Images and other media never
    match, whatever the URL says.
    """
    lowered_url = url.lower()
    if not any(marker.lower() in lowered_url for marker in markers):
        return False

    lowered = {k.lower(): v for k, v in headers.items()}
    content_type = lowered.get('content-type', '')
    if is_rejected_content_type(content_type):
        return False
    return is_attachment(lowered.get('content-disposition')) or is_known_file_type(content_type)


def replay_headers(headers: Mapping[str, str]) -> dict:
    return {k: v for k, v in headers.items() if k.lower() in REPLAY_HEADER_ALLOWLIST}


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------

def fallback_filename(extension: str) -> str:
    return f'export.{extension}'


def timestamped_filename(extension: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f'export-{now.strftime("%Y%m%dT%H%M%S")}.{extension}'


def format_for_filename(filename: str, default: str) -> str:
    """Extension tag for an artifact: the file's own suffix if it is a known one."""
    suffix = PurePosixPath(filename).suffix.lstrip('.').lower()
    if suffix in MIME_TYPES:
        return suffix
    return default


def mime_type_for(extension: str) -> str:
    return MIME_TYPES.get(extension, 'application/octet-stream')
