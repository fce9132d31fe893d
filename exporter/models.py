"""Data classes used throughout the exporter.

All structured types for configuration, captured artifacts and run output
live here so they can be imported cleanly by every other module.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ConfigError


class ExportFormat(Enum):
    """File formats the export popup offers."""
    CSV = 'csv'
    XLSX = 'xlsx'

    @classmethod
    def parse(cls, value: str) -> 'ExportFormat':
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ', '.join(f.value for f in cls)
            raise ConfigError(f'Unsupported export format {value!r} (expected one of: {allowed})') from None

    @property
    def extension(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Text shown on the format tile."""
        return self.value.upper()


class RunState(Enum):
    """Lifecycle of a single run. FAILED is terminal."""
    IDLE = 'idle'
    NAVIGATED = 'navigated'
    EXPORT_UI_OPENED = 'export-ui-opened'
    FORMAT_SELECTED = 'format-selected'
    TRIGGERED = 'triggered'
    CAPTURING = 'capturing'
    CAPTURED = 'captured'
    DELIVERED = 'delivered'
    FAILED = 'failed'


@dataclass(frozen=True)
class RunConfig:
    """Config for one export run. Immutable for the lifetime of the run."""
    guest_url: str
    webhook_url: str = ''
    export_format: ExportFormat = ExportFormat.CSV
    download_dir: Path = Path('downloads')
    debug_dir: Path = Path('debug')
    headless: bool = True
    debug: bool = True
    navigation_timeout_ms: int = 120000
    ui_timeout_ms: int = 120000
    export_timeout_ms: int = 240000
    settle_ms: int = 1500
    poll_interval_ms: int = 250
    webhook_mode: str = 'multipart'  # multipart|raw
    webhook_timeout_s: int = 120
    source_tag: str = 'se-ranking'
    project_label: str = ''
    company_label: str = ''
    scrape_project_name: bool = True
    export_labels: tuple = ('Export', 'Exporteren')
    response_url_markers: tuple = ('export', 'download')
    prefer_last_confirm: bool = False
    viewport_width: int = 1400
    viewport_height: int = 900
    log_level: str = 'INFO'


@dataclass
class CapturedArtifact:
    """The exported file, written to local disk."""
    path: Path
    filename: str
    export_format: str  # file extension, e.g. csv, xlsx, xls
    method: str         # download, response or replay
    size: int


@dataclass
class RunMetadata:
    """Descriptive fields sent alongside the artifact."""
    source: str
    guest_url: str
    capture_method: str
    filename: str
    export_format: str
    project_name: Optional[str] = None
    company: Optional[str] = None

    def to_fields(self) -> dict:
        """Multipart form fields, empty values dropped."""
        fields = {
            'source': self.source,
            'filename': self.filename,
            'format': self.export_format,
            'capture_method': self.capture_method,
            'guest_url': self.guest_url,
            'project': self.project_name,
            'company': self.company,
        }
        return {k: str(v) for k, v in fields.items() if v}

    def to_headers(self) -> dict:
        """``x-*`` headers for raw-body delivery."""
        return {f'x-{k.replace("_", "-")}': v for k, v in self.to_fields().items()}


@dataclass
class RunResult:
    """Results for a finished run."""
    artifact: CapturedArtifact
    metadata: RunMetadata
    delivered: bool
    state: RunState
    history: list = field(default_factory=list)  # List[RunState]
