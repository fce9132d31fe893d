"""Rankings export relay: core package.

Re-exports all public symbols so consumers can do:
    from exporter import run_export, RunConfig
or use the top-level module:
    from rankings_export import run_export, RunConfig
"""

# Models
from .models import (  # noqa: F401
    ExportFormat,
    RunState,
    RunConfig,
    CapturedArtifact,
    RunMetadata,
    RunResult,
)

# Errors
from .errors import (  # noqa: F401
    ExportError,
    ConfigError,
    UIInteractionError,
    CaptureError,
    DeliveryError,
)

# Configuration
from .config import load_config, load_from_environment  # noqa: F401

# Header helpers
from .headers import (  # noqa: F401
    filename_from_content_disposition,
    extension_for_content_type,
    is_export_response,
)

# Selector fallback
from .locators import Strategy, first_usable, click_first  # noqa: F401

# Capture
from .capture import CaptureRace, capture_export  # noqa: F401

# Delivery
from .delivery import deliver  # noqa: F401

# Diagnostics
from .diagnostics import Diagnostics, NetworkLog  # noqa: F401

# Runner
from .runner import ExportRun, run_export  # noqa: F401
