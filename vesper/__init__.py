"""Vesper: resumable nightly reflection and planning protocol."""

from .adapters import Services, load_services
from .config import VesperConfig, load_config
from .coordinator import Phase, SessionCoordinator, SessionState
from .listener import LoggingProgressListener, ProgressListener
from .persistence import StepStatus, get_repository
from .steps import SoftRejection, StepFailed, StepSkipped

__version__ = "0.1.0"
__all__ = [
    "LoggingProgressListener",
    "Phase",
    "ProgressListener",
    "Services",
    "SessionCoordinator",
    "SessionState",
    "SoftRejection",
    "StepFailed",
    "StepSkipped",
    "StepStatus",
    "VesperConfig",
    "get_repository",
    "load_config",
    "load_services",
]
