"""Core upload abstractions and orchestration."""

from .base import BaseUploader, ProgressCallback, UploadContext, ValidationResult
from .errors import (
    ConfigurationError,
    HistoryPersistFailed,
    InvalidConfig,
    MissingPrimaryConfig,
    OrchestrationError,
    PrimaryServiceDisabled,
    PrimaryUploadFailed,
    ServiceNotRegistered,
    UploadCancelled,
    UploaderCreationError,
    UploadError,
    UploadErrorKind,
)
from .link_generator import generate_link
from .orchestrator import UploadOrchestrator, UploadPhase, UploadReport, generate_history_id, pending_backups
from .progress import PRIMARY_LEG, LegProgress, ProgressEvent, SerializedProgressSink, backup_leg
from .registry import UploaderRegistry

__all__ = [
    # Uploader contract
    "BaseUploader",
    "ProgressCallback",
    "UploadContext",
    "ValidationResult",
    # Errors
    "ConfigurationError",
    "HistoryPersistFailed",
    "InvalidConfig",
    "MissingPrimaryConfig",
    "OrchestrationError",
    "PrimaryServiceDisabled",
    "PrimaryUploadFailed",
    "ServiceNotRegistered",
    "UploadCancelled",
    "UploaderCreationError",
    "UploadError",
    "UploadErrorKind",
    # Orchestration
    "UploadOrchestrator",
    "UploadPhase",
    "UploadReport",
    "UploaderRegistry",
    "generate_history_id",
    "generate_link",
    "pending_backups",
    # Progress
    "PRIMARY_LEG",
    "LegProgress",
    "ProgressEvent",
    "SerializedProgressSink",
    "backup_leg",
]
