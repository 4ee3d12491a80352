"""Error taxonomy of the upload orchestration."""

from enum import Enum

from models import ServiceId


class UploadErrorKind(str, Enum):
    """Why a single upload leg failed."""

    CREDENTIAL_INVALID = "credential_invalid"
    CREDENTIAL_EXPIRED = "credential_expired"
    NETWORK_FAILURE = "network_failure"
    REMOTE_REJECTED = "remote_rejected"
    FILE_UNREADABLE = "file_unreadable"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


_SOLUTIONS = {
    UploadErrorKind.CREDENTIAL_EXPIRED: "Log in again and update the stored credential",
    UploadErrorKind.CREDENTIAL_INVALID: "Check the credential fields in the service configuration",
    UploadErrorKind.NETWORK_FAILURE: "Check the network connection and retry",
    UploadErrorKind.RATE_LIMITED: "Wait a moment before uploading again",
    UploadErrorKind.FILE_UNREADABLE: "Check that the file exists and is readable",
    UploadErrorKind.REMOTE_REJECTED: "The service refused the file; check its size and format",
}

_RETRYABLE = {UploadErrorKind.NETWORK_FAILURE, UploadErrorKind.RATE_LIMITED, UploadErrorKind.UNKNOWN}


class OrchestrationError(Exception):
    """Base error: kind + human readable message + optional underlying cause."""

    kind: str = "orchestration_error"

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class UploadError(OrchestrationError):
    """A single upload leg failed (transport, remote or local file problem)."""

    def __init__(
        self,
        service_id: ServiceId,
        kind: UploadErrorKind,
        message: str,
        cause: BaseException | None = None,
    ):
        super().__init__(message, cause)
        self.service_id = service_id
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE

    @property
    def solution(self) -> str | None:
        return _SOLUTIONS.get(self.kind)


class ConfigurationError(OrchestrationError):
    """Configuration problem detected before any network call."""


class MissingPrimaryConfig(ConfigurationError):
    kind = "missing_primary_config"

    def __init__(self, service_id: ServiceId | None, message: str | None = None):
        self.service_id = service_id
        super().__init__(message or f"No configuration for primary service {service_id}")


class PrimaryServiceDisabled(ConfigurationError):
    kind = "primary_service_disabled"

    def __init__(self, service_id: ServiceId):
        self.service_id = service_id
        super().__init__(f"Primary service {service_id} is disabled")


class InvalidConfig(ConfigurationError):
    kind = "invalid_config"

    def __init__(self, service_id: ServiceId, errors: list[str]):
        self.service_id = service_id
        self.errors = list(errors)
        super().__init__(f"Invalid {service_id} configuration: {', '.join(self.errors) or 'unknown reason'}")


class PrimaryUploadFailed(OrchestrationError):
    kind = "primary_upload_failed"

    def __init__(self, cause: UploadError):
        super().__init__(f"Primary upload to {cause.service_id} failed: {cause.message}", cause)

    @property
    def user_message(self) -> str:
        """Service-specific message with remediation hint for display."""
        cause: UploadError = self.cause
        text = f"{cause.service_id}: {cause.message} ({cause.kind.value})"
        if cause.solution:
            text += f". {cause.solution}"
        return text


class ServiceNotRegistered(OrchestrationError):
    kind = "service_not_registered"

    def __init__(self, service_id, available: list[ServiceId] | None = None):
        self.service_id = service_id
        names = ", ".join(s.value for s in available or []) or "none"
        super().__init__(f"No uploader registered for {service_id!s} (available: {names})")


class UploaderCreationError(ServiceNotRegistered):
    """The registered factory raised while building the uploader."""

    kind = "uploader_creation_failed"

    def __init__(self, service_id: ServiceId, cause: BaseException):
        OrchestrationError.__init__(self, f"Failed to create uploader for {service_id}: {cause}", cause)
        self.service_id = service_id


class UploadCancelled(OrchestrationError):
    kind = "upload_cancelled"


class HistoryPersistFailed(OrchestrationError):
    """Non-fatal: the upload succeeded but the history record was not written."""

    kind = "history_persist_failed"

    def __init__(self, history_id: str, cause: BaseException | None = None):
        self.history_id = history_id
        super().__init__(f"Failed to persist history item {history_id}: {cause}", cause)
