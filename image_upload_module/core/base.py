import asyncio
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from logger import format_log, get_logger
from models import ServiceId, UploadResult

from ..config_factory import ServiceConfigBase
from .errors import UploadError, UploadErrorKind

logger = get_logger()

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one service configuration."""

    valid: bool
    errors: tuple[str, ...] = ()
    missing_fields: tuple[str, ...] = ()


@dataclass
class UploadContext:
    """What an uploader receives besides the file path."""

    config: ServiceConfigBase
    timeout: float | None = None


class BaseUploader(ABC):
    """Capability set every image hosting service implements."""

    service_id: ClassVar[ServiceId]
    service_name: ClassVar[str]
    required_fields: ClassVar[tuple[str, ...]] = ()

    def validate_config(self, config: ServiceConfigBase | None) -> ValidationResult:
        """Check mandatory fields without any I/O; disabled configs are always valid."""
        if config is None:
            return ValidationResult(False, (f"{self.service_name} is not configured",))

        if getattr(config, "service", None) != self.service_id:
            return ValidationResult(
                False, (f"Expected a {self.service_id} configuration, got {getattr(config, 'service', None)}",)
            )

        if not config.enabled:
            return ValidationResult(True)

        missing = tuple(name for name in self.required_fields if self._is_empty(getattr(config, name, None)))
        errors = [f"Missing required field: {name}" for name in missing]
        errors.extend(self._extra_checks(config))

        return ValidationResult(not errors, tuple(errors), missing)

    def _extra_checks(self, config: ServiceConfigBase) -> list[str]:
        """Service-specific checks on an enabled config with all fields present."""
        return []

    @abstractmethod
    async def upload(
        self,
        file_path: str,
        context: UploadContext,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Transfer the file; raise UploadError on any failure."""
        pass

    @staticmethod
    def _is_empty(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def _error(self, kind: UploadErrorKind, message: str, cause: BaseException | None = None) -> UploadError:
        return UploadError(self.service_id, kind, f"{self.service_name}: {message}", cause)

    async def _read_file(self, file_path: str, max_size: int | None = None) -> bytes:
        """Read the whole file, mapping OS errors to FILE_UNREADABLE."""
        try:
            size = os.path.getsize(file_path)
        except OSError as e:
            raise self._error(UploadErrorKind.FILE_UNREADABLE, f"cannot access {file_path}: {e}", e) from e

        if max_size is not None and size > max_size:
            raise self._error(
                UploadErrorKind.REMOTE_REJECTED,
                f"file is {size / 1024 / 1024:.2f}MB, limit is {max_size / 1024 / 1024:.0f}MB",
            )

        try:
            return await asyncio.to_thread(_read_bytes, file_path)
        except OSError as e:
            raise self._error(UploadErrorKind.FILE_UNREADABLE, f"cannot read {file_path}: {e}", e) from e

    def _report_progress(self, on_progress: ProgressCallback | None, percent: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(percent)
        except Exception as e:
            logger.warning(format_log("Progress callback failed", service=self.service_id.value, error=e))

    def _create_result(
        self,
        file_key: str,
        url: str,
        size: int,
        width: int | None = None,
        height: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UploadResult:
        return UploadResult(
            service_id=self.service_id,
            file_key=file_key,
            url=url,
            size=size,
            width=width or None,
            height=height or None,
            metadata=metadata or {},
        )


def _read_bytes(file_path: str) -> bytes:
    with open(file_path, "rb") as f:
        return f.read()
