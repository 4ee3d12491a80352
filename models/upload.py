from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ServiceId(str, Enum):
    """Supported image hosting services."""

    WEIBO = "weibo"
    R2 = "r2"
    SMMS = "smms"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def _missing_(cls, value):
        # generic name for the S3-compatible object store slot
        if isinstance(value, str) and value.strip().lower() == "object-store":
            return cls.R2
        return None


class BackupStatus(str, Enum):
    """Lifecycle of one backup leg."""

    PENDING = "pending"  # launched in background, outcome not merged yet
    SUCCESS = "success"
    FAILED = "failed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResult(_CamelModel):
    """Result of one successful upload to one service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    service_id: ServiceId
    file_key: str
    url: str
    size: int = Field(ge=0)
    width: int | None = None
    height: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BackupOutcome(_CamelModel):
    """Outcome of one backup leg: result on success, error message on failure."""

    service_id: ServiceId
    status: BackupStatus
    result: UploadResult | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _check_status_fields(self) -> "BackupOutcome":
        if self.status == BackupStatus.SUCCESS and self.result is None:
            raise ValueError("successful backup outcome requires a result")
        if self.status == BackupStatus.FAILED and not self.error:
            raise ValueError("failed backup outcome requires an error message")
        if self.status != BackupStatus.SUCCESS and self.result is not None:
            raise ValueError("only successful backup outcomes carry a result")
        return self

    @classmethod
    def success(cls, service_id: ServiceId, result: UploadResult) -> "BackupOutcome":
        return cls(service_id=service_id, status=BackupStatus.SUCCESS, result=result)

    @classmethod
    def failed(cls, service_id: ServiceId, error: str) -> "BackupOutcome":
        return cls(service_id=service_id, status=BackupStatus.FAILED, error=error or "unknown error")

    @classmethod
    def pending(cls, service_id: ServiceId) -> "BackupOutcome":
        return cls(service_id=service_id, status=BackupStatus.PENDING)


class HistoryItem(_CamelModel):
    """Durable record of one orchestration with a successful primary upload."""

    id: str
    timestamp: datetime
    local_file_name: str
    file_path: str | None = None
    primary_service: ServiceId
    primary_result: UploadResult
    backups: list[BackupOutcome] = Field(default_factory=list)
    generated_link: str

    def backup_for(self, service_id: ServiceId) -> BackupOutcome | None:
        for outcome in self.backups:
            if outcome.service_id == service_id:
                return outcome
        return None

    def with_backup(self, outcome: BackupOutcome) -> "HistoryItem":
        """Return a copy with the slot for outcome.service_id replaced (or appended)."""
        backups = list(self.backups)
        for index, existing in enumerate(backups):
            if existing.service_id == outcome.service_id:
                backups[index] = outcome
                break
        else:
            backups.append(outcome)
        return self.model_copy(update={"backups": backups})

    @property
    def successful_backups(self) -> list[BackupOutcome]:
        return [b for b in self.backups if b.status == BackupStatus.SUCCESS]
