from __future__ import annotations

import asyncio

import pytest

from history_module import HistoryRecorder, JsonHistoryStore
from image_upload_module.config_factory import UserConfig
from image_upload_module.core.base import BaseUploader, ProgressCallback, UploadContext
from image_upload_module.core.errors import UploadError, UploadErrorKind
from image_upload_module.core.registry import UploaderRegistry
from models import BackupOutcome, HistoryItem, ServiceId, UploadResult

WEIBO_COOKIE = "SUB=_2A25Lxxxxxxxxxxxxxxxxxxxxxxxxxx; SUBP=0033WrSX"


class StubUploader(BaseUploader):
    """In-memory uploader: records calls, returns a canned result or raises."""

    def __init__(
        self,
        service_id: ServiceId,
        url: str | None = None,
        error: Exception | None = None,
        required_fields: tuple[str, ...] = (),
        progress_steps: tuple[float, ...] = (25, 50),
        delay: float = 0,
    ) -> None:
        self.service_id = service_id
        self.service_name = service_id.value.upper()
        self.required_fields = required_fields
        self.url = url or f"https://{service_id.value}.example.com/img.png"
        self.error = error
        self.progress_steps = progress_steps
        self.delay = delay
        self.calls: list[str] = []

    async def upload(
        self,
        file_path: str,
        context: UploadContext,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        self.calls.append(file_path)
        for step in self.progress_steps:
            self._report_progress(on_progress, step)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self._create_result(file_key=f"{self.service_id.value}-key", url=self.url, size=1234)


class FailingHistory(HistoryRecorder):
    """History recorder whose writes always fail."""

    def __init__(self) -> None:
        self.items: list[HistoryItem] = []

    async def append(self, item: HistoryItem) -> None:
        raise OSError("disk full")

    async def list(self) -> list[HistoryItem]:
        return list(self.items)

    async def merge_backup_outcome(self, history_id: str, outcome: BackupOutcome) -> HistoryItem | None:
        raise OSError("disk full")


def upload_error(service_id: ServiceId, kind: UploadErrorKind, message: str) -> UploadError:
    return UploadError(service_id, kind, message)


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 1024)
    return str(path)


@pytest.fixture
def registry() -> UploaderRegistry:
    return UploaderRegistry()


@pytest.fixture
def history_store(tmp_path) -> JsonHistoryStore:
    return JsonHistoryStore(tmp_path / "history.json")


@pytest.fixture
def weibo_r2_config() -> UserConfig:
    return UserConfig.model_validate(
        {
            "primaryService": "weibo",
            "services": {
                "weibo": {"cookie": WEIBO_COOKIE},
                "r2": {
                    "accountId": "acc123",
                    "accessKeyId": "AKIAEXAMPLEKEY01",
                    "secretAccessKey": "very-secret",
                    "bucketName": "images",
                    "path": "uploads/",
                    "publicDomain": "https://cdn.example.com",
                },
            },
            "outputFormat": "direct",
            "backup": {"enabled": True, "services": ["r2"]},
        }
    )


def make_config(primary: str = "weibo", backups: list[str] | None = None, **overrides) -> UserConfig:
    services = {
        "weibo": {"cookie": WEIBO_COOKIE},
        "r2": {
            "accountId": "acc123",
            "accessKeyId": "AKIAEXAMPLEKEY01",
            "secretAccessKey": "very-secret",
            "bucketName": "images",
            "publicDomain": "https://cdn.example.com",
        },
        "smms": {"token": "smms-token"},
    }
    services.update(overrides.pop("services", {}))
    data = {
        "primaryService": primary,
        "services": services,
        "backup": {"enabled": backups is not None, "services": backups or []},
        **overrides,
    }
    return UserConfig.model_validate(data)
