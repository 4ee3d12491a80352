"""
Upload orchestration: one primary leg, then a concurrent best-effort backup fan-out.

Phases: Idle -> ResolvingPrimary -> ValidatingPrimary -> UploadingPrimary ->
{Failed | BackupFanOut -> Assembling -> Persisting -> Done}.
"""

import asyncio
import itertools
import os
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from history_module import HistoryRecorder
from logger import format_log, get_logger
from models import BackupOutcome, BackupStatus, HistoryItem, ServiceId, UploadResult
from utils.redaction import sanitize_config

from ..config_factory import ServiceConfigBase, UserConfig
from .base import BaseUploader, UploadContext
from .errors import (
    HistoryPersistFailed,
    InvalidConfig,
    MissingPrimaryConfig,
    OrchestrationError,
    PrimaryServiceDisabled,
    PrimaryUploadFailed,
    UploadCancelled,
    UploadError,
    UploadErrorKind,
)
from .link_generator import generate_link
from .progress import PRIMARY_LEG, LegProgress, ProgressSink, SerializedProgressSink, backup_leg
from .registry import UploaderRegistry

logger = get_logger()

_sequence = itertools.count(1)


class UploadPhase(str, Enum):
    IDLE = "idle"
    RESOLVING_PRIMARY = "resolving_primary"
    VALIDATING_PRIMARY = "validating_primary"
    UPLOADING_PRIMARY = "uploading_primary"
    FAILED = "failed"
    BACKUP_FAN_OUT = "backup_fan_out"
    ASSEMBLING = "assembling"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class UploadReport:
    """Everything upload_file produced: the item plus side-channel warnings."""

    item: HistoryItem
    warnings: list[OrchestrationError] = field(default_factory=list)
    history_changed: bool = False
    phase: UploadPhase = UploadPhase.DONE


def generate_history_id() -> str:
    """Time-ordered id: ms timestamp, per-process sequence, random suffix."""
    return f"{int(time.time() * 1000):013d}_{next(_sequence):06d}_{secrets.token_hex(4)}"


class UploadOrchestrator:
    """Fans a single file out to the primary service and its backups."""

    def __init__(self, registry: UploaderRegistry, history: HistoryRecorder | None = None):
        self.registry = registry
        self.history = history
        self._background: set[asyncio.Task] = set()

    async def upload_file(
        self,
        file_path: str,
        config: UserConfig | None,
        on_progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
        wait_for_backups: bool = True,
    ) -> UploadReport:
        """Upload to the primary, then the backups; history write failures land in report.warnings."""
        sink = SerializedProgressSink(on_progress)

        if config is None:
            raise MissingPrimaryConfig(None, "No user configuration available")

        self._enter(UploadPhase.RESOLVING_PRIMARY, file_path)
        logger.info(
            format_log(
                "📤 Upload started",
                file=os.path.basename(file_path),
                primary=config.primary_service.value,
                config=sanitize_config(config),
            )
        )
        for problem in config.backup_policy_errors():
            logger.warning(format_log("⚠️ Backup policy problem", detail=problem))

        service_config = self._resolve_primary(config)
        uploader = self.registry.create(config.primary_service)

        self._check_cancelled(cancel_event, "before primary validation")
        self._enter(UploadPhase.VALIDATING_PRIMARY, file_path)
        self._validate(uploader, service_config)

        self._enter(UploadPhase.UPLOADING_PRIMARY, file_path)
        primary_result = await self._upload_primary(uploader, file_path, service_config, sink)

        generated_link = generate_link(primary_result, config)

        self._enter(UploadPhase.BACKUP_FAN_OUT, file_path)
        targets = config.backup_targets()
        item = HistoryItem(
            id=generate_history_id(),
            timestamp=datetime.now(timezone.utc),
            local_file_name=os.path.basename(file_path),
            file_path=os.path.abspath(file_path),
            primary_service=config.primary_service,
            primary_result=primary_result,
            generated_link=generated_link,
        )

        if wait_for_backups:
            backups = await self._run_backups(file_path, config, targets, sink, cancel_event)
            self._enter(UploadPhase.ASSEMBLING, file_path)
            item = item.model_copy(update={"backups": backups})
        else:
            self._enter(UploadPhase.ASSEMBLING, file_path)
            item = item.model_copy(update={"backups": [BackupOutcome.pending(s) for s in targets]})

        report = UploadReport(item=item)
        self._enter(UploadPhase.PERSISTING, file_path)
        await self._persist(report)

        if not wait_for_backups and targets:
            self._launch_background_backups(item.id, file_path, config, targets, sink, cancel_event)

        report.phase = UploadPhase.DONE
        self._enter(UploadPhase.DONE, file_path)
        logger.info(
            format_log(
                "✅ Upload finished",
                id=item.id,
                link=generated_link,
                backups_ok=len(item.successful_backups),
                backups_total=len(item.backups),
            )
        )
        return report

    async def retry_backup(
        self,
        history_id: str,
        file_path: str,
        service_id: ServiceId,
        config: UserConfig,
        on_progress: ProgressSink | None = None,
    ) -> BackupOutcome:
        """Caller-level retry of one backup leg, merged into the stored record."""
        outcome = await self._backup_leg(file_path, config, ServiceId(service_id), SerializedProgressSink(on_progress))
        if self.history is not None:
            await self.history.merge_backup_outcome(history_id, outcome)
        return outcome

    async def drain(self) -> None:
        """Wait for background backup work started with wait_for_backups=False."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _resolve_primary(self, config: UserConfig) -> ServiceConfigBase:
        service_config = config.service_config(config.primary_service)
        if service_config is None:
            raise MissingPrimaryConfig(config.primary_service)
        if not service_config.enabled:
            raise PrimaryServiceDisabled(config.primary_service)
        return service_config

    @staticmethod
    def _validate(uploader: BaseUploader, service_config: ServiceConfigBase) -> None:
        validation = uploader.validate_config(service_config)
        if not validation.valid:
            raise InvalidConfig(uploader.service_id, list(validation.errors))

    async def _upload_primary(
        self,
        uploader: BaseUploader,
        file_path: str,
        service_config: ServiceConfigBase,
        sink: SerializedProgressSink,
    ) -> UploadResult:
        progress = LegProgress(PRIMARY_LEG, sink)
        try:
            result = await uploader.upload(file_path, UploadContext(config=service_config), progress)
        except UploadError as e:
            self._enter(UploadPhase.FAILED, file_path)
            logger.error(format_log("❌ Primary upload failed", service=e.service_id.value, kind=e.kind.value, error=e))
            raise PrimaryUploadFailed(e) from e
        except Exception as e:
            self._enter(UploadPhase.FAILED, file_path)
            logger.exception(format_log("❌ Primary uploader crashed", service=uploader.service_id.value))
            error = UploadError(uploader.service_id, UploadErrorKind.UNKNOWN, str(e) or type(e).__name__, e)
            raise PrimaryUploadFailed(error) from e

        progress.complete()
        logger.info(format_log("Primary upload done", service=uploader.service_id.value, url=result.url))
        return result

    async def _run_backups(
        self,
        file_path: str,
        config: UserConfig,
        targets: list[ServiceId],
        sink: SerializedProgressSink,
        cancel_event: asyncio.Event | None,
    ) -> list[BackupOutcome]:
        if not targets:
            return []

        logger.info(format_log("Starting backups", services=",".join(t.value for t in targets)))
        # gather keeps one slot per target, in target order
        return list(
            await asyncio.gather(
                *(self._backup_leg(file_path, config, target, sink, cancel_event) for target in targets)
            )
        )

    async def _backup_leg(
        self,
        file_path: str,
        config: UserConfig,
        service_id: ServiceId,
        sink: SerializedProgressSink,
        cancel_event: asyncio.Event | None = None,
    ) -> BackupOutcome:
        """Run one backup; every failure becomes a failed outcome, never an exception."""
        if cancel_event is not None and cancel_event.is_set():
            logger.info(format_log("Backup skipped, upload cancelled", service=service_id.value))
            return BackupOutcome.failed(service_id, "cancelled before launch")

        try:
            service_config = config.service_config(service_id)
            if service_config is None:
                return BackupOutcome.failed(service_id, f"{service_id.value} is not configured")
            if not service_config.enabled:
                return BackupOutcome.failed(service_id, f"{service_id.value} is disabled")

            uploader = self.registry.create(service_id)
            self._validate(uploader, service_config)

            progress = LegProgress(backup_leg(service_id), sink)
            result = await uploader.upload(file_path, UploadContext(config=service_config), progress)
            progress.complete()
        except OrchestrationError as e:
            kind = getattr(e.kind, "value", e.kind)
            logger.warning(format_log("⚠️ Backup failed", service=service_id.value, kind=kind, error=e))
            return BackupOutcome.failed(service_id, str(e))
        except Exception as e:
            logger.exception(format_log("⚠️ Backup uploader crashed", service=service_id.value))
            return BackupOutcome.failed(service_id, str(e) or type(e).__name__)

        logger.info(format_log("Backup done", service=service_id.value, url=result.url))
        return BackupOutcome.success(service_id, result)

    def _launch_background_backups(
        self,
        history_id: str,
        file_path: str,
        config: UserConfig,
        targets: list[ServiceId],
        sink: SerializedProgressSink,
        cancel_event: asyncio.Event | None,
    ) -> None:
        for target in targets:
            task = asyncio.create_task(
                self._background_backup(history_id, file_path, config, target, sink, cancel_event),
                name=f"backup-{target.value}-{history_id}",
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _background_backup(
        self,
        history_id: str,
        file_path: str,
        config: UserConfig,
        service_id: ServiceId,
        sink: SerializedProgressSink,
        cancel_event: asyncio.Event | None,
    ) -> BackupOutcome:
        outcome = await self._backup_leg(file_path, config, service_id, sink, cancel_event)
        if self.history is not None:
            try:
                await self.history.merge_backup_outcome(history_id, outcome)
            except Exception as e:
                logger.error(format_log("❌ Failed to record backup outcome", id=history_id, error=e))
        return outcome

    async def _persist(self, report: UploadReport) -> None:
        if self.history is None:
            return
        try:
            await self.history.append(report.item)
        except Exception as e:
            warning = HistoryPersistFailed(report.item.id, e)
            logger.warning(format_log("⚠️ History not saved", id=report.item.id, error=e))
            report.warnings.append(warning)
            return
        report.history_changed = True

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None, where: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelled(f"Upload cancelled {where}")

    @staticmethod
    def _enter(phase: UploadPhase, file_path: str) -> None:
        logger.debug(format_log("Upload phase", phase=phase.value, file=os.path.basename(file_path)))


def pending_backups(item: HistoryItem) -> list[ServiceId]:
    return [b.service_id for b in item.backups if b.status == BackupStatus.PENDING]
