from __future__ import annotations

import asyncio
import time

import pytest

from conftest import FailingHistory, StubUploader, make_config, upload_error
from image_upload_module.config_factory import DEFAULT_PROXY_PREFIX, OutputFormat, UserConfig
from image_upload_module.core.errors import (
    HistoryPersistFailed,
    InvalidConfig,
    MissingPrimaryConfig,
    PrimaryServiceDisabled,
    PrimaryUploadFailed,
    ServiceNotRegistered,
    UploadCancelled,
    UploadErrorKind,
)
from image_upload_module.core.orchestrator import UploadOrchestrator, generate_history_id, pending_backups
from image_upload_module.core.progress import PRIMARY_LEG, backup_leg
from image_upload_module.platforms.weibo.uploader import WeiboUploader
from models import BackupStatus, ServiceId


def register_stubs(registry, **stubs: StubUploader) -> None:
    for name, stub in stubs.items():
        registry.register(ServiceId(name), lambda stub=stub: stub)


class TestPrimaryAndBackups:
    async def test_weibo_primary_with_r2_backup_direct(self, registry, history_store, image_file, weibo_r2_config):
        weibo = StubUploader(ServiceId.WEIBO, url="https://tvax1.sinaimg.cn/large/abc.jpg")
        r2 = StubUploader(ServiceId.R2, url="https://cdn.example.com/uploads/photo.png")
        register_stubs(registry, weibo=weibo, r2=r2)
        orchestrator = UploadOrchestrator(registry, history_store)

        report = await orchestrator.upload_file(image_file, weibo_r2_config)
        item = report.item

        assert item.generated_link == "https://tvax1.sinaimg.cn/large/abc.jpg"
        assert item.primary_service == ServiceId.WEIBO
        assert item.local_file_name == "photo.png"
        assert len(item.backups) == 1
        assert item.backups[0].status == BackupStatus.SUCCESS
        assert item.backups[0].result.url == "https://cdn.example.com/uploads/photo.png"

        stored = await history_store.list()
        assert [s.id for s in stored] == [item.id]

    async def test_proxied_link_wraps_primary_url(self, registry, history_store, image_file, weibo_r2_config):
        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO, url="https://tvax1.sinaimg.cn/large/abc.jpg"),
            r2=StubUploader(ServiceId.R2),
        )
        config = weibo_r2_config.model_copy(update={"output_format": OutputFormat.PROXIED})

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.generated_link == DEFAULT_PROXY_PREFIX + "https://tvax1.sinaimg.cn/large/abc.jpg"
        assert item.primary_result.url == "https://tvax1.sinaimg.cn/large/abc.jpg"

    async def test_proxied_format_leaves_non_weibo_primary_direct(self, registry, history_store, image_file):
        register_stubs(registry, r2=StubUploader(ServiceId.R2, url="https://r2.example.com/img.png"))
        config = make_config("r2", outputFormat="proxied")

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)

        assert config.output_format == OutputFormat.PROXIED
        assert report.item.generated_link == report.item.primary_result.url
        assert report.item.generated_link == "https://r2.example.com/img.png"

    async def test_no_backups_configured(self, registry, history_store, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))
        config = make_config("smms")

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.backups == []
        assert len(await history_store.list()) == 1

    async def test_backup_failure_does_not_fail_upload(self, registry, history_store, image_file):
        r2 = StubUploader(ServiceId.R2, error=upload_error(ServiceId.R2, UploadErrorKind.NETWORK_FAILURE, "R2: down"))
        smms = StubUploader(ServiceId.SMMS)
        register_stubs(registry, weibo=StubUploader(ServiceId.WEIBO), r2=r2, smms=smms)
        config = make_config("weibo", ["r2", "smms"])

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert [b.service_id for b in item.backups] == [ServiceId.R2, ServiceId.SMMS]
        assert item.backups[0].status == BackupStatus.FAILED
        assert item.backups[0].error == "R2: down"
        assert item.backups[0].result is None
        assert item.backups[1].status == BackupStatus.SUCCESS
        assert len(item.successful_backups) == 1

    async def test_backups_run_concurrently(self, registry, history_store, image_file):
        in_flight = 0
        peak = 0

        class TrackingUploader(StubUploader):
            async def upload(self, file_path, context, on_progress=None):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                try:
                    return await super().upload(file_path, context, on_progress)
                finally:
                    in_flight -= 1

        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO),
            r2=TrackingUploader(ServiceId.R2, delay=0.3),
            smms=TrackingUploader(ServiceId.SMMS, delay=0.3),
        )
        config = make_config("weibo", ["r2", "smms"])

        started = time.monotonic()
        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        elapsed = time.monotonic() - started

        assert peak == 2
        assert elapsed < 0.55
        assert [b.status for b in report.item.backups] == [BackupStatus.SUCCESS, BackupStatus.SUCCESS]

    async def test_primary_is_never_its_own_backup(self, registry, history_store, image_file):
        weibo = StubUploader(ServiceId.WEIBO)
        register_stubs(registry, weibo=weibo, r2=StubUploader(ServiceId.R2))
        config = make_config("weibo", ["weibo", "r2", "r2"])

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert [b.service_id for b in item.backups] == [ServiceId.R2]
        assert len(weibo.calls) == 1

    async def test_backup_without_config_becomes_failed_outcome(self, registry, history_store, image_file):
        register_stubs(registry, weibo=StubUploader(ServiceId.WEIBO), r2=StubUploader(ServiceId.R2))
        config = UserConfig.model_validate(
            {
                "primaryService": "weibo",
                "services": {"weibo": {"cookie": "abc"}},
                "backup": {"enabled": True, "services": ["r2"]},
            }
        )

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.backups[0].status == BackupStatus.FAILED
        assert "not configured" in item.backups[0].error

    async def test_disabled_backup_becomes_failed_outcome(self, registry, history_store, image_file):
        r2 = StubUploader(ServiceId.R2)
        register_stubs(registry, weibo=StubUploader(ServiceId.WEIBO), r2=r2)
        config = make_config(
            "weibo",
            ["r2"],
            services={
                "r2": {
                    "enabled": False,
                    "accountId": "a",
                    "accessKeyId": "b",
                    "secretAccessKey": "c",
                    "bucketName": "d",
                    "publicDomain": "https://e",
                }
            },
        )

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.backups[0].status == BackupStatus.FAILED
        assert "disabled" in item.backups[0].error
        assert r2.calls == []

    async def test_backup_factory_error_becomes_failed_outcome(self, registry, history_store, image_file):
        def broken():
            raise RuntimeError("no client")

        register_stubs(registry, weibo=StubUploader(ServiceId.WEIBO))
        registry.register(ServiceId.R2, broken)
        config = make_config("weibo", ["r2"])

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.backups[0].status == BackupStatus.FAILED
        assert "no client" in item.backups[0].error

    async def test_backup_crash_becomes_failed_outcome(self, registry, history_store, image_file):
        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO),
            r2=StubUploader(ServiceId.R2, error=KeyError("ETag")),
        )
        config = make_config("weibo", ["r2"])

        report = await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        item = report.item

        assert item.backups[0].status == BackupStatus.FAILED
        assert item.backups[0].error


class TestPrimaryFailures:
    async def test_primary_failure_leaves_history_untouched(self, registry, history_store, image_file):
        weibo = StubUploader(
            ServiceId.WEIBO,
            error=upload_error(ServiceId.WEIBO, UploadErrorKind.CREDENTIAL_EXPIRED, "Weibo: cookie expired"),
        )
        r2 = StubUploader(ServiceId.R2)
        register_stubs(registry, weibo=weibo, r2=r2)
        config = make_config("weibo", ["r2"])

        with pytest.raises(PrimaryUploadFailed) as exc_info:
            await UploadOrchestrator(registry, history_store).upload_file(image_file, config)

        assert exc_info.value.cause.kind == UploadErrorKind.CREDENTIAL_EXPIRED
        assert "cookie expired" in exc_info.value.user_message
        assert r2.calls == []
        assert await history_store.list() == []

    async def test_primary_crash_is_wrapped(self, registry, history_store, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS, error=ValueError("boom")))

        with pytest.raises(PrimaryUploadFailed) as exc_info:
            await UploadOrchestrator(registry, history_store).upload_file(image_file, make_config("smms"))

        assert exc_info.value.cause.kind == UploadErrorKind.UNKNOWN

    async def test_empty_cookie_is_rejected_before_network(self, registry, history_store, image_file):
        calls = []

        class RecordingWeibo(WeiboUploader):
            async def _send(self, *args, **kwargs):
                calls.append(args)
                raise AssertionError("network must not be reached")

        registry.register(ServiceId.WEIBO, RecordingWeibo)
        config = make_config("weibo", services={"weibo": {"cookie": "   "}})

        with pytest.raises(InvalidConfig) as exc_info:
            await UploadOrchestrator(registry, history_store).upload_file(image_file, config)

        assert exc_info.value.service_id == ServiceId.WEIBO
        assert any("cookie" in error for error in exc_info.value.errors)
        assert calls == []
        assert await history_store.list() == []

    async def test_missing_primary_config(self, registry, history_store, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))
        config = UserConfig.model_validate({"primaryService": "smms", "services": {}})

        with pytest.raises(MissingPrimaryConfig):
            await UploadOrchestrator(registry, history_store).upload_file(image_file, config)

    async def test_no_config_at_all(self, registry, image_file):
        with pytest.raises(MissingPrimaryConfig):
            await UploadOrchestrator(registry).upload_file(image_file, None)

    async def test_disabled_primary(self, registry, history_store, image_file):
        smms = StubUploader(ServiceId.SMMS)
        register_stubs(registry, smms=smms)
        config = make_config("smms", services={"smms": {"enabled": False, "token": "t"}})

        with pytest.raises(PrimaryServiceDisabled):
            await UploadOrchestrator(registry, history_store).upload_file(image_file, config)
        assert smms.calls == []

    async def test_unregistered_primary(self, registry, history_store, image_file):
        with pytest.raises(ServiceNotRegistered):
            await UploadOrchestrator(registry, history_store).upload_file(image_file, make_config("r2"))


class TestPersistence:
    async def test_history_failure_is_a_warning(self, registry, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))
        orchestrator = UploadOrchestrator(registry, FailingHistory())

        report = await orchestrator.upload_file(image_file, make_config("smms"))

        assert report.item.generated_link == "https://smms.example.com/img.png"
        assert report.history_changed is False
        assert len(report.warnings) == 1
        assert isinstance(report.warnings[0], HistoryPersistFailed)
        assert report.warnings[0].history_id == report.item.id

    async def test_history_changed_flag(self, registry, history_store, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))

        report = await UploadOrchestrator(registry, history_store).upload_file(
            image_file, make_config("smms")
        )

        assert report.history_changed is True
        assert report.warnings == []

    async def test_without_history_recorder(self, registry, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))

        report = await UploadOrchestrator(registry).upload_file(image_file, make_config("smms"))

        assert report.history_changed is False
        assert report.item.primary_result.service_id == ServiceId.SMMS


class TestCancellation:
    async def test_cancel_before_start(self, registry, history_store, image_file):
        weibo = StubUploader(ServiceId.WEIBO)
        register_stubs(registry, weibo=weibo)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(UploadCancelled):
            await UploadOrchestrator(registry, history_store).upload_file(
                image_file, make_config("weibo"), cancel_event=cancel
            )

        assert weibo.calls == []
        assert await history_store.list() == []

    async def test_cancel_during_primary_skips_backups(self, registry, history_store, image_file):
        cancel = asyncio.Event()

        class CancellingUploader(StubUploader):
            async def upload(self, file_path, context, on_progress=None):
                cancel.set()
                return await super().upload(file_path, context, on_progress)

        r2 = StubUploader(ServiceId.R2)
        register_stubs(registry, weibo=CancellingUploader(ServiceId.WEIBO), r2=r2)

        report = await UploadOrchestrator(registry, history_store).upload_file(
            image_file, make_config("weibo", ["r2"]), cancel_event=cancel
        )
        item = report.item

        assert item.backups[0].status == BackupStatus.FAILED
        assert item.backups[0].error == "cancelled before launch"
        assert r2.calls == []
        assert len(await history_store.list()) == 1


class TestBackgroundBackups:
    async def test_no_wait_returns_pending_then_merges(self, registry, history_store, image_file):
        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO),
            r2=StubUploader(ServiceId.R2, delay=0.01),
        )
        orchestrator = UploadOrchestrator(registry, history_store)

        report = await orchestrator.upload_file(
            image_file, make_config("weibo", ["r2"]), wait_for_backups=False
        )

        assert report.item.backups[0].status == BackupStatus.PENDING
        assert pending_backups(report.item) == [ServiceId.R2]

        await orchestrator.drain()

        stored = await history_store.get(report.item.id)
        assert stored.backups[0].status == BackupStatus.SUCCESS
        assert pending_backups(stored) == []

    async def test_retry_backup_replaces_failed_slot(self, registry, history_store, image_file):
        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO),
            r2=StubUploader(ServiceId.R2, error=upload_error(ServiceId.R2, UploadErrorKind.NETWORK_FAILURE, "down")),
        )
        orchestrator = UploadOrchestrator(registry, history_store)
        config = make_config("weibo", ["r2"])
        report = await orchestrator.upload_file(image_file, config)
        item = report.item
        assert item.backups[0].status == BackupStatus.FAILED

        register_stubs(registry, r2=StubUploader(ServiceId.R2, url="https://cdn.example.com/photo.png"))
        outcome = await orchestrator.retry_backup(item.id, image_file, ServiceId.R2, config)

        assert outcome.status == BackupStatus.SUCCESS
        stored = await history_store.get(item.id)
        assert len(stored.backups) == 1
        assert stored.backups[0].result.url == "https://cdn.example.com/photo.png"


class TestProgress:
    async def test_progress_is_monotonic_per_leg_and_ends_at_100(self, registry, history_store, image_file):
        register_stubs(
            registry,
            weibo=StubUploader(ServiceId.WEIBO, progress_steps=(10, 60, 40, 60, 250)),
            r2=StubUploader(ServiceId.R2, progress_steps=(-5, 30.7)),
        )
        events = []

        await UploadOrchestrator(registry, history_store).upload_file(
            image_file, make_config("weibo", ["r2"]), on_progress=events.append
        )

        primary = [e.percent for e in events if e.leg == PRIMARY_LEG]
        backup = [e.percent for e in events if e.leg == backup_leg(ServiceId.R2)]
        assert primary == [10, 60, 100]
        assert backup == [0, 30, 100]

    async def test_broken_sink_does_not_break_upload(self, registry, history_store, image_file):
        register_stubs(registry, smms=StubUploader(ServiceId.SMMS))

        def sink(event):
            raise RuntimeError("ui gone")

        report = await UploadOrchestrator(registry, history_store).upload_file(
            image_file, make_config("smms"), on_progress=sink
        )
        item = report.item

        assert item.primary_result.service_id == ServiceId.SMMS


def test_history_ids_are_unique_and_ordered():
    ids = [generate_history_id() for _ in range(50)]
    assert len(set(ids)) == 50
    assert ids == sorted(ids)
