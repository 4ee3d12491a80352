import asyncio
import json
import os
import sys

import click

from config.settings import settings
from config.user_config_store import ConfigStoreError, UserConfigStore, require_user_config
from history_module import JsonHistoryStore
from image_upload_module import BackupPolicy, OutputFormat, UploadOrchestrator, get_default_registry
from image_upload_module.core import (
    PRIMARY_LEG,
    ConfigurationError,
    OrchestrationError,
    PrimaryUploadFailed,
    backup_leg,
)
from logger import get_logger, setup_logger
from models import BackupStatus, ServiceId
from utils import format_history_item, sanitize_config
from utils.spinner import spinner_manager

SERVICE_CHOICE = click.Choice([s.value for s in ServiceId], case_sensitive=False)


def _load_config(primary: str | None = None, backups: tuple[str, ...] = (), output_format: str | None = None):
    """Stored user config with command-line overrides applied."""
    store = UserConfigStore(settings.user_config.file_path)
    config = require_user_config(store, settings.user_config.key)

    update = {}
    if primary:
        update["primary_service"] = ServiceId(primary)
    if backups:
        update["backup"] = BackupPolicy(enabled=True, services=[ServiceId(b) for b in backups])
    if output_format:
        update["output_format"] = OutputFormat(output_format)
    return config.model_copy(update=update) if update else config


def _history_store() -> JsonHistoryStore:
    return JsonHistoryStore(settings.history.file_path, settings.history.max_items)


@click.group()
@click.option('--log-level', type=str, help='Log level (DEBUG, INFO, WARNING, ERROR)')
def cli(log_level: str | None):
    """Image Uploader - upload an image to a primary host and back it up elsewhere"""
    setup_logger(log_level or settings.logging.level, settings.logging.file_path)


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--primary', type=SERVICE_CHOICE, help='Primary service (overrides the stored config)')
@click.option('--backup', 'backups', type=SERVICE_CHOICE, multiple=True, help='Backup service, repeatable')
@click.option('--proxied/--direct', 'proxied', default=None, help='Output link format')
@click.option('--no-wait', is_flag=True, help='Print the link before backups finish')
def upload(file_path: str, primary: str | None, backups: tuple[str, ...], proxied: bool | None, no_wait: bool):
    """Upload an image"""
    output_format = None if proxied is None else (OutputFormat.PROXIED if proxied else OutputFormat.DIRECT)
    asyncio.run(_upload_command(file_path, primary, backups, output_format, no_wait))


@cli.command()
@click.option('--limit', type=int, default=20, show_default=True, help='Number of items to show')
def history(limit: int):
    """Show upload history, newest first"""
    asyncio.run(_history_command(limit))


@cli.command()
def services():
    """List registered upload services"""
    registry = get_default_registry()
    for service_id in registry.available_services():
        uploader = registry.create(service_id)
        required = ", ".join(uploader.required_fields)
        click.echo(f"{service_id.value:<8} {uploader.service_name:<16} required: {required}")


@cli.command()
def show_config():
    """Print the stored configuration with secrets masked"""
    logger = get_logger()
    try:
        config = _load_config()
    except (ConfigStoreError, ConfigurationError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    click.echo(json.dumps(sanitize_config(config), ensure_ascii=False, indent=2))


@cli.command()
def check_config():
    """Validate every configured service without uploading"""
    logger = get_logger()
    try:
        config = _load_config()
    except (ConfigStoreError, ConfigurationError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    registry = get_default_registry()
    ok = True
    for service_id, service_config in config.services.items():
        validation = registry.create(service_id).validate_config(service_config)
        if not service_config.enabled:
            spinner_manager.print_info(f"{service_id.value}: disabled")
        elif validation.valid:
            spinner_manager.print_success(f"{service_id.value}: ok")
        else:
            ok = False
            spinner_manager.print_error(f"{service_id.value}: {'; '.join(validation.errors)}")

    if config.service_config(config.primary_service) is None:
        ok = False
        spinner_manager.print_error(f"primary service {config.primary_service.value} has no configuration")

    for problem in config.backup_policy_errors():
        spinner_manager.print_warning(problem)

    if not ok:
        sys.exit(1)


@cli.command()
@click.argument('history_id', type=str)
@click.argument('service', type=SERVICE_CHOICE)
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
def retry_backup(history_id: str, service: str, file_path: str):
    """Retry one backup of a history item"""
    asyncio.run(_retry_backup_command(history_id, ServiceId(service), file_path))


async def _upload_command(
    file_path: str,
    primary: str | None,
    backups: tuple[str, ...],
    output_format: OutputFormat | None,
    no_wait: bool,
):
    logger = get_logger()

    try:
        config = _load_config(primary, backups, output_format)
    except (ConfigStoreError, ConfigurationError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    orchestrator = UploadOrchestrator(get_default_registry(), _history_store())
    legs = [PRIMARY_LEG] + [backup_leg(s) for s in config.backup_targets()]

    try:
        with spinner_manager.upload_progress(legs) as sink:
            report = await orchestrator.upload_file(
                file_path, config, sink, wait_for_backups=not no_wait
            )
            if no_wait:
                click.echo(report.item.generated_link)
                await orchestrator.drain()
    except PrimaryUploadFailed as e:
        spinner_manager.print_error(e.user_message)
        sys.exit(1)
    except OrchestrationError as e:
        spinner_manager.print_error(f"{e.kind}: {e}")
        sys.exit(1)

    item = report.item
    for warning in report.warnings:
        spinner_manager.print_warning(str(warning))

    if no_wait:
        stored = await orchestrator.history.get(item.id)
        item = stored or item
    else:
        click.echo(item.generated_link)

    for outcome in item.backups:
        if outcome.status == BackupStatus.SUCCESS:
            spinner_manager.print_success(f"backup {outcome.service_id.value}: {outcome.result.url}")
        else:
            spinner_manager.print_warning(f"backup {outcome.service_id.value}: {outcome.error or outcome.status.value}")

    logger.debug(f"History item {item.id} for {os.path.basename(file_path)}")


async def _history_command(limit: int):
    logger = get_logger()
    store = _history_store()

    try:
        items = await store.list()
    except Exception as e:
        logger.error(f"❌ Cannot read history: {e}")
        sys.exit(1)

    if not items:
        click.echo("📋 History is empty")
        return

    for item in items[:limit]:
        click.echo(format_history_item(item))


async def _retry_backup_command(history_id: str, service_id: ServiceId, file_path: str):
    logger = get_logger()

    try:
        config = _load_config()
    except (ConfigStoreError, ConfigurationError) as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    store = _history_store()
    if await store.get(history_id) is None:
        logger.error(f"❌ History item not found: {history_id}")
        sys.exit(1)

    orchestrator = UploadOrchestrator(get_default_registry(), store)
    with spinner_manager.upload_progress([backup_leg(service_id)]) as sink:
        outcome = await orchestrator.retry_backup(history_id, file_path, service_id, config, sink)

    if outcome.status == BackupStatus.SUCCESS:
        spinner_manager.print_success(f"{service_id.value}: {outcome.result.url}")
    else:
        spinner_manager.print_error(f"{service_id.value}: {outcome.error}")
        sys.exit(1)


def main():
    cli()


if __name__ == "__main__":
    main()
