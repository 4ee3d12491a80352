from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import settings
from models import BackupStatus, HistoryItem


def format_file_size(size_bytes: int) -> str:
    """Human readable byte size."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    i = 0

    while size >= 1024 and i < len(size_names) - 1:
        size /= 1024.0
        i += 1

    if i == 0:
        return f"{size:.0f} {size_names[i]}"
    return f"{size:.1f} {size_names[i]}"


def format_timestamp(dt: datetime) -> str:
    """Render a history timestamp in the configured timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo("UTC"))

    try:
        local_tz = ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        local_tz = ZoneInfo("UTC")

    return dt.astimezone(local_tz).strftime("%d.%m.%Y %H:%M:%S")


_STATUS_ICONS = {
    BackupStatus.SUCCESS: "✅",
    BackupStatus.FAILED: "❌",
    BackupStatus.PENDING: "⏳",
}


def format_history_item(item: HistoryItem) -> str:
    """Multi-line summary of one history item for the CLI."""
    result = item.primary_result
    info = f"🖼️  {item.local_file_name}  [{item.id}]\n"
    info += f"   ⏰ {format_timestamp(item.timestamp)}\n"
    info += f"   📤 {item.primary_service.value}: {format_file_size(result.size)}"
    if result.width and result.height:
        info += f", {result.width}x{result.height}"
    info += f"\n   🔗 {item.generated_link}\n"

    for backup in item.backups:
        icon = _STATUS_ICONS.get(backup.status, "?")
        detail = backup.result.url if backup.result else backup.error or backup.status.value
        info += f"   {icon} {backup.service_id.value}: {detail}\n"

    return info
