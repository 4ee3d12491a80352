"""Durable upload history: recorder contract and a JSON file implementation."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from logger import format_log, get_logger
from models import BackupOutcome, HistoryItem

logger = get_logger()

DEFAULT_MAX_ITEMS = 500


class HistoryStoreError(Exception):
    """History file could not be read or written."""


class HistoryRecorder(ABC):
    """Append-only store of history items, listed newest first."""

    @abstractmethod
    async def append(self, item: HistoryItem) -> None:
        """Insert the item, or replace the stored item with the same id."""
        pass

    @abstractmethod
    async def list(self) -> list[HistoryItem]:
        """All items, newest first."""
        pass

    async def get(self, history_id: str) -> HistoryItem | None:
        for item in await self.list():
            if item.id == history_id:
                return item
        return None

    @abstractmethod
    async def merge_backup_outcome(self, history_id: str, outcome: BackupOutcome) -> HistoryItem | None:
        """Replace (last write wins) or add the backup slot of a stored item."""
        pass


class JsonHistoryStore(HistoryRecorder):
    """History kept in one JSON file: {"uploads": [newest, ..., oldest]}."""

    def __init__(self, path: str | Path, max_items: int = DEFAULT_MAX_ITEMS):
        self.path = Path(path)
        self.max_items = max_items
        self._lock = asyncio.Lock()

    async def append(self, item: HistoryItem) -> None:
        async with self._lock:
            items = await asyncio.to_thread(self._load)
            for index, existing in enumerate(items):
                if existing.id == item.id:
                    items[index] = item
                    break
            else:
                items.insert(0, item)

            if len(items) > self.max_items:
                logger.debug(format_log("History pruned", dropped=len(items) - self.max_items))
                del items[self.max_items:]

            await asyncio.to_thread(self._write, items)
        logger.debug(format_log("History item saved", id=item.id))

    async def list(self) -> list[HistoryItem]:
        async with self._lock:
            return await asyncio.to_thread(self._load)

    async def merge_backup_outcome(self, history_id: str, outcome: BackupOutcome) -> HistoryItem | None:
        async with self._lock:
            items = await asyncio.to_thread(self._load)
            for index, existing in enumerate(items):
                if existing.id == history_id:
                    merged = existing.with_backup(outcome)
                    items[index] = merged
                    await asyncio.to_thread(self._write, items)
                    return merged

        logger.warning(
            format_log("History item not found for backup outcome", id=history_id, service=outcome.service_id.value)
        )
        return None

    def _load(self) -> list[HistoryItem]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return [HistoryItem.model_validate(raw) for raw in data.get("uploads", [])]
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            backup_path = self.path.with_name(self.path.name + ".corrupt")
            logger.error(format_log("❌ History file is corrupt, moving aside", path=self.path, error=e))
            try:
                os.replace(self.path, backup_path)
            except OSError as move_error:
                raise HistoryStoreError(f"Cannot move corrupt history file: {move_error}") from move_error
            return []
        except OSError as e:
            raise HistoryStoreError(f"Cannot read history file {self.path}: {e}") from e

    def _write(self, items: list[HistoryItem]) -> None:
        payload = {"uploads": [item.model_dump(mode="json", by_alias=True) for item in items]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise HistoryStoreError(f"Cannot write history file {self.path}: {e}") from e
