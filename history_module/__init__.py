"""Upload history storage."""

from .store import DEFAULT_MAX_ITEMS, HistoryRecorder, HistoryStoreError, JsonHistoryStore

__all__ = ["HistoryRecorder", "JsonHistoryStore", "HistoryStoreError", "DEFAULT_MAX_ITEMS"]
