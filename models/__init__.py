from .upload import BackupOutcome, BackupStatus, HistoryItem, ServiceId, UploadResult

__all__ = [
    'ServiceId',
    'UploadResult',
    'BackupStatus',
    'BackupOutcome',
    'HistoryItem',
]
