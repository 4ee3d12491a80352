from .formatting import format_file_size, format_history_item, format_timestamp
from .redaction import MASK, sanitize_config, sanitize_string

__all__ = [
    "format_file_size",
    "format_history_item",
    "format_timestamp",
    "MASK",
    "sanitize_config",
    "sanitize_string",
]
