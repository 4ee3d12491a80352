"""SM.MS image hosting."""

from .uploader import SmmsUploader

__all__ = ["SmmsUploader"]
