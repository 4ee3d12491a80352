"""Service-specific uploaders."""

from .r2 import R2Uploader
from .smms import SmmsUploader
from .weibo import WeiboUploader

__all__ = ["WeiboUploader", "R2Uploader", "SmmsUploader"]
