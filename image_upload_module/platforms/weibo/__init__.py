"""Weibo picture hosting."""

from .uploader import WeiboUploader

__all__ = ["WeiboUploader"]
