"""Cloudflare R2 object storage."""

from .uploader import R2Uploader

__all__ = ["R2Uploader"]
