"""
Cloudflare R2 uploader (S3-compatible API through boto3)
"""

import asyncio
import mimetypes
import os
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from logger import format_log, get_logger
from models import ServiceId, UploadResult

from ...config_factory import R2Config
from ...core.base import BaseUploader, ProgressCallback, UploadContext
from ...core.errors import UploadErrorKind

logger = get_logger()

CREDENTIAL_ERROR_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "Forbidden", "403"}
BUCKET_ERROR_CODES = {"NoSuchBucket"}

ClientFactory = Callable[[R2Config], Any]


def build_key(path: str, file_name: str) -> str:
    """Object key: configured prefix without surrounding slashes, then the file name."""
    clean_path = path.strip("/")
    clean_name = file_name.lstrip("/")
    if clean_path:
        return f"{clean_path}/{clean_name}"
    return clean_name


def build_public_url(public_domain: str, key: str) -> str:
    return f"{public_domain.rstrip('/')}/{key.lstrip('/')}"


def create_r2_client(config: R2Config):
    return boto3.client(
        "s3",
        endpoint_url=f"https://{config.account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
        region_name="auto",
    )


class R2Uploader(BaseUploader):
    """Puts images into an R2 bucket served from a public domain."""

    service_id = ServiceId.R2
    service_name = "Cloudflare R2"
    required_fields = ("account_id", "access_key_id", "secret_access_key", "bucket_name", "public_domain")

    def __init__(self, client_factory: ClientFactory | None = None):
        self._client_factory = client_factory or create_r2_client

    def _extra_checks(self, config: R2Config) -> list[str]:
        domain = config.public_domain.strip()
        if domain and not domain.startswith(("http://", "https://")):
            return ["Public domain must start with http:// or https://"]
        return []

    async def upload(
        self,
        file_path: str,
        context: UploadContext,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        config: R2Config = context.config
        data = await self._read_file(file_path)

        key = build_key(config.path, os.path.basename(file_path))
        content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
        logger.info(format_log("📤 Uploading to R2", bucket=config.bucket_name, key=key, size=len(data)))

        self._report_progress(on_progress, 0)
        response = await asyncio.to_thread(self._put_object, config, key, data, content_type)
        self._report_progress(on_progress, 100)

        url = build_public_url(config.public_domain, key)
        logger.info(format_log("✅ R2 upload done", key=key, url=url))

        return self._create_result(
            file_key=key,
            url=url,
            size=len(data),
            metadata={"eTag": (response.get("ETag") or "").strip('"'), "bucket": config.bucket_name},
        )

    def _put_object(self, config: R2Config, key: str, data: bytes, content_type: str) -> dict[str, Any]:
        try:
            client = self._client_factory(config)
            return client.put_object(Bucket=config.bucket_name, Key=key, Body=data, ContentType=content_type)
        except ClientError as e:
            raise self._map_client_error(e, config) from e
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as e:
            raise self._error(UploadErrorKind.NETWORK_FAILURE, f"cannot reach R2: {e}", e) from e
        except BotoCoreError as e:
            raise self._error(UploadErrorKind.UNKNOWN, str(e), e) from e

    def _map_client_error(self, error: ClientError, config: R2Config):
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", "") or str(error)

        if code in BUCKET_ERROR_CODES:
            return self._error(UploadErrorKind.REMOTE_REJECTED, f"bucket '{config.bucket_name}' does not exist", error)
        if code in CREDENTIAL_ERROR_CODES:
            return self._error(UploadErrorKind.CREDENTIAL_INVALID, f"access denied ({code}): {message}", error)
        return self._error(UploadErrorKind.REMOTE_REJECTED, f"{code or 'error'}: {message}", error)
