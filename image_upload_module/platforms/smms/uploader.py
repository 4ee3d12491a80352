"""
SM.MS uploader (token auth, multipart form, JSON response)
"""

import json
import os
from dataclasses import dataclass

import aiohttp

from logger import format_log, get_logger
from models import ServiceId, UploadResult

from ...core.base import BaseUploader, ProgressCallback, UploadContext
from ...core.errors import UploadErrorKind

logger = get_logger()

UPLOAD_URL = "https://sm.ms/api/v2/upload"
MAX_FILE_SIZE = 5 * 1024 * 1024
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "bmp", "webp"}
DEFAULT_TIMEOUT = 60


@dataclass
class SmmsImage:
    url: str
    delete: str | None = None
    hash: str | None = None
    width: int = 0
    height: int = 0
    size: int = 0


class SmmsUploader(BaseUploader):
    """Uploads images to SM.MS with an API token."""

    service_id = ServiceId.SMMS
    service_name = "SM.MS"
    required_fields = ("token",)

    async def upload(
        self,
        file_path: str,
        context: UploadContext,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        file_name = os.path.basename(file_path)
        extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
        if extension not in ALLOWED_EXTENSIONS:
            raise self._error(
                UploadErrorKind.REMOTE_REJECTED,
                f"unsupported file type '{extension or file_name}', allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
            )

        self._report_progress(on_progress, 0)
        data = await self._read_file(file_path, max_size=MAX_FILE_SIZE)
        self._report_progress(on_progress, 33)

        logger.info(format_log("📤 Uploading to SM.MS", file=file_name, size=len(data)))
        self._report_progress(on_progress, 66)
        status, text = await self._send(file_name, data, context.config.token, context.timeout or DEFAULT_TIMEOUT)

        image = self.parse_response(status, text)
        logger.info(format_log("✅ SM.MS upload done", url=image.url))

        return self._create_result(
            file_key=image.hash or image.url.rsplit("/", 1)[-1],
            url=image.url,
            size=image.size or len(data),
            width=image.width,
            height=image.height,
            metadata={"hash": image.hash, "deleteUrl": image.delete},
        )

    def parse_response(self, status: int, text: str) -> SmmsImage:
        """Map the HTTP status and JSON body to an image or an UploadError."""
        if status == 401:
            raise self._error(UploadErrorKind.CREDENTIAL_EXPIRED, "token is invalid or expired")
        if status == 429:
            raise self._error(UploadErrorKind.RATE_LIMITED, "too many requests, try again later")
        if status == 413:
            raise self._error(UploadErrorKind.REMOTE_REJECTED, "file exceeds the 5MB limit")
        if not 200 <= status < 300:
            raise self._error(UploadErrorKind.REMOTE_REJECTED, f"HTTP {status}: {text[:200]}")

        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            raise self._error(UploadErrorKind.REMOTE_REJECTED, f"invalid JSON response: {e}", e) from e

        if not body.get("success"):
            # SM.MS refuses duplicates but reports where the existing copy lives
            if body.get("code") == "image_repeated" and isinstance(body.get("images"), str):
                return SmmsImage(url=body["images"])
            raise self._error(
                UploadErrorKind.REMOTE_REJECTED, f"{body.get('code', 'error')}: {body.get('message', '')}"
            )

        data = body.get("data")
        if not data or not data.get("url"):
            raise self._error(UploadErrorKind.REMOTE_REJECTED, "response has no image data")

        return SmmsImage(
            url=data["url"],
            delete=data.get("delete"),
            hash=data.get("hash"),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
            size=int(data.get("size") or 0),
        )

    async def _send(self, file_name: str, data: bytes, token: str, timeout: float) -> tuple[int, str]:
        form = aiohttp.FormData()
        form.add_field("smfile", data, filename=file_name, content_type="image/*")
        headers = {"Authorization": token}

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.post(UPLOAD_URL, data=form, headers=headers) as response:
                    return response.status, await response.text()
        except TimeoutError as e:
            raise self._error(UploadErrorKind.NETWORK_FAILURE, "request timed out", e) from e
        except aiohttp.ClientError as e:
            raise self._error(UploadErrorKind.NETWORK_FAILURE, f"request failed: {e}", e) from e
