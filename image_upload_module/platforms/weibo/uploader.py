"""
Weibo picture uploader (cookie session, XML response)
"""

import os
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass

import aiohttp

from logger import format_log, get_logger
from models import ServiceId, UploadResult

from ...core.base import BaseUploader, ProgressCallback, UploadContext
from ...core.errors import UploadErrorKind

logger = get_logger()

UPLOAD_URL = (
    "https://picupload.weibo.com/interface/pic_upload.php"
    "?s=xml&ori=1&data=1&rotate=0&wm=&app=miniblog&mime=image/jpeg"
)
IMAGE_BASE_URL = "https://tvax1.sinaimg.cn"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
)
COOKIE_EXPIRED_CODE = "100006"
CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 60


@dataclass
class WeiboPicture:
    pid: str
    width: int = 0
    height: int = 0
    size: int = 0


class WeiboResponseError(Exception):
    """Weibo answered, but not with a picture."""

    def __init__(self, message: str, cookie_expired: bool = False):
        super().__init__(message)
        self.cookie_expired = cookie_expired


def _tag(xml: str, name: str) -> str | None:
    match = re.search(rf"<{name}>(.*?)</{name}>", xml, re.DOTALL)
    return match.group(1).strip() if match else None


def _int_tag(xml: str, name: str) -> int:
    value = _tag(xml, name)
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def parse_weibo_response(xml: str) -> WeiboPicture:
    """Extract the picture id and dimensions from the upload response."""
    if f"<data>{COOKIE_EXPIRED_CODE}</data>" in xml:
        raise WeiboResponseError(f"Cookie expired (code {COOKIE_EXPIRED_CODE})", cookie_expired=True)

    pid = _tag(xml, "pid")
    if not pid:
        raise WeiboResponseError("Failed to parse PID from response")

    return WeiboPicture(
        pid=pid,
        width=_int_tag(xml, "width"),
        height=_int_tag(xml, "height"),
        size=_int_tag(xml, "size"),
    )


class WeiboUploader(BaseUploader):
    """Uploads images to Weibo using a browser session cookie."""

    service_id = ServiceId.WEIBO
    service_name = "Weibo"
    required_fields = ("cookie",)

    async def upload(
        self,
        file_path: str,
        context: UploadContext,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        data = await self._read_file(file_path)
        logger.info(format_log("📤 Uploading to Weibo", file=os.path.basename(file_path), size=len(data)))

        xml = await self._send(data, context.config.cookie, context.timeout or DEFAULT_TIMEOUT, on_progress)

        try:
            picture = parse_weibo_response(xml)
        except WeiboResponseError as e:
            if e.cookie_expired:
                raise self._error(
                    UploadErrorKind.CREDENTIAL_EXPIRED,
                    f"cookie expired (code {COOKIE_EXPIRED_CODE}), update it in the settings",
                    e,
                ) from e
            raise self._error(UploadErrorKind.REMOTE_REJECTED, str(e), e) from e

        hash_name = f"{picture.pid}.jpg"
        url = f"{IMAGE_BASE_URL}/large/{hash_name}"
        logger.info(format_log("✅ Weibo upload done", pid=picture.pid, url=url))

        return self._create_result(
            file_key=picture.pid,
            url=url,
            size=picture.size or len(data),
            width=picture.width,
            height=picture.height,
            metadata={"hashName": hash_name, "pid": picture.pid},
        )

    def get_thumbnail_url(self, result: UploadResult) -> str:
        return f"{IMAGE_BASE_URL}/thumb150/{result.file_key}.jpg"

    async def _send(
        self,
        data: bytes,
        cookie: str,
        timeout: float,
        on_progress: ProgressCallback | None,
    ) -> str:
        """POST the raw bytes and return the response body."""
        headers = {
            "Cookie": cookie,
            "Content-Type": "application/octet-stream",
            "Content-Length": str(len(data)),
            "Referer": "https://photo.weibo.com/",
            "Origin": "https://photo.weibo.com",
            "User-Agent": USER_AGENT,
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.post(
                    UPLOAD_URL, data=self._body(data, on_progress), headers=headers
                ) as response:
                    text = await response.text()
                    if response.status != 200:
                        raise self._error(
                            UploadErrorKind.REMOTE_REJECTED, f"HTTP {response.status}: {text[:200]}"
                        )
                    return text
        except TimeoutError as e:
            raise self._error(UploadErrorKind.NETWORK_FAILURE, "request timed out", e) from e
        except aiohttp.ClientError as e:
            raise self._error(UploadErrorKind.NETWORK_FAILURE, f"request failed: {e}", e) from e

    async def _body(self, data: bytes, on_progress: ProgressCallback | None) -> AsyncIterator[bytes]:
        total = len(data) or 1
        for offset in range(0, len(data), CHUNK_SIZE):
            chunk = data[offset : offset + CHUNK_SIZE]
            yield chunk
            self._report_progress(on_progress, (offset + len(chunk)) * 100 // total)
