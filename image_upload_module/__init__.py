"""Image upload module: primary + backup fan-out to Weibo, R2 and SM.MS."""

from .config_factory import (
    DEFAULT_PROXY_PREFIX,
    BackupPolicy,
    OutputFormat,
    R2Config,
    ServiceConfigBase,
    SmmsConfig,
    UserConfig,
    WeiboConfig,
)
from .core import (
    BaseUploader,
    UploadError,
    UploadErrorKind,
    UploaderRegistry,
    UploadOrchestrator,
    UploadReport,
)
from .platforms import R2Uploader, SmmsUploader, WeiboUploader
from .uploader_factory import get_default_registry, register_builtin_uploaders

__all__ = [
    # Core classes
    "BaseUploader",
    "UploadError",
    "UploadErrorKind",
    "UploaderRegistry",
    "UploadOrchestrator",
    "UploadReport",
    # Configuration
    "DEFAULT_PROXY_PREFIX",
    "BackupPolicy",
    "OutputFormat",
    "R2Config",
    "ServiceConfigBase",
    "SmmsConfig",
    "UserConfig",
    "WeiboConfig",
    # Platform uploaders
    "R2Uploader",
    "SmmsUploader",
    "WeiboUploader",
    "get_default_registry",
    "register_builtin_uploaders",
]
