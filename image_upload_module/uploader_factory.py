"""Registration of the built-in uploaders."""

from logger import get_logger
from models import ServiceId

from .core.registry import UploaderRegistry
from .platforms.r2.uploader import R2Uploader
from .platforms.smms.uploader import SmmsUploader
from .platforms.weibo.uploader import WeiboUploader

logger = get_logger()

BUILTIN_UPLOADERS = {
    ServiceId.WEIBO: WeiboUploader,
    ServiceId.R2: R2Uploader,
    ServiceId.SMMS: SmmsUploader,
}

_default_registry: UploaderRegistry | None = None


def register_builtin_uploaders(registry: UploaderRegistry) -> UploaderRegistry:
    """Register Weibo, R2 and SM.MS on the given registry."""
    for service_id, uploader_class in BUILTIN_UPLOADERS.items():
        registry.register(service_id, uploader_class)
    logger.debug(f"Built-in uploaders registered: {', '.join(s.value for s in BUILTIN_UPLOADERS)}")
    return registry


def get_default_registry() -> UploaderRegistry:
    """Process-wide registry, filled with the built-in uploaders on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = register_builtin_uploaders(UploaderRegistry())
    return _default_registry
