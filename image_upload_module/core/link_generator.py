from logger import format_log, get_logger
from models import ServiceId, UploadResult

from ..config_factory import OutputFormat, UserConfig

logger = get_logger()


def generate_link(result: UploadResult, config: UserConfig) -> str:
    """Apply the configured output format to the primary URL; only weibo links are proxied."""
    if config.output_format == OutputFormat.PROXIED and result.service_id == ServiceId.WEIBO:
        prefix = config.proxy_prefix.strip()
        if not prefix:
            logger.debug(format_log("Proxy prefix empty, using direct link", url=result.url))
            return result.url
        return f"{prefix}{result.url}"

    return result.url
