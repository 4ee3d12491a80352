from collections.abc import Callable

from logger import format_log, get_logger
from models import ServiceId

from .base import BaseUploader
from .errors import ServiceNotRegistered, UploaderCreationError

logger = get_logger()

UploaderFactoryFunction = Callable[[], BaseUploader]


class UploaderRegistry:
    """Mapping ServiceId -> uploader factory, filled once at startup."""

    def __init__(self):
        self._factories: dict[ServiceId, UploaderFactoryFunction] = {}

    def register(self, service_id: ServiceId | str, factory: UploaderFactoryFunction) -> None:
        """Register a factory; the last registration for an id wins."""
        service_id = ServiceId(service_id)
        if service_id in self._factories:
            logger.warning(format_log("⚠️ Uploader factory overridden", service=service_id.value))
        # Re-registration keeps the first position in the ordering.
        self._factories[service_id] = factory
        logger.debug(format_log("Uploader registered", service=service_id.value))

    def create(self, service_id: ServiceId | str) -> BaseUploader:
        try:
            key = ServiceId(service_id)
        except ValueError:
            raise ServiceNotRegistered(service_id, self.available_services()) from None

        factory = self._factories.get(key)
        if factory is None:
            raise ServiceNotRegistered(key, self.available_services())

        try:
            return factory()
        except Exception as e:
            logger.error(format_log("❌ Uploader factory failed", service=key.value, error=e))
            raise UploaderCreationError(key, e) from e

    def available_services(self) -> list[ServiceId]:
        """Registered services in registration order."""
        return list(self._factories)

    def is_registered(self, service_id: ServiceId | str) -> bool:
        try:
            return ServiceId(service_id) in self._factories
        except ValueError:
            return False

    def unregister(self, service_id: ServiceId | str) -> bool:
        return self._factories.pop(ServiceId(service_id), None) is not None

    def clear(self) -> None:
        self._factories.clear()
