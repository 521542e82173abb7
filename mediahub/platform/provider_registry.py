from mediahub.core.config import settings
from mediahub.platform.ports.object_storage import ObjectStoragePort
from mediahub.platform.adapters.storage_local import LocalFilesystemStorage
from mediahub.platform.ports.event_bus import EventBusPort
from mediahub.platform.adapters.bus_noop import NoopEventBus

class ProviderRegistry:
    _object_storage: ObjectStoragePort | None = None
    _event_bus: EventBusPort | None = None

    @classmethod
    def object_storage(cls) -> ObjectStoragePort:
        if cls._object_storage is None:
            cls._object_storage = LocalFilesystemStorage(settings.LOCAL_STORAGE_ROOT)
        return cls._object_storage

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                from mediahub.platform.adapters.bus_redis import RedisEventBus
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def override(cls, *, object_storage: ObjectStoragePort | None = None, event_bus: EventBusPort | None = None):
        """Swap providers (tests, embedding apps)."""
        if object_storage is not None:
            cls._object_storage = object_storage
        if event_bus is not None:
            cls._event_bus = event_bus

    @classmethod
    def reset(cls):
        cls._object_storage = None
        cls._event_bus = None

registry = ProviderRegistry()
