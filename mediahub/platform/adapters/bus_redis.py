import json
import logging
from redis.asyncio import from_url as redis_from_url
from mediahub.platform.ports.event_bus import EventBusPort
from mediahub.core.config import settings

log = logging.getLogger("bus.redis")

class RedisEventBus(EventBusPort):
    def __init__(self, url: str | None = None, stream: str | None = None):
        url = url or settings.REDIS_URL
        if not url:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(url, encoding="utf-8", decode_responses=True)
        self.stream = stream or settings.REDIS_STREAM or "mediahub.events"

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        payload = {
            "topic": topic,
            "key": key,
            "value": json.dumps(value, default=str),
            "headers": json.dumps(headers or {}),
        }
        await self.redis.xadd(self.stream, payload, maxlen=settings.REDIS_STREAM_MAXLEN, approximate=True)
        log.debug(f"[REDIS BUS] XADD stream={self.stream} topic={topic} key={key}")

    async def close(self):
        await self.redis.aclose()
