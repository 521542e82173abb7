import json
import logging
from mediahub.platform.ports.event_bus import EventBusPort

log = logging.getLogger("bus.noop")

class NoopEventBus(EventBusPort):
    """Logs events instead of shipping them. Keeps the last few for inspection."""

    def __init__(self, keep: int = 100):
        self.keep = keep
        self.published: list[dict] = []

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        log.info(f"[NOOP BUS] topic={topic} key={key} value={json.dumps(value, default=str)} headers={headers or {}}")
        self.published.append({"topic": topic, "key": key, "value": value, "headers": headers or {}})
        del self.published[:-self.keep]
