import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class SceneEventBus:
    """
    In-process pub/sub bus for scene status notifications, consumed by the SSE
    endpoint.

    Every event carries a bus-wide `seq` so a client can spot gaps. A new
    subscriber first receives the latest status event, so a viewer that
    connects mid-load still shows what the loader is doing.
    """

    def __init__(self, max_queue: int = 256) -> None:
        self._subscribers: List[asyncio.Queue] = []
        self._lock = asyncio.Lock()
        self._max_queue = max_queue
        self._seq = 0
        self._last_status: Optional[str] = None

    async def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        async with self._lock:
            if self._last_status is not None:
                q.put_nowait(self._last_status)
            self._subscribers.append(q)
        return q

    async def unsubscribe(self, q: asyncio.Queue) -> None:
        async with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def get_subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: Dict[str, Any]) -> None:
        async with self._lock:
            self._seq += 1
            data = json.dumps({**event, "seq": self._seq})
            if event.get("type") == "scene:status":
                self._last_status = data
            for q in list(self._subscribers):
                try:
                    q.put_nowait(data)
                except asyncio.QueueFull:
                    # Slow consumer; drop it rather than block the loader
                    logger.warning("📡 Dropping scene event subscriber with a full queue")
                    self._subscribers.remove(q)

    async def publish_status(
        self,
        token: int,
        status: str,
        committed: bool = False,
        warnings: Sequence[str] = (),
    ) -> None:
        """Status line for a load sequence; `committed` marks the final event of a sequence."""
        event: Dict[str, Any] = {"type": "scene:status", "token": token, "status": status}
        if committed:
            event["committed"] = True
            event["warnings"] = list(warnings)
        await self.publish(event)
