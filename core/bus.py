import asyncio
from collections import defaultdict

class EventBus:
    def __init__(self):
        self._subs = defaultdict(list)

    def subscribe(self, topic: str, queue: asyncio.Queue):
        self._subs[topic].append(queue)

    def unsubscribe(self, topic: str, queue: asyncio.Queue):
        subs = self._subs.get(topic, [])
        if queue in subs:
            subs.remove(queue)

    def subscribers(self, topic: str) -> int:
        return len(self._subs.get(topic, []))

    async def publish(self, topic: str, data):
        for q in list(self._subs.get(topic, [])):
            await q.put(data)

