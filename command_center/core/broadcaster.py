"""
Realtime broadcaster.

Fans state-change events out to observers subscribed to a topic. Topics are
``execution:<id>`` for one execution's progress stream and ``global`` for
issue and execution lifecycle events. Delivery is best-effort and at most
once per currently subscribed observer; nothing is buffered or replayed.
"""

from typing import Any, Awaitable, Callable, Dict, List

import structlog

logger = structlog.get_logger()

GLOBAL_TOPIC = "global"

Observer = Callable[[Dict[str, Any]], Awaitable[None]]


def execution_topic(execution_id: str) -> str:
    return f"execution:{execution_id}"


class RealtimeBroadcaster:
    """Topic-based pub/sub for connected clients."""

    def __init__(self) -> None:
        self._topics: Dict[str, List[Observer]] = {}

    def subscribe(self, topic: str, observer: Observer) -> None:
        observers = self._topics.setdefault(topic, [])
        if observer not in observers:
            observers.append(observer)
            logger.debug("observer_subscribed", topic=topic)

    def unsubscribe(self, topic: str, observer: Observer) -> None:
        observers = self._topics.get(topic)
        if not observers or observer not in observers:
            return
        observers.remove(observer)
        if not observers:
            del self._topics[topic]
        logger.debug("observer_unsubscribed", topic=topic)

    def unsubscribe_all(self, observer: Observer) -> None:
        for topic in list(self._topics):
            self.unsubscribe(topic, observer)

    def subscribers(self, topic: str) -> List[Observer]:
        return list(self._topics.get(topic, []))

    async def publish(self, topic: str, event: str, data: Dict[str, Any]) -> int:
        """Deliver an event to the topic's current observers, in order.

        An observer that raises is dropped from every topic.

        Returns:
            Number of observers that received the event
        """
        message = {"event": event, "topic": topic, "data": data}
        delivered = 0
        for observer in self.subscribers(topic):
            try:
                await observer(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "observer_delivery_failed", topic=topic, event=event, error=str(e)
                )
                self.unsubscribe_all(observer)
        return delivered

    async def broadcast(self, event: str, data: Dict[str, Any]) -> int:
        """Publish on the global topic."""
        return await self.publish(GLOBAL_TOPIC, event, data)
