"""
In-process notification bus

Fan-out of order/kitchen events to whoever is subscribed for an
establishment (the SSE stream endpoint, tests), plus a bounded history of
recent notifications per establishment.

One instance is created by the application lifespan and handed to the
services that publish; there is no module-level singleton.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional
import uuid

from shared.core import get_logger
from app.domain.enums import NotificationType
from app.domain.models import utcnow

logger = get_logger(__name__)

Subscriber = Callable[["Notification"], None]


@dataclass
class Notification:
    type: NotificationType
    establishment_id: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "establishment_id": self.establishment_id,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "created_at": self.created_at.isoformat() + "Z",
        }


def _order_label(order) -> str:
    return order.code or f"#{order.id[:8]}"


class NotificationBus:
    """
    Per-establishment pub/sub with a ring buffer of recent notifications.

    deque(maxlen) append and dict.setdefault are single atomic operations,
    so publishers on request threads and readers on the event loop share
    the structures without a lock.
    """

    def __init__(self, buffer_size: int = 100):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size
        self._history: Dict[str, Deque[Notification]] = {}
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, establishment_id: str, notification: Notification) -> None:
        if self._closed:
            logger.warning(
                "Notification dropped, bus is closed",
                extra={'extra_fields': {'type': notification.type.value, 'establishment_id': establishment_id}}
            )
            return

        history = self._history.setdefault(establishment_id, deque(maxlen=self.buffer_size))
        history.appendleft(notification)

        for callback in list(self._subscribers.get(establishment_id, ())):
            try:
                callback(notification)
            except Exception:
                logger.error(
                    "Subscriber failed, removing it",
                    exc_info=True,
                    extra={'extra_fields': {'establishment_id': establishment_id}}
                )
                self._remove(establishment_id, callback)

        logger.debug(
            "Notification published",
            extra={'extra_fields': {
                'type': notification.type.value,
                'establishment_id': establishment_id,
                'subscribers': len(self._subscribers.get(establishment_id, ())),
            }}
        )

    def subscribe(self, establishment_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a handle that unsubscribes it."""
        if self._closed:
            raise RuntimeError("NotificationBus is closed")
        self._subscribers.setdefault(establishment_id, []).append(callback)

        def unsubscribe() -> None:
            self._remove(establishment_id, callback)

        return unsubscribe

    def subscriber_count(self, establishment_id: Optional[str] = None) -> int:
        if establishment_id is not None:
            return len(self._subscribers.get(establishment_id, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def recent(self, establishment_id: str, limit: int = 10) -> List[Notification]:
        history = self._history.get(establishment_id)
        if not history:
            return []
        return list(history)[:max(limit, 0)]

    def clear(self, establishment_id: str) -> None:
        self._history.pop(establishment_id, None)

    def close(self) -> None:
        self._closed = True
        self._subscribers.clear()
        self._history.clear()
        logger.info("Notification bus closed")

    def _remove(self, establishment_id: str, callback: Subscriber) -> None:
        subs = self._subscribers.get(establishment_id)
        if subs and callback in subs:
            subs.remove(callback)
            if not subs:
                self._subscribers.pop(establishment_id, None)

    # Typed helpers used by the services

    def notify_new_order(self, order) -> Notification:
        notification = Notification(
            type=NotificationType.NEW_ORDER,
            establishment_id=order.establishment_id,
            title="New order",
            message=f"Order {_order_label(order)} - {order.customer_name or 'Customer'}",
            data={
                "order_id": order.id,
                "code": order.code,
                "customer_name": order.customer_name,
                "total_amount": str(order.total_amount),
                "items_count": len(order.items),
            },
        )
        self.publish(order.establishment_id, notification)
        return notification

    def notify_order_updated(self, order) -> Notification:
        notification = Notification(
            type=NotificationType.ORDER_UPDATED,
            establishment_id=order.establishment_id,
            title="Order updated",
            message=f"Order {_order_label(order)} was updated",
            data={"order_id": order.id, "code": order.code, "status": order.status},
        )
        self.publish(order.establishment_id, notification)
        return notification

    def notify_order_paid(self, order) -> Notification:
        notification = Notification(
            type=NotificationType.ORDER_PAID,
            establishment_id=order.establishment_id,
            title="Order paid",
            message=f"Order {_order_label(order)} was paid",
            data={"order_id": order.id, "code": order.code, "total_amount": str(order.total_amount)},
        )
        self.publish(order.establishment_id, notification)
        return notification

    def notify_ticket(self, ticket, event_type: NotificationType, previous_status: Optional[str] = None) -> Notification:
        data = {
            "ticket_id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "order_id": ticket.order_id,
            "status": ticket.status,
        }
        if previous_status is not None:
            data["previous_status"] = previous_status
        notification = Notification(
            type=event_type,
            establishment_id=ticket.establishment_id,
            title=f"Ticket #{ticket.ticket_number}",
            message=f"Ticket #{ticket.ticket_number} is {ticket.status}",
            data=data,
        )
        self.publish(ticket.establishment_id, notification)
        return notification
