from enum import Enum


class OrderStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    PIX = "pix"


class TicketStatus(str, Enum):
    QUEUE = "queue"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_UPDATED = "order_updated"
    ORDER_PAID = "order_paid"
    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
