"""
Settlement coordinator

Creates an order, its optional immediate payment and its optional kitchen
ticket as one database transaction, for both the staff and the public
(customer) flows, then emits the notifications and audit entries that
follow. Every validation happens before the transaction starts, so a
rejected request never writes anything.

Ticket numbers are allocated inside that transaction. When two orders of the
same establishment race for a number, the loser's transaction is rolled back
and staged again with a fresh number, up to ``TICKET_NUMBER_RETRIES`` times.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Callable, Optional, Tuple
from shared.core import get_logger
from app.core_settings import Settings, get_settings
from app.domain.enums import NotificationType, PaymentStatus
from app.domain.errors import ConflictError, NotFoundError, ValidationError
from app.domain.models import KitchenTicket, Order, Payment, utcnow
from .audit_service import AuditActions, AuditEntities, AuditLogService
from .catalog import EstablishmentDirectory
from .kitchen_service import KitchenService
from .order_service import OrderService
from .schemas import OrderCreate, PaymentCreate, PublicOrderCreate
from app.infrastructure.notifications import NotificationBus

logger = get_logger(__name__)

TICKET_NUMBER_CONSTRAINT = "uq_kitchen_tickets_establishment_number"

def _is_ticket_number_collision(exc: IntegrityError) -> bool:
    # Postgres names the constraint, SQLite names the columns
    message = str(exc.orig)
    return TICKET_NUMBER_CONSTRAINT in message or "kitchen_tickets.ticket_number" in message

class SettlementService:
    def __init__(
        self,
        db: Session,
        audit: AuditLogService,
        bus: Optional[NotificationBus] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.audit = audit
        self.bus = bus
        self.settings = settings or get_settings()
        self.orders = OrderService(db, audit, self.settings)
        self.kitchen = KitchenService(db, audit, bus, self.settings)
        self.directory = EstablishmentDirectory(db)

    def _persist(
        self,
        establishment_id: str,
        stage: Callable[[], Tuple[Order, Optional[KitchenTicket]]],
    ) -> Tuple[Order, Optional[KitchenTicket]]:
        """Run ``stage`` and commit, staging again when the ticket number was taken."""
        attempts = max(self.settings.TICKET_NUMBER_RETRIES, 1)
        for attempt in range(1, attempts + 1):
            try:
                order, ticket = stage()
                self.db.commit()
                return order, ticket
            except IntegrityError as exc:
                self.db.rollback()
                if not _is_ticket_number_collision(exc):
                    raise
                logger.warning(
                    "Kitchen ticket number collision",
                    extra={'extra_fields': {'establishment_id': establishment_id, 'attempt': attempt}}
                )
            except SQLAlchemyError:
                self.db.rollback()
                raise
        raise ConflictError(
            "Could not allocate a kitchen ticket number, retry the operation",
            entity="kitchen_ticket",
            details={"establishment_id": establishment_id},
        )

    def create_order(self, data: OrderCreate, establishment_id: str, user_id: str) -> Order:
        """Staff flow: optional pay-now, ticket when the kitchen is enabled."""
        establishment = self.directory.find_by_id(establishment_id)
        if not establishment or not establishment.active:
            raise NotFoundError("Establishment not found", entity="establishment", entity_id=establishment_id)
        if data.pay_now and data.payment_method is None:
            raise ValidationError("payment_method is required when pay_now is true", entity="order")

        establishment_id = establishment.id
        has_kitchen = establishment.has_kitchen
        snapshots, total = self.orders.price_items(data.items, establishment_id)

        def stage():
            order = self.orders.build_order(
                establishment_id,
                snapshots,
                total,
                code=data.code,
                customer_name=data.customer_name,
                created_by=user_id,
            )
            self.db.add(order)
            if data.pay_now:
                order.payments.append(Payment(
                    method=data.payment_method.value,
                    amount=total,
                    received_by=user_id,
                    received_at=utcnow(),
                ))
                order.paid_amount = total
                order.payment_status = PaymentStatus.PAID.value
                order.closed_at = utcnow()
            ticket = self.kitchen.open_ticket(order) if has_kitchen else None
            return order, ticket

        order, ticket = self._persist(establishment_id, stage)

        logger.info(
            "Order created",
            extra={'extra_fields': {
                'order_id': order.id,
                'establishment_id': establishment_id,
                'total_amount': str(total),
                'items_count': len(snapshots),
                'payment_status': order.payment_status,
                'ticket_number': ticket.ticket_number if ticket else None,
            }}
        )
        if ticket is not None and self.bus is not None:
            self.bus.notify_ticket(ticket, NotificationType.TICKET_CREATED)

        self.audit.record(
            AuditActions.CREATE_ORDER,
            AuditEntities.ORDER,
            order.id,
            establishment_id,
            user_id,
            {
                "code": data.code,
                "total_amount": str(total),
                "items_count": len(data.items),
                "payment_status": order.payment_status,
            },
        )
        return self.orders.get(order.id, establishment_id)

    def create_public_order(self, data: PublicOrderCreate) -> Order:
        """Customer flow: no actor, no immediate payment, online ordering required."""
        establishment = self.directory.find_online(data.establishment_slug)
        if not establishment:
            raise NotFoundError("Establishment not found", entity="establishment", entity_id=data.establishment_slug)

        establishment_id = establishment.id
        has_kitchen = establishment.has_kitchen
        snapshots, total = self.orders.price_items(data.items, establishment_id, missing_error=NotFoundError)

        def stage():
            order = self.orders.build_order(
                establishment_id,
                snapshots,
                total,
                code=data.code,
                customer_name=data.customer_name,
            )
            self.db.add(order)
            ticket = self.kitchen.open_ticket(order) if has_kitchen else None
            return order, ticket

        order, ticket = self._persist(establishment_id, stage)

        logger.info(
            "Public order created",
            extra={'extra_fields': {
                'order_id': order.id,
                'establishment_id': establishment_id,
                'total_amount': str(total),
                'ticket_number': ticket.ticket_number if ticket else None,
            }}
        )
        if self.bus is not None:
            self.bus.notify_new_order(order)

        self.audit.record(
            AuditActions.CREATE_PUBLIC_ORDER,
            AuditEntities.ORDER,
            order.id,
            establishment_id,
            None,
            {
                "code": data.code,
                "customer_name": data.customer_name,
                "total_amount": str(total),
                "items_count": len(data.items),
                "payment_status": order.payment_status,
            },
        )
        return self.orders.get(order.id, establishment_id)

    def apply_payment(self, order_id: str, establishment_id: str, data: PaymentCreate, user_id: Optional[str]) -> Order:
        order = self.orders.apply_payment(order_id, establishment_id, data, user_id)
        if order.payment_status == PaymentStatus.PAID.value and self.bus is not None:
            self.bus.notify_order_paid(order)
        return order

    def update_order_status(self, order_id: str, establishment_id: str, status, user_id: Optional[str]) -> Order:
        order = self.orders.update_status(order_id, establishment_id, status, user_id)
        if self.bus is not None:
            self.bus.notify_order_updated(order)
        return order
