from sqlalchemy import case, func
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from typing import Dict, List, Optional
from shared.core import get_logger
from app.core_settings import Settings, get_settings
from app.domain.enums import NotificationType, TicketStatus
from app.domain.errors import NotFoundError
from app.domain.models import Establishment, KitchenTicket, Order, utcnow
from app.domain.rules import (
    TICKET_WORKFLOW_ORDER,
    average_preparation_minutes,
    local_day_bounds,
    validate_ticket_transition,
)
from app.infrastructure.notifications import NotificationBus
from .audit_service import AuditActions, AuditEntities, AuditLogService
from .schemas import TicketFilter

logger = get_logger(__name__)

_WORKFLOW_POSITION = case(
    {status.value: position for position, status in enumerate(TICKET_WORKFLOW_ORDER)},
    value=KitchenTicket.status,
    else_=len(TICKET_WORKFLOW_ORDER),
)

class KitchenService:
    """Kitchen ticket lifecycle, always scoped through the parent order's establishment."""

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

    def _scoped(self, establishment_id: str):
        return self.db.query(KitchenTicket).join(Order, KitchenTicket.order_id == Order.id).filter(
            Order.establishment_id == establishment_id
        )

    def list(self, establishment_id: str, filters: Optional[TicketFilter] = None) -> List[KitchenTicket]:
        filters = filters or TicketFilter()
        query = self._scoped(establishment_id).options(
            selectinload(KitchenTicket.order).selectinload(Order.items)
        )
        if filters.status:
            query = query.filter(KitchenTicket.status == filters.status.value)
        if filters.start_date:
            query = query.filter(KitchenTicket.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(KitchenTicket.created_at <= filters.end_date)

        limit = filters.limit or self.settings.KITCHEN_DEFAULT_LIMIT
        return query.order_by(_WORKFLOW_POSITION, KitchenTicket.created_at.asc()).limit(limit).all()

    def get(self, ticket_id: str, establishment_id: str) -> KitchenTicket:
        ticket = self._scoped(establishment_id).options(
            selectinload(KitchenTicket.order).selectinload(Order.items)
        ).populate_existing().filter(KitchenTicket.id == ticket_id).first()
        if not ticket:
            raise NotFoundError("Ticket not found", entity="kitchen_ticket", entity_id=ticket_id)
        return ticket

    def next_ticket_number(self, establishment_id: str) -> int:
        # Serializes numbering per establishment where the database supports row locks
        self.db.query(Establishment.id).filter(Establishment.id == establishment_id).with_for_update().first()
        current = self.db.query(func.max(KitchenTicket.ticket_number)).filter(
            KitchenTicket.establishment_id == establishment_id
        ).scalar()
        return (current or 0) + 1

    def open_ticket(self, order: Order) -> KitchenTicket:
        """Queue a ticket for ``order`` inside the caller's transaction."""
        now = utcnow()
        ticket = KitchenTicket(
            establishment_id=order.establishment_id,
            ticket_number=self.next_ticket_number(order.establishment_id),
            status=TicketStatus.QUEUE.value,
            created_at=now,
            updated_at=now,
        )
        order.kitchen_tickets.append(ticket)
        return ticket

    def update_status(
        self,
        ticket_id: str,
        establishment_id: str,
        new_status: TicketStatus,
        user_id: Optional[str],
    ) -> KitchenTicket:
        ticket = self.get(ticket_id, establishment_id)
        old_status = ticket.status
        new_status = TicketStatus(new_status)

        validate_ticket_transition(TicketStatus(old_status), new_status)

        ticket.status = new_status.value
        ticket.updated_at = utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(
            "Kitchen ticket status changed",
            extra={'extra_fields': {
                'ticket_id': ticket.id,
                'ticket_number': ticket.ticket_number,
                'from_status': old_status,
                'to_status': new_status.value,
            }}
        )
        self.audit.record(
            AuditActions.CHANGE_KITCHEN_STATUS,
            AuditEntities.KITCHEN_TICKET,
            ticket.id,
            establishment_id,
            user_id,
            {
                "old_status": old_status,
                "new_status": new_status.value,
                "order_id": ticket.order_id,
                "ticket_number": ticket.ticket_number,
            },
        )
        if self.bus is not None:
            self.bus.notify_ticket(ticket, NotificationType.TICKET_UPDATED, previous_status=old_status)

        return self.get(ticket.id, establishment_id)

    def stats(self, establishment_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utcnow()

        rows = self._scoped(establishment_id).with_entities(
            KitchenTicket.status, func.count(KitchenTicket.id)
        ).filter(
            KitchenTicket.status.in_([
                TicketStatus.QUEUE.value, TicketStatus.PREPARING.value, TicketStatus.READY.value
            ])
        ).group_by(KitchenTicket.status).all()
        counts = {status: count for status, count in rows}

        day_start, day_end = local_day_bounds(now, self.settings.TIMEZONE)
        delivered_today = self._scoped(establishment_id).filter(
            KitchenTicket.status == TicketStatus.DELIVERED.value,
            KitchenTicket.created_at >= day_start,
            KitchenTicket.created_at < day_end,
        ).count()

        recent = self._scoped(establishment_id).with_entities(
            KitchenTicket.created_at, KitchenTicket.updated_at
        ).filter(
            KitchenTicket.status == TicketStatus.DELIVERED.value
        ).order_by(KitchenTicket.updated_at.desc()).limit(self.settings.KITCHEN_AVERAGE_SAMPLE).all()

        return {
            "queue": counts.get(TicketStatus.QUEUE.value, 0),
            "preparing": counts.get(TicketStatus.PREPARING.value, 0),
            "ready": counts.get(TicketStatus.READY.value, 0),
            "delivered": delivered_today,
            "average_time_minutes": average_preparation_minutes([(c, u) for c, u in recent]),
        }
