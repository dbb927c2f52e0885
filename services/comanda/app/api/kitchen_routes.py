from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
from app.infrastructure.db import get_db
from app.infrastructure.notifications import NotificationBus
from app.application.audit_service import AuditLogService
from app.application.kitchen_service import KitchenService
from app.application.schemas import KitchenStats, TicketFilter, TicketRead, TicketStatusUpdate
from app.domain.enums import TicketStatus
from .dependencies import Actor, get_actor, get_audit_service, get_notification_bus

router = APIRouter(prefix="/kitchen/tickets", tags=["kitchen"])

@router.get("/stats", response_model=KitchenStats)
def kitchen_stats(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
):
    """Open ticket counts, tickets delivered today and average preparation time."""
    return KitchenService(db, audit).stats(actor.establishment_id)

@router.get("/", response_model=list[TicketRead])
def list_tickets(
    status: Optional[TicketStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
):
    filters = TicketFilter(status=status, start_date=start_date, end_date=end_date, limit=limit)
    return KitchenService(db, audit).list(actor.establishment_id, filters)

@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
):
    return KitchenService(db, audit).get(ticket_id, actor.establishment_id)

@router.patch("/{ticket_id}", response_model=TicketRead)
def update_ticket_status(
    ticket_id: str,
    payload: TicketStatusUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return KitchenService(db, audit, bus).update_status(
        ticket_id, actor.establishment_id, payload.status, actor.user_id
    )
