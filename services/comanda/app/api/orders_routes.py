from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional
from app.infrastructure.db import get_db
from app.infrastructure.notifications import NotificationBus
from app.application.audit_service import AuditLogService
from app.application.order_service import OrderService
from app.application.settlement_service import SettlementService
from app.application.schemas import OrderCreate, OrderFilter, OrderRead, OrderStatusUpdate, PaymentCreate
from app.domain.enums import OrderStatus, PaymentStatus
from .dependencies import Actor, get_actor, get_audit_service, get_notification_bus

router = APIRouter(prefix="/orders", tags=["orders"])

@router.get("/", response_model=list[OrderRead])
def list_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = Query(None, max_length=50, description="Substring of the order code"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of records to return"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
):
    """List orders of the caller's establishment, newest first."""
    filters = OrderFilter(
        status=status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        skip=skip,
        limit=limit,
    )
    return OrderService(db, audit).list(actor.establishment_id, filters)

@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
):
    return OrderService(db, audit).get(order_id, actor.establishment_id)

@router.post("/", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return SettlementService(db, audit, bus).create_order(payload, actor.establishment_id, actor.user_id)

@router.patch("/{order_id}/pay", response_model=OrderRead)
def pay_order(
    order_id: str,
    payload: PaymentCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return SettlementService(db, audit, bus).apply_payment(order_id, actor.establishment_id, payload, actor.user_id)

@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return SettlementService(db, audit, bus).update_order_status(
        order_id, actor.establishment_id, payload.status, actor.user_id
    )
