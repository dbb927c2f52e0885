from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import SQLAlchemyError
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Type
from shared.core import get_logger
from app.core_settings import Settings, get_settings
from app.domain.enums import OrderStatus, PaymentStatus
from app.domain.errors import AppError, ConflictError, NotFoundError, ValidationError
from app.domain.models import Order, OrderItem, Payment, utcnow
from app.domain.rules import ItemSnapshot, derive_payment_status, price_items, to_money
from .audit_service import AuditActions, AuditEntities, AuditLogService
from .catalog import ProductCatalog
from .schemas import OrderFilter, PaymentCreate

logger = get_logger(__name__)

class OrderService:
    """Order ledger: totals, item snapshots, payments and order status."""

    def __init__(self, db: Session, audit: AuditLogService, settings: Optional[Settings] = None):
        self.db = db
        self.audit = audit
        self.settings = settings or get_settings()
        self.catalog = ProductCatalog(db)

    def _query(self):
        return self.db.query(Order).options(
            selectinload(Order.items),
            selectinload(Order.payments),
            selectinload(Order.kitchen_tickets),
        )

    def list(self, establishment_id: str, filters: Optional[OrderFilter] = None) -> List[Order]:
        filters = filters or OrderFilter()
        query = self._query().filter(Order.establishment_id == establishment_id)

        if filters.status:
            query = query.filter(Order.status == filters.status.value)
        if filters.payment_status:
            query = query.filter(Order.payment_status == filters.payment_status.value)
        if filters.start_date:
            query = query.filter(Order.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Order.created_at <= filters.end_date)
        if filters.search:
            query = query.filter(Order.code.ilike(f"%{filters.search}%"))

        return query.order_by(Order.created_at.desc()).offset(filters.skip).limit(filters.limit).all()

    def get(self, order_id: str, establishment_id: str) -> Order:
        order = self._query().populate_existing().filter(
            Order.id == order_id,
            Order.establishment_id == establishment_id,
        ).first()
        if not order:
            raise NotFoundError("Order not found", entity="order", entity_id=order_id)
        return order

    def price_items(
        self,
        items: Sequence,
        establishment_id: str,
        missing_error: Type[AppError] = ValidationError,
    ) -> Tuple[List[ItemSnapshot], Decimal]:
        """Resolve products in scope and snapshot name/price for each line."""
        products = self.catalog.find_active_by_ids((i.product_id for i in items), establishment_id)
        return price_items(items, products, missing_error=missing_error)

    def build_order(
        self,
        establishment_id: str,
        snapshots: Sequence[ItemSnapshot],
        total: Decimal,
        code: Optional[str] = None,
        customer_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Order:
        """New open, unpaid order with its items; not added to the session."""
        order = Order(
            establishment_id=establishment_id,
            code=code,
            customer_name=customer_name,
            status=OrderStatus.OPEN.value,
            payment_status=PaymentStatus.UNPAID.value,
            total_amount=total,
            paid_amount=Decimal("0.00"),
            created_by=created_by,
            created_at=utcnow(),
        )
        for position, snap in enumerate(snapshots):
            order.items.append(OrderItem(
                product_id=snap.product_id,
                product_name=snap.product_name,
                quantity=snap.quantity,
                unit_price=snap.unit_price,
                note=snap.note,
                position=position,
            ))
        return order

    def _commit(self, order: Order) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConflictError(
                "Order was modified concurrently, retry the operation",
                entity="order",
                entity_id=order.id,
            )
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def apply_payment(self, order_id: str, establishment_id: str, data: PaymentCreate, user_id: Optional[str]) -> Order:
        order = self.get(order_id, establishment_id)

        if order.status == OrderStatus.CANCELED.value:
            raise ValidationError("Cannot pay a canceled order", entity="order", entity_id=order.id)
        if order.payment_status == PaymentStatus.PAID.value:
            raise ValidationError("Order is already paid", entity="order", entity_id=order.id)

        total = to_money(order.total_amount)
        paid = to_money(order.paid_amount)
        if data.amount is not None:
            amount = to_money(data.amount)
        elif self.settings.PAYMENT_DEFAULT_TO_REMAINING:
            amount = total - paid
        else:
            amount = total
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", entity="order", entity_id=order.id)

        new_paid = paid + amount
        new_status = derive_payment_status(new_paid, total)
        if new_paid > total:
            logger.warning(
                "Payment exceeds order total",
                extra={'extra_fields': {'order_id': order.id, 'total_amount': str(total), 'paid_amount': str(new_paid)}}
            )

        order.payments.append(Payment(
            method=data.method.value,
            amount=amount,
            received_by=user_id,
            received_at=utcnow(),
        ))
        order.paid_amount = new_paid
        order.payment_status = new_status.value
        if new_status == PaymentStatus.PAID:
            order.closed_at = utcnow()
        self._commit(order)

        logger.info(
            "Payment applied",
            extra={'extra_fields': {
                'order_id': order.id,
                'method': data.method.value,
                'amount': str(amount),
                'payment_status': new_status.value,
            }}
        )
        self.audit.record(
            AuditActions.MARK_PAID,
            AuditEntities.ORDER,
            order.id,
            establishment_id,
            user_id,
            {"method": data.method.value, "amount": str(amount), "new_payment_status": new_status.value},
        )
        return self.get(order.id, establishment_id)

    def update_status(self, order_id: str, establishment_id: str, status: OrderStatus, user_id: Optional[str]) -> Order:
        # Any status may follow any other; only closed_at is kept consistent.
        order = self.get(order_id, establishment_id)
        old_status = order.status
        status = OrderStatus(status)

        order.status = status.value
        order.closed_at = utcnow() if status == OrderStatus.CLOSED else None
        self._commit(order)

        self.audit.record(
            AuditActions.UPDATE_ORDER,
            AuditEntities.ORDER,
            order.id,
            establishment_id,
            user_id,
            {"old_status": old_status, "new_status": status.value},
        )
        return self.get(order.id, establishment_id)
