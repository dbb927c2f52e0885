"""Pure business rules: payment status derivation, the kitchen ticket
transition table, order item pricing and kitchen timing math.

Nothing here touches the database so it can be exercised in isolation.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Type
from zoneinfo import ZoneInfo

from .enums import PaymentStatus, TicketStatus
from .errors import AppError, ValidationError

CENTS = Decimal("0.01")

# Forward flow queue -> preparing -> ready -> delivered, one step back from
# each state, and queue -> delivered for items that need no preparation.
TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.QUEUE: frozenset({TicketStatus.PREPARING, TicketStatus.DELIVERED}),
    TicketStatus.PREPARING: frozenset({TicketStatus.READY, TicketStatus.QUEUE}),
    TicketStatus.READY: frozenset({TicketStatus.DELIVERED, TicketStatus.PREPARING}),
    TicketStatus.DELIVERED: frozenset({TicketStatus.QUEUE}),
}

# Display order for ticket listings
TICKET_WORKFLOW_ORDER: Tuple[TicketStatus, ...] = (
    TicketStatus.QUEUE,
    TicketStatus.PREPARING,
    TicketStatus.READY,
    TicketStatus.DELIVERED,
)


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


def derive_payment_status(paid_amount: Decimal, total_amount: Decimal) -> PaymentStatus:
    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    if paid_amount > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def can_transition(current: TicketStatus, new: TicketStatus) -> bool:
    return TicketStatus(new) in TICKET_TRANSITIONS[TicketStatus(current)]


def validate_ticket_transition(current: TicketStatus, new: TicketStatus) -> None:
    current, new = TicketStatus(current), TicketStatus(new)
    if not can_transition(current, new):
        raise ValidationError(
            f"Invalid transition from {current.value} to {new.value}",
            entity="kitchen_ticket",
            details={
                "from_status": current.value,
                "to_status": new.value,
                "allowed": sorted(s.value for s in TICKET_TRANSITIONS[current]),
            },
        )


@dataclass(frozen=True)
class ItemSnapshot:
    """Product name and price copied at order time.

    Later catalog edits must not change historical orders, so items never
    reference the live product for pricing.
    """
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    note: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


def price_items(
    requested: Sequence,
    products: Iterable,
    missing_error: Type[AppError] = ValidationError,
) -> Tuple[List[ItemSnapshot], Decimal]:
    """Snapshot every requested line against the resolved products.

    ``requested`` holds objects with ``product_id``, ``quantity`` and
    ``note``; ``products`` holds the active, in-scope catalog rows that were
    found. Any unresolved product reference fails the whole operation.
    """
    if not requested:
        raise ValidationError("Order must contain at least one item", entity="order")

    by_id = {p.id: p for p in products}
    wanted = {item.product_id for item in requested}
    missing = sorted(wanted - set(by_id))
    if missing:
        raise missing_error(
            "One or more products not found",
            entity="product",
            details={"missing_product_ids": missing},
        )

    snapshots: List[ItemSnapshot] = []
    total = Decimal("0")
    for item in requested:
        if item.quantity <= 0:
            raise ValidationError(
                "Item quantity must be positive",
                entity="order_item",
                details={"product_id": item.product_id},
            )
        product = by_id[item.product_id]
        snap = ItemSnapshot(
            product_id=product.id,
            product_name=product.name,
            quantity=item.quantity,
            unit_price=to_money(product.price),
            note=item.note,
        )
        total += snap.subtotal
        snapshots.append(snap)
    return snapshots, to_money(total)


def local_day_bounds(now_utc: datetime, tz_name: str) -> Tuple[datetime, datetime]:
    """Return the current local day as naive-UTC ``[midnight, next midnight)``."""
    tz = ZoneInfo(tz_name)
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    today: date = now_utc.astimezone(tz).date()
    start = datetime.combine(today, time.min, tzinfo=tz)
    end = datetime.combine(today + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def average_preparation_minutes(spans: Sequence[Tuple[datetime, datetime]]) -> int:
    """Floor of the mean ``updated_at - created_at`` in minutes, 0 when empty."""
    if not spans:
        return 0
    total_seconds = sum((updated - created).total_seconds() for created, updated in spans)
    return math.floor(total_seconds / len(spans) / 60)
