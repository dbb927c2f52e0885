from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.application.audit_service import AuditLogService
from app.application.schemas import OrderCreate, OrderItemCreate, PaymentCreate, PublicOrderCreate
from app.application.settlement_service import SettlementService
from app.domain.enums import OrderStatus, PaymentMethod
from app.domain.errors import ConflictError, NotFoundError, ValidationError
from app.domain.models import AuditLog, KitchenTicket, Order, Payment


def _items(*pairs):
    return [OrderItemCreate(product_id=product.id, quantity=quantity) for product, quantity in pairs]


def test_staff_order_with_kitchen_opens_ticket(db, audit, bus, seed):
    order = SettlementService(db, audit, bus).create_order(
        OrderCreate(code="MESA-4", items=_items((seed.burger, 2), (seed.soda, 1))),
        seed.bistro.id,
        "user-1",
    )

    assert order.total_amount == Decimal("56.50")
    assert order.status == "open"
    assert order.payment_status == "unpaid"
    assert order.created_by == "user-1"
    assert len(order.kitchen_tickets) == 1
    assert order.kitchen_tickets[0].status == "queue"
    assert order.kitchen_tickets[0].establishment_id == seed.bistro.id

    created = bus.recent(seed.bistro.id)
    assert [n.type.value for n in created] == ["ticket_created"]
    assert db.query(AuditLog).filter(AuditLog.action == "create_order", AuditLog.entity_id == order.id).count() == 1


def test_staff_order_without_kitchen_has_no_ticket(db, audit, bus, seed):
    order = SettlementService(db, audit, bus).create_order(
        OrderCreate(items=_items((seed.beer, 3))),
        seed.bar.id,
        "user-2",
    )
    assert order.total_amount == Decimal("36.00")
    assert order.kitchen_tickets == []
    assert db.query(KitchenTicket).count() == 0
    assert bus.recent(seed.bar.id) == []


def test_pay_now_settles_in_one_step(db, audit, bus, seed):
    order = SettlementService(db, audit, bus).create_order(
        OrderCreate(items=_items((seed.burger, 2)), pay_now=True, payment_method=PaymentMethod.PIX),
        seed.bistro.id,
        "user-1",
    )
    assert order.payment_status == "paid"
    assert order.paid_amount == Decimal("50.00")
    assert order.closed_at is not None
    assert [(p.method, p.amount) for p in order.payments] == [("pix", Decimal("50.00"))]
    assert len(order.kitchen_tickets) == 1


def test_pay_now_requires_method():
    with pytest.raises(SchemaValidationError):
        OrderCreate(items=[OrderItemCreate(product_id="x", quantity=1)], pay_now=True)


def test_missing_product_rejects_whole_order(db, audit, bus, seed):
    with pytest.raises(ValidationError) as exc:
        SettlementService(db, audit, bus).create_order(
            OrderCreate(items=_items((seed.burger, 1)) + [OrderItemCreate(product_id="nope", quantity=1)]),
            seed.bistro.id,
            "user-1",
        )
    assert exc.value.details["missing_product_ids"] == ["nope"]
    assert db.query(Order).count() == 0
    assert db.query(KitchenTicket).count() == 0
    assert bus.recent(seed.bistro.id) == []


def test_product_of_other_establishment_is_rejected(db, audit, bus, seed):
    with pytest.raises(ValidationError):
        SettlementService(db, audit, bus).create_order(
            OrderCreate(items=_items((seed.beer, 1))),
            seed.bistro.id,
            "user-1",
        )
    assert db.query(Order).count() == 0


def test_unknown_establishment_is_not_found(db, audit, bus, seed):
    with pytest.raises(NotFoundError):
        SettlementService(db, audit, bus).create_order(
            OrderCreate(items=_items((seed.burger, 1))),
            "missing-establishment",
            "user-1",
        )


def test_public_order_notifies_and_audits_anonymously(db, audit, bus, seed):
    order = SettlementService(db, audit, bus).create_public_order(PublicOrderCreate(
        establishment_slug="bistro",
        code="A12",
        customer_name="Ana",
        items=_items((seed.soda, 2)),
    ))

    assert order.total_amount == Decimal("13.00")
    assert order.created_by is None
    assert order.payment_status == "unpaid"
    assert len(order.kitchen_tickets) == 1

    latest = bus.recent(seed.bistro.id, 1)[0]
    assert latest.type.value == "new_order"
    assert latest.data["order_id"] == order.id
    assert latest.data["items_count"] == 1

    entry = db.query(AuditLog).filter(AuditLog.action == "create_public_order").one()
    assert entry.user_id is None
    assert entry.payload["customer_name"] == "Ana"


def test_public_order_requires_online_ordering(db, audit, bus, seed):
    with pytest.raises(NotFoundError):
        SettlementService(db, audit, bus).create_public_order(PublicOrderCreate(
            establishment_slug="closed-cafe",
            code="A1",
            items=_items((seed.coffee, 1)),
        ))
    assert db.query(Order).count() == 0


def test_public_order_missing_product_is_not_found(db, audit, bus, seed):
    with pytest.raises(NotFoundError):
        SettlementService(db, audit, bus).create_public_order(PublicOrderCreate(
            establishment_slug="bistro",
            code="A1",
            items=_items((seed.retired, 1)),
        ))
    assert db.query(Order).count() == 0


def test_payment_that_settles_publishes_order_paid(db, audit, bus, seed):
    service = SettlementService(db, audit, bus)
    order = service.create_order(OrderCreate(items=_items((seed.burger, 2))), seed.bistro.id, "user-1")

    service.apply_payment(order.id, seed.bistro.id, PaymentCreate(method=PaymentMethod.CASH, amount=Decimal("20")), "user-1")
    assert bus.recent(seed.bistro.id, 1)[0].type.value == "ticket_created"

    service.apply_payment(order.id, seed.bistro.id, PaymentCreate(method=PaymentMethod.CASH, amount=Decimal("30")), "user-1")
    assert bus.recent(seed.bistro.id, 1)[0].type.value == "order_paid"


def test_status_update_publishes_order_updated(db, audit, bus, seed):
    service = SettlementService(db, audit, bus)
    order = service.create_order(OrderCreate(items=_items((seed.burger, 1))), seed.bistro.id, "user-1")

    order = service.update_order_status(order.id, seed.bistro.id, OrderStatus.CLOSED, "user-1")
    latest = bus.recent(seed.bistro.id, 1)[0]
    assert latest.type.value == "order_updated"
    assert latest.data["status"] == "closed"


def test_audit_failure_does_not_fail_the_order(db, bus, seed):
    def broken_factory():
        raise RuntimeError("audit database unavailable")

    audit = AuditLogService(broken_factory)
    order = SettlementService(db, audit, bus).create_order(
        OrderCreate(items=_items((seed.burger, 1)), pay_now=True, payment_method=PaymentMethod.CARD),
        seed.bistro.id,
        "user-1",
    )
    assert order.payment_status == "paid"
    assert db.query(Order).count() == 1
    assert db.query(Payment).count() == 1
    assert db.query(AuditLog).count() == 0


def test_colliding_ticket_number_is_allocated_again(session_factory, audit, bus, seed, monkeypatch):
    first, second = session_factory(), session_factory()
    try:
        racing = SettlementService(second, audit, bus)
        # Read before the other order commits, so it is stale afterwards
        stale_number = racing.kitchen.next_ticket_number(seed.bistro.id)

        SettlementService(first, audit, bus).create_order(OrderCreate(items=_items((seed.burger, 1))), seed.bistro.id, "user-1")

        fresh_number = racing.kitchen.next_ticket_number
        handed_out = []

        def stale_then_fresh(establishment_id):
            if not handed_out:
                handed_out.append(stale_number)
                return stale_number
            return fresh_number(establishment_id)

        monkeypatch.setattr(racing.kitchen, "next_ticket_number", stale_then_fresh)
        order = racing.create_order(OrderCreate(items=_items((seed.soda, 1))), seed.bistro.id, "user-2")
    finally:
        first.close()
        second.close()

    assert stale_number == 1
    assert order.kitchen_tickets[0].ticket_number == 2
    check = session_factory()
    assert check.query(Order).count() == 2
    assert sorted(n for (n,) in check.query(KitchenTicket.ticket_number)) == [1, 2]
    check.close()


def test_ticket_number_retries_are_bounded(db, audit, bus, seed, monkeypatch):
    service = SettlementService(db, audit, bus)
    service.create_order(OrderCreate(items=_items((seed.burger, 1))), seed.bistro.id, "user-1")

    monkeypatch.setattr(service.kitchen, "next_ticket_number", lambda establishment_id: 1)
    with pytest.raises(ConflictError):
        service.create_order(OrderCreate(items=_items((seed.burger, 1))), seed.bistro.id, "user-1")
    assert db.query(Order).count() == 1
    assert db.query(KitchenTicket).count() == 1
