from app.api.notifications_routes import format_sse
from app.infrastructure.auth import create_access_token


def _create_order(client, headers, seed, **extra):
    body = {"code": "MESA-1", "items": [{"product_id": seed.burger.id, "quantity": 2}]}
    body.update(extra)
    return client.post("/orders/", json=body, headers=headers)


def test_root_and_liveness(client):
    assert client.get("/").json()["service"] == "comanda-service"
    assert client.get("/health/live").json() == {"status": "alive"}


def test_list_orders_empty(client, auth_headers):
    resp = client.get("/orders/", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == []


def test_missing_token_is_unauthorized(client, seed):
    resp = client.get("/orders/")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Missing token"


def test_invalid_token_is_unauthorized(client, seed):
    resp = client.get("/orders/", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_token_without_establishment_is_forbidden(client, seed):
    token = create_access_token("user-9", None)
    resp = client.get("/orders/", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


def test_token_accepted_as_query_parameter(client, seed):
    token = create_access_token("user-1", seed.bistro.id)
    assert client.get(f"/notifications/recent?token={token}").status_code == 200


def test_create_and_pay_order(client, auth_headers, seed):
    resp = _create_order(client, auth_headers, seed)
    assert resp.status_code == 201
    order = resp.json()
    assert order["total_amount"] == 50.0
    assert order["payment_status"] == "unpaid"
    assert order["items"][0]["product_name"] == "Burger"
    assert order["kitchen_tickets"][0]["ticket_number"] == 1

    resp = client.patch(f"/orders/{order['id']}/pay", json={"method": "cash", "amount": 20}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "partial"

    resp = client.patch(f"/orders/{order['id']}/pay", json={"method": "card", "amount": 30}, headers=auth_headers)
    assert resp.json()["payment_status"] == "paid"
    assert resp.json()["closed_at"] is not None

    resp = client.patch(f"/orders/{order['id']}/pay", json={"method": "card"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Order is already paid"


def test_pay_now_without_method_is_rejected(client, auth_headers, seed):
    resp = _create_order(client, auth_headers, seed, pay_now=True)
    assert resp.status_code == 422


def test_missing_product_is_bad_request(client, auth_headers, seed):
    resp = client.post("/orders/", json={"items": [{"product_id": "nope", "quantity": 1}]}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["missing_product_ids"] == ["nope"]


def test_orders_are_scoped_to_establishment(client, auth_headers, bar_headers, seed):
    order = _create_order(client, auth_headers, seed).json()

    assert client.get(f"/orders/{order['id']}", headers=bar_headers).status_code == 404
    assert client.get("/orders/", headers=bar_headers).json() == []
    resp = client.patch(f"/orders/{order['id']}/status", json={"status": "canceled"}, headers=bar_headers)
    assert resp.status_code == 404


def test_update_order_status(client, auth_headers, seed):
    order = _create_order(client, auth_headers, seed).json()

    resp = client.patch(f"/orders/{order['id']}/status", json={"status": "closed"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "closed"
    assert resp.json()["closed_at"] is not None

    resp = client.get("/orders/?status=closed", headers=auth_headers)
    assert [o["id"] for o in resp.json()] == [order["id"]]


def test_kitchen_ticket_flow(client, auth_headers, bar_headers, seed):
    order = _create_order(client, auth_headers, seed).json()
    ticket_id = order["kitchen_tickets"][0]["id"]

    tickets = client.get("/kitchen/tickets/", headers=auth_headers).json()
    assert [t["id"] for t in tickets] == [ticket_id]
    assert tickets[0]["order"]["items"][0]["quantity"] == 2

    resp = client.patch(f"/kitchen/tickets/{ticket_id}", json={"status": "ready"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid transition from queue to ready"

    resp = client.patch(f"/kitchen/tickets/{ticket_id}", json={"status": "preparing"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "preparing"

    assert client.get(f"/kitchen/tickets/{ticket_id}", headers=bar_headers).status_code == 404

    stats = client.get("/kitchen/tickets/stats", headers=auth_headers).json()
    assert stats == {"queue": 0, "preparing": 1, "ready": 0, "delivered": 0, "average_time_minutes": 0}


def test_public_menu(client, seed):
    resp = client.get("/public/bistro/menu")
    assert resp.status_code == 200
    menu = resp.json()
    assert menu["establishment"]["slug"] == "bistro"
    assert [p["name"] for p in menu["products"]] == ["Burger", "Soda"]

    assert client.get("/public/closed-cafe/menu").status_code == 404
    assert client.get("/public/unknown/menu").status_code == 404


def test_public_order_reaches_staff_notifications(client, auth_headers, seed):
    resp = client.post("/public/orders", json={
        "establishment_slug": "bistro",
        "code": "A7",
        "customer_name": "Ana",
        "items": [{"product_id": seed.soda.id, "quantity": 2, "note": "cold"}],
    })
    assert resp.status_code == 201
    order = resp.json()
    assert order["total_amount"] == 13.0
    assert order["items"][0]["note"] == "cold"

    recent = client.get("/notifications/recent", headers=auth_headers).json()
    assert recent[0]["type"] == "new_order"
    assert recent[0]["data"]["order_id"] == order["id"]


def test_public_order_for_offline_establishment(client, seed):
    resp = client.post("/public/orders", json={
        "establishment_slug": "closed-cafe",
        "code": "A1",
        "items": [{"product_id": seed.coffee.id, "quantity": 1}],
    })
    assert resp.status_code == 404


def test_sse_event_format():
    assert format_sse("connected", {"a": 1}) == 'event: connected\ndata: {"a": 1}\n\n'


def test_stream_refused_while_shutting_down(client, auth_headers, bus):
    bus.close()
    resp = client.get("/notifications/stream", headers=auth_headers)
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Notifications are unavailable, service is shutting down"
