"""HTTP tests for the shift lifecycle."""


def _open(client, headers, cash=20000):
    return client.post("/api/shifts/open", json={"starting_cash_cents": cash}, headers=headers)


def test_open_and_close_shift(client, cashier_headers, cookie):
    resp = _open(client, cashier_headers)
    assert resp.status_code == 201
    shift = resp.get_json()["data"]
    assert shift["shift_number"] == "SH-000001"
    assert shift["status"] == "OPEN"

    order_id = client.post(
        "/api/orders", json={"items": [{"product_id": cookie.id, "quantity": 3}]}, headers=cashier_headers
    ).get_json()["data"]["id"]
    client.post(
        f"/api/orders/{order_id}/payments", json={"amount_cents": 5000, "payment_method": "CASH"},
        headers=cashier_headers,
    )

    current = client.get("/api/shifts/current", headers=cashier_headers).get_json()["data"]
    assert current["id"] == shift["id"]
    assert current["cash_sales_cents"] == 3000
    assert current["expected_cash_cents"] == 23000

    resp = client.post(
        f"/api/shifts/{shift['id']}/close", json={"ending_cash_cents": 22900}, headers=cashier_headers
    )
    closed = resp.get_json()["data"]
    assert resp.status_code == 200
    assert closed["status"] == "CLOSED"
    assert closed["expected_cash_cents"] == 23000
    assert closed["cash_difference_cents"] == -100
    assert closed["total_orders"] == 1


def test_second_open_shift_is_rejected(client, cashier_headers):
    _open(client, cashier_headers)

    resp = _open(client, cashier_headers)

    assert resp.status_code == 422
    assert resp.get_json()["error"]["errorCode"] == "SHIFT_ALREADY_OPEN"


def test_no_current_shift(client, cashier_headers):
    resp = client.get("/api/shifts/current", headers=cashier_headers)

    assert resp.status_code == 422
    assert resp.get_json()["error"]["errorCode"] == "NO_ACTIVE_SHIFT"


def test_negative_starting_cash_rejected(client, cashier_headers):
    assert _open(client, cashier_headers, cash=-1).status_code == 400


def test_suspend_resume_and_reconcile(client, cashier_headers, manager_headers):
    shift_id = _open(client, cashier_headers).get_json()["data"]["id"]

    assert client.post(f"/api/shifts/{shift_id}/suspend", headers=cashier_headers).get_json()["data"]["status"] == "SUSPENDED"
    assert client.post(f"/api/shifts/{shift_id}/resume", headers=cashier_headers).get_json()["data"]["status"] == "OPEN"
    client.post(f"/api/shifts/{shift_id}/close", json={"ending_cash_cents": 20000}, headers=cashier_headers)

    assert client.post(f"/api/shifts/{shift_id}/reconcile", headers=cashier_headers).status_code == 403
    resp = client.post(f"/api/shifts/{shift_id}/reconcile", headers=manager_headers)
    assert resp.get_json()["data"]["status"] == "RECONCILED"
