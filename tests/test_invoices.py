from decimal import Decimal

from fastapi.testclient import TestClient

from services.invoicing import compute_amounts, price_items


def test_compute_amounts_percentage_discount_and_rate():
    items = price_items([{"description": "Widget", "quantity": 2, "rate": 50}, {"description": "Bolt", "quantity": 4, "rate": 25}])
    assert [i["amount"] for i in items] == [100.0, 100.0]
    amounts = compute_amounts(items, tax_rate=Decimal("18"), discount=Decimal("10"), discount_type="percentage")
    assert amounts["subtotal"] == Decimal("200.00")
    assert amounts["discount_amount"] == Decimal("20.00")
    assert amounts["tax_amount"] == Decimal("32.40")
    assert amounts["total"] == Decimal("212.40")


def test_compute_amounts_fixed_discount_and_explicit_tax():
    items = price_items([{"description": "Service", "quantity": 1, "rate": 1000}])
    amounts = compute_amounts(items, tax_rate=Decimal("18"), tax_amount=Decimal("50"), discount=Decimal("100"))
    assert amounts["tax_amount"] == Decimal("50.00")
    assert amounts["total"] == Decimal("950.00")


def test_discount_never_exceeds_subtotal():
    items = price_items([{"description": "Pen", "quantity": 1, "rate": 10}])
    assert compute_amounts(items, discount=Decimal("50"))["total"] == Decimal("0.00")


def invoice_body(**extra) -> dict:
    body = {
        "customerName": "Acme Pvt Ltd",
        "customerEmail": "",
        "items": [{"description": "Consulting", "quantity": 3, "rate": 200, "amount": 1}],
        "taxRate": 10,
    }
    body.update(extra)
    return body


def test_create_invoice_recomputes_amounts(client: TestClient, shop: dict) -> None:
    res = client.post("/invoices", json=invoice_body(), headers=shop)
    assert res.status_code == 201, res.text
    inv = res.json()
    assert inv["invoiceNumber"].startswith("INV-")
    assert inv["items"][0]["amount"] == 600
    assert inv["subtotal"] == 600
    assert inv["taxAmount"] == 60
    assert inv["total"] == 660
    assert inv["status"] == "draft"
    assert inv["templateId"] == "modern"
    assert inv["shopName"] == "Corner Shop"
    assert inv["customerEmail"] is None


def test_duplicate_invoice_number(client: TestClient, shop: dict) -> None:
    assert client.post("/invoices", json=invoice_body(invoiceNumber="INV-1"), headers=shop).status_code == 201
    assert client.post("/invoices", json=invoice_body(invoiceNumber="INV-1"), headers=shop).status_code == 409


def test_update_status_list_and_delete(client: TestClient, shop: dict) -> None:
    inv = client.post("/invoices", json=invoice_body(), headers=shop).json()
    client.post("/invoices", json=invoice_body(customerName="Zenith Ltd"), headers=shop)

    res = client.put(
        f"/invoices/{inv['id']}",
        json={"items": [{"description": "Consulting", "quantity": 5, "rate": 200}]},
        headers=shop,
    )
    assert res.status_code == 200
    assert res.json()["subtotal"] == 1000
    assert res.json()["taxAmount"] == 100
    assert res.json()["total"] == 1100

    res = client.patch(f"/invoices/{inv['id']}/status", json={"status": "paid"}, headers=shop)
    assert res.json()["status"] == "paid"
    assert client.patch(f"/invoices/{inv['id']}/status", json={"status": "lost"}, headers=shop).status_code == 422

    paid = client.get("/invoices", params={"status": "paid"}, headers=shop).json()
    assert [i["id"] for i in paid["data"]] == [inv["id"]]
    found = client.get("/invoices", params={"search": "zenith"}, headers=shop).json()
    assert found["pagination"]["total"] == 1
    ordered = client.get("/invoices", params={"sortBy": "customerName", "sortOrder": "asc"}, headers=shop).json()
    assert [i["customerName"] for i in ordered["data"]] == ["Acme Pvt Ltd", "Zenith Ltd"]

    assert client.delete(f"/invoices/{inv['id']}", headers=shop).status_code == 200
    assert client.get(f"/invoices/{inv['id']}", headers=shop).status_code == 404
