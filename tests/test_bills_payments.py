from fastapi.testclient import TestClient


def new_wholesaler(client: TestClient, headers: dict, **body) -> dict:
    payload = {"name": "Metro Wholesale", "phone": "022-555", "address": "Dock Rd", "place": "Mumbai"}
    payload.update(body)
    res = client.post("/wholesalers", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def new_customer(client: TestClient, headers: dict, **body) -> dict:
    payload = {"name": "Asha", "type": "due"}
    payload.update(body)
    res = client.post("/customers", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def bill(client: TestClient, headers: dict, **body):
    payload = {"billType": "sale", "entityType": "due_customer", "entityName": "Asha", "paymentMethod": "cash"}
    payload.update(body)
    return client.post("/bills", json=payload, headers=headers)


def pay(client: TestClient, headers: dict, **body):
    payload = {"entityType": "customer", "paymentMethod": "cash"}
    payload.update(body)
    return client.post("/payments", json=payload, headers=headers)


def test_bill_with_counter_payment_writes_a_payment_row(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop, openingBalance=500)
    res = bill(client, shop, entityId=c["id"], totalAmount=1000, paidAmount=200, items=[
        {"name": "Rice 25kg", "quantity": 2, "price": 500, "total": 1000},
    ])
    assert res.status_code == 201, res.text
    b = res.json()
    assert b["billNumber"].startswith("BILL-")
    assert b["dueAmount"] == 800
    assert b["items"][0]["name"] == "Rice 25kg"

    payments = client.get("/payments", params={"entityId": c["id"]}, headers=shop).json()["data"]
    assert len(payments) == 1
    assert payments[0]["billId"] == b["id"]
    assert payments[0]["amount"] == 200
    assert payments[0]["notes"] == f"Payment for bill {b['billNumber']}"

    cust = client.get(f"/customers/{c['id']}", headers=shop).json()
    assert cust["totalSales"] == 1000
    assert cust["totalPaid"] == 200
    assert cust["outstandingDue"] == 1300
    assert cust["lastTransactionDate"] is not None


def test_payment_reduces_due_and_can_create_advance(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop)
    bill(client, shop, entityId=c["id"], totalAmount=300)
    assert pay(client, shop, entityId=c["id"], amount=100).status_code == 201
    assert client.get(f"/customers/{c['id']}", headers=shop).json()["outstandingDue"] == 200

    assert pay(client, shop, entityId=c["id"], amount=250, paymentMethod="online").status_code == 201
    cust = client.get(f"/customers/{c['id']}", headers=shop).json()
    assert cust["outstandingDue"] == 0
    assert cust["advance"] == 50
    assert cust["balance"] == -50
    assert cust["lastPaymentDate"] is not None


def test_purchase_bill_against_wholesaler(client: TestClient, shop: dict) -> None:
    w = new_wholesaler(client, shop, openingBalance=100)
    res = bill(client, shop, billType="purchase", entityType="wholesaler", entityId=w["id"],
               entityName="ignored", totalAmount=700, paidAmount=0)
    assert res.status_code == 201
    assert res.json()["entityName"] == "Metro Wholesale"

    got = client.get(f"/wholesalers/{w['id']}", headers=shop).json()
    assert got["totalPurchased"] == 700
    assert got["outstandingDue"] == 800

    assert pay(client, shop, entityType="wholesaler", entityId=w["id"], amount=300).status_code == 201
    assert client.get(f"/wholesalers/{w['id']}", headers=shop).json()["outstandingDue"] == 500


def test_bill_validation(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop)
    w = new_wholesaler(client, shop)
    # paid above total
    assert bill(client, shop, entityId=c["id"], totalAmount=100, paidAmount=150).status_code == 422
    # non-positive total
    assert bill(client, shop, entityId=c["id"], totalAmount=0).status_code == 422
    # purchase from a customer
    assert bill(client, shop, billType="purchase", entityId=c["id"], totalAmount=10).status_code == 422
    # sale to a wholesaler
    assert bill(client, shop, entityType="wholesaler", entityId=w["id"], totalAmount=10).status_code == 422
    # due customer bill without entity
    assert bill(client, shop, totalAmount=10).status_code == 422
    # unknown entity
    assert bill(client, shop, entityId=9999, totalAmount=10).status_code == 404
    # negative payment
    assert pay(client, shop, entityId=c["id"], amount=-5).status_code == 422


def test_walk_in_sale_touches_no_entity(client: TestClient, shop: dict) -> None:
    res = bill(client, shop, entityType="normal_customer", entityName="Walk-in", totalAmount=120, paidAmount=120,
               paymentMethod="card")
    assert res.status_code == 201
    assert res.json()["entityId"] is None
    assert client.get("/payments", headers=shop).json()["pagination"]["total"] == 0


def test_payment_linked_to_bill_must_match_entity(client: TestClient, shop: dict) -> None:
    a = new_customer(client, shop, name="Asha")
    b = new_customer(client, shop, name="Bala")
    a_bill = bill(client, shop, entityId=a["id"], totalAmount=100).json()

    assert pay(client, shop, entityId=b["id"], amount=10, billId=a_bill["id"]).status_code == 404
    res = pay(client, shop, entityId=a["id"], amount=10, billId=a_bill["id"])
    assert res.status_code == 201
    assert res.json()["billId"] == a_bill["id"]


def test_bill_lookup_list_and_stats(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop)
    w = new_wholesaler(client, shop)
    first = bill(client, shop, entityId=c["id"], totalAmount=50).json()
    bill(client, shop, billType="purchase", entityType="wholesaler", entityId=w["id"], totalAmount=80)

    assert client.get(f"/bills/{first['id']}", headers=shop).json()["billNumber"] == first["billNumber"]
    assert client.get(f"/bills/number/{first['billNumber']}", headers=shop).json()["id"] == first["id"]
    assert client.get("/bills/424242", headers=shop).status_code == 404

    sales = client.get("/bills", params={"billType": "sale"}, headers=shop).json()
    assert sales["pagination"]["total"] == 1
    assert len(client.get("/bills/recent", params={"limit": 5}, headers=shop).json()) == 2

    stats = client.get("/bills/stats", headers=shop).json()
    assert stats == {"totalBills": 2, "totalPurchases": 1, "totalSales": 1, "todayBills": 2}


def test_entity_ledger_allocates_due_pro_rata(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop)
    bill(client, shop, entityId=c["id"], totalAmount=600)
    bill(client, shop, entityId=c["id"], totalAmount=400)
    pay(client, shop, entityId=c["id"], amount=750)

    led = client.get(f"/customers/{c['id']}/ledger", headers=shop).json()
    assert led["totals"]["totalBilled"] == 1000
    assert led["totals"]["totalPaid"] == 750
    assert led["totals"]["outstandingDue"] == 250
    assert led["openingDue"] == 0
    by_total = {b["totalAmount"]: b for b in led["bills"]}
    assert (by_total[600]["allocatedDue"], by_total[600]["allocatedPaid"]) == (150, 450)
    assert (by_total[400]["allocatedDue"], by_total[400]["allocatedPaid"]) == (100, 300)
    assert len(led["payments"]) == 1


def test_ledger_opening_due_is_not_spread_over_bills(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop, openingBalance=300)
    bill(client, shop, entityId=c["id"], totalAmount=200)

    led = client.get(f"/customers/{c['id']}/ledger", headers=shop).json()
    assert led["totals"]["outstandingDue"] == 500
    assert led["openingDue"] == 300
    assert led["bills"][0]["allocatedDue"] == 200


def test_ledger_with_future_window_is_empty(client: TestClient, shop: dict) -> None:
    c = new_customer(client, shop, openingBalance=300)
    bill(client, shop, entityId=c["id"], totalAmount=200)
    led = client.get(
        f"/customers/{c['id']}/ledger", params={"startDate": "2999-01-01"}, headers=shop,
    ).json()
    assert led["totals"]["totalBilled"] == 0
    assert led["totals"]["openingBalance"] == 0
    assert led["bills"] == []


def test_bill_customer_type_must_match(client: TestClient, shop: dict) -> None:
    walk_in = new_customer(client, shop, name="Ravi", type="normal")
    regular = new_customer(client, shop, name="Asha", type="due")

    assert bill(client, shop, entityId=walk_in["id"], totalAmount=400).status_code == 422
    res = bill(client, shop, entityType="normal_customer", entityId=regular["id"], totalAmount=50, paidAmount=50)
    assert res.status_code == 422

    assert client.get(f"/customers/{walk_in['id']}", headers=shop).json()["outstandingDue"] == 0
    assert client.get("/bills", headers=shop).json()["pagination"]["total"] == 0
    assert client.get("/reports/dues", headers=shop).json()["customers"] == []


def test_payments_reduce_bill_dues_before_opening_balance(client: TestClient, shop: dict) -> None:
    w = new_wholesaler(client, shop, openingBalance=500)
    bill(client, shop, billType="purchase", entityType="wholesaler", entityId=w["id"], totalAmount=1000)
    pay(client, shop, entityType="wholesaler", entityId=w["id"], amount=300)

    led = client.get(f"/wholesalers/{w['id']}/ledger", headers=shop).json()
    assert led["totals"]["outstandingDue"] == 1200
    assert led["bills"][0]["allocatedDue"] == 700
    assert led["bills"][0]["allocatedPaid"] == 300
    assert led["openingDue"] == 500

    dash = client.get("/reports/wholesalers/dashboard", headers=shop).json()
    assert dash["bills"][0]["allocatedDue"] == 700
