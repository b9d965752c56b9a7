from decimal import Decimal

from fastapi.testclient import TestClient

from models import Customer


def test_shopkeeper_crud_and_usage(client: TestClient, admin_headers: dict, make_shopkeeper) -> None:
    record, headers = make_shopkeeper(email="crud@example.com")
    sid = record["id"]
    assert record["role"] == "shopkeeper"
    assert record["isActive"] is True

    client.post("/customers", json={"name": "Asha", "type": "due"}, headers=headers)

    res = client.get(f"/admin/shopkeepers/{sid}", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["usage"]["customers"] == 1

    res = client.put(f"/admin/shopkeepers/{sid}", json={"phone": "9999"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["phone"] == "9999"

    listing = client.get("/admin/shopkeepers", params={"search": "crud"}, headers=admin_headers)
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total"] == 1
    assert listing.headers["X-Total-Count"] == "1"

    res = client.delete(f"/admin/shopkeepers/{sid}", headers=admin_headers)
    assert res.status_code == 200
    assert client.get(f"/admin/shopkeepers/{sid}", headers=admin_headers).status_code == 404


def test_duplicate_email_conflicts(client: TestClient, admin_headers: dict, make_shopkeeper) -> None:
    make_shopkeeper(email="dup@example.com")
    res = client.post(
        "/admin/shopkeepers",
        json={"email": "DUP@example.com", "password": "secret123", "name": "Other"},
        headers=admin_headers,
    )
    assert res.status_code == 409


def test_shopkeeper_cannot_use_admin_routes(client: TestClient, shop: dict) -> None:
    assert client.get("/admin/shopkeepers", headers=shop).status_code == 403
    assert client.post("/admin/tasks/resync-balances", headers=shop).status_code == 403


def test_admin_cannot_use_shop_routes(client: TestClient, admin_headers: dict) -> None:
    assert client.get("/customers", headers=admin_headers).status_code == 403


def test_toggle_status_locks_out_the_shopkeeper(client: TestClient, admin_headers: dict, make_shopkeeper) -> None:
    record, headers = make_shopkeeper(email="toggle@example.com")
    res = client.patch(f"/admin/shopkeepers/{record['id']}/toggle-status", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["isActive"] is False

    assert client.get("/customers", headers=headers).status_code == 401
    login = client.post("/auth/login", json={"email": "toggle@example.com", "password": "secret123"})
    assert login.status_code == 401

    stats = client.get("/admin/shopkeepers/stats", headers=admin_headers).json()
    assert stats == {"total": 1, "active": 0, "inactive": 1}

    res = client.patch(f"/admin/shopkeepers/{record['id']}/toggle-status", headers=admin_headers)
    assert res.json()["isActive"] is True


def test_features_gate_routes(client: TestClient, admin_headers: dict, make_shopkeeper) -> None:
    record, headers = make_shopkeeper(email="features@example.com")
    res = client.put(
        f"/admin/shopkeepers/{record['id']}/features",
        json={"wholesalers": False, "dueCustomers": True, "normalCustomers": False, "billing": True, "reports": False},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.json()["features"]["wholesalers"] is False

    assert client.get("/wholesalers", headers=headers).status_code == 403
    assert client.get("/reports/dues", headers=headers).status_code == 403
    assert client.post("/customers", json={"name": "Walk In", "type": "normal"}, headers=headers).status_code == 403
    assert client.post("/customers", json={"name": "Ravi", "type": "due"}, headers=headers).status_code == 201


def test_resync_task(client: TestClient, admin_headers: dict, shop: dict) -> None:
    client.post("/customers", json={"name": "Asha", "type": "due", "openingBalance": 50}, headers=shop)
    res = client.post("/admin/tasks/resync-balances", headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {"entities": 1, "drifted": 0}


def test_resync_repairs_drifted_cache(client: TestClient, admin_headers: dict, shop: dict) -> None:
    c = client.post("/customers", json={"name": "Asha", "type": "due", "openingBalance": 50}, headers=shop).json()
    client.post(
        "/bills",
        json={"billType": "sale", "entityType": "due_customer", "entityId": c["id"], "entityName": "Asha",
              "totalAmount": 200, "paymentMethod": "cash"},
        headers=shop,
    )

    async def corrupt():
        await Customer.filter(id=c["id"]).update(balance=Decimal("999"), total_billed=Decimal("0"))

    client.portal.call(corrupt)
    assert client.get(f"/customers/{c['id']}", headers=shop).json()["outstandingDue"] == 999

    res = client.post("/admin/tasks/resync-balances", json={"shopkeeperId": None}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {"entities": 1, "drifted": 1}

    got = client.get(f"/customers/{c['id']}", headers=shop).json()
    assert got["outstandingDue"] == 250
    assert got["totalSales"] == 200
