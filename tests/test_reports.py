import csv
import io
from datetime import datetime, timezone

from fastapi.testclient import TestClient
from tortoise.exceptions import OperationalError

from models import Bill


def seed_activity(client: TestClient, headers: dict) -> dict:
    asha = client.post("/customers", json={"name": "Asha", "type": "due", "phone": "98765"}, headers=headers).json()
    bala = client.post("/customers", json={"name": "Bala", "type": "due", "openingBalance": 40}, headers=headers).json()
    client.post("/customers", json={"name": "Chitra", "type": "due", "openingBalance": -30}, headers=headers)
    metro = client.post(
        "/wholesalers", json={"name": "Metro", "phone": "1", "address": "x", "openingBalance": 500}, headers=headers,
    ).json()
    client.post(
        "/bills",
        json={"billType": "sale", "entityType": "due_customer", "entityId": asha["id"], "entityName": "Asha",
              "totalAmount": 1000, "paidAmount": 200, "paymentMethod": "cash"},
        headers=headers,
    )
    client.post(
        "/bills",
        json={"billType": "sale", "entityType": "normal_customer", "entityName": "Walk-in",
              "totalAmount": 120, "paidAmount": 120, "paymentMethod": "card"},
        headers=headers,
    )
    return {"asha": asha, "bala": bala, "metro": metro}


def test_dues_report(client: TestClient, shop: dict) -> None:
    ids = seed_activity(client, shop)
    res = client.get("/reports/dues", headers=shop)
    assert res.status_code == 200
    report = res.json()
    assert [c["name"] for c in report["customers"]] == ["Asha", "Bala"]
    assert report["customers"][0]["outstandingDue"] == 800
    assert report["customers"][0]["daysSinceLastTransaction"] == 0
    assert report["wholesalers"][0]["id"] == ids["metro"]["id"]
    assert report["customerDues"] == 840
    assert report["wholesalerDues"] == 500
    assert report["totalOutstanding"] == 1340
    assert report["overdueCount"] == 0


def test_dues_report_skips_disabled_kinds(client: TestClient, make_shopkeeper) -> None:
    _, headers = make_shopkeeper(email="nows@example.com", features={"wholesalers": False})
    seed_activity(client, headers)
    report = client.get("/reports/dues", headers=headers).json()
    assert report["wholesalers"] == []
    assert report["wholesalerDues"] == 0


def test_dues_csv(client: TestClient, shop: dict) -> None:
    seed_activity(client, shop)
    res = client.get("/reports/dues.csv", headers=shop)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert res.headers["Content-Disposition"].startswith('attachment; filename="dues-')

    rows = list(csv.reader(io.StringIO(res.content.decode("utf-8-sig"))))
    assert rows[0] == ["Type", "ID", "Name", "Phone", "Outstanding", "Last Transaction", "Days Since", "Overdue"]
    assert len(rows) == 4
    assert rows[1][0] == "customer"
    assert rows[1][2:5] == ["Asha", "98765", "800.00"]
    assert rows[1][7] == "false"
    assert rows[3][2] == "Metro"


def test_customer_dashboard_includes_walk_ins(client: TestClient, shop: dict) -> None:
    seed_activity(client, shop)
    dash = client.get("/reports/customers/dashboard", headers=shop).json()
    assert dash["totals"]["totalBilled"] == 1120
    assert dash["totals"]["totalPaid"] == 320
    assert dash["totals"]["openingBalance"] == 10
    assert dash["paymentBreakdown"] == {"cash": 200, "card": 120, "online": 0}
    assert dash["previousTotalBilled"] is None

    rows = {r["entityName"]: r for r in dash["entities"]}
    assert rows["Walk-in customers"]["entityId"] is None
    assert rows["Walk-in customers"]["entityType"] == "walk_in"
    assert rows["Walk-in customers"]["outstandingDue"] == 0
    assert rows["Asha"]["outstandingDue"] == 800
    assert rows["Bala"]["totalBilled"] == 0
    assert len(dash["bills"]) == 2


def test_dashboard_window_and_previous_period(client: TestClient, shop: dict) -> None:
    seed_activity(client, shop)
    today = datetime.now(tz=timezone.utc).date().isoformat()
    dash = client.get(
        "/reports/customers/dashboard", params={"startDate": today, "endDate": today}, headers=shop,
    ).json()
    assert dash["totals"]["totalBilled"] == 1120
    # opening balances only count in an open-ended window
    assert dash["totals"]["openingBalance"] == 0
    assert dash["previousTotalBilled"] == 0

    w = client.get("/reports/wholesalers/dashboard", headers=shop).json()
    assert w["totals"]["outstandingDue"] == 500
    assert w["entities"][0]["entityName"] == "Metro"


def test_dashboard_rejects_inverted_range(client: TestClient, shop: dict) -> None:
    res = client.get(
        "/reports/customers/dashboard", params={"startDate": "2025-02-01", "endDate": "2025-01-01"}, headers=shop,
    )
    assert res.status_code == 422


def test_unreadable_bills_answer_503_not_zero(client: TestClient, shop: dict, monkeypatch) -> None:
    ids = seed_activity(client, shop)

    def unreachable(*args, **kwargs):
        raise OperationalError("database is locked")

    monkeypatch.setattr(Bill, "filter", unreachable)

    res = client.get(f"/customers/{ids['asha']['id']}/ledger", headers=shop)
    assert res.status_code == 503
    assert res.json() == {"detail": "Ledger data temporarily unavailable"}
    assert client.get("/reports/dues", headers=shop).status_code == 503
    assert client.get("/reports/customers/dashboard", headers=shop).status_code == 503
