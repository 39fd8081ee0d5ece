"""
Тесты HTTP API на локальном хранилище
"""
import pytest
from fastapi.testclient import TestClient

from crm.dependencies import get_context, get_reconciler
from crm.main import app
from crm.services.calendar import SlotReconciler


@pytest.fixture
def client(context):
    reconciler = SlotReconciler(context)
    app.dependency_overrides[get_context] = lambda: context
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_slot(client, **overrides):
    data = {"name": "Beratung", "date": "2025-03-12", "start": "11:00", "end": "19:00", "space": 120}
    data.update(overrides)
    response = client.post("/api/slots", json=data)
    assert response.status_code == 201
    return response.json()


def create_customer(client, surname="Müller", **fields):
    response = client.post("/api/customers", json={"surname": surname, **fields})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_slot_and_calendar(client):
    slot = create_slot(client)
    assert len(slot["appointments"]) == 4

    response = client.get("/api/calendar", params={"date": "2025-03-14"})
    assert response.status_code == 200
    calendar = response.json()
    assert calendar["range_start"] == "2025-03-10"
    assert calendar["range_end"] == "2025-03-16"
    assert len(calendar["days"]) == 7

    wednesday = next(day for day in calendar["days"] if day["date"] == "2025-03-12")
    assert [s["id"] for s in wednesday["slots"]] == [slot["id"]]
    assert [a["time"] for a in wednesday["slots"][0]["appointments"]] == ["11:00", "13:00", "15:00", "17:00"]
    assert calendar["status_counts"] == {"empty": 4, "edit": 0, "okay": 0}


def test_calendar_category_filter(client):
    create_slot(client, category="cat1")
    create_slot(client, category="cat2", name="Besichtigung")

    calendar = client.get("/api/calendar", params={"date": "2025-03-12", "category": "cat2"}).json()
    wednesday = next(day for day in calendar["days"] if day["date"] == "2025-03-12")
    assert [s["name"] for s in wednesday["slots"]] == ["Besichtigung"]


def test_calendar_bad_date(client):
    assert client.get("/api/calendar", params={"date": "12.03.2025"}).status_code == 400


def test_slot_validation(client):
    response = client.post("/api/slots", json={
        "name": "Beratung", "date": "2025-03-12", "start": "19:00", "end": "11:00", "space": 120
    })
    assert response.status_code == 400
    assert response.json()["error"] == "SlotGenerationError"

    response = client.post("/api/slots", json={
        "name": "Beratung", "date": "2025-03-12", "start": "11:00", "end": "19:00", "space": 0
    })
    assert response.status_code == 422


def test_slot_preview(client):
    response = client.get("/api/slots/preview", params={"start": "11:00", "end": "19:00", "space": 120})
    assert response.json() == {"times": ["11:00", "13:00", "15:00", "17:00"], "count": 4}

    response = client.get("/api/slots/preview", params={"start": "11:00", "end": "11:30", "space": 60})
    assert response.status_code == 400


def test_slot_crud(client):
    slot = create_slot(client)

    response = client.patch(f"/api/slots/{slot['id']}", json={"name": "Neu", "deaktif": True})
    assert response.status_code == 200
    assert response.json()["name"] == "Neu"
    assert response.json()["deaktif"] is True

    appointments = client.get(f"/api/slots/{slot['id']}/appointments").json()
    assert len(appointments) == 4

    response = client.delete(f"/api/slots/{slot['id']}")
    assert response.json() == {"success": True, "deleted_appointments": 4}
    assert client.get(f"/api/slots/{slot['id']}").status_code == 404


def test_appointment_lifecycle(client):
    slot = create_slot(client)
    customer = create_customer(client)
    appointment_id = slot["appointments"][0]

    response = client.post(f"/api/appointments/{appointment_id}/claim")
    assert response.status_code == 200
    assert response.json()["status"] == "edit"

    response = client.post(f"/api/appointments/{appointment_id}/claim")
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyClaimed"

    response = client.post(f"/api/appointments/{appointment_id}/assign", json={"customer_id": ""})
    assert response.status_code == 400

    response = client.post(f"/api/appointments/{appointment_id}/assign", json={"customer_id": customer["id"]})
    assert response.status_code == 200
    assert response.json()["status"] == "okay"
    assert response.json()["customer"] == customer["id"]

    response = client.post(f"/api/appointments/{appointment_id}/release")
    assert response.status_code == 400

    response = client.post(f"/api/appointments/{appointment_id}/empty")
    assert response.json()["status"] == "empty"
    assert response.json()["customer"] == ""


def test_unknown_appointment(client):
    assert client.post("/api/appointments/missing00000000/claim").status_code == 404


def test_customers(client):
    created = create_customer(client, "Weber", location="Berlin")
    create_customer(client, "Schmidt", location="Hamburg")

    assert len(client.get("/api/customers").json()) == 2
    found = client.get("/api/customers", params={"search": "berl"}).json()
    assert [c["surname"] for c in found] == ["Weber"]

    response = client.patch(f"/api/customers/{created['id']}", json={"note": "Rückruf"})
    assert response.json()["note"] == "Rückruf"

    assert client.delete(f"/api/customers/{created['id']}").json() == {"success": True}
    assert client.get(f"/api/customers/{created['id']}").status_code == 404


def test_qc_boards(client):
    customer = create_customer(client)

    board = client.get("/api/qc/qc_on").json()
    assert board["statuses"] == ["Yeni", "Aranacak", "Rausgefallen", "Rausgefallen WP"]
    assert [c["id"] for c in board["columns"]["Yeni"]] == [customer["id"]]

    response = client.post(f"/api/qc/qc_on/{customer['id']}", json={"status": "Aranacak"})
    assert response.json()["qc_on"] == "Aranacak"
    assert response.json()["qc_final"] == "Yeni"

    final_board = client.get("/api/qc/qc_final").json()
    assert [c["id"] for c in final_board["columns"]["Yeni"]] == [customer["id"]]

    response = client.post(f"/api/qc/qc_on/{customer['id']}", json={"status": "Okey"})
    assert response.status_code == 400

    assert client.get("/api/qc/qc_middle").status_code == 404


def test_patch_with_null_fields_keeps_records_readable(client):
    customer = create_customer(client, "Weber", age=42)

    response = client.patch(f"/api/customers/{customer['id']}", json={"age": None, "note": "Rückruf"})
    assert response.status_code == 200
    assert response.json()["age"] == 42
    assert response.json()["note"] == "Rückruf"

    assert client.get("/api/customers").status_code == 200
    assert client.get("/api/qc/qc_on").status_code == 200

    slot = create_slot(client)
    response = client.patch(f"/api/slots/{slot['id']}", json={"name": None, "date": None, "capacity": 2})
    assert response.status_code == 200
    assert response.json()["name"] == "Beratung"
    assert response.json()["date"] == "2025-03-12"
    assert response.json()["capacity"] == 2


def test_qc_summary(client):
    first = create_customer(client, "Weber")
    second = create_customer(client, "Schmidt")
    create_customer(client, "Müller")
    for customer in (first, second):
        client.post(f"/api/qc/qc_on/{customer['id']}", json={"status": "Aranacak"})
    client.post(f"/api/qc/qc_final/{first['id']}", json={"status": "Okey"})

    response = client.get("/api/qc/summary")
    assert response.status_code == 200
    summary = response.json()
    assert summary["total"] == 3
    assert summary["counts"]["qc_on"] == {"Yeni": 1, "Aranacak": 2, "Rausgefallen": 0, "Rausgefallen WP": 0}
    assert summary["counts"]["qc_final"]["Okey"] == 1
    assert summary["leaderboard"] == [{"agent": "localagent00001", "okey": 1}]
