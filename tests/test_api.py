from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token
from app.config import settings
from app.db import Base, configure_sqlite
from app.main import app, get_db


def _make_client() -> TestClient:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _auth(role: str = "admin", user_id: int = 1) -> dict:
    token = create_access_token(user_id, f"{role}@guesthouse.test", role, role.title())
    return {"Authorization": f"Bearer {token}"}


def _seed_guest_and_room(client: TestClient, price: int = 1000) -> tuple[int, int]:
    guest_resp = client.post("/guests", json={"name": "Abebe Kebede", "phone": "+251911000000"}, headers=_auth())
    assert guest_resp.status_code == 200
    room_resp = client.post("/rooms", json={"number": "101", "type": "Double", "price": price}, headers=_auth())
    assert room_resp.status_code == 200
    return guest_resp.json()["data"]["guest_id"], room_resp.json()["data"]["room_id"]


def test_health() -> None:
    client = _make_client()
    with client:
        assert client.get("/health").json() == {"status": "healthy"}


def test_routes_require_a_token_and_a_role() -> None:
    client = _make_client()
    with client:
        resp = client.get("/bookings")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized"

        resp = client.get("/bookings", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

        resp = client.get("/bookings", headers=_auth("housekeeping"))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "Insufficient role", "error": "forbidden"}

        assert client.get("/bookings", headers=_auth("finance")).status_code == 200
        assert client.post("/bookings", json={}, headers=_auth("finance")).status_code == 403


def test_login_and_me() -> None:
    client = _make_client()
    with client:
        staff_resp = client.post(
            "/staff",
            json={
                "name": "Hana Tesfaye",
                "role": "reception",
                "phone": "0911000000",
                "username": "hana@guesthouse.test",
                "password": "secret1",
            },
            headers=_auth(),
        )
        assert staff_resp.status_code == 200
        staff = staff_resp.json()["data"]
        assert staff["barcode"].startswith("EMP-")
        assert staff["user"]["email"] == "hana@guesthouse.test"

        bad = client.post("/auth/login", json={"email": "hana@guesthouse.test", "password": "nope"})
        assert bad.status_code == 401

        login = client.post("/auth/login", json={"email": "hana@guesthouse.test", "password": "secret1"})
        assert login.status_code == 200
        token = login.json()["data"]["access_token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["data"]["roles"] == ["reception"]
        assert me.json()["data"]["user_id"] == staff["user"]["user_id"]


def test_double_booking_is_rejected_but_back_to_back_is_fine() -> None:
    client = _make_client()
    with client:
        guest_id, room_id = _seed_guest_and_room(client)
        headers = _auth("reception")

        first = client.post(
            "/bookings",
            json={"guestId": guest_id, "roomId": room_id, "checkIn": "2025-03-01", "checkOut": "2025-03-04"},
            headers=headers,
        )
        assert first.status_code == 200
        assert first.json()["data"]["nights"] == 3

        clash = client.post(
            "/bookings",
            json={"guestId": guest_id, "roomId": room_id, "checkIn": "2025-03-03", "checkOut": "2025-03-05"},
            headers=headers,
        )
        assert clash.status_code == 409
        assert clash.json() == {"detail": "Room is already booked in this date range", "error": "conflict"}

        follow_on = client.post(
            "/bookings",
            json={"guest_id": guest_id, "room_id": room_id, "check_in": "2025-03-04", "check_out": "2025-03-06"},
            headers=headers,
        )
        assert follow_on.status_code == 200

        available = client.get(
            "/rooms/available", params={"checkIn": "2025-03-06", "checkOut": "2025-03-08"}, headers=headers
        )
        assert [r["room_id"] for r in available.json()["data"]] == [room_id]
        taken = client.get(
            "/rooms/available", params={"checkIn": "2025-03-02", "checkOut": "2025-03-03"}, headers=headers
        )
        assert taken.json()["data"] == []

        backwards = client.post(
            "/bookings",
            json={"guestId": guest_id, "roomId": room_id, "checkIn": "2025-04-04", "checkOut": "2025-04-01"},
            headers=headers,
        )
        assert backwards.status_code == 400
        assert backwards.json()["error"] == "invalid_input"


def test_room_payment_is_derived_and_not_duplicated() -> None:
    client = _make_client()
    with client:
        guest_id, room_id = _seed_guest_and_room(client)
        booking = client.post(
            "/bookings",
            json={"guestId": guest_id, "roomId": room_id, "checkIn": "2025-03-01", "checkOut": "2025-03-04"},
            headers=_auth(),
        ).json()["data"]

        cashier = _auth("finance")
        paid = client.post(
            "/payments", json={"serviceType": "ROOM", "bookingId": booking["booking_id"], "method": "cash"},
            headers=cashier,
        )
        assert paid.status_code == 200
        data = paid.json()["data"]
        assert data["amount"] == 3000
        assert data["guest_id"] == guest_id
        assert data["booking"]["room"]["number"] == "101"

        again = client.post(
            "/payments", json={"serviceType": "ROOM", "bookingId": booking["booking_id"], "method": "cash"},
            headers=cashier,
        )
        assert again.status_code == 409

        unpaid = client.get("/bookings", params={"unpaid": "true"}, headers=cashier)
        assert unpaid.json()["data"] == []

        patched = client.patch(f"/payments/{data['payment_id']}", json={"status": "Unpaid"}, headers=cashier)
        assert patched.json()["data"]["status"] == "unpaid"
        unpaid = client.get("/bookings", params={"unpaid": "true"}, headers=cashier)
        assert [b["booking_id"] for b in unpaid.json()["data"]] == [booking["booking_id"]]

        missing_amount = client.post(
            "/payments", json={"serviceType": "DINING", "guestId": guest_id, "method": "cash"}, headers=cashier
        )
        assert missing_amount.status_code == 400


def test_laundry_order_brings_its_payment() -> None:
    client = _make_client()
    with client:
        guest_id, _ = _seed_guest_and_room(client)
        desk = _auth("housekeeping")

        created = client.post("/laundry", json={"guestId": guest_id, "items": "2 shirts", "price": 150}, headers=desk)
        assert created.status_code == 200
        order = created.json()["data"]
        assert order["payment"]["amount"] == 150
        assert order["payment"]["status"] == "paid"
        assert order["payment"]["method"] == "cash"

        listed = client.get("/laundry", headers=desk).json()["data"]
        assert listed[0]["guest"]["name"] == "Abebe Kebede"
        assert listed[0]["payment"]["payment_id"] == order["payment"]["payment_id"]

        status = client.patch(f"/laundry/{order['laundry_id']}/status", json={"status": "done"}, headers=desk)
        assert status.json()["data"]["status"] == "done"

        payments = client.get("/payments", headers=_auth("finance")).json()["data"]
        assert [p["service_type"] for p in payments] == ["LAUNDRY"]


def test_attendance_scan_with_scanner_key(monkeypatch) -> None:
    monkeypatch.setattr(settings, "attendance_api_key", "scanner-secret")
    client = _make_client()
    with client:
        staff = client.post(
            "/staff", json={"name": "Dawit Bekele", "role": "security", "phone": "0911000001"}, headers=_auth()
        ).json()["data"]
        code = f"ATT:{staff['barcode']}"

        assert client.post("/attendance/scan", json={"code": code}).status_code == 401
        forbidden = client.post("/attendance/scan", json={"code": code}, headers=_auth("guest"))
        assert forbidden.status_code == 403

        key = {"X-API-Key": "scanner-secret"}
        first = client.post("/attendance/scan", json={"code": code}, headers=key)
        assert first.status_code == 200
        assert first.json()["data"]["action"] == "CHECK_IN"
        second = client.post("/attendance/scan", json={"token": code}, headers={"X-API-Token": "scanner-secret"})
        assert second.json()["data"]["action"] == "CHECK_OUT"
        third = client.post("/attendance/scan", json={"code": staff["barcode"]}, headers=_auth("security"))
        assert third.json()["data"]["action"] == "ALREADY_CHECKED_OUT"
        assert third.json()["data"]["attendance"] == second.json()["data"]["attendance"]

        assert client.post("/attendance/scan", json={}, headers=key).status_code == 400
        assert client.post("/attendance/scan", json={"code": "EMP-nope"}, headers=key).status_code == 404

        rows = client.get("/attendance", params={"staffId": staff["staff_id"]}, headers=_auth("manager"))
        assert len(rows.json()["data"]) == 1


def test_inventory_movements_over_http() -> None:
    client = _make_client()
    with client:
        store = _auth("store")
        item = client.post(
            "/inventory",
            json={"name": "Towels", "category": "Linen", "unit": "pcs", "quantity": 10, "minThreshold": 4},
            headers=store,
        ).json()["data"]

        out = client.post(f"/inventory/{item['item_id']}/movements", json={"type": "OUT", "quantity": 7}, headers=store)
        assert out.status_code == 200
        assert out.json()["data"]["item"]["quantity"] == 3
        assert out.json()["data"]["item"]["low_stock"] is True
        assert out.json()["data"]["movement"]["resulting_quantity"] == 3

        too_many = client.post(
            f"/inventory/{item['item_id']}/movements", json={"type": "OUT", "quantity": 7}, headers=store
        )
        assert too_many.status_code == 400
        assert too_many.json()["detail"] == "Insufficient stock"

        log = client.get(f"/inventory/{item['item_id']}/movements", headers=store).json()["data"]
        assert [m["type"] for m in log] == ["OUT"]

        metrics = client.get("/inventory/metrics", headers=store).json()["data"]
        assert metrics["low_stock"] == 1


def test_overview_shapes() -> None:
    client = _make_client()
    with client:
        guest_id, room_id = _seed_guest_and_room(client)
        client.post(
            "/bookings",
            json={"guestId": guest_id, "roomId": room_id, "checkIn": "2025-03-01", "checkOut": "2025-03-04"},
            headers=_auth(),
        )
        reader = _auth("finance")

        lifetime = client.get("/stats/overview", headers=reader).json()["data"]
        assert lifetime["range"]["kind"] == "lifetime"
        assert lifetime["arrivals"] == 1
        assert lifetime["unpaid_total"] == 3000

        long_ago = client.get("/stats/overview", params={"start": "2000-01-01", "end": "2000-01-01"}, headers=reader)
        assert long_ago.json()["data"]["range"]["kind"] == "custom"

        legacy = client.get("/stats/overview", params={"legacy": "true"}, headers=reader).json()["data"]
        assert legacy["lifetime"] is True
        assert legacy["unpaidTotal"] == 3000
        assert "occupiedRoomsNow" in legacy

        bad = client.get("/stats/overview", params={"start": "someday"}, headers=reader)
        assert bad.status_code == 400
        inverted = client.get(
            "/stats/overview", params={"start": "2025-03-10", "end": "2025-03-01"}, headers=reader
        )
        assert inverted.json() == {"detail": "start must not be after end", "error": "invalid_input"}

        series = client.get("/stats/series", params={"days": 3}, headers=_auth("store")).json()["data"]
        assert len(series) == 3
        assert client.get("/stats/series", headers=_auth("housekeeping")).status_code == 403
