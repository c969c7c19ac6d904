from fastapi.testclient import TestClient

import app.main as main_module
from app import config
from app.availability.errors import TransactionError
from app.main import app


client = TestClient(app)


def _install(monkeypatch, fake_db, uow_factory):
    monkeypatch.setattr(main_module, "SessionLocal", lambda: fake_db)
    monkeypatch.setattr(main_module, "AvailabilityUnitOfWork", uow_factory)


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert response.headers["x-request-id"]


def test_available_slots_returns_naive_strings(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1)
    fake_db.add_window(1, "2024-03-01T09:00:00", "2024-03-01T17:00:00")
    fake_db.add_booking(1, "2024-03-01T10:00:00", "2024-03-01T11:00:00")
    _install(monkeypatch, fake_db, uow_factory)

    response = client.get("/v1/listings/1/available-slots", params={"start": "2024-03-01", "end": "2024-03-01"})
    body = response.json()

    assert response.status_code == 200
    assert body["ok"] is True
    assert [(slot["start"], slot["end"]) for slot in body["data"]["slots"]] == [
        ("2024-03-01T09:00:00", "2024-03-01T10:00:00"),
        ("2024-03-01T11:00:00", "2024-03-01T17:00:00"),
    ]
    assert body["data"]["slots"][0]["ref"] == {"source_window_id": 1, "segment_index": 0, "kind": "split"}


def test_available_slots_invalid_range(monkeypatch, fake_db, uow_factory):
    _install(monkeypatch, fake_db, uow_factory)

    response = client.get("/v1/listings/1/available-slots", params={"start": "soon", "end": "2024-03-01"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGS"


def test_available_slots_unknown_listing(monkeypatch, fake_db, uow_factory):
    _install(monkeypatch, fake_db, uow_factory)

    response = client.get("/v1/listings/9/available-slots", params={"start": "2024-03-01", "end": "2024-03-02"})

    assert response.status_code == 404
    assert response.json()["error_code"] == "LISTING_NOT_FOUND"


def test_host_key_required_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("HOST_API_KEY", "host-secret")

    response = client.post("/v1/listings/1/blocks", json={"start": "2024-03-01", "end": "2024-03-01"})

    assert response.status_code == 401
    assert response.json()["detail"]["error_code"] == "INVALID_HOST_API_KEY"


def test_create_block_conflict_returns_409(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1)
    fake_db.add_booking(1, "2024-03-01T10:00:00", "2024-03-01T11:00:00")
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("HOST_API_KEY", "host-secret")
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post(
        "/v1/listings/1/blocks",
        json={"start": "2024-03-01", "end": "2024-03-01"},
        headers={"X-Host-Key": "host-secret"},
    )
    body = response.json()

    assert response.status_code == 409
    assert body["ok"] is False
    assert body["error_code"] == "SLOT_CONFLICT"
    assert body["conflicts"][0]["source_kind"] == "booking"


def test_create_block_success(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1, host_id=5)
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post(
        "/v1/listings/1/blocks",
        json={"start": "2024-03-01T12:00", "end": "2024-03-01T13:30", "reason": "Cleaning"},
        headers={"X-Host-Id": "5"},
    )
    body = response.json()

    assert response.status_code == 201
    assert body["data"]["status"] == "committed"
    assert body["data"]["blocks"][0]["start"] == "2024-03-01T12:00:00"
    assert body["data"]["blocks"][0]["end"] == "2024-03-01T13:30:00"


def test_create_block_for_other_host_is_404(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1, host_id=5)
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post(
        "/v1/listings/1/blocks",
        json={"start": "2024-03-01", "end": "2024-03-01"},
        headers={"X-Host-Id": "6"},
    )

    assert response.status_code == 404
    assert fake_db.tables["blocks"] == []


def test_create_window_validation_error(monkeypatch, fake_db, uow_factory):
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post(
        "/v1/listings/1/windows",
        json={"start": "2024-03-01T09:00:00", "end": "2024-03-01T10:00:00", "slot_duration_minutes": 0},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGS"


def test_create_window_reports_propagation(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1, operator_id=3)
    fake_db.add_listing(id=2, operator_id=3)
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post(
        "/v1/listings/1/windows",
        json={"start": "2024-03-01T09:00:00", "end": "2024-03-01T17:00:00", "price_override": 99},
    )
    body = response.json()

    assert response.status_code == 201
    assert body["data"]["status"] == "committed"
    assert body["data"]["windows"][0]["price_override"] == "99"
    assert body["data"]["propagation"]["propagated"][0]["listing_id"] == 2


def test_delete_window_not_found(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1)
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.delete("/v1/listings/1/windows/77")

    assert response.status_code == 404
    assert response.json()["error_code"] == "WINDOW_NOT_FOUND"


def test_reconcile_endpoint(monkeypatch, fake_db, uow_factory):
    fake_db.add_listing(id=1)
    window = fake_db.add_window(1, "2024-03-01T09:00:00", "2024-03-01T17:00:00")
    fake_db.add_block(1, "2024-03-01T12:00:00", "2024-03-01T13:00:00")
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)

    response = client.post("/v1/listings/1/reconcile")

    assert response.status_code == 200
    assert response.json()["data"]["removed_window_ids"] == [window.id]


def test_storage_failure_maps_to_system_down(monkeypatch, fake_db, uow_factory):
    def _fail(**_kwargs):
        raise TransactionError("Temporary storage issue; no changes were saved.")

    monkeypatch.setenv("ENV", "dev")
    monkeypatch.delenv("HOST_API_KEY", raising=False)
    _install(monkeypatch, fake_db, uow_factory)
    monkeypatch.setattr(main_module, "validate_and_persist_block", _fail)

    response = client.post("/v1/listings/1/blocks", json={"start": "2024-03-01", "end": "2024-03-01"})

    assert response.status_code == 500
    assert response.json()["error_code"] == "SYSTEM_DOWN"
