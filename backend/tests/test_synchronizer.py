from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from app import config
from app.availability.errors import NotFoundError
from app.availability.synchronizer import propagate, reconcile


def test_reconcile_removes_overlapping_windows_and_is_idempotent(fake_db, uow):
    fake_db.add_listing(id=1)
    clashing = fake_db.add_window(1, "2024-03-01T09:00:00", "2024-03-01T17:00:00")
    blocked = fake_db.add_window(1, "2024-03-02T09:00:00", "2024-03-02T17:00:00")
    touching = fake_db.add_window(1, "2024-03-03T09:00:00", "2024-03-03T17:00:00")
    fake_db.add_booking(1, "2024-03-01T12:00:00", "2024-03-01T13:00:00")
    fake_db.add_booking(1, "2024-03-03T17:00:00", "2024-03-03T18:00:00")
    fake_db.add_block(1, "2024-03-02T00:00:00", "2024-03-03T00:00:00")

    removed = reconcile(uow, 1)

    assert sorted(removed) == sorted([clashing.id, blocked.id])
    assert [row.id for row in fake_db.tables["windows"]] == [touching.id]
    assert reconcile(uow, 1) == []
    assert [row.id for row in fake_db.tables["windows"]] == [touching.id]
    assert 1 in fake_db.locked


def test_reconcile_ignores_cancelled_bookings(fake_db, uow):
    fake_db.add_listing(id=1)
    fake_db.add_window(1, "2024-03-01T09:00:00", "2024-03-01T17:00:00")
    fake_db.add_booking(1, "2024-03-01T12:00:00", "2024-03-01T13:00:00", status="cancelled")

    assert reconcile(uow, 1) == []
    assert len(fake_db.tables["windows"]) == 1


def test_reconcile_unknown_listing(uow):
    with pytest.raises(NotFoundError):
        reconcile(uow, 99)


def _seed_operator(fake_db):
    primary = fake_db.add_listing(id=1, operator_id=50)
    free_sibling = fake_db.add_listing(id=2, operator_id=50)
    busy_sibling = fake_db.add_listing(id=3, operator_id=50)
    fake_db.add_listing(id=4, operator_id=51)
    fake_db.add_booking(3, "2024-03-01T10:00:00", "2024-03-01T11:00:00")
    window = fake_db.add_window(1, "2024-03-01T09:00:00", "2024-03-01T17:00:00", price_override=None)
    return primary, free_sibling, busy_sibling, window


def test_propagate_copies_to_free_siblings_and_reports_skips(fake_db, uow, monkeypatch):
    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    primary, free_sibling, busy_sibling, window = _seed_operator(fake_db)

    report = propagate(uow, primary, window)

    assert report.status == "committed"
    assert [item["listing_id"] for item in report.propagated] == [free_sibling.id]
    assert [(item["listing_id"], item["reason"]) for item in report.skipped] == [
        (busy_sibling.id, "conflict")
    ]
    copies = [row for row in fake_db.tables["windows"] if row.listing_id == free_sibling.id]
    assert len(copies) == 1
    assert copies[0].origin_listing_id == primary.id
    assert copies[0].start_at == datetime(2024, 3, 1, 9)
    assert not any(row.listing_id == 4 for row in fake_db.tables["windows"])


def test_propagate_skips_existing_identical_window(fake_db, uow, monkeypatch):
    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    primary, free_sibling, _busy, window = _seed_operator(fake_db)
    fake_db.add_window(free_sibling.id, "2024-03-01T09:00:00", "2024-03-01T17:00:00")

    report = propagate(uow, primary, window)

    assert report.propagated == []
    assert ("duplicate" in [item["reason"] for item in report.skipped])


def test_propagate_failure_is_reported_not_raised(fake_db, uow, monkeypatch):
    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    primary, free_sibling, _busy, window = _seed_operator(fake_db)
    fake_db.fail_insert_at = 1

    report = propagate(uow, primary, window)

    assert report.status == "committed_with_warnings"
    assert report.failed[0]["listing_id"] == free_sibling.id
    assert report.failed[0]["error_code"] == "SYSTEM_DOWN"
    assert fake_db.rollbacks >= 1
    assert [row.listing_id for row in fake_db.tables["windows"]] == [primary.id]


def test_propagate_disabled_or_unavailable_window_does_nothing(fake_db, uow, monkeypatch):
    primary, _free, _busy, window = _seed_operator(fake_db)

    monkeypatch.setattr(config, "PROPAGATION_ENABLED", False)
    assert propagate(uow, primary, window).to_dict()["propagated"] == []

    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    window.is_available = False
    assert propagate(uow, primary, window).propagated == []
    assert len(fake_db.tables["windows"]) == 1


def test_propagate_sibling_lookup_failure_is_reported_not_raised(fake_db, uow, monkeypatch):
    monkeypatch.setattr(config, "PROPAGATION_ENABLED", True)
    primary, _free, _busy, window = _seed_operator(fake_db)

    def lost_connection(listing):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(uow.listings, "siblings", lost_connection)

    report = propagate(uow, primary, window)

    assert report.status == "committed_with_warnings"
    assert report.failed[0]["error_code"] == "SYSTEM_DOWN"
    assert report.propagated == []
    assert fake_db.rollbacks == 1
