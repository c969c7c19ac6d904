import copy
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from app.availability.intervals import ACTIVE_BOOKING_STATUSES
from app.availability.stores import AvailabilityUnitOfWork


def _in_range(row, range_start, range_end):
    if range_start is not None and not row.end_at > range_start:
        return False
    if range_end is not None and not row.start_at < range_end:
        return False
    return True


def _as_row(row):
    if isinstance(row, SimpleNamespace):
        return row
    return SimpleNamespace(**{name: getattr(row, name) for name in row.__table__.columns.keys()})


class FakeSession:
    """In-memory tables; commit snapshots them and rollback restores the snapshot."""

    def __init__(self):
        self.tables = {"listings": [], "windows": [], "bookings": [], "blocks": []}
        self.next_id = {name: 1 for name in self.tables}
        self.committed = copy.deepcopy(self.tables)
        self.rollbacks = 0
        self.locked = []
        self.fail_insert_at = None
        self.inserts = 0

    def add_row(self, table, **fields):
        row = SimpleNamespace(**fields)
        if getattr(row, "id", None) is None:
            row.id = self.next_id[table]
        self.next_id[table] = max(self.next_id[table], row.id + 1)
        self.tables[table].append(row)
        self.commit()
        return row

    def add_listing(self, **fields):
        defaults = {
            "host_id": 1,
            "operator_id": None,
            "title": "Listing",
            "booking_unit_type": "daily",
            "slot_duration_minutes": None,
            "min_advance_booking_hours": None,
            "max_advance_booking_days": None,
        }
        defaults.update(fields)
        return self.add_row("listings", **defaults)

    def add_window(self, listing_id, start_at, end_at, **fields):
        defaults = {
            "is_available": True,
            "slot_type": "regular",
            "price_override": None,
            "booking_unit_type": None,
            "slot_duration_minutes": None,
            "origin_listing_id": None,
        }
        defaults.update(fields)
        return self.add_row(
            "windows",
            listing_id=listing_id,
            start_at=datetime.fromisoformat(start_at),
            end_at=datetime.fromisoformat(end_at),
            **defaults,
        )

    def add_booking(self, listing_id, start_at, end_at, status="confirmed", **fields):
        return self.add_row(
            "bookings",
            listing_id=listing_id,
            start_at=datetime.fromisoformat(start_at),
            end_at=datetime.fromisoformat(end_at),
            status=status,
            **fields,
        )

    def add_block(self, listing_id, start_at, end_at, reason=None, **fields):
        return self.add_row(
            "blocks",
            listing_id=listing_id,
            start_at=datetime.fromisoformat(start_at),
            end_at=datetime.fromisoformat(end_at),
            reason=reason,
            **fields,
        )

    def insert(self, table, row):
        self.inserts += 1
        if self.fail_insert_at is not None and self.inserts >= self.fail_insert_at:
            raise OperationalError("INSERT", {}, Exception("connection lost"))
        row = _as_row(row)
        if getattr(row, "id", None) is None:
            row.id = self.next_id[table]
            self.next_id[table] += 1
        self.tables[table].append(row)
        return row

    def flush(self):
        return None

    def commit(self):
        self.committed = copy.deepcopy(self.tables)

    def rollback(self):
        self.rollbacks += 1
        self.tables = copy.deepcopy(self.committed)

    def close(self):
        return None


class FakeWindowStore:
    def __init__(self, db):
        self.db = db

    def load(self, listing_id, range_start=None, range_end=None, only_available=False):
        rows = [
            row
            for row in self.db.tables["windows"]
            if row.listing_id == listing_id
            and _in_range(row, range_start, range_end)
            and (row.is_available or not only_available)
        ]
        return sorted(rows, key=lambda row: (row.start_at, row.id))

    def load_all(self, listing_id):
        return self.load(listing_id, only_available=True)

    def find_exact(self, listing_id, start_at, end_at):
        for row in self.load(listing_id):
            if row.start_at == start_at and row.end_at == end_at:
                return row
        return None

    def get(self, window_id):
        return next((row for row in self.db.tables["windows"] if row.id == window_id), None)

    def insert(self, window):
        return self.db.insert("windows", window)

    def update(self, window_id, fields):
        row = self.get(window_id)
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, value)
        return row

    def delete(self, window_id):
        self.db.tables["windows"] = [row for row in self.db.tables["windows"] if row.id != window_id]


class FakeReservationRepository:
    def __init__(self, db):
        self.db = db

    def load_active(self, listing_id, range_start=None, range_end=None):
        return [
            row
            for row in self.db.tables["bookings"]
            if row.listing_id == listing_id
            and row.status in ACTIVE_BOOKING_STATUSES
            and _in_range(row, range_start, range_end)
        ]


class FakeBlockRepository:
    def __init__(self, db):
        self.db = db

    def load(self, listing_id, range_start=None, range_end=None):
        return [
            row
            for row in self.db.tables["blocks"]
            if row.listing_id == listing_id and _in_range(row, range_start, range_end)
        ]

    def get(self, block_id):
        return next((row for row in self.db.tables["blocks"] if row.id == block_id), None)

    def insert(self, block):
        return self.db.insert("blocks", block)

    def delete(self, block_id):
        self.db.tables["blocks"] = [row for row in self.db.tables["blocks"] if row.id != block_id]


class FakeListingRepository:
    def __init__(self, db):
        self.db = db

    def get(self, listing_id):
        return next((row for row in self.db.tables["listings"] if row.id == listing_id), None)

    def lock(self, listing_id):
        self.db.locked.append(listing_id)
        return self.get(listing_id)

    def siblings(self, listing):
        if listing.operator_id is None:
            return []
        return [
            row
            for row in self.db.tables["listings"]
            if row.operator_id == listing.operator_id and row.id != listing.id
        ]


def build_fake_uow(db):
    uow = AvailabilityUnitOfWork(db)
    uow.windows = FakeWindowStore(db)
    uow.reservations = FakeReservationRepository(db)
    uow.blocks = FakeBlockRepository(db)
    uow.listings = FakeListingRepository(db)
    return uow


@pytest.fixture
def fake_db():
    return FakeSession()


@pytest.fixture
def uow(fake_db):
    return build_fake_uow(fake_db)


@pytest.fixture
def uow_factory():
    return build_fake_uow
