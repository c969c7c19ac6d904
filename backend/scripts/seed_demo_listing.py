from datetime import datetime, timedelta

from app.db.models import AvailabilityWindow, Listing
from app.db.session import SessionLocal

DEMO_OPERATOR_ID = 900
DEMO_TITLES = ("Demo Studio A", "Demo Studio B")


def seed_demo_listings() -> None:
    session = SessionLocal()
    try:
        existing = (
            session.query(Listing)
            .filter(Listing.operator_id == DEMO_OPERATOR_ID)
            .order_by(Listing.id)
            .all()
        )
        if existing:
            ids = ", ".join(str(listing.id) for listing in existing)
            print(f"Demo listings already exist with ids={ids}")
            return

        listings = [
            Listing(
                host_id=1,
                operator_id=DEMO_OPERATOR_ID,
                title=title,
                booking_unit_type="hourly",
                slot_duration_minutes=60,
                min_advance_booking_hours=2,
                max_advance_booking_days=90,
            )
            for title in DEMO_TITLES
        ]
        session.add_all(listings)
        session.flush()

        tomorrow = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        for offset in range(7):
            day = tomorrow + timedelta(days=offset)
            session.add(
                AvailabilityWindow(
                    listing_id=listings[0].id,
                    start_at=day.replace(hour=9),
                    end_at=day.replace(hour=17),
                    is_available=True,
                    slot_type="regular",
                )
            )
        session.commit()
        print(f"Created demo listings with ids={', '.join(str(listing.id) for listing in listings)}")
    finally:
        session.close()


if __name__ == "__main__":
    seed_demo_listings()
