from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app import services
from app.business_context import build_business_context
from app.db import Base, seed_defaults
from app.reports import download_url, export_report_csv, finish_newsletter_html, media_type_for

TODAY = date(2030, 1, 15)


@pytest.fixture()
def db(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test_bizops_context.db'}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    session = testing_session_local()
    seed_defaults(session)
    try:
        yield session
    finally:
        session.close()


def _book(db, email, service_ids, day, at, name="Guest"):
    return services.create_booking(
        db,
        customer_name=name,
        customer_email=email,
        customer_phone="555-0199",
        service_ids=service_ids,
        booking_date=day,
        booking_time=at,
    )


def test_empty_database_snapshot(db):
    snapshot = build_business_context(db, today=TODAY)

    assert snapshot.statistics["total_bookings"] == 0
    assert snapshot.statistics["total_revenue"] == 0
    assert snapshot.statistics["booking_growth"] == 0
    assert snapshot.busiest_day == "N/A"
    assert [s["name"] for s in snapshot.services] == ["Interior Detailing", "Exterior Detailing", "Ceramic Coating"]
    assert snapshot.all_customers == []


def test_statistics_windows_and_growth(db):
    # previous 30-day window: one booking
    _book(db, "old@example.com", [2], date(2029, 12, 5), time(9, 0))
    # current window: two bookings, one of them cancelled
    _book(db, "amy@example.com", [1], date(2030, 1, 9), time(9, 0), name="Amy")
    cancelled = _book(db, "zed@example.com", [3], date(2030, 1, 10), time(9, 0))
    services.update_booking(db, cancelled.id, status="cancelled")
    _book(db, "amy@example.com", [1, 2], TODAY, time(13, 0), name="Amy")

    stats = build_business_context(db, today=TODAY).statistics

    assert stats["total_bookings"] == 4
    assert stats["today_bookings"] == 1
    assert stats["month_bookings"] == 3
    assert stats["last_month_bookings"] == 1
    assert stats["booking_growth"] == 200.0
    assert stats["month_revenue"] == 420.0
    assert stats["last_month_revenue"] == 120.0
    assert stats["revenue_growth"] == 250.0
    assert stats["total_revenue"] == 540.0
    assert stats["pending_payments_count"] == 3
    assert stats["pending_payments_amount"] == 540.0
    assert stats["repeat_customer_count"] == 1
    assert stats["total_customer_count"] == 2


def test_popularity_customers_and_trends(db):
    _book(db, "Amy@Example.com", [1], date(2030, 1, 7), time(9, 0), name="Amy")
    _book(db, "amy@example.com", [1, 3], date(2030, 1, 14), time(9, 0), name="Amy")
    _book(db, "ben@example.com", [1], date(2030, 1, 8), time(9, 0), name="Ben")
    _book(db, "ben@example.com", [2], date(2030, 1, 20), time(10, 0), name="Ben")

    snapshot = build_business_context(db, today=TODAY)

    top = snapshot.service_popularity[0]
    assert top["name"] == "Interior Detailing"
    assert top["booking_count"] == 3
    assert top["total_revenue"] == 450.0

    amy = snapshot.find_customer("AMY@example.com")
    assert amy["booking_count"] == 2
    assert amy["first_booking"] == "2030-01-07"
    assert amy["last_booking"] == "2030-01-14"
    assert amy["total_spent"] == 800.0

    assert snapshot.busiest_day == "Monday"
    assert snapshot.upcoming_bookings == [{"date": "2030-01-20", "time": "10:00", "customer": "Ben", "price": 120.0}]


def test_report_csv_layouts(db):
    _book(db, "amy@example.com", [1], date(2030, 1, 7), time(9, 0), name="Amy")
    snapshot = build_business_context(db, today=TODAY)

    bookings = export_report_csv("bookings", snapshot).splitlines()
    assert bookings[0] == "Period,Count"
    assert bookings[1] == "Total (All Time),1"

    service_rows = export_report_csv("services", snapshot).splitlines()
    assert service_rows[0] == "Service Name,Booking Count,Price,Duration (min),Total Revenue"
    assert service_rows[1] == "Interior Detailing,1,$150.00,120,$150.00"

    customers = export_report_csv("customers", snapshot).splitlines()
    assert customers[1] == "Amy,amy@example.com,555-0199,1,$150.00,2030-01-07,2030-01-07"

    with pytest.raises(ValueError):
        export_report_csv("weather", snapshot)


def test_report_helpers():
    assert download_url("a,b\n1,2\n", "x.csv") == "/api/admin/download-report?data=a%2Cb%0A1%2C2%0A&filename=x.csv"
    assert media_type_for("newsletter_1.html") == "text/html"
    assert media_type_for("revenue_report_1.csv") == "text/csv"

    full = "<!DOCTYPE html><html><body>hi</body></html>"
    assert finish_newsletter_html(f"```html\n{full}\n```") == full
    assert "<title>" in finish_newsletter_html("<p>hi</p>")
