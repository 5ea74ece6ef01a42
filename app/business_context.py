"""
Read-only business metrics digest handed to the assistant.

Built fresh on every assistant call. Counts and sums run as SQL aggregates;
rollups that need the `service_ids` list (popularity, customers, weekday
trends) are folded in Python over the non-cancelled bookings.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .core.availability import day_of_week
from .models import Booking, Service

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass
class BusinessContextSnapshot:
    current_date: date
    services: list[dict] = field(default_factory=list)
    statistics: dict = field(default_factory=dict)
    service_popularity: list[dict] = field(default_factory=list)
    upcoming_bookings: list[dict] = field(default_factory=list)
    repeat_customers: list[dict] = field(default_factory=list)
    all_customers: list[dict] = field(default_factory=list)
    day_of_week_trends: list[dict] = field(default_factory=list)

    @property
    def busiest_day(self) -> str:
        if not self.day_of_week_trends:
            return "N/A"
        return DAY_NAMES[self.day_of_week_trends[0]["day_of_week"]]

    def find_service(self, service_id) -> dict | None:
        return next((s for s in self.services if s["id"] == service_id), None)

    def find_customer(self, email: str) -> dict | None:
        wanted = (email or "").strip().lower()
        return next((c for c in self.all_customers if c["customer_email"].lower() == wanted), None)


def _growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0
    return round((current - previous) / previous * 100, 1)


def _count(db: Session, *criteria) -> int:
    return int(db.execute(select(func.count(Booking.id)).where(*criteria)).scalar_one())


def _revenue(db: Session, *criteria) -> float:
    total = db.execute(
        select(func.coalesce(func.sum(Booking.total_price), 0)).where(Booking.status != "cancelled", *criteria)
    ).scalar_one()
    return float(total)


def _service_row(s: Service) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "price": float(s.price) if s.price is not None else None,
        "duration_minutes": int(s.duration_minutes),
        "is_active": bool(s.is_active),
    }


def _customer_rollup(bookings: list[Booking]) -> list[dict]:
    grouped: dict[str, list[Booking]] = defaultdict(list)
    for b in bookings:
        grouped[b.customer_email.strip().lower()].append(b)

    customers = []
    for rows in grouped.values():
        rows.sort(key=lambda b: (b.booking_date, b.booking_time), reverse=True)
        latest = rows[0]
        customers.append(
            {
                "customer_email": latest.customer_email,
                "customer_name": latest.customer_name,
                "customer_phone": latest.customer_phone,
                "booking_count": len(rows),
                "total_spent": round(sum(float(b.total_price or 0) for b in rows), 2),
                "first_booking": rows[-1].booking_date.isoformat(),
                "last_booking": latest.booking_date.isoformat(),
                "booking_dates": [b.booking_date.isoformat() for b in rows],
            }
        )
    customers.sort(key=lambda c: c["last_booking"], reverse=True)
    return customers


def build_business_context(db: Session, today: date | None = None) -> BusinessContextSnapshot:
    today = today or date.today()
    week_ago = today - timedelta(days=7)
    month_ago = today - timedelta(days=30)
    two_months_ago = today - timedelta(days=60)
    year_ago = today - timedelta(days=365)

    services = db.execute(select(Service).order_by(Service.display_order.asc(), Service.id.asc())).scalars().all()
    live = db.execute(select(Booking).where(Booking.status != "cancelled")).scalars().all()

    month_bookings = _count(db, Booking.booking_date >= month_ago)
    last_month_bookings = _count(db, Booking.booking_date >= two_months_ago, Booking.booking_date < month_ago)
    month_revenue = _revenue(db, Booking.booking_date >= month_ago)
    last_month_revenue = _revenue(db, Booking.booking_date >= two_months_ago, Booking.booking_date < month_ago)

    pending_count, pending_amount = db.execute(
        select(func.count(Booking.id), func.coalesce(func.sum(Booking.total_price), 0)).where(
            Booking.payment_status == "pending", Booking.status != "cancelled"
        )
    ).one()

    popularity = []
    for s in services:
        count = sum(1 for b in live if s.id in (b.service_ids or []))
        popularity.append(
            {
                "id": s.id,
                "name": s.name,
                "price": float(s.price) if s.price is not None else None,
                "booking_count": count,
                "total_revenue": round(count * float(s.price or 0), 2),
            }
        )
    popularity.sort(key=lambda row: row["booking_count"], reverse=True)

    upcoming = db.execute(
        select(Booking)
        .where(Booking.booking_date >= today, Booking.status == "confirmed")
        .order_by(Booking.booking_date.asc(), Booking.booking_time.asc())
        .limit(10)
    ).scalars().all()

    all_customers = _customer_rollup(list(live))
    repeat_customers = sorted(
        (c for c in all_customers if c["booking_count"] > 1),
        key=lambda c: c["booking_count"],
        reverse=True,
    )[:20]

    weekday_counts: dict[int, int] = defaultdict(int)
    for b in live:
        if b.booking_date >= month_ago:
            weekday_counts[day_of_week(b.booking_date)] += 1
    trends = [
        {"day_of_week": day, "booking_count": count}
        for day, count in sorted(weekday_counts.items(), key=lambda item: item[1], reverse=True)
    ]

    statistics = {
        "total_bookings": _count(db),
        "today_bookings": _count(db, Booking.booking_date == today),
        "week_bookings": _count(db, Booking.booking_date >= week_ago),
        "month_bookings": month_bookings,
        "last_month_bookings": last_month_bookings,
        "booking_growth": _growth(month_bookings, last_month_bookings),
        "year_bookings": _count(db, Booking.booking_date >= year_ago),
        "total_revenue": _revenue(db),
        "month_revenue": month_revenue,
        "last_month_revenue": last_month_revenue,
        "revenue_growth": _growth(month_revenue, last_month_revenue),
        "year_revenue": _revenue(db, Booking.booking_date >= year_ago),
        "pending_payments_count": int(pending_count),
        "pending_payments_amount": float(pending_amount),
        "repeat_customer_count": len(repeat_customers),
        "total_customer_count": len(all_customers),
    }

    return BusinessContextSnapshot(
        current_date=today,
        services=[_service_row(s) for s in services],
        statistics=statistics,
        service_popularity=popularity,
        upcoming_bookings=[
            {
                "date": b.booking_date.isoformat(),
                "time": b.booking_time.strftime("%H:%M"),
                "customer": b.customer_name,
                "price": float(b.total_price or 0),
            }
            for b in upcoming
        ],
        repeat_customers=repeat_customers,
        all_customers=all_customers,
        day_of_week_trends=trends,
    )
