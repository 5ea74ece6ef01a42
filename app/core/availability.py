from dataclasses import dataclass, field
from datetime import date, time

SLOT_MINUTES = 30
CLOSED_REASON = "Closed on this day"
BLOCKED_REASON = "Date unavailable"


@dataclass(frozen=True)
class Slot:
    time: str
    available: bool


@dataclass
class AvailabilityResult:
    date: date
    available: bool
    reason: str | None = None
    slots: list[Slot] = field(default_factory=list)

    def as_dict(self) -> dict:
        if not self.available:
            return {"available": False, "reason": self.reason}
        return {
            "available": True,
            "date": self.date.isoformat(),
            "slots": [{"time": s.time, "available": s.available} for s in self.slots],
        }


def day_of_week(day: date) -> int:
    """Stored weekday convention: 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def to_minutes(value: time | str) -> int:
    if isinstance(value, str):
        parts = value.split(":")
        return int(parts[0]) * 60 + int(parts[1])
    return value.hour * 60 + value.minute


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def generate_slot_starts(open_time: time | str, close_time: time | str) -> list[str]:
    """Half-hour boundaries b with open <= b < close, ascending."""
    open_min = to_minutes(open_time)
    close_min = to_minutes(close_time)
    first = -(-open_min // SLOT_MINUTES) * SLOT_MINUTES
    # A slot may start right before closing and run past it; durations are not checked here.
    return [format_minutes(m) for m in range(first, close_min, SLOT_MINUTES)]


def compute_availability(day: date, business_hours, blocked_dates, existing_bookings) -> AvailabilityResult:
    for blocked in blocked_dates:
        if blocked.blocked_on == day:
            return AvailabilityResult(date=day, available=False, reason=blocked.reason or BLOCKED_REASON)

    weekday = day_of_week(day)
    hours = next((h for h in business_hours if h.day_of_week == weekday), None)
    if hours is None or not hours.is_open:
        return AvailabilityResult(date=day, available=False, reason=CLOSED_REASON)

    # Exact start-time match only: a long booking does not block the slots it runs into.
    taken = {
        format_minutes(to_minutes(b.booking_time))
        for b in existing_bookings
        if b.status != "cancelled" and b.booking_date == day
    }
    slots = [Slot(time=start, available=start not in taken) for start in generate_slot_starts(hours.open_time, hours.close_time)]
    return AvailabilityResult(date=day, available=True, slots=slots)


def is_slot_taken(requested: time | str, existing_bookings) -> bool:
    wanted = to_minutes(requested)
    return any(b.status != "cancelled" and to_minutes(b.booking_time) == wanted for b in existing_bookings)
