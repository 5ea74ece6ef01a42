import math
from datetime import date, time

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .core.availability import AvailabilityResult, compute_availability, is_slot_taken
from .errors import (
    DuplicateBlock,
    InvalidSelection,
    NotFoundError,
    SlotConflict,
    ValidationError,
)
from .models import (
    BOOKING_STATUSES,
    PAYMENT_STATUSES,
    BlockedDate,
    Booking,
    BusinessHours,
    GalleryItem,
    Service,
)

log = structlog.get_logger("bizops.services")

# Largest value a Numeric(10, 2) column holds.
MAX_PRICE = 99_999_999.99

SERVICE_UPDATABLE_FIELDS = ("name", "description", "duration_minutes", "price", "show_price", "is_active", "display_order")


# Services


def list_services(db: Session, active_only: bool = False) -> list[Service]:
    q = select(Service)
    if active_only:
        q = q.where(Service.is_active.is_(True))
    return list(db.execute(q.order_by(Service.display_order.asc(), Service.id.asc())).scalars().all())


def get_service(db: Session, service_id: int) -> Service | None:
    return db.get(Service, service_id)


def create_service(
    db: Session,
    name: str,
    duration_minutes: int,
    description: str | None = None,
    price: float | None = None,
    show_price: bool = True,
) -> Service:
    if not (name or "").strip() or not duration_minutes:
        raise ValidationError("Name and duration are required")
    service = Service(
        name=name.strip(),
        description=description or "",
        duration_minutes=int(duration_minutes),
        price=price,
        show_price=show_price is not False,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def update_service(db: Session, service_id: int, **fields) -> Service:
    service = get_service(db, service_id)
    if not service:
        raise NotFoundError("Service not found")
    for key in SERVICE_UPDATABLE_FIELDS:
        value = fields.get(key)
        if value is not None:
            setattr(service, key, value)
    db.commit()
    db.refresh(service)
    return service


def update_service_price(db: Session, service_id: int, price: float) -> Service:
    value = float(price) if price is not None else math.nan
    if not math.isfinite(value) or value < 0 or value > MAX_PRICE:
        raise ValidationError("price must be a non-negative number")
    return update_service(db, service_id, price=value)


def delete_service(db: Session, service_id: int) -> None:
    service = get_service(db, service_id)
    if not service:
        raise NotFoundError("Service not found")
    db.delete(service)
    db.commit()


# Business hours and blocked dates


def list_business_hours(db: Session) -> list[BusinessHours]:
    return list(db.execute(select(BusinessHours).order_by(BusinessHours.day_of_week.asc())).scalars().all())


def update_business_hours(
    db: Session,
    day_of_week: int,
    is_open: bool,
    open_time: time | None,
    close_time: time | None,
) -> BusinessHours:
    row = db.execute(select(BusinessHours).where(BusinessHours.day_of_week == day_of_week)).scalar_one_or_none()
    if not row:
        raise NotFoundError("Business hours not found")
    if is_open and (open_time is None or close_time is None):
        raise ValidationError("open_time and close_time are required when open")
    if is_open and open_time >= close_time:
        raise ValidationError("open_time must be before close_time")
    row.is_open = bool(is_open)
    row.open_time = open_time if is_open else None
    row.close_time = close_time if is_open else None
    db.commit()
    db.refresh(row)
    return row


def list_blocked_dates(db: Session, day: date | None = None) -> list[BlockedDate]:
    q = select(BlockedDate)
    if day is not None:
        q = q.where(BlockedDate.blocked_on == day)
    return list(db.execute(q.order_by(BlockedDate.blocked_on.asc())).scalars().all())


def block_date(db: Session, day: date, reason: str | None = None) -> BlockedDate:
    row = BlockedDate(blocked_on=day, reason=(reason or "").strip() or "Unavailable")
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        log.info("block_date_duplicate", date=day.isoformat())
        raise DuplicateBlock()
    db.refresh(row)
    return row


def unblock_date(db: Session, day: date) -> None:
    row = db.execute(select(BlockedDate).where(BlockedDate.blocked_on == day)).scalar_one_or_none()
    if not row:
        raise NotFoundError("Blocked date not found")
    db.delete(row)
    db.commit()


# Bookings


def list_bookings(db: Session, day: date | None = None, include_cancelled: bool = True) -> list[Booking]:
    q = select(Booking)
    if day is not None:
        q = q.where(Booking.booking_date == day)
    if not include_cancelled:
        q = q.where(Booking.status != "cancelled")
    return list(
        db.execute(q.order_by(Booking.booking_date.desc(), Booking.booking_time.desc())).scalars().all()
    )


def get_availability(db: Session, day: date) -> AvailabilityResult:
    return compute_availability(
        day,
        list_business_hours(db),
        list_blocked_dates(db, day),
        list_bookings(db, day, include_cancelled=False),
    )


def slot_is_taken(db: Session, day: date, at: time) -> bool:
    return is_slot_taken(at, list_bookings(db, day, include_cancelled=False))


def create_booking(
    db: Session,
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    service_ids: list[int],
    booking_date: date,
    booking_time: time,
    payment_method: str | None = None,
    notes: str | None = None,
    status: str = "confirmed",
    payment_status: str = "pending",
) -> Booking:
    if not service_ids:
        raise InvalidSelection()
    services = db.execute(select(Service).where(Service.id.in_(service_ids))).scalars().all()
    if not services:
        raise InvalidSelection()

    total_duration = sum(int(s.duration_minutes) for s in services)
    total_price = sum(float(s.price or 0) for s in services)

    if slot_is_taken(db, booking_date, booking_time):
        raise SlotConflict()

    booking = Booking(
        customer_name=customer_name.strip(),
        customer_email=customer_email.strip(),
        customer_phone=customer_phone.strip(),
        service_ids=[int(s) for s in service_ids],
        booking_date=booking_date,
        booking_time=booking_time.replace(second=0, microsecond=0),
        total_duration=total_duration,
        total_price=total_price,
        payment_method=payment_method or "cash",
        payment_status=payment_status,
        status=status,
        notes=notes or "",
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race to a concurrent writer for the same start time.
        db.rollback()
        log.info("booking_slot_conflict", date=booking_date.isoformat(), time=booking_time.isoformat())
        raise SlotConflict()
    db.refresh(booking)
    log.info("booking_created", booking_id=booking.id, date=booking_date.isoformat(), total_price=total_price)
    return booking


def update_booking(
    db: Session,
    booking_id: int,
    status: str | None = None,
    payment_status: str | None = None,
) -> Booking:
    if not status and not payment_status:
        raise ValidationError("No updates provided")
    if status and status not in BOOKING_STATUSES:
        raise ValidationError("Invalid booking status")
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise ValidationError("Invalid payment status")

    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if status:
        booking.status = status
    if payment_status:
        booking.payment_status = payment_status
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SlotConflict()
    db.refresh(booking)
    return booking


def delete_booking(db: Session, booking_id: int) -> None:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    db.delete(booking)
    db.commit()


# Gallery


def list_gallery_items(db: Session) -> list[GalleryItem]:
    return list(
        db.execute(
            select(GalleryItem).order_by(GalleryItem.display_order.asc(), GalleryItem.created_at.desc())
        ).scalars().all()
    )


def create_gallery_item(
    db: Session,
    filename: str,
    original_name: str,
    file_type: str,
    file_size: int | None,
    caption: str | None = None,
    category: str | None = None,
) -> GalleryItem:
    item = GalleryItem(
        filename=filename,
        original_name=original_name,
        file_type=file_type,
        file_size=file_size,
        caption=caption or "",
        category=category or "general",
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def delete_gallery_item(db: Session, item_id: int) -> str:
    item = db.get(GalleryItem, item_id)
    if not item:
        raise NotFoundError("File not found")
    filename = item.filename
    db.delete(item)
    db.commit()
    return filename
