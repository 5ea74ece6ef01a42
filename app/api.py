import re
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from .assistant import AssistantDispatcher
from .authn import require_admin
from .db import get_db
from .errors import ValidationError
from .generation import TextGenerator, get_generator
from .media import classify_upload, read_upload, remove_upload, save_upload
from .models import BlockedDate, Booking, BusinessHours, GalleryItem, Service
from .reports import media_type_for
from .schemas import (
    AssistantRequest,
    BlockedDateCreate,
    BlockedDateOut,
    BookingCreate,
    BookingOut,
    BookingUpdate,
    BusinessHoursOut,
    BusinessHoursUpdate,
    GalleryItemOut,
    ServiceCreate,
    ServiceOut,
    ServiceUpdate,
)
from .services import (
    block_date,
    create_booking,
    create_gallery_item,
    create_service,
    delete_booking,
    delete_gallery_item,
    delete_service,
    get_availability,
    list_blocked_dates,
    list_bookings,
    list_business_hours,
    list_gallery_items,
    list_services,
    unblock_date,
    update_booking,
    update_business_hours,
    update_service,
)

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])
public_router = APIRouter(prefix="/api")

_UNSAFE_FILENAME_RE = re.compile(r'[^A-Za-z0-9._-]')


def _to_service_out(s: Service) -> ServiceOut:
    return ServiceOut(
        id=s.id,
        name=s.name,
        description=s.description or "",
        duration_minutes=int(s.duration_minutes),
        price=float(s.price) if s.price is not None else None,
        show_price=bool(s.show_price),
        is_active=bool(s.is_active),
        display_order=int(s.display_order or 0),
    )


def _to_hours_out(h: BusinessHours) -> BusinessHoursOut:
    return BusinessHoursOut(
        day_of_week=h.day_of_week,
        is_open=bool(h.is_open),
        open_time=h.open_time.strftime("%H:%M") if h.open_time else None,
        close_time=h.close_time.strftime("%H:%M") if h.close_time else None,
    )


def _to_blocked_out(b: BlockedDate) -> BlockedDateOut:
    return BlockedDateOut(id=b.id, date=b.blocked_on, reason=b.reason)


def _to_booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        id=b.id,
        customer_name=b.customer_name,
        customer_email=b.customer_email,
        customer_phone=b.customer_phone,
        service_ids=list(b.service_ids or []),
        booking_date=b.booking_date,
        booking_time=b.booking_time.strftime("%H:%M"),
        total_duration=int(b.total_duration),
        total_price=float(b.total_price or 0),
        payment_method=b.payment_method,
        payment_status=b.payment_status,
        status=b.status,
        notes=b.notes or "",
        created_at=b.created_at,
    )


def _to_gallery_out(g: GalleryItem) -> GalleryItemOut:
    return GalleryItemOut(
        id=g.id,
        filename=g.filename,
        original_name=g.original_name,
        file_type=g.file_type,
        file_size=g.file_size,
        caption=g.caption or "",
        category=g.category or "general",
        is_featured=bool(g.is_featured),
        display_order=int(g.display_order or 0),
        created_at=g.created_at,
    )


# Public


@public_router.get("/services", response_model=List[ServiceOut])
def get_active_services(db: Session = Depends(get_db)):
    return [_to_service_out(s) for s in list_services(db, active_only=True)]


@public_router.get("/business-hours", response_model=List[BusinessHoursOut])
def get_business_hours(db: Session = Depends(get_db)):
    return [_to_hours_out(h) for h in list_business_hours(db)]


@public_router.get("/availability/{day}")
def get_day_availability(day: date, db: Session = Depends(get_db)):
    return get_availability(db, day).as_dict()


@public_router.post("/bookings")
def add_booking(payload: BookingCreate, db: Session = Depends(get_db)):
    booking = create_booking(
        db=db,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        service_ids=payload.service_ids,
        booking_date=payload.booking_date,
        booking_time=payload.booking_time,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )
    return {"success": True, "message": "Booking created successfully", "booking": _to_booking_out(booking)}


@public_router.get("/gallery", response_model=List[GalleryItemOut])
def get_gallery(db: Session = Depends(get_db)):
    return [_to_gallery_out(g) for g in list_gallery_items(db)]


# Admin: bookings


@router.get("/bookings", response_model=List[BookingOut])
def admin_list_bookings(db: Session = Depends(get_db)):
    return [_to_booking_out(b) for b in list_bookings(db)]


@router.patch("/bookings/{booking_id}")
def admin_update_booking(booking_id: int, payload: BookingUpdate, db: Session = Depends(get_db)):
    booking = update_booking(db, booking_id, status=payload.status, payment_status=payload.payment_status)
    return {"success": True, "message": "Booking updated successfully", "booking": _to_booking_out(booking)}


@router.delete("/bookings/{booking_id}")
def admin_delete_booking(booking_id: int, db: Session = Depends(get_db)):
    delete_booking(db, booking_id)
    return {"success": True, "message": "Booking deleted successfully"}


# Admin: hours and blocked dates


@router.put("/business-hours/{day_of_week}")
def admin_update_business_hours(day_of_week: int, payload: BusinessHoursUpdate, db: Session = Depends(get_db)):
    hours = update_business_hours(db, day_of_week, payload.is_open, payload.open_time, payload.close_time)
    return {"success": True, "message": "Business hours updated", "hours": _to_hours_out(hours)}


@router.get("/blocked-dates", response_model=List[BlockedDateOut])
def admin_list_blocked_dates(db: Session = Depends(get_db)):
    return [_to_blocked_out(b) for b in list_blocked_dates(db)]


@router.post("/blocked-dates")
def admin_block_date(payload: BlockedDateCreate, db: Session = Depends(get_db)):
    if payload.day is None:
        raise ValidationError("Date is required")
    row = block_date(db, payload.day, payload.reason)
    return {"success": True, "message": "Date blocked successfully", "blocked_date": _to_blocked_out(row)}


@router.delete("/blocked-dates/{day}")
def admin_unblock_date(day: date, db: Session = Depends(get_db)):
    unblock_date(db, day)
    return {"success": True, "message": "Date unblocked successfully"}


# Admin: services


@router.get("/services", response_model=List[ServiceOut])
def admin_list_services(db: Session = Depends(get_db)):
    return [_to_service_out(s) for s in list_services(db)]


@router.post("/services")
def admin_create_service(payload: ServiceCreate, db: Session = Depends(get_db)):
    service = create_service(
        db,
        name=payload.name or "",
        duration_minutes=payload.duration_minutes or 0,
        description=payload.description,
        price=payload.price,
        show_price=payload.show_price is not False,
    )
    return {"success": True, "message": "Service created successfully", "service": _to_service_out(service)}


@router.put("/services/{service_id}")
def admin_update_service(service_id: int, payload: ServiceUpdate, db: Session = Depends(get_db)):
    service = update_service(db, service_id, **payload.model_dump(exclude_none=True))
    return {"success": True, "message": "Service updated successfully", "service": _to_service_out(service)}


@router.delete("/services/{service_id}")
def admin_delete_service(service_id: int, db: Session = Depends(get_db)):
    delete_service(db, service_id)
    return {"success": True, "message": "Service deleted successfully"}


# Admin: gallery


@router.post("/gallery/upload")
async def admin_upload_gallery_item(
    file: UploadFile | None = File(default=None),
    caption: str | None = Form(default=None),
    category: str | None = Form(default=None),
    db: Session = Depends(get_db),
):
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    file_type = classify_upload(file.filename, file.content_type)
    content = await read_upload(file)
    filename = save_upload(file.filename, content)
    item = create_gallery_item(
        db,
        filename=filename,
        original_name=file.filename,
        file_type=file_type,
        file_size=len(content),
        caption=caption,
        category=category,
    )
    return {"success": True, "message": "File uploaded successfully", "file": _to_gallery_out(item)}


@router.delete("/gallery/{item_id}")
def admin_delete_gallery_item(item_id: int, db: Session = Depends(get_db)):
    filename = delete_gallery_item(db, item_id)
    remove_upload(filename)
    return {"success": True, "message": "File deleted successfully"}


# Admin: assistant


@router.post("/ai-assistant")
def admin_ai_assistant(
    payload: AssistantRequest,
    db: Session = Depends(get_db),
    generator: TextGenerator = Depends(get_generator),
):
    return AssistantDispatcher(db, generator).ask(payload.question or "").as_dict()


@router.get("/download-report")
def admin_download_report(
    data: str = Query(default=""),
    filename: str = Query(default="report.csv"),
):
    safe_name = _UNSAFE_FILENAME_RE.sub("_", filename.strip()) or "report.csv"
    return Response(
        content=data,
        media_type=media_type_for(safe_name),
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )
