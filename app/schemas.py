from datetime import date, datetime, time

from pydantic import BaseModel, Field, validator


class ServiceOut(BaseModel):
    id: int
    name: str
    description: str = ""
    duration_minutes: int
    price: float | None = None
    show_price: bool = True
    is_active: bool = True
    display_order: int = 0


class ServiceCreate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=5, le=1440)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    show_price: bool | None = None


class ServiceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=5, le=1440)
    price: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    show_price: bool | None = None
    is_active: bool | None = None
    display_order: int | None = None


class BusinessHoursOut(BaseModel):
    day_of_week: int
    is_open: bool
    open_time: str | None = None
    close_time: str | None = None


class BusinessHoursUpdate(BaseModel):
    is_open: bool
    open_time: time | None = None
    close_time: time | None = None


class BlockedDateCreate(BaseModel):
    day: date | None = Field(default=None, alias="date")
    reason: str | None = Field(default=None, max_length=255)


class BlockedDateOut(BaseModel):
    id: int
    date: date
    reason: str | None = None


class BookingCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_email: str = Field(min_length=3, max_length=255)
    customer_phone: str = Field(min_length=3, max_length=50)
    service_ids: list[int]
    booking_date: date
    booking_time: time
    payment_method: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=2000)

    @validator("customer_name", "customer_phone")
    @classmethod
    def strip_required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @validator("customer_email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("invalid email address")
        return value


class BookingOut(BaseModel):
    id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    service_ids: list[int]
    booking_date: date
    booking_time: str
    total_duration: int
    total_price: float
    payment_method: str
    payment_status: str
    status: str
    notes: str = ""
    created_at: datetime


class BookingUpdate(BaseModel):
    status: str | None = Field(default=None, max_length=50)
    payment_status: str | None = Field(default=None, max_length=50)


class GalleryItemOut(BaseModel):
    id: int
    filename: str
    original_name: str
    file_type: str
    file_size: int | None = None
    caption: str = ""
    category: str = "general"
    is_featured: bool = False
    display_order: int = 0
    created_at: datetime


class LoginRequest(BaseModel):
    password: str | None = None


class AssistantRequest(BaseModel):
    question: str | None = Field(default=None, max_length=4000)
