from datetime import time

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=connect_args)

if settings.DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


DEFAULT_SERVICES = (
    ("Interior Detailing", "Complete interior cleaning and protection", 120, 150.00, 1),
    ("Exterior Detailing", "Full exterior wash, polish, and wax", 90, 120.00, 2),
    ("Ceramic Coating", "Professional ceramic coating protection", 240, 500.00, 3),
)

# day_of_week: 0 = Sunday ... 6 = Saturday
DEFAULT_BUSINESS_HOURS = (
    (0, False, None, None),
    (1, True, time(9, 0), time(17, 0)),
    (2, True, time(9, 0), time(17, 0)),
    (3, True, time(9, 0), time(17, 0)),
    (4, True, time(9, 0), time(17, 0)),
    (5, True, time(9, 0), time(17, 0)),
    (6, True, time(9, 0), time(15, 0)),
)


def seed_defaults(db: Session) -> None:
    from .models import BusinessHours, Service

    if db.execute(select(func.count(Service.id))).scalar_one() == 0:
        for name, description, duration, price, order in DEFAULT_SERVICES:
            db.add(
                Service(
                    name=name,
                    description=description,
                    duration_minutes=duration,
                    price=price,
                    display_order=order,
                )
            )

    if db.execute(select(func.count(BusinessHours.id))).scalar_one() == 0:
        for day, is_open, open_time, close_time in DEFAULT_BUSINESS_HOURS:
            db.add(
                BusinessHours(
                    day_of_week=day,
                    is_open=is_open,
                    open_time=open_time,
                    close_time=close_time,
                )
            )
    db.commit()


def init_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    if bool(settings.SEED_DEFAULTS):
        with SessionLocal() as db:
            seed_defaults(db)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
