"""On-demand operational reporting over bookings, payments and inventory.

Days are local calendar days at the configured UTC offset. A range
``start..end`` covers ``[start of start-day, start of the day after end)``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from app.clock import as_utc, day_window_for, local_date, night_count, utcnow
from app.config import settings
from app.errors import InvalidInput
from app.models import Booking, Guest, InventoryItem, Laundry, Payment, Room, Staff

MAX_SERIES_DAYS = 31


def _offset(utc_offset_minutes: Optional[int]) -> int:
    return settings.local_utc_offset_minutes if utc_offset_minutes is None else utc_offset_minutes


def _count(db: Session, model, *criteria) -> int:
    return db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


def _paid_revenue(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Decimal:
    query = select(func.sum(Payment.amount)).where(Payment.status == "paid")
    if start is not None:
        query = query.where(Payment.created_at >= start, Payment.created_at < end)
    total = db.execute(query).scalar_one_or_none()
    return Decimal(str(total)) if total is not None else Decimal("0")


def _unpaid_bookings(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Booking]:
    query = (
        select(Booking)
        .outerjoin(Payment, Payment.booking_id == Booking.id)
        .where(or_(Payment.id.is_(None), Payment.status != "paid"))
        .options(selectinload(Booking.room))
    )
    if start is not None:
        # touches the range: arrives in it, leaves in it, or spans it
        query = query.where(Booking.check_in < end, Booking.check_out >= start)
    return list(db.execute(query).scalars())


def overview(
    db: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[datetime] = None,
    utc_offset_minutes: Optional[int] = None,
) -> dict:
    now = as_utc(now) if now else utcnow()
    offset = _offset(utc_offset_minutes)
    lifetime = start is None and end is None

    if lifetime:
        kind = "lifetime"
        range_start = range_end = None
        as_of = now
    else:
        today = local_date(now, offset)
        start = start or today
        end = end or today
        if start > end:
            raise InvalidInput("start must not be after end")
        kind = "today" if start == today and end == today else "custom"
        range_start = day_window_for(start, offset).day_start
        range_end = day_window_for(end, offset).day_end
        as_of = range_end - timedelta(microseconds=1)

    total_rooms = _count(db, Room)
    occupied = _count(db, Booking, Booking.check_in <= as_of, Booking.check_out > as_of)
    occupancy_rate = round(occupied / total_rooms * 100) if total_rooms else 0

    if lifetime:
        arrivals = departures = _count(db, Booking)
    else:
        arrivals = _count(db, Booking, Booking.check_in >= range_start, Booking.check_in < range_end)
        departures = _count(db, Booking, Booking.check_out >= range_start, Booking.check_out < range_end)

    unpaid = _unpaid_bookings(db, range_start, range_end)
    unpaid_total = sum(
        (night_count(b.check_in, b.check_out) * Decimal(b.room.price) for b in unpaid),
        Decimal("0"),
    )

    return {
        "range": {
            "kind": kind,
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
            "as_of": as_of.isoformat(),
        },
        "guests": _count(db, Guest),
        "bookings": _count(db, Booking),
        "rooms": total_rooms,
        "payments": _count(db, Payment),
        "staff": _count(db, Staff),
        "inventory": _count(db, InventoryItem),
        "laundry": _count(db, Laundry),
        "revenue": _paid_revenue(db, range_start, range_end),
        "occupied_rooms": occupied,
        "occupancy_rate": occupancy_rate,
        "arrivals": arrivals,
        "departures": departures,
        "unpaid_bookings_count": len(unpaid),
        "unpaid_total": unpaid_total,
        "low_stock_count": _count(db, InventoryItem, InventoryItem.quantity <= InventoryItem.min_threshold),
    }


def series(
    db: Session,
    days: int = 7,
    now: Optional[datetime] = None,
    utc_offset_minutes: Optional[int] = None,
) -> list[dict]:
    """Daily paid revenue and arrivals for the last ``days`` local days, oldest first."""
    days = max(1, min(MAX_SERIES_DAYS, days))
    now = as_utc(now) if now else utcnow()
    offset = _offset(utc_offset_minutes)
    today = local_date(now, offset)

    points = []
    for back in range(days - 1, -1, -1):
        window = day_window_for(today - timedelta(days=back), offset)
        points.append(
            {
                "date": window.day_key,
                "revenue": _paid_revenue(db, window.day_start, window.day_end),
                "check_ins": _count(
                    db, Booking, Booking.check_in >= window.day_start, Booking.check_in < window.day_end
                ),
            }
        )
    return points
