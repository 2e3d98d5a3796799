"""Booking allocation under the room-interval-overlap invariant.

Bookings occupy the half-open interval ``[check_in, check_out)``; a booking
ending exactly when another begins does not overlap it. The same predicate
backs both the write-side check and the availability query.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal
from app.clock import parse_instant
from app.db import transaction
from app.errors import Conflict, InvalidInput, NotFound
from app.models import Booking, Guest, Payment, Room

logger = logging.getLogger(__name__)

_JOINS = (selectinload(Booking.guest), selectinload(Booking.room), selectinload(Booking.payment))


def overlaps(check_in: datetime, check_out: datetime):
    return and_(Booking.check_in < check_out, Booking.check_out > check_in)


def _validate_range(check_in: datetime, check_out: datetime) -> None:
    if check_in >= check_out:
        raise InvalidInput("checkIn must be before checkOut")


def _lock_room(db: Session, room_id: int) -> Room:
    room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
    if room is None:
        raise NotFound("Room not found")
    return room


def _assert_no_overlap(
    db: Session, room_id: int, check_in: datetime, check_out: datetime,
    exclude_id: Optional[int] = None,
) -> None:
    query = select(Booking.id).where(Booking.room_id == room_id, overlaps(check_in, check_out))
    if exclude_id is not None:
        query = query.where(Booking.id != exclude_id)
    clash = db.execute(query.limit(1)).scalar_one_or_none()
    if clash is not None:
        raise Conflict("Room is already booked in this date range")


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.execute(
        select(Booking).where(Booking.id == booking_id).options(*_JOINS)
    ).scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def create_booking(
    db: Session,
    actor: Principal,
    guest_id: int,
    room_id: int,
    check_in: str | datetime,
    check_out: str | datetime,
) -> Booking:
    start = parse_instant(check_in, "checkIn")
    end = parse_instant(check_out, "checkOut")
    _validate_range(start, end)

    with transaction(db):
        _lock_room(db, room_id)
        if db.get(Guest, guest_id) is None:
            raise NotFound("Guest not found")
        _assert_no_overlap(db, room_id, start, end)
        booking = Booking(guest_id=guest_id, room_id=room_id, check_in=start, check_out=end)
        db.add(booking)
        db.flush()
        booking_id = booking.id

    logger.info("booking %s created for room %s by %s", booking_id, room_id, actor.label)
    return get_booking(db, booking_id)


def update_booking(db: Session, actor: Principal, booking_id: int, patch: dict) -> Booking:
    with transaction(db):
        existing = db.get(Booking, booking_id)
        if existing is None:
            raise NotFound("Booking not found")

        room_id = patch.get("room_id") or existing.room_id
        guest_id = patch.get("guest_id") or existing.guest_id
        check_in = (
            parse_instant(patch["check_in"], "checkIn") if patch.get("check_in") else existing.check_in
        )
        check_out = (
            parse_instant(patch["check_out"], "checkOut")
            if patch.get("check_out")
            else existing.check_out
        )
        _validate_range(check_in, check_out)

        _lock_room(db, room_id)
        if guest_id != existing.guest_id and db.get(Guest, guest_id) is None:
            raise NotFound("Guest not found")
        _assert_no_overlap(db, room_id, check_in, check_out, exclude_id=booking_id)

        existing.guest_id = guest_id
        existing.room_id = room_id
        existing.check_in = check_in
        existing.check_out = check_out

    logger.info("booking %s updated by %s", booking_id, actor.label)
    return get_booking(db, booking_id)


def delete_booking(db: Session, actor: Principal, booking_id: int) -> None:
    with transaction(db):
        booking = db.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        db.delete(booking)
    logger.info("booking %s deleted by %s", booking_id, actor.label)


def list_bookings(db: Session) -> list[Booking]:
    return list(db.execute(select(Booking).options(*_JOINS).order_by(Booking.id.desc())).scalars())


def list_unpaid_bookings(db: Session) -> list[Booking]:
    """Bookings with no payment, or whose payment is not ``paid``."""
    query = (
        select(Booking)
        .outerjoin(Payment, Payment.booking_id == Booking.id)
        .where(or_(Payment.id.is_(None), Payment.status != "paid"))
        .options(*_JOINS)
        .order_by(Booking.id.desc())
    )
    return list(db.execute(query).scalars())


def find_available_rooms(
    db: Session, check_in: str | datetime, check_out: str | datetime
) -> list[Room]:
    start = parse_instant(check_in, "checkIn")
    end = parse_instant(check_out, "checkOut")
    _validate_range(start, end)
    booked = exists().where(Booking.room_id == Room.id, overlaps(start, end))
    return list(db.execute(select(Room).where(~booked).order_by(Room.number)).scalars())
