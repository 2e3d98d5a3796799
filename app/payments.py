"""Payment dispatch over the three charge sources.

A payment settles exactly one of: a room stay (ROOM), a laundry order
(LAUNDRY), or an ad-hoc guest charge (DINING / OTHER). Each source has its
own authoritative price and its own duplicate rule, so each gets its own
branch rather than a shared "chargeable" abstraction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal
from app.clock import night_count
from app.db import transaction
from app.errors import Conflict, InvalidInput, NotFound
from app.models import PAYMENT_METHODS, PAYMENT_STATUSES, Booking, Guest, Laundry, Payment

logger = logging.getLogger(__name__)

_JOINS = (
    selectinload(Payment.booking).selectinload(Booking.guest),
    selectinload(Payment.booking).selectinload(Booking.room),
    selectinload(Payment.laundry).selectinload(Laundry.guest),
    selectinload(Payment.guest),
)


@dataclass
class Charge:
    method: str
    service_type: Optional[str] = None
    booking_id: Optional[int] = None
    laundry_id: Optional[int] = None
    guest_id: Optional[int] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    description: Optional[str] = None


def normalize_status(status: Optional[str]) -> str:
    """Canonical lower-case status; legacy ``Unpaid`` maps to ``unpaid``."""
    if status is None:
        return "paid"
    value = status.strip().lower()
    if value not in PAYMENT_STATUSES:
        raise InvalidInput(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")
    return value


def _validate_method(method: Optional[str]) -> str:
    if method not in PAYMENT_METHODS:
        raise InvalidInput(f"method must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def _amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise InvalidInput("Invalid amount") from None
    if not amount.is_finite():
        raise InvalidInput("Invalid amount")
    return amount


def resolve_service_type(charge: Charge) -> str:
    raw = charge.service_type or ("ROOM" if charge.booking_id else "OTHER")
    service_type = raw.strip().upper()
    if service_type not in ("ROOM", "LAUNDRY", "DINING"):
        return "OTHER"
    return service_type


def room_charge(booking: Booking) -> Decimal:
    return night_count(booking.check_in, booking.check_out) * Decimal(booking.room.price)


def _room_payment(db: Session, charge: Charge, amount: Optional[Decimal]) -> Payment:
    if not charge.booking_id:
        raise InvalidInput("bookingId is required for ROOM payments")
    booking = db.execute(
        select(Booking).where(Booking.id == charge.booking_id).with_for_update()
    ).scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    if booking.payment is not None:
        raise Conflict("Payment already exists for this booking")
    if amount is None:
        amount = room_charge(booking)
    if amount < 0:
        raise InvalidInput("Invalid amount")
    return Payment(
        booking_id=booking.id,
        guest_id=booking.guest_id,
        amount=amount,
        service_type="ROOM",
    )


def _laundry_payment(db: Session, charge: Charge, amount: Optional[Decimal]) -> Payment:
    if not charge.laundry_id:
        raise InvalidInput("laundryId is required for LAUNDRY payments")
    laundry = db.execute(
        select(Laundry).where(Laundry.id == charge.laundry_id).with_for_update()
    ).scalar_one_or_none()
    if laundry is None:
        raise NotFound("Laundry not found")
    if laundry.payment is not None:
        raise Conflict("Payment already exists for this laundry")
    if amount is None:
        amount = Decimal(laundry.price or 0)
    if amount < 0:
        raise InvalidInput("Invalid amount")
    return Payment(
        laundry_id=laundry.id,
        guest_id=laundry.guest_id,
        amount=amount,
        service_type="LAUNDRY",
    )


def _direct_payment(db: Session, service_type: str, charge: Charge, amount: Optional[Decimal]) -> Payment:
    if amount is None or amount <= 0:
        raise InvalidInput("Amount is required for non-room payments")
    if not charge.guest_id:
        raise InvalidInput("guestId is required for non-room payments")
    if db.get(Guest, charge.guest_id) is None:
        raise NotFound("Guest not found")
    return Payment(guest_id=charge.guest_id, amount=amount, service_type=service_type)


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.execute(
        select(Payment).where(Payment.id == payment_id).options(*_JOINS)
    ).scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment not found")
    return payment


def list_payments(db: Session) -> list[Payment]:
    return list(db.execute(select(Payment).options(*_JOINS).order_by(Payment.id.desc())).scalars())


def create_payment(db: Session, actor: Principal, charge: Charge) -> Payment:
    method = _validate_method(charge.method)
    status = normalize_status(charge.status)
    amount = _amount(charge.amount)
    service_type = resolve_service_type(charge)

    with transaction(db):
        if service_type == "ROOM":
            payment = _room_payment(db, charge, amount)
        elif service_type == "LAUNDRY":
            payment = _laundry_payment(db, charge, amount)
        else:
            payment = _direct_payment(db, service_type, charge, amount)
        payment.method = method
        payment.status = status
        payment.description = charge.description or None
        db.add(payment)
        db.flush()
        payment_id = payment.id

    logger.info(
        "payment %s created: %s %s for guest %s by %s",
        payment_id, service_type, payment.amount, payment.guest_id, actor.label,
    )
    return get_payment(db, payment_id)


def update_payment(db: Session, actor: Principal, payment_id: int, patch: dict) -> Payment:
    """Patch amount/method/status/description; source and guard are untouched."""
    with transaction(db):
        payment = db.get(Payment, payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        if patch.get("amount") is not None:
            amount = _amount(patch["amount"])
            if amount < 0:
                raise InvalidInput("Invalid amount")
            payment.amount = amount
        if patch.get("method"):
            payment.method = _validate_method(patch["method"])
        if patch.get("status"):
            payment.status = normalize_status(patch["status"])
        if "description" in patch:
            payment.description = patch["description"] or None

    logger.info("payment %s updated by %s", payment_id, actor.label)
    return get_payment(db, payment_id)


def delete_payment(db: Session, actor: Principal, payment_id: int) -> None:
    with transaction(db):
        payment = db.get(Payment, payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        db.delete(payment)
    logger.info("payment %s deleted by %s", payment_id, actor.label)
