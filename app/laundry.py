from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal
from app.db import transaction
from app.errors import InvalidInput, NotFound
from app.models import LAUNDRY_STATUSES, Guest, Laundry, Payment

logger = logging.getLogger(__name__)

_JOINS = (selectinload(Laundry.guest), selectinload(Laundry.payment))


def _price(value) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        price = Decimal(str(value))
    except ArithmeticError:
        raise InvalidInput("Price must be a non-negative number") from None
    if not price.is_finite() or price < 0:
        raise InvalidInput("Price must be a non-negative number")
    return price


def _status(value: Optional[str]) -> str:
    if value not in LAUNDRY_STATUSES:
        raise InvalidInput(f"Status must be one of: {', '.join(LAUNDRY_STATUSES)}")
    return value


def get_laundry(db: Session, laundry_id: int) -> Laundry:
    row = db.execute(
        select(Laundry).where(Laundry.id == laundry_id).options(*_JOINS)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound("Laundry not found")
    return row


def create_laundry(
    db: Session,
    actor: Principal,
    guest_id: int,
    items: str,
    status: Optional[str] = None,
    price=None,
) -> Laundry:
    """Create an order together with its up-front cash payment."""
    amount = _price(price)
    order_status = _status(status or "pending")

    with transaction(db):
        if db.get(Guest, guest_id) is None:
            raise NotFound("Guest not found")
        laundry = Laundry(guest_id=guest_id, items=items, status=order_status, price=amount)
        db.add(laundry)
        db.flush()
        db.add(
            Payment(
                laundry_id=laundry.id,
                guest_id=laundry.guest_id,
                amount=amount,
                method="cash",
                status="paid",
                service_type="LAUNDRY",
                description="Laundry charge",
            )
        )
        laundry_id = laundry.id

    logger.info("laundry %s created for guest %s by %s", laundry_id, guest_id, actor.label)
    return get_laundry(db, laundry_id)


def list_laundry(
    db: Session,
    status: Optional[str] = None,
    q: Optional[str] = None,
    guest_id: Optional[int] = None,
) -> list[Laundry]:
    query = select(Laundry).options(*_JOINS)
    if status in LAUNDRY_STATUSES:
        query = query.where(Laundry.status == status)
    if guest_id:
        query = query.where(Laundry.guest_id == guest_id)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.join(Guest, Guest.id == Laundry.guest_id).where(
            or_(Laundry.items.ilike(pattern), Guest.name.ilike(pattern))
        )
    return list(db.execute(query.order_by(Laundry.created_at.desc(), Laundry.id.desc())).scalars())


def update_laundry(db: Session, actor: Principal, laundry_id: int, patch: dict) -> Laundry:
    with transaction(db):
        row = db.get(Laundry, laundry_id)
        if row is None:
            raise NotFound("Laundry not found")
        if patch.get("items") is not None:
            row.items = patch["items"]
        if patch.get("status") is not None:
            row.status = _status(patch["status"])
        if patch.get("price") is not None:
            row.price = _price(patch["price"])
    logger.info("laundry %s updated by %s", laundry_id, actor.label)
    return get_laundry(db, laundry_id)


def update_laundry_status(db: Session, actor: Principal, laundry_id: int, status: Optional[str]) -> Laundry:
    return update_laundry(db, actor, laundry_id, {"status": _status(status)})


def delete_laundry(db: Session, actor: Principal, laundry_id: int) -> None:
    with transaction(db):
        row = db.get(Laundry, laundry_id)
        if row is None:
            raise NotFound("Laundry not found")
        db.delete(row)
    logger.info("laundry %s deleted by %s", laundry_id, actor.label)
