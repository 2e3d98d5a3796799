"""Inventory items and their append-only stock movement log.

Stock changes only through :func:`record_movement`, which updates the item's
quantity and appends the movement in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.auth import Principal
from app.db import transaction
from app.errors import InvalidInput, NotFound
from app.models import INVENTORY_UNITS, MOVEMENT_TYPES, InventoryItem, InventoryMovement

logger = logging.getLogger(__name__)

_PATCHABLE = ("name", "category", "unit", "sku", "min_threshold")


def _check_unit(unit: Optional[str]) -> Optional[str]:
    if unit is not None and unit not in INVENTORY_UNITS:
        raise InvalidInput(f"unit must be one of: {', '.join(INVENTORY_UNITS)}")
    return unit


def _non_negative(value: Optional[int], field: str) -> int:
    value = 0 if value is None else value
    if value < 0:
        raise InvalidInput(f"{field} must be a non-negative number")
    return value


def is_low_stock(item: InventoryItem) -> bool:
    return item.quantity <= (item.min_threshold or 0)


def create_item(
    db: Session,
    actor: Principal,
    name: str,
    category: str,
    unit: Optional[str] = None,
    sku: Optional[str] = None,
    quantity: Optional[int] = None,
    min_threshold: Optional[int] = None,
) -> InventoryItem:
    item = InventoryItem(
        name=name,
        category=category,
        unit=_check_unit(unit),
        sku=sku,
        quantity=_non_negative(quantity, "quantity"),
        min_threshold=_non_negative(min_threshold, "minThreshold"),
    )
    with transaction(db):
        db.add(item)
        db.flush()
        item_id = item.id
    logger.info("inventory item %s created by %s", item_id, actor.label)
    return get_item(db, item_id)


def get_item(db: Session, item_id: int) -> InventoryItem:
    item = db.get(InventoryItem, item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def list_items(
    db: Session,
    q: Optional[str] = None,
    category: Optional[str] = None,
    low: bool = False,
) -> list[InventoryItem]:
    query = select(InventoryItem)
    if category and category.strip():
        query = query.where(InventoryItem.category == category.strip())
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.where(
            or_(
                InventoryItem.name.ilike(pattern),
                InventoryItem.category.ilike(pattern),
                InventoryItem.sku.ilike(pattern),
            )
        )
    if low:
        query = query.where(InventoryItem.quantity <= InventoryItem.min_threshold)
    return list(db.execute(query.order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc())).scalars())


def update_item(db: Session, actor: Principal, item_id: int, patch: dict) -> InventoryItem:
    with transaction(db):
        item = get_item(db, item_id)
        for field in _PATCHABLE:
            if patch.get(field) is None:
                continue
            value = patch[field]
            if field == "unit":
                value = _check_unit(value)
            elif field == "min_threshold":
                value = _non_negative(value, "minThreshold")
            setattr(item, field, value)
    logger.info("inventory item %s updated by %s", item_id, actor.label)
    return get_item(db, item_id)


def delete_item(db: Session, actor: Principal, item_id: int) -> None:
    with transaction(db):
        db.delete(get_item(db, item_id))
    logger.info("inventory item %s deleted by %s", item_id, actor.label)


def inventory_metrics(db: Session) -> dict:
    items = list(db.execute(select(InventoryItem)).scalars())
    categories: dict[str, dict] = {}
    for item in items:
        bucket = categories.setdefault(item.category or "uncategorized", {"count": 0, "quantity": 0})
        bucket["count"] += 1
        bucket["quantity"] += item.quantity or 0
    return {
        "total_items": len(items),
        "total_quantity": sum(item.quantity or 0 for item in items),
        "low_stock": sum(1 for item in items if is_low_stock(item)),
        "categories": categories,
    }


def record_movement(
    db: Session,
    actor: Principal,
    item_id: int,
    movement_type: str,
    quantity: Optional[int],
    reason: Optional[str] = None,
) -> tuple[InventoryItem, InventoryMovement]:
    """Apply one stock movement; returns the item and the movement row written."""
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidInput("Invalid movement type")
    if quantity is None:
        raise InvalidInput("Quantity required")
    if movement_type != "ADJUST" and quantity <= 0:
        raise InvalidInput("Quantity must be > 0")
    if movement_type == "ADJUST" and quantity < 0:
        raise InvalidInput("Quantity cannot be negative")

    with transaction(db):
        item = db.execute(
            select(InventoryItem).where(InventoryItem.id == item_id).with_for_update()
        ).scalar_one_or_none()
        if item is None:
            raise NotFound("Item not found")
        if movement_type == "IN":
            resulting = item.quantity + quantity
        elif movement_type == "OUT":
            if quantity > item.quantity:
                raise InvalidInput("Insufficient stock")
            resulting = item.quantity - quantity
        else:
            resulting = quantity
        item.quantity = resulting
        movement = InventoryMovement(
            item_id=item_id,
            type=movement_type,
            quantity=quantity,
            resulting_quantity=resulting,
            reason=reason or None,
        )
        db.add(movement)
        db.flush()
        movement_id = movement.id

    logger.info(
        "inventory %s %s %s -> %s by %s", item_id, movement_type, quantity, resulting, actor.label
    )
    return get_item(db, item_id), db.get(InventoryMovement, movement_id)


def list_movements(db: Session, item_id: int, limit: int = 100) -> list[InventoryMovement]:
    get_item(db, item_id)
    limit = max(1, min(500, limit))
    query = (
        select(InventoryMovement)
        .where(InventoryMovement.item_id == item_id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
    )
    return list(db.execute(query).scalars())
