"""Guests, rooms, staff and login accounts.

Plain record keeping: referential integrity is left to the store and
surfaces as :class:`~app.errors.Conflict` through ``transaction``.
"""

from __future__ import annotations

import logging
import random
import time
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal, create_access_token, hash_password, verify_password
from app.db import transaction
from app.errors import Conflict, InvalidInput, NotFound, Unauthorized
from app.models import ROLES, Guest, Room, Staff, User

logger = logging.getLogger(__name__)

ROOM_MIN_PRICE = Decimal("500")
BARCODE_ATTEMPTS = 20


def _apply(row, patch: dict, fields: tuple[str, ...]) -> None:
    for field in fields:
        if patch.get(field) is not None:
            setattr(row, field, patch[field])


def _check_role(role: Optional[str]) -> str:
    if role not in ROLES:
        raise InvalidInput(f"role must be one of: {', '.join(ROLES)}")
    return role


# guests

def create_guest(
    db: Session, actor: Principal, name: str, phone: str,
    email: Optional[str] = None, notes: Optional[str] = None,
) -> Guest:
    guest = Guest(name=name, phone=phone, email=email, notes=notes)
    with transaction(db):
        db.add(guest)
        db.flush()
        guest_id = guest.id
    logger.info("guest %s created by %s", guest_id, actor.label)
    return get_guest(db, guest_id)


def get_guest(db: Session, guest_id: int) -> Guest:
    guest = db.get(Guest, guest_id)
    if guest is None:
        raise NotFound("Guest not found")
    return guest


def list_guests(db: Session) -> list[Guest]:
    return list(db.execute(select(Guest).order_by(Guest.id.desc())).scalars())


def update_guest(db: Session, actor: Principal, guest_id: int, patch: dict) -> Guest:
    with transaction(db):
        _apply(get_guest(db, guest_id), patch, ("name", "phone", "email", "notes"))
    logger.info("guest %s updated by %s", guest_id, actor.label)
    return get_guest(db, guest_id)


def delete_guest(db: Session, actor: Principal, guest_id: int) -> None:
    with transaction(db):
        db.delete(get_guest(db, guest_id))
    logger.info("guest %s deleted by %s", guest_id, actor.label)


# rooms

def _room_price(value) -> Decimal:
    price = Decimal(str(value))
    if price < ROOM_MIN_PRICE:
        raise InvalidInput(f"price must be at least {ROOM_MIN_PRICE}")
    return price


def create_room(db: Session, actor: Principal, number: str, room_type: str, price) -> Room:
    room = Room(number=number, type=room_type, price=_room_price(price))
    with transaction(db):
        if db.execute(select(Room.id).where(Room.number == number)).first() is not None:
            raise Conflict("Room number already exists")
        db.add(room)
        db.flush()
        room_id = room.id
    logger.info("room %s (%s) created by %s", room_id, number, actor.label)
    return get_room(db, room_id)


def get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFound("Room not found")
    return room


def list_rooms(db: Session) -> list[Room]:
    return list(db.execute(select(Room).order_by(Room.number)).scalars())


def update_room(db: Session, actor: Principal, room_id: int, patch: dict) -> Room:
    with transaction(db):
        room = get_room(db, room_id)
        if patch.get("price") is not None:
            room.price = _room_price(patch["price"])
        _apply(room, patch, ("number", "type"))
    logger.info("room %s updated by %s", room_id, actor.label)
    return get_room(db, room_id)


def delete_room(db: Session, actor: Principal, room_id: int) -> None:
    with transaction(db):
        db.delete(get_room(db, room_id))
    logger.info("room %s deleted by %s", room_id, actor.label)


# staff

def generate_barcode(db: Session) -> str:
    for _ in range(BARCODE_ATTEMPTS):
        code = f"EMP-{random.randint(100000, 999999)}"
        if db.execute(select(Staff.id).where(Staff.barcode == code)).first() is None:
            return code
    return f"EMP-{str(int(time.time() * 1000))[-6:]}"


def _new_user(db: Session, email: str, password: str, role: str, name: Optional[str]) -> User:
    if db.execute(select(User.id).where(User.email == email)).first() is not None:
        raise Conflict("User with that email already exists")
    user = User(email=email, password_hash=hash_password(password), role=_check_role(role), name=name)
    db.add(user)
    db.flush()
    return user


def get_staff(db: Session, staff_id: int) -> Staff:
    staff = db.execute(
        select(Staff).where(Staff.id == staff_id).options(selectinload(Staff.user))
    ).scalar_one_or_none()
    if staff is None:
        raise NotFound("Staff not found")
    return staff


def list_staff(db: Session) -> list[Staff]:
    query = select(Staff).options(selectinload(Staff.user)).order_by(Staff.id.desc())
    return list(db.execute(query).scalars())


def create_staff(
    db: Session,
    actor: Principal,
    name: str,
    role: str,
    phone: str,
    emergency_contact: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> Staff:
    """Register a staff member with a fresh barcode.

    When both ``username`` and ``password`` are given a login account is
    created and linked in the same transaction; a taken email aborts both.
    """
    _check_role(role)
    with transaction(db):
        staff = Staff(
            name=name,
            role=role,
            phone=phone,
            emergency_contact=emergency_contact,
            barcode=generate_barcode(db),
        )
        if username and password:
            staff.user_id = _new_user(db, username, password, role, name).id
        db.add(staff)
        db.flush()
        staff_id = staff.id
        barcode = staff.barcode
    logger.info("staff %s created with barcode %s by %s", staff_id, barcode, actor.label)
    return get_staff(db, staff_id)


def update_staff(db: Session, actor: Principal, staff_id: int, patch: dict) -> Staff:
    with transaction(db):
        staff = get_staff(db, staff_id)
        if patch.get("role") is not None:
            _check_role(patch["role"])
        _apply(staff, patch, ("name", "role", "phone", "emergency_contact"))

        username = patch.get("username")
        password = patch.get("password")
        if staff.user is not None:
            if username and username != staff.user.email:
                if db.execute(select(User.id).where(User.email == username)).first() is not None:
                    raise Conflict("User with that email already exists")
                staff.user.email = username
            if password:
                staff.user.password_hash = hash_password(password)
        elif username and password:
            staff.user_id = _new_user(db, username, password, staff.role, staff.name).id
    logger.info("staff %s updated by %s", staff_id, actor.label)
    return get_staff(db, staff_id)


def delete_staff(db: Session, actor: Principal, staff_id: int) -> None:
    """Remove a staff member, their login account and attendance history."""
    with transaction(db):
        staff = get_staff(db, staff_id)
        user = staff.user
        db.delete(staff)
        if user is not None:
            db.delete(user)
    logger.info("staff %s deleted by %s", staff_id, actor.label)


# users

def create_user_for_staff(
    db: Session, actor: Principal, staff_id: int, email: str, password: str,
    role: Optional[str] = None,
) -> User:
    with transaction(db):
        staff = get_staff(db, staff_id)
        if staff.user_id is not None:
            raise Conflict("This staff already has a user account")
        user = _new_user(db, email, password, role or staff.role, staff.name)
        staff.user_id = user.id
        user_id = user.id
    logger.info("user %s linked to staff %s by %s", user_id, staff_id, actor.label)
    return get_user(db, user_id)


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("failed login for %s", email)
        raise Unauthorized("Invalid credentials")
    return user


def login(db: Session, email: str, password: str) -> str:
    user = authenticate(db, email, password)
    return create_access_token(user.id, user.email, user.role, user.name)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user
