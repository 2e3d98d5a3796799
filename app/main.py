from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.orm import Session

from app import attendance, bookings, directory, inventory, laundry, payments, stats
from app.auth import Principal, decode_access_token, require_any, resolve_scan_capability
from app.clock import night_count, parse_local_date
from app.config import settings
from app.db import SessionLocal
from app.errors import DomainError, Unauthorized
from app.models import (
    Attendance,
    Booking,
    Guest,
    InventoryItem,
    InventoryMovement,
    Laundry,
    Payment,
    Room,
    Staff,
    User,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Guesthouse Back-Office")

bearer = HTTPBearer(auto_error=False)


def _meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=400,
        content={"detail": "; ".join(messages) or "Invalid request", "error": "invalid_input"},
    )


# auth dependencies


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Principal:
    if credentials is None:
        raise Unauthorized("Not authenticated")
    return decode_access_token(credentials.credentials)


def require_roles(*roles: str):
    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        return require_any(principal, roles)

    return dependency


def get_scan_capability(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    x_api_key: Optional[str] = Header(default=None),
    x_api_token: Optional[str] = Header(default=None),
) -> Principal:
    token = credentials.credentials if credentials else None
    return resolve_scan_capability(token, x_api_key or x_api_token)


FRONT_DESK = require_roles("admin", "reception", "manager")
BOOKING_READERS = require_roles("admin", "reception", "manager", "finance")
MANAGERS = require_roles("admin", "manager")
ADMIN_ONLY = require_roles("admin")
CASHIERS = require_roles("admin", "finance", "manager", "reception")
LAUNDRY_DESK = require_roles("admin", "housekeeping", "reception", "manager")
LAUNDRY_STAFF = require_roles("admin", "housekeeping", "manager")
STOREKEEPERS = require_roles("admin", "manager", "store")
REPORT_READERS = require_roles("admin", "manager", "reception", "finance")
SERIES_READERS = require_roles("admin", "manager", "reception", "finance", "store")


# serializers


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _guest_data(guest: Guest) -> dict:
    return {
        "guest_id": guest.id,
        "name": guest.name,
        "phone": guest.phone,
        "email": guest.email,
        "notes": guest.notes,
        "created_at": _ts(guest.created_at),
    }


def _room_data(room: Room) -> dict:
    return {
        "room_id": room.id,
        "number": room.number,
        "type": room.type,
        "price": _money(room.price),
        "created_at": _ts(room.created_at),
    }


def _payment_summary(payment: Optional[Payment]) -> Optional[dict]:
    if payment is None:
        return None
    return {
        "payment_id": payment.id,
        "amount": _money(payment.amount),
        "method": payment.method,
        "status": payment.status,
        "service_type": payment.service_type,
        "created_at": _ts(payment.created_at),
    }


def _booking_data(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "guest_id": booking.guest_id,
        "room_id": booking.room_id,
        "check_in": _ts(booking.check_in),
        "check_out": _ts(booking.check_out),
        "nights": night_count(booking.check_in, booking.check_out),
        "created_at": _ts(booking.created_at),
        "guest": _guest_data(booking.guest),
        "room": _room_data(booking.room),
        "payment": _payment_summary(booking.payment),
    }


def _laundry_data(order: Laundry) -> dict:
    return {
        "laundry_id": order.id,
        "guest_id": order.guest_id,
        "items": order.items,
        "status": order.status,
        "price": _money(order.price),
        "created_at": _ts(order.created_at),
        "guest": _guest_data(order.guest),
        "payment": _payment_summary(order.payment),
    }


def _payment_data(payment: Payment) -> dict:
    data = _payment_summary(payment)
    data.update(
        {
            "description": payment.description,
            "booking_id": payment.booking_id,
            "laundry_id": payment.laundry_id,
            "guest_id": payment.guest_id,
            "guest": _guest_data(payment.guest),
            "booking": None,
            "laundry": None,
        }
    )
    if payment.booking is not None:
        data["booking"] = {
            "booking_id": payment.booking.id,
            "check_in": _ts(payment.booking.check_in),
            "check_out": _ts(payment.booking.check_out),
            "room": _room_data(payment.booking.room),
        }
    if payment.laundry is not None:
        data["laundry"] = {
            "laundry_id": payment.laundry.id,
            "items": payment.laundry.items,
            "status": payment.laundry.status,
        }
    return data


def _user_data(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"user_id": user.id, "email": user.email, "role": user.role, "name": user.name}


def _staff_data(staff: Staff) -> dict:
    return {
        "staff_id": staff.id,
        "name": staff.name,
        "role": staff.role,
        "phone": staff.phone,
        "emergency_contact": staff.emergency_contact,
        "barcode": staff.barcode,
        "created_at": _ts(staff.created_at),
        "user": _user_data(staff.user),
    }


def _attendance_data(row: Attendance) -> dict:
    return {
        "attendance_id": row.id,
        "staff_id": row.staff_id,
        "date": _ts(row.date),
        "check_in": _ts(row.check_in),
        "check_out": _ts(row.check_out),
    }


def _item_data(item: InventoryItem) -> dict:
    return {
        "item_id": item.id,
        "name": item.name,
        "category": item.category,
        "unit": item.unit,
        "sku": item.sku,
        "quantity": item.quantity,
        "min_threshold": item.min_threshold,
        "low_stock": inventory.is_low_stock(item),
        "created_at": _ts(item.created_at),
        "updated_at": _ts(item.updated_at),
    }


def _movement_data(movement: InventoryMovement) -> dict:
    return {
        "movement_id": movement.id,
        "item_id": movement.item_id,
        "type": movement.type,
        "quantity": movement.quantity,
        "resulting_quantity": movement.resulting_quantity,
        "reason": movement.reason,
        "created_at": _ts(movement.created_at),
    }


def _overview_data(summary: dict) -> dict:
    data = dict(summary)
    data["revenue"] = _money(summary["revenue"])
    data["unpaid_total"] = _money(summary["unpaid_total"])
    return data


def _legacy_overview(summary: dict) -> dict:
    """Field names the old dashboard reads: camelCase, ``*Today`` for today's range."""
    kind = summary["range"]["kind"]
    legacy = {
        "lifetime": kind == "lifetime",
        "guests": summary["guests"],
        "bookings": summary["bookings"],
        "rooms": summary["rooms"],
        "payments": summary["payments"],
        "staff": summary["staff"],
        "inventory": summary["inventory"],
        "laundry": summary["laundry"],
        "revenue": _money(summary["revenue"]),
        "occupiedRoomsNow": summary["occupied_rooms"],
        "occupancyRate": summary["occupancy_rate"],
    }
    if kind == "today":
        legacy["arrivalsToday"] = summary["arrivals"]
        legacy["departuresToday"] = summary["departures"]
    else:
        legacy["arrivals"] = summary["arrivals"]
        legacy["departures"] = summary["departures"]
    legacy["unpaidBookingsCount"] = summary["unpaid_bookings_count"]
    legacy["unpaidTotal"] = _money(summary["unpaid_total"])
    legacy["lowStockCount"] = summary["low_stock_count"]
    return legacy


# request models

_WIRE = {"alias_generator": to_camel, "populate_by_name": True}


class LoginRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"email": "admin@guesthouse.test", "password": "secret123"}}}
    email: str
    password: str


class GuestCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {"example": {"name": "Abebe Kebede", "phone": "+251911000000"}},
    }
    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=3, max_length=30)
    email: Optional[str] = None
    notes: Optional[str] = None


class GuestUpdate(BaseModel):
    model_config = _WIRE
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, min_length=3, max_length=30)
    email: Optional[str] = None
    notes: Optional[str] = None


class RoomCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {"example": {"number": "101", "type": "Double", "price": 2500}},
    }
    number: str = Field(min_length=3)
    type: str = Field(min_length=3)
    price: Decimal


class RoomUpdate(BaseModel):
    model_config = _WIRE
    number: Optional[str] = Field(default=None, min_length=3)
    type: Optional[str] = Field(default=None, min_length=3)
    price: Optional[Decimal] = None


class BookingCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {
            "example": {
                "guestId": 1,
                "roomId": 1,
                "checkIn": "2025-01-01T12:00:00Z",
                "checkOut": "2025-01-03T10:00:00Z",
            }
        },
    }
    guest_id: int
    room_id: int
    check_in: str
    check_out: str


class BookingUpdate(BaseModel):
    model_config = _WIRE
    guest_id: Optional[int] = None
    room_id: Optional[int] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None


class PaymentCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {"example": {"serviceType": "ROOM", "bookingId": 1, "method": "cash"}},
    }
    service_type: Optional[str] = None
    booking_id: Optional[int] = None
    laundry_id: Optional[int] = None
    guest_id: Optional[int] = None
    amount: Optional[Decimal] = None
    method: str
    status: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=300)


class PaymentUpdate(BaseModel):
    model_config = _WIRE
    amount: Optional[Decimal] = None
    method: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=300)


class LaundryCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {"example": {"guestId": 1, "items": "2 shirts, 1 trouser", "price": 150}},
    }
    guest_id: int
    items: str = Field(min_length=1, max_length=1000)
    status: Optional[str] = None
    price: Optional[Decimal] = None


class LaundryUpdate(BaseModel):
    model_config = _WIRE
    items: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    status: Optional[str] = None
    price: Optional[Decimal] = None


class LaundryStatusUpdate(BaseModel):
    status: str


class StaffCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {
            "example": {"name": "Hana Tesfaye", "role": "reception", "phone": "+251922000000"}
        },
    }
    name: str = Field(min_length=2)
    role: str
    phone: str = Field(min_length=7)
    emergency_contact: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)


class StaffUpdate(BaseModel):
    model_config = _WIRE
    name: Optional[str] = Field(default=None, min_length=2)
    role: Optional[str] = None
    phone: Optional[str] = Field(default=None, min_length=7)
    emergency_contact: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)


class UserForStaffCreate(BaseModel):
    email: str
    password: str = Field(min_length=8)
    role: Optional[str] = None


class ScanRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"code": "ATT:EMP-123456"}}}
    code: Optional[str] = None
    token: Optional[str] = None


class InventoryCreate(BaseModel):
    model_config = {
        **_WIRE,
        "json_schema_extra": {
            "example": {"name": "Towels", "category": "Linen", "unit": "pcs", "quantity": 40, "minThreshold": 10}
        },
    }
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=120)
    unit: Optional[str] = None
    sku: Optional[str] = Field(default=None, max_length=100)
    quantity: Optional[int] = None
    min_threshold: Optional[int] = None


class InventoryUpdate(BaseModel):
    model_config = _WIRE
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=120)
    unit: Optional[str] = None
    sku: Optional[str] = Field(default=None, max_length=100)
    min_threshold: Optional[int] = None


class MovementCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"type": "OUT", "quantity": 3, "reason": "Room 101"}}}
    type: str
    quantity: Optional[int] = None
    reason: Optional[str] = None


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check(db: Session = Depends(get_db)) -> dict:
    db.execute(text("SELECT 1"))
    return {"status": "healthy"}


# auth


@app.post("/auth/login", tags=["Auth"])
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> dict:
    token = directory.login(db, payload.email, payload.password)
    return {"data": {"access_token": token, "token_type": "bearer"}, "meta": _meta()}


@app.get("/auth/me", tags=["Auth"])
def me(principal: Principal = Depends(get_principal)) -> dict:
    return {
        "data": {
            "user_id": principal.user_id,
            "email": principal.email,
            "name": principal.name,
            "roles": sorted(principal.roles),
        },
        "meta": _meta(),
    }


# guests


@app.post("/guests", tags=["Guests"])
def create_guest(
    payload: GuestCreate, db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)
) -> dict:
    guest = directory.create_guest(db, actor, payload.name, payload.phone, payload.email, payload.notes)
    return {"data": _guest_data(guest), "meta": _meta()}


@app.get("/guests", tags=["Guests"])
def list_guests(db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)) -> dict:
    return {"data": [_guest_data(g) for g in directory.list_guests(db)], "meta": _meta()}


@app.get("/guests/{guest_id}", tags=["Guests"])
def get_guest(guest_id: int, db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)) -> dict:
    return {"data": _guest_data(directory.get_guest(db, guest_id)), "meta": _meta()}


@app.patch("/guests/{guest_id}", tags=["Guests"])
def update_guest(
    guest_id: int, payload: GuestUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(FRONT_DESK),
) -> dict:
    guest = directory.update_guest(db, actor, guest_id, payload.model_dump(exclude_unset=True))
    return {"data": _guest_data(guest), "meta": _meta()}


@app.delete("/guests/{guest_id}", tags=["Guests"])
def delete_guest(guest_id: int, db: Session = Depends(get_db), actor: Principal = Depends(ADMIN_ONLY)) -> dict:
    directory.delete_guest(db, actor, guest_id)
    return {"data": {"guest_id": guest_id, "deleted": True}, "meta": _meta()}


# rooms


@app.post("/rooms", tags=["Rooms"])
def create_room(payload: RoomCreate, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    room = directory.create_room(db, actor, payload.number, payload.type, payload.price)
    return {"data": _room_data(room), "meta": _meta()}


@app.get("/rooms", tags=["Rooms"])
def list_rooms(db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)) -> dict:
    return {"data": [_room_data(r) for r in directory.list_rooms(db)], "meta": _meta()}


@app.get("/rooms/available", tags=["Rooms"])
def available_rooms(
    check_in: str = Query(alias="checkIn"),
    check_out: str = Query(alias="checkOut"),
    db: Session = Depends(get_db),
    actor: Principal = Depends(FRONT_DESK),
) -> dict:
    rooms = bookings.find_available_rooms(db, check_in, check_out)
    return {"data": [_room_data(r) for r in rooms], "meta": _meta()}


@app.get("/rooms/{room_id}", tags=["Rooms"])
def get_room(room_id: int, db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)) -> dict:
    return {"data": _room_data(directory.get_room(db, room_id)), "meta": _meta()}


@app.patch("/rooms/{room_id}", tags=["Rooms"])
def update_room(
    room_id: int, payload: RoomUpdate, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)
) -> dict:
    room = directory.update_room(db, actor, room_id, payload.model_dump(exclude_unset=True))
    return {"data": _room_data(room), "meta": _meta()}


@app.delete("/rooms/{room_id}", tags=["Rooms"])
def delete_room(room_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    directory.delete_room(db, actor, room_id)
    return {"data": {"room_id": room_id, "deleted": True}, "meta": _meta()}


# bookings


@app.post("/bookings", tags=["Bookings"])
def create_booking(
    payload: BookingCreate, db: Session = Depends(get_db), actor: Principal = Depends(FRONT_DESK)
) -> dict:
    booking = bookings.create_booking(
        db, actor, payload.guest_id, payload.room_id, payload.check_in, payload.check_out
    )
    return {"data": _booking_data(booking), "meta": _meta()}


@app.get("/bookings", tags=["Bookings"])
def list_bookings(
    unpaid: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Principal = Depends(BOOKING_READERS),
) -> dict:
    rows = bookings.list_unpaid_bookings(db) if unpaid else bookings.list_bookings(db)
    return {"data": [_booking_data(b) for b in rows], "meta": _meta()}


@app.get("/bookings/{booking_id}", tags=["Bookings"])
def get_booking(
    booking_id: int, db: Session = Depends(get_db), actor: Principal = Depends(BOOKING_READERS)
) -> dict:
    return {"data": _booking_data(bookings.get_booking(db, booking_id)), "meta": _meta()}


@app.patch("/bookings/{booking_id}", tags=["Bookings"])
def update_booking(
    booking_id: int, payload: BookingUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(FRONT_DESK),
) -> dict:
    booking = bookings.update_booking(db, actor, booking_id, payload.model_dump(exclude_unset=True))
    return {"data": _booking_data(booking), "meta": _meta()}


@app.delete("/bookings/{booking_id}", tags=["Bookings"])
def delete_booking(booking_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    bookings.delete_booking(db, actor, booking_id)
    return {"data": {"booking_id": booking_id, "deleted": True}, "meta": _meta()}


# payments


@app.post("/payments", tags=["Payments"])
def create_payment(
    payload: PaymentCreate, db: Session = Depends(get_db), actor: Principal = Depends(CASHIERS)
) -> dict:
    charge = payments.Charge(**payload.model_dump())
    return {"data": _payment_data(payments.create_payment(db, actor, charge)), "meta": _meta()}


@app.get("/payments", tags=["Payments"])
def list_payments(db: Session = Depends(get_db), actor: Principal = Depends(CASHIERS)) -> dict:
    return {"data": [_payment_data(p) for p in payments.list_payments(db)], "meta": _meta()}


@app.get("/payments/{payment_id}", tags=["Payments"])
def get_payment(payment_id: int, db: Session = Depends(get_db), actor: Principal = Depends(CASHIERS)) -> dict:
    return {"data": _payment_data(payments.get_payment(db, payment_id)), "meta": _meta()}


@app.patch("/payments/{payment_id}", tags=["Payments"])
def update_payment(
    payment_id: int, payload: PaymentUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(CASHIERS),
) -> dict:
    payment = payments.update_payment(db, actor, payment_id, payload.model_dump(exclude_unset=True))
    return {"data": _payment_data(payment), "meta": _meta()}


@app.delete("/payments/{payment_id}", tags=["Payments"])
def delete_payment(payment_id: int, db: Session = Depends(get_db), actor: Principal = Depends(CASHIERS)) -> dict:
    payments.delete_payment(db, actor, payment_id)
    return {"data": {"payment_id": payment_id, "deleted": True}, "meta": _meta()}


# laundry


@app.post("/laundry", tags=["Laundry"])
def create_laundry(
    payload: LaundryCreate, db: Session = Depends(get_db), actor: Principal = Depends(LAUNDRY_DESK)
) -> dict:
    order = laundry.create_laundry(db, actor, payload.guest_id, payload.items, payload.status, payload.price)
    return {"data": _laundry_data(order), "meta": _meta()}


@app.get("/laundry", tags=["Laundry"])
def list_laundry(
    status: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    guest_id: Optional[int] = Query(default=None, alias="guestId"),
    db: Session = Depends(get_db),
    actor: Principal = Depends(LAUNDRY_DESK),
) -> dict:
    rows = laundry.list_laundry(db, status=status, q=q, guest_id=guest_id)
    return {"data": [_laundry_data(o) for o in rows], "meta": _meta()}


@app.get("/laundry/{laundry_id}", tags=["Laundry"])
def get_laundry(laundry_id: int, db: Session = Depends(get_db), actor: Principal = Depends(LAUNDRY_DESK)) -> dict:
    return {"data": _laundry_data(laundry.get_laundry(db, laundry_id)), "meta": _meta()}


@app.patch("/laundry/{laundry_id}", tags=["Laundry"])
def update_laundry(
    laundry_id: int, payload: LaundryUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(LAUNDRY_STAFF),
) -> dict:
    order = laundry.update_laundry(db, actor, laundry_id, payload.model_dump(exclude_unset=True))
    return {"data": _laundry_data(order), "meta": _meta()}


@app.patch("/laundry/{laundry_id}/status", tags=["Laundry"])
def update_laundry_status(
    laundry_id: int, payload: LaundryStatusUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(LAUNDRY_STAFF),
) -> dict:
    order = laundry.update_laundry_status(db, actor, laundry_id, payload.status)
    return {"data": _laundry_data(order), "meta": _meta()}


@app.delete("/laundry/{laundry_id}", tags=["Laundry"])
def delete_laundry(laundry_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    laundry.delete_laundry(db, actor, laundry_id)
    return {"data": {"laundry_id": laundry_id, "deleted": True}, "meta": _meta()}


# inventory


@app.post("/inventory", tags=["Inventory"])
def create_inventory_item(
    payload: InventoryCreate, db: Session = Depends(get_db), actor: Principal = Depends(STOREKEEPERS)
) -> dict:
    item = inventory.create_item(
        db, actor, payload.name, payload.category, payload.unit, payload.sku,
        payload.quantity, payload.min_threshold,
    )
    return {"data": _item_data(item), "meta": _meta()}


@app.get("/inventory", tags=["Inventory"])
def list_inventory(
    q: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    low: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Principal = Depends(STOREKEEPERS),
) -> dict:
    rows = inventory.list_items(db, q=q, category=category, low=low)
    return {"data": [_item_data(i) for i in rows], "meta": _meta()}


@app.get("/inventory/metrics", tags=["Inventory"])
def inventory_metrics(db: Session = Depends(get_db), actor: Principal = Depends(STOREKEEPERS)) -> dict:
    return {"data": inventory.inventory_metrics(db), "meta": _meta()}


@app.get("/inventory/{item_id}", tags=["Inventory"])
def get_inventory_item(
    item_id: int, db: Session = Depends(get_db), actor: Principal = Depends(STOREKEEPERS)
) -> dict:
    return {"data": _item_data(inventory.get_item(db, item_id)), "meta": _meta()}


@app.patch("/inventory/{item_id}", tags=["Inventory"])
def update_inventory_item(
    item_id: int, payload: InventoryUpdate, db: Session = Depends(get_db),
    actor: Principal = Depends(STOREKEEPERS),
) -> dict:
    item = inventory.update_item(db, actor, item_id, payload.model_dump(exclude_unset=True))
    return {"data": _item_data(item), "meta": _meta()}


@app.delete("/inventory/{item_id}", tags=["Inventory"])
def delete_inventory_item(
    item_id: int, db: Session = Depends(get_db), actor: Principal = Depends(STOREKEEPERS)
) -> dict:
    inventory.delete_item(db, actor, item_id)
    return {"data": {"item_id": item_id, "deleted": True}, "meta": _meta()}


@app.post("/inventory/{item_id}/movements", tags=["Inventory"])
def record_movement(
    item_id: int, payload: MovementCreate, db: Session = Depends(get_db),
    actor: Principal = Depends(STOREKEEPERS),
) -> dict:
    item, movement = inventory.record_movement(
        db, actor, item_id, payload.type, payload.quantity, payload.reason
    )
    return {
        "data": {"item": _item_data(item), "movement": _movement_data(movement)},
        "meta": _meta(),
    }


@app.get("/inventory/{item_id}/movements", tags=["Inventory"])
def list_movements(
    item_id: int,
    limit: int = Query(default=100),
    db: Session = Depends(get_db),
    actor: Principal = Depends(STOREKEEPERS),
) -> dict:
    rows = inventory.list_movements(db, item_id, limit=limit)
    return {"data": [_movement_data(m) for m in rows], "meta": _meta()}


# staff and accounts


@app.post("/staff", tags=["Staff"])
def create_staff(payload: StaffCreate, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    staff = directory.create_staff(
        db, actor, payload.name, payload.role, payload.phone,
        payload.emergency_contact, payload.username, payload.password,
    )
    return {"data": _staff_data(staff), "meta": _meta()}


@app.get("/staff", tags=["Staff"])
def list_staff(db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    return {"data": [_staff_data(s) for s in directory.list_staff(db)], "meta": _meta()}


@app.get("/staff/{staff_id}", tags=["Staff"])
def get_staff(staff_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    return {"data": _staff_data(directory.get_staff(db, staff_id)), "meta": _meta()}


@app.patch("/staff/{staff_id}", tags=["Staff"])
def update_staff(
    staff_id: int, payload: StaffUpdate, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)
) -> dict:
    staff = directory.update_staff(db, actor, staff_id, payload.model_dump(exclude_unset=True))
    return {"data": _staff_data(staff), "meta": _meta()}


@app.delete("/staff/{staff_id}", tags=["Staff"])
def delete_staff(staff_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)) -> dict:
    directory.delete_staff(db, actor, staff_id)
    return {"data": {"staff_id": staff_id, "deleted": True}, "meta": _meta()}


@app.post("/users/staff/{staff_id}", tags=["Users"])
def create_user_for_staff(
    staff_id: int, payload: UserForStaffCreate, db: Session = Depends(get_db),
    actor: Principal = Depends(MANAGERS),
) -> dict:
    user = directory.create_user_for_staff(db, actor, staff_id, payload.email, payload.password, payload.role)
    return {"data": {**_user_data(user), "staff_id": staff_id}, "meta": _meta()}


# attendance


@app.post("/attendance/scan", tags=["Attendance"])
def scan_attendance(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    capability: Principal = Depends(get_scan_capability),
) -> dict:
    raw = (payload.code or "").strip() or (payload.token or "").strip()
    result = attendance.scan(db, capability, raw)
    return {
        "data": {
            "action": result.action,
            "day": result.day_key,
            "staff": {
                "staff_id": result.staff.id,
                "name": result.staff.name,
                "role": result.staff.role,
                "barcode": result.staff.barcode,
            },
            "attendance": _attendance_data(result.attendance),
        },
        "meta": _meta(),
    }


@app.get("/attendance", tags=["Attendance"])
def list_attendance(
    staff_id: Optional[int] = Query(default=None, alias="staffId"),
    day: Optional[str] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    actor: Principal = Depends(MANAGERS),
) -> dict:
    local_day = parse_local_date(day, "date", settings.local_utc_offset_minutes) if day else None
    rows = attendance.list_attendance(db, staff_id=staff_id, day=local_day)
    data = [{**_attendance_data(row), "staff_name": row.staff.name} for row in rows]
    return {"data": data, "meta": _meta()}


@app.get("/attendance/{attendance_id}", tags=["Attendance"])
def get_attendance(
    attendance_id: int, db: Session = Depends(get_db), actor: Principal = Depends(MANAGERS)
) -> dict:
    row = attendance.get_attendance(db, attendance_id)
    return {"data": {**_attendance_data(row), "staff_name": row.staff.name}, "meta": _meta()}


# stats


@app.get("/stats/overview", tags=["Stats"])
def stats_overview(
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    legacy: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Principal = Depends(REPORT_READERS),
) -> dict:
    offset = settings.local_utc_offset_minutes
    start_day = parse_local_date(start, "start", offset) if start else None
    end_day = parse_local_date(end, "end", offset) if end else None
    summary = stats.overview(db, start_day, end_day)
    if legacy:
        return {"data": _legacy_overview(summary), "meta": _meta(warnings=["legacy overview shape"])}
    return {"data": _overview_data(summary), "meta": _meta()}


@app.get("/stats/series", tags=["Stats"])
def stats_series(
    days: int = Query(default=7),
    db: Session = Depends(get_db),
    actor: Principal = Depends(SERIES_READERS),
) -> dict:
    points = [{**point, "revenue": _money(point["revenue"])} for point in stats.series(db, days)]
    return {"data": points, "meta": _meta()}
