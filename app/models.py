from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.clock import as_utc, utcnow
from app.db import Base

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
MONEY = Numeric(12, 2)

ROLES = ("admin", "manager", "reception", "housekeeping", "barista", "security", "finance", "store")
PAYMENT_METHODS = ("cash", "card", "mobile", "bank_transfer")
PAYMENT_STATUSES = ("paid", "refunded", "failed", "unpaid")
SERVICE_TYPES = ("ROOM", "LAUNDRY", "DINING", "OTHER")
LAUNDRY_STATUSES = ("pending", "in_progress", "done")
INVENTORY_UNITS = ("pcs", "kg", "L")
MOVEMENT_TYPES = ("IN", "OUT", "ADJUST")


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite has no timestamp-with-time-zone type and drops the offset; values
    are normalized to UTC on the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(Base):
    __tablename__ = "app_user"
    __table_args__ = (CheckConstraint(_in("role", ROLES), name="user_role"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Guest(Base):
    __tablename__ = "guest"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(254))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Room(Base):
    __tablename__ = "room"
    __table_args__ = (CheckConstraint("price >= 500", name="room_price_min"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Booking(Base):
    __tablename__ = "booking"
    __table_args__ = (
        CheckConstraint("check_in < check_out", name="booking_range"),
        Index("ix_booking_room_range", "room_id", "check_in", "check_out"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    guest_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("guest.id"), nullable=False)
    room_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("room.id"), nullable=False)
    check_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_out: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    guest: Mapped[Guest] = relationship()
    room: Mapped[Room] = relationship()
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="booking", uselist=False)


class Laundry(Base):
    __tablename__ = "laundry"
    __table_args__ = (
        CheckConstraint(_in("status", LAUNDRY_STATUSES), name="laundry_status"),
        CheckConstraint("price >= 0", name="laundry_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    guest_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("guest.id"), nullable=False)
    items: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    guest: Mapped[Guest] = relationship()
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="laundry", uselist=False)


class Payment(Base):
    __tablename__ = "payment"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="payment_amount_non_negative"),
        CheckConstraint(_in("method", PAYMENT_METHODS), name="payment_method"),
        CheckConstraint(_in("status", PAYMENT_STATUSES), name="payment_status"),
        CheckConstraint(_in("service_type", SERVICE_TYPES), name="payment_service_type"),
        CheckConstraint(
            "booking_id IS NULL OR laundry_id IS NULL", name="payment_single_source"
        ),
        Index("ix_payment_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="paid")
    service_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(300))
    booking_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("booking.id", ondelete="SET NULL"), unique=True
    )
    laundry_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("laundry.id", ondelete="SET NULL"), unique=True
    )
    guest_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("guest.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    booking: Mapped[Optional[Booking]] = relationship(back_populates="payment")
    laundry: Mapped[Optional[Laundry]] = relationship(back_populates="payment")
    guest: Mapped[Guest] = relationship()


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (CheckConstraint(_in("role", ROLES), name="staff_role"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    emergency_contact: Mapped[Optional[str]] = mapped_column(Text)
    barcode: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("app_user.id", ondelete="SET NULL"), unique=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    user: Mapped[Optional[User]] = relationship()


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("staff_id", "date", name="uq_attendance_staff_day"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    staff_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_out: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    staff: Mapped[Staff] = relationship()


class InventoryItem(Base):
    __tablename__ = "inventory_item"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="inventory_quantity_non_negative"),
        CheckConstraint("min_threshold >= 0", name="inventory_threshold_non_negative"),
        CheckConstraint(f"unit IS NULL OR {_in('unit', INVENTORY_UNITS)}", name="inventory_unit"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(120), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(8))
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class InventoryMovement(Base):
    __tablename__ = "inventory_movement"
    __table_args__ = (
        CheckConstraint(_in("type", MOVEMENT_TYPES), name="movement_type"),
        Index("ix_inventory_movement_item_created", "item_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_item.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    resulting_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
