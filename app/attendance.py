"""Staff attendance bucketed by local calendar day.

Per staff member and local day the record moves
``no record -> checked in -> checked out``; scans after check-out are
reported but change nothing.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal
from app.clock import as_utc, day_window_for, local_day_window, utcnow
from app.config import settings
from app.db import transaction
from app.errors import Conflict, InvalidInput, NotFound
from app.models import Attendance, Staff

logger = logging.getLogger(__name__)

CHECK_IN = "CHECK_IN"
CHECK_OUT = "CHECK_OUT"
ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"

_ATT_PREFIX = re.compile(r"^ATT[:\-]", re.IGNORECASE)
_STAFF_PREFIX = re.compile(r"^STAFF[:\-]", re.IGNORECASE)


class ScanResult(NamedTuple):
    action: str
    staff: Staff
    attendance: Attendance
    day_key: str


def normalize_scan_code(raw: Optional[str]) -> str:
    code = (raw or "").strip()
    code = _ATT_PREFIX.sub("", code, count=1)
    code = _STAFF_PREFIX.sub("", code, count=1).strip()
    if not code:
        raise InvalidInput("code is required")
    return code


def resolve_staff(db: Session, raw: Optional[str], lock: bool = False) -> Staff:
    query = select(Staff).where(Staff.barcode == normalize_scan_code(raw))
    if lock:
        query = query.with_for_update()
    staff = db.execute(query).scalar_one_or_none()
    if staff is None:
        raise NotFound("Staff not found")
    return staff


def scan(
    db: Session,
    capability: Principal,
    raw_code: Optional[str],
    now: Optional[datetime] = None,
    utc_offset_minutes: Optional[int] = None,
) -> ScanResult:
    now = as_utc(now) if now else utcnow()
    offset = settings.local_utc_offset_minutes if utc_offset_minutes is None else utc_offset_minutes
    window = local_day_window(now, offset)

    with transaction(db):
        staff = resolve_staff(db, raw_code, lock=True)
        existing = db.execute(
            select(Attendance)
            .where(
                Attendance.staff_id == staff.id,
                Attendance.date >= window.day_start,
                Attendance.date < window.day_end,
            )
            .order_by(Attendance.date.desc())
            .limit(1)
        ).scalar_one_or_none()

        if existing is None:
            record = Attendance(staff_id=staff.id, date=window.day_start, check_in=now)
            db.add(record)
            action = CHECK_IN
        elif existing.check_out is not None:
            record = existing
            action = ALREADY_CHECKED_OUT
        else:
            existing.check_out = now
            record = existing
            action = CHECK_OUT
        try:
            db.flush()
        except IntegrityError as exc:
            raise Conflict("Duplicate attendance for day, please retry") from exc
        record_id = record.id
        staff_id = staff.id

    logger.info(
        "attendance %s for staff %s on %s via %s", action, staff_id, window.day_key, capability.label
    )
    return ScanResult(action, db.get(Staff, staff_id), db.get(Attendance, record_id), window.day_key)


def list_attendance(
    db: Session,
    staff_id: Optional[int] = None,
    day=None,
    utc_offset_minutes: Optional[int] = None,
) -> list[Attendance]:
    query = select(Attendance).options(selectinload(Attendance.staff))
    if staff_id:
        query = query.where(Attendance.staff_id == staff_id)
    if day is not None:
        offset = settings.local_utc_offset_minutes if utc_offset_minutes is None else utc_offset_minutes
        window = day_window_for(day, offset)
        query = query.where(Attendance.date >= window.day_start, Attendance.date < window.day_end)
    return list(db.execute(query.order_by(Attendance.date.desc(), Attendance.id.desc())).scalars())


def get_attendance(db: Session, attendance_id: int) -> Attendance:
    row = db.execute(
        select(Attendance).where(Attendance.id == attendance_id).options(selectinload(Attendance.staff))
    ).scalar_one_or_none()
    if row is None:
        raise NotFound("Attendance not found")
    return row
