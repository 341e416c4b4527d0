from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo
from sqlalchemy.orm import Session

from .civiltime import coerce_instant, to_naive_utc
from .models import Divert, Hospital
from .payload import DivertKind, DivertStatus, build_divert_payload, is_source_unit, is_source_user
from .planner import DEFAULT_BACKFILL_DAYS, Window, is_active_in_window, partitions_to_scan
from .recurrence import Occurrence

logger = logging.getLogger(__name__)


def list_hospitals(db: Session, include_inactive: bool = False) -> list[Hospital]:
    q = db.query(Hospital)
    if not include_inactive:
        q = q.filter(Hospital.active.is_(True))
    return q.order_by(Hospital.name).all()


def create_hospital(db: Session, name: str, short_code: str = "") -> Optional[Hospital]:
    """Add a hospital; None when the name is already taken."""
    if db.query(Hospital).filter_by(name=name).first():
        return None
    h = Hospital(name=name, short_code=short_code)
    db.add(h); db.commit(); db.refresh(h)
    return h


def _row_from_payload(payload: dict) -> Divert:
    source = payload["source"]
    if is_source_unit(source):
        unit_id = source["unit_id"]
    elif is_source_user(source):
        unit_id = None
    else:
        raise ValueError(f"Unknown divert source: {source!r}")
    cleared_at = payload["cleared_at"]
    return Divert(
        date_key=payload["date_key"],
        hospital_id=payload["hospital_id"],
        kind=payload["kind"],
        notes=payload.get("notes"),
        status=payload["status"],
        started_at=to_naive_utc(payload["started_at"]),
        cleared_at=to_naive_utc(cleared_at) if cleared_at is not None else None,
        source_type=source["type"],
        unit_id=unit_id,
        created_by_uid=payload.get("created_by_uid"),
        unit_report_key=payload.get("unit_report_key"),
    )


def write_occurrences(
    db: Session,
    occurrences: Iterable[Occurrence],
    *,
    hospital_id: int,
    kind: DivertKind | str,
    notes: Optional[str] = None,
    created_by_uid: Optional[str] = None,
    unit_id: Optional[str] = None,
    unit_report_key: Optional[str] = None,
) -> list[Divert]:
    """Write each occurrence into its day partition in a single commit."""
    rows = [
        _row_from_payload(build_divert_payload(
            occ,
            hospital_id=hospital_id,
            kind=kind,
            notes=notes,
            created_by_uid=created_by_uid,
            unit_id=unit_id,
            unit_report_key=unit_report_key,
        ))
        for occ in occurrences
    ]
    db.add_all(rows)
    db.commit()
    for r in rows:
        db.refresh(r)
    logger.info(
        "Reported %d divert(s) for hospital %s in partitions %s",
        len(rows), hospital_id, sorted({r.date_key for r in rows}),
    )
    return rows


def diverts_for_date_key(db: Session, date_key: str) -> list[Divert]:
    return (
        db.query(Divert)
        .filter(Divert.date_key == date_key)
        .order_by(Divert.started_at.desc())
        .all()
    )


def active_in_window(
    db: Session,
    window: Window,
    zone: str | ZoneInfo,
    backfill_days: int = DEFAULT_BACKFILL_DAYS,
    hospital_ids: Optional[Sequence[int]] = None,
) -> list[Divert]:
    """Active diverts whose [start, end) overlaps ``window``, oldest start first."""
    keys = partitions_to_scan(window, zone, backfill_days)
    q = db.query(Divert).filter(Divert.date_key.in_(keys), Divert.status == DivertStatus.ACTIVE.value)
    if hospital_ids:
        q = q.filter(Divert.hospital_id.in_(list(hospital_ids)))
    out = [
        d for d in q.all()
        if is_active_in_window(d.status, coerce_instant(d.started_at), coerce_instant(d.cleared_at), window)
    ]
    out.sort(key=lambda d: (d.started_at, d.hospital_id))
    logger.debug("Scanned %d partition(s), %d active", len(keys), len(out))
    return out


def clear_divert(db: Session, date_key: str, divert_id: int, now: datetime | None = None) -> Optional[Divert]:
    """End a divert now. None when the partition holds no such divert."""
    d = db.query(Divert).filter_by(id=divert_id, date_key=date_key).first()
    if not d:
        return None
    d.status = DivertStatus.CLEARED.value
    d.cleared_at = to_naive_utc(now or datetime.now(timezone.utc))
    db.add(d); db.commit(); db.refresh(d)
    logger.info("Cleared divert %s in partition %s", divert_id, date_key)
    return d
