from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional
from fastapi import FastAPI, Request, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from icalendar import Calendar, Event

from .civiltime import format_display, isoformat_z, parse_civil_date, parse_instant, resolve_zone, today_date_key
from .config import BACKFILL_DAYS, DIVERT_TZ, LOG_JSON, LOG_VERBOSE
from .database import engine, get_db, init_db
from .errors import ScheduleError
from .logging_config import configure_logging
from .models import Divert, Hospital
from .payload import ABSENT, DivertKind, strip_absent
from .planner import Window, default_window
from .recurrence import expand, single
from . import store

logger = logging.getLogger(__name__)

ZONE = resolve_zone(DIVERT_TZ)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(verbose=LOG_VERBOSE, log_json=LOG_JSON)
    init_db(engine)
    logger.info("Serving diverts in %s", DIVERT_TZ)
    yield


app = FastAPI(title="Divert Board", lifespan=lifespan)


@app.exception_handler(ScheduleError)
async def schedule_error_handler(request: Request, exc: ScheduleError):
    logger.info("Rejected schedule on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": f"Invalid schedule: {exc}"})


async def _json_object(request: Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="JSON object required")
    return data


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _required_text(data: dict, key: str) -> str:
    value = _text(data, key)
    if not value:
        raise HTTPException(status_code=400, detail=f"{key} required")
    return value


def _divert_json(d: Divert) -> dict[str, Any]:
    return strip_absent({
        "id": d.id,
        "date_key": d.date_key,
        "hospital_id": d.hospital_id,
        "hospital": d.hospital.name if d.hospital else ABSENT,
        "kind": d.kind,
        "status": d.status,
        "notes": d.notes or ABSENT,
        # Serve UTC with explicit Z so clients render correctly
        "start": isoformat_z(d.started_at),
        "end": isoformat_z(d.cleared_at) if d.cleared_at else None,
        "start_display": format_display(d.started_at, ZONE),
        "end_display": format_display(d.cleared_at, ZONE),
        "source": {"type": d.source_type, "unit_id": d.unit_id or ABSENT},
        "created_by_uid": d.created_by_uid or ABSENT,
    })


@app.get("/api/today")
async def api_today():
    return {"date_key": today_date_key(ZONE), "zone": DIVERT_TZ}


# --- Hospitals ---
@app.get("/api/hospitals")
async def api_list_hospitals(include_inactive: bool = False, db: Session = Depends(get_db)):
    hs = store.list_hospitals(db, include_inactive=include_inactive)
    return [{"id": h.id, "name": h.name, "short_code": h.short_code, "active": h.active} for h in hs]


@app.post("/api/hospitals")
async def api_create_hospital(request: Request, db: Session = Depends(get_db)):
    data = await _json_object(request)
    name = _required_text(data, "name")
    h = store.create_hospital(db, name, _text(data, "short_code"))
    if h is None:
        raise HTTPException(status_code=409, detail="Hospital name already exists")
    return {"id": h.id, "name": h.name, "short_code": h.short_code, "active": h.active}


# --- Diverts ---
@app.post("/api/diverts")
async def api_report_divert(request: Request, db: Session = Depends(get_db)):
    data = await _json_object(request)
    try:
        hospital_id = int(data.get("hospital_id"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="hospital_id required")
    if not db.get(Hospital, hospital_id):
        raise HTTPException(status_code=404, detail="Hospital not found")
    kind = _text(data, "kind") or DivertKind.FULL.value
    if kind not in {k.value for k in DivertKind}:
        raise HTTPException(status_code=400, detail=f"Unknown divert kind: {kind}")
    unit_id = _text(data, "unit_id") or None
    unit_report_key = _text(data, "unit_report_key") or None
    if unit_id and not unit_report_key:
        raise HTTPException(status_code=400, detail="unit_report_key required for unit reports")

    if data.get("recurring") is True:
        occurrences = expand(
            _required_text(data, "start_date"),
            _required_text(data, "end_date"),
            _required_text(data, "daily_start"),
            _required_text(data, "daily_end"),
            ZONE,
        )
    else:
        occurrences = [single(
            _text(data, "start_date") or today_date_key(ZONE),
            _text(data, "start_time") or "00:00",
            _text(data, "end_date") or None,
            _text(data, "end_time") or None,
            ZONE,
        )]

    rows = store.write_occurrences(
        db,
        occurrences,
        hospital_id=hospital_id,
        kind=kind,
        notes=_text(data, "notes") or None,
        created_by_uid=_text(data, "created_by_uid") or None,
        unit_id=unit_id,
        unit_report_key=unit_report_key,
    )
    return {"ok": True, "ids": [r.id for r in rows], "date_keys": [r.date_key for r in rows]}


@app.get("/api/days/{date_key}/diverts")
async def api_day_diverts(date_key: str, db: Session = Depends(get_db)):
    parse_civil_date(date_key)
    return [_divert_json(d) for d in store.diverts_for_date_key(db, date_key)]


def _window(start: Optional[str], end: Optional[str]) -> Window:
    if not start and not end:
        return default_window()
    s = parse_instant(start, ZONE) if start else datetime.now(timezone.utc)
    e = parse_instant(end, ZONE) if end else default_window(s).end
    return Window(start=s, end=e)


@app.get("/api/diverts/active")
async def api_active_diverts(
    start: Optional[str] = None,
    end: Optional[str] = None,
    hospital_id: Optional[list[int]] = Query(default=None),
    db: Session = Depends(get_db),
):
    window = _window(start, end)
    rows = store.active_in_window(db, window, ZONE, BACKFILL_DAYS, hospital_ids=hospital_id)
    return {
        "window": {"start": isoformat_z(window.start), "end": isoformat_z(window.end)},
        "diverts": [_divert_json(d) for d in rows],
    }


@app.post("/api/days/{date_key}/diverts/{divert_id}/clear")
async def api_clear_divert(date_key: str, divert_id: int, db: Session = Depends(get_db)):
    d = store.clear_divert(db, date_key, divert_id)
    if not d:
        raise HTTPException(status_code=404, detail="Not found")
    return _divert_json(d)


# --- ICS Feed ---
def _ics_for_diverts(rows: list[Divert]) -> bytes:
    cal = Calendar()
    cal.add("prodid", "-//Divert Board//EN")
    cal.add("version", "2.0")
    now = datetime.now(timezone.utc)
    for d in rows:
        ev = Event()
        ev.add("uid", f"divert-{d.date_key}-{d.id}@divertboard")
        ev.add("summary", f"{d.hospital.name}: {d.kind} divert")
        ev.add("dtstart", d.started_at.replace(tzinfo=timezone.utc))
        if d.cleared_at:
            ev.add("dtend", d.cleared_at.replace(tzinfo=timezone.utc))
        ev.add("dtstamp", now)
        if d.notes:
            ev.add("description", d.notes)
        cal.add_component(ev)
    return cal.to_ical()


@app.get("/ics/active.ics")
async def ics_active(db: Session = Depends(get_db)):
    rows = store.active_in_window(db, default_window(), ZONE, BACKFILL_DAYS)
    return Response(_ics_for_diverts(rows), media_type="text/calendar; charset=utf-8")
