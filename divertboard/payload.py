from __future__ import annotations
from enum import Enum
from typing import Any, Mapping, Optional

from .recurrence import Occurrence


class DivertKind(str, Enum):
    FULL = "full"
    LABS_XRAY = "labs-xray"
    CT = "ct"
    OTHER = "other"


class DivertStatus(str, Enum):
    ACTIVE = "active"
    CLEARED = "cleared"


class _Absent:
    """Marks a payload field that must not be written at all."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def strip_absent(obj: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively drop ABSENT values; nested mappings left empty are dropped too.

    Explicit None is kept, it is how an open-ended divert stores its end.
    """
    cleaned: dict[str, Any] = {}
    for key, value in obj.items():
        if value is ABSENT:
            continue
        if isinstance(value, Mapping):
            nested = strip_absent(value)
            if nested:
                cleaned[key] = nested
        else:
            cleaned[key] = value
    return cleaned


def user_source() -> dict[str, Any]:
    return {"type": "user"}


def unit_source(unit_id: str) -> dict[str, Any]:
    return {"type": "unit", "unit_id": unit_id}


def is_source_user(source: Any) -> bool:
    return isinstance(source, Mapping) and source.get("type") == "user"


def is_source_unit(source: Any) -> bool:
    return (
        isinstance(source, Mapping)
        and source.get("type") == "unit"
        and isinstance(source.get("unit_id"), str)
    )


def build_divert_payload(
    occurrence: Occurrence,
    *,
    hospital_id: int,
    kind: DivertKind | str,
    notes: Optional[str] = None,
    created_by_uid: Optional[str] = None,
    unit_id: Optional[str] = None,
    unit_report_key: Optional[str] = None,
) -> dict[str, Any]:
    """Shape one occurrence into the record written to its day partition.

    A ``unit_id`` makes this a unit report carrying ``unit_report_key``;
    otherwise it is a user report carrying ``created_by_uid``.
    """
    by_unit = bool(unit_id)
    payload = {
        "hospital_id": hospital_id,
        "kind": DivertKind(kind).value,
        "notes": (notes or "").strip() or ABSENT,
        "status": DivertStatus.ACTIVE.value,
        "started_at": occurrence.start,
        "cleared_at": occurrence.end,
        "date_key": occurrence.date_key,
        "source": unit_source(unit_id) if by_unit else user_source(),
        "created_by_uid": ABSENT if by_unit else (created_by_uid or ABSENT),
        "unit_report_key": (unit_report_key or ABSENT) if by_unit else ABSENT,
    }
    return strip_absent(payload)
