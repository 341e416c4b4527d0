from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, Index
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Hospital(Base):
    __tablename__ = "hospitals"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, unique=True)
    short_code: Mapped[str] = mapped_column(String, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    diverts: Mapped[list["Divert"]] = relationship("Divert", back_populates="hospital")


class Divert(Base):
    """One occurrence of a divert, stored in the partition of the day it starts."""

    __tablename__ = "diverts"
    __table_args__ = (
        Index("ix_diverts_partition_status", "date_key", "status"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    date_key: Mapped[str] = mapped_column(String(10), index=True)  # "YYYY-MM-DD"
    hospital_id: Mapped[int] = mapped_column(ForeignKey("hospitals.id"))
    kind: Mapped[str] = mapped_column(String)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, default="active")
    started_at: Mapped[datetime] = mapped_column(DateTime)  # naive UTC
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)  # naive UTC, None while open
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    source_type: Mapped[str] = mapped_column(String, default="user")
    created_by_uid: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    unit_report_key: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    hospital: Mapped["Hospital"] = relationship("Hospital", back_populates="diverts")
