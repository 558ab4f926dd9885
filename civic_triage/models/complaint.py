from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, Column, JSON


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC form of a timestamp; naive values are taken to be UTC"""
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def strongest(cls, first: Optional["Severity"], second: Optional["Severity"]) -> Optional["Severity"]:
        """Return the higher of two optional severities"""
        if first is None:
            return second
        if second is None:
            return first
        return first if first.rank >= second.rank else second


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ComplaintStatus(str, Enum):
    REPORTED = "reported"
    ACKNOWLEDGED = "acknowledged"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"

    @property
    def stage(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def is_open(self) -> bool:
        return self is not ComplaintStatus.RESOLVED


_STATUS_ORDER = [
    ComplaintStatus.REPORTED,
    ComplaintStatus.ACKNOWLEDGED,
    ComplaintStatus.ASSIGNED,
    ComplaintStatus.RESOLVED,
]


def new_complaint_id() -> str:
    return uuid4().hex


class ComplaintBase(SQLModel):
    id: str = Field(default_factory=new_complaint_id, primary_key=True, max_length=64)
    description: str = Field(default="")
    latitude: float = Field(nullable=False)
    longitude: float = Field(nullable=False)
    category: Optional[str] = Field(default=None, max_length=100)
    severity: Optional[Severity] = None
    status: ComplaintStatus = Field(default=ComplaintStatus.REPORTED)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    priority_score: float = Field(default=0.0)
    scored_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "scored_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class Complaint(ComplaintBase):
    """Canonical complaint aggregate held by the registry"""

    report_ids: List[str] = Field(default_factory=list)
    reporter_ids: List[str] = Field(default_factory=list)

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)

    @property
    def linked_report_count(self) -> int:
        return len(self.report_ids)

    @property
    def is_open(self) -> bool:
        return self.status.is_open


class ComplaintRecord(ComplaintBase, table=True):
    __tablename__ = "complaints"

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    scored_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    report_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    reporter_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
