from datetime import datetime
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .complaint import GeoPoint, Severity, ensure_utc, utc_now


class Report(BaseModel):
    """Raw citizen report; immutable once created"""

    model_config = ConfigDict(frozen=True)

    report_id: str = Field(default_factory=lambda: uuid4().hex)
    reporter_id: str
    description: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None
    severity: Optional[Severity] = None
    sentiment: Optional[float] = None
    media_refs: Tuple[str, ...] = ()
    submitted_at: datetime = Field(default_factory=utc_now)

    @field_validator("submitted_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def location(self) -> Optional[GeoPoint]:
        if self.latitude is None or self.longitude is None:
            return None
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)
