from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .complaint import ComplaintStatus, ensure_utc, utc_now


class EventType(str, Enum):
    CREATED = "created"
    MERGED = "merged"
    RESCORED = "rescored"


class StatusEvent(BaseModel):
    """Outcome notification consumed by dashboards and notifiers"""

    model_config = ConfigDict(frozen=True)

    complaint_id: str
    event_type: EventType
    timestamp: datetime = Field(default_factory=utc_now)
    new_score: float
    status: ComplaintStatus
    report_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class DecisionKind(str, Enum):
    NEW_COMPLAINT = "new_complaint"
    MERGE_INTO = "merge_into"


class Decision(BaseModel):
    """Result of duplicate resolution for a single report"""

    model_config = ConfigDict(frozen=True)

    kind: DecisionKind
    complaint_id: Optional[str] = None
    text_score: float = 0.0
    proximity_score: float = 0.0
    combined_score: float = 0.0

    @classmethod
    def new_complaint(cls) -> "Decision":
        return cls(kind=DecisionKind.NEW_COMPLAINT)

    @classmethod
    def merge_into(cls, complaint_id: str, text_score: float, proximity_score: float, combined_score: float) -> "Decision":
        return cls(
            kind=DecisionKind.MERGE_INTO,
            complaint_id=complaint_id,
            text_score=text_score,
            proximity_score=proximity_score,
            combined_score=combined_score
        )

    @property
    def is_merge(self) -> bool:
        return self.kind is DecisionKind.MERGE_INTO


class IngestionOutcome(BaseModel):
    """Synchronous answer to the reporting client"""

    model_config = ConfigDict(frozen=True)

    decision: Decision
    complaint_id: str
    priority_score: float
    event: StatusEvent

    @property
    def created(self) -> bool:
        return not self.decision.is_merge
