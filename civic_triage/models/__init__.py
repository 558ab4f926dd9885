# Domain and database models package
from .complaint import Complaint, ComplaintRecord, ComplaintStatus, GeoPoint, Severity, ensure_utc, utc_now
from .report import Report
from .events import Decision, DecisionKind, EventType, IngestionOutcome, StatusEvent

__all__ = [
    "Complaint",
    "ComplaintRecord",
    "ComplaintStatus",
    "Severity",
    "GeoPoint",
    "Report",
    "Decision",
    "DecisionKind",
    "EventType",
    "IngestionOutcome",
    "StatusEvent",
    "ensure_utc",
    "utc_now",
]
