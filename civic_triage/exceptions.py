"""
Error taxonomy for complaint ingestion and triage
"""
from typing import Optional


class CivicTriageError(Exception):
    """Base class for all triage errors"""


class InvalidInput(CivicTriageError):
    """Report rejected before any mutation (bad location, missing fields)"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ExternalDataUnavailable(CivicTriageError):
    """Classifier, tagger or trend provider could not supply a value"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} unavailable: {message}")
        self.service = service


class ConcurrencyConflict(CivicTriageError):
    """Lock acquisition timed out; the caller may resubmit the report"""

    def __init__(self, key: str, attempts: int = 1):
        super().__init__(f"Could not acquire lock {key} after {attempts} attempt(s)")
        self.key = key
        self.attempts = attempts


class PersistenceError(CivicTriageError):
    """Complaint store write or read failed"""


class IngestionCancelled(CivicTriageError):
    """Caller cancelled ingestion before any state was mutated"""


class ComplaintNotFound(CivicTriageError):
    """No open complaint with the requested id"""

    def __init__(self, complaint_id: str):
        super().__init__(f"Complaint {complaint_id} not found among open complaints")
        self.complaint_id = complaint_id


class InvalidStatusTransition(CivicTriageError):
    """Requested status change is not a forward transition"""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition complaint from {current} to {requested}")
        self.current = current
        self.requested = requested
