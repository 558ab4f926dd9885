"""
Urgency scoring for the triage queue
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from civic_triage.config import settings
from civic_triage.models import Complaint, Severity, ensure_utc, utc_now
from civic_triage.logging_config import logger


def _default_severity_values() -> Dict[str, float]:
    return {"low": 1.0, "medium": 2.0, "high": 3.0, "critical": 4.0}


@dataclass(frozen=True)
class ScoringWeights:
    """
    Tunable parameters of the priority formula

    score = severity_weight * severity
          + duplicates_weight * ln(1 + linked_reports)
          + age_weight * min(age / age_horizon, 1)
          + trend_weight * historical_weight
    """

    severity_weight: float = 1.0
    duplicates_weight: float = 1.0
    age_weight: float = 1.5
    trend_weight: float = 1.0
    age_horizon: timedelta = timedelta(days=14)
    severity_values: Dict[str, float] = field(default_factory=_default_severity_values)
    unknown_severity_value: float = 1.0

    @classmethod
    def from_settings(cls) -> "ScoringWeights":
        return cls(
            severity_weight=settings.SEVERITY_WEIGHT,
            duplicates_weight=settings.DUPLICATES_WEIGHT,
            age_weight=settings.AGE_WEIGHT,
            trend_weight=settings.TREND_WEIGHT,
            age_horizon=timedelta(days=settings.AGE_HORIZON_DAYS),
            severity_values=dict(settings.SEVERITY_VALUES),
            unknown_severity_value=settings.UNKNOWN_SEVERITY_VALUE
        )


class PriorityScorer:
    """Computes a complaint's urgency from its current state and a trend weight"""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()
        if self.weights.age_horizon.total_seconds() <= 0:
            raise ValueError("age_horizon must be positive")
        logger.info(f"Priority scorer initialized with weights {self.weights}")

    @classmethod
    def from_settings(cls) -> "PriorityScorer":
        return cls(ScoringWeights.from_settings())

    def severity_value(self, severity: Optional[Severity]) -> float:
        if severity is None:
            return self.weights.unknown_severity_value
        return self.weights.severity_values.get(severity.value, self.weights.unknown_severity_value)

    def age_factor(self, created_at: datetime, now: datetime) -> float:
        """Linear growth from 0 at creation, saturating at 1 after the horizon"""
        age_seconds = (ensure_utc(now) - ensure_utc(created_at)).total_seconds()
        if age_seconds <= 0:
            return 0.0
        return min(age_seconds / self.weights.age_horizon.total_seconds(), 1.0)

    def score(self, complaint: Complaint, historical_weight: float = 0.0, now: Optional[datetime] = None) -> float:
        """
        Compute the priority score of a complaint

        Args:
            complaint: Complaint in its current state
            historical_weight: Externally supplied trend weight for the
                               complaint's category and area
            now: Reference time for the age factor (default: current UTC time)

        Returns:
            Priority score; resolved complaints score 0.0
        """
        if not complaint.is_open:
            return 0.0

        now = ensure_utc(now) if now else utc_now()
        w = self.weights

        severity_part = w.severity_weight * self.severity_value(complaint.severity)
        duplicates_part = w.duplicates_weight * math.log1p(complaint.linked_report_count)
        age_part = w.age_weight * self.age_factor(complaint.created_at, now)
        trend_part = w.trend_weight * historical_weight

        score = severity_part + duplicates_part + age_part + trend_part

        logger.debug(
            f"Scored complaint {complaint.id}: {score:.3f} "
            f"(severity={severity_part:.2f}, duplicates={duplicates_part:.2f}, "
            f"age={age_part:.2f}, trend={trend_part:.2f})"
        )
        return score
