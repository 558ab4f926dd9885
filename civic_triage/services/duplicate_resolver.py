"""
Duplicate resolution: decide whether a report joins an existing complaint
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional

from civic_triage.config import settings
from civic_triage.models import Complaint, Decision, Report
from civic_triage.services.geo_index import haversine_distance
from civic_triage.services.text_similarity import TextSimilarityEngine
from civic_triage.logging_config import logger


@dataclass(frozen=True)
class ResolverConfig:
    radius_m: float = 150.0
    text_threshold: float = 0.4
    text_weight: float = 0.6
    proximity_weight: float = 0.4
    recency_window: timedelta = timedelta(days=30)
    empty_text_min_proximity: float = 0.9

    @classmethod
    def from_settings(cls) -> "ResolverConfig":
        return cls(
            radius_m=settings.DEDUP_RADIUS_METERS,
            text_threshold=settings.TEXT_SIMILARITY_THRESHOLD,
            text_weight=settings.TEXT_SCORE_WEIGHT,
            proximity_weight=settings.PROXIMITY_SCORE_WEIGHT,
            recency_window=timedelta(days=settings.RECENCY_WINDOW_DAYS),
            empty_text_min_proximity=settings.EMPTY_TEXT_MIN_PROXIMITY
        )


@dataclass(frozen=True)
class ScoredCandidate:
    complaint_id: str
    distance_m: float
    text_score: float
    proximity_score: float
    combined_score: float


def categories_compatible(first: Optional[str], second: Optional[str]) -> bool:
    """Unknown categories match anything; known ones compare case-insensitively"""
    if not first or not second:
        return True
    return first.strip().casefold() == second.strip().casefold()


class DuplicateResolver:
    """
    Pure decision function over a report and its nearby open complaints.

    The resolver never mutates anything; the ingestion pipeline applies the
    returned decision.
    """

    def __init__(self, similarity_engine: Optional[TextSimilarityEngine] = None, config: Optional[ResolverConfig] = None):
        self.similarity_engine = similarity_engine or TextSimilarityEngine()
        self.config = config or ResolverConfig()
        if self.config.radius_m <= 0:
            raise ValueError("radius_m must be positive")
        logger.info(f"Duplicate resolver initialized with {self.config}")

    @classmethod
    def from_settings(cls, similarity_engine: Optional[TextSimilarityEngine] = None) -> "DuplicateResolver":
        return cls(similarity_engine=similarity_engine, config=ResolverConfig.from_settings())

    def proximity_score(self, distance_m: float) -> float:
        return min(1.0, max(0.0, 1.0 - distance_m / self.config.radius_m))

    def score_candidates(self, report: Report, candidates: Iterable[Complaint]) -> List[ScoredCandidate]:
        """
        Score and filter candidates; survivors are sorted best first

        Args:
            report: Incoming report (must have a location)
            candidates: Nearby complaints

        Returns:
            Surviving candidates ordered by combined score, then complaint id
        """
        location = report.location
        if location is None:
            raise ValueError("Report has no location")

        cfg = self.config
        text_present = self.similarity_engine.has_content(report.description)
        survivors: List[ScoredCandidate] = []

        for complaint in candidates:
            if not complaint.is_open:
                continue

            if not categories_compatible(report.category, complaint.category):
                logger.debug(f"Candidate {complaint.id} rejected: category {complaint.category!r} != {report.category!r}")
                continue

            if report.submitted_at - complaint.updated_at > cfg.recency_window:
                logger.debug(f"Candidate {complaint.id} rejected: last updated {complaint.updated_at.isoformat()}")
                continue

            distance = haversine_distance(location, complaint.location)
            if distance > cfg.radius_m:
                continue
            proximity = self.proximity_score(distance)

            if text_present:
                text_score = self.similarity_engine.similarity(report.description, complaint.description)
                if text_score < cfg.text_threshold:
                    logger.debug(f"Candidate {complaint.id} rejected: text score {text_score:.3f}")
                    continue
            else:
                # No text: only a very close spatial match qualifies, at a reduced score
                text_score = 0.0
                if proximity < cfg.empty_text_min_proximity:
                    continue

            combined = cfg.text_weight * text_score + cfg.proximity_weight * proximity
            survivors.append(ScoredCandidate(
                complaint_id=complaint.id,
                distance_m=distance,
                text_score=text_score,
                proximity_score=proximity,
                combined_score=combined
            ))

        survivors.sort(key=lambda c: (-c.combined_score, c.complaint_id))
        return survivors

    def resolve(self, report: Report, candidates: Iterable[Complaint]) -> Decision:
        """
        Decide whether a report is a duplicate

        Args:
            report: Incoming report
            candidates: Open complaints returned by the radius query

        Returns:
            Decision.new_complaint() or Decision.merge_into(best id)
        """
        survivors = self.score_candidates(report, candidates)

        if not survivors:
            logger.debug(f"Report {report.report_id}: no duplicate found")
            return Decision.new_complaint()

        best = survivors[0]
        logger.debug(
            f"Report {report.report_id}: duplicate of {best.complaint_id} "
            f"(text={best.text_score:.3f}, proximity={best.proximity_score:.3f})"
        )
        return Decision.merge_into(
            complaint_id=best.complaint_id,
            text_score=best.text_score,
            proximity_score=best.proximity_score,
            combined_score=best.combined_score
        )

