"""
Interfaces to external collaborators and report enrichment
"""
from typing import Optional, Protocol, Sequence

from pydantic import BaseModel

from civic_triage.exceptions import ExternalDataUnavailable
from civic_triage.models import Report, Severity
from civic_triage.logging_config import logger


class ClassificationResult(BaseModel):
    category: Optional[str] = None
    sentiment: Optional[float] = None


class TextClassifier(Protocol):
    async def classify(self, text: str) -> ClassificationResult:
        ...


class ImageTagger(Protocol):
    async def tag(self, media_refs: Sequence[str]) -> Optional[Severity]:
        ...


class TrendProvider(Protocol):
    def trend_weight(self, category: Optional[str], area: str) -> float:
        ...


class ReportEnricher:
    """
    Fills classifier and tagger outputs into a report before ingestion.

    Runs outside the ingestion critical section. Unavailable services leave
    the report's own values in place.
    """

    def __init__(self, classifier: Optional[TextClassifier] = None, tagger: Optional[ImageTagger] = None):
        self.classifier = classifier
        self.tagger = tagger

    async def enrich(self, report: Report) -> Report:
        """
        Return a copy of the report with category, sentiment and severity filled in

        Args:
            report: Raw report

        Returns:
            Enriched report (the same object if nothing changed)
        """
        updates = {}

        if self.classifier is not None and report.description.strip():
            try:
                result = await self.classifier.classify(report.description)
                if report.category is None and result.category:
                    updates['category'] = result.category
                if report.sentiment is None and result.sentiment is not None:
                    updates['sentiment'] = result.sentiment
            except ExternalDataUnavailable as e:
                logger.warning(
                    f"Classifier unavailable for report {report.report_id}, category left unknown: {str(e)}",
                    extra={'report_id': report.report_id}
                )

        if self.tagger is not None and report.media_refs:
            try:
                hint = await self.tagger.tag(report.media_refs)
                severity = Severity.strongest(report.severity, hint)
                if severity != report.severity:
                    updates['severity'] = severity
            except ExternalDataUnavailable as e:
                logger.warning(
                    f"Image tagger unavailable for report {report.report_id}: {str(e)}",
                    extra={'report_id': report.report_id}
                )

        if not updates:
            return report

        logger.debug(f"Enriched report {report.report_id} with {sorted(updates)}")
        return report.model_copy(update=updates)
