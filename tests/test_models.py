"""
Unit tests for domain models
"""
import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from civic_triage.models import (
    Complaint,
    ComplaintRecord,
    ComplaintStatus,
    Decision,
    DecisionKind,
    EventType,
    GeoPoint,
    IngestionOutcome,
    Report,
    Severity,
    StatusEvent,
)


class TestReportModel:
    """Test Report model validation"""

    def test_report_creation(self):
        """Test creating a valid report"""
        report = Report(
            reporter_id="citizen-42",
            description="Streetlight out on 5th Ave",
            latitude=12.97,
            longitude=77.59,
            severity="high",
            media_refs=["photo-1.jpg"]
        )

        assert report.reporter_id == "citizen-42"
        assert report.severity == Severity.HIGH
        assert report.media_refs == ("photo-1.jpg",)
        assert report.location == GeoPoint(latitude=12.97, longitude=77.59)
        assert isinstance(report.submitted_at, datetime)
        assert len(report.report_id) == 32

    def test_report_minimal_fields(self):
        """Test report with only required fields"""
        report = Report(reporter_id="citizen-1")

        assert report.description == ""
        assert report.location is None
        assert report.category is None
        assert report.severity is None

    def test_report_is_immutable(self):
        report = Report(reporter_id="citizen-1")

        with pytest.raises(ValidationError):
            report.description = "changed"

    def test_report_ids_are_unique(self):
        assert Report(reporter_id="a").report_id != Report(reporter_id="a").report_id

    def test_invalid_severity_rejected(self):
        with pytest.raises(ValidationError):
            Report(reporter_id="citizen-1", severity="apocalyptic")


class TestComplaintModel:
    """Test Complaint model defaults and helpers"""

    def test_complaint_creation(self):
        complaint = Complaint(
            description="Pothole",
            latitude=12.9,
            longitude=77.6,
            report_ids=["r-1", "r-2"],
            reporter_ids=["citizen-1"]
        )

        assert complaint.status == ComplaintStatus.REPORTED
        assert complaint.is_open
        assert complaint.linked_report_count == 2
        assert complaint.priority_score == 0.0
        assert complaint.location == GeoPoint(latitude=12.9, longitude=77.6)
        assert len(complaint.id) == 32

    def test_resolved_complaint_is_closed(self):
        complaint = Complaint(latitude=0, longitude=0, status=ComplaintStatus.RESOLVED)
        assert not complaint.is_open

    def test_record_round_trip_fields(self):
        complaint = Complaint(
            latitude=12.9,
            longitude=77.6,
            severity=Severity.CRITICAL,
            report_ids=["r-1"],
            reporter_ids=["citizen-1"]
        )

        record = ComplaintRecord(**complaint.model_dump())

        assert record.id == complaint.id
        assert record.report_ids == ["r-1"]
        assert record.severity == Severity.CRITICAL
        assert ComplaintRecord.__tablename__ == "complaints"


class TestTimestamps:
    """Test that every timestamp is held as aware UTC"""

    def test_naive_report_time_is_taken_as_utc(self):
        report = Report(reporter_id="citizen-1", submitted_at=datetime(2025, 3, 1, 9, 0))

        assert report.submitted_at == datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
        assert report.submitted_at.tzinfo is timezone.utc

    def test_offset_report_time_is_converted_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        report = Report(reporter_id="citizen-1", submitted_at=datetime(2025, 3, 1, 14, 30, tzinfo=ist))

        assert report.submitted_at.utcoffset() == timedelta(0)
        assert report.submitted_at == datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_complaint_timestamps_are_utc(self):
        complaint = Complaint(
            latitude=12.9,
            longitude=77.6,
            created_at=datetime(2025, 3, 1, 9, 0),
            scored_at=datetime(2025, 3, 1, 10, 0)
        )

        assert complaint.created_at.tzinfo is timezone.utc
        assert complaint.scored_at.tzinfo is timezone.utc
        assert complaint.updated_at.tzinfo is timezone.utc

    def test_defaults_are_aware(self):
        assert Report(reporter_id="citizen-1").submitted_at.tzinfo is not None
        assert StatusEvent(
            complaint_id="c-1",
            event_type=EventType.CREATED,
            new_score=1.0,
            status=ComplaintStatus.REPORTED,
            timestamp=datetime(2025, 3, 1, 9, 0)
        ).timestamp.tzinfo is timezone.utc


class TestEnums:
    """Test severity and status ordering"""

    def test_severity_strongest(self):
        assert Severity.strongest(Severity.MEDIUM, Severity.HIGH) == Severity.HIGH
        assert Severity.strongest(Severity.CRITICAL, Severity.LOW) == Severity.CRITICAL
        assert Severity.strongest(None, Severity.LOW) == Severity.LOW
        assert Severity.strongest(Severity.LOW, None) == Severity.LOW
        assert Severity.strongest(None, None) is None

    def test_status_stages(self):
        stages = [s.stage for s in (
            ComplaintStatus.REPORTED,
            ComplaintStatus.ACKNOWLEDGED,
            ComplaintStatus.ASSIGNED,
            ComplaintStatus.RESOLVED,
        )]
        assert stages == [0, 1, 2, 3]
        assert [s for s in ComplaintStatus if not s.is_open] == [ComplaintStatus.RESOLVED]


class TestEventModels:
    """Test decisions, outcomes and status events"""

    def test_decisions(self):
        new = Decision.new_complaint()
        merge = Decision.merge_into("c-1", text_score=0.75, proximity_score=0.6, combined_score=0.69)

        assert new.kind == DecisionKind.NEW_COMPLAINT and not new.is_merge
        assert merge.is_merge and merge.complaint_id == "c-1"

    def test_outcome_created_flag(self):
        event = StatusEvent(
            complaint_id="c-1",
            event_type=EventType.CREATED,
            new_score=2.7,
            status=ComplaintStatus.REPORTED
        )
        outcome = IngestionOutcome(
            decision=Decision.new_complaint(),
            complaint_id="c-1",
            priority_score=2.7,
            event=event
        )

        assert outcome.created
        assert event.report_id is None
        assert isinstance(event.timestamp, datetime)
