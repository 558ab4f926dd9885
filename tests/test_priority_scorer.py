"""
Unit tests for priority scoring
"""
import math
from datetime import timedelta

import pytest

from civic_triage.models import ComplaintStatus, Severity
from civic_triage.services.priority_scorer import PriorityScorer, ScoringWeights


@pytest.fixture
def scorer():
    return PriorityScorer()


class TestPriorityScorer:
    """Test the urgency formula"""

    def test_fresh_complaint_score(self, scorer, make_complaint, t0):
        complaint = make_complaint(severity=Severity.MEDIUM, report_ids=["r-1"])

        assert scorer.score(complaint, now=t0) == pytest.approx(2.0 + math.log(2))

    def test_full_formula(self, scorer, make_complaint, t0):
        complaint = make_complaint(severity=Severity.HIGH, report_ids=["r-1", "r-2", "r-3"])

        score = scorer.score(complaint, historical_weight=0.5, now=t0 + timedelta(days=7))

        assert score == pytest.approx(3.0 + math.log(4) + 1.5 * 0.5 + 0.5)

    def test_more_linked_reports_score_higher(self, scorer, make_complaint, t0):
        scores = [
            scorer.score(make_complaint(report_ids=[f"r-{i}" for i in range(n)]), now=t0)
            for n in range(1, 6)
        ]

        assert scores == sorted(scores)
        assert len(set(scores)) == len(scores)

    def test_higher_severity_scores_higher(self, scorer, make_complaint, t0):
        low = scorer.score(make_complaint(severity=Severity.LOW), now=t0)
        critical = scorer.score(make_complaint(severity=Severity.CRITICAL), now=t0)

        assert critical - low == pytest.approx(3.0)

    def test_age_factor_saturates(self, scorer, make_complaint, t0):
        complaint = make_complaint()
        at_horizon = scorer.score(complaint, now=t0 + timedelta(days=14))
        long_after = scorer.score(complaint, now=t0 + timedelta(days=90))

        assert at_horizon == pytest.approx(long_after)
        assert scorer.age_factor(t0, t0 + timedelta(days=7)) == pytest.approx(0.5)

    def test_age_factor_never_negative(self, scorer, t0):
        assert scorer.age_factor(t0, t0 - timedelta(hours=1)) == 0.0

    def test_unknown_severity_uses_default(self, scorer, make_complaint, t0):
        unknown = scorer.score(make_complaint(severity=None), now=t0)
        low = scorer.score(make_complaint(severity=Severity.LOW), now=t0)

        assert unknown == pytest.approx(low)

    def test_resolved_complaint_scores_zero(self, scorer, make_complaint, t0):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED, severity=Severity.CRITICAL)

        assert scorer.score(complaint, historical_weight=5.0, now=t0) == 0.0

    def test_score_is_deterministic(self, scorer, make_complaint, t0):
        complaint = make_complaint()
        now = t0 + timedelta(days=3)

        assert scorer.score(complaint, 0.2, now) == scorer.score(complaint, 0.2, now)


class TestScoringWeights:
    """Test weight configuration"""

    def test_custom_weights(self, make_complaint, t0):
        scorer = PriorityScorer(ScoringWeights(severity_weight=2.0, duplicates_weight=0.0, age_weight=0.0))

        assert scorer.score(make_complaint(severity=Severity.HIGH), now=t0) == pytest.approx(6.0)

    def test_invalid_horizon(self):
        with pytest.raises(ValueError):
            PriorityScorer(ScoringWeights(age_horizon=timedelta(0)))

    def test_from_settings(self):
        scorer = PriorityScorer.from_settings()

        assert scorer.weights.age_horizon == timedelta(days=14)
        assert scorer.weights.severity_values["critical"] == 4.0
