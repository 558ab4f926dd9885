"""
Tests for the FastAPI host
"""
from unittest.mock import Mock, patch

from fastapi.testclient import TestClient

from civic_triage.config import Settings
from civic_triage.main import app, build_enricher
from civic_triage.services import OpenAIClassifier


def test_health_without_pipeline():
    """Test health endpoint before startup has wired the pipeline"""
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "civic-triage", "open_complaints": 0}


def test_health_reports_open_complaints():
    pipeline = Mock()
    pipeline.registry = [object(), object()]
    app.state.pipeline = pipeline
    try:
        response = TestClient(app).get("/health")
    finally:
        del app.state.pipeline

    assert response.json()["open_complaints"] == 2


def test_enricher_uses_openai_classifier_when_key_is_set():
    with patch("civic_triage.main.settings", Settings(OPENAI_API_KEY="test-key")):
        enricher = build_enricher()

    assert isinstance(enricher.classifier, OpenAIClassifier)
    assert enricher.classifier.api_key == "test-key"


def test_enricher_without_key_skips_classification():
    with patch("civic_triage.main.settings", Settings(OPENAI_API_KEY=None)):
        enricher = build_enricher()

    assert enricher.classifier is None
    assert enricher.tagger is None
