# Business logic services package
from .geo_index import GeoGrid, GeoIndex, haversine_distance
from .text_similarity import TextSimilarityEngine
from .duplicate_resolver import DuplicateResolver, ResolverConfig
from .priority_scorer import PriorityScorer, ScoringWeights
from .lock_manager import KeyedLockManager
from .event_stream import StatusEventStream
from .complaint_store import ComplaintStore, InMemoryComplaintStore, SQLComplaintStore
from .complaint_registry import ComplaintRegistry
from .external import ClassificationResult, ReportEnricher
from .classifier_service import OpenAIClassifier
from .trend_provider import HttpTrendSource, TrendWeightCache
from .ingestion_pipeline import IngestionPipeline
from .scheduler import RescoreScheduler

__all__ = [
    "GeoGrid",
    "GeoIndex",
    "haversine_distance",
    "TextSimilarityEngine",
    "DuplicateResolver",
    "ResolverConfig",
    "PriorityScorer",
    "ScoringWeights",
    "KeyedLockManager",
    "StatusEventStream",
    "ComplaintStore",
    "InMemoryComplaintStore",
    "SQLComplaintStore",
    "ComplaintRegistry",
    "ClassificationResult",
    "ReportEnricher",
    "OpenAIClassifier",
    "HttpTrendSource",
    "TrendWeightCache",
    "IngestionPipeline",
    "RescoreScheduler",
]
