"""
Ingestion pipeline: validate, resolve, merge or create, score, persist, emit
"""
import asyncio
import random
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from civic_triage.config import settings
from civic_triage.exceptions import (
    CivicTriageError,
    ComplaintNotFound,
    ConcurrencyConflict,
    ExternalDataUnavailable,
    IngestionCancelled,
    InvalidInput,
    InvalidStatusTransition,
    PersistenceError,
)
from civic_triage.models import (
    Complaint,
    ComplaintStatus,
    Decision,
    EventType,
    GeoPoint,
    IngestionOutcome,
    Report,
    Severity,
    StatusEvent,
    ensure_utc,
    utc_now,
)
from civic_triage.services.complaint_registry import ComplaintRegistry
from civic_triage.services.complaint_store import ComplaintStore
from civic_triage.services.duplicate_resolver import DuplicateResolver
from civic_triage.services.event_stream import StatusEventStream
from civic_triage.services.external import TrendProvider
from civic_triage.services.geo_index import GeoGrid, GeoIndex, haversine_distance, is_valid_location
from civic_triage.services.lock_manager import KeyedLockManager
from civic_triage.services.priority_scorer import PriorityScorer
from civic_triage.logging_config import logger

T = TypeVar("T")


def _cell_lock_key(cell: Tuple[int, int]) -> str:
    return f"cell:{cell[0]}:{cell[1]}"


def _complaint_lock_key(complaint_id: str) -> str:
    return f"complaint:{complaint_id}"


def _wrap_longitude(longitude: float) -> float:
    """Normalize a longitude (or longitude difference) into [-180, 180)"""
    return (longitude + 180.0) % 360.0 - 180.0


class IngestionPipeline:
    """
    Processes each incoming report exactly once end-to-end.

    Lock discipline: every grid cell touching the report's search radius is
    held across resolve and mutate, then every candidate complaint. Status
    changes and rescoring only take the complaint lock. Mutation order is
    store first, then registry and geo index, then the status event.
    """

    def __init__(
        self,
        store: ComplaintStore,
        registry: Optional[ComplaintRegistry] = None,
        resolver: Optional[DuplicateResolver] = None,
        scorer: Optional[PriorityScorer] = None,
        lock_manager: Optional[KeyedLockManager] = None,
        event_stream: Optional[StatusEventStream] = None,
        trend_provider: Optional[TrendProvider] = None,
        centroid_shift_m: float = 10.0,
        trend_area_cell_m: float = 1000.0,
        max_lock_attempts: int = 3,
        backoff_base: float = 0.05,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize ingestion pipeline

        Args:
            store: Persistent complaint store
            registry: Open-complaint registry (a fresh one if not provided)
            resolver: Duplicate resolver
            scorer: Priority scorer
            lock_manager: Keyed lock manager
            event_stream: Status event stream
            trend_provider: Synchronous trend weight lookup (zero weights if absent)
            centroid_shift_m: Centroid movement that triggers a geo-index re-insert
            trend_area_cell_m: Grid size of the area key passed to the trend provider
            max_lock_attempts: Attempts before a lock conflict is surfaced
            backoff_base: Base delay in seconds between lock attempts
            clock: Source of the current time
        """
        self.store = store
        self.registry = registry or ComplaintRegistry()
        self.resolver = resolver or DuplicateResolver()
        self.scorer = scorer or PriorityScorer()
        self.locks = lock_manager or KeyedLockManager()
        self.events = event_stream or StatusEventStream()
        self.trend_provider = trend_provider
        self.centroid_shift_m = centroid_shift_m
        self.area_grid = GeoGrid(trend_area_cell_m)
        self.max_lock_attempts = max(1, max_lock_attempts)
        self.backoff_base = backoff_base
        self.clock = clock
        logger.info("Ingestion pipeline initialized")

    @classmethod
    def from_settings(
        cls,
        store: ComplaintStore,
        trend_provider: Optional[TrendProvider] = None,
        event_stream: Optional[StatusEventStream] = None
    ) -> "IngestionPipeline":
        return cls(
            store=store,
            registry=ComplaintRegistry(GeoIndex.from_settings()),
            resolver=DuplicateResolver.from_settings(),
            scorer=PriorityScorer.from_settings(),
            lock_manager=KeyedLockManager(timeout=settings.LOCK_TIMEOUT_SECONDS),
            event_stream=event_stream or StatusEventStream(history_size=settings.EVENT_HISTORY_SIZE),
            trend_provider=trend_provider,
            centroid_shift_m=settings.CENTROID_SHIFT_METERS,
            trend_area_cell_m=settings.TREND_AREA_CELL_METERS,
            max_lock_attempts=settings.LOCK_MAX_RETRIES,
            backoff_base=settings.LOCK_BACKOFF_BASE_SECONDS
        )

    @property
    def geo_index(self) -> GeoIndex:
        return self.registry.geo_index

    @property
    def radius_m(self) -> float:
        return self.resolver.config.radius_m

    async def warm(self) -> int:
        """Load open complaints from the store into the registry and index"""
        return await self.registry.warm(self.store)

    # ------------------------------------------------------------------
    # Validation and helpers
    # ------------------------------------------------------------------

    def validate(self, report: Report) -> GeoPoint:
        """
        Reject reports that cannot be processed

        Raises:
            InvalidInput: Missing or out-of-range location, empty reporter id
        """
        if not isinstance(report, Report):
            raise InvalidInput("Expected a Report instance")
        if not report.reporter_id or not report.reporter_id.strip():
            raise InvalidInput("Report has no reporter id", field="reporter_id")
        if not report.report_id or not report.report_id.strip():
            raise InvalidInput("Report has no report id", field="report_id")
        if report.latitude is None or report.longitude is None:
            raise InvalidInput("Report has no location", field="location")
        if not is_valid_location(report.latitude, report.longitude):
            raise InvalidInput(
                f"Report location out of range: ({report.latitude}, {report.longitude})",
                field="location"
            )
        return GeoPoint(latitude=report.latitude, longitude=report.longitude)

    def area_of(self, location: GeoPoint) -> str:
        return self.area_grid.area_key(location)

    def trend_weight_for(self, complaint: Complaint) -> float:
        """Trend weight for a complaint; unavailable data counts as zero"""
        if self.trend_provider is None:
            return 0.0
        try:
            return float(self.trend_provider.trend_weight(complaint.category, self.area_of(complaint.location)))
        except ExternalDataUnavailable as e:
            logger.warning(
                f"Trend weight unavailable for complaint {complaint.id}, using 0: {str(e)}",
                extra={'complaint_id': complaint.id}
            )
            return 0.0

    def _rescore(self, complaint: Complaint, now: datetime) -> Complaint:
        complaint.priority_score = self.scorer.score(complaint, self.trend_weight_for(complaint), now)
        complaint.scored_at = now
        return complaint

    @staticmethod
    def _check_cancelled(report: Report, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Ingestion of report {report.report_id} cancelled before mutation")
            raise IngestionCancelled(f"Ingestion of report {report.report_id} was cancelled")

    async def _persist(self, complaint: Complaint) -> None:
        try:
            await self.store.save(complaint)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Store rejected complaint {complaint.id}: {str(e)}", extra={'complaint_id': complaint.id})
            raise PersistenceError(f"Could not save complaint {complaint.id}: {str(e)}") from e

    @staticmethod
    async def _run_to_completion(operation: Awaitable[T]) -> T:
        """Run a mutation that caller cancellation must not interrupt halfway"""
        task = asyncio.ensure_future(operation)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                await asyncio.wait([task])
            raise

    async def _with_lock_retries(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Retry an operation on lock conflicts with exponential backoff and jitter"""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except ConcurrencyConflict as e:
                if attempt >= self.max_lock_attempts:
                    logger.error(f"Lock conflict on {label} persisted after {attempt} attempts")
                    raise ConcurrencyConflict(e.key, attempts=attempt) from e
                wait_time = self.backoff_base * (2 ** (attempt - 1)) + random.uniform(0, self.backoff_base)
                logger.warning(f"Lock conflict on {label}, retry {attempt} in {wait_time:.3f}s")
                await asyncio.sleep(wait_time)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, report: Report, cancel_event: Optional[asyncio.Event] = None) -> IngestionOutcome:
        """
        Ingest a single report

        Args:
            report: Report to process
            cancel_event: Optional signal; once set, ingestion aborts before
                          mutating any state

        Returns:
            IngestionOutcome with the decision, the resulting complaint id and score

        Raises:
            InvalidInput: Report rejected, nothing changed
            IngestionCancelled: Cancelled before mutation, nothing changed
            ConcurrencyConflict: Locks unavailable after bounded retries, nothing changed
            PersistenceError: Store write failed, nothing changed in memory
        """
        location = self.validate(report)
        self._check_cancelled(report, cancel_event)

        outcome = await self._with_lock_retries(
            f"report {report.report_id}",
            lambda: self._ingest_locked(report, location, cancel_event)
        )

        logger.info(
            f"Report {report.report_id} {outcome.event.event_type.value} complaint {outcome.complaint_id} "
            f"(score {outcome.priority_score:.3f})",
            extra={
                'report_id': report.report_id,
                'complaint_id': outcome.complaint_id,
                'event_type': outcome.event.event_type.value
            }
        )
        return outcome

    async def _ingest_locked(self, report: Report, location: GeoPoint, cancel_event: Optional[asyncio.Event]) -> IngestionOutcome:
        cells = self.geo_index.grid.cells_within(location, self.radius_m)

        async with self.locks.hold(_cell_lock_key(cell) for cell in cells):
            owner = self.registry.owner_of_report(report.report_id)
            if owner is not None:
                raise InvalidInput(
                    f"Report {report.report_id} already ingested into complaint {owner}",
                    field="report_id"
                )

            candidate_ids = self.geo_index.query_radius(location, self.radius_m)

            async with self.locks.hold(_complaint_lock_key(cid) for cid in candidate_ids):
                candidates = self.registry.get_many(sorted(candidate_ids))
                decision = self.resolver.resolve(report, candidates)

                self._check_cancelled(report, cancel_event)
                return await self._run_to_completion(self._apply(report, location, decision))

    async def _apply(self, report: Report, location: GeoPoint, decision: Decision) -> IngestionOutcome:
        now = ensure_utc(self.clock())

        if decision.is_merge:
            current = self.registry.get(decision.complaint_id)
            if current is None:
                raise ComplaintNotFound(decision.complaint_id)
            complaint, reindex = self._merged(current, report, location)
            event_type = EventType.MERGED
        else:
            complaint = self._founded(report, location)
            reindex = True
            event_type = EventType.CREATED

        self._rescore(complaint, now)

        await self._persist(complaint)

        self.registry.put(complaint)
        if reindex:
            self.geo_index.insert(complaint.id, complaint.location)

        event = StatusEvent(
            complaint_id=complaint.id,
            event_type=event_type,
            timestamp=now,
            new_score=complaint.priority_score,
            status=complaint.status,
            report_id=report.report_id
        )
        await self.events.publish(event)

        return IngestionOutcome(
            decision=decision,
            complaint_id=complaint.id,
            priority_score=complaint.priority_score,
            event=event
        )

    @staticmethod
    def _founded(report: Report, location: GeoPoint) -> Complaint:
        return Complaint(
            description=report.description,
            latitude=location.latitude,
            longitude=location.longitude,
            category=report.category,
            severity=report.severity,
            status=ComplaintStatus.REPORTED,
            report_ids=[report.report_id],
            reporter_ids=[report.reporter_id],
            created_at=report.submitted_at,
            updated_at=report.submitted_at
        )

    def _merged(self, current: Complaint, report: Report, location: GeoPoint) -> Tuple[Complaint, bool]:
        """
        Copy of a complaint with the report merged in

        Returns:
            (updated complaint, whether the geo index entry must move)
        """
        complaint = current.model_copy(deep=True)
        linked = len(complaint.report_ids)

        complaint.report_ids = complaint.report_ids + [report.report_id]
        if report.reporter_id not in complaint.reporter_ids:
            complaint.reporter_ids = complaint.reporter_ids + [report.reporter_id]

        complaint.severity = Severity.strongest(complaint.severity, report.severity)
        if not complaint.category and report.category:
            complaint.category = report.category
        if not complaint.description.strip() and report.description.strip():
            complaint.description = report.description
        complaint.updated_at = max(complaint.updated_at, report.submitted_at)

        # Running centroid of linked report locations, longitude taken the short way round
        complaint.latitude = current.latitude + (location.latitude - current.latitude) / (linked + 1)
        lon_offset = _wrap_longitude(location.longitude - current.longitude)
        complaint.longitude = _wrap_longitude(current.longitude + lon_offset / (linked + 1))

        indexed = self.geo_index.location_of(complaint.id) or current.location
        shift = haversine_distance(indexed, complaint.location)
        return complaint, shift > self.centroid_shift_m

    # ------------------------------------------------------------------
    # Status changes and rescoring
    # ------------------------------------------------------------------

    async def transition_status(self, complaint_id: str, status: ComplaintStatus, now: Optional[datetime] = None) -> Complaint:
        """
        Move a complaint forward through its lifecycle

        Args:
            complaint_id: Open complaint id
            status: Target status (must be later than the current one)
            now: Time of the authority action (default: clock)

        Returns:
            Updated complaint

        Raises:
            ComplaintNotFound: No open complaint with this id
            InvalidStatusTransition: Target status is not ahead of the current one
        """
        status = ComplaintStatus(status)

        async def _locked() -> Complaint:
            async with self.locks.hold([_complaint_lock_key(complaint_id)]):
                current = self.registry.get(complaint_id)
                if current is None:
                    raise ComplaintNotFound(complaint_id)
                if status.stage <= current.status.stage:
                    raise InvalidStatusTransition(current.status.value, status.value)

                at = ensure_utc(now or self.clock())
                updated = current.model_copy(deep=True)
                updated.status = status
                updated.updated_at = max(updated.updated_at, at)
                self._rescore(updated, at)

                return await self._run_to_completion(self._commit(updated, at))

        complaint = await self._with_lock_retries(f"complaint {complaint_id}", _locked)
        logger.info(
            f"Complaint {complaint_id} moved to {status.value}",
            extra={'complaint_id': complaint_id}
        )
        return complaint

    async def _commit(self, complaint: Complaint, at: datetime) -> Complaint:
        await self._persist(complaint)

        if complaint.is_open:
            self.registry.put(complaint)
        else:
            self.registry.discard(complaint.id)
            self.geo_index.remove(complaint.id)

        await self.events.publish(StatusEvent(
            complaint_id=complaint.id,
            event_type=EventType.RESCORED,
            timestamp=at,
            new_score=complaint.priority_score,
            status=complaint.status
        ))
        return complaint

    async def rescore(self, complaint_id: str, now: Optional[datetime] = None) -> Optional[Complaint]:
        """
        Recompute one complaint's score

        Returns:
            The updated complaint, or None if the score did not change
        """
        async def _locked() -> Optional[Complaint]:
            async with self.locks.hold([_complaint_lock_key(complaint_id)]):
                current = self.registry.get(complaint_id)
                if current is None:
                    raise ComplaintNotFound(complaint_id)

                at = ensure_utc(now or self.clock())
                updated = self._rescore(current.model_copy(deep=True), at)
                if abs(updated.priority_score - current.priority_score) < 1e-9:
                    return None

                return await self._run_to_completion(self._commit(updated, at))

        return await self._with_lock_retries(f"complaint {complaint_id}", _locked)

    async def rescore_all(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Rescore every open complaint (age and trend drift)

        Returns:
            Statistics dictionary
        """
        complaint_ids = [c.id for c in self.registry.open_complaints()]
        stats = {
            'total': len(complaint_ids),
            'rescored': 0,
            'unchanged': 0,
            'errors': 0
        }

        for complaint_id in complaint_ids:
            try:
                updated = await self.rescore(complaint_id, now)
                if updated is None:
                    stats['unchanged'] += 1
                else:
                    stats['rescored'] += 1
            except ComplaintNotFound:
                # Resolved since the sweep started
                stats['unchanged'] += 1
            except (ConcurrencyConflict, PersistenceError) as e:
                logger.error(f"Error rescoring complaint {complaint_id}: {str(e)}")
                stats['errors'] += 1

        logger.info(
            f"Rescore sweep completed - Total: {stats['total']}, Rescored: {stats['rescored']}, "
            f"Unchanged: {stats['unchanged']}, Errors: {stats['errors']}"
        )
        return stats

    def triage_queue(self, limit: Optional[int] = None) -> List[Complaint]:
        return self.registry.triage_queue(limit)

    async def ingest_many(self, reports: Iterable[Report], max_concurrent: int = 8) -> List[Tuple[Report, Optional[IngestionOutcome], Optional[str]]]:
        """
        Ingest reports concurrently

        Args:
            reports: Reports to process
            max_concurrent: Maximum reports in flight

        Returns:
            List of tuples (report, outcome or None, error message or None)
        """
        semaphore = asyncio.Semaphore(max_concurrent)

        async def process(report: Report) -> Tuple[Report, Optional[IngestionOutcome], Optional[str]]:
            async with semaphore:
                try:
                    return report, await self.ingest(report), None
                except CivicTriageError as e:
                    logger.error(f"Error ingesting report {report.report_id}: {str(e)}")
                    return report, None, str(e)

        results: List[Any] = await asyncio.gather(*(process(report) for report in reports))

        success_count = sum(1 for _, outcome, _ in results if outcome is not None)
        logger.info(f"Batch ingestion completed: {success_count}/{len(results)} successful")
        return results
