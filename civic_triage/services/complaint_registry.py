"""
Registry of open complaints with their geo index
"""
import threading
from typing import Dict, Iterable, List, Optional

from civic_triage.models import Complaint
from civic_triage.services.complaint_store import ComplaintStore
from civic_triage.services.geo_index import GeoIndex
from civic_triage.logging_config import logger


class ComplaintRegistry:
    """
    In-memory view of every open complaint.

    Complaints held here are treated as immutable values: callers copy,
    modify, persist, then ``put`` the new version. Readers therefore always
    see a complete complaint.
    """

    def __init__(self, geo_index: Optional[GeoIndex] = None):
        self.geo_index = geo_index or GeoIndex.from_settings()
        self._complaints: Dict[str, Complaint] = {}
        self._report_owner: Dict[str, str] = {}
        self._write_lock = threading.Lock()

    async def warm(self, store: ComplaintStore) -> int:
        """
        Load open complaints from the store and index them

        Args:
            store: Complaint store

        Returns:
            Number of complaints loaded
        """
        complaints = await store.load_open_complaints()
        self.clear()
        loaded = 0
        for complaint in complaints:
            if not complaint.is_open:
                continue
            self.put(complaint)
            self.geo_index.insert(complaint.id, complaint.location)
            loaded += 1
        logger.info(f"Complaint registry warmed with {loaded} open complaints")
        return loaded

    def get(self, complaint_id: str) -> Optional[Complaint]:
        return self._complaints.get(complaint_id)

    def get_many(self, complaint_ids: Iterable[str]) -> List[Complaint]:
        complaints = self._complaints
        return [complaints[cid] for cid in complaint_ids if cid in complaints]

    def put(self, complaint: Complaint) -> None:
        """Replace the stored version of a complaint"""
        with self._write_lock:
            complaints = dict(self._complaints)
            complaints[complaint.id] = complaint
            self._complaints = complaints
            for report_id in complaint.report_ids:
                self._report_owner[report_id] = complaint.id

    def discard(self, complaint_id: str) -> Optional[Complaint]:
        """
        Drop a complaint from the open set (e.g. once resolved)

        Report ownership is kept so a resolved complaint's reports are
        still rejected as already ingested.
        """
        with self._write_lock:
            if complaint_id not in self._complaints:
                return None
            complaints = dict(self._complaints)
            removed = complaints.pop(complaint_id)
            self._complaints = complaints
        return removed

    def owner_of_report(self, report_id: str) -> Optional[str]:
        return self._report_owner.get(report_id)

    def open_complaints(self) -> List[Complaint]:
        return list(self._complaints.values())

    def triage_queue(self, limit: Optional[int] = None) -> List[Complaint]:
        """Open complaints ordered by priority score, highest first"""
        ordered = sorted(
            self._complaints.values(),
            key=lambda c: (-c.priority_score, c.created_at, c.id)
        )
        return ordered[:limit] if limit is not None else ordered

    def clear(self) -> None:
        with self._write_lock:
            self._complaints = {}
            self._report_owner = {}
        self.geo_index.clear()

    def __contains__(self, complaint_id: object) -> bool:
        return complaint_id in self._complaints

    def __len__(self) -> int:
        return len(self._complaints)
