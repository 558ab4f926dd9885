"""
Complaint persistence behind a narrow load/save interface
"""
from typing import Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from civic_triage.database import DatabaseManager
from civic_triage.exceptions import PersistenceError
from civic_triage.models import Complaint, ComplaintRecord, ComplaintStatus
from civic_triage.logging_config import logger


class ComplaintStore(Protocol):
    async def load_open_complaints(self) -> Sequence[Complaint]:
        ...

    async def save(self, complaint: Complaint) -> None:
        ...


class InMemoryComplaintStore:
    """Dictionary-backed store; keeps resolved complaints for history"""

    def __init__(self, complaints: Optional[Sequence[Complaint]] = None):
        self._complaints: Dict[str, Complaint] = {}
        self.save_count = 0
        for complaint in complaints or ():
            self._complaints[complaint.id] = complaint.model_copy(deep=True)

    async def load_open_complaints(self) -> List[Complaint]:
        return [c.model_copy(deep=True) for c in self._complaints.values() if c.is_open]

    async def save(self, complaint: Complaint) -> None:
        self._complaints[complaint.id] = complaint.model_copy(deep=True)
        self.save_count += 1

    def get(self, complaint_id: str) -> Optional[Complaint]:
        complaint = self._complaints.get(complaint_id)
        return complaint.model_copy(deep=True) if complaint else None

    def all(self) -> List[Complaint]:
        return [c.model_copy(deep=True) for c in self._complaints.values()]

    def __len__(self) -> int:
        return len(self._complaints)


class SQLComplaintStore:
    """SQLModel-backed store using the async database manager"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def to_record(complaint: Complaint) -> ComplaintRecord:
        return ComplaintRecord(**complaint.model_dump())

    @staticmethod
    def from_record(record: ComplaintRecord) -> Complaint:
        return Complaint.model_validate(record.model_dump())

    async def load_open_complaints(self) -> List[Complaint]:
        """
        Load every complaint that is not resolved

        Returns:
            List of complaints

        Raises:
            PersistenceError: If the query fails
        """
        try:
            async with self.db_manager.get_session() as session:
                result = await session.execute(
                    select(ComplaintRecord).where(ComplaintRecord.status != ComplaintStatus.RESOLVED)
                )
                complaints = [self.from_record(record) for record in result.scalars().all()]
            logger.info(f"Loaded {len(complaints)} open complaints from database")
            return complaints
        except SQLAlchemyError as e:
            logger.error(f"Error loading open complaints: {str(e)}")
            raise PersistenceError(f"Could not load open complaints: {str(e)}") from e

    async def save(self, complaint: Complaint) -> None:
        """
        Insert or update a complaint

        Raises:
            PersistenceError: If the write fails
        """
        try:
            async with self.db_manager.get_session() as session:
                await session.merge(self.to_record(complaint))
            logger.debug(f"Saved complaint {complaint.id}")
        except SQLAlchemyError as e:
            logger.error(f"Error saving complaint {complaint.id}: {str(e)}")
            raise PersistenceError(f"Could not save complaint {complaint.id}: {str(e)}") from e

    async def get(self, complaint_id: str) -> Optional[Complaint]:
        try:
            async with self.db_manager.get_session() as session:
                record = await session.get(ComplaintRecord, complaint_id)
                return self.from_record(record) if record else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load complaint {complaint_id}: {str(e)}") from e
