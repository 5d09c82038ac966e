"""Abstract base class for the clean-record data source the orchestrator reads from."""

from abc import ABC, abstractmethod

from locum_match.core.schemas import LocumJob, Physician, Reservation


class MatchingDataSource(ABC):
    """Supplies already-normalized jobs, physicians and reservations."""

    @abstractmethod
    async def get_job(self, job_id: str) -> LocumJob | None:
        """Return the job with this id, or None if it does not exist."""

    @abstractmethod
    async def list_jobs(self) -> list[LocumJob]:
        """Return every job posting."""

    @abstractmethod
    async def list_physicians(self) -> list[Physician]:
        """Return the full physician pool."""

    @abstractmethod
    async def list_reservations(self) -> list[Reservation]:
        """Return reservations used for scheduling-conflict checks."""
