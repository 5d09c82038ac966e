"""Data source backed by a JSON or YAML dataset of clean records.

Expected layout::

    physicians: [...]
    jobs: [...]
    reservations: [...]
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from locum_match.core.schemas import LocumJob, Physician, Reservation
from locum_match.sources.base import MatchingDataSource

logger = logging.getLogger(__name__)


class Dataset(BaseModel):
    physicians: list[Physician] = Field(default_factory=list)
    jobs: list[LocumJob] = Field(default_factory=list)
    reservations: list[Reservation] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: str | Path) -> "Dataset":
        """Load a dataset from a .json, .yaml or .yml file."""
        path = Path(path)
        if not path.exists():
            msg = f"Dataset file not found: {path}"
            raise FileNotFoundError(msg)
        text = path.read_text()
        if path.suffix.lower() == ".json":
            raw: dict[str, Any] = json.loads(text) if text.strip() else {}
        else:
            raw = yaml.safe_load(text) or {}
        dataset = cls.model_validate(raw)
        logger.info(
            "Loaded %d physicians, %d jobs, %d reservations from %s",
            len(dataset.physicians), len(dataset.jobs), len(dataset.reservations), path,
        )
        return dataset


class FileDataSource(MatchingDataSource):
    """Serves records from an in-memory Dataset."""

    def __init__(self, dataset: Dataset) -> None:
        self._dataset = dataset
        self._jobs = {j.id: j for j in dataset.jobs}

    @classmethod
    def from_file(cls, path: str | Path) -> "FileDataSource":
        return cls(Dataset.from_file(path))

    async def get_job(self, job_id: str) -> LocumJob | None:
        return self._jobs.get(job_id)

    async def list_jobs(self) -> list[LocumJob]:
        return list(self._dataset.jobs)

    async def list_physicians(self) -> list[Physician]:
        return list(self._dataset.physicians)

    async def list_reservations(self) -> list[Reservation]:
        return list(self._dataset.reservations)
