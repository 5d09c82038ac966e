"""Tests for the file-backed data source."""

import json
from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from locum_match.sources.file import Dataset, FileDataSource

_YAML = dedent("""\
    physicians:
      - id: p1
        med_profession: Physician
        med_speciality: Family Medicine
        preferred_provinces: [ON]
        availability:
          - {from: "2025-07-01T00:00:00", to: "2025-07-31T00:00:00"}
    jobs:
      - id: j1
        med_profession: Physician
        med_speciality: Family Medicine
        location: {lat: 43.65, lng: -79.38}
        full_address: {city: Toronto, province: ON}
        date_range: {from: "2025-07-15T00:00:00", to: "2025-07-21T00:00:00"}
    reservations:
      - id: r1
        locum_job_id: j0
        reserved_by: p1
        status: Ongoing
        reservation_date: {from: "2025-08-01T00:00:00", to: "2025-08-05T00:00:00"}
""")


class TestDataset:
    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        path.write_text(_YAML)
        dataset = Dataset.from_file(path)
        assert [p.id for p in dataset.physicians] == ["p1"]
        assert dataset.jobs[0].province == "ON"
        assert dataset.physicians[0].availability[0].days == 30.0
        assert dataset.reservations[0].reserved_by == "p1"

    def test_from_json(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text(json.dumps({
            "physicians": [
                {"id": "p1", "med_profession": "Physician", "med_speciality": "Family Medicine"},
            ],
        }))
        dataset = Dataset.from_file(path)
        assert len(dataset.physicians) == 1
        assert dataset.jobs == []

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        path.write_text("")
        assert Dataset.from_file(path) == Dataset()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Dataset.from_file(tmp_path / "nope.yaml")

    def test_invalid_record(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        path.write_text("physicians:\n  - id: p1\n")
        with pytest.raises(ValidationError):
            Dataset.from_file(path)


class TestFileDataSource:
    async def test_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        path.write_text(_YAML)
        source = FileDataSource.from_file(path)
        job = await source.get_job("j1")
        assert job is not None
        assert job.med_speciality == "Family Medicine"
        assert await source.get_job("nope") is None
        assert len(await source.list_jobs()) == 1
        assert len(await source.list_physicians()) == 1
        assert len(await source.list_reservations()) == 1

    async def test_lists_are_copies(self) -> None:
        source = FileDataSource(Dataset())
        (await source.list_physicians()).append(None)  # type: ignore[arg-type]
        assert await source.list_physicians() == []
