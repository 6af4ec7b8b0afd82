"""
Tests for the job definition store: date validation and overlap rules
"""

import datetime as dt
import uuid

import pytest

from rsf_queue.exceptions import (
    OverlappingJobDefinitionError,
    UnsupportedJobTypeError,
    ValidationError,
)
from rsf_queue.services.pre_optimization import JobDefinitionRepository
from rsf_queue.services.pre_optimization.definitions import validate_date_range

DAY = dt.timedelta(days=1)


def test_validate_date_range_rejects_reversed_range(date_range):
    start, end = date_range
    with pytest.raises(ValidationError) as exc_info:
        validate_date_range(end, start)
    assert "End date must be after start date" in exc_info.value.message


def test_validate_date_range_rejects_empty_range(date_range):
    start, _ = date_range
    with pytest.raises(ValidationError):
        validate_date_range(start, start)


def test_validate_date_range_treats_naive_as_utc():
    start, end = validate_date_range(dt.datetime(2026, 3, 1), dt.datetime(2026, 3, 2))
    assert start.tzinfo == dt.timezone.utc
    assert end - start == DAY


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_and_get(self, job_definitions, date_range):
        start, end = date_range
        definition = await job_definitions.create("FIDES", start, end, created_by="maria")

        stored = await job_definitions.get(definition.id)
        assert stored == definition
        assert stored.start_date == start
        assert stored.end_date == end
        assert stored.created_by == "maria"

    @pytest.mark.asyncio
    async def test_unsupported_type(self, job_definitions, date_range):
        start, end = date_range
        with pytest.raises(UnsupportedJobTypeError):
            await job_definitions.create("NOPE", start, end, created_by="maria")

    @pytest.mark.asyncio
    async def test_blank_type(self, job_definitions, date_range):
        start, end = date_range
        with pytest.raises(ValidationError):
            await job_definitions.create("  ", start, end, created_by="maria")

    @pytest.mark.asyncio
    async def test_reversed_range_not_stored(self, job_definitions, date_range):
        start, end = date_range
        with pytest.raises(ValidationError):
            await job_definitions.create("FIDES", end, start, created_by="maria")
        assert await job_definitions.list() == []

    @pytest.mark.asyncio
    async def test_get_unknown(self, job_definitions):
        assert await job_definitions.get(uuid.uuid4()) is None
        assert await job_definitions.get("garbage") is None


class TestOverlap:

    @pytest.mark.asyncio
    async def test_overlapping_range_rejected(self, job_definitions, date_range):
        start, end = date_range
        await job_definitions.create("FIDES", start, end, created_by="maria")

        with pytest.raises(OverlappingJobDefinitionError):
            await job_definitions.create("FIDES", start + DAY, end + DAY, created_by="maria")

    @pytest.mark.asyncio
    async def test_contained_range_rejected(self, job_definitions, date_range):
        start, end = date_range
        await job_definitions.create("FIDES", start, end, created_by="maria")

        with pytest.raises(OverlappingJobDefinitionError):
            await job_definitions.create(
                "FIDES", start + dt.timedelta(hours=1), end - dt.timedelta(hours=1), created_by="maria"
            )

    @pytest.mark.asyncio
    async def test_shared_endpoint_is_overlap(self, job_definitions, date_range):
        start, end = date_range
        await job_definitions.create("FIDES", start, end, created_by="maria")

        with pytest.raises(OverlappingJobDefinitionError):
            await job_definitions.create("FIDES", end, end + DAY, created_by="maria")

    @pytest.mark.asyncio
    async def test_adjacent_range_allowed(self, job_definitions, date_range):
        start, end = date_range
        await job_definitions.create("FIDES", start, end, created_by="maria")

        later = await job_definitions.create(
            "FIDES", end + dt.timedelta(seconds=1), end + DAY, created_by="maria"
        )

        assert later.start_date > end
        assert len(await job_definitions.list("FIDES")) == 2

    @pytest.mark.asyncio
    async def test_other_type_may_share_range(self, database, date_range):
        repository = JobDefinitionRepository(database)
        start, end = date_range
        await repository.create("FIDES", start, end, created_by="maria")

        other = await repository.create("MAINTENANCE", start, end, created_by="maria")

        assert other.type == "MAINTENANCE"

    @pytest.mark.asyncio
    async def test_overlap_check_can_exclude_itself(self, job_definitions, date_range):
        start, end = date_range
        definition = await job_definitions.create("FIDES", start, end, created_by="maria")

        await job_definitions.validate_date_range_overlap(
            "FIDES", start, end, exclude_id=definition.id
        )
        with pytest.raises(OverlappingJobDefinitionError):
            await job_definitions.validate_date_range_overlap("FIDES", start, end)
