"""Tests for part planning and seeding."""

import pytest

from partcopy.errors import InvalidSizeError
from partcopy.messages import FetchMessage
from partcopy.partstore import ByteRange
from partcopy.planner import plan_parts

from conftest import drain


class TestPlanParts:
    """Tests for plan_parts()."""

    def test_remainder_goes_to_last_part(self):
        ranges = plan_parts(2500000, 1000000)
        assert ranges == [
            ByteRange(0, 999999),
            ByteRange(1000000, 1999999),
            ByteRange(2000000, 2499999),
        ]

    def test_exact_single_part(self):
        assert plan_parts(1000000, 1000000) == [ByteRange(0, 999999)]

    def test_exact_multiple_keeps_full_last_part(self):
        ranges = plan_parts(3000, 1000)
        assert len(ranges) == 3
        assert ranges[-1] == ByteRange(2000, 2999)

    def test_part_larger_than_file(self):
        assert plan_parts(10, 1000) == [ByteRange(0, 9)]

    def test_one_byte_parts(self):
        ranges = plan_parts(3, 1)
        assert ranges == [ByteRange(0, 0), ByteRange(1, 1), ByteRange(2, 2)]

    @pytest.mark.parametrize(
        "file_size,part_size",
        [(1, 1), (7, 3), (999, 1000), (1001, 1000), (123457, 4096), (10**9 + 1, 8 * 1024**2)],
    )
    def test_ranges_cover_file_contiguously(self, file_size, part_size):
        ranges = plan_parts(file_size, part_size)
        assert len(ranges) == -(-file_size // part_size)
        assert ranges[0].start == 0
        assert ranges[-1].end == file_size - 1
        for prev, nxt in zip(ranges, ranges[1:]):
            assert nxt.start == prev.end + 1
        assert all(r.length == part_size for r in ranges[:-1])
        assert 0 < ranges[-1].length <= part_size
        assert sum(r.length for r in ranges) == file_size

    @pytest.mark.parametrize(
        "file_size,part_size",
        [(0, 1000), (1000, 0), (-1, 1000), (1000, -5), (0, 0), (10.5, 2), (10, True), (None, 10)],
    )
    def test_invalid_sizes_rejected(self, file_size, part_size):
        with pytest.raises(InvalidSizeError):
            plan_parts(file_size, part_size)


class TestPlannerSeed:
    """Tests for Planner.seed()."""

    async def test_seeds_records_and_one_fetch_per_part(self, planner, store, queue, session):
        ranges = plan_parts(2500, 1000)
        records = await planner.seed(session, ranges)

        assert [r.part_index for r in records] == [0, 1, 2]
        assert all(not r.complete for r in records)
        assert (await store.counts(session)).total == 3

        messages = await drain(queue)
        assert len(messages) == 3
        assert all(isinstance(m, FetchMessage) for m in messages)
        assert [(m.part_index, m.byte_start, m.byte_end) for m in messages] == [
            (0, 0, 999),
            (1, 1000, 1999),
            (2, 2000, 2499),
        ]
        assert {m.upload_id for m in messages} == {session.upload_id}
        assert {(m.bucket, m.key) for m in messages} == {(session.bucket, session.key)}

    async def test_reseeding_is_idempotent_for_store(self, planner, store, session):
        ranges = plan_parts(2500, 1000)
        first = await planner.seed(session, ranges)
        second = await planner.seed(session, ranges)
        assert first == second
        counts = await store.counts(session)
        assert (counts.total, counts.completed) == (3, 0)
