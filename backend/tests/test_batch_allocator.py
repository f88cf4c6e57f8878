"""
Batch allocator tests (first-expiry-first-out).
"""

from datetime import date

import pytest

from stockpilot.services.batch_allocator import (
    BatchAllocation,
    BatchSnapshot,
    allocate,
    consumption_order,
    restore_plan,
)


def snap(batch_id, expiry, remaining):
    return BatchSnapshot(batch_id=batch_id, expiry_date=expiry, remaining_quantity=remaining, sequence=batch_id)


JAN = date(2026, 1, 31)
MAR = date(2026, 3, 31)
JUN = date(2026, 6, 30)


class TestConsumptionOrder:
    def test_earliest_expiry_first_undated_last(self):
        batches = [snap(1, None, 5), snap(2, JUN, 5), snap(3, JAN, 5), snap(4, MAR, 5)]
        assert [b.batch_id for b in consumption_order(batches)] == [3, 4, 2, 1]

    def test_same_expiry_keeps_insertion_order(self):
        batches = [snap(7, MAR, 1), snap(3, MAR, 1), snap(5, MAR, 1)]
        assert [b.batch_id for b in consumption_order(batches)] == [3, 5, 7]

    def test_empty_batches_skipped(self):
        batches = [snap(1, JAN, 0), snap(2, MAR, 4)]
        assert [b.batch_id for b in consumption_order(batches)] == [2]


class TestAllocate:
    def test_single_batch(self):
        plan = allocate([snap(1, JAN, 10)], 4)
        assert plan.allocations == (BatchAllocation(1, JAN, 4),)
        assert plan.satisfied
        assert plan.allocated == 4

    def test_spans_batches_in_expiry_order(self):
        batches = [snap(1, MAR, 10), snap(2, JAN, 3)]
        plan = allocate(batches, 7)
        assert plan.allocations == (BatchAllocation(2, JAN, 3), BatchAllocation(1, MAR, 4))
        assert plan.shortfall == 0

    def test_shortfall_reported(self):
        plan = allocate([snap(1, JAN, 2), snap(2, None, 3)], 8)
        assert not plan.satisfied
        assert plan.allocated == 5
        assert plan.shortfall == 3

    def test_no_batches(self):
        plan = allocate([], 1)
        assert plan.allocations == ()
        assert plan.shortfall == 1

    def test_never_takes_more_than_remaining(self):
        batches = [snap(1, JAN, 2), snap(2, MAR, 2), snap(3, JUN, 2)]
        plan = allocate(batches, 6)
        remaining = {b.batch_id: b.remaining_quantity for b in batches}
        for item in plan.allocations:
            assert 0 < item.quantity <= remaining[item.batch_id]
        assert plan.allocated == 6

    @pytest.mark.parametrize("requested", [0, -3])
    def test_non_positive_request_rejected(self, requested):
        with pytest.raises(ValueError):
            allocate([snap(1, JAN, 5)], requested)


class _Usage:
    def __init__(self, batch_id, quantity_used):
        self.batch_id = batch_id
        self.quantity_used = quantity_used


class TestRestorePlan:
    def test_groups_by_batch_keeping_first_seen_order(self):
        plan = restore_plan([_Usage(4, 2), _Usage(1, 3), _Usage(4, 1)])
        assert list(plan.items()) == [(4, 3), (1, 3)]

    def test_accepts_allocations(self):
        plan = restore_plan([BatchAllocation(2, JAN, 5)])
        assert dict(plan) == {2: 5}

    def test_skips_zero_usages(self):
        assert dict(restore_plan([_Usage(1, 0)])) == {}
