# Overview: Pure first-expiry-first-out batch selection.

"""
Batch allocator.

Given a product's batches and a requested quantity, pick batches in
earliest-expiry-first order and report how much of the request could not be
covered. Undated batches are used after every dated batch; ties on expiry
fall back to the batch sequence (insertion order).

The allocator works on immutable snapshots and never mutates its inputs; the
caller applies the plan to the database.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional


@dataclass(frozen=True)
class BatchSnapshot:
    batch_id: int
    expiry_date: Optional[date]
    remaining_quantity: int
    # Insertion order; the batch primary key when read from the database
    sequence: int = 0

    @classmethod
    def from_model(cls, batch) -> "BatchSnapshot":
        return cls(
            batch_id=batch.id,
            expiry_date=batch.expiry_date,
            remaining_quantity=batch.remaining_quantity,
            sequence=batch.id,
        )


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: int
    expiry_date: Optional[date]
    quantity: int


@dataclass(frozen=True)
class Allocation:
    allocations: tuple[BatchAllocation, ...]
    shortfall: int

    @property
    def allocated(self) -> int:
        return sum(a.quantity for a in self.allocations)

    @property
    def satisfied(self) -> bool:
        return self.shortfall == 0


def consumption_order(batches: Iterable[BatchSnapshot]) -> list[BatchSnapshot]:
    """Eligible batches, earliest expiry first, undated last."""
    eligible = [b for b in batches if b.remaining_quantity > 0]
    return sorted(
        eligible,
        key=lambda b: (b.expiry_date is None, b.expiry_date or date.max, b.sequence),
    )


def allocate(batches: Iterable[BatchSnapshot], requested: int) -> Allocation:
    if requested <= 0:
        raise ValueError("requested quantity must be positive")

    still_needed = requested
    picked: list[BatchAllocation] = []
    for batch in consumption_order(batches):
        if still_needed == 0:
            break
        take = min(batch.remaining_quantity, still_needed)
        picked.append(BatchAllocation(batch.batch_id, batch.expiry_date, take))
        still_needed -= take

    return Allocation(allocations=tuple(picked), shortfall=still_needed)


def restore_plan(usages) -> "OrderedDict[int, int]":
    """
    Group recorded usages into {batch_id: quantity} for restoration.

    Accepts any objects with batch_id and quantity_used (OrderBatchUsage rows)
    or quantity (BatchAllocation). First-seen order is kept.
    """
    plan: "OrderedDict[int, int]" = OrderedDict()
    for usage in usages:
        qty = getattr(usage, "quantity_used", None)
        if qty is None:
            qty = usage.quantity
        if qty <= 0:
            continue
        plan[usage.batch_id] = plan.get(usage.batch_id, 0) + qty
    return plan
