"""Allocation of chargeable days across the leave buckets.

Order of funding: requested type → fallback type → unpaid. Paid, casual and
sick are limited by both their per-type cap and the shared pool; unpaid is the
uncapped backstop, so allocation never fails for lack of balance unless the
caller insists on an explicit fallback (backfill import).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Union

from backend.common.constants import ALL_KINDS, POOLED_KINDS, ZERO, LeaveKind

Number = Union[Decimal, int, float, str]


class AllocationError(ValueError):
    """Raised when the allocation cannot be funded under the caller's rules."""


def _dec(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Allocation:
    """How one leave request is funded. Immutable once computed."""

    paid: Decimal = ZERO
    casual: Decimal = ZERO
    sick: Decimal = ZERO
    unpaid: Decimal = ZERO

    @classmethod
    def from_mapping(cls, values: Mapping[LeaveKind, Decimal]) -> Allocation:
        return cls(**{k.value: _dec(values.get(k)) for k in ALL_KINDS})

    def get(self, kind: LeaveKind) -> Decimal:
        return getattr(self, kind.value)

    @property
    def pooled(self) -> Decimal:
        """Days drawn from the shared pool (everything except unpaid)."""
        return self.paid + self.casual + self.sick

    @property
    def total(self) -> Decimal:
        return self.pooled + self.unpaid

    def as_dict(self) -> dict[str, Decimal]:
        return {k.value: self.get(k) for k in ALL_KINDS}


def _remaining_cap(
    kind: LeaveKind,
    caps: Mapping[LeaveKind, Number],
    used: Mapping[LeaveKind, Number],
) -> Decimal:
    return max(ZERO, _dec(caps.get(kind)) - _dec(used.get(kind)))


def allocate(
    chargeable_days: Number,
    kind: LeaveKind,
    fallback: Optional[LeaveKind],
    caps: Mapping[LeaveKind, Number],
    used_so_far: Mapping[LeaveKind, Number],
    pool_now: Number,
    *,
    require_fallback: bool = False,
) -> Allocation:
    """Split ``chargeable_days`` across buckets.

    Args:
        chargeable_days: Non-negative day count (0.5 granularity).
        kind: Requested leave type.
        fallback: Bucket to try once ``kind`` is exhausted. ``None`` means
            unpaid, unless ``require_fallback`` is set.
        caps: Per-type caps for paid / casual / sick (unpaid ignored).
        used_so_far: Cumulative usage per bucket before this request.
        pool_now: Current shared pool; a negative pool is treated as empty.
        require_fallback: Raise instead of defaulting to unpaid when the
            requested type cannot cover the whole request.

    Guarantees ``result.total == chargeable_days`` and
    ``result.pooled <= max(0, pool_now)``.

    Raises:
        AllocationError: negative day count, or a missing fallback while
            ``require_fallback`` is set.
    """
    days = _dec(chargeable_days)
    if days < ZERO:
        raise AllocationError(f"Chargeable days must be non-negative, got {days}.")

    kind = LeaveKind(kind)
    allocations: dict[LeaveKind, Decimal] = {k: ZERO for k in ALL_KINDS}

    if kind is LeaveKind.unpaid:
        allocations[LeaveKind.unpaid] = days
        return Allocation.from_mapping(allocations)

    pool = max(ZERO, _dec(pool_now))
    first_part = min(days, _remaining_cap(kind, caps, used_so_far), pool)
    allocations[kind] = first_part
    remaining = days - first_part

    if remaining > ZERO:
        if fallback is None:
            if require_fallback:
                raise AllocationError(
                    f"Insufficient {kind.value} leave. Missing fallback_type."
                )
            fallback = LeaveKind.unpaid
        fallback = LeaveKind(fallback)

        if fallback in POOLED_KINDS:
            # Usage includes anything already placed in this bucket above,
            # so a fallback equal to the requested type cannot exceed its cap.
            used_fb = {fallback: _dec(used_so_far.get(fallback)) + allocations[fallback]}
            remain_fb = _remaining_cap(fallback, caps, used_fb)
            pool_left = max(ZERO, pool - sum(allocations[k] for k in POOLED_KINDS))
            use_fb = min(remaining, remain_fb, pool_left)
            allocations[fallback] += use_fb
            remaining -= use_fb

        allocations[LeaveKind.unpaid] += remaining

    return Allocation.from_mapping(allocations)
