"""Company leave policy as consumed by the leave engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from backend.common.constants import POOLED_KINDS, ZERO, LeaveKind
from backend.company.models import Company
from backend.leave.chargeable import SandwichPolicy


@dataclass(frozen=True)
class LeavePolicy:
    caps: dict[LeaveKind, Decimal] = field(
        default_factory=lambda: {kind: ZERO for kind in POOLED_KINDS}
    )
    sandwich: SandwichPolicy = field(default_factory=SandwichPolicy)
    total_annual: Decimal = ZERO
    rate_per_month: Decimal = ZERO

    @classmethod
    def from_company(cls, company: Company, default_sandwich_min_days: int) -> LeavePolicy:
        return cls(
            caps={
                LeaveKind.paid: Decimal(company.cap_paid or 0),
                LeaveKind.casual: Decimal(company.cap_casual or 0),
                LeaveKind.sick: Decimal(company.cap_sick or 0),
            },
            sandwich=SandwichPolicy.from_settings(
                company.sandwich_enabled,
                company.sandwich_min_days,
                default_sandwich_min_days,
            ),
            total_annual=Decimal(company.total_annual or 0),
            rate_per_month=Decimal(company.rate_per_month or 0),
        )

    @property
    def accrues(self) -> bool:
        return self.rate_per_month > ZERO and self.total_annual > ZERO
