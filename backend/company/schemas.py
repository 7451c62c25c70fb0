"""Company calendar Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.common.constants import DayOverrideKind


# ── Leave policy ────────────────────────────────────────────────────

class LeavePolicyOut(BaseModel):
    """Policy as the engine sees it (``sandwich_min_days`` already normalised)."""

    company_id: uuid.UUID
    cap_paid: Decimal
    cap_casual: Decimal
    cap_sick: Decimal
    total_annual: Decimal
    rate_per_month: Decimal
    sandwich_enabled: bool
    sandwich_min_days: int


class LeavePolicyUpdate(BaseModel):
    """Replace the company's leave policy. Caps may not exceed the annual total."""

    cap_paid: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    cap_casual: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    cap_sick: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    total_annual: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    rate_per_month: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    sandwich_enabled: bool = False
    sandwich_min_days: Optional[int] = None


# ── Bank holidays ───────────────────────────────────────────────────

class BankHolidayCreate(BaseModel):
    date: dt.date
    name: Optional[str] = Field(None, max_length=150)


class BankHolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    date: dt.date
    name: Optional[str] = None


# ── Day overrides ───────────────────────────────────────────────────

class DayOverrideUpsert(BaseModel):
    """Set (or replace) the override for one calendar day."""

    date: dt.date
    kind: DayOverrideKind
    note: Optional[str] = Field(None, max_length=500)


class DayOverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    date: dt.date
    kind: DayOverrideKind
    note: Optional[str] = None
    updated_by: Optional[uuid.UUID] = None
    updated_at: Optional[dt.datetime] = None
