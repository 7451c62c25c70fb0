"""Company ORM models: Company (leave policy), BankHoliday, CompanyDayOverride."""

from __future__ import annotations

import datetime as dt
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.common.constants import DayOverrideKind
from backend.database import Base

if TYPE_CHECKING:
    from backend.core_hr.models import Employee


class Company(Base):
    """Tenant. Carries the leave policy as flat columns."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)

    # ── Leave policy ────────────────────────────────────────────────
    cap_paid: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    cap_casual: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    cap_sick: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    total_annual: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    rate_per_month: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    sandwich_enabled: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    sandwich_min_days: Mapped[Optional[int]] = mapped_column(sa.Integer)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # Relationships
    employees: Mapped[list["Employee"]] = relationship(back_populates="company")
    bank_holidays: Mapped[list[BankHoliday]] = relationship(
        back_populates="company", cascade="all, delete-orphan",
    )
    day_overrides: Mapped[list[CompanyDayOverride]] = relationship(
        back_populates="company", cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Company {self.name!r}>"


class BankHoliday(Base):
    __tablename__ = "bank_holidays"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "date", name="uq_bank_holiday_company_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(sa.String(150))

    # Relationships
    company: Mapped[Company] = relationship(back_populates="bank_holidays")


class CompanyDayOverride(Base):
    """Company-wide override for one calendar day. One per (company, date)."""

    __tablename__ = "company_day_overrides"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "date", name="uq_day_override_company_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    kind: Mapped[DayOverrideKind] = mapped_column(
        sa.Enum(DayOverrideKind, name="day_override_kind"), nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="day_overrides")
