"""001 – Initial schema: companies, calendar, employees + ledger, leave requests, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "hr_admin", "system_admin"]),
    ("leave_kind", ["paid", "casual", "sick", "unpaid"]),
    ("leave_status", ["pending", "approved", "rejected"]),
    ("day_override_kind", ["working", "holiday", "half_day"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. companies (leave policy as flat columns) ───────────────────────
    op.execute("""
        CREATE TABLE companies (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name               VARCHAR(200) NOT NULL,
            cap_paid           NUMERIC(7,2) NOT NULL DEFAULT 0,
            cap_casual         NUMERIC(7,2) NOT NULL DEFAULT 0,
            cap_sick           NUMERIC(7,2) NOT NULL DEFAULT 0,
            total_annual       NUMERIC(7,2) NOT NULL DEFAULT 0,
            rate_per_month     NUMERIC(7,2) NOT NULL DEFAULT 0,
            sandwich_enabled   BOOLEAN NOT NULL DEFAULT FALSE,
            sandwich_min_days  INTEGER,
            created_at         TIMESTAMPTZ DEFAULT NOW(),
            updated_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees (with the leave ledger) ──────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                       UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id               UUID NOT NULL REFERENCES companies(id),
            name                     VARCHAR(200) NOT NULL,
            email                    VARCHAR(255) NOT NULL UNIQUE,
            role                     user_role NOT NULL DEFAULT 'employee',
            reporting_manager_id     UUID REFERENCES employees(id),
            is_active                BOOLEAN NOT NULL DEFAULT TRUE,
            total_leave_available    NUMERIC(8,2) NOT NULL DEFAULT 0,
            used_paid                NUMERIC(8,2) NOT NULL DEFAULT 0,
            used_casual              NUMERIC(8,2) NOT NULL DEFAULT 0,
            used_sick                NUMERIC(8,2) NOT NULL DEFAULT 0,
            used_unpaid              NUMERIC(8,2) NOT NULL DEFAULT 0,
            balance_paid             NUMERIC(8,2) NOT NULL DEFAULT 0,
            balance_casual           NUMERIC(8,2) NOT NULL DEFAULT 0,
            balance_sick             NUMERIC(8,2) NOT NULL DEFAULT 0,
            balance_unpaid           NUMERIC(8,2) NOT NULL DEFAULT 0,
            last_accrued_year_month  VARCHAR(7),
            ledger_version           INTEGER NOT NULL DEFAULT 0,
            created_at               TIMESTAMPTZ DEFAULT NOW(),
            updated_at               TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_employees_company ON employees(company_id)")
    op.execute("CREATE INDEX idx_employees_manager ON employees(reporting_manager_id)")

    # ── 3. bank_holidays ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE bank_holidays (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id  UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            date        DATE NOT NULL,
            name        VARCHAR(150),
            CONSTRAINT uq_bank_holiday_company_date UNIQUE (company_id, date)
        )
    """)

    # ── 4. company_day_overrides ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE company_day_overrides (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id  UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            date        DATE NOT NULL,
            kind        day_override_kind NOT NULL,
            note        TEXT,
            updated_by  UUID REFERENCES employees(id),
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_day_override_company_date UNIQUE (company_id, date)
        )
    """)

    # ── 5. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            company_id       UUID NOT NULL REFERENCES companies(id),
            approver_id      UUID REFERENCES employees(id),
            leave_type       leave_kind NOT NULL,
            fallback_type    leave_kind,
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            reason           TEXT,
            status           leave_status NOT NULL DEFAULT 'pending',
            admin_message    TEXT,
            chargeable_days  NUMERIC(6,1),
            alloc_paid       NUMERIC(7,2) NOT NULL DEFAULT 0,
            alloc_casual     NUMERIC(7,2) NOT NULL DEFAULT 0,
            alloc_sick       NUMERIC(7,2) NOT NULL DEFAULT 0,
            alloc_unpaid     NUMERIC(7,2) NOT NULL DEFAULT 0,
            reviewed_by      UUID REFERENCES employees(id),
            reviewed_at      TIMESTAMPTZ,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_range CHECK (start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_status "
        "ON leave_requests(employee_id, status)"
    )

    # ── 6. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_requests",
        "company_day_overrides",
        "bank_holidays",
        "employees",
        "companies",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
