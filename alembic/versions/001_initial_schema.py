"""001 – Initial schema: employees, leave ledger, requests, overtime credits, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
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
    (
        "leave_category",
        ["annual", "sick", "substitute", "compensatory", "family_event", "civil_duty"],
    ),
    ("leave_unit", ["days", "hours"]),
    ("leave_status", ["pending", "approved", "rejected"]),
    ("day_class", ["weekday", "saturday", "sunday_or_holiday"]),
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
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees (owned by the HR service; read-only here) ───────────
    op.execute("""
        CREATE TABLE IF NOT EXISTS employees (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code     VARCHAR(20)  NOT NULL UNIQUE,
            full_name         VARCHAR(255) NOT NULL,
            email             VARCHAR(255) NOT NULL UNIQUE,
            hire_date         DATE,
            termination_date  DATE,
            is_active         BOOLEAN DEFAULT TRUE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_ledgers ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_ledgers (
            employee_id              UUID PRIMARY KEY REFERENCES employees(id),
            annual_days              INTEGER      NOT NULL DEFAULT 0,
            used_annual_days         NUMERIC(5,1) NOT NULL DEFAULT 0,
            sick_days                INTEGER      NOT NULL DEFAULT 60,
            used_sick_days           NUMERIC(5,1) NOT NULL DEFAULT 0,
            substitute_leave_hours   NUMERIC(6,1) NOT NULL DEFAULT 0,
            compensatory_leave_hours NUMERIC(6,1) NOT NULL DEFAULT 0,
            version                  INTEGER      NOT NULL DEFAULT 1,
            updated_at               TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_annual_used CHECK (used_annual_days <= annual_days),
            CONSTRAINT ck_ledger_sick_used CHECK (used_sick_days <= sick_days),
            CONSTRAINT ck_ledger_substitute_hours CHECK (substitute_leave_hours >= 0),
            CONSTRAINT ck_ledger_compensatory_hours CHECK (compensatory_leave_hours >= 0)
        )
    """)

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            leave_type        leave_category NOT NULL,
            sub_type          VARCHAR(50),
            requested_amount  NUMERIC(5,1) NOT NULL,
            unit              leave_unit   NOT NULL,
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            reason            TEXT,
            status            leave_status NOT NULL DEFAULT 'pending',
            submitted_at      TIMESTAMPTZ  NOT NULL DEFAULT NOW(),
            processed_at      TIMESTAMPTZ,
            processed_by      UUID REFERENCES employees(id),
            admin_notes       TEXT,
            CHECK (start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_status "
        "ON leave_requests(employee_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leave_requests_submitted_at ON leave_requests(submitted_at)"
    )

    # ── 4. overtime_credits ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE overtime_credits (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id        UUID NOT NULL REFERENCES employees(id),
            work_date          DATE NOT NULL,
            day_class          day_class NOT NULL,
            holiday_name       VARCHAR(100),
            hours_worked       NUMERIC(5,1) NOT NULL,
            substitute_hours   NUMERIC(5,1) NOT NULL DEFAULT 0,
            compensatory_hours NUMERIC(5,1) NOT NULL DEFAULT 0,
            created_by         UUID REFERENCES employees(id),
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_overtime_credit_day UNIQUE (employee_id, work_date)
        )
    """)

    # ── 5. audit_trail ────────────────────────────────────────────────────
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
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for t in ["audit_trail", "overtime_credits", "leave_requests", "leave_ledgers"]:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
