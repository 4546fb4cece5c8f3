"""001 – Initial schema: organisation, leave ledger, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000+00:00
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
    ("user_role", ["employee", "manager", "admin"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("notification_kind", ["applied", "approved", "rejected"]),
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

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            full_name        VARCHAR(120) NOT NULL,
            email            VARCHAR(255) NOT NULL UNIQUE,
            role             user_role NOT NULL DEFAULT 'employee',
            manager_id       UUID REFERENCES employees(id) ON DELETE SET NULL,
            department_id    UUID REFERENCES departments(id),
            date_of_joining  DATE NOT NULL DEFAULT CURRENT_DATE,
            is_active        BOOLEAN NOT NULL DEFAULT TRUE,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_employees_manager    ON employees(manager_id)")
    op.execute("CREATE INDEX idx_employees_department ON employees(department_id)")

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name          VARCHAR(100) NOT NULL UNIQUE,
            max_per_year  INTEGER NOT NULL,
            created_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_type_max_non_negative CHECK (max_per_year >= 0)
        )
    """)
    op.execute("CREATE UNIQUE INDEX uq_leave_types_name_ci ON leave_types(LOWER(name))")

    # ── 4. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type_id   UUID NOT NULL REFERENCES leave_types(id) ON DELETE CASCADE,
            total_assigned  INTEGER NOT NULL,
            used            INTEGER NOT NULL DEFAULT 0,
            remaining       INTEGER NOT NULL,
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id),
            CONSTRAINT ck_leave_balance_used      CHECK (used >= 0),
            CONSTRAINT ck_leave_balance_remaining CHECK (remaining >= 0),
            CONSTRAINT ck_leave_balance_ledger    CHECK (remaining = total_assigned - used)
        )
    """)

    # ── 5. leave_applications ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applications (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            total_days        INTEGER NOT NULL,
            reason            VARCHAR(500) NOT NULL,
            status            leave_status NOT NULL DEFAULT 'pending',
            reviewer_comment  TEXT,
            reviewed_by       UUID REFERENCES employees(id) ON DELETE SET NULL,
            applied_on        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            action_date       TIMESTAMPTZ,
            version           INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_leave_application_dates CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_application_days  CHECK (total_days >= 1)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_applications_employee_dates
            ON leave_applications(employee_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX ix_leave_applications_status ON leave_applications(status)")

    # ── 6. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            kind          notification_kind NOT NULL,
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            entity_type   VARCHAR(50),
            entity_id     UUID,
            is_read       BOOLEAN NOT NULL DEFAULT FALSE,
            read_at       TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_notifications_recipient_read
            ON notifications(recipient_id, is_read)
    """)

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notifications",
        "leave_applications",
        "leave_balances",
        "leave_types",
        "employees",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
