"""001 – Initial schema: all tables, indexes, enums, seed settings.

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
    ("user_role", ["employee", "reporting_manager", "admin", "super_admin"]),
    ("attendance_status", ["present", "absent", "late", "half_day"]),
    ("leave_status", ["pending", "approved", "rejected"]),
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

    # ── 1. companies ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE companies (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(200) NOT NULL,
            domain      VARCHAR(255) UNIQUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. teams ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE teams (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id  UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            name        VARCHAR(100) NOT NULL,
            description TEXT,
            manager_id  UUID,  -- FK added after profiles table
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_team_company_name UNIQUE (company_id, name)
        )
    """)
    op.execute("CREATE INDEX idx_teams_company ON teams(company_id)")

    # ── 3. profiles ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE profiles (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id           UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            email                VARCHAR(255) NOT NULL UNIQUE,
            name                 VARCHAR(200) NOT NULL,
            role                 user_role NOT NULL DEFAULT 'employee',
            department           VARCHAR(100),
            position             VARCHAR(100),
            hire_date            DATE,
            is_active            BOOLEAN DEFAULT TRUE,
            reporting_manager_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
            team_id              UUID REFERENCES teams(id) ON DELETE SET NULL,
            password_hash        VARCHAR(255),
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_profiles_company ON profiles(company_id)")
    op.execute("CREATE INDEX idx_profiles_manager ON profiles(reporting_manager_id)")
    op.execute("CREATE INDEX idx_profiles_email_lower ON profiles(LOWER(email))")

    # Deferred FK: teams.manager_id → profiles
    op.execute("""
        ALTER TABLE teams
            ADD CONSTRAINT fk_teams_manager_id
            FOREIGN KEY (manager_id) REFERENCES profiles(id) ON DELETE SET NULL
    """)

    # ── 4. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            profile_id         UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            token_hash         VARCHAR(128) NOT NULL,
            refresh_token_hash VARCHAR(128),
            ip_address         INET,
            user_agent         TEXT,
            expires_at         TIMESTAMPTZ NOT NULL,
            is_revoked         BOOLEAN DEFAULT FALSE,
            created_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_user_sessions_profile ON user_sessions(profile_id)")
    op.execute("CREATE INDEX idx_user_sessions_token   ON user_sessions(token_hash)")
    op.execute("CREATE INDEX idx_user_sessions_refresh ON user_sessions(refresh_token_hash)")

    # ── 5. password_reset_tokens ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE password_reset_tokens (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            profile_id  UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            token_hash  VARCHAR(128) NOT NULL UNIQUE,
            expires_at  TIMESTAMPTZ NOT NULL,
            used_at     TIMESTAMPTZ,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 6. attendance ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id       UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            employee_id      UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            date             DATE NOT NULL,
            check_in_time    TIMESTAMPTZ,
            check_out_time   TIMESTAMPTZ,
            status           attendance_status NOT NULL DEFAULT 'present',
            notes            TEXT,
            location         JSONB,
            pending_approval BOOLEAN DEFAULT FALSE,
            requestor_role   user_role,
            change_reason    TEXT,
            updated_by       UUID REFERENCES profiles(id) ON DELETE SET NULL,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_employee_date UNIQUE (employee_id, date)
        )
    """)
    op.execute("CREATE INDEX ix_attendance_company_date ON attendance(company_id, date)")
    op.execute("""
        CREATE INDEX idx_attendance_pending
            ON attendance(company_id) WHERE pending_approval
    """)

    # ── 7. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id   UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            name         VARCHAR(200) NOT NULL,
            date         DATE NOT NULL,
            description  TEXT,
            is_recurring BOOLEAN DEFAULT FALSE,
            created_at   TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_holiday_company_date_name UNIQUE (company_id, date, name)
        )
    """)
    op.execute("CREATE INDEX idx_holidays_company ON holidays(company_id)")

    # ── 8. system_settings ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE system_settings (
            key         VARCHAR(100) PRIMARY KEY,
            value       TEXT NOT NULL,
            description TEXT,
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_by  UUID REFERENCES profiles(id) ON DELETE SET NULL
        )
    """)

    # ── 9. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id        UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            name              VARCHAR(100) NOT NULL,
            description       TEXT,
            max_days_per_year INTEGER,
            is_active         BOOLEAN DEFAULT TRUE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_type_company_name UNIQUE (company_id, name)
        )
    """)
    op.execute("CREATE INDEX idx_leave_types_company ON leave_types(company_id)")

    # ── 10. leave_balances ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id     UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            employee_id    UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            leave_type_id  UUID NOT NULL REFERENCES leave_types(id) ON DELETE CASCADE,
            year           INTEGER NOT NULL,
            allocated_days INTEGER DEFAULT 0,
            used_days      INTEGER DEFAULT 0,
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year)
        )
    """)

    # ── 11. leave_requests ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id     UUID NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            employee_id    UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            leave_type_id  UUID REFERENCES leave_types(id) ON DELETE SET NULL,
            start_date     DATE NOT NULL,
            end_date       DATE NOT NULL,
            total_days     INTEGER NOT NULL,
            reason         TEXT,
            status         leave_status NOT NULL DEFAULT 'pending',
            approved_by    UUID REFERENCES profiles(id) ON DELETE SET NULL,
            approved_at    TIMESTAMPTZ,
            admin_comments TEXT,
            created_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute("CREATE INDEX idx_leave_requests_company ON leave_requests(company_id)")
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_status
            ON leave_requests(employee_id, status)
    """)

    # ── 12. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES profiles(id) ON DELETE SET NULL,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            ip_address  INET,
            user_agent  TEXT,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    op.execute("""
        INSERT INTO system_settings (key, value, description) VALUES
        ('late_mark_time', '09:30', 'Check-ins strictly after this local time are marked late.')
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "system_settings",
        "holidays",
        "attendance",
        "password_reset_tokens",
        "user_sessions",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop deferred FK before dropping profiles / teams
    op.execute("ALTER TABLE teams DROP CONSTRAINT IF EXISTS fk_teams_manager_id")
    op.execute("DROP TABLE IF EXISTS profiles CASCADE")
    op.execute("DROP TABLE IF EXISTS teams CASCADE")
    op.execute("DROP TABLE IF EXISTS companies CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
