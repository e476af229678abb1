"""001 – Payroll schema: employees, attendance, salary configs, pay periods, payments.

Uses CREATE TABLE IF NOT EXISTS so the migration is safe to run against a
database where the directory and attendance tables are already owned by
another service.

Revision ID: 001_payroll_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

import re

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_payroll_schema"
down_revision = None
branch_labels = None
depends_on = None

_SAFE_IDENT_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


def _validate_identifier(name: str) -> str:
    if not _SAFE_IDENT_RE.match(name):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return name


def _safe_drop_table(name: str) -> None:
    _validate_identifier(name)
    op.execute(sa.text(f'DROP TABLE IF EXISTS "{name}" CASCADE'))


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ══════════════════════════════════════════════════════════════════
    # 1. employees (directory)
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS employees (
            employee_id     VARCHAR(50) PRIMARY KEY,
            first_name      VARCHAR(100) NOT NULL,
            last_name       VARCHAR(100) NOT NULL,
            email           VARCHAR(255),
            department      VARCHAR(100),
            position        VARCHAR(100),
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 2. attendance_records
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS attendance_records (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     VARCHAR(50) NOT NULL REFERENCES employees(employee_id),
            record_date     DATE NOT NULL,
            status          VARCHAR(20) NOT NULL DEFAULT 'present',
            check_in_time   TIMESTAMPTZ,
            check_out_time  TIMESTAMPTZ,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_employee_date UNIQUE (employee_id, record_date)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_attendance_employee_date "
        "ON attendance_records(employee_id, record_date)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 3. salary_configs
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS salary_configs (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id           VARCHAR(50) NOT NULL UNIQUE REFERENCES employees(employee_id),
            base_salary           NUMERIC(12, 2) DEFAULT 0,
            tax_rate              NUMERIC(5, 2) DEFAULT 0,
            social_security_rate  NUMERIC(5, 2) DEFAULT 0,
            contract_type         VARCHAR(50),
            working_days          INTEGER DEFAULT 22,
            daily_hours           NUMERIC(4, 2) DEFAULT 8,
            overtime_multiplier   NUMERIC(4, 2) DEFAULT 1.5,
            bonus_fixed           NUMERIC(12, 2) DEFAULT 0,
            bonus_variable        NUMERIC(12, 2) DEFAULT 0,
            other_deductions      NUMERIC(12, 2) DEFAULT 0,
            allowances            JSONB DEFAULT '[]'::jsonb,
            deductions            JSONB DEFAULT '[]'::jsonb,
            is_active             BOOLEAN DEFAULT TRUE,
            created_at            TIMESTAMPTZ DEFAULT NOW(),
            updated_at            TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 4. pay_periods
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS pay_periods (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            period           VARCHAR(7) NOT NULL UNIQUE,
            label            VARCHAR(50),
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            status           VARCHAR(20) NOT NULL DEFAULT 'draft',
            total_employees  INTEGER DEFAULT 0,
            total_amount     NUMERIC(14, 2) DEFAULT 0,
            paid_at          TIMESTAMPTZ,
            paid_by          VARCHAR(100),
            emails_sent      INTEGER DEFAULT 0,
            emails_failed    INTEGER DEFAULT 0,
            email_details    JSONB,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_pay_periods_status
                CHECK (status IN ('draft', 'calculated', 'processing', 'paid'))
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 5. salary_payments
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS salary_payments (
            id                         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id                VARCHAR(50) NOT NULL REFERENCES employees(employee_id),
            period                     VARCHAR(7) NOT NULL
                                           REFERENCES pay_periods(period) ON DELETE CASCADE,
            days_worked                INTEGER DEFAULT 0,
            days_present               INTEGER DEFAULT 0,
            days_absent                INTEGER DEFAULT 0,
            late_days                  INTEGER DEFAULT 0,
            early_leave_days           INTEGER DEFAULT 0,
            overtime_hours             NUMERIC(8, 2) DEFAULT 0,
            base_salary                NUMERIC(12, 2) DEFAULT 0,
            overtime_amount            NUMERIC(12, 2) DEFAULT 0,
            bonus_amount               NUMERIC(12, 2) DEFAULT 0,
            allowances_amount          NUMERIC(12, 2) DEFAULT 0,
            gross_salary               NUMERIC(12, 2) DEFAULT 0,
            tax_amount                 NUMERIC(12, 2) DEFAULT 0,
            social_security_amount     NUMERIC(12, 2) DEFAULT 0,
            other_deductions           NUMERIC(12, 2) DEFAULT 0,
            specific_deduction_amount  NUMERIC(12, 2) DEFAULT 0,
            total_deductions           NUMERIC(12, 2) DEFAULT 0,
            net_salary                 NUMERIC(12, 2) DEFAULT 0,
            payment_status             VARCHAR(20) NOT NULL DEFAULT 'pending',
            payment_date               TIMESTAMPTZ,
            email_status               VARCHAR(20) NOT NULL DEFAULT 'unsent',
            email_attempts             INTEGER DEFAULT 0,
            email_sent_at              TIMESTAMPTZ,
            message_id                 VARCHAR(255),
            last_error                 TEXT,
            notes                      TEXT,
            created_at                 TIMESTAMPTZ DEFAULT NOW(),
            updated_at                 TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_salary_payment_employee_period UNIQUE (employee_id, period)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_salary_payments_period ON salary_payments(period)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_salary_payments_email_status "
        "ON salary_payments(period, email_status)"
    )


def downgrade() -> None:
    _safe_drop_table("salary_payments")
    _safe_drop_table("pay_periods")
    _safe_drop_table("salary_configs")
    _safe_drop_table("attendance_records")
    _safe_drop_table("employees")
