"""payment methods, payment requests and audit log

Revision ID: 20261019_000001_reconciliation
Revises:
Create Date: 2026-10-19 00:00:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_000001_reconciliation"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("method_type", sa.String(length=32), nullable=False),
        sa.Column("account_number", sa.String(length=64), nullable=False),
        sa.Column("account_name", sa.String(length=191), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_methods_method_type", "payment_methods", ["method_type"])
    op.create_index("ix_payment_methods_is_active", "payment_methods", ["is_active"])

    op.create_table(
        "payment_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("sender_account", sa.String(length=64), nullable=False),
        sa.Column("transaction_ref", sa.String(length=191), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("active_slot", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by", sa.String(length=64), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decided_by", sa.String(length=64), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("enrolled_at", sa.DateTime(), nullable=True),
        sa.Column("enrollment_error", sa.Text(), nullable=True),
        # One pending/verified claim per (student, course); NULLs do not collide
        sa.UniqueConstraint("student_id", "course_id", "active_slot", name="uq_payment_requests_active_slot"),
    )
    op.create_index("ix_payment_requests_student_id", "payment_requests", ["student_id"])
    op.create_index("ix_payment_requests_course_id", "payment_requests", ["course_id"])
    op.create_index("ix_payment_requests_transaction_ref", "payment_requests", ["transaction_ref"])
    op.create_index("ix_payment_requests_status", "payment_requests", ["status"])
    op.create_index("ix_payment_requests_expires_at", "payment_requests", ["expires_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=32), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("meta", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")

    op.drop_index("ix_payment_requests_expires_at", table_name="payment_requests")
    op.drop_index("ix_payment_requests_status", table_name="payment_requests")
    op.drop_index("ix_payment_requests_transaction_ref", table_name="payment_requests")
    op.drop_index("ix_payment_requests_course_id", table_name="payment_requests")
    op.drop_index("ix_payment_requests_student_id", table_name="payment_requests")
    op.drop_table("payment_requests")

    op.drop_index("ix_payment_methods_is_active", table_name="payment_methods")
    op.drop_index("ix_payment_methods_method_type", table_name="payment_methods")
    op.drop_table("payment_methods")
