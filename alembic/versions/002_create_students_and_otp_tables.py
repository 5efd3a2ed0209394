"""create students and one_time_passwords tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("uid", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("abc_id", sa.String(255), nullable=False, server_default=""),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("uid", name="uq_students_uid"),
    )
    op.create_index("ix_students_uid", "students", ["uid"])
    op.create_index("ix_students_email", "students", ["email"])

    op.create_table(
        "one_time_passwords",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False, server_default=""),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_one_time_passwords_id", "one_time_passwords", ["id"])
    op.create_index("ix_one_time_passwords_email", "one_time_passwords", ["email"])
    op.create_index("ix_one_time_passwords_created_at", "one_time_passwords", ["created_at"])


def downgrade():
    op.drop_index("ix_one_time_passwords_created_at", table_name="one_time_passwords")
    op.drop_index("ix_one_time_passwords_email", table_name="one_time_passwords")
    op.drop_index("ix_one_time_passwords_id", table_name="one_time_passwords")
    op.drop_table("one_time_passwords")
    op.drop_index("ix_students_email", table_name="students")
    op.drop_index("ix_students_uid", table_name="students")
    op.drop_table("students")
