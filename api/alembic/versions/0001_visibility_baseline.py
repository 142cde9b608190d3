"""visibility settings and audit log

Revision ID: 0001_visibility_baseline
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_visibility_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One direct visibility flag per (entity_type, entity_id)
    op.create_table(
        "visibility_settings",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column(
            "entity_type",
            sa.Enum(
                "journey",
                "milestone",
                "objective",
                name="visibility_entity_type",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("entity_id", sa.String(255), nullable=False),
        sa.Column("parent_journey_slug", sa.String(255), nullable=True),
        sa.Column("parent_milestone_id", sa.String(255), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("content_public", sa.Boolean(), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_type", "entity_id", name="uq_visibility_entity"),
    )
    op.create_index(
        "ix_visibility_type_public",
        "visibility_settings",
        ["entity_type", "is_public"],
    )
    op.create_index(
        "ix_visibility_type_journey",
        "visibility_settings",
        ["entity_type", "parent_journey_slug"],
    )
    op.create_index(
        "ix_visibility_type_milestone",
        "visibility_settings",
        ["entity_type", "parent_milestone_id"],
    )

    # Append-only admin audit log, purged by `cli purge-audit-logs`
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("admin_user_id", sa.String(255), nullable=False),
        sa.Column("target_user_id", sa.String(255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index(
        "ix_audit_logs_action_created", "audit_logs", ["action", "created_at"]
    )
    op.create_index("ix_audit_logs_admin", "audit_logs", ["admin_user_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_admin", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_visibility_type_milestone", table_name="visibility_settings")
    op.drop_index("ix_visibility_type_journey", table_name="visibility_settings")
    op.drop_index("ix_visibility_type_public", table_name="visibility_settings")
    op.drop_table("visibility_settings")
