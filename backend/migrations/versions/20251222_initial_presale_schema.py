"""initial pre-sale schema

Revision ID: 20251222_presale_init
Revises:
Create Date: 2025-12-22 09:02:20

Creates:
- configurations: per-shop pre-sale location
- audit_log_entries: append-only operator activity log
- shop_sessions: installed shops and their Admin API credentials
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251222_presale_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("location_id", sa.String(length=255), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("shop", name="uq_configurations_shop"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_configurations_shop", "configurations", ["shop"])

    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_log_entries_shop", "audit_log_entries", ["shop"])
    op.create_index("ix_audit_log_entries_shop_created", "audit_log_entries", ["shop", "created_at"])

    op.create_table(
        "shop_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shop", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.String(length=255), nullable=False),
        sa.Column("scope", sa.String(length=1024), nullable=True),
        sa.Column("api_token_hash", sa.String(length=64), nullable=False),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("shop", name="uq_shop_sessions_shop"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shop_sessions_shop", "shop_sessions", ["shop"])
    op.create_index("ix_shop_sessions_api_token_hash", "shop_sessions", ["api_token_hash"], unique=True)


def downgrade():
    op.drop_index("ix_shop_sessions_api_token_hash", table_name="shop_sessions")
    op.drop_index("ix_shop_sessions_shop", table_name="shop_sessions")
    op.drop_table("shop_sessions")
    op.drop_index("ix_audit_log_entries_shop_created", table_name="audit_log_entries")
    op.drop_index("ix_audit_log_entries_shop", table_name="audit_log_entries")
    op.drop_table("audit_log_entries")
    op.drop_index("ix_configurations_shop", table_name="configurations")
    op.drop_table("configurations")
