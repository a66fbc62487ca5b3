from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_price_alerts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "price_alerts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=450), nullable=False),
        sa.Column("item_name", sa.String(length=500), nullable=False),
        sa.Column("item_id", sa.String(length=500), nullable=True),
        sa.Column("alert_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("current_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_triggered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("triggered_at", sa.DateTime, nullable=True),
        sa.Column("is_acknowledged", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("last_checked_at", sa.DateTime, nullable=True),
        sa.CheckConstraint("alert_price >= 0", name="ck_price_alerts_alert_price_non_negative"),
    )
    op.create_index("ix_price_alerts_user_id", "price_alerts", ["user_id"])
    op.create_index("ix_price_alerts_is_active", "price_alerts", ["is_active"])

    op.create_table(
        "alert_notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=450), nullable=False),
        sa.Column(
            "price_alert_id",
            sa.Integer,
            sa.ForeignKey("price_alerts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("triggered_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_alert_notifications_user_id", "alert_notifications", ["user_id"])
    op.create_index(
        "ix_alert_notifications_price_alert_id", "alert_notifications", ["price_alert_id"]
    )
    op.create_index(
        "uq_alert_notifications_unread_price",
        "alert_notifications",
        ["price_alert_id", "triggered_price"],
        unique=True,
        sqlite_where=sa.text("is_read = 0"),
        postgresql_where=sa.text("is_read = false"),
    )


def downgrade() -> None:
    op.drop_index("uq_alert_notifications_unread_price", table_name="alert_notifications")
    op.drop_index("ix_alert_notifications_price_alert_id", table_name="alert_notifications")
    op.drop_index("ix_alert_notifications_user_id", table_name="alert_notifications")
    op.drop_table("alert_notifications")
    op.drop_index("ix_price_alerts_is_active", table_name="price_alerts")
    op.drop_index("ix_price_alerts_user_id", table_name="price_alerts")
    op.drop_table("price_alerts")
