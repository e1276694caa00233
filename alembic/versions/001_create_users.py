"""create users table carrying plan, limits and usage"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_create_users"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("plan", sa.String(), nullable=False, server_default=sa.text("'free'")),
        sa.Column("plan_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscribed_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stripe_customer_id", sa.String(), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(), nullable=True),
        sa.Column("subscription_status", sa.String(), nullable=True),
        sa.Column("limit_monthly_transactions", sa.Integer(), nullable=True),
        sa.Column("limit_active_debts", sa.Integer(), nullable=True),
        sa.Column("limit_recurring_transactions", sa.Integer(), nullable=True),
        sa.Column("limit_categories", sa.Integer(), nullable=True),
        sa.Column(
            "usage_monthly_transactions",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "usage_active_debts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "usage_recurring_transactions",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "usage_categories",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "last_reset_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *[
            sa.CheckConstraint(f"usage_{name} >= 0", name=f"ck_users_usage_{name}_nonneg")
            for name in (
                "monthly_transactions",
                "active_debts",
                "recurring_transactions",
                "categories",
            )
        ],
    )
    op.create_index(
        "ix_users_stripe_customer_id", "users", ["stripe_customer_id"], unique=True
    )


def downgrade() -> None:
    op.drop_index("ix_users_stripe_customer_id", table_name="users")
    op.drop_table("users")
