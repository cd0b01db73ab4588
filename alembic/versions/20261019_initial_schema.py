"""initial mutual aid schema

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

HELP_ROLES = ("GIVER", "RECEIVER")
MATCH_STATUSES = ("PENDING", "AWAITING_CONFIRMATION", "COMPLETED")
LIVE_ACTIVITY = sa.text("status IN ('PENDING', 'MATCHED', 'ACTIVE')")
LIVE_MATCH = sa.text("status IN ('PENDING', 'AWAITING_CONFIRMATION')")


def _reused_enum(values: tuple[str, ...], name: str) -> sa.types.TypeEngine:
    # The PostgreSQL type already exists once the first table using it is created.
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("role", sa.Enum("MEMBER", "ADMIN", name="user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False, unique=True),
        sa.Column("scope", sa.Enum("member", "admin", name="apiscope"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_api_keys_prefix", "api_keys", ["prefix"])
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])

    op.create_table(
        "packages",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("return_percentage", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_package_positive_amount"),
    )

    op.create_table(
        "help_activities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.Enum(*HELP_ROLES, name="help_role"), nullable=False),
        sa.Column("package_id", sa.String(length=64), sa.ForeignKey("packages.id"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "MATCHED", "ACTIVE", "COMPLETED", "CANCELLED", name="help_activity_status"),
            nullable=False,
        ),
        sa.Column("admin_approved", sa.Boolean(), nullable=False),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("maturity_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_help_activity_positive_amount"),
    )
    op.create_index("ix_help_activities_user_id", "help_activities", ["user_id"])
    op.create_index("ix_help_activities_pool", "help_activities", ["role", "status", "created_at"])
    op.create_index(
        "uq_help_activity_live_role",
        "help_activities",
        ["user_id", "role"],
        unique=True,
        sqlite_where=LIVE_ACTIVITY,
        postgresql_where=LIVE_ACTIVITY,
    )

    op.create_table(
        "payment_matches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("giver_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("receiver_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("help_activity_id", sa.Integer(), sa.ForeignKey("help_activities.id"), nullable=False),
        sa.Column("giver_activity_id", sa.Integer(), sa.ForeignKey("help_activities.id"), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.Enum(*MATCH_STATUSES, name="match_status"), nullable=False),
        sa.Column("matched_by", sa.String(length=100), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_payment_match_positive_amount"),
        sa.CheckConstraint("giver_id <> receiver_id", name="ck_payment_match_distinct_parties"),
    )
    op.create_index("ix_payment_matches_giver_id", "payment_matches", ["giver_id"])
    op.create_index("ix_payment_matches_receiver_id", "payment_matches", ["receiver_id"])
    op.create_index("ix_payment_matches_help_activity_id", "payment_matches", ["help_activity_id"])
    op.create_index("ix_payment_matches_giver_activity_id", "payment_matches", ["giver_activity_id"])
    op.create_index("ix_payment_matches_status_deadline", "payment_matches", ["status", "payment_deadline"])
    for column in ("giver_id", "receiver_id"):
        op.create_index(
            f"uq_payment_match_live_{column.split('_')[0]}",
            "payment_matches",
            [column],
            unique=True,
            sqlite_where=LIVE_MATCH,
            postgresql_where=LIVE_MATCH,
        )

    op.create_table(
        "manual_matches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", _reused_enum(HELP_ROLES, "help_role"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("matched_with_name", sa.String(length=255), nullable=False),
        sa.Column("matched_with_email", sa.String(length=255), nullable=True),
        sa.Column("matched_with_phone", sa.String(length=50), nullable=True),
        sa.Column("payment_account", sa.String(length=255), nullable=True),
        sa.Column("payment_method", sa.String(length=100), nullable=True),
        sa.Column("status", _reused_enum(MATCH_STATUSES, "match_status"), nullable=False),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("help_activity_id", sa.Integer(), sa.ForeignKey("help_activities.id"), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_manual_match_positive_amount"),
    )
    op.create_index("ix_manual_matches_user_id", "manual_matches", ["user_id"])
    op.create_index("ix_manual_matches_help_activity_id", "manual_matches", ["help_activity_id"])
    op.create_index(
        "uq_manual_match_live_role",
        "manual_matches",
        ["user_id", "role"],
        unique=True,
        sqlite_where=LIVE_MATCH,
        postgresql_where=LIVE_MATCH,
    )

    op.create_table(
        "user_packages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("package_id", sa.String(length=64), sa.ForeignKey("packages.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACTIVE", "REJECTED", name="user_package_status"),
            nullable=False,
        ),
        sa.Column("admin_approved", sa.Boolean(), nullable=False),
        sa.Column("maturity_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extended_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("extended_count >= 0", name="ck_user_package_extended_count"),
    )
    op.create_index("ix_user_packages_user_id", "user_packages", ["user_id"])

    op.create_table(
        "banned_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("banned_by", sa.String(length=100), nullable=False),
        sa.Column("banned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("unbanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_banned_accounts_user_id", "banned_accounts", ["user_id"])
    op.create_index(
        "uq_banned_account_active_user",
        "banned_accounts",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "live_parties",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", _reused_enum(HELP_ROLES, "help_role"), nullable=False),
        sa.Column("payment_match_id", sa.Integer(), sa.ForeignKey("payment_matches.id"), nullable=True),
        sa.Column("manual_match_id", sa.Integer(), sa.ForeignKey("manual_matches.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "role", name="uq_live_parties_user_role"),
        sa.CheckConstraint(
            "(payment_match_id IS NULL) <> (manual_match_id IS NULL)",
            name="ck_live_party_single_source",
        ),
    )
    op.create_index("ix_live_parties_payment_match_id", "live_parties", ["payment_match_id"])
    op.create_index("ix_live_parties_manual_match_id", "live_parties", ["manual_match_id"])


def downgrade() -> None:
    op.drop_index("ix_live_parties_manual_match_id", table_name="live_parties")
    op.drop_index("ix_live_parties_payment_match_id", table_name="live_parties")
    op.drop_table("live_parties")
    op.drop_index("uq_banned_account_active_user", table_name="banned_accounts")
    op.drop_index("ix_banned_accounts_user_id", table_name="banned_accounts")
    op.drop_table("banned_accounts")
    op.drop_index("ix_user_packages_user_id", table_name="user_packages")
    op.drop_table("user_packages")
    op.drop_index("uq_manual_match_live_role", table_name="manual_matches")
    op.drop_index("ix_manual_matches_help_activity_id", table_name="manual_matches")
    op.drop_index("ix_manual_matches_user_id", table_name="manual_matches")
    op.drop_table("manual_matches")
    for name in (
        "uq_payment_match_live_receiver",
        "uq_payment_match_live_giver",
        "ix_payment_matches_status_deadline",
        "ix_payment_matches_giver_activity_id",
        "ix_payment_matches_help_activity_id",
        "ix_payment_matches_receiver_id",
        "ix_payment_matches_giver_id",
    ):
        op.drop_index(name, table_name="payment_matches")
    op.drop_table("payment_matches")
    op.drop_index("uq_help_activity_live_role", table_name="help_activities")
    op.drop_index("ix_help_activities_pool", table_name="help_activities")
    op.drop_index("ix_help_activities_user_id", table_name="help_activities")
    op.drop_table("help_activities")
    op.drop_table("packages")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_index("ix_api_keys_prefix", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in (
            "user_package_status",
            "match_status",
            "help_activity_status",
            "help_role",
            "apiscope",
            "user_role",
        ):
            op.execute(f"DROP TYPE IF EXISTS {name}")
