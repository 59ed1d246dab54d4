"""initial trip session schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("subrole", sa.String(), nullable=True),
        sa.Column("company_id", sa.String(), nullable=True),
        sa.Column("created_by_id", sa.String(), nullable=True),
        sa.Column("coins", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)
    op.create_index("ix_users_created_by_id", "users", ["created_by_id"], unique=False)

    op.create_table(
        "companies",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_by_id", sa.String(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_companies_created_by_id", "companies", ["created_by_id"], unique=False)

    op.create_table(
        "operator_permissions",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("can_create", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("can_modify", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("can_delete", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("key_prefix", sa.String(), nullable=False),
        sa.Column("key_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"], unique=False)

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("from_user_id", sa.String(), nullable=False),
        sa.Column("to_user_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("reason_text", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["from_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["to_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_coin_transactions_from_user_id", "coin_transactions", ["from_user_id"], unique=False)
    op.create_index("ix_coin_transactions_to_user_id", "coin_transactions", ["to_user_id"], unique=False)

    # Trip details are flat columns; numeric measurements are floats.
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), nullable=False),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("destination", sa.String(), nullable=True),
        sa.Column("transporter_name", sa.String(), nullable=True),
        sa.Column("material_name", sa.String(), nullable=True),
        sa.Column("receiver_party_name", sa.String(), nullable=True),
        sa.Column("vehicle_number", sa.String(), nullable=True),
        sa.Column("gps_imei_number", sa.String(), nullable=True),
        sa.Column("driver_name", sa.String(), nullable=True),
        sa.Column("driver_contact_number", sa.String(), nullable=True),
        sa.Column("loader_name", sa.String(), nullable=True),
        sa.Column("challan_royalty_number", sa.String(), nullable=True),
        sa.Column("do_number", sa.String(), nullable=True),
        sa.Column("freight", sa.Float(), nullable=True),
        sa.Column("quality_of_materials", sa.String(), nullable=True),
        sa.Column("tp_number", sa.String(), nullable=True),
        sa.Column("gross_weight", sa.Float(), nullable=True),
        sa.Column("tare_weight", sa.Float(), nullable=True),
        sa.Column("net_material_weight", sa.Float(), nullable=True),
        sa.Column("loader_mobile_number", sa.String(), nullable=True),
        sa.Column("loading_site", sa.String(), nullable=True),
        sa.Column("cargo_type", sa.String(), nullable=True),
        sa.Column("number_of_packages", sa.String(), nullable=True),
        sa.Column("registration_certificate", sa.String(), nullable=True),
        sa.Column("driver_license", sa.String(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sessions_status", "sessions", ["status"], unique=False)
    op.create_index("ix_sessions_company_id", "sessions", ["company_id"], unique=False)
    op.create_index("ix_sessions_created_by_id", "sessions", ["created_by_id"], unique=False)

    op.create_table(
        "seals",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("barcode", sa.String(), nullable=False),
        sa.Column("verified", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by_id", sa.String(), nullable=True),
        sa.Column("verification_data", _JSON, nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id"),
    )
    op.create_index("ix_seals_barcode", "seals", ["barcode"], unique=False)

    op.create_table(
        "seal_tags",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("barcode", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("image_data", sa.Text(), nullable=True),
        sa.Column("scanned_by_id", sa.String(), nullable=True),
        sa.Column("scanned_by_name", sa.String(), nullable=True),
        sa.Column("guard_method", sa.String(), nullable=True),
        sa.Column("guard_image_data", sa.Text(), nullable=True),
        sa.Column("guard_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("guard_user_id", sa.String(), nullable=True),
        sa.Column("guard_status", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["scanned_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["guard_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "barcode", name="uq_seal_tags_session_barcode"),
    )
    op.create_index("ix_seal_tags_session_id", "seal_tags", ["session_id"], unique=False)
    op.create_index("ix_seal_tags_barcode", "seal_tags", ["barcode"], unique=False)

    op.create_table(
        "guard_seal_tags",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("barcode", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("image_data", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("verified_by_id", sa.String(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "barcode", name="uq_guard_seal_tags_session_barcode"),
    )
    op.create_index("ix_guard_seal_tags_session_id", "guard_seal_tags", ["session_id"], unique=False)

    # One provenance row per (session, namespaced field); upserts keep it current.
    op.create_table(
        "field_timestamps",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("field_name", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by_id", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["updated_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "field_name", name="uq_field_timestamps_session_field"),
    )
    op.create_index("ix_field_timestamps_session_id", "field_timestamps", ["session_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("target_resource_id", sa.String(), nullable=True),
        sa.Column("target_resource_type", sa.String(), nullable=True),
        sa.Column("details", _JSON, nullable=False),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"], unique=False)
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"], unique=False)
    op.create_index("ix_activity_logs_target_resource_id", "activity_logs", ["target_resource_id"], unique=False)
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"], unique=False)

    op.create_table(
        "comments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("urgency", sa.String(), server_default="NA", nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comments_session_id", "comments", ["session_id"], unique=False)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("number_plate", sa.String(), nullable=False),
        sa.Column("company_id", sa.String(), nullable=False),
        sa.Column("created_by_id", sa.String(), nullable=False),
        sa.Column("vehicle_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number_plate"),
    )
    op.create_index("ix_vehicles_company_id", "vehicles", ["company_id"], unique=False)


def downgrade() -> None:
    for table in (
        "vehicles",
        "comments",
        "activity_logs",
        "field_timestamps",
        "guard_seal_tags",
        "seal_tags",
        "seals",
        "sessions",
        "coin_transactions",
        "api_keys",
        "operator_permissions",
        "companies",
        "users",
    ):
        op.drop_table(table)
