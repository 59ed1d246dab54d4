from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tripseal.domain.vocabulary import (
    SEAL_METHOD_DEFAULT,
    STATUS_PENDING,
    VEHICLE_STATUS_ACTIVE,
    VEHICLE_TYPE_TRUCK,
)


# JSONB on Postgres, plain JSON elsewhere (local SQLite runs).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    # Admin that onboarded the company; drives admin read scope.
    created_by_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    role: Mapped[str] = mapped_column(String, index=True)
    subrole: Mapped[str | None] = mapped_column(String, nullable=True)
    # Not a hard FK: legacy rows point employees at the company user's id.
    company_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    created_by_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    coins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class OperatorPermissions(Base):
    __tablename__ = "operator_permissions"

    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), primary_key=True)
    can_create: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_modify: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    # Short prefix for operator display without exposing the secret.
    key_prefix: Mapped[str] = mapped_column(String)
    # Only the hash is stored; the raw key is shown once at creation.
    key_hash: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class CoinTransaction(Base):
    __tablename__ = "coin_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    from_user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    to_user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String)
    reason_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class TripSession(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, default=STATUS_PENDING, index=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    created_by_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    source: Mapped[str | None] = mapped_column(String, nullable=True)
    destination: Mapped[str | None] = mapped_column(String, nullable=True)

    transporter_name: Mapped[str | None] = mapped_column(String, nullable=True)
    material_name: Mapped[str | None] = mapped_column(String, nullable=True)
    receiver_party_name: Mapped[str | None] = mapped_column(String, nullable=True)
    vehicle_number: Mapped[str | None] = mapped_column(String, nullable=True)
    gps_imei_number: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_name: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_contact_number: Mapped[str | None] = mapped_column(String, nullable=True)
    loader_name: Mapped[str | None] = mapped_column(String, nullable=True)
    challan_royalty_number: Mapped[str | None] = mapped_column(String, nullable=True)
    do_number: Mapped[str | None] = mapped_column(String, nullable=True)
    freight: Mapped[float | None] = mapped_column(Float, nullable=True)
    quality_of_materials: Mapped[str | None] = mapped_column(String, nullable=True)
    tp_number: Mapped[str | None] = mapped_column(String, nullable=True)
    gross_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    tare_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    net_material_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    loader_mobile_number: Mapped[str | None] = mapped_column(String, nullable=True)
    loading_site: Mapped[str | None] = mapped_column(String, nullable=True)
    cargo_type: Mapped[str | None] = mapped_column(String, nullable=True)
    number_of_packages: Mapped[str | None] = mapped_column(String, nullable=True)
    registration_certificate: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_license: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class Seal(Base):
    __tablename__ = "seals"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Unique FK keeps the one-seal-per-session invariant in the schema.
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), unique=True)
    barcode: Mapped[str] = mapped_column(String, index=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    scanned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    verification_data: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class SealTag(Base):
    __tablename__ = "seal_tags"
    __table_args__ = (UniqueConstraint("session_id", "barcode", name="uq_seal_tags_session_barcode"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), index=True)
    barcode: Mapped[str] = mapped_column(String, index=True)
    method: Mapped[str] = mapped_column(String, default=SEAL_METHOD_DEFAULT)
    image_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Operator-side fields stay empty for guard-only rows.
    scanned_by_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    scanned_by_name: Mapped[str | None] = mapped_column(String, nullable=True)
    guard_method: Mapped[str | None] = mapped_column(String, nullable=True)
    guard_image_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    guard_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    guard_user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    guard_status: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )

    # Optimistic concurrency between operator edits and guard scans.
    __mapper_args__ = {"version_id_col": version}


class GuardSealTag(Base):
    __tablename__ = "guard_seal_tags"
    __table_args__ = (UniqueConstraint("session_id", "barcode", name="uq_guard_seal_tags_session_barcode"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), index=True)
    barcode: Mapped[str] = mapped_column(String)
    method: Mapped[str] = mapped_column(String)
    image_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String)
    verified_by_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class FieldTimestamp(Base):
    __tablename__ = "field_timestamps"
    __table_args__ = (UniqueConstraint("session_id", "field_name", name="uq_field_timestamps_session_field"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), index=True)
    # Dot-namespaced, e.g. loadingDetails.driverName or images.gpsImeiPicture.
    field_name: Mapped[str] = mapped_column(String)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_by_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String, index=True)
    target_resource_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    target_resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    # Free-form payload; historical key names are load-bearing for reads.
    details: Mapped[dict[str, Any]] = mapped_column(JsonType, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), index=True
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    message: Mapped[str] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    urgency: Mapped[str] = mapped_column(String, default="NA")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    number_plate: Mapped[str] = mapped_column(String, unique=True)
    company_id: Mapped[str] = mapped_column(String, index=True)
    created_by_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    vehicle_type: Mapped[str] = mapped_column(String, default=VEHICLE_TYPE_TRUCK)
    status: Mapped[str] = mapped_column(String, default=VEHICLE_STATUS_ACTIVE)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
