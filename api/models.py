"""SQLAlchemy models for journey visibility and the admin audit log."""

import uuid
from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
        )


class EntityType(str, PyEnum):
    """Tiers of the content hierarchy: journey -> milestone -> objective."""

    JOURNEY = "journey"
    MILESTONE = "milestone"
    OBJECTIVE = "objective"


class VisibilitySetting(TimestampMixin, Base):
    """Direct visibility flag for one journey, milestone or objective.

    One row per (entity_type, entity_id). The flag is not resolved against
    ancestors; see services.visibility_service.is_effectively_public.
    """

    __tablename__ = "visibility_settings"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_visibility_entity"),
        Index("ix_visibility_type_public", "entity_type", "is_public"),
        Index("ix_visibility_type_journey", "entity_type", "parent_journey_slug"),
        Index("ix_visibility_type_milestone", "entity_type", "parent_milestone_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    entity_type: Mapped[EntityType] = mapped_column(
        Enum(
            EntityType,
            name="visibility_entity_type",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_journey_slug: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    parent_milestone_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Objectives only: lesson content may be shown when the objective is public
    content_public: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False)


class AuditLog(Base):
    """Append-only record of admin actions.

    Shared by every admin action; visibility changes use
    action="visibility_change". Rows are never updated. Rows older than the
    retention window are deleted by the purge-audit-logs job.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_action_created", "action", "created_at"),
        Index("ix_audit_logs_admin", "admin_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    admin_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    target_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
