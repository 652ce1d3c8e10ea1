import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from moderation_core.database import Base, TZDateTime, utcnow


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_reports_priority_range"),
        Index(
            "ix_reports_queue_order",
            "status",
            "moderator_flagged",
            "priority",
            "created_at",
        ),
        Index("ix_reports_reporter_target", "reporter_id", "report_type", "target_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Who made the report (null for system-originated flags)
    reporter_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Owner of the reported content, or the reported account itself
    reported_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # post, comment, track, user
    report_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # pending, under_review, resolved, dismissed
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    # 1 (most urgent) .. 5; fixed at creation
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    moderator_flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
