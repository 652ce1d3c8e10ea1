import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from moderation_core.database import Base, TZDateTime, utcnow


class NotificationEvent(Base):
    """Outbox row written in the same transaction as the change it announces.

    Delivery (push, email, in-app) is done by a separate consumer that sets
    delivered_at.
    """

    __tablename__ = "notification_events"
    __table_args__ = (
        Index("ix_notification_events_undelivered", "delivered_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # action_applied, action_reversed, restriction_expired, high_priority_report
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    related_action_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("moderation_actions.id", ondelete="SET NULL"),
        nullable=True,
    )
    related_report_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("reports.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        default=utcnow,
        server_default=func.now(),
    )
    delivered_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
