import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from moderation_core.database import Base, TZDateTime, utcnow


class ContentTombstone(Base):
    """Marks content as removed by moderation. The content itself lives elsewhere."""

    __tablename__ = "content_tombstones"
    __table_args__ = (
        UniqueConstraint("content_type", "content_id", name="uq_content_tombstones_target"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    # post, comment, track
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    removed_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    action_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("moderation_actions.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        default=utcnow,
        server_default=func.now(),
    )
