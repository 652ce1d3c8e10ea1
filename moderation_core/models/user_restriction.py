import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from moderation_core.database import Base, TZDateTime, utcnow


class UserRestriction(Base):
    __tablename__ = "user_restrictions"
    __table_args__ = (
        # At most one active restriction per (user, type)
        Index(
            "uq_user_restrictions_active_type",
            "user_id",
            "restriction_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_user_restrictions_expiry", "is_active", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # posting_disabled, commenting_disabled, upload_disabled, suspended
    restriction_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # NULL = permanent
    expires_at: Mapped[datetime | None] = mapped_column(TZDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    applied_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    related_action_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("moderation_actions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

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

    def is_effective(self, now: datetime) -> bool:
        """Active flag set and not past its expiry; the flag alone can lag."""
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > now
