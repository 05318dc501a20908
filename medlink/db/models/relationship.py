"""Connection, follow and notification models."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Connection(Base):
    """Connection request between two actors; terminal rows are kept as history."""

    __tablename__ = "connections"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # "<min_id>:<max_id>" of the unordered actor pair
    pair_key: Mapped[str] = mapped_column(String, nullable=False)

    requester_id: Mapped[str] = mapped_column(String, nullable=False)
    requester_type: Mapped[str] = mapped_column(String, nullable=False, default="individual")
    recipient_id: Mapped[str] = mapped_column(String, nullable=False)
    recipient_type: Mapped[str] = mapped_column(String, nullable=False, default="individual")

    state: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_connections_pair_key_created_at", "pair_key", "created_at"),
        Index("ix_connections_recipient_state", "recipient_id", "state"),
        Index("ix_connections_requester_state", "requester_id", "state"),
        Index(
            "uq_connections_active_pair",
            "pair_key",
            unique=True,
            postgresql_where=text("state IN ('pending', 'accepted')"),
            sqlite_where=text("state IN ('pending', 'accepted')"),
        ),
    )


class Follow(Base):
    """One-directional follow edge."""

    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(String, primary_key=True)
    followee_id: Mapped[str] = mapped_column(String, primary_key=True)
    follower_type: Mapped[str] = mapped_column(String, nullable=False, default="individual")
    followee_type: Mapped[str] = mapped_column(String, nullable=False, default="individual")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_follows_followee_id", "followee_id"),
    )


class ActorNotification(Base):
    """User-facing notification row (connection requests and acceptances)."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
