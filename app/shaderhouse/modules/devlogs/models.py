from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.shaderhouse.models import Base
from app.shaderhouse.utils import utcnow


class Devlog(Base):
    __tablename__ = "devlogs"
    __table_args__ = (
        Index("idx_devlogs_published", "is_published", "published_at"),
        Index("idx_devlogs_developer_id", "developer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    developer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_id: Mapped[int | None] = mapped_column(ForeignKey("games.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="UPDATE")

    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    developer = relationship("User", foreign_keys=[developer_id], lazy="selectin")
    game = relationship("Game", foreign_keys=[game_id], lazy="selectin")


class DevlogComment(Base):
    __tablename__ = "devlog_comments"
    __table_args__ = (
        Index("idx_devlog_comments_devlog_created", "devlog_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    devlog_id: Mapped[int] = mapped_column(ForeignKey("devlogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("devlog_comments.id", ondelete="CASCADE"), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")


class DevlogLike(Base):
    __tablename__ = "devlog_likes"
    __table_args__ = (
        UniqueConstraint("devlog_id", "user_id", name="uq_devlog_likes_devlog_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    devlog_id: Mapped[int] = mapped_column(ForeignKey("devlogs.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class DevlogSubscription(Base):
    """A user following a developer's devlogs."""

    __tablename__ = "devlog_subscriptions"
    __table_args__ = (
        UniqueConstraint("subscriber_id", "developer_id", name="uq_devlog_subscriptions_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subscriber_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    developer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notify_new_post: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    developer = relationship("User", foreign_keys=[developer_id], lazy="selectin")
