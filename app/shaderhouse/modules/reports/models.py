from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.shaderhouse.models import Base
from app.shaderhouse.utils import utcnow


class Report(Base):
    """
    User-submitted moderation report. Exactly one reported_* column matches `type`;
    it is nulled (SET NULL) if the reported content is later removed.
    """

    __tablename__ = "reports"
    __table_args__ = (
        Index("idx_reports_status_created", "status", "created_at"),
        Index("idx_reports_reporter_id", "reporter_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reporter_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # GAME | USER | REVIEW | THREAD | POST
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")

    reported_game_id: Mapped[int | None] = mapped_column(ForeignKey("games.id", ondelete="SET NULL"), nullable=True)
    reported_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reported_review_id: Mapped[int | None] = mapped_column(ForeignKey("ratings.id", ondelete="SET NULL"), nullable=True)
    reported_thread_id: Mapped[int | None] = mapped_column(
        ForeignKey("discussion_threads.id", ondelete="SET NULL"), nullable=True
    )
    reported_post_id: Mapped[int | None] = mapped_column(ForeignKey("discussion_posts.id", ondelete="SET NULL"), nullable=True)

    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(String(32), nullable=True)
    resolved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    reporter = relationship("User", foreign_keys=[reporter_id], lazy="selectin")
