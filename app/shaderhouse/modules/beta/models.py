from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.shaderhouse.models import Base
from app.shaderhouse.utils import utcnow


class BetaTester(Base):
    __tablename__ = "beta_testers"
    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_beta_testers_game_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    bugs_reported: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    game = relationship("Game", foreign_keys=[game_id], lazy="selectin")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")


class BetaFeedback(Base):
    __tablename__ = "beta_feedback"
    __table_args__ = (
        Index("idx_beta_feedback_game_status", "game_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # BUG | SUGGESTION | GENERAL
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)  # LOW | MEDIUM | HIGH | CRITICAL
    device_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    screenshot_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="NEW")
    developer_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    game = relationship("Game", foreign_keys=[game_id], lazy="selectin")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")


class BetaTask(Base):
    __tablename__ = "beta_tasks"
    __table_args__ = (
        Index("idx_beta_tasks_game_order", "game_id", "order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # BUG_REPORT | SUGGESTION | PLAY_LEVEL | TEST_FEATURE
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    game = relationship("Game", foreign_keys=[game_id], lazy="selectin")


class BetaTaskCompletion(Base):
    __tablename__ = "beta_task_completions"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_beta_task_completions_task_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("beta_tasks.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    feedback_id: Mapped[int | None] = mapped_column(ForeignKey("beta_feedback.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING | VERIFIED | REJECTED
    report: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    task = relationship("BetaTask", foreign_keys=[task_id], lazy="selectin")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")


class NdaAcceptance(Base):
    """A tester's acceptance of a beta game's NDA. Re-accepting refreshes the row."""

    __tablename__ = "nda_acceptances"
    __table_args__ = (
        UniqueConstraint("user_id", "game_id", name="uq_nda_acceptances_user_game"),
        Index("idx_nda_acceptances_game", "game_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    version: Mapped[str] = mapped_column(String(16), nullable=False)
    accepted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
