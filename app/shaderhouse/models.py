from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.shaderhouse.utils import utcnow


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)  # stored lowercased
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    role: Mapped[str] = mapped_column(String(32), nullable=False, default="GAMER")  # GAMER | DEVELOPER | ADMIN
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    account_status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")  # ACTIVE | SUSPENDED | BANNED
    suspended_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)
    totp_last_counter: Mapped[int | None] = mapped_column(Integer, nullable=True)  # last accepted time step
    backup_codes_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list of sha256 hashes

    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_daily_login_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    subscription_tier: Mapped[str] = mapped_column(String(32), nullable=False, default="FREE")
    subscription_status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    subscription_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # notification preferences
    notify_in_app: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_beta: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_feedback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_game_updates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_achievements: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_subscription: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_devlogs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def is_developer(self) -> bool:
        return self.role == "DEVELOPER"

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None

    def can_sign_in(self, now: datetime | None = None) -> bool:
        if not self.is_active or self.account_status == "BANNED":
            return False
        if self.account_status == "SUSPENDED":
            now = now or utcnow()
            return self.suspended_until is not None and self.suspended_until <= now
        return True


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Kept generic; entity_id is a string so it can carry ids, emails or slugs.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_action", "action"),
        Index("idx_audit_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "auth.login"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Game"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


class VerificationToken(Base):
    """One-shot email verification, password reset or email change token. Only the sha256 of the token is stored."""

    __tablename__ = "verification_tokens"
    __table_args__ = (
        Index("idx_verification_tokens_user_type", "user_id", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # EMAIL_VERIFICATION | PASSWORD_RESET | EMAIL_CHANGE
    new_email: Mapped[str | None] = mapped_column(String(255), nullable=True)  # pending address for EMAIL_CHANGE
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


# Module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.shaderhouse.modules.settings.models import PlatformSetting  # noqa: E402,F401
from app.shaderhouse.modules.developers.models import DeveloperProfile  # noqa: E402,F401
from app.shaderhouse.modules.games.models import Favorite, Game, GameTag, Rating, Tag  # noqa: E402,F401
from app.shaderhouse.modules.payments.models import DeveloperRevenue, PublishingFee, Purchase, Tip  # noqa: E402,F401
from app.shaderhouse.modules.subscriptions.models import DeveloperSupport, Subscription  # noqa: E402,F401
from app.shaderhouse.modules.beta.models import BetaFeedback, BetaTask, BetaTaskCompletion, BetaTester, NdaAcceptance  # noqa: E402,F401
from app.shaderhouse.modules.rewards.models import RewardHistory  # noqa: E402,F401
from app.shaderhouse.modules.devlogs.models import (  # noqa: E402,F401
    Devlog,
    DevlogComment,
    DevlogLike,
    DevlogSubscription,
)
from app.shaderhouse.modules.discussions.models import DiscussionPost, DiscussionThread, DiscussionVote  # noqa: E402,F401
from app.shaderhouse.modules.notifications.models import Notification  # noqa: E402,F401
from app.shaderhouse.modules.reports.models import Report  # noqa: E402,F401
