from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.shaderhouse.models import Base
from app.shaderhouse.utils import utcnow


class DeveloperProfile(Base):
    """
    Self-declared studio details plus the indie eligibility review state.
    One per developer account.
    """

    __tablename__ = "developer_profiles"
    __table_args__ = (
        Index("idx_developer_profiles_verification_status", "verification_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    studio_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    developer_type: Mapped[str] = mapped_column(String(16), nullable=False, default="INDIE")  # INDIE | STUDIO
    team_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    has_publisher: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    owns_ip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    funding_sources_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    company_type: Mapped[str] = mapped_column(String(16), nullable=False, default="NONE")
    evidence_links_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    attest_indie: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_indie_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    eligibility_reasons_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    stripe_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_account_status: Mapped[str | None] = mapped_column(String(16), nullable=True)  # active | restricted | pending
    stripe_onboarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
