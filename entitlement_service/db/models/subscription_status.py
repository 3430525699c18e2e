from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BOOLEAN, CheckConstraint, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_service.db.models.base import Base


class UserSubscriptionStatus(Base):
    __tablename__ = "user_subscription_status"
    __table_args__ = (
        CheckConstraint(
            "subscription_type IN ('free','trial','basic','basic_monthly','basic_yearly','unknown')",
            name="ck_user_subscription_status_type",
        ),
        CheckConstraint(
            "is_subscribed OR subscription_type NOT IN ('basic','basic_monthly','basic_yearly')",
            name="ck_user_subscription_status_paid_tier_is_subscribed",
        ),
        Index("idx_user_subscription_status_type_end", "subscription_type", "subscription_end_date"),
        Index("idx_user_subscription_status_trial_end", "trial_end_date"),
    )

    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    subscription_type: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text("'free'")
    )
    is_subscribed: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, server_default=text("false")
    )
    subscription_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    subscription_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    bonus_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
