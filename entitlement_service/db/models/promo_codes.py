from __future__ import annotations

from datetime import datetime

from sqlalchemy import BOOLEAN, BigInteger, CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_service.db.models.base import Base


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint("current_usage >= 0", name="ck_promo_codes_current_usage_non_negative"),
        CheckConstraint("bonus_days >= 0", name="ck_promo_codes_bonus_days_non_negative"),
        CheckConstraint(
            "max_usage IS NULL OR max_usage > 0",
            name="ck_promo_codes_max_usage_positive",
        ),
        Index("idx_promo_codes_category", "category"),
        Index("idx_promo_codes_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("true"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_usage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_usage: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    bonus_days: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
