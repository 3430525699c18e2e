from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from entitlement_service.db.models.base import Base

EXEMPT_REDEMPTION_CATEGORY = "test"


class PromoRedemption(Base):
    __tablename__ = "promo_redemptions"
    __table_args__ = (
        Index(
            "uq_promo_redemptions_user_category",
            "user_id",
            "category",
            unique=True,
            postgresql_where=text(f"category <> '{EXEMPT_REDEMPTION_CATEGORY}'"),
        ),
        Index("idx_promo_redemptions_code", "promo_code"),
        Index("idx_promo_redemptions_created_at", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    promo_code: Mapped[str] = mapped_column(
        String(64), ForeignKey("promo_codes.code"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
