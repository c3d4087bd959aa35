"""WalletTopup model: PayPal / NETS wallet top-up lifecycle."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.wallet_service.models.enums import TopupProvider, TopupStatus, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column


class WalletTopup(Base):
    """A top-up attempt keyed by the provider's reference (capture id / QR retrieval ref)."""

    __tablename__ = "wallet_topups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider: Mapped[TopupProvider] = mapped_column(
        SAEnum(
            TopupProvider,
            name="topup_provider_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[TopupStatus] = mapped_column(
        SAEnum(
            TopupStatus,
            name="topup_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=TopupStatus.PENDING,
        nullable=False,
    )
    provider_ref: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (CheckConstraint("amount > 0", name="ck_wallet_topups_amount_positive"),)

    def __repr__(self) -> str:
        return f"<WalletTopup {self.id} {self.provider.value} {self.amount} {self.status.value}>"
