"""WalletTransaction model: append-only ledger."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.wallet_service.models.enums import TransactionType, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column


class WalletTransaction(Base):
    """One row per balance change.

    ``amount`` is signed (purchases are negative) and ``balance_after`` is the
    user's wallet balance once this row applied. ``reference`` doubles as the
    idempotency key: ``order:<id>``, ``refund:order:<id>``,
    ``paypal:<captureId>``, ``nets:<retrievalRef>``.
    """

    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        "type",
        SAEnum(
            TransactionType,
            name="wallet_transaction_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_wallet_transactions_amount_non_zero"),
        CheckConstraint(
            "balance_after >= 0", name="ck_wallet_transactions_balance_non_negative"
        ),
        Index("ix_wallet_transactions_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction {self.id} {self.transaction_type.value} "
            f"{self.amount} -> {self.balance_after}>"
        )
