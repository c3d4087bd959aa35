"""User account model. The shopper's wallet balance lives on this row."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.members_service.models.enums import UserRole, enum_values
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(
            UserRole,
            name="user_role_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=UserRole.USER,
        nullable=False,
    )
    free_delivery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Wallet (ledger rows live in wallet_transactions)
    wallet_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} balance={self.wallet_balance}>"
