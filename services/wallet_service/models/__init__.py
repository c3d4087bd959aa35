"""Wallet Service models package.

Re-exports all models and enums so that Alembic's env.py and SQLAlchemy's
mapper registry see every model class on import.
"""

from services.wallet_service.models.enums import (  # noqa: F401
    TopupProvider,
    TopupStatus,
    TransactionType,
)
from services.wallet_service.models.topup import WalletTopup  # noqa: F401
from services.wallet_service.models.transaction import WalletTransaction  # noqa: F401

__all__ = [
    "TopupProvider",
    "TopupStatus",
    "TransactionType",
    "WalletTopup",
    "WalletTransaction",
]
