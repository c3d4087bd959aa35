"""Enums for the Wallet Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class TransactionType(str, enum.Enum):
    TOPUP = "topup"
    PURCHASE = "purchase"
    REFUND = "refund"


class TopupStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class TopupProvider(str, enum.Enum):
    PAYPAL = "paypal"
    NETS = "nets"
