"""Core wallet operations: atomic debit/credit with idempotency and row-level locking.

The balance lives on ``users.wallet_balance``; every change appends a
``WalletTransaction`` whose ``balance_after`` equals the new balance.
Lock order is always the user (wallet) row first, then product rows.
"""

from decimal import Decimal
from typing import Optional, Sequence

from libs.common import errors
from libs.common.logging import get_logger
from libs.common.money import to_money
from services.members_service.models import User
from services.store_service.services.order_creator import (
    order_total,
    place_order,
    to_order_result,
    validate_order_request,
)
from services.store_service.services.types import CartLine, DeliveryOptions, OrderResult
from services.wallet_service.models import TransactionType, WalletTransaction
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

CREDIT_TYPES = (TransactionType.TOPUP, TransactionType.REFUND)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_balance(db: AsyncSession, user_id: int) -> Decimal:
    result = await db.execute(select(User.wallet_balance).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise errors.NotFound("User not found")
    return to_money(balance)


async def find_transaction(db: AsyncSession, reference: str) -> Optional[WalletTransaction]:
    result = await db.execute(
        select(WalletTransaction).where(WalletTransaction.reference == reference)
    )
    return result.scalar_one_or_none()


async def list_transactions(
    db: AsyncSession, user_id: int, *, limit: int = 10
) -> list[WalletTransaction]:
    result = await db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def lock_wallet(db: AsyncSession, user_id: int) -> User:
    """``SELECT ... FOR UPDATE`` on the user row that holds the balance."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise errors.NotFound("User not found")
    return user


# ---------------------------------------------------------------------------
# Credit
# ---------------------------------------------------------------------------


async def apply_credit(
    db: AsyncSession,
    *,
    user_id: int,
    amount: Decimal,
    transaction_type: TransactionType,
    reference: Optional[str],
) -> WalletTransaction:
    """Lock, add and record a credit inside the caller's transaction. No commit."""
    amount = to_money(amount)
    if amount <= 0:
        raise errors.ValidationError("Credit amount must be positive")
    if transaction_type not in CREDIT_TYPES:
        raise errors.ValidationError(f"Cannot credit with type {transaction_type}")

    user = await lock_wallet(db, user_id)
    new_balance = to_money(to_money(user.wallet_balance) + amount)
    user.wallet_balance = new_balance

    txn = WalletTransaction(
        user_id=user_id,
        transaction_type=transaction_type,
        amount=amount,
        balance_after=new_balance,
        reference=reference,
    )
    db.add(txn)
    await db.flush()
    return txn


async def credit_with_type(
    db: AsyncSession,
    *,
    user_id: int,
    amount: Decimal,
    transaction_type: TransactionType,
    reference: Optional[str] = None,
) -> WalletTransaction:
    """Credit the wallet atomically.

    Idempotent on ``reference``: a replay returns the originally recorded
    transaction (and so the balance recorded then) without crediting again.
    """
    if reference:
        existing = await find_transaction(db, reference)
        if existing is not None:
            logger.info("Credit %s already applied; returning recorded balance", reference)
            return existing

    try:
        txn = await apply_credit(
            db,
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            reference=reference,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # A concurrent credit with the same reference won the unique index
        if reference:
            existing = await find_transaction(db, reference)
            if existing is not None:
                return existing
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Credited %s to user %s (%s, ref=%s, balance=%s)",
        txn.amount,
        user_id,
        transaction_type.value,
        reference,
        txn.balance_after,
    )
    return txn


# ---------------------------------------------------------------------------
# Debit
# ---------------------------------------------------------------------------


async def apply_purchase_debit(
    db: AsyncSession,
    *,
    user_id: int,
    lines: Sequence[CartLine],
    delivery: DeliveryOptions,
) -> OrderResult:
    """Pay for an order from the wallet inside the caller's transaction. No commit.

    Raises ``InsufficientFunds`` before any stock row is locked or touched.
    """
    validate_order_request(lines, delivery)
    total = order_total(lines, delivery)

    user = await lock_wallet(db, user_id)
    balance = to_money(user.wallet_balance)
    if balance < total:
        raise errors.InsufficientFunds(
            f"Insufficient wallet balance: {balance} available, {total} required"
        )

    order = await place_order(db, user_id=user_id, lines=lines, delivery=delivery)

    new_balance = to_money(balance - order.total)
    user.wallet_balance = new_balance
    db.add(
        WalletTransaction(
            user_id=user_id,
            transaction_type=TransactionType.PURCHASE,
            amount=-to_money(order.total),
            balance_after=new_balance,
            reference=f"order:{order.id}",
        )
    )
    await db.flush()
    return to_order_result(order, wallet_balance=new_balance)


async def debit_for_purchase(
    db: AsyncSession,
    *,
    user_id: int,
    lines: Sequence[CartLine],
    delivery: DeliveryOptions,
) -> OrderResult:
    """Create the order and debit the wallet in one transaction."""
    try:
        result = await apply_purchase_debit(db, user_id=user_id, lines=lines, delivery=delivery)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Wallet purchase: order %s for user %s, debited %s (balance=%s)",
        result.order_id,
        user_id,
        result.total,
        result.wallet_balance,
    )
    return result
