"""Top-up flow: PayPal and NETS QR payments that credit the wallet."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common import errors
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.money import has_at_most_two_places, to_money
from services.payments_service.provider_types import (
    PaymentProviderClient,
    PaymentState,
    ProviderError,
    ProviderIntent,
)
from services.wallet_service.models import (
    TopupProvider,
    TopupStatus,
    TransactionType,
    WalletTopup,
    WalletTransaction,
)
from services.wallet_service.services.wallet_ops import (
    apply_credit,
    find_transaction,
    get_balance,
    list_transactions,
)
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class TopupResult:
    new_balance: Decimal
    amount: Decimal
    provider_ref: str
    already_processed: bool = False


@dataclass
class WalletSummary:
    balance: Decimal
    topups: list[WalletTopup]
    transactions: list[WalletTransaction]


def validate_topup_amount(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount <= 0 or not has_at_most_two_places(amount):
        raise errors.ValidationError("Top-up amount must be positive with at most two decimals")
    return to_money(amount)


def topup_reference(provider: TopupProvider, provider_ref: str) -> str:
    """Ledger reference for a top-up: ``paypal:<captureId>`` / ``nets:<retrievalRef>``."""
    return f"{provider.value}:{provider_ref}"


async def find_topup(db: AsyncSession, provider_ref: str) -> Optional[WalletTopup]:
    result = await db.execute(select(WalletTopup).where(WalletTopup.provider_ref == provider_ref))
    return result.scalar_one_or_none()


async def _recorded_result(
    db: AsyncSession, topup: WalletTopup
) -> TopupResult:
    txn = await find_transaction(db, topup_reference(topup.provider, topup.provider_ref))
    balance = to_money(txn.balance_after) if txn is not None else await get_balance(db, topup.user_id)
    return TopupResult(
        new_balance=balance,
        amount=to_money(topup.amount),
        provider_ref=topup.provider_ref,
        already_processed=True,
    )


async def _provider_call(coro, label: str):
    try:
        return await coro
    except ProviderError as exc:
        logger.error("%s failed: %s", label, exc.message)
        raise errors.ProviderUnavailable(f"{label}: {exc.message}") from exc


# ---------------------------------------------------------------------------
# PayPal
# ---------------------------------------------------------------------------


async def create_paypal_topup_order(
    paypal: PaymentProviderClient, *, amount: Decimal
) -> ProviderIntent:
    amount = validate_topup_amount(amount)
    return await _provider_call(
        paypal.create_intent(amount, get_settings().CURRENCY), "PayPal top-up order"
    )


async def capture_paypal_topup(
    db: AsyncSession,
    paypal: PaymentProviderClient,
    *,
    user_id: int,
    paypal_order_id: str,
) -> TopupResult:
    """Capture an approved PayPal order and credit the captured amount once."""
    capture = await _provider_call(paypal.capture(paypal_order_id), "PayPal top-up capture")
    if capture.state != PaymentState.SUCCEEDED:
        raise errors.ProviderNotCompleted("PayPal payment not completed")
    if not capture.reference or capture.amount is None:
        raise errors.ProviderMismatch("PayPal capture is missing its id or amount")

    existing = await find_topup(db, capture.reference)
    if existing is not None:
        return await _recorded_result(db, existing)

    amount = validate_topup_amount(capture.amount)
    try:
        txn = await apply_credit(
            db,
            user_id=user_id,
            amount=amount,
            transaction_type=TransactionType.TOPUP,
            reference=topup_reference(TopupProvider.PAYPAL, capture.reference),
        )
        db.add(
            WalletTopup(
                user_id=user_id,
                provider=TopupProvider.PAYPAL,
                amount=amount,
                status=TopupStatus.COMPLETED,
                provider_ref=capture.reference,
                completed_at=utc_now(),
            )
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await find_topup(db, capture.reference)
        if existing is None:
            raise
        return await _recorded_result(db, existing)
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "PayPal top-up %s credited %s to user %s (balance=%s)",
        capture.reference,
        amount,
        user_id,
        txn.balance_after,
    )
    return TopupResult(
        new_balance=to_money(txn.balance_after), amount=amount, provider_ref=capture.reference
    )


# ---------------------------------------------------------------------------
# NETS QR
# ---------------------------------------------------------------------------


async def create_nets_topup(
    db: AsyncSession,
    nets: PaymentProviderClient,
    *,
    user_id: int,
    amount: Decimal,
) -> tuple[WalletTopup, ProviderIntent]:
    """Generate a NETS QR for the amount and record a pending top-up for it."""
    amount = validate_topup_amount(amount)
    intent = await _provider_call(
        nets.create_intent(amount, get_settings().CURRENCY), "NETS top-up QR"
    )

    topup = WalletTopup(
        user_id=user_id,
        provider=TopupProvider.NETS,
        amount=amount,
        status=TopupStatus.PENDING,
        provider_ref=intent.reference,
    )
    try:
        db.add(topup)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("NETS top-up %s pending for user %s (amount=%s)", intent.reference, user_id, amount)
    return topup, intent


async def confirm_nets_topup(
    db: AsyncSession,
    nets: PaymentProviderClient,
    *,
    user_id: int,
    txn_retrieval_ref: str,
) -> TopupResult:
    """Credit a pending NETS top-up once NETS reports it paid."""
    topup = await find_topup(db, txn_retrieval_ref)
    if topup is None or topup.user_id != user_id or topup.provider != TopupProvider.NETS:
        raise errors.NotFound("Top-up not found")
    if topup.status != TopupStatus.PENDING:
        return await _recorded_result(db, topup)

    status = await _provider_call(nets.capture(txn_retrieval_ref), "NETS top-up status")
    if status.state != PaymentState.SUCCEEDED:
        raise errors.ProviderNotCompleted("NETS payment not completed")

    topup_id = topup.id
    try:
        locked = (
            await db.execute(
                select(WalletTopup)
                .where(WalletTopup.id == topup_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        if locked.status != TopupStatus.PENDING:
            prior = await _recorded_result(db, locked)
            await db.rollback()
            return prior

        txn = await apply_credit(
            db,
            user_id=user_id,
            amount=locked.amount,
            transaction_type=TransactionType.TOPUP,
            reference=topup_reference(TopupProvider.NETS, txn_retrieval_ref),
        )
        locked.status = TopupStatus.COMPLETED
        locked.completed_at = utc_now()
        amount = to_money(locked.amount)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        topup = await find_topup(db, txn_retrieval_ref)
        if topup is None:
            raise
        return await _recorded_result(db, topup)
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "NETS top-up %s credited %s to user %s (balance=%s)",
        txn_retrieval_ref,
        amount,
        user_id,
        txn.balance_after,
    )
    return TopupResult(
        new_balance=to_money(txn.balance_after), amount=amount, provider_ref=txn_retrieval_ref
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


async def list_topups(db: AsyncSession, user_id: int, *, limit: int = 10) -> list[WalletTopup]:
    result = await db.execute(
        select(WalletTopup)
        .where(WalletTopup.user_id == user_id)
        .order_by(WalletTopup.created_at.desc(), WalletTopup.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_wallet_summary(db: AsyncSession, user_id: int) -> WalletSummary:
    return WalletSummary(
        balance=await get_balance(db, user_id),
        topups=await list_topups(db, user_id),
        transactions=await list_transactions(db, user_id),
    )
