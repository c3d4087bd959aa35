"""Integration tests for admin refunds to the shopper's wallet."""

from decimal import Decimal

import pytest
from libs.common import errors
from services.members_service.models import User
from services.payments_service.models import Payment, PaymentProvider, PaymentStatus
from services.payments_service.services import refunds
from services.payments_service.services.reconciliation import (
    PaymentProof,
    create_payment_intent,
    settle_checkout,
)
from services.payments_service.services.refunds import refund_payment
from services.store_service.services.checkout import start_checkout
from services.wallet_service.models import TransactionType, WalletTransaction
from services.wallet_service.services.wallet_ops import find_transaction
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from tests.factories import reload


async def _paid_order(db, clients, user_id, products, provider=PaymentProvider.PAYPAL) -> int:
    drink, snack = products
    checkout, _ = await start_checkout(
        db,
        user_id=user_id,
        items=[(drink.id, 2), (snack.id, 1)],
        delivery_method="pickup",
    )
    checkout_id = checkout.id
    reference = None
    if provider != PaymentProvider.WALLET:
        intent = await create_payment_intent(
            db, checkout_id=checkout_id, user_id=user_id, provider=provider, clients=clients
        )
        clients.for_provider(provider).pay(intent.reference)
        reference = intent.reference
    result = await settle_checkout(
        db,
        checkout_id=checkout_id,
        user_id=user_id,
        provider=provider,
        proof=PaymentProof(reference=reference),
        clients=clients,
    )
    return result.order_id


async def _payment(db, order_id) -> Payment:
    result = await db.execute(
        select(Payment).where(Payment.order_id == order_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_credits_wallet_and_marks_payment(db_session, shopper, admin, products, provider_clients):
    user_id = shopper.id
    order_id = await _paid_order(db_session, provider_clients, user_id, products)

    result = await refund_payment(db_session, order_id=order_id, performed_by=admin.id)

    assert result.amount == Decimal("7.00")
    assert result.new_balance == Decimal("7.00")
    assert result.user_id == user_id
    payment = await _payment(db_session, order_id)
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refunded_at is not None

    txn = await find_transaction(db_session, f"refund:order:{order_id}")
    assert txn.transaction_type == TransactionType.REFUND
    assert txn.amount == Decimal("7.00")
    assert txn.balance_after == Decimal("7.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_wallet_purchase_refund_restores_balance(db_session, shopper, admin, products, provider_clients):
    shopper.wallet_balance = Decimal("20.00")
    await db_session.commit()
    user_id = shopper.id
    order_id = await _paid_order(db_session, provider_clients, user_id, products, PaymentProvider.WALLET)

    result = await refund_payment(db_session, order_id=order_id, performed_by=admin.id)

    assert result.new_balance == Decimal("20.00")
    assert (await reload(db_session, User, user_id)).wallet_balance == Decimal("20.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_twice_rejected(db_session, shopper, admin, products, provider_clients):
    admin_id = admin.id
    order_id = await _paid_order(db_session, provider_clients, shopper.id, products)
    await refund_payment(db_session, order_id=order_id, performed_by=admin_id)

    with pytest.raises(errors.AlreadyProcessed):
        await refund_payment(db_session, order_id=order_id, performed_by=admin_id)

    count = await db_session.execute(
        select(func.count()).select_from(WalletTransaction).where(
            WalletTransaction.transaction_type == TransactionType.REFUND
        )
    )
    assert count.scalar_one() == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_without_payment(db_session, admin):
    with pytest.raises(errors.NotFound, match="Payment not found"):
        await refund_payment(db_session, order_id=12345, performed_by=admin.id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_status_update_failure_is_inconsistent_and_rerun_is_safe(
    db_session, session_factory, shopper, admin, products, provider_clients, monkeypatch
):
    """The credit lands, the payment update fails; re-running finishes without a second credit."""
    user_id, admin_id = shopper.id, admin.id
    order_id = await _paid_order(db_session, provider_clients, user_id, products)

    real_credit = refunds.credit_with_type

    async def credit_then_break_db(db, **kwargs):
        txn = await real_credit(db, **kwargs)

        async def broken_execute(*args, **kw):
            raise OperationalError("SELECT payments FOR UPDATE", {}, Exception("connection lost"))

        monkeypatch.setattr(db, "execute", broken_execute)
        return txn

    monkeypatch.setattr(refunds, "credit_with_type", credit_then_break_db)

    with pytest.raises(errors.InconsistentState):
        await refund_payment(db_session, order_id=order_id, performed_by=admin_id)

    monkeypatch.undo()

    async with session_factory() as check:
        assert (await _payment(check, order_id)).status == PaymentStatus.PAID
        assert (await reload(check, User, user_id)).wallet_balance == Decimal("7.00")

    result = await refund_payment(db_session, order_id=order_id, performed_by=admin_id)

    assert result.new_balance == Decimal("7.00")
    assert (await _payment(db_session, order_id)).status == PaymentStatus.REFUNDED
    assert (await reload(db_session, User, user_id)).wallet_balance == Decimal("7.00")
