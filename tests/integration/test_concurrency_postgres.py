"""Row-locking behaviour under concurrent sessions.

SQLite serialises writers and ignores ``FOR UPDATE``, so these only run when
TEST_DATABASE_URL points at Postgres.
"""

import asyncio
from decimal import Decimal

import pytest
from libs.common import errors
from services.members_service.models import User
from services.payments_service.models import PaymentProvider
from services.payments_service.services.reconciliation import PaymentProof, settle_checkout
from services.store_service.models import DeliveryMethod, Order, Product
from services.store_service.services.checkout import start_checkout
from services.store_service.services.types import CartLine, DeliveryOptions
from services.wallet_service.models import TransactionType, WalletTransaction
from services.wallet_service.services.wallet_ops import credit_with_type, debit_for_purchase
from sqlalchemy import func, select
from tests.factories import ProductFactory, UserFactory, persist, reload

pytestmark = pytest.mark.postgres


@pytest.fixture(autouse=True)
def _postgres_only(is_postgres):
    if not is_postgres:
        pytest.skip("row locking needs Postgres (set TEST_DATABASE_URL)")


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_purchases_never_oversell(db_session, session_factory):
    """Two funded shoppers each buy 3 of the 5 in stock; exactly one order is created."""
    kopi = await persist(db_session, ProductFactory.create(name="Kopi", price=Decimal("2.00"), quantity=5))
    first = await persist(db_session, UserFactory.create(wallet_balance=Decimal("20.00")))
    second = await persist(db_session, UserFactory.create(wallet_balance=Decimal("20.00")))
    product_id = kopi.id
    lines = [CartLine(product_id=product_id, quantity=3, unit_price=Decimal("2.00"), product_name="Kopi")]

    async def buy(user_id: int):
        async with session_factory() as session:
            return await debit_for_purchase(
                session, user_id=user_id, lines=lines, delivery=DeliveryOptions()
            )

    results = await asyncio.gather(buy(first.id), buy(second.id), return_exceptions=True)

    succeeded = [r for r in results if not isinstance(r, BaseException)]
    failed = [r for r in results if isinstance(r, BaseException)]
    assert len(succeeded) == 1
    assert len(failed) == 1 and isinstance(failed[0], errors.InsufficientStock)
    assert (await reload(db_session, Product, product_id)).quantity == 2
    assert await _count(db_session, Order) == 1
    balances = sorted(
        [
            (await reload(db_session, User, first.id)).wallet_balance,
            (await reload(db_session, User, second.id)).wallet_balance,
        ]
    )
    assert balances == [Decimal("14.00"), Decimal("20.00")]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_confirms_create_one_order(db_session, session_factory, provider_clients):
    product = await persist(db_session, ProductFactory.create(price=Decimal("3.00"), quantity=5))
    user = await persist(db_session, UserFactory.create(wallet_balance=Decimal("10.00")))
    user_id = user.id
    checkout, _ = await start_checkout(
        db_session, user_id=user_id, items=[(product.id, 1)], delivery_method=DeliveryMethod.PICKUP
    )
    checkout_id = checkout.id

    async def confirm():
        async with session_factory() as session:
            return await settle_checkout(
                session,
                checkout_id=checkout_id,
                user_id=user_id,
                provider=PaymentProvider.WALLET,
                proof=PaymentProof(),
                clients=provider_clients,
            )

    first, second = await asyncio.gather(confirm(), confirm())

    assert first.order_id == second.order_id
    assert sorted([first.already_processed, second.already_processed]) == [False, True]
    assert await _count(db_session, Order) == 1
    assert (await reload(db_session, User, user_id)).wallet_balance == Decimal("7.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_credit_with_same_reference(db_session, session_factory):
    user = await persist(db_session, UserFactory.create())
    user_id = user.id

    async def credit():
        async with session_factory() as session:
            return await credit_with_type(
                session,
                user_id=user_id,
                amount=Decimal("5.00"),
                transaction_type=TransactionType.TOPUP,
                reference="paypal:CAP-RACE",
            )

    first, second = await asyncio.gather(credit(), credit())

    assert first.id == second.id
    assert await _count(db_session, WalletTransaction) == 1
    assert (await reload(db_session, User, user_id)).wallet_balance == Decimal("5.00")
