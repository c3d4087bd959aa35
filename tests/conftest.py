from dataclasses import replace
from decimal import Decimal

import pytest
import pytest_asyncio
from libs.common.config import get_settings
from tests.factories import ProductFactory, UserFactory, persist
from tests.stubs import FakePayPalApi


@pytest_asyncio.fixture
async def shopper(db_session, current_user):
    """A stored shopper with an empty wallet; app clients act as them."""
    user = await persist(db_session, UserFactory.create())
    current_user.act_as(user)
    return user


@pytest_asyncio.fixture
async def admin(db_session):
    return await persist(db_session, UserFactory.create_admin())


@pytest_asyncio.fixture
async def products(db_session):
    """Example catalog: a S$2.00 drink with 10 in stock and a S$3.00 snack with 5."""
    drink = ProductFactory.create(name="Kopi", price=Decimal("2.00"), quantity=10)
    snack = ProductFactory.create(name="Kaya Toast", price=Decimal("3.00"), quantity=5)
    return await persist(db_session, drink, snack)


@pytest.fixture
def fast_polling(monkeypatch):
    """Status streams poll immediately and give up after three attempts."""
    settings = get_settings()
    monkeypatch.setattr(settings, "STATUS_POLL_INTERVAL_SECONDS", 0.0)
    monkeypatch.setattr(settings, "STATUS_POLL_MAX_ATTEMPTS", 3)
    return settings


@pytest.fixture
def paypal_api():
    """A PayPal Orders API that captures each order once."""
    return FakePayPalApi()


@pytest.fixture
def paypal_clients(provider_clients, paypal_api):
    """Provider clients whose PayPal client is the real one, talking to ``paypal_api``."""
    return replace(provider_clients, paypal=paypal_api.client())
