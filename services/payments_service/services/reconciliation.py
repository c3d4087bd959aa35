"""Payment reconciliation: verify a provider payment, then settle it exactly once.

Every provider shares one flow (``Settler.settle``):

1. A completed checkout returns its earlier result.
2. The expected total is re-derived from the checkout snapshot.
3. The provider-specific ``verify`` returns the settled reference and amount.
4. A Payment already recorded for that reference is returned as-is.
5. The amount must equal the expected total to the cent.
6. Order, Payment and checkout completion are written in one transaction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common import errors
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.money import same_amount, to_money
from services.payments_service.clients import ProviderClients
from services.payments_service.models import Payment, PaymentProvider, PaymentStatus
from services.payments_service.provider_types import (
    PaymentProviderClient,
    PaymentState,
    ProviderError,
    ProviderIntent,
)
from services.store_service.models import CheckoutStatus, Order, PendingCheckout
from services.store_service.services.checkout import (
    checkout_delivery,
    checkout_lines,
    expected_total,
    get_checkout,
)
from services.store_service.services.order_creator import place_order, to_order_result
from services.store_service.services.types import OrderResult
from services.wallet_service.services.wallet_ops import apply_purchase_debit
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class PaymentProof:
    """What the client sends back after paying: an order / intent / QR reference."""

    reference: Optional[str] = None


@dataclass
class VerifiedPayment:
    provider_ref: str
    amount: Decimal


@dataclass
class SettlementResult:
    order_id: int
    total: Decimal
    provider: PaymentProvider
    status: PaymentStatus
    provider_ref: str
    already_processed: bool = False
    wallet_balance: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def find_payment(
    db: AsyncSession, provider: PaymentProvider, provider_ref: str
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.provider == provider, Payment.provider_ref == provider_ref)
    )
    return result.scalar_one_or_none()


async def result_for_payment(
    db: AsyncSession, payment: Payment, *, already_processed: bool
) -> SettlementResult:
    order = await db.get(Order, payment.order_id)
    return SettlementResult(
        order_id=payment.order_id,
        total=to_money(order.total if order is not None else payment.amount),
        provider=payment.provider,
        status=payment.status,
        provider_ref=payment.provider_ref,
        already_processed=already_processed,
    )


async def result_for_checkout(db: AsyncSession, checkout: PendingCheckout) -> SettlementResult:
    """Result of a checkout that has already been settled."""
    payment = None
    if checkout.order_id is not None:
        payment = (
            await db.execute(select(Payment).where(Payment.order_id == checkout.order_id))
        ).scalar_one_or_none()
    if payment is None:
        logger.error("Checkout %s is completed but has no payment", checkout.id)
        raise errors.InconsistentState(f"Checkout {checkout.id} has no recorded payment")
    return await result_for_payment(db, payment, already_processed=True)


# ---------------------------------------------------------------------------
# Settlers
# ---------------------------------------------------------------------------


class Settler(ABC):
    provider: PaymentProvider
    # QR / PayNow: the checkout must carry the intent created for it
    requires_started_intent: bool = False

    def __init__(self, client: Optional[PaymentProviderClient] = None):
        self.client = client

    @abstractmethod
    async def verify(
        self, checkout: PendingCheckout, proof: PaymentProof, expected: Decimal
    ) -> VerifiedPayment:
        """Ask the provider whether and how much was paid."""

    async def place(self, db: AsyncSession, checkout: PendingCheckout) -> OrderResult:
        order = await place_order(
            db,
            user_id=checkout.user_id,
            lines=checkout_lines(checkout),
            delivery=checkout_delivery(checkout),
        )
        return to_order_result(order)

    def check_proof(self, checkout: PendingCheckout, proof: PaymentProof) -> str:
        if not proof.reference:
            raise errors.ValidationError("Payment reference is required")
        started_here = checkout.payment_provider == self.provider.value and checkout.provider_ref
        if self.requires_started_intent and not started_here:
            raise errors.ValidationError("No payment has been started for this checkout")
        if started_here and proof.reference != checkout.provider_ref:
            raise errors.ProviderMismatch("Payment reference does not belong to this checkout")
        return proof.reference

    async def settle(
        self, db: AsyncSession, checkout: PendingCheckout, proof: PaymentProof
    ) -> SettlementResult:
        if checkout.status == CheckoutStatus.COMPLETED:
            return await result_for_checkout(db, checkout)
        if checkout.status != CheckoutStatus.OPEN:
            raise errors.ValidationError("Checkout is no longer active")

        expected = expected_total(checkout)
        try:
            verified = await self.verify(checkout, proof, expected)
        except ProviderError as exc:
            logger.error(
                "%s verification failed for checkout %s: %s",
                self.provider.value,
                checkout.id,
                exc.message,
            )
            raise errors.ProviderUnavailable(f"{self.provider.value}: {exc.message}") from exc

        if self.provider != PaymentProvider.WALLET:
            existing = await find_payment(db, self.provider, verified.provider_ref)
            if existing is not None:
                logger.info(
                    "%s payment %s already settled as order %s",
                    self.provider.value,
                    verified.provider_ref,
                    existing.order_id,
                )
                return await result_for_payment(db, existing, already_processed=True)

        if not same_amount(verified.amount, expected):
            logger.warning(
                "%s amount mismatch on checkout %s: expected %s, provider reported %s",
                self.provider.value,
                checkout.id,
                expected,
                verified.amount,
            )
            raise errors.ProviderMismatch(
                f"Paid amount {to_money(verified.amount)} does not match order total {expected}"
            )

        try:
            locked = await get_checkout(db, checkout.id, checkout.user_id, for_update=True)
            if locked.status == CheckoutStatus.COMPLETED:
                prior = await result_for_checkout(db, locked)
                await db.rollback()
                return prior

            placed = await self.place(db, locked)
            db.add(
                Payment(
                    order_id=placed.order_id,
                    provider=self.provider,
                    status=PaymentStatus.PAID,
                    amount=placed.total,
                    currency=get_settings().CURRENCY,
                    provider_ref=verified.provider_ref,
                )
            )
            locked.status = CheckoutStatus.COMPLETED
            locked.order_id = placed.order_id
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # wallet:<userId> repeats across payments, so only external refs identify a winner
            if self.provider == PaymentProvider.WALLET:
                raise
            existing = await find_payment(db, self.provider, verified.provider_ref)
            if existing is None:
                raise
            return await result_for_payment(db, existing, already_processed=True)
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Settled checkout %s via %s: order %s total=%s ref=%s",
            checkout.id,
            self.provider.value,
            placed.order_id,
            placed.total,
            verified.provider_ref,
        )
        return SettlementResult(
            order_id=placed.order_id,
            total=placed.total,
            provider=self.provider,
            status=PaymentStatus.PAID,
            provider_ref=verified.provider_ref,
            wallet_balance=placed.wallet_balance,
        )


class WalletSettler(Settler):
    provider = PaymentProvider.WALLET

    async def verify(self, checkout, proof, expected):
        return VerifiedPayment(provider_ref=f"wallet:{checkout.user_id}", amount=expected)

    async def place(self, db, checkout):
        return await apply_purchase_debit(
            db,
            user_id=checkout.user_id,
            lines=checkout_lines(checkout),
            delivery=checkout_delivery(checkout),
        )


class PayPalSettler(Settler):
    provider = PaymentProvider.PAYPAL

    async def verify(self, checkout, proof, expected):
        capture = await self.client.capture(self.check_proof(checkout, proof))
        if capture.state != PaymentState.SUCCEEDED:
            raise errors.ProviderNotCompleted("PayPal payment not completed")
        if not capture.reference or capture.amount is None:
            raise errors.ProviderMismatch("PayPal capture is missing its id or amount")
        return VerifiedPayment(provider_ref=capture.reference, amount=capture.amount)


class StripeSettler(Settler):
    provider = PaymentProvider.STRIPE

    async def verify(self, checkout, proof, expected):
        intent = await self.client.capture(self.check_proof(checkout, proof))
        if intent.state != PaymentState.SUCCEEDED:
            raise errors.ProviderNotCompleted("Stripe payment not completed")
        if intent.amount is None:
            raise errors.ProviderMismatch("Stripe payment has no received amount")
        return VerifiedPayment(provider_ref=intent.reference, amount=intent.amount)


class StripePayNowSettler(StripeSettler):
    provider = PaymentProvider.STRIPE_PAYNOW
    requires_started_intent = True


class NetsSettler(Settler):
    provider = PaymentProvider.NETS
    requires_started_intent = True

    async def verify(self, checkout, proof, expected):
        reference = self.check_proof(checkout, proof)
        status = await self.client.capture(reference)
        if status.state != PaymentState.SUCCEEDED:
            raise errors.ProviderNotCompleted("NETS payment not completed")
        if checkout.provider_amount is None:
            raise errors.ProviderMismatch("NETS QR amount was not recorded")
        # The QR was issued for this amount; NETS does not echo it back
        return VerifiedPayment(provider_ref=reference, amount=checkout.provider_amount)


SETTLERS: dict[PaymentProvider, type[Settler]] = {
    PaymentProvider.WALLET: WalletSettler,
    PaymentProvider.PAYPAL: PayPalSettler,
    PaymentProvider.STRIPE: StripeSettler,
    PaymentProvider.STRIPE_PAYNOW: StripePayNowSettler,
    PaymentProvider.NETS: NetsSettler,
}


def build_settler(provider: PaymentProvider, clients: Optional[ProviderClients]) -> Settler:
    provider = PaymentProvider(provider)
    settler_cls = SETTLERS[provider]
    if provider == PaymentProvider.WALLET:
        return settler_cls()
    if clients is None:
        raise errors.ProviderUnavailable(f"No client configured for {provider.value}")
    return settler_cls(clients.for_provider(provider))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def settle_checkout(
    db: AsyncSession,
    *,
    checkout_id: int,
    user_id: int,
    provider: PaymentProvider,
    proof: Optional[PaymentProof] = None,
    clients: Optional[ProviderClients] = None,
) -> SettlementResult:
    """Settle a pending checkout with the given provider's proof of payment."""
    checkout = await get_checkout(db, checkout_id, user_id)
    settler = build_settler(provider, clients)
    return await settler.settle(db, checkout, proof or PaymentProof())


async def create_payment_intent(
    db: AsyncSession,
    *,
    checkout_id: int,
    user_id: int,
    provider: PaymentProvider,
    clients: ProviderClients,
) -> ProviderIntent:
    """Create a provider order / intent / QR for the checkout's current total.

    The reference and amount are stored on the checkout so a later confirm or
    status poll can only settle this payment.
    """
    provider = PaymentProvider(provider)
    checkout = await get_checkout(db, checkout_id, user_id)
    if checkout.status != CheckoutStatus.OPEN:
        raise errors.AlreadyProcessed("Checkout is no longer open")

    client = clients.for_provider(provider)
    amount = expected_total(checkout)
    try:
        intent = await client.create_intent(amount, get_settings().CURRENCY)
    except ProviderError as exc:
        logger.error("%s intent creation failed for checkout %s: %s", provider.value, checkout.id, exc.message)
        raise errors.ProviderUnavailable(f"{provider.value}: {exc.message}") from exc

    try:
        checkout.payment_provider = provider.value
        checkout.provider_ref = intent.reference
        checkout.provider_amount = intent.amount
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Created %s payment %s for checkout %s (amount=%s)",
        provider.value,
        intent.reference,
        checkout.id,
        intent.amount,
    )
    return intent
