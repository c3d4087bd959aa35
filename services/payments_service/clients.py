"""Provider client registry, injectable as a FastAPI dependency."""

from dataclasses import dataclass

from libs.common import errors
from services.payments_service.models import PaymentProvider
from services.payments_service.nets_client import NetsClient
from services.payments_service.paypal_client import PayPalClient
from services.payments_service.provider_types import PaymentProviderClient
from services.payments_service.stripe_client import StripeClient, StripePayNowClient


@dataclass
class ProviderClients:
    paypal: PaymentProviderClient
    stripe: PaymentProviderClient
    stripe_paynow: PaymentProviderClient
    nets: PaymentProviderClient

    def for_provider(self, provider: PaymentProvider) -> PaymentProviderClient:
        if provider == PaymentProvider.WALLET:
            raise errors.ValidationError("Wallet payments have no external provider")
        return getattr(self, PaymentProvider(provider).value)


def get_provider_clients() -> ProviderClients:
    return ProviderClients(
        paypal=PayPalClient(),
        stripe=StripeClient(),
        stripe_paynow=StripePayNowClient(),
        nets=NetsClient(),
    )
