import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class PaymentProvider(str, enum.Enum):
    WALLET = "wallet"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    STRIPE_PAYNOW = "stripe_paynow"
    NETS = "nets"

    @property
    def is_async(self) -> bool:
        """QR / PayNow payments settle after the shopper scans, via polling."""
        return self in (PaymentProvider.NETS, PaymentProvider.STRIPE_PAYNOW)


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    REFUNDED = "refunded"
