from .connect_adapter import StripeConnectAdapter
from .payment_adapter import StripePaymentAdapter

__all__ = ["StripeConnectAdapter", "StripePaymentAdapter"]
