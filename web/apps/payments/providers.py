"""Provider for the payment gateway adapter.

``get_payment_gateway`` returns the adapter the application should use. The
instance is built once per process and handed to services by reference;
``reset_payment_gateway`` drops it so settings changes (tests, reloads) take
effect.

With ``settings.USE_HTTP_ADAPTERS`` truthy the HTTP client is used; otherwise
an in-process stub suitable for tests and local development.
"""

import threading

from django.conf import settings

from .adapters import PaymentGatewayStub
from .domain import PaymentGatewayPort
from .http_adapters import HttpPaymentGatewayClient

_lock = threading.Lock()
_instances: dict[bool, PaymentGatewayPort] = {}


def get_payment_gateway() -> PaymentGatewayPort:
    """Return the process-wide payment gateway adapter."""
    use_http = bool(getattr(settings, "USE_HTTP_ADAPTERS", True))
    with _lock:
        gateway = _instances.get(use_http)
        if gateway is None:
            gateway = HttpPaymentGatewayClient() if use_http else PaymentGatewayStub()
            _instances[use_http] = gateway
        return gateway


def reset_payment_gateway() -> None:
    with _lock:
        _instances.clear()
