"""Service provider helpers for wiring OrderService with its ports.

``get_order_service`` returns an ``OrderService`` built from the ORM-backed
repositories, the inventory ledger, the customer directory, the split policy
from settings, and the payment gateway chosen by
``apps.payments.providers.get_payment_gateway`` (HTTP client when
``settings.USE_HTTP_ADAPTERS`` is truthy, in-process stub otherwise).
"""

from django.conf import settings

from apps.accounts.directory import CustomerDirectory
from apps.catalog.inventory import InventoryLedger
from apps.catalog.repository import ProductRepository
from apps.payments.providers import get_payment_gateway
from apps.payments.split import SplitPolicy

from .repository import OrderRepository
from .services import OrderService


def get_order_service() -> OrderService:
    """Return a configured OrderService instance."""
    return OrderService(
        orders=OrderRepository(),
        products=ProductRepository(),
        inventory=InventoryLedger(),
        customers=CustomerDirectory(),
        payments=get_payment_gateway(),
        split_policy=SplitPolicy(),
        default_phone=getattr(settings, "DEFAULT_CUSTOMER_PHONE", "11999999999"),
        default_country=getattr(settings, "DEFAULT_CUSTOMER_COUNTRY", "br"),
    )
