import uuid
from django.db import models


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        ACTIVE = "active"
        INACTIVE = "inactive"

    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64, null=True, blank=True)
    # NULL price: not orderable through checkout
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    # NULL quantity: not stock-tracked
    quantity = models.IntegerField(null=True, blank=True)
    # Products sold on a third-party storefront are never stock-managed here
    external_url = models.URLField(max_length=1024, null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]

    @property
    def is_stock_tracked(self) -> bool:
        return self.quantity is not None and not self.external_url
