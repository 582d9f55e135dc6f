# shipping/models.py
from django.conf import settings
from django.db import models


class CarrierSettings(models.Model):
    """Shiprocket account configuration, exactly one row per tenant."""

    tenant = models.CharField(max_length=64, unique=True, default="default")
    email = models.EmailField(blank=True, default="")
    # Never echoed back to any client
    password = models.CharField(max_length=255, blank=True, default="")

    # Observability only: the last token minted, never reused for authorization
    token = models.TextField(blank=True, null=True)
    token_refreshed_at = models.DateTimeField(blank=True, null=True)

    default_courier_id = models.CharField(max_length=50, blank=True, default="")
    auto_ship_enabled = models.BooleanField(default=False)
    pickup_postcode = models.CharField(max_length=10, blank=True, default="")
    channel_id = models.CharField(max_length=50, blank=True, default="")

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "carrier settings"

    def __str__(self):
        return f"Shiprocket settings ({self.tenant})"


class SellerSettings(models.Model):
    seller = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="shipping_settings", on_delete=models.CASCADE)
    # Write-once; only support tooling edits it afterwards
    pickup_address = models.JSONField(blank=True, null=True)
    pickup_location = models.CharField(max_length=36, blank=True, default="")
    pickup_registered_at = models.DateTimeField(blank=True, null=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "seller settings"

    def __str__(self):
        return f"Shipping settings for seller {self.seller_id}"
