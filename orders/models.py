# orders/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone


class ShippingAddress(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="addresses", on_delete=models.CASCADE)
    full_name = models.CharField(max_length=200, blank=True, default="")
    address = models.TextField()
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    pincode = models.CharField(max_length=10)
    phone = models.CharField(max_length=20)

    def __str__(self):
        return f"{self.address}, {self.city} - {self.pincode}"


class Order(models.Model):
    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_SHIPPED = "shipped"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_SHIPPED, "Shipped"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    PAYMENT_COD = "cod"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="orders", on_delete=models.SET_NULL, blank=True, null=True
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="sales", on_delete=models.SET_NULL, blank=True, null=True
    )
    address = models.ForeignKey(
        ShippingAddress, related_name="orders", on_delete=models.SET_NULL, blank=True, null=True
    )

    # Payment
    payment_method = models.CharField(max_length=50, default="prepaid")

    # Pricing, minor units (paise)
    total = models.PositiveBigIntegerField(default=0)
    shipping_charges = models.PositiveBigIntegerField(default=0)
    discount = models.PositiveBigIntegerField(default=0)

    # Status
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    # Shiprocket Integration
    # Non-null shiprocket_order_id means the order was already submitted to the carrier
    shiprocket_order_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    shiprocket_shipment_id = models.CharField(max_length=100, blank=True, null=True)
    shipping_status = models.CharField(max_length=50, blank=True, null=True)
    awb_code = models.CharField(max_length=100, blank=True, null=True)
    courier_name = models.CharField(max_length=200, blank=True, null=True)
    estimated_delivery_date = models.CharField(max_length=50, blank=True, null=True)

    # Set while a Ship call owns the order
    shipment_claimed_at = models.DateTimeField(blank=True, null=True)
    shipped_at = models.DateTimeField(blank=True, null=True)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['shiprocket_order_id'],
                name='unique_shiprocket_order',
                condition=models.Q(shiprocket_order_id__isnull=False) & ~models.Q(shiprocket_order_id=""),
            ),
        ]

    @property
    def is_cod(self):
        return (self.payment_method or "").lower() == self.PAYMENT_COD

    def __str__(self):
        return f"Order #{self.id} ({self.status})"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(
        "catalog.Product", related_name="order_items", on_delete=models.SET_NULL, blank=True, null=True
    )
    # minor units (paise)
    price = models.PositiveBigIntegerField(default=0)
    quantity = models.PositiveIntegerField(default=1)

    def __str__(self):
        return f"Product {self.product_id} x {self.quantity}"
