from django.contrib import admin
from .models import Order, OrderItem, ShippingAddress


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = ('product', 'price', 'quantity')
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user",
        "seller",
        "status",
        "payment_method",
        "shiprocket_order_id",
        "shipping_status",
        "awb_code",
        "courier_name",
        "total",
        "created_at",
    )

    list_filter = (
        "status",
        "shipping_status",
        "payment_method",
        "created_at",
    )
    
    search_fields = (
        "id",
        "user__email",
        "shiprocket_order_id",
        "awb_code",
    )
    
    # Carrier fields are owned by the fulfillment state machine
    readonly_fields = (
        'created_at',
        'updated_at',
        'shiprocket_order_id',
        'shiprocket_shipment_id',
        'shipping_status',
        'awb_code',
        'courier_name',
        'estimated_delivery_date',
        'shipment_claimed_at',
        'shipped_at',
    )
    
    inlines = [OrderItemInline]
    
    fieldsets = (
        ("Customer", {
            "fields": ("user", "seller", "address")
        }),
        ("Payment & Pricing", {
            "fields": (
                "payment_method",
                "shipping_charges",
                "discount",
                "total",
            )
        }),
        ("Order Status", {
            "fields": ("status",)
        }),
        ("Shiprocket Tracking", {
            "fields": (
                "shiprocket_order_id",
                "shiprocket_shipment_id",
                "shipping_status",
                "awb_code",
                "courier_name",
                "estimated_delivery_date",
                "shipment_claimed_at",
                "shipped_at",
            ),
            "classes": ("collapse",)
        }),
        ("System Metadata", {
            "fields": (
                "created_at",
                "updated_at",
            ),
            "classes": ("collapse",)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related('items')


@admin.register(ShippingAddress)
class ShippingAddressAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "city", "state", "pincode", "phone")
    search_fields = ("user__email", "pincode", "city")
