from django.contrib import admin
from .models import CarrierSettings, SellerSettings


@admin.register(CarrierSettings)
class CarrierSettingsAdmin(admin.ModelAdmin):
    list_display = ("tenant", "email", "default_courier_id", "auto_ship_enabled", "token_refreshed_at", "updated_at")
    # Token is observability only; password is excluded from the form
    exclude = ("password",)
    readonly_fields = ("token", "token_refreshed_at", "updated_at")


@admin.register(SellerSettings)
class SellerSettingsAdmin(admin.ModelAdmin):
    list_display = ("seller", "pickup_location", "pickup_registered_at")
    search_fields = ("seller__email", "pickup_location")
    readonly_fields = ("pickup_registered_at", "updated_at")
