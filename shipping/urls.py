from django.urls import path
from . import views

urlpatterns = [
    # ============ Orders ============
    path("orders/<int:order_id>/ship/", views.ship_order, name="shiprocket_ship_order"),
    path("orders/pending/", views.pending_orders, name="shiprocket_pending_orders"),
    path("orders/shipped/", views.list_shipped_orders, name="shiprocket_shipped_orders"),
    path("auto-ship/", views.auto_ship, name="shiprocket_auto_ship"),
    path("orders/<int:order_id>/cancel/", views.cancel_shipment, name="shiprocket_cancel_shipment"),
    path("orders/<int:order_id>/tracking/", views.tracking, name="shiprocket_tracking"),
    path("orders/<int:order_id>/label/", views.shipping_label, name="shiprocket_label"),

    # ============ Seller setup ============
    path("pickup-address/", views.pickup_address, name="shiprocket_pickup_address"),
    path("settings/", views.shiprocket_settings, name="shiprocket_settings"),
    path("token/", views.generate_token, name="shiprocket_token"),

    # ============ Couriers ============
    path("couriers/", views.couriers, name="shiprocket_couriers"),
]
