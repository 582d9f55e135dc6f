from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # ============ SHIPPING (seller-facing Shiprocket API) ============
    path("api/shiprocket/", include("shipping.urls")),

    # ============ ADMIN ============
    path("admin/", admin.site.urls),
]
