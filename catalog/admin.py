from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "sku", "price", "weight", "length", "width", "height")
    search_fields = ("title", "sku")
    readonly_fields = ("slug", "date_added")
