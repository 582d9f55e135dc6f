# catalog/models.py
from django.db import models
from django.utils.text import slugify
import re

class Product(models.Model):
    title = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True, blank=True)
    sku = models.CharField(max_length=100, blank=True, default="")
    hsn = models.CharField(max_length=20, blank=True, default="")
    # minor units (paise)
    price = models.PositiveBigIntegerField(default=0)

    # Package metadata, any of these may be unknown
    weight = models.PositiveIntegerField(blank=True, null=True, help_text="Weight in grams")
    length = models.DecimalField(max_digits=8, decimal_places=2, blank=True, null=True, help_text="cm")
    width = models.DecimalField(max_digits=8, decimal_places=2, blank=True, null=True, help_text="cm")
    height = models.DecimalField(max_digits=8, decimal_places=2, blank=True, null=True, help_text="cm")

    date_added = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if not self.slug:
            clean_title = re.sub(r'[^\w\s-]', '', self.title)
            clean_title = re.sub(r'\s+', ' ', clean_title).strip()
            base_slug = slugify(clean_title) or "product"
            
            slug = base_slug
            counter = 1
            while self.__class__.objects.filter(slug=slug).exists():
                slug = f"{base_slug}-{counter}"
                counter += 1
                
            self.slug = slug
        super().save(*args, **kwargs)

    def __str__(self):  
        return self.title
