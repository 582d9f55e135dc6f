# shipping/metrics.py
from dataclasses import dataclass
from decimal import Decimal

from catalog.models import Product

DEFAULT_WEIGHT_GRAMS = 500
DEFAULT_DIMENSION_CM = Decimal("10")


@dataclass(frozen=True)
class PackageMetrics:
    total_weight_grams: int
    max_length: Decimal
    max_width: Decimal
    max_height: Decimal


def aggregate_package_metrics(items, products=None):
    """
    Weight and bounding box of one consolidated package.

    Weight is summed per unit, in grams. Dimensions are the component-wise
    maximum across items: everything ships in a single box sized to the
    largest item, so dimensions never add up. Defaults apply per missing
    field, not per item.

    Args:
        items: order items with ``product_id`` and ``quantity``
        products: optional ``{product_id: Product}`` map; looked up in bulk when omitted
    """
    items = list(items)
    if products is None:
        products = Product.objects.in_bulk({item.product_id for item in items if item.product_id})

    total_weight = 0
    lengths, widths, heights = [], [], []
    for item in items:
        product = products.get(item.product_id)
        weight = getattr(product, "weight", None)
        total_weight += (DEFAULT_WEIGHT_GRAMS if weight is None else weight) * item.quantity
        lengths.append(_dimension(product, "length"))
        widths.append(_dimension(product, "width"))
        heights.append(_dimension(product, "height"))

    return PackageMetrics(
        total_weight_grams=total_weight,
        max_length=max(lengths, default=DEFAULT_DIMENSION_CM),
        max_width=max(widths, default=DEFAULT_DIMENSION_CM),
        max_height=max(heights, default=DEFAULT_DIMENSION_CM),
    )


def _dimension(product, field):
    value = getattr(product, field, None)
    return DEFAULT_DIMENSION_CM if value is None else Decimal(value)
