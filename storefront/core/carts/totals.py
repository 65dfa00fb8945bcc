from decimal import Decimal
from typing import Iterable, Optional

from storefront.core.carts.models import CartTotals, CouponAttachment, LineItem, ShippingQuote
from storefront.core.pricing import ZERO, parse_price


def shipping_cost(shipping: Optional[ShippingQuote]) -> Decimal:
    return parse_price(shipping.shipping_price) if shipping else ZERO


def derive_totals(
    items: Iterable[LineItem],
    coupon: Optional[CouponAttachment] = None,
    shipping: Optional[ShippingQuote] = None,
) -> CartTotals:
    """Recalcula todos los totales a partir de los ítems y los adjuntos."""
    items = list(items)
    subtotal = sum((i.line_total() for i in items), ZERO)
    discount = coupon.discount if coupon else ZERO
    total = max(ZERO, subtotal - discount)
    cost = shipping_cost(shipping)
    return CartTotals(
        count=sum(i.quantity for i in items),
        subtotal=subtotal,
        discount=discount,
        total=total,
        shipping_cost=cost,
        final_total=total + cost,
    )
