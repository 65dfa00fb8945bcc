from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from storefront.core.pricing import ZERO, format_brl, parse_price, quantize
from storefront.storage.models import Coupon


@dataclass
class CouponValidation:
    valid: bool
    message: str
    discount: Decimal = ZERO
    code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "message": self.message,
            "discount": float(self.discount),
            "code": self.code,
        }


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_coupon(db: Session, brand_id: str, code: str) -> Optional[Coupon]:
    return (
        db.query(Coupon)
        .filter(
            Coupon.brand_id == brand_id,
            Coupon.code == normalize_code(code),
            Coupon.active.is_(True),
        )
        .first()
    )


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve fechas sin zona; se asumen en UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def validate_coupon(coupon: Optional[Coupon], cart_total, now: Optional[datetime] = None) -> CouponValidation:
    """
    Valida un cupón contra el total del carrito y calcula el descuento.

    Reglas, en orden: existencia, vigencia (desde/hasta), límite de usos y compra
    mínima. El descuento porcentual se limita con maximum_discount; el fijo nunca
    supera el total.
    """
    if coupon is None:
        return CouponValidation(False, "Cupón no encontrado")

    total = parse_price(cart_total)
    now = _aware(now) or datetime.now(timezone.utc)
    code = coupon.code

    valid_from = _aware(coupon.valid_from)
    valid_until = _aware(coupon.valid_until)
    if valid_from and now < valid_from:
        return CouponValidation(False, "El cupón todavía no está vigente", code=code)
    if valid_until and now > valid_until:
        return CouponValidation(False, "Cupón expirado", code=code)

    if coupon.usage_limit and (coupon.usage_count or 0) >= coupon.usage_limit:
        return CouponValidation(False, "El cupón alcanzó su límite de usos", code=code)

    minimum = parse_price(coupon.minimum_purchase)
    if minimum and total < minimum:
        return CouponValidation(False, f"Compra mínima de {format_brl(minimum)} no alcanzada", code=code)

    value = parse_price(coupon.discount_value)
    if coupon.discount_type == "percentage":
        discount = total * value / 100
        maximum = parse_price(coupon.maximum_discount)
        if maximum and discount > maximum:
            discount = maximum
    else:
        discount = min(value, total)

    return CouponValidation(True, f"Cupón {code} aplicado", quantize(discount), code)
