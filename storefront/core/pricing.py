import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0")


def parse_price(value) -> Decimal:
    """
    Convierte un precio (número o texto tipo "20.00", "R$ 1.500,00") en Decimal.
    Cualquier valor no interpretable vale 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, (int, float)):
        price = Decimal(str(value))
    else:
        text = re.sub(r"[R$\s]", "", str(value))
        if not text:
            return ZERO
        if "," in text:
            # formato BR: punto = miles, coma = decimales
            text = text.replace(".", "").replace(",", ".")
        try:
            price = Decimal(text)
        except InvalidOperation:
            return ZERO
    if not price.is_finite() or price < 0:
        return ZERO
    return price


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def free_shipping_progress(subtotal: Decimal, threshold) -> dict:
    """
    Progreso hacia el envío gratis.
    {
      "remaining": Decimal,
      "percentage": float,   # 0..100
      "is_eligible": bool
    }
    """
    threshold = parse_price(threshold)
    if threshold <= 0:
        return {"remaining": ZERO, "percentage": 100.0, "is_eligible": True}
    remaining = max(ZERO, threshold - subtotal)
    percentage = min(100.0, float(subtotal / threshold * 100))
    return {
        "remaining": remaining,
        "percentage": percentage,
        "is_eligible": subtotal >= threshold,
    }


def is_min_order_value_met(total: Decimal, minimum) -> bool:
    return total >= parse_price(minimum)


def format_brl(value) -> str:
    amount = quantize(parse_price(value))
    entero, decimales = f"{amount:,.2f}".split(".")
    return f"R$ {entero.replace(',', '.')},{decimales}"
