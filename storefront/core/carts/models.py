import json
import math
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Tuple
from time import time

ItemKey = Tuple[str, str, str]

CART_TTL_SECONDS = int(float(os.getenv("CART_TTL_HOURS", "6")) * 3600)


def now_ms() -> int:
    return int(time() * 1000)


def to_decimal(value) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Valor numérico inválido: {value!r}")
    # NaN e infinito no son montos
    if not amount.is_finite():
        raise ValueError(f"Valor numérico inválido: {value!r}")
    return amount


class CartWarning(str, Enum):
    STOCK_EXCEEDED = "stock_exceeded"
    MALFORMED_STATE = "malformed_state"
    EXPIRED_STATE = "expired_state"
    HYDRATION_TIMEOUT = "hydration_timeout"


class CartLifecycle(str, Enum):
    HYDRATING = "hydrating"
    READY = "ready"


@dataclass
class LineItem:
    id: str
    name: str
    price: Decimal
    selected_size: str
    selected_color: str
    quantity: int = 1
    images: List[str] = field(default_factory=list)
    variant_id: Optional[str] = None
    stock: Optional[int] = None

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise ValueError("ID de producto inválido")
        self.price = to_decimal(self.price)
        if self.price < 0:
            raise ValueError("Precio no puede ser negativo")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError("Cantidad debe ser un entero")
        if self.quantity < 1:
            raise ValueError("Cantidad debe ser >= 1")
        if self.stock is not None and self.stock < 0:
            raise ValueError("Stock no puede ser negativo")

    @property
    def key(self) -> ItemKey:
        return (self.id, self.selected_size, self.selected_color)

    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "images": list(self.images),
            "selectedSize": self.selected_size,
            "selectedColor": self.selected_color,
            "quantity": self.quantity,
        }
        if self.variant_id is not None:
            d["variantId"] = self.variant_id
        if self.stock is not None:
            d["stock"] = self.stock
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        stock = data.get("stock")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            price=data["price"],
            images=list(data.get("images") or []),
            selected_size=data["selectedSize"],
            selected_color=data["selectedColor"],
            quantity=data["quantity"],
            variant_id=data.get("variantId"),
            stock=int(stock) if stock is not None else None,
        )


@dataclass
class CouponAttachment:
    code: str
    discount: Decimal

    def __post_init__(self):
        self.discount = to_decimal(self.discount)
        if self.discount < 0:
            raise ValueError("Descuento no puede ser negativo")

    def to_dict(self) -> dict:
        return {"code": self.code, "discount": float(self.discount)}

    @classmethod
    def from_dict(cls, data: dict) -> "CouponAttachment":
        return cls(code=data["code"], discount=data["discount"])


@dataclass
class ShippingQuote:
    """Cotización de un transportista, tal como la devuelve el servicio de fletes."""

    service_description: str
    shipping_price: str
    delivery_time: str = ""
    extra: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = dict(self.extra)
        d["ServiceDescription"] = self.service_description
        d["ShippingPrice"] = self.shipping_price
        d["DeliveryTime"] = self.delivery_time
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "ShippingQuote":
        if not isinstance(data, dict):
            raise ValueError("Cotización de envío inválida")
        known = {"ServiceDescription", "ShippingPrice", "DeliveryTime"}
        price = data.get("ShippingPrice")
        return cls(
            service_description=str(data.get("ServiceDescription", "")),
            shipping_price="" if price is None else str(price),
            delivery_time=str(data.get("DeliveryTime", "")),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class CartTotals:
    count: int = 0
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    final_total: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "subtotal": float(self.subtotal),
            "discount": float(self.discount),
            "total": float(self.total),
            "shipping_cost": float(self.shipping_cost),
            "final_total": float(self.final_total),
        }


@dataclass
class CartEnvelope:
    """Estado persistido de un carrito: ítems, cupón, envío y marca de tiempo."""

    items: List[LineItem] = field(default_factory=list)
    coupon: Optional[CouponAttachment] = None
    shipping: Optional[ShippingQuote] = None
    timestamp: int = 0

    def to_dict(self) -> dict:
        return {
            "cart": [i.to_dict() for i in self.items],
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "shipping": self.shipping.to_dict() if self.shipping else None,
            "_timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartEnvelope":
        # Cualquier KeyError/TypeError/ValueError aquí = estado corrupto
        if not isinstance(data, dict) or not isinstance(data.get("cart"), list):
            raise ValueError("Sobre de carrito sin lista 'cart'")
        timestamp = data["_timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError("Marca de tiempo inválida")
        if not math.isfinite(timestamp):
            raise ValueError("Marca de tiempo inválida")
        items = [LineItem.from_dict(i) for i in data["cart"]]
        if len({i.key for i in items}) != len(items):
            raise ValueError("Ítems duplicados en el carrito persistido")
        if any(i.stock is not None and i.quantity > i.stock for i in items):
            raise ValueError("Cantidad persistida por encima del stock")
        coupon = data.get("coupon")
        shipping = data.get("shipping")
        return cls(
            items=items,
            coupon=CouponAttachment.from_dict(coupon) if coupon else None,
            shipping=ShippingQuote.from_dict(shipping) if shipping else None,
            timestamp=int(timestamp),
        )


def dump_envelope(envelope: CartEnvelope) -> str:
    return json.dumps(envelope.to_dict(), ensure_ascii=False)


def load_envelope(raw) -> CartEnvelope:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return CartEnvelope.from_dict(json.loads(raw))


def is_expired(envelope: CartEnvelope, now: int, ttl_seconds: int) -> bool:
    return now - envelope.timestamp > ttl_seconds * 1000
