import asyncio
import os
from dataclasses import replace
from time import time
from typing import Callable, List, Optional, Union
import logging

from storefront.core import pricing
from storefront.core.carts.models import (
    CartEnvelope,
    CartLifecycle,
    CartTotals,
    CartWarning,
    CouponAttachment,
    LineItem,
    ShippingQuote,
    to_decimal,
)
from storefront.core.carts.totals import derive_totals

log = logging.getLogger(__name__)

HYDRATION_TIMEOUT = float(os.getenv("CART_HYDRATION_TIMEOUT", "2.0"))

Listener = Callable[[CartTotals], None]


class ShoppingCart:
    """
    Carrito de una sesión: ítems, cupón y envío, con totales siempre recalculados.

    Toda mutación recalcula los totales, persiste el estado en el store y avisa a
    los suscriptores antes de retornar. Un intento de superar el stock no lanza
    excepción: la operación retorna False, se registra un warning y el carrito
    queda igual.
    """

    def __init__(self, key: str, store=None, hydration_timeout: float = HYDRATION_TIMEOUT):
        self.key = key
        self.store = store
        self.hydration_timeout = hydration_timeout
        self.items: List[LineItem] = []
        self.coupon: Optional[CouponAttachment] = None
        self.shipping: Optional[ShippingQuote] = None
        self.totals = CartTotals()
        self.state = CartLifecycle.HYDRATING
        self.last_warning: Optional[CartWarning] = None
        self.last_action: Optional[dict] = None
        self._listeners: List[Listener] = []

    # --- Ciclo de vida ---

    @property
    def is_ready(self) -> bool:
        return self.state is CartLifecycle.READY

    def hydrate(self) -> None:
        """Lee el store una sola vez (síncrono, sin límite de tiempo)."""
        if self.is_ready:
            return
        try:
            envelope, warning = self.store.load(self.key) if self.store else (None, None)
            self._restore(envelope, warning)
        finally:
            self._mark_ready()

    async def hydrate_async(self, timeout: Optional[float] = None) -> None:
        """Como hydrate(), pero si el store no responde a tiempo se sigue con el carrito vacío."""
        if self.is_ready:
            return
        timeout = self.hydration_timeout if timeout is None else timeout
        try:
            if self.store:
                envelope, warning = await asyncio.wait_for(
                    asyncio.to_thread(self.store.load, self.key), timeout
                )
                self._restore(envelope, warning)
        except asyncio.TimeoutError:
            self._warn(
                CartWarning.HYDRATION_TIMEOUT,
                f"El store no respondió en {timeout}s; carrito {self.key} arranca vacío.",
            )
        finally:
            self._mark_ready()

    def _restore(self, envelope: Optional[CartEnvelope], warning: Optional[CartWarning]) -> None:
        if warning:
            self.last_warning = warning
        if envelope is None:
            return
        self.items = envelope.items
        self.coupon = envelope.coupon
        self.shipping = envelope.shipping
        self.totals = derive_totals(self.items, self.coupon, self.shipping)
        log.info(f"Carrito {self.key} rehidratado con {len(self.items)} ítems")

    def _mark_ready(self) -> None:
        self.state = CartLifecycle.READY

    # --- Suscriptores ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Internos ---

    def _warn(self, warning: CartWarning, message: str) -> None:
        self.last_warning = warning
        log.warning(message)

    def _record(self, action: str, **data) -> None:
        self.last_action = {"action": action, **data, "timestamp": time()}

    def _commit(self, persist: bool = True) -> None:
        self.totals = derive_totals(self.items, self.coupon, self.shipping)
        if persist and self.store:
            self.store.write(self.key, self.envelope())
        for listener in list(self._listeners):
            listener(self.totals)

    def envelope(self) -> CartEnvelope:
        return CartEnvelope(items=list(self.items), coupon=self.coupon, shipping=self.shipping)

    def find(self, product_id: str, size: str, color: str) -> Optional[LineItem]:
        key = (product_id, size, color)
        return next((i for i in self.items if i.key == key), None)

    # --- Ítems ---

    def add(self, item: LineItem, quantity: Optional[int] = None) -> bool:
        requested = item.quantity if quantity is None else quantity
        if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            raise ValueError("Cantidad debe ser un entero >= 1")

        existing = self.find(*item.key)
        current = existing.quantity if existing else 0
        ceiling = item.stock if item.stock is not None else (existing.stock if existing else None)
        wanted = current + requested

        if ceiling is not None and wanted > ceiling:
            self._warn(
                CartWarning.STOCK_EXCEEDED,
                f"Stock insuficiente para {item.id}. Disponible: {ceiling}, solicitado: {wanted}",
            )
            self._record("add_rejected", id=item.id, qty=requested, stock=ceiling)
            self._commit(persist=False)
            return False

        if existing:
            existing.quantity = wanted
            if item.stock is not None:
                existing.stock = item.stock
        else:
            self.items.append(replace(item, quantity=requested, images=list(item.images)))
        self._record("add", id=item.id, name=item.name, qty=requested)
        self._commit()
        log.info(f"Item {item.id} agregado al carrito {self.key}")
        return True

    def remove(self, product_id: str, size: str, color: str) -> bool:
        item = self.find(product_id, size, color)
        if not item:
            self._record("remove_missing", id=product_id, qty=0)
            self._commit(persist=False)
            return False
        self.items.remove(item)
        self._record("remove", id=product_id, name=item.name, qty=item.quantity)
        self._commit()
        return True

    def update_quantity(self, product_id: str, size: str, color: str, delta: int) -> bool:
        item = self.find(product_id, size, color)
        if not item:
            self._record("update_missing", id=product_id, qty=0)
            self._commit(persist=False)
            return False

        # Nunca baja de 1: para quitar el ítem hay que usar remove()
        new_qty = max(1, item.quantity + delta)
        if item.stock is not None and new_qty > item.stock:
            self._warn(
                CartWarning.STOCK_EXCEEDED,
                f"Stock insuficiente para {product_id}. Disponible: {item.stock}",
            )
            self._record("update_rejected", id=product_id, qty=new_qty, stock=item.stock)
            self._commit(persist=False)
            return False

        item.quantity = new_qty
        self._record("update", id=product_id, qty=new_qty)
        self._commit()
        return True

    def clear(self) -> None:
        self.items = []
        self.coupon = None
        self.shipping = None
        if self.store:
            self.store.clear(self.key)
        self._record("clear", qty=0)
        self._commit(persist=False)

    # --- Cupón ---

    def apply_coupon(self, code: str, discount) -> None:
        discount = to_decimal(discount)
        if discount < 0:
            raise ValueError("Descuento no puede ser negativo")
        self.coupon = CouponAttachment(code=code, discount=discount)
        self._record("apply_coupon", code=code, discount=float(discount))
        self._commit()

    def remove_coupon(self) -> None:
        self.coupon = None
        self._record("remove_coupon")
        self._commit()

    # --- Envío ---

    def set_shipping(self, quote: Union[ShippingQuote, dict, None]) -> None:
        if isinstance(quote, dict):
            quote = ShippingQuote.from_dict(quote)
        self.shipping = quote
        if quote:
            self._record("set_shipping", service=quote.service_description, price=quote.shipping_price)
        else:
            self._record("remove_shipping")
        self._commit()

    def remove_shipping(self) -> None:
        self.set_shipping(None)

    # --- Consultas ---

    def get_item_stock(self, product_id: str, size: str, color: str) -> Optional[int]:
        item = self.find(product_id, size, color)
        return item.stock if item else None

    def is_min_order_value_met(self, minimum) -> bool:
        return pricing.is_min_order_value_met(self.totals.total, minimum)

    def free_shipping_progress(self, threshold) -> dict:
        return pricing.free_shipping_progress(self.totals.subtotal, threshold)

    def to_summary(self) -> dict:
        return {
            "key": self.key,
            "state": self.state.value,
            "items": [i.to_dict() for i in self.items],
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "shipping": self.shipping.to_dict() if self.shipping else None,
            **self.totals.to_dict(),
            "last_action": self.last_action,
            "last_warning": self.last_warning.value if self.last_warning else None,
        }
