# storefront/routers/cart.py
import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.core.carts.cart import ShoppingCart
from storefront.core.carts.models import LineItem
from storefront.core.carts.service import CartService
from storefront.core.coupons import find_coupon, validate_coupon
from storefront.core.shipping import clean_cep, is_valid_cep, usable_quotes
from storefront.storage.db import get_db
from storefront.utils.logger import log_cart_event

router = APIRouter(prefix="/brands/{brand_id}/cart", tags=["Cart"])


@lru_cache()
def get_cart_service() -> CartService:
    return CartService(redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"))


class AddItemRequest(BaseModel):
    id: str
    name: str
    price: Decimal = Field(ge=0)
    size: str
    color: str
    quantity: int = Field(default=1, ge=1)
    images: list[str] = []
    variant_id: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)


class UpdateQuantityRequest(BaseModel):
    id: str
    size: str
    color: str
    delta: int


class CouponRequest(BaseModel):
    code: str


class ShippingOptionsRequest(BaseModel):
    cep: str
    services: list[dict] = []


def _response(cart: ShoppingCart, message: Optional[str] = None) -> dict:
    return {"cart": cart.to_summary(), "message": message}


def _log(cart: ShoppingCart) -> None:
    log_cart_event(cart.key, cart.last_action, cart.totals.to_dict())


@router.get("/{session_id}")
async def get_cart(brand_id: str, session_id: str, service: CartService = Depends(get_cart_service)):
    cart = await service.open(brand_id, session_id)
    return _response(cart)


@router.post("/{session_id}/items")
async def add_item(
    brand_id: str,
    session_id: str,
    request: AddItemRequest,
    service: CartService = Depends(get_cart_service),
):
    cart = await service.open(brand_id, session_id)
    item = LineItem(
        id=request.id,
        name=request.name,
        price=request.price,
        selected_size=request.size,
        selected_color=request.color,
        quantity=request.quantity,
        images=request.images,
        variant_id=request.variant_id,
        stock=request.stock,
    )
    if not cart.add(item):
        raise HTTPException(
            status_code=409,
            detail={"message": f"Stock insuficiente. Disponible: {cart.last_action.get('stock')}", "cart": cart.to_summary()},
        )
    _log(cart)
    return _response(cart, f"Agregado {request.quantity}x {request.name} al carrito")


@router.patch("/{session_id}/items")
async def update_item_quantity(
    brand_id: str,
    session_id: str,
    request: UpdateQuantityRequest,
    service: CartService = Depends(get_cart_service),
):
    cart = await service.open(brand_id, session_id)
    if not cart.find(request.id, request.size, request.color):
        raise HTTPException(status_code=404, detail="Ítem no está en el carrito")
    if not cart.update_quantity(request.id, request.size, request.color, request.delta):
        raise HTTPException(
            status_code=409,
            detail={"message": "Stock insuficiente", "cart": cart.to_summary()},
        )
    _log(cart)
    return _response(cart, "Carrito actualizado")


@router.delete("/{session_id}/items/{product_id}")
async def remove_item(
    brand_id: str,
    session_id: str,
    product_id: str,
    size: str = Query(...),
    color: str = Query(...),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.open(brand_id, session_id)
    removed = cart.remove(product_id, size, color)
    if removed:
        _log(cart)
    return _response(cart, "Ítem eliminado" if removed else "El ítem no estaba en el carrito")


@router.delete("/{session_id}")
async def clear_cart(brand_id: str, session_id: str, service: CartService = Depends(get_cart_service)):
    cart = await service.open(brand_id, session_id)
    cart.clear()
    _log(cart)
    return _response(cart, "Carrito vaciado")


@router.post("/{session_id}/coupon")
async def apply_coupon(
    brand_id: str,
    session_id: str,
    request: CouponRequest,
    service: CartService = Depends(get_cart_service),
    db: Session = Depends(get_db),
):
    cart = await service.open(brand_id, session_id)
    result = validate_coupon(find_coupon(db, brand_id, request.code), cart.totals.subtotal)
    if not result.valid:
        raise HTTPException(status_code=400, detail=result.message)
    cart.apply_coupon(result.code, result.discount)
    _log(cart)
    return _response(cart, result.message)


@router.delete("/{session_id}/coupon")
async def remove_coupon(brand_id: str, session_id: str, service: CartService = Depends(get_cart_service)):
    cart = await service.open(brand_id, session_id)
    cart.remove_coupon()
    _log(cart)
    return _response(cart, "Cupón removido")


@router.post("/{session_id}/shipping/options")
async def shipping_options(
    brand_id: str,
    session_id: str,
    request: ShippingOptionsRequest,
    service: CartService = Depends(get_cart_service),
):
    """
    Filtra las cotizaciones del servicio de fletes para el carrito.
    El CEP debe tener 8 dígitos; las opciones vuelven ordenadas por precio.
    """
    if not is_valid_cep(request.cep):
        raise HTTPException(status_code=400, detail="CEP inválido. Debe tener 8 dígitos.")
    cart = await service.open(brand_id, session_id)
    if cart.totals.subtotal <= 0:
        raise HTTPException(status_code=400, detail="Valor del carrito inválido.")
    options = usable_quotes(request.services)
    if not options:
        raise HTTPException(status_code=404, detail="Ninguna opción de envío disponible para este CEP.")
    return {
        "cep": clean_cep(request.cep),
        "invoice_value": float(cart.totals.subtotal),
        "options": [q.to_dict() for q in options],
    }


@router.put("/{session_id}/shipping")
async def set_shipping(
    brand_id: str,
    session_id: str,
    quote: dict,
    service: CartService = Depends(get_cart_service),
):
    if not quote.get("ServiceDescription"):
        raise HTTPException(status_code=400, detail="Falta el campo 'ServiceDescription'.")
    cart = await service.open(brand_id, session_id)
    cart.set_shipping(quote)
    _log(cart)
    return _response(cart, f"Envío {quote['ServiceDescription']} seleccionado")


@router.delete("/{session_id}/shipping")
async def remove_shipping(brand_id: str, session_id: str, service: CartService = Depends(get_cart_service)):
    cart = await service.open(brand_id, session_id)
    cart.remove_shipping()
    _log(cart)
    return _response(cart, "Envío removido")


@router.get("/{session_id}/free-shipping")
async def free_shipping(
    brand_id: str,
    session_id: str,
    threshold: Decimal = Query(..., ge=0),
    minimum: Decimal = Query(Decimal("0"), ge=0),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.open(brand_id, session_id)
    progress = cart.free_shipping_progress(threshold)
    return {
        "remaining": float(progress["remaining"]),
        "percentage": progress["percentage"],
        "is_eligible": progress["is_eligible"],
        "min_order_value_met": cart.is_min_order_value_met(minimum),
    }
