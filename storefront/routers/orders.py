# storefront/routers/orders.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional
import logging

from storefront.core.carts.service import CartService
from storefront.core.coupons import find_coupon
from storefront.core.pricing import format_brl
from storefront.routers.cart import get_cart_service
from storefront.storage.db import get_db
from storefront.storage.models import Order
from storefront.storage.order_serial import next_order_serial

log = logging.getLogger(__name__)

router = APIRouter(prefix="/brands/{brand_id}/orders", tags=["Orders"])

ALLOWED_STATUSES = {
    "pending",
    "paid",
    "shipped",
    "delivered",
    "cancelled",
    "expired",
    "refunded",
}

# Estado -> set de estados permitidos como siguiente paso
ALLOWED_TRANSITIONS = {
    "pending": {"paid", "cancelled", "expired"},
    "paid": {"shipped", "refunded"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
    "expired": set(),
    "refunded": set(),
}


class CheckoutRequest(BaseModel):
    session_id: str
    user_id: str


class StatusRequest(BaseModel):
    status: Optional[str] = None


def _normalize_status(status: Optional[str]) -> str:
    return (status or "pending").strip().lower()


def _can_transition(current: str, target: str) -> bool:
    current_n = _normalize_status(current)
    target_n = _normalize_status(target)
    if target_n not in ALLOWED_STATUSES:
        return False
    return target_n in ALLOWED_TRANSITIONS.get(current_n, set())


def _order_dict(order: Order) -> dict:
    return {
        "order_id": order.id,
        "order_serial": order.order_serial,
        "user_id": order.user_id,
        "status": order.status,
        "items": order.items,
        "subtotal": float(order.subtotal),
        "discount": float(order.discount),
        "shipping_cost": float(order.shipping_cost),
        "total": float(order.total),
        "coupon_code": order.coupon_code,
        "shipping_service": order.shipping_service,
        "created_at": order.created_at,
    }


@router.post("/checkout")
async def checkout(
    brand_id: str,
    request: CheckoutRequest,
    service: CartService = Depends(get_cart_service),
    db: Session = Depends(get_db),
):
    """
    Crea la orden a partir del carrito de la sesión.
    El total cobrado es el final_total del carrito; el cupón usado suma un uso
    y el carrito queda vacío.
    """
    cart = await service.open(brand_id, request.session_id)
    if not cart.items:
        raise HTTPException(status_code=400, detail="El carrito está vacío.")

    totals = cart.totals
    order = Order(
        brand_id=brand_id,
        user_id=request.user_id,
        items=[i.to_dict() for i in cart.items],
        subtotal=totals.subtotal,
        discount=totals.discount,
        shipping_cost=totals.shipping_cost,
        total=totals.final_total,
        coupon_code=cart.coupon.code if cart.coupon else None,
        shipping_service=cart.shipping.service_description if cart.shipping else None,
        status="pending",
        order_serial=next_order_serial(db, brand_id),
    )
    db.add(order)

    if cart.coupon:
        coupon = find_coupon(db, brand_id, cart.coupon.code)
        if coupon:
            coupon.usage_count = (coupon.usage_count or 0) + 1

    db.commit()
    db.refresh(order)
    cart.clear()
    log.info(f"Orden {order.order_serial} creada por {format_brl(totals.final_total)}")

    return {
        "message": "Orden creada correctamente",
        "order": _order_dict(order),
    }


@router.get("/")
def list_orders(brand_id: str, user_id: str, db: Session = Depends(get_db)):
    """Lista las órdenes de un usuario en la marca, la más reciente primero."""
    orders = (
        db.query(Order)
        .filter(Order.brand_id == brand_id, Order.user_id == user_id)
        .order_by(Order.id.desc())
        .all()
    )
    return {"total_orders": len(orders), "orders": [_order_dict(o) for o in orders]}


@router.put("/{order_id}/status")
def update_order_status(brand_id: str, order_id: int, payload: StatusRequest, db: Session = Depends(get_db)):
    """
    Actualiza el estado de una orden validando una mínima máquina de estados.
    Estados permitidos: pending, paid, shipped, delivered, cancelled, expired, refunded.
    """
    if not payload.status:
        raise HTTPException(status_code=400, detail="Debes enviar el campo 'status'.")
    new_status = _normalize_status(payload.status)
    if new_status not in ALLOWED_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Estado no permitido. Usa uno de: {', '.join(sorted(ALLOWED_STATUSES))}",
        )

    order = db.query(Order).filter(Order.id == order_id, Order.brand_id == brand_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Orden no encontrada.")

    current_status = _normalize_status(order.status)
    if not _can_transition(current_status, new_status):
        raise HTTPException(
            status_code=400,
            detail=f"Transición inválida: {current_status} -> {new_status}",
        )

    order.status = new_status
    db.add(order)
    db.commit()
    db.refresh(order)

    return {
        "message": "Estado actualizado",
        "order": _order_dict(order),
    }
