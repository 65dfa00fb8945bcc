# storefront/storage/models.py
# ======================================================
# Modelos ORM de la tienda: pedidos y cupones por marca
# ======================================================

from sqlalchemy import (
    Boolean, Column, Integer, String, Numeric, DateTime, JSON, UniqueConstraint
)
from sqlalchemy.sql import func

from .db import Base


class Order(Base):
    """Foto del carrito en el momento del checkout."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    items = Column(JSON, nullable=False)  # Ítems del carrito tal como se persisten
    subtotal = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    coupon_code = Column(String, nullable=True)
    shipping_service = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    order_serial = Column(String, unique=True, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Order id={self.id} brand={self.brand_id} user_id={self.user_id} total={self.total}>"


class Coupon(Base):
    """
    Cupón de descuento de una marca.
    discount_type: "percentage" o "fixed".
    """
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("brand_id", "code", name="uq_coupon_brand_code"),)

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(String, index=True, nullable=False)
    code = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)
    discount_type = Column(String, nullable=False, default="percentage")
    discount_value = Column(Numeric(12, 2), nullable=False)
    minimum_purchase = Column(Numeric(12, 2), nullable=True)
    maximum_discount = Column(Numeric(12, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Coupon brand={self.brand_id} code={self.code} {self.discount_type}={self.discount_value}>"
