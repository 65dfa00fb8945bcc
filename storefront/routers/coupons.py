# storefront/routers/coupons.py
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.core.coupons import find_coupon, normalize_code, validate_coupon
from storefront.storage.db import get_db
from storefront.storage.models import Coupon

router = APIRouter(prefix="/brands/{brand_id}/coupons", tags=["Coupons"])


class CouponCreate(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: Decimal = Field(gt=0)
    minimum_purchase: Optional[Decimal] = Field(default=None, ge=0)
    maximum_discount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class ValidateRequest(BaseModel):
    code: str
    cart_total: Decimal = Field(ge=0)


def _coupon_dict(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": float(coupon.discount_value),
        "minimum_purchase": float(coupon.minimum_purchase) if coupon.minimum_purchase is not None else None,
        "maximum_discount": float(coupon.maximum_discount) if coupon.maximum_discount is not None else None,
        "usage_limit": coupon.usage_limit,
        "usage_count": coupon.usage_count,
        "valid_from": coupon.valid_from,
        "valid_until": coupon.valid_until,
        "active": coupon.active,
    }


@router.get("/")
def list_coupons(brand_id: str, db: Session = Depends(get_db)):
    """Cupones de la marca, los más nuevos primero."""
    coupons = (
        db.query(Coupon)
        .filter(Coupon.brand_id == brand_id)
        .order_by(Coupon.id.desc())
        .all()
    )
    return {"total": len(coupons), "coupons": [_coupon_dict(c) for c in coupons]}


@router.post("/", status_code=201)
def create_coupon(brand_id: str, payload: CouponCreate, db: Session = Depends(get_db)):
    code = normalize_code(payload.code)
    if not code:
        raise HTTPException(status_code=400, detail="Código de cupón vacío.")
    if db.query(Coupon).filter(Coupon.brand_id == brand_id, Coupon.code == code).first():
        raise HTTPException(status_code=400, detail=f"El cupón {code} ya existe.")

    data = payload.model_dump(exclude_none=True)
    data["code"] = code
    coupon = Coupon(brand_id=brand_id, **data)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return _coupon_dict(coupon)


@router.post("/validate")
def validate(brand_id: str, payload: ValidateRequest, db: Session = Depends(get_db)):
    result = validate_coupon(find_coupon(db, brand_id, payload.code), payload.cart_total)
    return result.to_dict()
