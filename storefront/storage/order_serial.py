from datetime import date, datetime, timezone
from sqlalchemy import func
from sqlalchemy.orm import Session
from storefront.storage.models import Order


def next_order_serial(db: Session, brand_id: str, today: date | None = None) -> str:
    """Serial diario por marca: <MARCA>-YYYYMMDD-NNNN."""
    today = today or datetime.now(timezone.utc).date()
    prefix = f"{brand_id.upper()}-{today:%Y%m%d}-"
    n = (
        db.query(func.count(Order.id))
        .filter(Order.brand_id == brand_id, Order.order_serial.like(f"{prefix}%"))
        .scalar()
    )
    return f"{prefix}{n + 1:04d}"
