"""
Unit tests for coupon lookup and validation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.core.coupons import find_coupon, validate_coupon
from storefront.storage.models import Coupon

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _coupon(**kwargs):
    data = {
        "brand_id": "sesh",
        "code": "SAVE10",
        "discount_type": "percentage",
        "discount_value": Decimal("10"),
        "usage_count": 0,
        "valid_from": NOW - timedelta(days=1),
        "active": True,
    }
    data.update(kwargs)
    return Coupon(**data)


class TestValidateCoupon:

    def test_missing_coupon(self):
        result = validate_coupon(None, 100, now=NOW)
        assert result.valid is False
        assert result.message == "Cupón no encontrado"

    def test_percentage(self):
        result = validate_coupon(_coupon(), Decimal("259.90"), now=NOW)
        assert result.valid is True
        assert result.discount == Decimal("25.99")
        assert result.code == "SAVE10"

    def test_percentage_capped_by_maximum(self):
        result = validate_coupon(_coupon(discount_value=50, maximum_discount=30), 200, now=NOW)
        assert result.discount == Decimal("30.00")

    def test_fixed_never_above_total(self):
        assert validate_coupon(_coupon(discount_type="fixed", discount_value=40), 25, now=NOW).discount == Decimal("25.00")
        assert validate_coupon(_coupon(discount_type="fixed", discount_value=40), 100, now=NOW).discount == Decimal("40.00")

    @pytest.mark.parametrize(
        "kwargs, total, message",
        [
            ({"valid_from": NOW + timedelta(hours=1)}, 100, "El cupón todavía no está vigente"),
            ({"valid_until": NOW - timedelta(seconds=1)}, 100, "Cupón expirado"),
            ({"usage_limit": 5, "usage_count": 5}, 100, "El cupón alcanzó su límite de usos"),
            ({"minimum_purchase": Decimal("150")}, 100, "Compra mínima de R$ 150,00 no alcanzada"),
        ],
    )
    def test_rejections(self, kwargs, total, message):
        result = validate_coupon(_coupon(**kwargs), total, now=NOW)
        assert result.valid is False
        assert result.discount == 0
        assert result.message == message

    def test_naive_dates_are_utc(self):
        coupon = _coupon(valid_until=datetime(2026, 3, 10, 13, 0))
        assert validate_coupon(coupon, 100, now=NOW).valid is True


class TestFindCoupon:

    def test_lookup_is_per_brand_and_case_insensitive(self, session):
        brand = f"brand-{uuid.uuid4().hex[:8]}"
        session.add(_coupon(brand_id=brand, code="VERAO"))
        session.add(_coupon(brand_id=brand, code="OFF", active=False))
        session.commit()

        assert find_coupon(session, brand, " verao ").code == "VERAO"
        assert find_coupon(session, "otra-marca", "VERAO") is None
        assert find_coupon(session, brand, "OFF") is None
