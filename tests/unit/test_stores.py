"""
Unit tests for the cart stores (memory and Redis) and the persisted envelope.
"""

import json

import pytest
import redis

from storefront.core.carts.models import CartEnvelope, CartWarning, CouponAttachment, load_envelope
from storefront.core.carts.store_memory import MemoryCartStore
from storefront.core.carts.store_redis import RedisCartStore

HOUR_MS = 3600 * 1000

RAW_ITEM = {"id": "A", "name": "A", "price": 10, "images": [], "selectedSize": "M", "selectedColor": "red", "quantity": 1}


@pytest.fixture(params=["memory", "redis"])
def store(request, clock, fake_redis):
    if request.param == "memory":
        return MemoryCartStore(clock=clock)
    return RedisCartStore(client=fake_redis, clock=clock)


def _put_raw(store, key, raw):
    if isinstance(store, MemoryCartStore):
        store._store[key] = raw
    else:
        store.client.data[store._key(key)] = raw


class TestStoreContract:
    """Both backends honour the same read/write/clear contract."""

    def test_read_missing(self, store):
        assert store.read("b:s") is None

    def test_write_stamps_timestamp(self, store, clock, make_item):
        envelope = CartEnvelope(items=[make_item()])
        store.write("b:s", envelope)

        loaded = store.read("b:s")
        assert loaded.timestamp == clock.now
        assert loaded.items[0].key == ("A", "M", "red")

    def test_write_overwrites(self, store, make_item):
        store.write("b:s", CartEnvelope(items=[make_item(id="A")]))
        store.write("b:s", CartEnvelope(items=[make_item(id="B")]))
        assert [i.id for i in store.read("b:s").items] == ["B"]

    def test_entry_within_ttl_is_kept(self, store, clock, make_item):
        store.write("b:s", CartEnvelope(items=[make_item()]))
        clock.advance(6 * HOUR_MS)
        assert store.read("b:s") is not None

    def test_expired_entry_is_absent_and_purged(self, store, clock, make_item):
        store.write("b:s", CartEnvelope(items=[make_item()]))
        clock.advance(6 * HOUR_MS + 1)

        envelope, warning = store.load("b:s")
        assert envelope is None
        assert warning is CartWarning.EXPIRED_STATE

        clock.now -= 6 * HOUR_MS
        assert store.read("b:s") is None

    @pytest.mark.parametrize(
        "raw",
        [
            "no es json",
            json.dumps({"coupon": None}),
            json.dumps({"cart": [], "_timestamp": "ayer"}),
            json.dumps({"cart": [{"id": "A"}], "_timestamp": 1}),
            json.dumps({"cart": ["A"], "_timestamp": 1}),
            json.dumps([1, 2, 3]),
            json.dumps({"cart": [dict(RAW_ITEM, price="NaN")], "_timestamp": 1}),
            json.dumps({"cart": [dict(RAW_ITEM, price=float("inf"))], "_timestamp": 1}),
            json.dumps({"cart": [dict(RAW_ITEM, stock=float("inf"))], "_timestamp": 1}),
            json.dumps({"cart": [RAW_ITEM], "_timestamp": float("inf")}),
            json.dumps({"cart": [RAW_ITEM], "_timestamp": float("nan")}),
            json.dumps({"cart": [RAW_ITEM], "coupon": {"code": "X", "discount": "NaN"}, "_timestamp": 1}),
            json.dumps({"cart": [RAW_ITEM], "coupon": {"code": "X", "discount": -50}, "_timestamp": 1}),
        ],
    )
    def test_malformed_is_absent(self, store, raw):
        _put_raw(store, "b:s", raw)

        envelope, warning = store.load("b:s")
        assert envelope is None
        assert warning is CartWarning.MALFORMED_STATE

    def test_clear(self, store, make_item):
        store.write("b:s", CartEnvelope(items=[make_item()]))
        store.clear("b:s")
        assert store.read("b:s") is None

    def test_clear_missing_is_noop(self, store):
        store.clear("nada")
        assert store.read("nada") is None


class TestMemoryStore:
    """Memory specific behaviour."""

    def test_write_sweeps_expired_entries(self, memory_store, clock, make_item):
        memory_store.write("b:old", CartEnvelope(items=[make_item()]))
        clock.advance(6 * HOUR_MS + 1)
        memory_store.write("b:new", CartEnvelope(items=[make_item()]))

        assert set(memory_store._store) == {"b:new"}

    def test_write_keeps_live_entries(self, memory_store, clock, make_item):
        memory_store.write("b:a", CartEnvelope(items=[make_item()]))
        clock.advance(HOUR_MS)
        memory_store.write("b:b", CartEnvelope(items=[make_item()]))

        assert set(memory_store._store) == {"b:a", "b:b"}


class TestRedisStore:
    """Redis specific behaviour."""

    def test_key_prefix_and_expiry(self, fake_redis, clock, make_item):
        store = RedisCartStore(client=fake_redis, clock=clock, ttl_seconds=60)
        store.write("b:s", CartEnvelope(items=[make_item()]))

        assert "cart:b:s" in fake_redis.data
        assert fake_redis.expirations["cart:b:s"] == 60

    def test_redis_errors_degrade_to_absent(self, clock, make_item):
        class BrokenRedis:
            def get(self, key):
                raise redis.ConnectionError("sin conexión")

            def pipeline(self):
                raise redis.ConnectionError("sin conexión")

            def delete(self, key):
                raise redis.ConnectionError("sin conexión")

        store = RedisCartStore(client=BrokenRedis(), clock=clock)
        store.write("b:s", CartEnvelope(items=[make_item()]))
        store.clear("b:s")
        assert store.read("b:s") is None

    def test_invalid_utf8_bytes_are_malformed(self, fake_redis, clock):
        store = RedisCartStore(client=fake_redis, clock=clock)
        fake_redis.data["cart:b:s"] = b"\xff\xfe{"

        envelope, warning = store.load("b:s")
        assert envelope is None
        assert warning is CartWarning.MALFORMED_STATE

    def test_decode_error_from_client_is_malformed(self, clock):
        class DecodingRedis:
            def get(self, key):
                # lo que hace redis-py con decode_responses=True ante bytes no UTF-8
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        store = RedisCartStore(client=DecodingRedis(), clock=clock)
        envelope, warning = store.load("b:s")
        assert envelope is None
        assert warning is CartWarning.MALFORMED_STATE

    def test_bytes_payload(self, fake_redis, clock, make_item):
        store = RedisCartStore(client=fake_redis, clock=clock)
        store.write("b:s", CartEnvelope(items=[make_item()]))
        fake_redis.data["cart:b:s"] = fake_redis.data["cart:b:s"].encode("utf-8")

        assert store.read("b:s").items[0].id == "A"


class TestEnvelope:
    """Tests for the persisted JSON layout."""

    def test_layout(self, make_item):
        envelope = CartEnvelope(
            items=[make_item(variant_id="v1", stock=3, images=["a.png"])],
            coupon=CouponAttachment("SAVE", 5),
            timestamp=123,
        )
        data = envelope.to_dict()

        assert set(data) == {"cart", "coupon", "shipping", "_timestamp"}
        assert data["cart"][0] == {
            "id": "A",
            "name": "Producto A",
            "price": 100.0,
            "images": ["a.png"],
            "selectedSize": "M",
            "selectedColor": "red",
            "quantity": 1,
            "variantId": "v1",
            "stock": 3,
        }
        assert data["coupon"] == {"code": "SAVE", "discount": 5.0}
        assert data["shipping"] is None

    def test_duplicate_keys_are_malformed(self, make_item):
        item = make_item().to_dict()
        raw = json.dumps({"cart": [item, item], "_timestamp": 1})
        with pytest.raises(ValueError):
            load_envelope(raw)

    def test_quantity_above_stock_is_malformed(self, make_item):
        item = make_item(stock=1).to_dict()
        item["quantity"] = 2
        with pytest.raises(ValueError):
            load_envelope(json.dumps({"cart": [item], "_timestamp": 1}))
