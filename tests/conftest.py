import os
import tempfile

import pytest

# Configuración de test antes de importar la app (DB y logs en un directorio temporal)
_TMP = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["CART_LOG_DIR"] = os.path.join(_TMP, "logs")

from fastapi.testclient import TestClient

from storefront.core.carts.cart import ShoppingCart
from storefront.core.carts.models import LineItem
from storefront.core.carts.service import CartService
from storefront.core.carts.store_memory import MemoryCartStore
from storefront.main import app
from storefront.routers.cart import get_cart_service
from storefront.storage.db import Base, SessionLocal, engine


class FakeClock:
    """Reloj controlable en milisegundos."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def set(self, key, value):
        self.ops.append(("set", key, value))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    def execute(self):
        for op, key, value in self.ops:
            if op == "set":
                self.client.data[key] = value
            else:
                self.client.expirations[key] = value
        self.ops = []


class FakeRedis:
    """Cliente mínimo con la parte de la API de redis-py que usa RedisCartStore."""

    def __init__(self):
        self.data = {}
        self.expirations = {}

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)
        self.expirations.pop(key, None)

    def pipeline(self):
        return FakePipeline(self)


def _make_item(id="A", size="M", color="red", price=100, quantity=1, stock=None, **extra):
    return LineItem(
        id=id,
        name=extra.pop("name", f"Producto {id}"),
        price=price,
        selected_size=size,
        selected_color=color,
        quantity=quantity,
        stock=stock,
        **extra,
    )


@pytest.fixture
def make_item():
    return _make_item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return MemoryCartStore(clock=clock)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cart(memory_store):
    """Carrito listo (hidratado) sobre un store en memoria."""
    c = ShoppingCart("brand-1:session-1", store=memory_store)
    c.hydrate()
    return c


@pytest.fixture(scope="session", autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session():
    """Sesión de base de datos para tests."""
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def cart_service(memory_store):
    return CartService(store=memory_store)


@pytest.fixture(scope="function")
def client(cart_service):
    """TestClient con el carrito en memoria en lugar de Redis."""
    app.dependency_overrides[get_cart_service] = lambda: cart_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
