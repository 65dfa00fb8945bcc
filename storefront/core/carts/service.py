from typing import Optional
from storefront.core.carts.cart import ShoppingCart
from storefront.core.carts.store_redis import RedisCartStore
from storefront.core.carts.store_memory import MemoryCartStore
import logging

log = logging.getLogger(__name__)


class CartService:
    """Abre carritos por marca y sesión sobre Redis, con fallback local en memoria."""

    def __init__(self, redis_url="redis://localhost:6379/0", client=None, store=None):
        if store is not None:
            self.store = store
            return
        # Intenta Redis y si falla usa memoria (para dev/local sin Redis).
        try:
            self.store = RedisCartStore(url=redis_url, client=client)
            self.store.client.ping()
            log.info("CartService usando Redis.")
        except Exception as err:
            log.warning(f"No se pudo conectar a Redis ({err}). Usando carrito en memoria.")
            self.store = MemoryCartStore()

    def _session(self, session_id: Optional[str]) -> str:
        return session_id or "anon-session"

    def cart_key(self, brand_id: str, session_id: Optional[str]) -> str:
        return f"{brand_id}:{self._session(session_id)}"

    async def open(self, brand_id: str, session_id: Optional[str], timeout: Optional[float] = None) -> ShoppingCart:
        cart = ShoppingCart(self.cart_key(brand_id, session_id), store=self.store)
        await cart.hydrate_async(timeout)
        return cart
