import redis
from typing import Callable, Optional, Tuple
from storefront.core.carts.models import (
    CART_TTL_SECONDS,
    CartEnvelope,
    CartWarning,
    dump_envelope,
    is_expired,
    load_envelope,
    now_ms,
)
import logging

log = logging.getLogger(__name__)


class RedisCartStore:
    """Persistencia con TTL: la marca de tiempo manda, la expiración de Redis es respaldo."""

    def __init__(
        self,
        url="redis://localhost:6379/0",
        ttl_seconds: int = CART_TTL_SECONDS,
        client=None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.ttl = ttl_seconds
        self.clock = clock

    def _key(self, key: str) -> str:
        return f"cart:{key}"

    def read(self, key: str) -> Optional[CartEnvelope]:
        return self.load(key)[0]

    def load(self, key: str) -> Tuple[Optional[CartEnvelope], Optional[CartWarning]]:
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as err:
            log.error(f"No se pudo leer el carrito {key} de Redis: {err}")
            return None, None
        except UnicodeDecodeError as err:
            # con decode_responses=True el cliente falla al decodificar bytes que no son UTF-8
            log.warning(f"Carrito {key} corrupto en Redis ({err}). Se ignora.")
            return None, CartWarning.MALFORMED_STATE
        if not raw:
            return None, None
        try:
            envelope = load_envelope(raw)
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as err:
            log.warning(f"Carrito {key} corrupto en Redis ({err}). Se ignora.")
            return None, CartWarning.MALFORMED_STATE
        if is_expired(envelope, self.clock(), self.ttl):
            log.info(f"Carrito {key} expirado. Eliminado de Redis.")
            self.clear(key)
            return None, CartWarning.EXPIRED_STATE
        return envelope, None

    def write(self, key: str, envelope: CartEnvelope) -> None:
        envelope.timestamp = self.clock()
        try:
            serialized = dump_envelope(envelope)
        except (TypeError, ValueError) as err:
            log.error(f"No se pudo serializar el carrito {key}: {err}")
            return
        redis_key = self._key(key)
        try:
            with self.client.pipeline() as pipe:
                pipe.set(redis_key, serialized)
                pipe.expire(redis_key, self.ttl)
                pipe.execute()
        except redis.RedisError as err:
            log.error(f"No se pudo guardar el carrito {key} en Redis: {err}")
            return
        log.info(f"Carrito {key} actualizado en Redis. {len(envelope.items)} ítems")

    def clear(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as err:
            log.error(f"No se pudo eliminar el carrito {key} de Redis: {err}")
            return
        log.info(f"Carrito {key} eliminado.")
