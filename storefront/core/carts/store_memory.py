from typing import Callable, Dict, Optional, Tuple
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


class MemoryCartStore:
    """Almacenamiento en memoria para desarrollo o fallback cuando Redis no está disponible."""

    def __init__(self, ttl_seconds: int = CART_TTL_SECONDS, clock: Callable[[], int] = now_ms):
        # Se guarda el JSON serializado para que lectura y escritura se comporten como en Redis
        self._store: Dict[str, str] = {}
        self._written_at: Dict[str, int] = {}
        self.ttl = ttl_seconds
        self.clock = clock

    def read(self, key: str) -> Optional[CartEnvelope]:
        return self.load(key)[0]

    def load(self, key: str) -> Tuple[Optional[CartEnvelope], Optional[CartWarning]]:
        raw = self._store.get(key)
        if raw is None:
            return None, None
        try:
            envelope = load_envelope(raw)
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as err:
            log.warning(f"Carrito {key} corrupto en memoria ({err}). Se ignora.")
            return None, CartWarning.MALFORMED_STATE
        if is_expired(envelope, self.clock(), self.ttl):
            log.info(f"Carrito {key} expirado. Eliminado de memoria.")
            self.clear(key)
            return None, CartWarning.EXPIRED_STATE
        return envelope, None

    def write(self, key: str, envelope: CartEnvelope) -> None:
        envelope.timestamp = self.clock()
        self._sweep(envelope.timestamp)
        try:
            self._store[key] = dump_envelope(envelope)
            self._written_at[key] = envelope.timestamp
        except (TypeError, ValueError) as err:
            log.error(f"No se pudo serializar el carrito {key}: {err}")
            return
        log.info(f"Carrito {key} actualizado en memoria. {len(envelope.items)} ítems")

    def _sweep(self, now: int) -> None:
        """Descarta los carritos vencidos; en memoria no hay EXPIRE que lo haga."""
        limit = self.ttl * 1000
        for key, written in list(self._written_at.items()):
            if now - written > limit:
                self._store.pop(key, None)
                del self._written_at[key]

    def clear(self, key: str) -> None:
        self._written_at.pop(key, None)
        if key in self._store:
            del self._store[key]
        log.info(f"Carrito {key} eliminado en memoria.")
