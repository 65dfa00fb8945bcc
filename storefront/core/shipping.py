import re
from typing import Iterable, List
import logging

from storefront.core.carts.models import ShippingQuote
from storefront.core.pricing import parse_price

log = logging.getLogger(__name__)

_PRICE_RE = re.compile(r"^\s*(R\$)?\s*\d+([.,]\d+)*\s*$")


def clean_cep(cep: str) -> str:
    return re.sub(r"\D", "", cep or "")


def is_valid_cep(cep: str) -> bool:
    return len(clean_cep(cep)) == 8


def usable_quotes(raw: Iterable[dict]) -> List[ShippingQuote]:
    """Descarta servicios con error o sin precio y ordena del más barato al más caro."""
    quotes = []
    for entry in raw or []:
        if not isinstance(entry, dict) or entry.get("Error"):
            continue
        price = entry.get("ShippingPrice")
        if price is None or not _PRICE_RE.match(str(price)):
            log.info(f"Servicio {entry.get('ServiceDescription')} sin precio válido, se omite")
            continue
        quotes.append(ShippingQuote.from_dict(entry))
    return sorted(quotes, key=lambda q: parse_price(q.shipping_price))
