"""
Cache key patterns for storefront entities.

Every key starts with a fixed namespace literal followed by ``:``. Components
supplied by callers are percent-encoded, so a slug or id can never introduce a
separator or a glob metacharacter and two namespaces can never produce the
same string.
"""

from typing import Optional
from urllib.parse import quote

STOREFRONT = "storefront"
STORE_PRODUCTS = "products"
PRODUCT = "product"
ANALYTICS = "analytics"
USER_STORE = "user_store"
STORE_PROFILE = "store_profile"

NAMESPACES = (STOREFRONT, STORE_PRODUCTS, PRODUCT, ANALYTICS, USER_STORE, STORE_PROFILE)


def _part(value: object) -> str:
    text = str(value)
    if not text:
        raise ValueError("Cache key components must not be empty")
    return quote(text, safe="-_.")


def _key(namespace: str, *parts: object) -> str:
    return ":".join([namespace, *(_part(p) for p in parts)])


def storefront(slug: str) -> str:
    """Public storefront payload for a store slug."""
    return _key(STOREFRONT, slug)


def store_products(store_id: str) -> str:
    """Ordered product list for a store."""
    return _key(STORE_PRODUCTS, store_id)


def product(product_id: str) -> str:
    return _key(PRODUCT, product_id)


def analytics(store_id: str, date_range: str, metric: Optional[str] = None) -> str:
    """
    Analytics read for a store.

    Args:
        store_id: Store UUID
        date_range: Range descriptor, e.g. ``2025-01-01_2025-01-14``
        metric: Optional metric or report name
    """
    if metric:
        return _key(ANALYTICS, store_id, date_range, metric)
    return _key(ANALYTICS, store_id, date_range)


def user_store(user_id: str) -> str:
    return _key(USER_STORE, user_id)


def store_profile(store_id: str) -> str:
    return _key(STORE_PROFILE, store_id)


def analytics_pattern(store_id: str, prefix: Optional[str] = None) -> str:
    """Glob matching every analytics key of a store, optionally narrowed to a range prefix."""
    if prefix:
        return f"{_key(ANALYTICS, store_id)}:{_part(prefix)}*"
    return f"{_key(ANALYTICS, store_id)}:*"
