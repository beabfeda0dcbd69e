from __future__ import annotations
from typing import Iterable, Optional

from backend.schemas import Location, Product

LOW_STOCK_THRESHOLD = 3

SORTS = {
    "name-asc": (lambda p: p.name_en.lower(), False),
    "name-desc": (lambda p: p.name_en.lower(), True),
    "price-asc": (lambda p: p.price, False),
    "price-desc": (lambda p: p.price, True),
    "stock-asc": (lambda p: p.stock, False),
    "stock-desc": (lambda p: p.stock, True),
}


def filter_products(
    products: Iterable[Product],
    query: Optional[str] = None,
    store_id: Optional[str] = None,
    category: Optional[str] = None,
    sort: Optional[str] = None,
) -> list[Product]:
    q = (query or "").strip()
    result = [
        p for p in products
        if (not q or q.lower() in p.name_en.lower() or q in p.name_ar)
        and (not store_id or store_id == "all" or p.store_id == store_id)
        and (not category or category == "all" or p.category == category)
    ]
    if sort in SORTS:
        key, reverse = SORTS[sort]
        result.sort(key=key, reverse=reverse)
    return result


def stock_badge(product: Product) -> Optional[str]:
    if product.stock <= 0:
        return "out_of_stock"
    if product.stock <= LOW_STOCK_THRESHOLD:
        return "low_stock"
    return None


def unique_emirates(locations: Iterable[Location]) -> list[str]:
    return sorted({loc.emirate_en for loc in locations})


def cities_for(locations: Iterable[Location], emirate: str) -> list[str]:
    return sorted(loc.city for loc in locations if loc.emirate_en == emirate)
