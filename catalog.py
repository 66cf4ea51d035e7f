"""
Catalog query building

Pure helpers that turn listing parameters into a Mongo filter, a sort
order and pagination numbers, plus the partial-update merge used by
the admin product editor.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_LIMIT = 12
FEATURED_LIMIT = 8

SORT_OPTIONS: Dict[str, List[Tuple[str, int]]] = {
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "rating": [("rating", -1)],
    "newest": [("createdAt", -1)],
}
DEFAULT_SORT = SORT_OPTIONS["newest"]

# incoming falsy value keeps the stored one
KEEP_IF_FALSY = ("name", "description", "price", "originalPrice", "category", "character")
# any value other than None is written, including 0 and False
EXPLICIT = ("stock", "featured", "isActive")


def build_product_query(
    category: Optional[str] = None,
    character: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    featured: Optional[bool] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {"isActive": True}
    if category:
        query["category"] = category
    if character:
        query["character"] = character
    if featured is not None:
        query["featured"] = featured
    price_filter: Dict[str, Any] = {}
    if min_price is not None:
        price_filter["$gte"] = float(min_price)
    if max_price is not None:
        price_filter["$lte"] = float(max_price)
    if price_filter:
        query["price"] = price_filter
    if search and search.strip():
        # served by the name/description text index
        query["$text"] = {"$search": search.strip()}
    return query


def resolve_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    # _id keeps equal keys in a stable order across pages
    return SORT_OPTIONS.get(sort or "", DEFAULT_SORT) + [("_id", 1)]


def page_count(total: int, limit: int) -> int:
    if limit <= 0:
        raise ValueError("limit must be positive")
    return math.ceil(total / limit)


def skip_for(page: int, limit: int) -> int:
    return max(page - 1, 0) * limit


def discount_percentage(price: Optional[float], original_price: Optional[float]) -> int:
    """Whole-number markdown from originalPrice to price, 0 when there is none."""
    if not original_price or price is None or original_price <= 0:
        return 0
    return max(0, round((original_price - price) / original_price * 100))


def merge_product_update(existing: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply an admin edit to a stored product.

    Text fields, prices, category and character only overwrite when the new
    value is truthy; stock and the two flags overwrite whenever supplied.
    sizes/colors replace the stored lists when given (already decoded).
    Images are not touched here.
    """
    merged = dict(existing)
    for field in KEEP_IF_FALSY:
        value = changes.get(field)
        if value:
            merged[field] = value
    for field in EXPLICIT:
        value = changes.get(field)
        if value is not None:
            merged[field] = value
    for field in ("sizes", "colors"):
        if changes.get(field) is not None:
            merged[field] = changes[field]
    return merged
