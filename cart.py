"""
Cart line handling and order pricing

Cart lines live embedded in the user document as
{_id, product, quantity, size, color}, product being an ObjectId.
A line is identified for merging by (product, size, color).
"""

from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId

FREE_SHIPPING_THRESHOLD = 50.0
SHIPPING_FEE = 9.99
TAX_RATE = 0.08


def same_line(line: Dict[str, Any], product_id: Any, size: Optional[str], color: Optional[str]) -> bool:
    return (
        str(line.get("product")) == str(product_id)
        and line.get("size") == size
        and line.get("color") == color
    )


def add_line(cart: List[Dict[str, Any]], product_id: ObjectId, quantity: int, size: Optional[str] = None, color: Optional[str] = None) -> List[Dict[str, Any]]:
    # merge if same product, size and color
    for line in cart:
        if same_line(line, product_id, size, color):
            line["quantity"] = int(line.get("quantity", 1)) + int(quantity)
            return cart
    cart.append({
        "_id": ObjectId(),
        "product": product_id,
        "quantity": int(quantity),
        "size": size,
        "color": color,
    })
    return cart


def set_line_quantity(cart: List[Dict[str, Any]], line_id: str, quantity: int) -> bool:
    for line in cart:
        if str(line.get("_id")) == line_id:
            line["quantity"] = int(quantity)
            return True
    return False


def remove_line(cart: List[Dict[str, Any]], line_id: str) -> List[Dict[str, Any]]:
    return [line for line in cart if str(line.get("_id")) != line_id]


def product_ids(cart: Iterable[Dict[str, Any]]) -> List[ObjectId]:
    return [line["product"] for line in cart if isinstance(line.get("product"), ObjectId)]


def populate_lines(cart: Iterable[Dict[str, Any]], products: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace each product reference with its document, None when it no longer exists."""
    return [{**line, "product": products.get(str(line.get("product")))} for line in cart]


def price_summary(items_price: float) -> Dict[str, float]:
    items_price = round(items_price, 2)
    shipping = 0.0 if items_price > FREE_SHIPPING_THRESHOLD else SHIPPING_FEE
    tax = round(items_price * TAX_RATE, 2)
    return {
        "itemsPrice": items_price,
        "shippingPrice": shipping,
        "taxPrice": tax,
        "totalPrice": round(items_price + shipping + tax, 2),
    }
