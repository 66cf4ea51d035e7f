"""
Database Schemas

Each Pydantic model validates a document before it is written to MongoDB.
Model name lowercased is the collection name:
- User -> "user"
- Product -> "product"
- Order -> "order"

Embedded references (cart lines, wishlist, order lines) are stored as
ObjectIds; the models below carry them as strings and the caller converts.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field, field_validator

Category = Literal["shirts", "pants", "bags", "pens", "accessories", "collectibles", "hoodies", "caps"]
Character = Literal[
    "iron-man", "spider-man", "captain-america", "thor", "hulk", "black-widow",
    "black-panther", "doctor-strange", "avengers", "guardians", "x-men", "all",
]
Size = Literal["XS", "S", "M", "L", "XL", "XXL", "One Size"]
Role = Literal["user", "admin"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

CATEGORIES = list(get_args(Category))
CHARACTERS = list(get_args(Character))
ORDER_STATUSES = list(get_args(OrderStatus))


class Color(BaseModel):
    name: str
    hex: Optional[str] = None


class Address(BaseModel):
    street: str = Field(..., description="Street and number")
    city: str
    state: Optional[str] = None
    zipCode: str = Field(..., description="Postal code")
    country: str
    isDefault: bool = False


class Product(BaseModel):
    """
    Product catalog schema
    Collection: "product"

    Images are appended by the caller as [{_id, url, publicId}] after the
    uploads complete, so they are not part of the validated field set.
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., min_length=1, description="Product description")
    price: float = Field(..., ge=0, description="Selling price")
    originalPrice: Optional[float] = Field(None, ge=0, description="Price before discount")
    category: Category
    character: Character = "avengers"
    stock: int = Field(0, ge=0, description="Units in stock")
    sizes: List[Size] = Field(default_factory=list)
    colors: List[Color] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    numReviews: int = Field(0, ge=0)
    featured: bool = False
    isActive: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Product name is required")
        return v


class User(BaseModel):
    """
    Users collection schema
    Collection: "user"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password_hash: str = Field(..., description="BCrypt hashed password")
    role: Role = "user"
    avatar: str = ""
    cart: List[Dict[str, Any]] = Field(default_factory=list, description="[{_id, product, quantity, size, color}]")
    wishlist: List[Any] = Field(default_factory=list, description="Product ObjectIds")
    addresses: List[Dict[str, Any]] = Field(default_factory=list)


class OrderItem(BaseModel):
    product: str = Field(..., description="Referenced product _id string")
    name: str = Field(..., description="Snapshot of name at purchase time")
    image: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class Order(BaseModel):
    """
    Orders schema
    Collection: "order"
    """
    user: str = Field(..., description="Owner _id string")
    orderItems: List[OrderItem]
    shippingAddress: Address
    paymentMethod: str = "card"
    itemsPrice: float = Field(..., ge=0)
    shippingPrice: float = Field(..., ge=0)
    taxPrice: float = Field(..., ge=0)
    totalPrice: float = Field(..., ge=0)
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    paymentResult: Optional[Dict[str, Any]] = None
    status: OrderStatus = "pending"
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None
