import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Form, File, UploadFile, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, EmailStr, Field, ValidationError
from bson import ObjectId
from jose import JWTError, jwt
from passlib.context import CryptContext

import catalog
import media
from cart import add_line, set_line_quantity, remove_line, product_ids, populate_lines, price_summary
from database import db, create_document, get_documents
from schemas import (
    User as UserSchema,
    Product as ProductSchema,
    Order as OrderSchema,
    Address as AddressSchema,
    OrderStatus,
    ORDER_STATUSES,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 30

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is None:
        logger.warning("Skipping index creation and admin seeding: database not available")
    else:
        ensure_indexes()
        seed_admin()
    yield


app = FastAPI(title="Marvel Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors are always rendered as {"message": ...}

def format_errors(errors: Iterable[Dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header", "form")]
        msg = err.get("msg", "Invalid value")
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": format_errors(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": str(exc) or "Something went wrong!"})


# Utilities

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    return jwt.encode({"sub": user_id, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        logger.warning("Rejected invalid or expired token")
        raise HTTPException(status_code=401, detail="Not authorized, token failed")


def serialize_doc(doc: Any) -> Any:
    """Render ObjectIds as strings at any depth and drop password hashes."""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, dict):
        return {k: serialize_doc(v) for k, v in doc.items() if k != "password_hash"}
    return doc


def serialize_product(doc: Dict[str, Any]) -> Dict[str, Any]:
    product = serialize_doc(doc)
    product["discount"] = catalog.discount_percentage(doc.get("price"), doc.get("originalPrice"))
    return product


def collection(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db[name]


def to_object_id(value: str, label: str = "id") -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")
    return ObjectId(value)


def now() -> datetime:
    return datetime.now(timezone.utc)


def user_payload(user: Dict[str, Any], token: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "_id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "avatar": user.get("avatar", ""),
    }
    if token:
        data["token"] = token
    return data


# Dependencies

def get_current_user(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    user = collection("user").find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, user not found")
    return user


def require_admin(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=401, detail="Not authorized as an admin")
    return current_user


# Startup

def ensure_indexes():
    db["user"].create_index("email", unique=True)
    db["product"].create_index([("category", 1), ("isActive", 1)])
    db["product"].create_index("character")
    db["product"].create_index("price")
    db["order"].create_index("user")
    db["product"].create_index([("name", "text"), ("description", "text")])


def seed_admin():
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return
    email = ADMIN_EMAIL.lower()
    existing = db["user"].find_one({"email": email})
    if existing:
        if existing.get("role") != "admin":
            db["user"].update_one({"_id": existing["_id"]}, {"$set": {"role": "admin", "updatedAt": now()}})
            logger.info(f"Promoted {email} to admin")
        return
    admin = UserSchema(name="Admin", email=email, password_hash=hash_password(ADMIN_PASSWORD), role="admin")
    create_document("user", admin)
    logger.info(f"Seeded admin account {email}")


# Routes
@app.get("/")
def read_root():
    return {"message": "Marvel Store API"}


@app.get("/api/health")
def health():
    database = "not configured"
    if db is not None:
        try:
            db.command("ping")
            database = "connected"
        except Exception as e:
            database = f"error: {str(e)[:80]}"
    return {"status": "ok", "message": "Marvel Store API is running!", "database": database}


# Products

def decode_json_list(label: str, raw: Optional[str]) -> Optional[list]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail=f"Invalid {label}: expected a JSON array")
    if not isinstance(value, list):
        raise HTTPException(status_code=400, detail=f"Invalid {label}: expected a JSON array")
    return value


def validate_product(fields: Dict[str, Any]) -> ProductSchema:
    try:
        return ProductSchema(**fields)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=format_errors(e.errors()))


def store_images(images: Optional[List[UploadFile]]) -> List[Dict[str, Any]]:
    files = [f for f in images or [] if f.filename]
    if len(files) > media.MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"A maximum of {media.MAX_IMAGES} images is allowed")
    for f in files:
        if f.content_type not in media.ALLOWED_CONTENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Unsupported image type: {f.content_type}")
    stored = []
    for f in files:
        try:
            uploaded = media.upload_image(f)
        except Exception as e:
            logger.exception(f"Upload of {f.filename} failed")
            raise HTTPException(status_code=500, detail=f"Image upload failed: {e}")
        stored.append({"_id": ObjectId(), "url": uploaded["url"], "publicId": uploaded["publicId"]})
    return stored


def evict_image(public_id: str):
    try:
        media.destroy_image(public_id)
    except Exception as e:
        logger.exception(f"Eviction of {public_id} failed")
        raise HTTPException(status_code=500, detail=f"Image removal failed: {e}")


def load_product(product_id: str) -> Dict[str, Any]:
    product = collection("product").find_one({"_id": to_object_id(product_id, "product id")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    character: Optional[str] = None,
    search: Optional[str] = None,
    minPrice: Optional[float] = Query(None, allow_inf_nan=False),
    maxPrice: Optional[float] = Query(None, allow_inf_nan=False),
    featured: Optional[bool] = None,
    sort: Optional[str] = None,
    limit: int = Query(catalog.DEFAULT_LIMIT, ge=1),
    page: int = Query(1, ge=1),
):
    query = catalog.build_product_query(category, character, search, minPrice, maxPrice, featured)
    products = collection("product")
    total = products.count_documents(query)
    cursor = (
        products.find(query)
        .sort(catalog.resolve_sort(sort))
        .skip(catalog.skip_for(page, limit))
        .limit(limit)
    )
    return {
        "products": [serialize_product(d) for d in cursor],
        "page": page,
        "pages": catalog.page_count(total, limit),
        "total": total,
    }


@app.get("/api/products/featured")
def featured_products():
    docs = get_documents("product", {"featured": True, "isActive": True}, catalog.FEATURED_LIMIT)
    return [serialize_product(d) for d in docs]


@app.get("/api/products/category/{category}")
def products_by_category(category: str):
    docs = get_documents("product", {"category": category, "isActive": True})
    return [serialize_product(d) for d in docs]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return serialize_product(load_product(product_id))


@app.post("/api/products", status_code=201)
def create_product(
    name: str = Form(...),
    description: str = Form(...),
    price: float = Form(...),
    originalPrice: Optional[float] = Form(None),
    category: str = Form(...),
    character: Optional[str] = Form(None),
    stock: int = Form(0),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    featured: bool = Form(False),
    images: List[UploadFile] = File(default=[]),
    current_user: dict = Depends(require_admin),
):
    fields: Dict[str, Any] = {
        "name": name,
        "description": description,
        "price": price,
        "originalPrice": originalPrice,
        "category": category,
        "stock": stock,
        "sizes": decode_json_list("sizes", sizes) or [],
        "colors": decode_json_list("colors", colors) or [],
        "featured": featured,
    }
    if character:
        fields["character"] = character
    product = validate_product(fields)
    doc = product.model_dump()
    doc["images"] = store_images(images)
    product_id = create_document("product", doc)
    logger.info(f"Product {product_id} created by {current_user.get('email')}")
    created = collection("product").find_one({"_id": ObjectId(product_id)})
    return serialize_product(created)


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    originalPrice: Optional[float] = Form(None),
    category: Optional[str] = Form(None),
    character: Optional[str] = Form(None),
    stock: Optional[int] = Form(None),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    featured: Optional[bool] = Form(None),
    isActive: Optional[bool] = Form(None),
    images: List[UploadFile] = File(default=[]),
    current_user: dict = Depends(require_admin),
):
    existing = load_product(product_id)
    changes = {
        "name": name,
        "description": description,
        "price": price,
        "originalPrice": originalPrice,
        "category": category,
        "character": character,
        "stock": stock,
        "featured": featured,
        "isActive": isActive,
        "sizes": decode_json_list("sizes", sizes),
        "colors": decode_json_list("colors", colors),
    }
    update = validate_product(catalog.merge_product_update(existing, changes)).model_dump()
    # new uploads are appended, never replacing
    update["images"] = list(existing.get("images", [])) + store_images(images)
    update["updatedAt"] = now()
    products = collection("product")
    products.update_one({"_id": existing["_id"]}, {"$set": update})
    return serialize_product(products.find_one({"_id": existing["_id"]}))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, current_user: dict = Depends(require_admin)):
    product = load_product(product_id)
    for image in product.get("images", []):
        if image.get("publicId"):
            evict_image(image["publicId"])
    collection("product").delete_one({"_id": product["_id"]})
    logger.info(f"Product {product_id} deleted by {current_user.get('email')}")
    return {"message": "Product deleted successfully"}


@app.delete("/api/products/{product_id}/images/{image_id}")
def delete_product_image(product_id: str, image_id: str, current_user: dict = Depends(require_admin)):
    product = load_product(product_id)
    images = product.get("images", [])
    target = next((img for img in images if str(img.get("_id")) == image_id), None)
    if target and target.get("publicId"):
        evict_image(target["publicId"])
    remaining = [img for img in images if str(img.get("_id")) != image_id]
    products = collection("product")
    products.update_one({"_id": product["_id"]}, {"$set": {"images": remaining, "updatedAt": now()}})
    return serialize_product(products.find_one({"_id": product["_id"]}))


# Users
class RegisterInput(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    avatar: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class CartItemInput(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class CartQuantityInput(BaseModel):
    quantity: int = Field(..., ge=1)


class GuestCartInput(BaseModel):
    items: List[CartItemInput] = []


class WishlistInput(BaseModel):
    productId: str


def resolve_products(ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    ids = [i for i in ids if isinstance(i, ObjectId)]
    if not ids:
        return {}
    return {str(p["_id"]): serialize_product(p) for p in collection("product").find({"_id": {"$in": ids}})}


def resolved_cart(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return serialize_doc(populate_lines(lines, resolve_products(product_ids(lines))))


def resolved_wishlist(wishlist: List[Any]) -> List[Dict[str, Any]]:
    products = resolve_products(wishlist)
    return [products[str(pid)] for pid in wishlist if str(pid) in products]


def save_user_fields(user_id: ObjectId, fields: Dict[str, Any]):
    fields["updatedAt"] = now()
    collection("user").update_one({"_id": user_id}, {"$set": fields})


@app.post("/api/users/register", status_code=201)
def register(payload: RegisterInput):
    users = collection("user")
    email = payload.email.lower()
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    user_model = UserSchema(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
    )
    user_id = create_document("user", user_model)
    user = users.find_one({"_id": ObjectId(user_id)})
    logger.info(f"Registered user {user_id} ({email})")
    return user_payload(user, create_access_token(user_id))


@app.post("/api/users/login")
def login(payload: LoginInput):
    user = collection("user").find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning(f"Failed login for {payload.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return user_payload(user, create_access_token(str(user["_id"])))


@app.get("/api/users/profile")
def get_profile(current_user: dict = Depends(get_current_user)):
    profile = user_payload(current_user)
    profile["cart"] = resolved_cart(current_user.get("cart", []))
    profile["wishlist"] = resolved_wishlist(current_user.get("wishlist", []))
    profile["addresses"] = serialize_doc(current_user.get("addresses", []))
    return profile


@app.put("/api/users/profile")
def update_profile(payload: ProfileUpdate, current_user: dict = Depends(get_current_user)):
    fields: Dict[str, Any] = {
        "name": payload.name or current_user.get("name"),
        "avatar": payload.avatar or current_user.get("avatar", ""),
    }
    if payload.email:
        email = payload.email.lower()
        if email != current_user.get("email"):
            if collection("user").find_one({"email": email, "_id": {"$ne": current_user["_id"]}}):
                raise HTTPException(status_code=400, detail="Email already in use")
            fields["email"] = email
    if payload.password:
        fields["password_hash"] = hash_password(payload.password)
    save_user_fields(current_user["_id"], fields)
    updated = collection("user").find_one({"_id": current_user["_id"]})
    return user_payload(updated, create_access_token(str(updated["_id"])))


@app.post("/api/users/cart")
def add_to_cart(item: CartItemInput, current_user: dict = Depends(get_current_user)):
    product_id = to_object_id(item.productId, "product id")
    if not collection("product").find_one({"_id": product_id}):
        raise HTTPException(status_code=404, detail="Product not found")
    lines = add_line(list(current_user.get("cart", [])), product_id, item.quantity, item.size, item.color)
    save_user_fields(current_user["_id"], {"cart": lines})
    return resolved_cart(lines)


@app.post("/api/users/cart/merge")
def merge_guest_cart(payload: GuestCartInput, current_user: dict = Depends(get_current_user)):
    """Fold a logged-out cart into the account cart using the same line matching as add."""
    candidates = [ObjectId(i.productId) for i in payload.items if ObjectId.is_valid(i.productId)]
    known = {p["_id"] for p in collection("product").find({"_id": {"$in": candidates}}, {"_id": 1})}
    lines = list(current_user.get("cart", []))
    for item in payload.items:
        if not ObjectId.is_valid(item.productId) or ObjectId(item.productId) not in known:
            continue
        lines = add_line(lines, ObjectId(item.productId), item.quantity, item.size, item.color)
    save_user_fields(current_user["_id"], {"cart": lines})
    return resolved_cart(lines)


@app.put("/api/users/cart/{item_id}")
def update_cart_item(item_id: str, payload: CartQuantityInput, current_user: dict = Depends(get_current_user)):
    lines = list(current_user.get("cart", []))
    if set_line_quantity(lines, item_id, payload.quantity):
        save_user_fields(current_user["_id"], {"cart": lines})
    return resolved_cart(lines)


@app.delete("/api/users/cart/{item_id}")
def remove_from_cart(item_id: str, current_user: dict = Depends(get_current_user)):
    lines = remove_line(current_user.get("cart", []), item_id)
    save_user_fields(current_user["_id"], {"cart": lines})
    return resolved_cart(lines)


@app.post("/api/users/wishlist")
def add_to_wishlist(payload: WishlistInput, current_user: dict = Depends(get_current_user)):
    product_id = to_object_id(payload.productId, "product id")
    if not collection("product").find_one({"_id": product_id}):
        raise HTTPException(status_code=404, detail="Product not found")
    wishlist = list(current_user.get("wishlist", []))
    if str(product_id) not in {str(pid) for pid in wishlist}:
        wishlist.append(product_id)
        save_user_fields(current_user["_id"], {"wishlist": wishlist})
    return resolved_wishlist(wishlist)


@app.delete("/api/users/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, current_user: dict = Depends(get_current_user)):
    wishlist = [pid for pid in current_user.get("wishlist", []) if str(pid) != product_id]
    save_user_fields(current_user["_id"], {"wishlist": wishlist})
    return resolved_wishlist(wishlist)


@app.post("/api/users/addresses")
def add_address(address: AddressSchema, current_user: dict = Depends(get_current_user)):
    addresses = list(current_user.get("addresses", []))
    if address.isDefault:
        addresses = [{**a, "isDefault": False} for a in addresses]
    addresses.append({"_id": ObjectId(), **address.model_dump()})
    save_user_fields(current_user["_id"], {"addresses": addresses})
    return serialize_doc(addresses)


@app.get("/api/users")
def list_users(current_user: dict = Depends(require_admin)):
    return [serialize_doc(u) for u in collection("user").find({}, {"password_hash": 0})]


# Orders
class OrderLineInput(BaseModel):
    product: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class OrderCreate(BaseModel):
    orderItems: List[OrderLineInput] = []
    shippingAddress: AddressSchema
    paymentMethod: str = "card"


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


def attach_users(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = list({o["user"] for o in orders if isinstance(o.get("user"), ObjectId)})
    users = {}
    if ids:
        users = {u["_id"]: u for u in collection("user").find({"_id": {"$in": ids}}, {"name": 1, "email": 1})}
    out = []
    for o in orders:
        u = users.get(o.get("user"))
        out.append({**o, "user": {"_id": u["_id"], "name": u.get("name"), "email": u.get("email")} if u else None})
    return serialize_doc(out)


def load_order(order_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
    order = collection("order").find_one({"_id": to_object_id(order_id, "order id")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user") != current_user["_id"] and current_user.get("role") != "admin":
        raise HTTPException(status_code=401, detail="Not authorized to access this order")
    return order


@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate, current_user: dict = Depends(get_current_user)):
    if not payload.orderItems:
        raise HTTPException(status_code=400, detail="No order items")

    # Prices come from the catalog, never from the client
    products = collection("product")
    items = []
    items_price = 0.0
    # stock is checked against everything this order asks of a product, across lines
    requested: Dict[ObjectId, int] = {}
    for line in payload.orderItems:
        prod = products.find_one({"_id": to_object_id(line.product, "product id")})
        if not prod or not prod.get("isActive", True):
            raise HTTPException(status_code=404, detail=f"Product not found: {line.product}")
        requested[prod["_id"]] = requested.get(prod["_id"], 0) + line.quantity
        if int(prod.get("stock", 0)) < requested[prod["_id"]]:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {prod.get('name')}")
        price = float(prod.get("price", 0))
        items_price += price * line.quantity
        images = prod.get("images") or []
        items.append({
            "product": str(prod["_id"]),
            "name": prod.get("name"),
            "image": images[0].get("url") if images else None,
            "price": price,
            "quantity": line.quantity,
            "size": line.size,
            "color": line.color,
        })

    order = OrderSchema(
        user=str(current_user["_id"]),
        orderItems=items,
        shippingAddress=payload.shippingAddress,
        paymentMethod=payload.paymentMethod,
        **price_summary(items_price),
    )
    doc = order.model_dump()
    doc["user"] = current_user["_id"]
    for item in doc["orderItems"]:
        item["product"] = ObjectId(item["product"])
    order_id = create_document("order", doc)

    for product_id, quantity in requested.items():
        products.update_one({"_id": product_id}, {"$inc": {"stock": -quantity}})
    logger.info(f"Order {order_id} placed by {current_user['_id']} for {doc['totalPrice']}")
    return serialize_doc(collection("order").find_one({"_id": ObjectId(order_id)}))


@app.get("/api/orders")
def list_orders(status: Optional[str] = None, current_user: dict = Depends(require_admin)):
    query = {"status": status} if status else {}
    orders = list(collection("order").find(query).sort("createdAt", -1))
    return attach_users(orders)


@app.get("/api/orders/myorders")
def my_orders(current_user: dict = Depends(get_current_user)):
    orders = collection("order").find({"user": current_user["_id"]}).sort("createdAt", -1)
    return [serialize_doc(o) for o in orders]


@app.get("/api/orders/stats")
def order_stats(current_user: dict = Depends(require_admin)):
    orders = collection("order")
    revenue = list(orders.aggregate([
        {"$match": {"isPaid": True}},
        {"$group": {"_id": None, "total": {"$sum": "$totalPrice"}}},
    ]))
    by_status = {row["_id"]: row["count"] for row in orders.aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ])}
    return {
        "totalOrders": orders.count_documents({}),
        "totalRevenue": round(revenue[0]["total"], 2) if revenue else 0,
        "pendingOrders": by_status.get("pending", 0),
        "ordersByStatus": {s: by_status.get(s, 0) for s in ORDER_STATUSES},
        "totalProducts": collection("product").count_documents({}),
        "totalUsers": collection("user").count_documents({}),
    }


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, current_user: dict = Depends(get_current_user)):
    return attach_users([load_order(order_id, current_user)])[0]


@app.put("/api/orders/{order_id}/pay")
def pay_order(order_id: str, payload: Optional[PaymentResult] = None, current_user: dict = Depends(get_current_user)):
    order = load_order(order_id, current_user)
    fields = {
        "isPaid": True,
        "paidAt": now(),
        "paymentResult": (payload or PaymentResult()).model_dump(),
        "updatedAt": now(),
    }
    orders = collection("order")
    orders.update_one({"_id": order["_id"]}, {"$set": fields})
    logger.info(f"Order {order_id} marked paid")
    return serialize_doc(orders.find_one({"_id": order["_id"]}))


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate, current_user: dict = Depends(require_admin)):
    order = load_order(order_id, current_user)
    fields: Dict[str, Any] = {"status": payload.status, "updatedAt": now()}
    if payload.status == "delivered":
        fields["isDelivered"] = True
        fields["deliveredAt"] = now()
    orders = collection("order")
    orders.update_one({"_id": order["_id"]}, {"$set": fields})
    logger.info(f"Order {order_id} status -> {payload.status}")
    return serialize_doc(orders.find_one({"_id": order["_id"]}))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 5000))
    uvicorn.run(app, host="0.0.0.0", port=port)
