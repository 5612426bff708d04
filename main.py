from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

import auth
import cart
import catalog
import config
import orders
import wishlist
from auth import Caller, current_user
from database import ensure_indexes, get_db
from errors import register_error_handlers
from logging_config import add_context, clear_context, configure_logging, get_logger
from schemas import ShippingAddress

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create indexes on whichever database the app resolves through ``get_db``."""
    try:
        ensure_indexes(app.dependency_overrides.get(get_db, get_db)())
    except Exception as e:
        logger.warning("index_setup_skipped", error=str(e))
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.middleware("http")
async def bind_request_context(request, call_next):
    clear_context()
    add_context(method=request.method, path=request.url.path)
    return await call_next(request)


@app.get("/")
def root():
    return {"success": True, "status": "ok", "service": "storefront-api"}


@app.get("/health")
def health():
    """Liveness plus a cheap round trip to the database."""
    response = {"success": True, "status": "ok", "database": "not configured"}
    try:
        db = get_db()
        db.command("ping")
        response["database"] = "connected"
        response["collections"] = db.list_collection_names()
    except Exception as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v):
        if "@" not in v:
            raise ValueError("must be a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        if len(v.encode("utf-8")) > 72:
            raise ValueError("must be at most 72 bytes")
        return v


class LoginIn(BaseModel):
    email: str
    password: str


class PhoneIn(BaseModel):
    phone: str = Field(..., min_length=3, max_length=20)


@app.post("/register", status_code=201)
def register(payload: RegisterIn, db=Depends(get_db)):
    user = auth.register(db, payload.name, payload.email, payload.password, phone=payload.phone)
    return {
        "success": True,
        "message": "User registered successfully",
        "id": user["id"],
        "user_id": user["user_id"],
        "user": user,
    }


@app.post("/login")
def login(payload: LoginIn, db=Depends(get_db)):
    result = auth.login(db, payload.email, payload.password)
    return {"success": True, "token": result["token"], "user": result["user"]}


@app.get("/profile")
def profile(caller: Caller = Depends(current_user), db=Depends(get_db)):
    return {"success": True, "user": auth.get_profile(db, caller)}


@app.post("/add-phone")
def add_phone(payload: PhoneIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    user = auth.update_phone(db, caller, payload.phone.strip())
    return {"success": True, "message": "Phone number updated", "user": user}


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class CartItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class CartQuantityIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int


@app.post("/add-to-cart")
def add_to_cart(payload: CartItemIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    price, name = catalog.lookup_price(db, payload.product_id)
    result = cart.add_item(db, caller.id, payload.product_id, payload.quantity, price, name=name)
    return {"success": True, "message": "Product added to cart", "cart": result.to_view()}


@app.get("/get-cart")
def get_cart(caller: Caller = Depends(current_user), db=Depends(get_db)):
    user = auth.get_profile(db, caller)
    return {"success": True, "cart": cart.get(db, caller.id).to_view(user=user)}


@app.post("/update-cart")
def update_cart(payload: CartQuantityIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = cart.set_item_quantity(db, caller.id, payload.product_id, payload.quantity)
    return {"success": True, "message": "Cart updated", "cart": result.to_view()}


@app.delete("/remove-from-cart/{product_id}")
def remove_from_cart(product_id: str, caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = cart.remove_item(db, caller.id, product_id)
    return {"success": True, "message": "Product removed from cart", "cart": result.to_view()}


@app.delete("/clear-cart")
def clear_cart(caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = cart.clear(db, caller.id)
    return {"success": True, "message": "Cart cleared", "cart": result.to_view()}


# ---------------------------------------------------------------------------
# Wishlist
# ---------------------------------------------------------------------------
class WishlistItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)


@app.post("/add-to-wishlist")
def add_to_wishlist(payload: WishlistItemIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    catalog.get_product(db, payload.product_id)
    result = wishlist.add(db, caller.id, payload.product_id)
    return {"success": True, "message": "Product added to wishlist", "wishlist": result.to_view()}


@app.get("/get-wishlist")
def get_wishlist(caller: Caller = Depends(current_user), db=Depends(get_db)):
    return {"success": True, "wishlist": wishlist.get(db, caller.id).to_view()}


@app.delete("/remove-from-wishlist/{product_id}")
def remove_from_wishlist(product_id: str, caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = wishlist.remove(db, caller.id, product_id)
    return {"success": True, "message": "Product removed from wishlist", "wishlist": result.to_view()}


@app.delete("/clear-wishlist")
def clear_wishlist(caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = wishlist.clear(db, caller.id)
    return {"success": True, "message": "Wishlist cleared", "wishlist": result.to_view()}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class PlaceOrderIn(BaseModel):
    """Explicit lines, or omit ``items`` to check out the caller's cart."""
    items: Optional[List[OrderItemIn]] = None
    shipping_address: ShippingAddress


class OrderStatusIn(BaseModel):
    status: str


@app.post("/place-order", status_code=201)
def place_order(payload: PlaceOrderIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    """
    Create an order in "pending" and empty the caller's cart.
    Prices are taken as sent; they are not re-read from the catalog.
    """
    if payload.items is None:
        items = [
            {"product_id": line.product_id, "name": line.name, "quantity": line.quantity, "price": line.price}
            for line in cart.get(db, caller.id).items
        ]
    else:
        items = [item.model_dump() for item in payload.items]

    order = orders.place(db, caller.id, items, payload.shipping_address)
    return {"success": True, "message": "Order placed successfully", "order": order.to_view()}


@app.get("/get-orders")
def get_orders(caller: Caller = Depends(current_user), db=Depends(get_db)):
    result = [order.to_view() for order in orders.list_for_user(db, caller.id)]
    return {"success": True, "count": len(result), "orders": result}


@app.get("/order/{order_id}")
def get_order(order_id: str, caller: Caller = Depends(current_user), db=Depends(get_db)):
    return {"success": True, "order": orders.get_detail(db, caller.id, order_id).to_view()}


@app.post("/cancel-order/{order_id}")
def cancel_order(order_id: str, caller: Caller = Depends(current_user), db=Depends(get_db)):
    order = orders.cancel(db, caller.id, order_id)
    return {"success": True, "message": "Order cancelled", "order": order.to_view()}


@app.put("/order/{order_id}/status")
def update_order_status(
    order_id: str, payload: OrderStatusIn, caller: Caller = Depends(current_user), db=Depends(get_db)
):
    order = orders.transition(db, caller.id, order_id, payload.status)
    return {"success": True, "message": f"Order is now {order.status}", "order": order.to_view()}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    category: str = Field("general", min_length=1)
    images: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0)
    featured: bool = False


class ProductUpdateIn(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None


class RatingIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)


@app.post("/products", status_code=201)
def create_product(payload: ProductIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    product = catalog.create_product(db, payload.model_dump())
    return {"success": True, "message": "Product created", "product": product}


@app.get("/products")
def list_products(
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    db=Depends(get_db),
):
    return {"success": True, **catalog.list_products(db, page=page, limit=limit, sort_by=sort_by, order=order)}


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return {"success": True, "product": catalog.get_product(db, product_id)}


@app.put("/products/{product_id}")
def update_product(
    product_id: str, payload: ProductUpdateIn, caller: Caller = Depends(current_user), db=Depends(get_db)
):
    product = catalog.update_product(db, product_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "message": "Product updated", "product": product}


@app.delete("/products/{product_id}")
def delete_product(product_id: str, caller: Caller = Depends(current_user), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"success": True, "message": "Product deleted"}


@app.post("/products/{product_id}/rate")
def rate_product(product_id: str, payload: RatingIn, caller: Caller = Depends(current_user), db=Depends(get_db)):
    product = catalog.rate_product(db, product_id, payload.rating)
    return {"success": True, "rating": product["rating"], "rating_count": product["rating_count"]}


@app.get("/category/{category}/products")
def category_products(
    category: str,
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    db=Depends(get_db),
):
    result = catalog.list_products(db, page=page, limit=limit, sort_by=sort_by, order=order, category=category)
    return {"success": True, "category": category.lower(), **result}


@app.get("/search")
def search(
    q: str = Query(""),
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    db=Depends(get_db),
):
    result = catalog.search_products(db, q, page=page, limit=limit, sort_by=sort_by, order=order)
    return {"success": True, "query": q, **result}


@app.get("/featured-products")
def featured_products(limit: int = Query(10, ge=1, le=100), db=Depends(get_db)):
    return {"success": True, "products": catalog.featured_products(db, limit=limit)}


@app.get("/new-arrivals")
def new_arrivals(limit: int = Query(10, ge=1, le=100), db=Depends(get_db)):
    return {"success": True, "products": catalog.new_arrivals(db, limit=limit)}


@app.get("/api/schema")
def get_schema_info():
    """Expose basic schema info for tooling."""
    return {
        "collections": ["user", "product", "cart", "wishlist", "order", "counter"],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
