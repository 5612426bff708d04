"""
Database Schemas for the Storefront API

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase class name (e.g., Product -> "product"). The cart, wishlist
and order aggregates carry behaviour and live in their own modules; the
line-item shapes they embed are defined here.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """
    Registered shoppers
    Collection: "user"
    """
    user_id: str = Field(..., description="Sequential identifier, e.g. USR-10001")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Lowercased login key, unique")
    password_hash: str = Field(..., description="bcrypt hash of the password")
    phone: Optional[str] = Field(None, description="Contact number")


class Product(BaseModel):
    """
    Catalog entries
    Collection: "product"
    """
    product_id: str = Field(..., description="Sequential identifier, e.g. PRD-10001")
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0, description="Current unit price")
    category: str = Field("general", description="Category slug")
    images: List[str] = Field(default_factory=list, description="Image URLs for gallery")
    stock: int = Field(0, ge=0)
    in_stock: bool = Field(True, description="Whether available for purchase")
    featured: bool = False
    rating: float = Field(0.0, ge=0, le=5, description="Running average of ratings")
    rating_count: int = Field(0, ge=0)
    rating_sum: int = Field(0, ge=0, description="Sum of every rating received")


class CartItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price captured when first added")
    added_at: datetime = Field(default_factory=utcnow)


class WishlistItem(BaseModel):
    product_id: str
    added_at: datetime = Field(default_factory=utcnow)


class OrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at order time")


class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
