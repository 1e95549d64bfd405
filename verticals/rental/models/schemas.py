"""Pydantic schemas for API request/response validation.

Request and response bodies use camelCase on the wire; the Python side
keeps snake_case attribute names.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from patterns.workflow_states import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DeliveryType(str, Enum):
    HOME = "HOME"
    AIRPORT = "AIRPORT"
    COLLECTION = "COLLECTION"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class AvailabilityRequest(CamelModel):
    product_id: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    exclude_order_id: Optional[str] = None


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    image: Optional[str] = None
    total_stock: int = Field(1, ge=0)
    is_active: bool = True
    is_bundle: bool = False
    category_id: Optional[str] = None


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    image: Optional[str] = None
    total_stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)
    category_id: Optional[str] = None


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = Field(
        None, min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
    )
    description: Optional[str] = None


class BundleItemIn(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class BundleItemsUpdate(CamelModel):
    product_ids: list[BundleItemIn]


class BundleMembershipIn(CamelModel):
    bundle_id: str
    quantity: int = Field(1, ge=1)


class ProductBundlesUpdate(CamelModel):
    bundle_ids: list[BundleMembershipIn]


class OrderItemIn(CamelModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class OrderCreate(CamelModel):
    customer_id: Optional[str] = None
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    delivery_type: Optional[DeliveryType] = None
    special_requests: Optional[str] = None
    rental_start_date: datetime
    rental_end_date: datetime
    terms_accepted: bool = False
    items: list[OrderItemIn] = Field(..., min_length=1)


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    admin_notes: Optional[str] = None


class OrderAmend(CamelModel):
    items: list[OrderItemIn] = Field(..., min_length=1)


class QuoteItem(CamelModel):
    product_id: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)


class QuoteRequest(CamelModel):
    items: list[QuoteItem]
    rental_start_date: datetime
    rental_end_date: datetime
    delivery_type: Optional[DeliveryType] = None


class PricingUpdate(CamelModel):
    weekly_price_percent_increase: Optional[float] = Field(None, ge=0)
    min_order_value: Optional[float] = Field(None, ge=0)
    airport_min_order: Optional[float] = Field(None, ge=0)
    bundle_discount_percent: Optional[float] = Field(None, ge=0, le=100)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class AvailabilityResponse(CamelModel):
    available: int
    total_stock: int
    blocked: int
    available_from: datetime


class OrderCreated(CamelModel):
    success: bool = True
    order_id: str
    order_number: str


class CartLine(CamelModel):
    product_id: str
    product_name: str
    price: float
    image: Optional[str] = None
    quantity: int


class BundleCart(CamelModel):
    bundle_name: str
    items: list[CartLine]


class QuoteResponse(CamelModel):
    days: int
    subtotal: float
    weekly_price: float
    extra_days_charge: float
    discount: float
    bundle_discount: float
    delivery_fee: float
    total: float
    requires_contact: bool
    message: Optional[str] = None
