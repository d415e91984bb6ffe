"""
Database Schemas for the oil & spare parts storefront

Collections:
- product: oils, brake pads, spark plugs, etc.
- order: customer orders with shipping, invoice and tracking data
- order_item: line items, snapshotting product name/price at order time
- profile: customer details and role (customer or admin)
- user: login credentials
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from shipping import Dimensions


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class UserCreate(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=6, description="Plain password, hashed before storage")
    name: Optional[str] = Field(None, description="Full name")


class Address(BaseModel):
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)


class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    price: int = Field(..., ge=0, description="Price in IDR")
    weight_gram: int = Field(..., gt=0, description="Shipping weight in grams")
    length_cm: Optional[float] = Field(None, gt=0)
    width_cm: Optional[float] = Field(None, gt=0)
    height_cm: Optional[float] = Field(None, gt=0)
    stock: int = Field(0, ge=0, description="Units available")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class OrderLineItem(BaseModel):
    product_id: str
    product_name: str = Field(..., description="Snapshot of product name at purchase time")
    price_each: int = Field(..., ge=0, description="Unit price at purchase time")
    quantity: int = Field(..., ge=1)


class TrackingEntry(BaseModel):
    status: str
    description: Optional[str] = None
    timestamp: datetime


class Order(BaseModel):
    id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    subtotal: int
    shipping_courier: Optional[str] = None
    shipping_service: Optional[str] = None
    shipping_cost: Optional[int] = None
    total: int
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    invoice_url: Optional[str] = None
    payment_proof_url: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_history: List[TrackingEntry] = Field(default_factory=list)
    address: dict = Field(default_factory=dict)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderDetail(BaseModel):
    order: Order
    items: List[OrderLineItem]


class CreateOrderPayload(BaseModel):
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    address: dict = Field(default_factory=dict)
    courier: str
    courier_service: str
    shipping_cost: int = Field(..., ge=0)
    items: List[OrderItemIn] = Field(default_factory=list)
    note: Optional[str] = None


class CheckoutRequest(BaseModel):
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    address: Address
    logistic: str = Field(..., description='Courier option, e.g. "JNE|REG"')
    items: List[OrderItemIn] = Field(default_factory=list)
    dims: Optional[Dimensions] = Field(None, description="Custom parcel size; derived from products when omitted")
    note: Optional[str] = None


class ShippingEstimateRequest(BaseModel):
    weight_gram: int = Field(..., gt=0)
    dims: Dimensions
    courier: str
    service: str


class StatusUpdate(BaseModel):
    status: OrderStatus


class TrackingUpdate(BaseModel):
    tracking_number: str = Field(..., min_length=1)
    status: Optional[str] = Field(None, description='Tracking note, "Update" when empty')
    description: Optional[str] = None


class Profile(BaseModel):
    user_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[dict] = None
    role: Role = Role.CUSTOMER
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
