"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the ORM models. Money is
serialized as a string with two decimal places.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

Money = Annotated[Decimal, PlainSerializer(lambda value: f"{value:.2f}", return_type=str, when_used="json")]


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None
    recipient_name: str | None = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, default=1)

    model_config = {"json_schema_extra": {"examples": [{"product_id": 1, "quantity": 2}]}}


class UpdateCartQuantityRequest(BaseModel):
    quantity: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CheckoutRequestSchema(BaseModel):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    use_shipping_for_billing: bool = False
    payment_method: str | None = None
    notes: str | None = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "street": "123 Main St",
                        "city": "Springfield",
                        "state": "IL",
                        "zip_code": "62701",
                        "country": "US",
                        "recipient_name": "Jane Doe",
                    },
                    "use_shipping_for_billing": True,
                    "payment_method": "CREDIT_CARD",
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    status: str
    tracking_number: str | None = None


class RecordPaymentRequest(BaseModel):
    payment_status: str


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Money
    subtotal: Money

    model_config = {"from_attributes": True}


class CartResponse(BaseModel):
    id: int
    user_id: int
    total_items: int
    total_amount: Money
    items: list[CartItemResponse]

    model_config = {"from_attributes": True}


class CartCountResponse(BaseModel):
    count: int


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    product_image_url: str | None = None
    price: Money
    quantity: int
    subtotal: Money

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: int
    status: str
    payment_method: str | None = None
    payment_status: str
    subtotal: Money
    tax_amount: Money
    shipping_amount: Money
    discount_amount: Money
    total_amount: Money
    currency: str
    shipping_address: AddressSchema
    billing_address: AddressSchema
    held_from_status: str | None = None
    tracking_number: str | None = None
    shipping_method: str | None = None
    notes: str | None = None
    created_at: datetime
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    items: list[OrderItemResponse]

    model_config = {"from_attributes": True}
