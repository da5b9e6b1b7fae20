"""FastAPI endpoints for the Ordering domain.

Handlers are thin: resolve the caller, call one service operation, map the
result to a response schema. Domain errors are turned into HTTP responses by
the application's exception handler.
"""

from fastapi import APIRouter, Depends, Request

from identity.caller.identity import Identity
from ordering.api.schemas import (
    AddToCartRequest,
    CartCountResponse,
    CartResponse,
    CheckoutRequestSchema,
    OrderResponse,
    RecordPaymentRequest,
    UpdateCartQuantityRequest,
    UpdateStatusRequest,
)
from ordering.checkout.coordinator import CheckoutRequest
from ordering.order.order import Address
from ordering.services import OrderingServices

cart_router = APIRouter(prefix="/cart", tags=["cart"])
order_router = APIRouter(prefix="/orders", tags=["orders"])


def get_services(request: Request) -> OrderingServices:
    return request.app.state.services


def get_caller(request: Request) -> Identity:
    return request.app.state.identity_provider.resolve(request.headers)


def _address(schema):
    if schema is None:
        return None
    return Address(**schema.model_dump())


# --- Cart endpoints ---


@cart_router.get("", response_model=CartResponse)
def get_cart(caller: Identity = Depends(get_caller), services: OrderingServices = Depends(get_services)):
    return CartResponse.model_validate(services.carts.get_cart(caller.user_id))


@cart_router.post("/items", status_code=201, response_model=CartResponse)
def add_to_cart(
    body: AddToCartRequest,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    cart = services.carts.add_item(caller.user_id, body.product_id, body.quantity)
    return CartResponse.model_validate(cart)


@cart_router.put("/items/{item_id}", response_model=CartResponse)
def update_cart_item(
    item_id: int,
    body: UpdateCartQuantityRequest,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    cart = services.carts.update_quantity(caller.user_id, item_id, body.quantity)
    return CartResponse.model_validate(cart)


@cart_router.delete("/items/{item_id}", response_model=CartResponse)
def remove_cart_item(
    item_id: int,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    return CartResponse.model_validate(services.carts.remove_item(caller.user_id, item_id))


@cart_router.get("/count", response_model=CartCountResponse)
def cart_item_count(caller: Identity = Depends(get_caller), services: OrderingServices = Depends(get_services)):
    return CartCountResponse(count=services.carts.item_count(caller.user_id))


# --- Order endpoints ---


@order_router.post("", status_code=201, response_model=OrderResponse)
def checkout(
    body: CheckoutRequestSchema,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    request = CheckoutRequest(
        shipping_address=_address(body.shipping_address),
        billing_address=_address(body.billing_address),
        use_shipping_for_billing=body.use_shipping_for_billing,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    return OrderResponse.model_validate(services.checkout.checkout(caller.user_id, request))


@order_router.get("", response_model=list[OrderResponse])
def list_orders(caller: Identity = Depends(get_caller), services: OrderingServices = Depends(get_services)):
    return [OrderResponse.model_validate(order) for order in services.orders.list_orders(caller)]


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
def get_order_by_number(
    order_number: str,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    return OrderResponse.model_validate(services.orders.get_order_by_number(order_number, caller))


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    return OrderResponse.model_validate(services.orders.get_order(order_id, caller))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    return OrderResponse.model_validate(services.lifecycle.cancel(order_id, caller))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    body: UpdateStatusRequest,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    order = services.lifecycle.update_status(order_id, body.status, caller, tracking_number=body.tracking_number)
    return OrderResponse.model_validate(order)


@order_router.put("/{order_id}/payment", response_model=OrderResponse)
def record_payment(
    order_id: int,
    body: RecordPaymentRequest,
    caller: Identity = Depends(get_caller),
    services: OrderingServices = Depends(get_services),
):
    return OrderResponse.model_validate(services.lifecycle.record_payment(order_id, body.payment_status, caller))
