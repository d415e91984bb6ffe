import logging
from typing import List, NamedTuple

from errors import ExternalServiceError, InsufficientStockError, NotFoundError, StoreError, ValidationError
from schemas import CreateOrderPayload, Order, OrderItemIn, OrderLineItem, OrderStatus
from store import Store

logger = logging.getLogger(__name__)


class CreatedOrder(NamedTuple):
    order: Order
    items: List[OrderLineItem]


def merge_items(items: List[OrderItemIn]) -> List[OrderItemIn]:
    """Combine repeated product ids, keeping first-seen order."""
    merged = {}
    for item in items:
        if item.product_id in merged:
            merged[item.product_id] += item.quantity
        else:
            merged[item.product_id] = item.quantity
    return [OrderItemIn(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def build_line_items(products: List[dict], items: List[OrderItemIn]) -> List[OrderLineItem]:
    by_id = {p["id"]: p for p in products}
    missing = [item.product_id for item in items if item.product_id not in by_id]
    if missing:
        raise NotFoundError(f"Products not found: {', '.join(missing)}")

    line_items = []
    for item in items:
        product = by_id[item.product_id]
        stock = product.get("stock")
        if stock is not None and stock < item.quantity:
            raise InsufficientStockError(f"Insufficient stock for {product['name']}")
        line_items.append(OrderLineItem(
            product_id=product["id"],
            product_name=product["name"],
            price_each=product["price"],
            quantity=item.quantity,
        ))
    return line_items


def subtotal_of(items: List[OrderLineItem]) -> int:
    return sum(item.price_each * item.quantity for item in items)


def _reserve(store: Store, line_items: List[OrderLineItem]):
    reserved = []
    try:
        for item in line_items:
            if not store.reserve_stock(item.product_id, item.quantity):
                raise InsufficientStockError(f"Insufficient stock for {item.product_name}")
            reserved.append(item)
    except StoreError:
        _release(store, reserved)
        raise


def _release(store: Store, line_items: List[OrderLineItem]):
    for item in line_items:
        store.release_stock(item.product_id, item.quantity)


def create_order(store: Store, payload: CreateOrderPayload) -> CreatedOrder:
    """Validate stock, snapshot prices and persist an order with its line items.

    Stock is checked against the fetched products first, then taken with a
    conditional decrement per product so two concurrent orders cannot both
    take the last unit. If the line items cannot be written the order header
    is removed and the stock handed back.
    """
    if not payload.items:
        raise ValidationError("An order needs at least one item")

    items = merge_items(payload.items)
    products = store.get_products([item.product_id for item in items])
    line_items = build_line_items(products, items)

    subtotal = subtotal_of(line_items)
    total = subtotal + payload.shipping_cost

    _reserve(store, line_items)
    try:
        order = store.insert_order({
            "user_id": payload.user_id,
            "customer_name": payload.customer_name,
            "customer_email": payload.customer_email,
            "customer_phone": payload.customer_phone,
            "subtotal": subtotal,
            "shipping_courier": payload.courier,
            "shipping_service": payload.courier_service,
            "shipping_cost": payload.shipping_cost,
            "total": total,
            "status": OrderStatus.PENDING_PAYMENT.value,
            "invoice_url": None,
            "payment_proof_url": None,
            "tracking_number": None,
            "tracking_history": [],
            "address": payload.address,
            "notes": payload.note,
        })
    except StoreError:
        _release(store, line_items)
        raise

    try:
        store.insert_order_items(order.id, line_items)
    except StoreError as e:
        logger.error("order %s: line items not saved, rolling back header", order.id)
        store.delete_order(order.id)
        _release(store, line_items)
        raise ExternalServiceError(f"Failed to add order items: {e.message}") from e

    logger.info("order %s created: %d items, subtotal=%d total=%d", order.id, len(line_items), subtotal, total)
    return CreatedOrder(order=order, items=line_items)
