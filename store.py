import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, to_object_id, to_serializable
from errors import ExternalServiceError
from schemas import Order, OrderDetail, OrderLineItem, OrderStatus, Product, Profile, Role

logger = logging.getLogger(__name__)


def map_order(doc: dict) -> Order:
    d = to_serializable(doc)
    d.setdefault("tracking_history", [])
    d["tracking_history"] = d["tracking_history"] or []
    d["address"] = d.get("address") or {}
    return Order(**d)


def map_line_item(doc: dict) -> OrderLineItem:
    snapshot = doc.get("product_snapshot") or {}
    return OrderLineItem(
        product_id=doc["product_id"],
        product_name=snapshot.get("name", ""),
        price_each=doc["price_each"],
        quantity=doc["quantity"],
    )


def map_profile(doc: dict) -> Profile:
    return Profile(
        user_id=doc["user_id"],
        name=doc.get("name"),
        phone=doc.get("phone"),
        address=doc.get("address"),
        role=doc.get("role") or Role.CUSTOMER,
        created_at=doc.get("created_at"),
    )


@contextmanager
def storage_call(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("storage call failed: %s: %s", action, e)
        raise ExternalServiceError(f"Failed to {action}") from e


class Store:
    """All reads and writes the storefront performs against its database."""

    def __init__(self, db: Database):
        self.db = db

    # Catalog

    def list_products(self) -> List[dict]:
        with storage_call("list products"):
            return get_documents(self.db, "product", sort=[("name", 1)])

    def get_product(self, product_id: str) -> Optional[dict]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        with storage_call("fetch product"):
            return to_serializable(self.db["product"].find_one({"_id": oid}))

    def get_products(self, product_ids: Iterable[str]) -> List[dict]:
        oids = [oid for oid in (to_object_id(pid) for pid in product_ids) if oid is not None]
        if not oids:
            return []
        with storage_call("fetch products"):
            return get_documents(self.db, "product", {"_id": {"$in": oids}})

    def create_product(self, product: Product) -> dict:
        with storage_call("save product"):
            product_id = create_document(self.db, "product", product)
        return self.get_product(product_id)

    def seed_products(self, products: Iterable[Product], force: bool = False) -> int:
        with storage_call("seed products"):
            if self.db["product"].count_documents({}) > 0 and not force:
                return 0
            if force:
                self.db["product"].delete_many({})
            count = 0
            for product in products:
                create_document(self.db, "product", product)
                count += 1
        return count

    def reserve_stock(self, product_id: str, quantity: int) -> bool:
        """Decrement stock only if enough is left. Returns False otherwise."""
        with storage_call("reserve stock"):
            res = self.db["product"].update_one(
                {"_id": to_object_id(product_id), "stock": {"$gte": quantity}},
                {"$inc": {"stock": -quantity}, "$set": {"updated_at": datetime.utcnow()}},
            )
        return res.modified_count == 1

    def release_stock(self, product_id: str, quantity: int):
        with storage_call("release stock"):
            self.db["product"].update_one(
                {"_id": to_object_id(product_id)},
                {"$inc": {"stock": quantity}, "$set": {"updated_at": datetime.utcnow()}},
            )

    # Orders

    def insert_order(self, data: dict) -> Order:
        with storage_call("create order"):
            order_id = create_document(self.db, "order", data)
        try:
            with storage_call("read order"):
                doc = self.db["order"].find_one({"_id": to_object_id(order_id)})
        except ExternalServiceError:
            self.delete_order(order_id)
            raise
        return map_order(doc)

    def delete_order(self, order_id: str):
        with storage_call("delete order"):
            self.db["order"].delete_one({"_id": to_object_id(order_id)})

    def insert_order_items(self, order_id: str, items: List[OrderLineItem]):
        docs = [
            {
                "order_id": order_id,
                "product_id": item.product_id,
                "product_snapshot": {"id": item.product_id, "name": item.product_name, "price": item.price_each},
                "quantity": item.quantity,
                "price_each": item.price_each,
            }
            for item in items
        ]
        with storage_call("add order items"):
            self.db["order_item"].insert_many(docs)

    def get_order(self, order_id: str) -> Optional[Order]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        with storage_call("fetch order"):
            doc = self.db["order"].find_one({"_id": oid})
        return map_order(doc) if doc else None

    def get_order_with_items(self, order_id: str) -> Optional[OrderDetail]:
        order = self.get_order(order_id)
        if order is None:
            return None
        with storage_call("fetch order items"):
            docs = list(self.db["order_item"].find({"order_id": order.id}))
        return OrderDetail(order=order, items=[map_line_item(d) for d in docs])

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        query = {"status": status.value} if status else {}
        with storage_call("list orders"):
            docs = list(self.db["order"].find(query).sort("created_at", DESCENDING))
        return [map_order(d) for d in docs]

    def list_orders_by_user(self, user_id: str) -> List[Order]:
        with storage_call("list user orders"):
            docs = list(self.db["order"].find({"user_id": user_id}).sort("created_at", DESCENDING))
        return [map_order(d) for d in docs]

    def _update_order(self, order_id: str, action: str, update: dict) -> Optional[Order]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        update.setdefault("$set", {})["updated_at"] = datetime.utcnow()
        with storage_call(action):
            doc = self.db["order"].find_one_and_update(
                {"_id": oid}, update, return_document=ReturnDocument.AFTER
            )
        return map_order(doc) if doc else None

    def update_order_status(self, order_id: str, status: OrderStatus) -> Optional[Order]:
        # Any status may follow any other
        return self._update_order(order_id, "update order status", {"$set": {"status": status.value}})

    def set_invoice_url(self, order_id: str, url: str) -> Optional[Order]:
        return self._update_order(order_id, "save invoice", {"$set": {"invoice_url": url}})

    def attach_payment_proof(self, order_id: str, url: str) -> Optional[Order]:
        return self._update_order(order_id, "save payment proof", {"$set": {"payment_proof_url": url}})

    def append_tracking(self, order_id: str, tracking_number: str, status: Optional[str] = None,
                        description: Optional[str] = None) -> Optional[Order]:
        entry = {"status": status or "Update", "description": description, "timestamp": datetime.utcnow()}
        return self._update_order(order_id, "update tracking", {
            "$set": {"tracking_number": tracking_number},
            "$push": {"tracking_history": entry},
        })

    def find_order_by_tracking_number(self, awb: str) -> Optional[Order]:
        with storage_call("find order by tracking number"):
            doc = self.db["order"].find_one({"tracking_number": awb})
        return map_order(doc) if doc else None

    # Profiles and users

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with storage_call("fetch profile"):
            doc = self.db["profile"].find_one({"user_id": user_id})
        return map_profile(doc) if doc else None

    def upsert_profile(self, user_id: str, name: Optional[str] = None, phone: Optional[str] = None,
                       address: Optional[dict] = None, role: Optional[Role] = None) -> Profile:
        fields = {"name": name, "phone": phone, "address": address, "updated_at": datetime.utcnow()}
        # The stored role is kept unless one is given explicitly
        if role is not None:
            fields["role"] = Role(role).value
        with storage_call("save profile"):
            doc = self.db["profile"].find_one_and_update(
                {"user_id": user_id},
                {"$set": fields, "$setOnInsert": {"created_at": datetime.utcnow()}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return map_profile(doc)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        with storage_call("fetch user"):
            return to_serializable(self.db["user"].find_one({"email": email}))

    def get_user(self, user_id: str) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        with storage_call("fetch user"):
            return to_serializable(self.db["user"].find_one({"_id": oid}))

    def create_user(self, email: str, password_hash: str) -> str:
        with storage_call("register user"):
            return create_document(self.db, "user", {"email": email, "password_hash": password_hash})

    # Admin

    def stats(self) -> dict:
        with storage_call("count documents"):
            return {
                "products": self.db["product"].count_documents({}),
                "orders": self.db["order"].count_documents({}),
                "pending_payment": self.db["order"].count_documents({"status": OrderStatus.PENDING_PAYMENT.value}),
                "users": self.db["user"].count_documents({}),
            }
