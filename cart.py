"""
Cart engine.

One cart document per customer, created on the first add and deleted on
clear. `total_price` is maintained incrementally and must always equal
the sum of quantity * unit_price over the items. Prices are whole cents and
quantities are integers, so rounding each step to cents is exact.

Every mutation is a read-modify-write guarded by the document's `version`
field: the write only lands if nobody else saved the cart in between,
otherwise the mutation is replayed on a fresh read. Cart creation relies
on the unique index on `customer_id`.
"""

import logging
from typing import Callable, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import Database, serialize_doc, to_object_id, utcnow
from errors import Conflict, NotFound, ValidationError
from schemas import Cart, CartItem, is_cents

logger = logging.getLogger(__name__)

COLLECTION = "cart"
MAX_ATTEMPTS = 5


def recompute_total(items: List[dict]) -> float:
    return round(sum(item["quantity"] * item["unit_price"] for item in items), 2)


def empty_cart(customer_id: str) -> dict:
    return {"customer_id": customer_id, "items": [], "total_price": 0}


def _find_line(cart: dict, key: str, value: str) -> Optional[dict]:
    return next((item for item in cart["items"] if item[key] == value), None)


def _save(db: Database, cart: dict) -> bool:
    expected = cart["version"]
    cart["version"] = expected + 1
    cart["updated_at"] = utcnow()
    result = db[COLLECTION].replace_one({"_id": cart["_id"], "version": expected}, cart)
    return result.matched_count == 1


def _mutate(db: Database, query: dict, apply: Callable[[dict], None], missing: str) -> dict:
    for _ in range(MAX_ATTEMPTS):
        cart = db[COLLECTION].find_one(query)
        if cart is None:
            raise NotFound(missing)
        apply(cart)
        if _save(db, cart):
            return serialize_doc(cart)
        logger.debug("Cart %s changed underneath us, retrying", cart["_id"])
    raise Conflict("Cart is being modified concurrently, try again")


def _add_to_cart(cart: dict, product_id: str, quantity: int, unit_price: float) -> None:
    line = _find_line(cart, "product_id", product_id)
    if line is None:
        line = CartItem(
            item_id=str(ObjectId()),
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
        ).model_dump()
        cart["items"].append(line)
    else:
        line["quantity"] += quantity
    # a merged line keeps the unit price it was first added with
    cart["total_price"] = round(cart["total_price"] + quantity * line["unit_price"], 2)


def add_item(db: Database, customer_id: str, product_id: str, quantity: int, unit_price: float) -> dict:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    if unit_price < 0 or not is_cents(unit_price):
        raise ValidationError("Price must be a non-negative amount in whole cents")
    for _ in range(MAX_ATTEMPTS):
        cart = db[COLLECTION].find_one({"customer_id": customer_id})
        if cart is None:
            cart = Cart(customer_id=customer_id).model_dump()
            _add_to_cart(cart, product_id, quantity, unit_price)
            now = utcnow()
            cart["created_at"] = now
            cart["updated_at"] = now
            try:
                db[COLLECTION].insert_one(cart)
            except DuplicateKeyError:
                # another request created the cart first; merge into theirs
                continue
            logger.info("Cart created for customer %s", customer_id)
            return serialize_doc(cart)

        _add_to_cart(cart, product_id, quantity, unit_price)
        if _save(db, cart):
            return serialize_doc(cart)
    raise Conflict("Cart is being modified concurrently, try again")


def update_item_quantity(db: Database, item_id: str, quantity: int) -> dict:
    def apply(cart: dict) -> None:
        line = _find_line(cart, "item_id", item_id)
        # drop the stale contribution before adding the new one
        cart["total_price"] -= line["quantity"] * line["unit_price"]
        line["quantity"] = quantity
        cart["total_price"] = round(cart["total_price"] + quantity * line["unit_price"], 2)

    return _mutate(db, {"items.item_id": item_id}, apply, "Item not found")


def remove_item(db: Database, item_id: str) -> dict:
    def apply(cart: dict) -> None:
        line = _find_line(cart, "item_id", item_id)
        cart["total_price"] = round(cart["total_price"] - line["quantity"] * line["unit_price"], 2)
        cart["items"].remove(line)

    return _mutate(db, {"items.item_id": item_id}, apply, "Item not found")


def clear_cart(db: Database, customer_id: str) -> bool:
    result = db[COLLECTION].delete_one({"customer_id": customer_id})
    if result.deleted_count:
        logger.info("Cart cleared for customer %s", customer_id)
    return result.deleted_count > 0


def get_cart(db: Database, customer_id: str) -> dict:
    """Return the customer's cart with each line's current product attached."""
    cart = db.find_document(COLLECTION, {"customer_id": customer_id})
    if cart is None:
        return empty_cart(customer_id)

    ids = [oid for oid in (to_object_id(i["product_id"]) for i in cart["items"]) if oid is not None]
    products = {p["_id"]: p for p in db.get_documents("product", {"_id": {"$in": ids}})} if ids else {}
    for item in cart["items"]:
        item["product"] = products.get(item["product_id"])
    return cart
