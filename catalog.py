"""
Catalog service: products scoped to a store, each with quantity tiers.

Reads and writes of a single product always match on both the store id
and the product id.
"""

import logging
from typing import Dict, List

from database import Database
from errors import NotFound, ValidationError
from schemas import Product, ProductCreate, ProductUpdate
from stores import get_store

logger = logging.getLogger(__name__)

PRODUCT_NOT_FOUND = "Product not found in this store"


def add_product(db: Database, payload: ProductCreate) -> dict:
    if not payload.quantities:
        raise ValidationError("Quantities must be a non-empty array")
    get_store(db, payload.store_id)
    product_id = db.create_document("product", Product(**payload.model_dump()))
    logger.info("Product %s added to store %s", product_id, payload.store_id)
    return db.get_document_by_id("product", product_id)


def list_products_by_store(db: Database, store_id: str) -> List[dict]:
    products = db.get_documents("product", {"store_id": store_id}, sort=[("created_at", 1), ("_id", 1)])
    if not products:
        raise NotFound("No products found for this store")
    return products


def list_categories_with_products(db: Database, store_id: str) -> List[dict]:
    """Group a store's products by category, one entry per distinct category."""
    grouped: Dict[str, List[dict]] = {}
    for product in db.get_documents("product", {"store_id": store_id}, sort=[("created_at", 1), ("_id", 1)]):
        grouped.setdefault(product["category"], []).append(product)
    return [{"category": category, "products": grouped[category]} for category in sorted(grouped)]


def get_product(db: Database, store_id: str, product_id: str) -> dict:
    product = db.get_document_by_id("product", product_id, extra={"store_id": store_id})
    if not product:
        raise NotFound(PRODUCT_NOT_FOUND)
    return product


def update_product(db: Database, store_id: str, product_id: str, patch: ProductUpdate) -> dict:
    update = patch.model_dump(exclude_unset=True, exclude_none=True)
    if "quantities" in update and not update["quantities"]:
        raise ValidationError("Quantities must be a non-empty array")
    if not update:
        return get_product(db, store_id, product_id)
    if not db.update_document("product", product_id, update, extra={"store_id": store_id}):
        raise NotFound(PRODUCT_NOT_FOUND)
    logger.info("Product %s in store %s updated: %s", product_id, store_id, sorted(update))
    return get_product(db, store_id, product_id)


def delete_product(db: Database, store_id: str, product_id: str) -> None:
    if not db.delete_document("product", product_id, extra={"store_id": store_id}):
        raise NotFound(PRODUCT_NOT_FOUND)
    logger.info("Product %s deleted from store %s", product_id, store_id)
