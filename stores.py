"""
Store registry: stores owned by a principal, with geocoordinates and an
active flag.
"""

import logging
from typing import List, Optional

from database import Database
from errors import Forbidden, NotFound, ValidationError
from schemas import ADMIN, STORE_MANAGER, GeoPoint, Store, StoreCreate
from security import TokenData

logger = logging.getLogger(__name__)


def create_store(db: Database, owner_id: str, payload: StoreCreate) -> dict:
    if payload.longitude is None or payload.latitude is None:
        raise ValidationError("Longitude and latitude are required")
    store = Store(
        name=payload.name,
        city=payload.city,
        address=payload.address,
        owner_id=owner_id,
        is_active=True,
        location=GeoPoint(longitude=payload.longitude, latitude=payload.latitude),
    )
    store_id = db.create_document("store", store)
    logger.info("Store %s created by %s", store_id, owner_id)
    return db.get_document_by_id("store", store_id)


def list_active_stores(db: Database, city: Optional[str] = None) -> List[dict]:
    query = {"is_active": True}
    if city:
        query["city"] = city
    return db.get_documents("store", query, sort=[("created_at", 1), ("_id", 1)])


def get_store(db: Database, store_id: str) -> dict:
    store = db.get_document_by_id("store", store_id)
    if not store:
        raise NotFound("Store not found")
    return store


def delete_store(db: Database, store_id: str, requester_id: str) -> None:
    """Delete a store owned by `requester_id`.

    Products, store managers and delivery persons that reference the
    store are left in place.
    """
    store = get_store(db, store_id)
    if store["owner_id"] != requester_id:
        raise Forbidden("Unauthorized to delete this store")
    db.delete_document("store", store_id)
    logger.info("Store %s deleted by %s", store_id, requester_id)


def ensure_store_access(db: Database, principal: TokenData, store_id: str, allow_manager: bool = True) -> dict:
    """Return the store if `principal` may manage it, else raise Forbidden.

    Admins and the store owner always qualify; store managers qualify for
    their own store when `allow_manager` is set.
    """
    store = get_store(db, store_id)
    if principal.role == ADMIN or principal.id == store["owner_id"]:
        return store
    if allow_manager and principal.role == STORE_MANAGER:
        # the token may predate a reassignment or deletion; trust the record
        manager = db.get_document_by_id("principal", principal.id, extra={"role": STORE_MANAGER, "store_id": store_id})
        if manager:
            return store
    raise Forbidden("Not permitted to manage this store")
