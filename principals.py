"""
Credential store and authentication for every principal kind.

All four kinds (customer, admin, store manager, delivery person) live in
the "principal" collection and share the code below; the role tag picks
the schema and scopes every lookup.
"""

import logging
from typing import List, Optional, Tuple

from config import Settings
from database import Database
from errors import Conflict, InvalidCredentials, NotFound, ValidationError
from schemas import (
    ADMIN, ROLE_LABELS, STAFF_ROLES,
    PrincipalUpdate, RegisterRequest, principal_adapter,
)
from security import TokenData, create_access_token, hash_password, verify_password
from stores import get_store

logger = logging.getLogger(__name__)

COLLECTION = "principal"


def public_principal(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    return {k: v for k, v in doc.items() if k != "password_hash"}


def _not_found(role: str) -> NotFound:
    return NotFound(f"{ROLE_LABELS[role]} not found")


def _check_unique(db: Database, role: str, email: Optional[str] = None, phone: Optional[str] = None, exclude_id: Optional[str] = None) -> None:
    clauses = []
    if email:
        clauses.append({"email": email})
    if phone:
        clauses.append({"phone": phone})
    if not clauses:
        return
    for doc in db.get_documents(COLLECTION, {"role": role, "$or": clauses}):
        if doc["_id"] != exclude_id:
            raise Conflict(f"{ROLE_LABELS[role]} already exists")


def register_principal(db: Database, role: str, payload: RegisterRequest) -> dict:
    fields = payload.model_dump(exclude={"password"}, exclude_none=True)
    if role in STAFF_ROLES:
        if not fields.get("store_id"):
            raise ValidationError("Store ID is required")
        get_store(db, fields["store_id"])
    else:
        fields.pop("store_id", None)
    _check_unique(db, role, email=fields["email"], phone=fields["phone"])

    model = principal_adapter.validate_python(
        {**fields, "role": role, "password_hash": hash_password(payload.password)}
    )
    principal_id = db.create_document(COLLECTION, model)
    logger.info("Registered %s %s", role, principal_id)
    return public_principal(db.get_document_by_id(COLLECTION, principal_id))


def authenticate(db: Database, role: str, email: str, password: str, settings: Settings) -> Tuple[str, dict]:
    doc = db.find_document(COLLECTION, {"role": role, "email": email})
    if not doc:
        logger.warning("Login failed for unknown %s %s", role, email)
        raise _not_found(role)
    if not verify_password(password, doc.get("password_hash", "")):
        logger.warning("Login failed for %s %s: bad password", role, doc["_id"])
        raise InvalidCredentials()
    claims = TokenData(id=doc["_id"], role=role, store_id=doc.get("store_id"))
    token = create_access_token(claims, settings)
    return token, public_principal(doc)


def has_admin(db: Database) -> bool:
    return db.find_document(COLLECTION, {"role": ADMIN}) is not None


def count_principals(db: Database, role: str) -> int:
    return db[COLLECTION].count_documents({"role": role})


def get_principal(db: Database, role: str, principal_id: str, store_id: Optional[str] = None) -> dict:
    extra = {"role": role}
    if store_id is not None:
        extra["store_id"] = store_id
    doc = db.get_document_by_id(COLLECTION, principal_id, extra=extra)
    if not doc:
        raise _not_found(role)
    return public_principal(doc)


def list_principals(db: Database, role: str, store_id: Optional[str] = None) -> List[dict]:
    query = {"role": role}
    if store_id:
        query["store_id"] = store_id
    return [public_principal(d) for d in db.get_documents(COLLECTION, query, sort=[("created_at", 1), ("_id", 1)])]


def update_principal(db: Database, role: str, principal_id: str, patch: PrincipalUpdate, store_id: Optional[str] = None) -> dict:
    """Apply the fields set on `patch`; unset fields are left alone."""
    get_principal(db, role, principal_id, store_id=store_id)
    update = patch.model_dump(exclude_unset=True, exclude_none=True)
    password = update.pop("password", None)
    if password:
        update["password_hash"] = hash_password(password)
    _check_unique(db, role, email=update.get("email"), phone=update.get("phone"), exclude_id=principal_id)
    if "store_id" in update:
        get_store(db, update["store_id"])

    if update:
        db.update_document(COLLECTION, principal_id, update, extra={"role": role})
        logger.info("Updated %s %s: %s", role, principal_id, sorted(update))
    return get_principal(db, role, principal_id)


def delete_principal(db: Database, role: str, principal_id: str, store_id: Optional[str] = None) -> None:
    extra = {"role": role}
    if store_id is not None:
        extra["store_id"] = store_id
    if not db.delete_document(COLLECTION, principal_id, extra=extra):
        raise _not_found(role)
    logger.info("Deleted %s %s", role, principal_id)
