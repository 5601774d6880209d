import logging
import logging.config
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware

import cart as carts
import catalog
import principals
import stores
from config import Settings, get_settings, logging_config
from database import Database, connect
from dependencies import get_current_principal, get_db, get_optional_principal, require_role
from errors import Forbidden, register_error_handlers
from schemas import (
    ADMIN, CUSTOMER, DELIVERY_PERSON, STORE_MANAGER,
    AddToCartRequest, CustomerRegister, CustomerUpdate, LoginRequest,
    PrincipalUpdate, ProductCreate, ProductUpdate, RegisterRequest,
    StaffRegister, StaffUpdate, StoreCreate, UpdateCartItemRequest,
)
from security import TokenData

settings = get_settings()
logging.config.dictConfig(logging_config(settings.log_level))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # tests install their own database before startup
    if getattr(app.state, "database", None) is None:
        app.state.database = connect(settings.database_url, settings.database_name)
    yield
    if app.state.database is not None:
        app.state.database.close()


app = FastAPI(title="Marketplace API", version="1.0.0", lifespan=lifespan)
app.state.database = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Marketplace API running"}


@app.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    database: Optional[Database] = request.app.state.database
    try:
        if database is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


def _login(db: Database, role: str, payload: LoginRequest, settings: Settings, key: str) -> dict:
    token, principal = principals.authenticate(db, role, payload.email, payload.password, settings)
    return {"message": "Login successful", "token": token, key: principal}


def _ensure_self_or_admin(principal: TokenData, principal_id: str) -> None:
    if principal.role != ADMIN and principal.id != principal_id:
        raise Forbidden("Not permitted to modify this profile")


# ===================== Customer Auth =====================
@app.post("/api/auth/register", status_code=201)
def register_customer(payload: CustomerRegister, db: Database = Depends(get_db)):
    user = principals.register_principal(db, CUSTOMER, payload)
    return {"message": "User registered successfully", "user": user}


@app.post("/api/auth/login")
def login_customer(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _login(db, CUSTOMER, payload, settings, "user")


@app.get("/api/auth/profile/all")
def list_customers(db: Database = Depends(get_db), admin: TokenData = Depends(require_role(ADMIN))):
    return principals.list_principals(db, CUSTOMER)


@app.get("/api/auth/profile/{user_id}")
def get_profile(user_id: str, db: Database = Depends(get_db)):
    return principals.get_principal(db, CUSTOMER, user_id)


@app.put("/api/auth/profile/{user_id}")
def update_profile(
    user_id: str,
    payload: CustomerUpdate,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    _ensure_self_or_admin(principal, user_id)
    user = principals.update_principal(db, CUSTOMER, user_id, payload)
    return {"message": "Profile updated successfully", "user": user}


@app.delete("/api/auth/profile")
def delete_own_profile(db: Database = Depends(get_db), principal: TokenData = Depends(require_role(CUSTOMER))):
    principals.delete_principal(db, CUSTOMER, principal.id)
    return {"message": "User deleted successfully"}


# ===================== Stores =====================
@app.post("/api/stores/add", status_code=201)
def add_store(payload: StoreCreate, db: Database = Depends(get_db), principal: TokenData = Depends(get_current_principal)):
    store = stores.create_store(db, principal.id, payload)
    return {"message": "Store added successfully", "store": store}


@app.get("/api/stores")
def list_stores(city: Optional[str] = None, db: Database = Depends(get_db)) -> List[dict]:
    return stores.list_active_stores(db, city)


@app.get("/api/stores/{city}")
def list_stores_by_city(city: str, db: Database = Depends(get_db)) -> List[dict]:
    return stores.list_active_stores(db, city)


@app.delete("/api/stores/{store_id}")
def remove_store(store_id: str, db: Database = Depends(get_db), principal: TokenData = Depends(get_current_principal)):
    stores.delete_store(db, store_id, principal.id)
    return {"message": "Store deleted successfully"}


# ===================== Products =====================
@app.post("/api/products/add", status_code=201)
def add_product(payload: ProductCreate, db: Database = Depends(get_db), principal: TokenData = Depends(get_current_principal)):
    stores.ensure_store_access(db, principal, payload.store_id)
    product = catalog.add_product(db, payload)
    return {"message": "Product added successfully", "product": product}


@app.get("/api/products/store/{store_id}/products")
def list_store_products(store_id: str, db: Database = Depends(get_db)) -> List[dict]:
    return catalog.list_products_by_store(db, store_id)


@app.get("/api/products/store/{store_id}/categories-products")
def list_store_categories(store_id: str, db: Database = Depends(get_db)) -> List[dict]:
    return catalog.list_categories_with_products(db, store_id)


@app.get("/api/products/store/{store_id}/product/{product_id}")
def get_store_product(store_id: str, product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, store_id, product_id)


@app.put("/api/products/store/{store_id}/product/{product_id}")
def update_store_product(
    store_id: str,
    product_id: str,
    payload: ProductUpdate,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    stores.ensure_store_access(db, principal, store_id)
    product = catalog.update_product(db, store_id, product_id, payload)
    return {"message": "Product updated successfully", "product": product}


@app.delete("/api/products/store/{store_id}/product/{product_id}")
def delete_store_product(
    store_id: str,
    product_id: str,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    stores.ensure_store_access(db, principal, store_id)
    catalog.delete_product(db, store_id, product_id)
    return {"message": "Product deleted successfully"}


# ===================== Cart =====================
@app.get("/api/cart")
def get_cart(user_id: str = Query(..., alias="userId"), db: Database = Depends(get_db)):
    return carts.get_cart(db, user_id)


@app.post("/api/cart/add", status_code=201)
def add_to_cart(payload: AddToCartRequest, db: Database = Depends(get_db)):
    return carts.add_item(db, payload.user_id, payload.product_id, payload.quantity, payload.unit_price)


@app.put("/api/cart/update/{item_id}")
def update_cart_item(item_id: str, payload: UpdateCartItemRequest, db: Database = Depends(get_db)):
    return carts.update_item_quantity(db, item_id, payload.quantity)


@app.delete("/api/cart/remove/{item_id}")
def remove_cart_item(item_id: str, db: Database = Depends(get_db)):
    return carts.remove_item(db, item_id)


@app.delete("/api/cart/clear")
def clear_cart(user_id: str = Query(..., alias="userId"), db: Database = Depends(get_db)):
    carts.clear_cart(db, user_id)
    return {"message": "Cart cleared"}


# ===================== Admins =====================
@app.post("/api/admins/register", status_code=201)
def register_admin(
    payload: RegisterRequest,
    db: Database = Depends(get_db),
    principal: Optional[TokenData] = Depends(get_optional_principal),
):
    # the first admin bootstraps the system; after that only admins add admins
    if principals.has_admin(db):
        if principal is None or principal.role != ADMIN:
            raise Forbidden("Only admins can register admins")
    admin = principals.register_principal(db, ADMIN, payload)
    return {"message": "Admin registered successfully", "admin": admin}


@app.post("/api/admins/login")
def login_admin(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _login(db, ADMIN, payload, settings, "admin")


@app.get("/api/admins")
def list_admins(db: Database = Depends(get_db), admin: TokenData = Depends(require_role(ADMIN))):
    return principals.list_principals(db, ADMIN)


@app.put("/api/admins/{admin_id}")
def update_admin(
    admin_id: str,
    payload: PrincipalUpdate,
    db: Database = Depends(get_db),
    admin: TokenData = Depends(require_role(ADMIN)),
):
    return principals.update_principal(db, ADMIN, admin_id, payload)


@app.delete("/api/admins/{admin_id}")
def delete_admin(admin_id: str, db: Database = Depends(get_db), admin: TokenData = Depends(require_role(ADMIN))):
    principals.get_principal(db, ADMIN, admin_id)
    # with no admin left, admin registration would reopen to anyone
    if principals.count_principals(db, ADMIN) <= 1:
        raise Forbidden("Cannot delete the last admin")
    principals.delete_principal(db, ADMIN, admin_id)
    return {"message": "Admin deleted successfully"}


# ===================== Store Managers =====================
@app.post("/api/store-managers/register", status_code=201)
def register_store_manager(
    payload: StaffRegister,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    if payload.store_id:
        stores.ensure_store_access(db, principal, payload.store_id, allow_manager=False)
    manager = principals.register_principal(db, STORE_MANAGER, payload)
    return {"message": "Store Manager registered successfully", "store_manager": manager}


@app.post("/api/store-managers/login")
def login_store_manager(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _login(db, STORE_MANAGER, payload, settings, "store_manager")


@app.get("/api/store-managers")
def list_store_managers(
    store_id: Optional[str] = Query(None, alias="storeId"),
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    if store_id:
        stores.ensure_store_access(db, principal, store_id)
    elif principal.role != ADMIN:
        raise Forbidden("Only admins can list every store manager")
    return principals.list_principals(db, STORE_MANAGER, store_id)


@app.put("/api/store-managers/{manager_id}")
def update_store_manager(
    manager_id: str,
    payload: StaffUpdate,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    manager = principals.get_principal(db, STORE_MANAGER, manager_id)
    stores.ensure_store_access(db, principal, manager["store_id"], allow_manager=False)
    if payload.store_id:
        stores.ensure_store_access(db, principal, payload.store_id, allow_manager=False)
    return principals.update_principal(db, STORE_MANAGER, manager_id, payload)


@app.delete("/api/store-managers/{manager_id}")
def delete_store_manager(manager_id: str, db: Database = Depends(get_db), principal: TokenData = Depends(get_current_principal)):
    manager = principals.get_principal(db, STORE_MANAGER, manager_id)
    stores.ensure_store_access(db, principal, manager["store_id"], allow_manager=False)
    principals.delete_principal(db, STORE_MANAGER, manager_id)
    return {"message": "Store Manager deleted successfully"}


# ===================== Delivery Persons =====================
@app.post("/api/deliveries/register", status_code=201)
def register_delivery_person(
    payload: StaffRegister,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    if payload.store_id:
        stores.ensure_store_access(db, principal, payload.store_id)
    delivery_person = principals.register_principal(db, DELIVERY_PERSON, payload)
    return {"message": "Delivery Person registered successfully", "delivery_person": delivery_person}


@app.post("/api/deliveries/login")
def login_delivery_person(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _login(db, DELIVERY_PERSON, payload, settings, "delivery_person")


@app.get("/api/deliveries/{store_id}")
def list_delivery_persons(store_id: str, db: Database = Depends(get_db), principal: TokenData = Depends(get_current_principal)):
    stores.ensure_store_access(db, principal, store_id)
    return principals.list_principals(db, DELIVERY_PERSON, store_id)


@app.put("/api/deliveries/{store_id}/{delivery_id}")
def update_delivery_person(
    store_id: str,
    delivery_id: str,
    payload: StaffUpdate,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    stores.ensure_store_access(db, principal, store_id)
    if payload.store_id:
        stores.ensure_store_access(db, principal, payload.store_id)
    return principals.update_principal(db, DELIVERY_PERSON, delivery_id, payload, store_id=store_id)


@app.delete("/api/deliveries/{store_id}/{delivery_id}")
def delete_delivery_person(
    store_id: str,
    delivery_id: str,
    db: Database = Depends(get_db),
    principal: TokenData = Depends(get_current_principal),
):
    stores.ensure_store_access(db, principal, store_id)
    principals.delete_principal(db, DELIVERY_PERSON, delivery_id, store_id=store_id)
    return {"message": "Delivery Person deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
