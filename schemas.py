"""
Database Schemas for the Marketplace

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., Store -> "store"),
except for the four principal kinds, which share the "principal"
collection and are told apart by their `role` tag.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, AliasChoices, BaseModel, EmailStr, Field, TypeAdapter


def is_cents(value: float) -> bool:
    """True when `value` has at most two decimal places."""
    return round(value, 2) == value


def _check_cents(value: float) -> float:
    if not is_cents(value):
        raise ValueError("price must have at most two decimal places")
    return value


# money amounts are whole cents so running totals stay exact after rounding
Price = Annotated[float, Field(ge=0), AfterValidator(_check_cents)]


# ------------ Principals ------------
Role = Literal["customer", "admin", "store_manager", "delivery_person"]

CUSTOMER: Role = "customer"
ADMIN: Role = "admin"
STORE_MANAGER: Role = "store_manager"
DELIVERY_PERSON: Role = "delivery_person"

STAFF_ROLES = (STORE_MANAGER, DELIVERY_PERSON)


class Location(BaseModel):
    lat: float
    lng: float


class PrincipalBase(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Unique per principal kind")
    phone: str = Field(..., description="Unique per principal kind")
    password_hash: str = Field(..., description="BCrypt password hash")
    profile_picture: str = ""


class Customer(PrincipalBase):
    role: Literal["customer"] = "customer"
    address: Optional[str] = None
    saved_addresses: List[str] = []
    favorite_stores: List[str] = Field([], description="Store _id references")
    location: Optional[Location] = None
    payment_methods: List[str] = []
    notification_preferences: bool = True


class Admin(PrincipalBase):
    role: Literal["admin"] = "admin"


class StoreManager(PrincipalBase):
    role: Literal["store_manager"] = "store_manager"
    store_id: str = Field(..., description="Reference to store _id")


class DeliveryPerson(PrincipalBase):
    role: Literal["delivery_person"] = "delivery_person"
    store_id: str = Field(..., description="Reference to store _id")


Principal = Annotated[
    Union[Customer, Admin, StoreManager, DeliveryPerson],
    Field(discriminator="role"),
]

principal_adapter = TypeAdapter(Principal)

ROLE_LABELS = {
    CUSTOMER: "User",
    ADMIN: "Admin",
    STORE_MANAGER: "Store Manager",
    DELIVERY_PERSON: "Delivery Person",
}


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CustomerRegister(RegisterRequest):
    address: Optional[str] = None


class StaffRegister(RegisterRequest):
    store_id: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PrincipalUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    profile_picture: Optional[str] = None


class CustomerUpdate(PrincipalUpdate):
    address: Optional[str] = None
    saved_addresses: Optional[List[str]] = None
    favorite_stores: Optional[List[str]] = None
    payment_methods: Optional[List[str]] = None
    notification_preferences: Optional[bool] = None
    location: Optional[Location] = None


class StaffUpdate(PrincipalUpdate):
    store_id: Optional[str] = None


# ------------ Store ------------
class GeoPoint(BaseModel):
    longitude: float
    latitude: float


class StoreCreate(BaseModel):
    name: str
    city: str
    address: str
    longitude: Optional[float] = None
    latitude: Optional[float] = None


class Store(BaseModel):
    name: str
    city: str
    address: str
    owner_id: str = Field(..., description="Reference to the owning principal _id")
    is_active: bool = True
    location: GeoPoint


# ------------ Products ------------
class QuantityTier(BaseModel):
    quantity: float = Field(..., gt=0, description="Pack size, e.g. 500 (g) or 1 (kg)")
    price: Price


class ProductCreate(BaseModel):
    name: str
    description: Optional[str] = None
    category: str
    image: str
    store_id: str
    is_top_product: bool = False
    quantities: List[QuantityTier] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    is_top_product: Optional[bool] = None
    quantities: Optional[List[QuantityTier]] = None


class Product(BaseModel):
    name: str
    description: Optional[str] = None
    category: str
    image: str
    store_id: str
    is_top_product: bool = False
    quantities: List[QuantityTier] = Field(..., min_length=1)


# ------------ Cart ------------
class AddToCartRequest(BaseModel):
    user_id: str = Field(..., validation_alias=AliasChoices("user_id", "userId"))
    product_id: str = Field(..., validation_alias=AliasChoices("product_id", "productId"))
    quantity: int = Field(..., gt=0)
    unit_price: Price = Field(..., validation_alias=AliasChoices("unit_price", "price"))


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., gt=0)


class CartItem(BaseModel):
    item_id: str
    product_id: str
    quantity: int
    unit_price: float


class Cart(BaseModel):
    customer_id: str
    items: List[CartItem] = []
    total_price: float = 0.0
    version: int = 0
