"""
Data transfer objects for the storefront.

Rows coming out of the tables are converted once, here, into typed objects
(`Model.model_validate(row)`); payloads coming in from a request are
validated once, here, before anything is written. Code past this boundary
trusts the shape.

- *In models validate writes (create, or current values merged with a patch)
- plain models mirror a stored row (id included)
"""
from datetime import date, datetime
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator, model_validator

NonEmpty = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Branch
class BranchIn(Record):
    name: NonEmpty
    address: NonEmpty
    phone: Optional[str] = None
    is_open: bool = True


class Branch(BranchIn):
    id: str


# Category
class CategoryIn(Record):
    name: NonEmpty
    branch_id: NonEmpty
    sort_order: int = 0


class Category(CategoryIn):
    id: str
    count: int = 0


# Product
class ProductIn(Record):
    name: NonEmpty
    description: str = ""
    price: float = Field(..., gt=0)
    image: str = ""
    category_id: NonEmpty
    rating: float = Field(0.0, ge=0, le=5)
    prep_time: int = Field(0, ge=0, description="Preparation time in minutes")
    is_available: bool = True
    is_popular: bool = False
    branch_id: NonEmpty


class Product(ProductIn):
    id: str


# Promo
class PromoIn(Record):
    code: NonEmpty
    type: Literal["percentage", "fixed"] = "percentage"
    value: float = Field(..., gt=0)
    min_order_amount: float = Field(0.0, ge=0)
    is_active: bool = True
    expiry_date: date
    branch_id: NonEmpty

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.upper()

    @model_validator(mode="after")
    def percentage_cap(self):
        if self.type == "percentage" and self.value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class Promo(PromoIn):
    id: str


# Staff user
class UserIn(Record):
    username: NonEmpty
    email: EmailStr
    role: Literal["admin", "manager", "staff"] = "staff"
    is_active: bool = True
    branch_id: NonEmpty = "all"


class User(UserIn):
    id: str


# Banner
class BannerIn(Record):
    title: NonEmpty
    description: str = ""
    image_url: str = ""
    link_url: str = ""
    position: Literal["hero", "sidebar", "footer", "popup", "after_branch_selection"] = "hero"
    is_active: bool = True
    display_order: int = 1
    branch_id: Optional[str] = None
    start_date: date
    end_date: date

    @field_validator("branch_id")
    @classmethod
    def all_means_null(cls, v):
        return None if v in ("", "all") else v

    @model_validator(mode="after")
    def date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class Banner(BannerIn):
    id: str


# Settings
class BrandSettings(Record):
    company_name: str = ""
    logo: str = ""
    tagline: str = ""
    description: str = ""
    website: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    social_media: Dict[str, str] = Field(default_factory=dict)
    footer_text: str = ""
    copyright_text: str = ""

    @field_validator("social_media", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or {}


class ThemeSettings(Record):
    primary_color: str = "#2563eb"
    accent_color: str = "#7c3aed"
    font_family: str = "inter"
    font_size: int = Field(14, ge=8, le=32)
    border_radius: int = Field(8, ge=0, le=32)
    dark_mode_enabled: bool = False
    compact_mode: bool = False


class NotificationSettings(Record):
    email_notifications: bool = True
    push_notifications: bool = True
    sms_notifications: bool = False
    order_updates: bool = True
    promotions: bool = True
    inventory: bool = True
    system: bool = True


# Inventory
class InventoryRecord(Record):
    product_id: str
    quantity: int = 0
    low_stock_threshold: int = 10
    last_updated: Optional[datetime] = None


class InventoryUpdate(Record):
    product_id: NonEmpty
    amount: int = Field(..., ge=0)
    operation: Literal["add", "subtract", "set"] = "add"
    notes: str = ""


# Release notes / notifications
class ReleaseChange(Record):
    description: NonEmpty
    type: Literal["added", "changed", "deprecated", "removed", "fixed", "security"] = "added"


class ReleaseNoteIn(Record):
    version: NonEmpty
    title: NonEmpty
    description: str = ""
    type: Literal["major", "minor", "patch", "hotfix"] = "minor"
    category: Literal["feature", "improvement", "bugfix", "security"] = "feature"
    changes: List[ReleaseChange] = Field(default_factory=list)
    is_published: bool = False

    @field_validator("changes", mode="before")
    @classmethod
    def drop_blank_changes(cls, v):
        return [c for c in (v or []) if not isinstance(c, dict) or str(c.get("description", "")).strip()]


class ReleaseNote(ReleaseNoteIn):
    id: str
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationIn(Record):
    title: NonEmpty
    message: NonEmpty
    type: Literal["info", "warning", "success", "error"] = "info"
    target: Literal["all", "customers", "staff"] = "all"
    channel: Literal["push", "email", "sms"] = "push"
    scheduled_for: Optional[datetime] = None


class Notification(NotificationIn):
    id: str
    status: str = "sent"
    created_at: Optional[datetime] = None


# Cart / checkout
class CartLine(Record):
    product_id: str
    name: str
    price: float
    image: str = ""
    category_id: Optional[str] = None
    branch_id: Optional[str] = None
    quantity: int = Field(1, ge=1)


class CustomerInfo(Record):
    name: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""


class OrderItem(Record):
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    price: float


class Order(Record):
    id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_address: str
    items: List[OrderItem]
    subtotal: float
    discount: float = 0.0
    total: float
    status: OrderStatus = "pending"
    promo_code: Optional[str] = None
    notes: Optional[str] = None
    branch_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    # why a submitted code was not applied; never stored
    promo_error: Optional[str] = Field(None, exclude=True)


# Customers
class AddressIn(Record):
    label: str = "Home"
    address_line1: NonEmpty
    address_line2: Optional[str] = None
    city: NonEmpty
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: NonEmpty
    is_default: bool = False


class Address(AddressIn):
    id: str
    customer_id: str


class Customer(Record):
    id: str
    email: str
    full_name: str
    phone: str
    is_active: bool = True
    email_verified: bool = False
    privacy_accepted: bool = False
    marketing_consent: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class CustomerUpdate(Record):
    full_name: Optional[NonEmpty] = None
    phone: Optional[NonEmpty] = None
    marketing_consent: Optional[bool] = None


class SignupData(Record):
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: NonEmpty
    phone: NonEmpty
    privacy_accepted: bool = False
    marketing_consent: bool = False
    address: Optional[AddressIn] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()
