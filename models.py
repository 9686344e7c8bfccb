# models.py
import uuid
from flask_sqlalchemy import SQLAlchemy
from utils import utcnow

db = SQLAlchemy()

ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
PROMO_TYPES = ("percentage", "fixed")
USER_ROLES = ("admin", "manager", "staff")
BANNER_POSITIONS = ("hero", "sidebar", "footer", "popup", "after_branch_selection")
ALL_BRANCHES = "all"


def new_id():
    return str(uuid.uuid4())


class Branch(db.Model):
    __tablename__ = "branches"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String, nullable=False)
    address = db.Column(db.String, nullable=False)
    phone = db.Column(db.String, nullable=True)
    is_open = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class Category(db.Model):
    __tablename__ = "categories"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String, nullable=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)


class Product(db.Model):
    __tablename__ = "products"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String, nullable=False)
    description = db.Column(db.String, default="")
    price = db.Column(db.Float, nullable=False)
    image = db.Column(db.String, default="")
    category_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=False)
    rating = db.Column(db.Float, default=0.0)
    prep_time = db.Column(db.Integer, default=0)
    is_available = db.Column(db.Boolean, default=True)
    is_popular = db.Column(db.Boolean, default=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    inventory = db.relationship("InventoryRecord", uselist=False, cascade="all, delete-orphan")


class Promo(db.Model):
    __tablename__ = "promos"
    __table_args__ = (db.UniqueConstraint("code", "branch_id", name="uq_promo_code_branch"),)
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    code = db.Column(db.String, nullable=False)
    type = db.Column(db.String, nullable=False, default="percentage")
    value = db.Column(db.Float, nullable=False)
    min_order_amount = db.Column(db.Float, default=0.0)
    is_active = db.Column(db.Boolean, default=True)
    expiry_date = db.Column(db.Date, nullable=False)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class User(db.Model):
    """Admin panel staff account. branch_id may be "all"."""
    __tablename__ = "users"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String, nullable=False)
    email = db.Column(db.String, nullable=False)
    role = db.Column(db.String, nullable=False, default="staff")
    is_active = db.Column(db.Boolean, default=True)
    branch_id = db.Column(db.String(36), nullable=False, default=ALL_BRANCHES)
    created_at = db.Column(db.DateTime, default=utcnow)


class Order(db.Model):
    __tablename__ = "orders"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String, nullable=False)
    customer_phone = db.Column(db.String, nullable=False)
    customer_address = db.Column(db.String, nullable=False)
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String, default="pending")
    promo_code = db.Column(db.String, nullable=True)
    notes = db.Column(db.String, nullable=True)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    items = db.relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(db.String(36), nullable=False)
    product_name = db.Column(db.String, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Float, nullable=False)

    order = db.relationship("Order", back_populates="items")


class Customer(db.Model):
    __tablename__ = "customers"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String, unique=True, nullable=False)
    full_name = db.Column(db.String, nullable=False)
    phone = db.Column(db.String, unique=True, nullable=False)
    password_hash = db.Column(db.String, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    email_verified = db.Column(db.Boolean, default=False)
    privacy_accepted = db.Column(db.Boolean, default=False)
    marketing_consent = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    last_login = db.Column(db.DateTime, nullable=True)


class CustomerAddress(db.Model):
    __tablename__ = "customer_addresses"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=False)
    label = db.Column(db.String, default="Home")
    address_line1 = db.Column(db.String, nullable=False)
    address_line2 = db.Column(db.String, nullable=True)
    city = db.Column(db.String, nullable=False)
    state = db.Column(db.String, nullable=True)
    postal_code = db.Column(db.String, nullable=True)
    country = db.Column(db.String, nullable=False)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class CustomerSession(db.Model):
    __tablename__ = "customer_sessions"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=False)
    session_token = db.Column(db.String, unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    customer = db.relationship("Customer")


class PasswordResetToken(db.Model):
    __tablename__ = "password_reset_tokens"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=False)
    token = db.Column(db.String, unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Banner(db.Model):
    """branch_id NULL means the banner shows for every branch."""
    __tablename__ = "banners"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String, nullable=False)
    description = db.Column(db.String, default="")
    image_url = db.Column(db.String, default="")
    link_url = db.Column(db.String, default="")
    position = db.Column(db.String, nullable=False, default="hero")
    is_active = db.Column(db.Boolean, default=True)
    display_order = db.Column(db.Integer, default=1)
    branch_id = db.Column(db.String(36), db.ForeignKey("branches.id"), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)


class BrandSettings(db.Model):
    __tablename__ = "brand_settings"
    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String, default="")
    logo = db.Column(db.String, default="")
    tagline = db.Column(db.String, default="")
    description = db.Column(db.String, default="")
    website = db.Column(db.String, default="")
    email = db.Column(db.String, default="")
    phone = db.Column(db.String, default="")
    address = db.Column(db.String, default="")
    social_media = db.Column(db.JSON, default=dict)
    footer_text = db.Column(db.String, default="")
    copyright_text = db.Column(db.String, default="")


class ThemeSettings(db.Model):
    __tablename__ = "theme_settings"
    id = db.Column(db.Integer, primary_key=True)
    primary_color = db.Column(db.String, default="#2563eb")
    accent_color = db.Column(db.String, default="#7c3aed")
    font_family = db.Column(db.String, default="inter")
    font_size = db.Column(db.Integer, default=14)
    border_radius = db.Column(db.Integer, default=8)
    dark_mode_enabled = db.Column(db.Boolean, default=False)
    compact_mode = db.Column(db.Boolean, default=False)


class InventoryRecord(db.Model):
    __tablename__ = "inventory"
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), primary_key=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    last_updated = db.Column(db.DateTime, default=utcnow)


class InventoryLog(db.Model):
    # no FK: the audit trail outlives deleted products
    __tablename__ = "inventory_logs"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(36), nullable=False)
    operation = db.Column(db.String, nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String, default="")
    created_at = db.Column(db.DateTime, default=utcnow)


class ReleaseNote(db.Model):
    __tablename__ = "release_notes"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    version = db.Column(db.String, nullable=False)
    title = db.Column(db.String, nullable=False)
    description = db.Column(db.String, default="")
    type = db.Column(db.String, default="minor")
    category = db.Column(db.String, default="feature")
    changes = db.Column(db.JSON, default=list)
    is_published = db.Column(db.Boolean, default=False)
    published_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class Notification(db.Model):
    __tablename__ = "notifications"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String, nullable=False)
    message = db.Column(db.String, nullable=False)
    type = db.Column(db.String, default="info")
    target = db.Column(db.String, default="all")
    channel = db.Column(db.String, default="push")
    scheduled_for = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String, default="sent")
    created_at = db.Column(db.DateTime, default=utcnow)


class NotificationSettings(db.Model):
    __tablename__ = "notification_settings"
    id = db.Column(db.Integer, primary_key=True)
    email_notifications = db.Column(db.Boolean, default=True)
    push_notifications = db.Column(db.Boolean, default=True)
    sms_notifications = db.Column(db.Boolean, default=False)
    order_updates = db.Column(db.Boolean, default=True)
    promotions = db.Column(db.Boolean, default=True)
    inventory = db.Column(db.Boolean, default=True)
    system = db.Column(db.Boolean, default=True)
