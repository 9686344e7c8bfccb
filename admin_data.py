# admin_data.py
"""
The admin panel's single mutation path.

AdminData mirrors the admin-visible tables in memory. Every mutating call
writes to the database first; only a committed write touches the mirror,
so a failed call leaves both sides as they were. Calls answer with an ack
dict ({"ok", "message", ...}) instead of raising, ready for jsonify.
"""
import csv
import io
from datetime import date

from flask import current_app
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

import catalog
import schemas
import storage
from branches import filter_scope, in_scope
from errors import ValidationError, field_errors
from models import (db, ORDER_STATUSES, ALL_BRANCHES, Banner, Branch, BrandSettings, Category, Customer,
                    CustomerAddress, InventoryLog, InventoryRecord, Notification, NotificationSettings, Order,
                    Product, Promo, ReleaseNote, ThemeSettings, User)
from utils import ack, log, utcnow

# kind -> (table, write schema, row schema, mirror attribute, label)
ENTITIES = {
    "product": (Product, schemas.ProductIn, schemas.Product, "products", "Product"),
    "category": (Category, schemas.CategoryIn, schemas.Category, "categories", "Category"),
    "branch": (Branch, schemas.BranchIn, schemas.Branch, "branches", "Branch"),
    "promo": (Promo, schemas.PromoIn, schemas.Promo, "promos", "Promo"),
    "user": (User, schemas.UserIn, schemas.User, "users", "User"),
    "banner": (Banner, schemas.BannerIn, schemas.Banner, "banners", "Banner"),
    "release_note": (ReleaseNote, schemas.ReleaseNoteIn, schemas.ReleaseNote, "release_notes", "Release note"),
}


class AdminData:
    def __init__(self):
        self.products = []
        self.categories = []
        self.branches = []
        self.promos = []
        self.users = []
        self.banners = []
        self.release_notes = []
        self.notifications = []
        self.inventory = {}
        self.brand_settings = None
        self.theme_settings = schemas.ThemeSettings()
        self.notification_settings = schemas.NotificationSettings()

    def load(self):
        for kind, (table, _, out, attr, _) in ENTITIES.items():
            setattr(self, attr, [out.model_validate(r) for r in table.query.all()])
        self.notifications = [schemas.Notification.model_validate(n)
                              for n in Notification.query.order_by(Notification.created_at.desc()).all()]
        self.inventory = {r.product_id: schemas.InventoryRecord.model_validate(r)
                          for r in InventoryRecord.query.all()}
        brand = BrandSettings.query.first()
        self.brand_settings = schemas.BrandSettings.model_validate(brand) if brand else None
        theme = ThemeSettings.query.first()
        self.theme_settings = schemas.ThemeSettings.model_validate(theme) if theme else schemas.ThemeSettings()
        prefs = NotificationSettings.query.first()
        self.notification_settings = (schemas.NotificationSettings.model_validate(prefs) if prefs
                                      else schemas.NotificationSettings())
        return self

    # ---------- scoped views ----------
    def get_branches(self):
        return sorted(self.branches, key=lambda b: b.name.lower())

    def get_products(self, scope=None):
        return catalog.list_products(self.products, scope)

    def get_categories(self, scope=None):
        return catalog.list_categories(self.categories, self.products, scope)

    def get_promos(self, scope=None):
        return filter_scope(self.promos, scope)

    def get_users(self, scope=None):
        return filter_scope(self.users, scope)

    def get_banners(self, scope=None):
        return sorted(filter_scope(self.banners, scope), key=lambda b: b.display_order)

    def get_release_notes(self, published_only=False):
        notes = [n for n in self.release_notes if n.is_published or not published_only]
        return sorted(notes, key=lambda n: n.created_at or utcnow(), reverse=True)

    # ---------- generic CRUD ----------
    def _commit(self, op):
        try:
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            log(f"admin {op} error: {e}")
            return False

    def _mirror(self, kind):
        return getattr(self, ENTITIES[kind][3])

    def _replace_in_mirror(self, kind, dto):
        attr = ENTITIES[kind][3]
        items = [x for x in getattr(self, attr) if x.id != dto.id]
        items.append(dto)
        setattr(self, attr, items)

    def _drop_from_mirror(self, kind, ids):
        attr = ENTITIES[kind][3]
        setattr(self, attr, [x for x in getattr(self, attr) if x.id not in ids])

    def _validate(self, kind, payload, record_id=None):
        _, write, _, _, _ = ENTITIES[kind]
        try:
            data = write.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {ENTITIES[kind][4].lower()}", field_errors(e))
        self._check_refs(kind, data, record_id)
        return data

    def _check_refs(self, kind, data, record_id=None):
        branch_id = getattr(data, "branch_id", None)
        must_exist = kind in ("product", "category", "promo") or (
            kind in ("user", "banner") and branch_id and branch_id != ALL_BRANCHES)
        if must_exist and not db.session.get(Branch, branch_id):
            raise ValidationError("Unknown branch", {"branch_id": f"Branch '{branch_id}' does not exist"})
        if kind == "product":
            cat = db.session.get(Category, data.category_id)
            if not cat:
                raise ValidationError("Unknown category", {"category_id": "Category does not exist"})
            if cat.branch_id != data.branch_id:
                raise ValidationError("Category belongs to another branch",
                                      {"category_id": "Category belongs to another branch"})
        if kind == "promo":
            clash = Promo.query.filter(Promo.code == data.code, Promo.branch_id == data.branch_id,
                                       Promo.id != (record_id or "")).first()
            if clash:
                raise ValidationError("Promo code already exists for this branch",
                                      {"code": f"{data.code} already exists for this branch"})

    def _add(self, kind, payload):
        table, _, out, _, label = ENTITIES[kind]
        try:
            data = self._validate(kind, payload)
        except ValidationError as e:
            return ack(False, e.message, errors=e.errors)
        row = table(**data.model_dump())
        db.session.add(row)
        if not self._commit(f"add {kind}"):
            return ack(False, f"Failed to add {label.lower()}")
        dto = out.model_validate(row)
        self._replace_in_mirror(kind, dto)
        log(f"admin added {kind} {row.id}")
        return ack(True, f"{label} added successfully", data=dto.model_dump(mode="json"))

    def _update(self, kind, record_id, patch):
        table, write, out, _, label = ENTITIES[kind]
        row = db.session.get(table, record_id)
        if row is None:
            return ack(False, f"{label} not found")
        current = write.model_validate(row).model_dump()
        current.update(patch or {})
        try:
            data = self._validate(kind, current, record_id)
        except ValidationError as e:
            return ack(False, e.message, errors=e.errors)
        for field, value in data.model_dump().items():
            setattr(row, field, value)
        if not self._commit(f"update {kind}"):
            return ack(False, f"Failed to update {label.lower()}")
        dto = out.model_validate(row)
        self._replace_in_mirror(kind, dto)
        log(f"admin updated {kind} {record_id}")
        return ack(True, f"{label} updated successfully", data=dto.model_dump(mode="json"))

    def _delete(self, kind, record_id):
        table, _, _, _, label = ENTITIES[kind]
        row = db.session.get(table, record_id)
        if row is None:
            return ack(False, f"{label} not found")
        db.session.delete(row)
        if not self._commit(f"delete {kind}"):
            return ack(False, f"Failed to delete {label.lower()}")
        self._drop_from_mirror(kind, {record_id})
        log(f"admin deleted {kind} {record_id}")
        return ack(True, f"{label} deleted successfully")

    # ---------- products ----------
    def add_product(self, payload):
        return self._add("product", payload)

    def update_product(self, product_id, patch):
        old = db.session.get(Product, product_id)
        old_image = old.image if old else None
        result = self._update("product", product_id, patch)
        if result["ok"] and old_image and old_image != result["data"]["image"]:
            storage.remove(storage.PRODUCT_IMAGES, old_image)
        return result

    def delete_product(self, product_id):
        row = db.session.get(Product, product_id)
        image = row.image if row else None
        result = self._delete("product", product_id)
        if result["ok"]:
            self.inventory.pop(product_id, None)
            if image:
                storage.remove(storage.PRODUCT_IMAGES, image)
        return result

    # ---------- categories ----------
    def add_category(self, payload):
        return self._add("category", payload)

    def update_category(self, category_id, patch):
        return self._update("category", category_id, patch)

    def delete_category(self, category_id):
        """Delete the category and every product filed under it, all or nothing."""
        cat = db.session.get(Category, category_id)
        if cat is None:
            return ack(False, "Category not found")
        doomed = Product.query.filter_by(category_id=category_id).all()
        images = [p.image for p in doomed if p.image]
        doomed_ids = {p.id for p in doomed}
        for p in doomed:
            db.session.delete(p)
        db.session.delete(cat)
        if not self._commit("delete category"):
            return ack(False, "Failed to delete category")
        self._drop_from_mirror("product", doomed_ids)
        self._drop_from_mirror("category", {category_id})
        for pid in doomed_ids:
            self.inventory.pop(pid, None)
        for image in images:
            storage.remove(storage.PRODUCT_IMAGES, image)
        log(f"admin deleted category {category_id} with {len(doomed_ids)} products")
        return ack(True, "Category deleted successfully", deleted_products=len(doomed_ids))

    # ---------- branches ----------
    def add_branch(self, payload):
        return self._add("branch", payload)

    def update_branch(self, branch_id, patch):
        return self._update("branch", branch_id, patch)

    def delete_branch(self, branch_id):
        # branch-scoped rows are left in place
        return self._delete("branch", branch_id)

    # ---------- promos ----------
    def add_promo(self, payload):
        return self._add("promo", payload)

    def update_promo(self, promo_id, patch):
        return self._update("promo", promo_id, patch)

    def delete_promo(self, promo_id):
        return self._delete("promo", promo_id)

    # ---------- staff users ----------
    def add_user(self, payload):
        return self._add("user", payload)

    def update_user(self, user_id, patch):
        return self._update("user", user_id, patch)

    def delete_user(self, user_id):
        return self._delete("user", user_id)

    # ---------- banners ----------
    def add_banner(self, payload):
        return self._add("banner", payload)

    def update_banner(self, banner_id, patch):
        return self._update("banner", banner_id, patch)

    def delete_banner(self, banner_id):
        return self._delete("banner", banner_id)

    def toggle_banner(self, banner_id):
        row = db.session.get(Banner, banner_id)
        if row is None:
            return ack(False, "Banner not found")
        return self._update("banner", banner_id, {"is_active": not row.is_active})

    # ---------- brand / theme ----------
    def get_brand_settings(self):
        return self.brand_settings

    def update_brand_settings(self, payload):
        try:
            data = schemas.BrandSettings.model_validate(payload)
        except PydanticValidationError as e:
            return ack(False, "Invalid brand settings", errors=field_errors(e))
        row = BrandSettings.query.first()
        old_logo = row.logo if row else None
        if row is None:
            row = BrandSettings()
            db.session.add(row)
        for field, value in data.model_dump().items():
            setattr(row, field, value)
        if not self._commit("update brand settings"):
            return ack(False, "Failed to update brand settings")
        self.brand_settings = schemas.BrandSettings.model_validate(row)
        if old_logo and old_logo != row.logo:
            storage.remove(storage.BRAND_ASSETS, old_logo)
        return ack(True, "Brand settings updated successfully", data=self.brand_settings.model_dump(mode="json"))

    def get_theme_settings(self):
        return self.theme_settings

    def update_theme_settings(self, payload):
        merged = self.theme_settings.model_dump()
        merged.update(payload or {})
        try:
            data = schemas.ThemeSettings.model_validate(merged)
        except PydanticValidationError as e:
            return ack(False, "Invalid theme settings", errors=field_errors(e))
        row = ThemeSettings.query.first()
        if row is None:
            row = ThemeSettings()
            db.session.add(row)
        for field, value in data.model_dump().items():
            setattr(row, field, value)
        if not self._commit("update theme settings"):
            return ack(False, "Failed to update theme settings")
        self.theme_settings = data
        return ack(True, "Theme updated successfully", data=data.model_dump())

    def reset_theme_settings(self):
        return self.update_theme_settings(schemas.ThemeSettings().model_dump())

    # ---------- inventory ----------
    def update_inventory(self, product_id, amount, operation="add", notes=""):
        try:
            req = schemas.InventoryUpdate(product_id=product_id, amount=amount, operation=operation, notes=notes)
        except PydanticValidationError as e:
            return ack(False, "Invalid inventory update", errors=field_errors(e))
        if db.session.get(Product, req.product_id) is None:
            return ack(False, "Product not found")
        row = db.session.get(InventoryRecord, req.product_id)
        if row is None:
            row = InventoryRecord(product_id=req.product_id, quantity=0,
                                  low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"])
            db.session.add(row)
        before = row.quantity or 0
        if req.operation == "add":
            after = before + req.amount
        elif req.operation == "subtract":
            after = max(0, before - req.amount)
        else:
            after = req.amount
        row.quantity = after
        row.last_updated = utcnow()
        db.session.add(InventoryLog(product_id=req.product_id, operation=req.operation, amount=req.amount,
                                    quantity_before=before, quantity_after=after, notes=req.notes))
        if not self._commit("update inventory"):
            return ack(False, "Failed to update inventory")
        dto = schemas.InventoryRecord.model_validate(row)
        self.inventory[req.product_id] = dto
        return ack(True, "Inventory updated successfully", data=dto.model_dump(mode="json"))

    def set_low_stock_threshold(self, product_id, threshold):
        row = db.session.get(InventoryRecord, product_id)
        if row is None:
            return ack(False, "No inventory record for this product")
        if int(threshold) < 0:
            return ack(False, "Threshold cannot be negative")
        row.low_stock_threshold = int(threshold)
        if not self._commit("update low stock threshold"):
            return ack(False, "Failed to update threshold")
        self.inventory[product_id] = schemas.InventoryRecord.model_validate(row)
        return ack(True, "Threshold updated successfully")

    def inventory_alerts(self):
        return [r for r in self.inventory.values() if r.quantity <= r.low_stock_threshold]

    def stock_status(self, product_id):
        rec = self.inventory.get(product_id)
        quantity = rec.quantity if rec else 0
        threshold = rec.low_stock_threshold if rec else current_app.config["LOW_STOCK_THRESHOLD"]
        if quantity == 0:
            return "Out of Stock"
        if quantity <= threshold:
            return "Low Stock"
        return "In Stock"

    def inventory_logs(self, product_id=None, limit=100):
        q = InventoryLog.query
        if product_id:
            q = q.filter_by(product_id=product_id)
        return q.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc()).limit(limit).all()

    # ---------- release notes ----------
    def add_release_note(self, payload):
        result = self._add("release_note", payload)
        if result["ok"] and result["data"]["is_published"]:
            return self.publish_release_note(result["data"]["id"])
        return result

    def update_release_note(self, note_id, patch):
        return self._update("release_note", note_id, patch)

    def delete_release_note(self, note_id):
        return self._delete("release_note", note_id)

    def publish_release_note(self, note_id):
        row = db.session.get(ReleaseNote, note_id)
        if row is None:
            return ack(False, "Release note not found")
        row.is_published = True
        row.published_at = utcnow()
        if not self._commit("publish release note"):
            return ack(False, "Failed to publish release note")
        dto = schemas.ReleaseNote.model_validate(row)
        self._replace_in_mirror("release_note", dto)
        return ack(True, "Release note published successfully", data=dto.model_dump(mode="json"))

    # ---------- notifications ----------
    def send_notification(self, payload):
        """Record a notification. Delivery (push/email/sms) happens elsewhere."""
        try:
            data = schemas.NotificationIn.model_validate(payload)
        except PydanticValidationError as e:
            return ack(False, "Invalid notification", errors=field_errors(e))
        scheduled = data.scheduled_for
        if scheduled is not None and scheduled.tzinfo is not None:
            scheduled = scheduled.replace(tzinfo=None) - (scheduled.utcoffset())
            data = data.model_copy(update={"scheduled_for": scheduled})
        status = "scheduled" if scheduled and scheduled > utcnow() else "sent"
        row = Notification(status=status, **data.model_dump())
        db.session.add(row)
        if not self._commit("send notification"):
            return ack(False, "Failed to send notification")
        dto = schemas.Notification.model_validate(row)
        self.notifications.insert(0, dto)
        return ack(True, "Notification sent successfully" if status == "sent" else "Notification scheduled",
                   data=dto.model_dump(mode="json"))

    def update_notification_settings(self, payload):
        merged = self.notification_settings.model_dump()
        merged.update(payload or {})
        try:
            data = schemas.NotificationSettings.model_validate(merged)
        except PydanticValidationError as e:
            return ack(False, "Invalid notification settings", errors=field_errors(e))
        row = NotificationSettings.query.first()
        if row is None:
            row = NotificationSettings()
            db.session.add(row)
        for field, value in data.model_dump().items():
            setattr(row, field, value)
        if not self._commit("update notification settings"):
            return ack(False, "Failed to update settings")
        self.notification_settings = data
        return ack(True, "Settings updated successfully", data=data.model_dump())

    # ---------- orders ----------
    def get_orders(self, scope=None, status=None, search=None):
        q = Order.query
        if scope and scope != ALL_BRANCHES:
            q = q.filter(Order.branch_id == scope)
        if status and status != "all":
            q = q.filter(Order.status == status)
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(Order.customer_name.ilike(like), Order.customer_phone.ilike(like),
                             Order.id.ilike(like)))
        return [schemas.Order.model_validate(o) for o in q.order_by(Order.created_at.desc()).all()]

    def update_order_status(self, order_id, status):
        if status not in ORDER_STATUSES:
            return ack(False, f"Unknown order status '{status}'")
        row = db.session.get(Order, order_id)
        if row is None:
            return ack(False, "Order not found")
        row.status = status
        row.updated_at = utcnow()
        if not self._commit("update order status"):
            return ack(False, "Failed to update order")
        log(f"Order {order_id} -> {status}")
        return ack(True, f"Order status changed to {status}",
                   data=schemas.Order.model_validate(row).model_dump(mode="json"))

    def order_summary(self, scope=None):
        orders = self.get_orders(scope)
        by_status = {s: 0 for s in ORDER_STATUSES}
        for o in orders:
            by_status[o.status] = by_status.get(o.status, 0) + 1
        billable = [o for o in orders if o.status != "cancelled"]
        revenue = sum(o.total for o in billable)
        return {
            "orders": len(orders),
            "by_status": by_status,
            "revenue": revenue,
            "average_order_value": revenue / len(billable) if billable else 0.0,
        }

    def export_orders_csv(self, scope=None):
        si = io.StringIO()
        cw = csv.writer(si)
        cw.writerow(["order_id", "branch_id", "name", "phone", "address", "items", "subtotal", "discount",
                     "total", "promo", "status", "notes", "created_at"])
        for o in self.get_orders(scope):
            items = "; ".join(f"{it.product_name} x{it.quantity}" for it in o.items)
            cw.writerow([o.id, o.branch_id, o.customer_name, o.customer_phone, o.customer_address, items,
                         o.subtotal, o.discount, o.total, o.promo_code or "", o.status, o.notes or "",
                         o.created_at])
        return si.getvalue()

    # ---------- customers ----------
    def get_customers(self, search=None):
        q = Customer.query
        if search:
            like = f"%{search.strip()}%"
            q = q.filter(or_(Customer.full_name.ilike(like), Customer.email.ilike(like),
                             Customer.phone.ilike(like)))
        return [schemas.Customer.model_validate(c) for c in q.order_by(Customer.created_at.desc()).all()]

    def set_customer_active(self, customer_id, is_active):
        row = db.session.get(Customer, customer_id)
        if row is None:
            return ack(False, "Customer not found")
        row.is_active = bool(is_active)
        if not self._commit("update customer status"):
            return ack(False, "Failed to update customer status")
        return ack(True, "Customer activated" if row.is_active else "Customer deactivated")

    def customer_addresses(self, customer_id):
        rows = (CustomerAddress.query.filter_by(customer_id=customer_id)
                .order_by(CustomerAddress.is_default.desc(), CustomerAddress.created_at).all())
        return [schemas.Address.model_validate(a) for a in rows]


def active_banners(banners, position, branch_id=None, today=None):
    """Banners a customer should see right now, in display order."""
    today = today or date.today()
    shown = [
        b for b in banners
        if b.position == position and b.is_active and b.start_date <= today <= b.end_date
        and (branch_id is None or in_scope(b.branch_id, branch_id))
    ]
    return sorted(shown, key=lambda b: b.display_order)
