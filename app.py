# app.py
import io
import os
from functools import wraps

from flask import (Blueprint, Flask, current_app, g, jsonify, redirect, request, send_file, send_from_directory,
                   session, url_for)
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

import branches
import catalog
import checkout
import schemas
import storage
from accounts import CustomerAccounts
from admin_data import AdminData, active_banners
from cart import Cart, compute_total, evaluate_promo
from config import Config
from errors import StorefrontError, ValidationError, field_errors
from models import db, Banner, Category, Product, Promo
from seed import seed_demo_data
from utils import ack, log

bp = Blueprint("storefront", __name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    db.init_app(app)
    app.register_blueprint(bp)

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_payload_error(e):
        return handle_storefront_error(ValidationError("Please check the submitted fields", field_errors(e)))

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        log(f"database error on {request.path}: {e}")
        return jsonify({"ok": False, "message": "Something went wrong, please try again."}), 500

    if app.config.get("SEED_DEMO_DATA"):
        seed_demo_data(app)
    else:
        with app.app_context():
            db.create_all()
    return app


# ---------- helpers ----------
def payload():
    return request.get_json(silent=True) or {}


def reply(result):
    return jsonify(result), (200 if result.get("ok") else 400)


def dump(items):
    return [i.model_dump(mode="json") for i in items]


def load_cart():
    return Cart.from_session(session.get("cart"))


def save_cart(cart):
    session["cart"] = cart.to_session()
    session.modified = True


def accounts():
    if "accounts" not in g:
        g.accounts = CustomerAccounts(session)
    return g.accounts


def selected_branch():
    branch = branches.get_branch(session.get("branch_id"))
    if branch is None:
        raise ValidationError("Please select a branch first", {"branch_id": "Branch is required"})
    return branch


def branch_products(branch_id):
    rows = Product.query.filter_by(branch_id=branch_id).all()
    return [schemas.Product.model_validate(p) for p in rows]


def branch_categories(branch_id):
    rows = Category.query.filter_by(branch_id=branch_id).all()
    return [schemas.Category.model_validate(c) for c in rows]


def promos_for_code(code):
    code = (code or "").strip().upper()
    if not code:
        return []
    return [schemas.Promo.model_validate(p) for p in Promo.query.filter_by(code=code).all()]


def cart_summary(cart, branch_id, promo_code=""):
    subtotal = cart.subtotal()
    result = evaluate_promo(promo_code, subtotal, promos_for_code(promo_code), branch_id)
    return {
        "items": [line.model_dump() for line in cart.items()],
        "item_count": cart.item_count(),
        "subtotal": subtotal,
        "discount": result.discount,
        "total": compute_total(subtotal, result.discount),
        "promo_code": result.promo.code if result.promo and not result.reason else None,
        "promo_error": result.reason,
    }


# ---------- storefront ----------
@bp.route("/")
def home():
    admin = AdminData().load()
    brand = admin.get_brand_settings()
    return jsonify({
        "brand": brand.model_dump() if brand else None,
        "theme": admin.get_theme_settings().model_dump(),
        "branches": dump(branches.list_branches()),
        "selected_branch": session.get("branch_id"),
    })


@bp.route("/api/branches")
def api_branches():
    if request.args.get("open") == "1":
        return jsonify({"branches": dump(branches.open_branches())})
    return jsonify({"branches": dump(branches.list_branches())})


@bp.route("/api/branch/select", methods=["POST"])
def api_branch_select():
    branch = branches.get_branch(payload().get("branch_id"))
    if branch is None:
        return jsonify(ack(False, "Unknown branch")), 404
    if session.get("branch_id") != branch.id:
        # cart lines belong to the previous branch's catalog
        save_cart(Cart())
    session["branch_id"] = branch.id
    return jsonify(ack(True, f"{branch.name} selected", branch=branch.model_dump(),
                       is_open=branch.is_open))


@bp.route("/api/catalog")
def api_catalog():
    branch = selected_branch()
    products = branch_products(branch.id)
    categories = catalog.list_categories(branch_categories(branch.id), products, branch.id)
    shown = catalog.filter_by_category(catalog.list_products(products, branch.id), request.args.get("category"))
    q = request.args.get("q")
    if q:
        shown = catalog.search(shown, q)
    return jsonify({
        "branch": branch.model_dump(),
        "categories": dump(categories),
        "products": dump(shown),
        "popular": dump(catalog.popular(products)),
    })


@bp.route("/api/search", methods=["POST"])
def api_search():
    q = (payload().get("q") or "").strip()
    if not q:
        return jsonify({"results": []})
    branch = selected_branch()
    results = catalog.search(branch_products(branch.id), q, branch.id)
    return jsonify({"results": dump(results)})


@bp.route("/api/banners")
def api_banners():
    position = request.args.get("position", "hero")
    rows = [schemas.Banner.model_validate(b) for b in Banner.query.all()]
    shown = active_banners(rows, position, session.get("branch_id"))
    return jsonify({"banners": dump(shown)})


@bp.route("/api/cart/add", methods=["POST"])
def api_cart_add():
    branch = selected_branch()
    pid = payload().get("product_id")
    product = db.session.get(Product, pid) if pid else None
    if product is None or product.branch_id != branch.id:
        return jsonify(ack(False, "Product not found")), 404
    if not product.is_available:
        return jsonify(ack(False, f"{product.name} is currently unavailable")), 400
    cart = load_cart()
    line = cart.add_item(schemas.Product.model_validate(product))
    save_cart(cart)
    log(f"Cart add pid={pid} qty={line.quantity}")
    return jsonify(ack(True, f"{product.name} added to cart", cart=cart_summary(cart, branch.id)))


@bp.route("/api/cart/update", methods=["POST"])
def api_cart_update():
    data = payload()
    try:
        quantity = int(data.get("quantity"))
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a number", {"quantity": "Invalid"})
    cart = load_cart()
    try:
        cart.set_quantity(data.get("product_id"), quantity)
    except KeyError:
        return jsonify(ack(False, "Item is not in your cart")), 404
    save_cart(cart)
    return jsonify(ack(True, "Cart updated", cart=cart_summary(cart, session.get("branch_id"))))


@bp.route("/api/cart/remove", methods=["POST"])
def api_cart_remove():
    cart = load_cart()
    cart.remove_item(payload().get("product_id"))
    save_cart(cart)
    return jsonify(ack(True, "Item removed", cart=cart_summary(cart, session.get("branch_id"))))


@bp.route("/api/cart/clear", methods=["POST"])
def api_cart_clear():
    save_cart(Cart())
    return jsonify(ack(True, "Cart cleared"))


@bp.route("/api/cart/view")
def api_cart_view():
    summary = cart_summary(load_cart(), session.get("branch_id"), request.args.get("promo", ""))
    return jsonify(summary)


@bp.route("/api/promo/check", methods=["POST"])
def api_promo_check():
    branch = selected_branch()
    code = payload().get("code", "")
    summary = cart_summary(load_cart(), branch.id, code)
    if summary["promo_error"]:
        return jsonify(ack(False, summary["promo_error"], cart=summary)), 400
    return jsonify(ack(True, f"{summary['promo_code']} has been applied to your cart", cart=summary))


@bp.route("/api/checkout/info", methods=["POST"])
def api_checkout_info():
    draft = schemas.CustomerInfo.model_validate({**session.get("customer_info", {}), **payload()})
    session["customer_info"] = draft.model_dump()
    return jsonify(ack(True, "Saved"))


@bp.route("/api/checkout", methods=["POST"])
def api_checkout():
    data = payload()
    branch = selected_branch()
    info = schemas.CustomerInfo.model_validate({**session.get("customer_info", {}), **data})
    customer = accounts().check_existing_session()
    admin = AdminData().load()
    result = checkout.place_order(
        load_cart(), info, data.get("promo", ""), branch, promos_for_code(data.get("promo")),
        brand=admin.get_brand_settings(),
        customer_id=customer.id if customer else None,
        fallback_number=current_app.config["WHATSAPP_NUMBER"],
    )
    # handed off: start fresh
    save_cart(Cart())
    session.pop("customer_info", None)
    order = result["order"]
    return jsonify(ack(True, "Your order is ready to send via WhatsApp",
                       order=order.model_dump(mode="json"), persisted=result["persisted"],
                       whatsapp_url=result["whatsapp_url"], text=result["message"],
                       promo_error=result["promo_error"]))


# ---------- customer accounts ----------
@bp.route("/api/auth/signup", methods=["POST"])
def api_signup():
    customer = accounts().signup(payload())
    return jsonify(ack(True, "Account created", customer=customer.model_dump(mode="json")))


@bp.route("/api/auth/login", methods=["POST"])
def api_login():
    data = payload()
    customer = accounts().login(data.get("email", ""), data.get("password", ""))
    return jsonify(ack(True, "Logged in", customer=customer.model_dump(mode="json")))


@bp.route("/api/auth/logout", methods=["POST"])
def api_logout():
    accounts().logout()
    return jsonify(ack(True, "Logged out"))


@bp.route("/api/auth/me")
def api_me():
    customer = accounts().check_existing_session()
    return jsonify({"customer": customer.model_dump(mode="json") if customer else None})


@bp.route("/api/auth/profile", methods=["PATCH"])
def api_profile():
    customer = accounts().update_profile(payload())
    return jsonify(ack(True, "Profile updated", customer=customer.model_dump(mode="json")))


@bp.route("/api/auth/orders")
def api_order_history():
    return jsonify({"orders": dump(accounts().order_history())})


@bp.route("/api/auth/addresses", methods=["GET", "POST"])
def api_addresses():
    if request.method == "POST":
        address = accounts().add_address(payload())
        return jsonify(ack(True, "Address added", address=address.model_dump()))
    return jsonify({"addresses": dump(accounts().addresses())})


@bp.route("/api/auth/addresses/<address_id>", methods=["PUT", "DELETE"])
def api_address(address_id):
    if request.method == "DELETE":
        accounts().delete_address(address_id)
        return jsonify(ack(True, "Address deleted"))
    address = accounts().update_address(address_id, payload())
    return jsonify(ack(True, "Address updated", address=address.model_dump()))


@bp.route("/api/auth/addresses/<address_id>/default", methods=["POST"])
def api_address_default(address_id):
    address = accounts().set_default_address(address_id)
    return jsonify(ack(True, "Default address updated", address=address.model_dump()))


@bp.route("/api/auth/password-reset", methods=["POST"])
def api_password_reset():
    accounts().request_password_reset(payload().get("email"))
    # same answer whether or not the email exists
    return jsonify(ack(True, "If that email is registered, a reset link is on its way"))


@bp.route("/api/auth/password-reset/confirm", methods=["POST"])
def api_password_reset_confirm():
    data = payload()
    accounts().reset_password(data.get("token"), data.get("password"), data.get("confirm_password"))
    return jsonify(ack(True, "Password updated, please log in"))


# ---------- admin ----------
@bp.route("/admin/login", methods=["GET", "POST"])
def admin_login():
    if request.method == "POST":
        pw = request.form.get("password") or payload().get("password", "")
        if pw == current_app.config["ADMIN_PASSWORD"]:
            session["is_admin"] = True
            return jsonify(ack(True, "Welcome back"))
        return jsonify(ack(False, "Wrong admin password")), 401
    return """
    <html><body>
    <h3>Admin Login</h3>
    <form method="post">
      <input name="password" type="password" placeholder="admin password"/>
      <button type="submit">Login</button>
    </form>
    </body></html>
    """


@bp.route("/admin/logout")
def admin_logout():
    session.pop("is_admin", None)
    session.pop("admin_branch", None)
    return redirect(url_for("storefront.admin_login"))


def admin_required(func):
    @wraps(func)
    def decorated(*args, **kwargs):
        if not session.get("is_admin"):
            return jsonify(ack(False, "Admin login required")), 401
        return func(*args, **kwargs)
    return decorated


def admin():
    if "admin" not in g:
        g.admin = AdminData().load()
    return g.admin


def admin_scope():
    """Explicit ?branch_id= wins, then the stored selection, then the first branch."""
    if "branch_id" in request.args:
        return branches.normalize_scope(request.args["branch_id"])
    if "admin_branch" not in session:
        session["admin_branch"] = branches.default_admin_scope(admin().get_branches()) or "all"
    return branches.normalize_scope(session["admin_branch"])


@bp.route("/admin/api/scope", methods=["GET", "POST"])
@admin_required
def admin_api_scope():
    if request.method == "POST":
        value = payload().get("branch_id") or "all"
        if value != "all" and branches.get_branch(value) is None:
            return jsonify(ack(False, "Unknown branch")), 404
        session["admin_branch"] = value
    return jsonify({"scope": admin_scope(), "branches": dump(admin().get_branches())})


CRUD = {
    "products": ("get_products", "add_product", "update_product", "delete_product"),
    "categories": ("get_categories", "add_category", "update_category", "delete_category"),
    "branches": (None, "add_branch", "update_branch", "delete_branch"),
    "promos": ("get_promos", "add_promo", "update_promo", "delete_promo"),
    "users": ("get_users", "add_user", "update_user", "delete_user"),
    "banners": ("get_banners", "add_banner", "update_banner", "delete_banner"),
    "release-notes": (None, "add_release_note", "update_release_note", "delete_release_note"),
}


@bp.route("/admin/api/<kind>", methods=["GET", "POST"])
@admin_required
def admin_api_collection(kind):
    if kind not in CRUD:
        return jsonify(ack(False, f"Unknown collection '{kind}'")), 404
    getter, adder, _, _ = CRUD[kind]
    facade = admin()
    if request.method == "POST":
        return reply(getattr(facade, adder)(payload()))
    if kind == "branches":
        items = facade.get_branches()
    elif kind == "release-notes":
        items = facade.get_release_notes(published_only=request.args.get("published") == "1")
    else:
        items = getattr(facade, getter)(admin_scope())
    return jsonify({kind: dump(items)})


@bp.route("/admin/api/<kind>/<record_id>", methods=["PUT", "DELETE"])
@admin_required
def admin_api_record(kind, record_id):
    if kind not in CRUD:
        return jsonify(ack(False, f"Unknown collection '{kind}'")), 404
    _, _, updater, deleter = CRUD[kind]
    if request.method == "DELETE":
        return reply(getattr(admin(), deleter)(record_id))
    return reply(getattr(admin(), updater)(record_id, payload()))


@bp.route("/admin/api/banners/<banner_id>/toggle", methods=["POST"])
@admin_required
def admin_toggle_banner(banner_id):
    return reply(admin().toggle_banner(banner_id))


@bp.route("/admin/api/release-notes/<note_id>/publish", methods=["POST"])
@admin_required
def admin_publish_release_note(note_id):
    return reply(admin().publish_release_note(note_id))


@bp.route("/admin/api/brand", methods=["GET", "PUT"])
@admin_required
def admin_brand():
    if request.method == "PUT":
        return reply(admin().update_brand_settings(payload()))
    brand = admin().get_brand_settings()
    return jsonify({"brand": brand.model_dump() if brand else None})


@bp.route("/admin/api/theme", methods=["GET", "PUT"])
@admin_required
def admin_theme():
    if request.method == "PUT":
        return reply(admin().update_theme_settings(payload()))
    return jsonify({"theme": admin().get_theme_settings().model_dump()})


@bp.route("/admin/api/theme/reset", methods=["POST"])
@admin_required
def admin_theme_reset():
    return reply(admin().reset_theme_settings())


@bp.route("/admin/api/inventory", methods=["GET", "POST"])
@admin_required
def admin_inventory():
    facade = admin()
    if request.method == "POST":
        data = payload()
        return reply(facade.update_inventory(data.get("product_id"), data.get("amount"),
                                             data.get("operation", "add"), data.get("notes", "")))
    rows = []
    for p in facade.get_products(admin_scope()):
        rec = facade.inventory.get(p.id)
        rows.append({
            "product_id": p.id,
            "name": p.name,
            "quantity": rec.quantity if rec else 0,
            "low_stock_threshold": rec.low_stock_threshold if rec else current_app.config["LOW_STOCK_THRESHOLD"],
            "last_updated": rec.last_updated.isoformat() if rec and rec.last_updated else None,
            "status": facade.stock_status(p.id),
        })
    return jsonify({"inventory": rows})


@bp.route("/admin/api/inventory/alerts")
@admin_required
def admin_inventory_alerts():
    return jsonify({"alerts": dump(admin().inventory_alerts())})


@bp.route("/admin/api/inventory/logs")
@admin_required
def admin_inventory_logs():
    logs = admin().inventory_logs(request.args.get("product_id"))
    return jsonify({"logs": [{
        "product_id": l.product_id, "operation": l.operation, "amount": l.amount,
        "quantity_before": l.quantity_before, "quantity_after": l.quantity_after,
        "notes": l.notes, "created_at": l.created_at.isoformat() if l.created_at else None,
    } for l in logs]})


@bp.route("/admin/api/inventory/<product_id>/threshold", methods=["POST"])
@admin_required
def admin_inventory_threshold(product_id):
    try:
        threshold = int(payload().get("threshold"))
    except (TypeError, ValueError):
        raise ValidationError("Threshold must be a number", {"threshold": "Invalid"})
    return reply(admin().set_low_stock_threshold(product_id, threshold))


@bp.route("/admin/api/notifications", methods=["GET", "POST"])
@admin_required
def admin_notifications():
    if request.method == "POST":
        return reply(admin().send_notification(payload()))
    return jsonify({"notifications": dump(admin().notifications)})


@bp.route("/admin/api/notifications/settings", methods=["GET", "PUT"])
@admin_required
def admin_notification_settings():
    if request.method == "PUT":
        return reply(admin().update_notification_settings(payload()))
    return jsonify({"settings": admin().notification_settings.model_dump()})


@bp.route("/admin/api/orders")
@admin_required
def admin_orders():
    orders = admin().get_orders(admin_scope(), request.args.get("status"), request.args.get("q"))
    return jsonify({"orders": dump(orders)})


@bp.route("/admin/api/orders/summary")
@admin_required
def admin_orders_summary():
    return jsonify(admin().order_summary(admin_scope()))


@bp.route("/admin/api/orders/<order_id>/status", methods=["POST"])
@admin_required
def admin_update_order(order_id):
    status = request.form.get("status") or payload().get("status")
    return reply(admin().update_order_status(order_id, status))


@bp.route("/admin/export")
@admin_required
def admin_export():
    mem = io.BytesIO()
    mem.write(admin().export_orders_csv(admin_scope()).encode("utf-8"))
    mem.seek(0)
    return send_file(mem, mimetype="text/csv", download_name="orders_export.csv", as_attachment=True)


@bp.route("/admin/api/customers")
@admin_required
def admin_customers():
    return jsonify({"customers": dump(admin().get_customers(request.args.get("q")))})


@bp.route("/admin/api/customers/<customer_id>/active", methods=["POST"])
@admin_required
def admin_customer_active(customer_id):
    return reply(admin().set_customer_active(customer_id, bool(payload().get("is_active"))))


@bp.route("/admin/api/customers/<customer_id>/addresses")
@admin_required
def admin_customer_addresses(customer_id):
    return jsonify({"addresses": dump(admin().customer_addresses(customer_id))})


@bp.route("/admin/api/upload/<bucket>", methods=["POST"])
@admin_required
def admin_upload(bucket):
    f = request.files.get("file")
    if f is None:
        raise ValidationError("No file uploaded", {"file": "Required"})
    url = storage.upload(bucket, f)
    return jsonify(ack(True, "Image uploaded", url=url))


@bp.route("/uploads/<bucket>/<path:filename>")
def uploaded_file(bucket, filename):
    folder = os.path.abspath(storage.bucket_path(bucket))
    return send_from_directory(folder, filename)


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=True)
