# checkout.py
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

import schemas
from cart import compute_total, evaluate_promo, validate_customer_info
from errors import ValidationError
from models import db, Order, OrderItem
from utils import digits_only, format_money, log, utcnow

WHATSAPP_URL = "https://wa.me/{number}?text={text}"


def compose_order(cart, customer_info, promo_code, branch_id, promos, customer_id=None, now=None):
    """Build a pending order from the cart; nothing is written here."""
    errors = validate_customer_info(customer_info)
    if errors:
        raise ValidationError("Please fill in your name, phone number and address", errors)
    if cart.is_empty():
        raise ValidationError("Your cart is empty", {"cart": "Add at least one item"})
    if not branch_id:
        raise ValidationError("Please select a branch first", {"branch_id": "Branch is required"})

    created = now or utcnow()
    subtotal = cart.subtotal()
    # an ineligible code prices at zero discount; the reason rides along on the draft
    result = evaluate_promo(promo_code, subtotal, promos, branch_id, today=created.date())
    return schemas.Order(
        customer_id=customer_id,
        customer_name=customer_info.name.strip(),
        customer_phone=customer_info.phone.strip(),
        customer_address=customer_info.address.strip(),
        items=[
            schemas.OrderItem(product_id=line.product_id, product_name=line.name,
                              quantity=line.quantity, price=line.price)
            for line in cart.items()
        ],
        subtotal=subtotal,
        discount=result.discount,
        total=compute_total(subtotal, result.discount),
        status="pending",
        promo_code=result.promo.code if result.promo and not result.reason else None,
        promo_error=result.reason,
        notes=(customer_info.notes or "").strip() or None,
        branch_id=branch_id,
        created_at=created,
        updated_at=created,
    )


def submit_order(order):
    """Persist the order; returns the stored order or None.

    A storage failure is logged and reported to the caller but does not
    stop the WhatsApp handoff.
    """
    row = Order(
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        customer_address=order.customer_address,
        subtotal=order.subtotal,
        discount=order.discount,
        total=order.total,
        status=order.status,
        promo_code=order.promo_code,
        notes=order.notes,
        branch_id=order.branch_id,
        created_at=order.created_at,
        updated_at=order.updated_at or order.created_at,
    )
    for it in order.items:
        row.items.append(OrderItem(product_id=it.product_id, product_name=it.product_name,
                                   quantity=it.quantity, price=it.price))
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log(f"submit_order error: {e}")
        return None
    log(f"New order {row.id} by {row.customer_name}, total={row.total}")
    return schemas.Order.model_validate(row)


def format_message(order):
    lines = [
        f"*New Order from {order.customer_name}*",
        "",
        f"Phone: {order.customer_phone}",
        f"Address: {order.customer_address}",
    ]
    if order.id:
        lines.append(f"Order ID: {order.id}")
    lines += ["", "*Order Details:*"]
    for it in order.items:
        lines.append(f"• {it.product_name} × {it.quantity} — {format_money(it.price * it.quantity)}")
    lines += ["", f"*Subtotal: {format_money(order.subtotal)}*"]
    if order.discount > 0:
        lines.append(f"*Discount ({order.promo_code}): -{format_money(order.discount)}*")
    lines.append(f"*Total: {format_money(order.total)}*")
    if order.notes:
        lines += ["", f"*Notes:* {order.notes}"]
    lines += ["", f"Order placed at: {order.created_at:%Y-%m-%d %H:%M} UTC"]
    return "\n".join(lines)


def resolve_destination_number(branch=None, brand=None, fallback=""):
    for candidate in (getattr(branch, "phone", None), getattr(brand, "phone", None), fallback):
        if digits_only(candidate):
            return digits_only(candidate)
    return ""


def build_handoff_link(destination_number, message):
    number = digits_only(destination_number)
    if not number:
        raise ValidationError("No WhatsApp number configured for this store")
    return WHATSAPP_URL.format(number=number, text=quote(message, safe=""))


def place_order(cart, customer_info, promo_code, branch, promos, brand=None, customer_id=None,
                fallback_number="", now=None):
    """compose -> submit (best effort) -> format -> link."""
    order = compose_order(cart, customer_info, promo_code, branch.id if branch else None, promos,
                          customer_id=customer_id, now=now)
    stored = submit_order(order)
    final = stored or order
    message = format_message(final)
    url = build_handoff_link(resolve_destination_number(branch, brand, fallback_number), message)
    return {"order": final, "persisted": stored is not None, "message": message, "whatsapp_url": url,
            "promo_error": order.promo_error}
