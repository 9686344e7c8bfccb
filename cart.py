# cart.py
from collections import namedtuple
from datetime import date

import schemas

PromoResult = namedtuple("PromoResult", "discount promo reason")

INVALID_CODE = "Invalid promo code"


class Cart:
    """Session-scoped line items keyed by product id.

    Stored in the Flask session as {product_id: line dict}; nothing survives
    a checkout or an explicit clear.
    """

    def __init__(self, lines=None):
        self.lines = dict(lines or {})

    @classmethod
    def from_session(cls, data):
        lines = {}
        for pid, raw in (data or {}).items():
            lines[pid] = schemas.CartLine.model_validate(raw)
        return cls(lines)

    def to_session(self):
        return {pid: line.model_dump() for pid, line in self.lines.items()}

    def add_item(self, product):
        # availability is the caller's call
        line = self.lines.get(product.id)
        if line:
            line.quantity += 1
        else:
            self.lines[product.id] = schemas.CartLine(
                product_id=product.id,
                name=product.name,
                price=product.price,
                image=product.image or "",
                category_id=product.category_id,
                branch_id=product.branch_id,
                quantity=1,
            )
        return self.lines[product.id]

    def set_quantity(self, product_id, quantity):
        quantity = max(0, int(quantity))
        if quantity == 0:
            self.remove_item(product_id)
            return None
        line = self.lines.get(product_id)
        if line is None:
            raise KeyError(product_id)
        line.quantity = quantity
        return line

    def remove_item(self, product_id):
        self.lines.pop(product_id, None)

    def clear(self):
        self.lines = {}

    def items(self):
        return list(self.lines.values())

    def is_empty(self):
        return not self.lines

    def item_count(self):
        return sum(line.quantity for line in self.lines.values())

    def subtotal(self):
        return sum(line.price * line.quantity for line in self.lines.values())


def find_promo(code, promos, branch_id=None):
    code = (code or "").strip().upper()
    if not code:
        return None
    matches = [p for p in promos if p.code == code]
    # same code can exist per branch; prefer the branch's own
    for p in matches:
        if p.branch_id == branch_id:
            return p
    return matches[0] if matches else None


def evaluate_promo(code, subtotal, promos, branch_id=None, today=None):
    """Look a code up against the promo rows and price it.

    Returns PromoResult(discount, promo, reason); reason is None when the
    code applies, else a customer-facing explanation and discount is 0.
    """
    if not (code or "").strip():
        return PromoResult(0.0, None, None)
    today = today or date.today()
    promo = find_promo(code, promos, branch_id)
    if promo is None:
        return PromoResult(0.0, None, INVALID_CODE)
    if not promo.is_active:
        return PromoResult(0.0, promo, f"{INVALID_CODE}: {promo.code} is no longer active")
    if promo.expiry_date < today:
        return PromoResult(0.0, promo, f"{INVALID_CODE}: {promo.code} has expired")
    if not branch_id or promo.branch_id != branch_id:
        return PromoResult(0.0, promo, f"{INVALID_CODE}: {promo.code} is not valid at this branch")
    if subtotal < (promo.min_order_amount or 0):
        return PromoResult(0.0, promo, f"{INVALID_CODE}: minimum order is {promo.min_order_amount:g}")
    return PromoResult(promo_discount(promo, subtotal), promo, None)


def promo_discount(promo, subtotal):
    if promo.type == "percentage":
        return subtotal * promo.value / 100
    return min(promo.value, subtotal)


def compute_total(subtotal, discount):
    return max(0.0, subtotal - discount)


def validate_customer_info(info):
    """Field-level errors for the checkout form; empty dict means ok."""
    errors = {}
    if not (info.name or "").strip():
        errors["name"] = "Name is required"
    if not (info.phone or "").strip():
        errors["phone"] = "Phone number is required"
    if not (info.address or "").strip():
        errors["address"] = "Address is required"
    return errors
