from datetime import date, datetime
from types import SimpleNamespace
from urllib.parse import unquote

import pytest
from sqlalchemy.exc import OperationalError

import schemas
from cart import Cart
from checkout import (build_handoff_link, compose_order, format_message, place_order, resolve_destination_number,
                      submit_order)
from errors import ValidationError
from models import db, Order

NOW = datetime(2025, 6, 1, 9, 30)


def promo_rows():
    return [
        schemas.Promo(id="pr1", code="WELCOME20", type="percentage", value=20,
                      expiry_date=datetime(2025, 12, 31).date(), branch_id="b1"),
    ]


def burger_cart(qty=2):
    cart = Cart()
    burger = schemas.Product(id="p1", name="Classic Cheeseburger", price=12.99, category_id="c1", branch_id="b1")
    for _ in range(qty):
        cart.add_item(burger)
    return cart


def info(**kw):
    data = dict(name="Ana", phone="0812-555", address="Jl. Merdeka 5")
    data.update(kw)
    return schemas.CustomerInfo(**data)


def test_compose_order_prices_cart_and_promo():
    order = compose_order(burger_cart(), info(), "welcome20", "b1", promo_rows(), now=NOW)
    assert order.status == "pending"
    assert order.promo_code == "WELCOME20"
    assert order.subtotal == pytest.approx(25.98)
    assert order.discount == pytest.approx(5.196)
    assert order.total == pytest.approx(20.784)
    assert order.items[0].quantity == 2
    assert order.customer_id is None
    assert order.notes is None


def test_compose_order_carries_customer_id():
    order = compose_order(burger_cart(1), info(), "", "b1", [], customer_id="cust-1", now=NOW)
    assert order.customer_id == "cust-1"
    assert order.discount == 0


def test_compose_order_rejects_missing_info_empty_cart_and_branch():
    with pytest.raises(ValidationError) as exc:
        compose_order(burger_cart(), info(phone=""), "", "b1", [], now=NOW)
    assert "phone" in exc.value.errors
    with pytest.raises(ValidationError):
        compose_order(Cart(), info(), "", "b1", [], now=NOW)
    with pytest.raises(ValidationError):
        compose_order(burger_cart(), info(), "", None, [], now=NOW)


def test_ineligible_promo_prices_at_zero_discount():
    expired = [promo_rows()[0].model_copy(update={"code": "OLD", "expiry_date": date(2025, 1, 1)})]
    order = compose_order(burger_cart(), info(), "OLD", "b1", expired, now=NOW)
    assert order.discount == 0
    assert order.total == pytest.approx(25.98)
    assert order.promo_code is None
    assert "expired" in order.promo_error
    assert "promo_error" not in order.model_dump()
    assert "Discount" not in format_message(order)
    unknown = compose_order(burger_cart(), info(), "NOPE", "b1", promo_rows(), now=NOW)
    assert unknown.discount == 0 and unknown.promo_error == "Invalid promo code"


def test_format_message_is_deterministic_and_omits_zero_discount():
    order = compose_order(burger_cart(), info(notes="no onions"), "", "b1", [], now=NOW)
    text = format_message(order)
    assert text == format_message(order)
    assert text.startswith("*New Order from Ana*")
    assert "Discount" not in text
    assert "Order ID" not in text
    assert "• Classic Cheeseburger × 2 — Rp25.98" in text
    assert "*Notes:* no onions" in text
    assert text.endswith("Order placed at: 2025-06-01 09:30 UTC")


def test_format_message_with_discount_and_id():
    order = compose_order(burger_cart(), info(), "WELCOME20", "b1", promo_rows(), now=NOW)
    order = order.model_copy(update={"id": "ord-1"})
    text = format_message(order)
    assert "Order ID: ord-1" in text
    assert "*Discount (WELCOME20): -Rp5.20*" in text
    assert "*Total: Rp20.78*" in text


def test_handoff_link_encodes_message():
    url = build_handoff_link("+62 815-888-2505", "Hi & bye\n*x*")
    assert url.startswith("https://wa.me/628158882505?text=")
    encoded = url.split("text=", 1)[1]
    assert "&" not in encoded and "\n" not in encoded and " " not in encoded
    assert unquote(encoded) == "Hi & bye\n*x*"


def test_handoff_link_needs_digits():
    with pytest.raises(ValidationError):
        build_handoff_link("n/a", "hello")


def test_destination_number_fallback_chain():
    branch = SimpleNamespace(phone="+62 811 000")
    brand = SimpleNamespace(phone="0899-123")
    assert resolve_destination_number(branch, brand, "628158882505") == "62811000"
    assert resolve_destination_number(SimpleNamespace(phone=None), brand, "628158882505") == "0899123"
    assert resolve_destination_number(None, None, "628158882505") == "628158882505"


def test_submit_order_persists_items(catalog_db, ctx):
    order = compose_order(burger_cart(), info(), "WELCOME20", "b1", promo_rows(), now=NOW)
    stored = submit_order(order)
    assert stored is not None and stored.id
    row = db.session.get(Order, stored.id)
    assert row.total == pytest.approx(20.784)
    assert [(i.product_id, i.quantity) for i in row.items] == [("p1", 2)]


def test_submit_order_failure_returns_none(catalog_db, ctx, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", broken_commit)
    order = compose_order(burger_cart(), info(), "", "b1", [], now=NOW)
    assert submit_order(order) is None


def test_place_order_still_hands_off_when_storage_fails(catalog_db, ctx, monkeypatch):
    monkeypatch.setattr("checkout.submit_order", lambda order: None)
    branch = schemas.Branch(id="b2", name="Mall Branch", address="456 North Mall", phone=None)
    result = place_order(burger_cart(1), info(), "", branch, [], fallback_number="628158882505", now=NOW)
    assert result["persisted"] is False
    assert result["whatsapp_url"].startswith("https://wa.me/628158882505?text=")
    assert "Order ID" not in result["message"]
