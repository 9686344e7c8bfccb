from datetime import date

import schemas
import catalog
from branches import default_admin_scope, filter_scope, in_scope, normalize_scope


def make_products():
    return [
        schemas.Product(id="p1", name="Classic Cheeseburger", description="Beef with CHEESE", price=12.99,
                        category_id="c1", branch_id="b1", is_popular=True),
        schemas.Product(id="p2", name="Iced Coffee", description="cold brew", price=4.99,
                        category_id="c2", branch_id="b1"),
        schemas.Product(id="p3", name="Veggie Burger", price=10.0, category_id="c1", branch_id="b1"),
        schemas.Product(id="p4", name="Mall Burger", price=11.0, category_id="c3", branch_id="b2"),
    ]


def make_categories():
    return [
        schemas.Category(id="c2", name="Beverages", branch_id="b1", sort_order=2),
        schemas.Category(id="c1", name="Burgers", branch_id="b1", sort_order=1),
        schemas.Category(id="c3", name="Burgers", branch_id="b2", sort_order=1),
    ]


def test_list_products_scope():
    products = make_products()
    assert len(catalog.list_products(products)) == 4
    assert len(catalog.list_products(products, "all")) == 4
    assert {p.id for p in catalog.list_products(products, "b2")} == {"p4"}
    assert catalog.list_products(products, "b9") == []


def test_category_counts_follow_scope_and_order():
    cats = catalog.list_categories(make_categories(), make_products(), "b1")
    assert [(c.id, c.count) for c in cats] == [("c1", 2), ("c2", 1)]


def test_category_counts_recomputed_after_product_change():
    products = make_products()
    cats = make_categories()
    before = {c.id: c.count for c in catalog.list_categories(cats, products)}
    products = [p for p in products if p.id != "p3"]
    after = {c.id: c.count for c in catalog.list_categories(cats, products)}
    assert before["c1"] == 2 and after["c1"] == 1
    # recomputing twice changes nothing
    assert after == {c.id: c.count for c in catalog.list_categories(cats, products)}


def test_search_is_case_insensitive_over_name_and_description():
    products = make_products()
    assert {p.id for p in catalog.search(products, "burger", "b1")} == {"p1", "p3"}
    assert {p.id for p in catalog.search(products, "cheese")} == {"p1"}
    assert {p.id for p in catalog.search(products, "COLD")} == {"p2"}
    assert catalog.search(products, "pizza") == []


def test_filter_by_category_and_popular():
    products = make_products()
    assert {p.id for p in catalog.filter_by_category(products, "c1")} == {"p1", "p3"}
    assert len(catalog.filter_by_category(products, "all")) == 4
    assert [p.id for p in catalog.popular(products)] == ["p1"]


def test_users_tagged_all_show_in_every_scope():
    users = [
        schemas.User(id="u1", username="ana", email="ana@example.com", branch_id="b1"),
        schemas.User(id="u2", username="owner", email="owner@example.com", branch_id="all"),
        schemas.User(id="u3", username="bo", email="bo@example.com", branch_id="b2"),
    ]
    assert {u.id for u in filter_scope(users, "b1")} == {"u1", "u2"}
    assert {u.id for u in filter_scope(users, None)} == {"u1", "u2", "u3"}


def test_banner_without_branch_is_global():
    banner = schemas.Banner(id="x", title="Hi", start_date=date(2025, 1, 1), end_date=date(2025, 2, 1),
                            branch_id="all")
    assert banner.branch_id is None
    assert in_scope(banner.branch_id, "b1")


def test_scope_helpers():
    assert normalize_scope("all") is None
    assert normalize_scope("") is None
    assert normalize_scope("b1") == "b1"
    branches = [schemas.Branch(id="b1", name="A", address="x"), schemas.Branch(id="b2", name="B", address="y")]
    assert default_admin_scope(branches) == "b1"
    assert default_admin_scope([]) is None
