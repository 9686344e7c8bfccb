# catalog.py
"""
Branch-filtered views over products and categories.

Everything here is a pure function of the lists handed in; mutations go
through admin_data.AdminData.
"""
from branches import filter_scope


def list_products(products, scope=None):
    return filter_scope(products, scope)


def category_counts(categories, products):
    counts = {c.id: 0 for c in categories}
    for p in products:
        if p.category_id in counts:
            counts[p.category_id] += 1
    return counts


def list_categories(categories, products, scope=None):
    """Scope-filtered categories ordered for display, each with a fresh count."""
    visible = list_products(products, scope)
    cats = sorted(filter_scope(categories, scope), key=lambda c: (c.sort_order, c.name.lower()))
    counts = category_counts(cats, visible)
    return [c.model_copy(update={"count": counts[c.id]}) for c in cats]


def filter_by_category(products, category_id=None):
    if not category_id or category_id == "all":
        return list(products)
    return [p for p in products if p.category_id == category_id]


def popular(products):
    return [p for p in products if p.is_popular]


def search(products, query, scope=None):
    pool = list_products(products, scope)
    q = (query or "").strip().lower()
    if not q:
        return pool
    return [p for p in pool if q in p.name.lower() or q in (p.description or "").lower()]
