# seed.py
from datetime import date

from models import (db, Branch, BrandSettings, Category, InventoryRecord, Product, Promo, ThemeSettings, User)
from utils import log

SEED_BRANCHES = [
    ("Downtown Branch", "123 Main Street, Downtown", "628158882505", True),
    ("Mall Branch", "456 Shopping Center, North Mall", "628158882506", True),
    ("University Branch", "789 Campus Drive, University District", None, False),
]

SEED_CATEGORIES = [("Burgers", 1), ("Pizza", 2), ("Salads", 3), ("Beverages", 4)]

SEED_PRODUCTS = [
    ("Classic Cheeseburger", "Juicy beef patty with cheese, lettuce, tomato, and our special sauce",
     12.99, "Burgers", 4.8, 15, True),
    ("Margherita Pizza", "Fresh mozzarella, basil, and tomato sauce on crispy dough", 16.99, "Pizza", 4.9, 20, True),
    ("Caesar Salad", "Crisp romaine lettuce, parmesan, croutons, and caesar dressing", 9.99, "Salads", 4.6, 10, False),
    ("Iced Coffee", "Premium cold brew coffee served with ice and your choice of milk",
     4.99, "Beverages", 4.7, 5, False),
]

# the old hardcoded cart codes, now ordinary promo rows
SEED_PROMOS = [("WELCOME20", "percentage", 20.0, 0.0), ("SAVE10", "percentage", 10.0, 0.0)]


def seed_demo_data(app):
    """Create tables and seed demo data. Safe to call multiple times."""
    with app.app_context():
        db.create_all()
        if Branch.query.count() > 0:
            log("Seed: existing data found, skipping reseed.")
            return
        for name, address, phone, is_open in SEED_BRANCHES:
            branch = Branch(name=name, address=address, phone=phone, is_open=is_open)
            db.session.add(branch)
            db.session.flush()
            cats = {}
            for cat_name, order in SEED_CATEGORIES:
                cat = Category(name=cat_name, branch_id=branch.id, sort_order=order)
                db.session.add(cat)
                db.session.flush()
                cats[cat_name] = cat
            for pname, desc, price, cat_name, rating, prep, popular in SEED_PRODUCTS:
                prod = Product(name=pname, description=desc, price=price, category_id=cats[cat_name].id,
                               rating=rating, prep_time=prep, is_popular=popular, branch_id=branch.id)
                db.session.add(prod)
                db.session.flush()
                db.session.add(InventoryRecord(product_id=prod.id, quantity=50,
                                               low_stock_threshold=app.config["LOW_STOCK_THRESHOLD"]))
            for code, ptype, value, min_amount in SEED_PROMOS:
                db.session.add(Promo(code=code, type=ptype, value=value, min_order_amount=min_amount,
                                     expiry_date=date(date.today().year + 1, 12, 31), branch_id=branch.id))
        db.session.add(User(username="admin", email="admin@example.com", role="admin", branch_id="all"))
        db.session.add(BrandSettings(company_name="FoodieApp", tagline="Fresh food, fast",
                                     phone=SEED_BRANCHES[0][2], social_media={}))
        db.session.add(ThemeSettings())
        db.session.commit()
        log("Database seeded with branches, products and promos.")
