from datetime import date, timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db, Branch, Category, Product, Promo


@pytest.fixture(autouse=True)
def log_file(tmp_path, monkeypatch):
    monkeypatch.setenv("STOREFRONT_LOG", str(tmp_path / "storefront.log"))


@pytest.fixture
def app(tmp_path):
    class Cfg(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'test.db'}"
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(Cfg)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def build_catalog():
    future = date.today() + timedelta(days=30)
    past = date.today() - timedelta(days=1)

    b1 = Branch(id="b1", name="Downtown Branch", address="123 Main Street", phone="+62 815-888-2505")
    b2 = Branch(id="b2", name="Mall Branch", address="456 North Mall", phone=None)
    db.session.add_all([b1, b2])
    db.session.add_all([
        Category(id="c1", name="Burgers", branch_id="b1", sort_order=1),
        Category(id="c2", name="Beverages", branch_id="b1", sort_order=2),
        Category(id="c3", name="Burgers", branch_id="b2", sort_order=1),
    ])
    db.session.add_all([
        Product(id="p1", name="Classic Cheeseburger", description="Beef patty with cheese", price=12.99,
                category_id="c1", branch_id="b1", is_popular=True),
        Product(id="p2", name="Iced Coffee", description="Cold brew over ice", price=4.99,
                category_id="c2", branch_id="b1"),
        Product(id="p3", name="Veggie Burger", description="Plant based", price=10.0,
                category_id="c1", branch_id="b1", is_available=False),
        Product(id="p4", name="Mall Burger", description="Double patty", price=11.0,
                category_id="c3", branch_id="b2"),
    ])
    db.session.add_all([
        Promo(id="pr1", code="WELCOME20", type="percentage", value=20, expiry_date=future, branch_id="b1"),
        Promo(id="pr2", code="SAVE10", type="percentage", value=10, expiry_date=future, branch_id="b1"),
        Promo(id="pr3", code="FLAT5", type="fixed", value=5, min_order_amount=20, expiry_date=future,
              branch_id="b1"),
        Promo(id="pr4", code="OLD", type="percentage", value=50, expiry_date=past, branch_id="b1"),
        Promo(id="pr5", code="OFF", type="percentage", value=50, is_active=False, expiry_date=future,
              branch_id="b1"),
        Promo(id="pr6", code="MALL15", type="percentage", value=15, expiry_date=future, branch_id="b2"),
    ])
    db.session.commit()


@pytest.fixture
def catalog_db(app):
    with app.app_context():
        build_catalog()
    return app
