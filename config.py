# config.py
import os
from datetime import timedelta


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change")  # change in prod
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///storefront.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PERMANENT_SESSION_LIFETIME = timedelta(days=30)

    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024

    # wa.me destination when neither the branch nor the brand has a number
    WHATSAPP_NUMBER = os.environ.get("WHATSAPP_NUMBER", "628158882505")

    CUSTOMER_SESSION_DAYS = 30
    PASSWORD_RESET_MINUTES = 60
    LOW_STOCK_THRESHOLD = 10
    SEED_DEMO_DATA = True


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SEED_DEMO_DATA = False
