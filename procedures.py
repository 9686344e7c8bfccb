# procedures.py
"""
Server-side procedures for customer credentials.

These are the only two places a password hash is produced or checked;
callers get profile fields back, never the hash.
"""
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import BusinessRuleError
from models import db, Customer


def _profile(c):
    return {
        "customer_id": c.id,
        "email": c.email,
        "full_name": c.full_name,
        "phone": c.phone,
        "is_active": c.is_active,
        "email_verified": c.email_verified,
        "privacy_accepted": c.privacy_accepted,
        "marketing_consent": c.marketing_consent,
        "created_at": c.created_at,
    }


def authenticate_customer(email, password):
    """Return a one-element list with the profile, or [] on bad credentials."""
    c = Customer.query.filter_by(email=(email or "").strip().lower()).first()
    if not c or not c.is_active:
        return []
    if not check_password_hash(c.password_hash, password or ""):
        return []
    return [_profile(c)]


def _conflict(email, phone):
    """The error for an email or phone already on file, else None."""
    if Customer.query.filter_by(email=email).first():
        return BusinessRuleError("Email already exists", {"email": "An account with this email already exists"})
    if Customer.query.filter_by(phone=phone).first():
        return BusinessRuleError("Phone number already exists",
                                 {"phone": "An account with this phone number already exists"})
    return None


def create_customer_account(full_name, email, phone, password, privacy_accepted, marketing_consent=False):
    """Create the account in one transaction.

    Raises BusinessRuleError naming the colliding field.
    """
    email = email.strip().lower()
    clash = _conflict(email, phone)
    if clash:
        raise clash
    c = Customer(
        full_name=full_name,
        email=email,
        phone=phone,
        password_hash=generate_password_hash(password),
        privacy_accepted=privacy_accepted,
        marketing_consent=marketing_consent,
    )
    db.session.add(c)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent signup
        db.session.rollback()
        raise _conflict(email, phone) or BusinessRuleError("Account already exists")
    return [_profile(c)]


def set_customer_password(customer, password):
    customer.password_hash = generate_password_hash(password)
