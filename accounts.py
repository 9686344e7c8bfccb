# accounts.py
from datetime import timedelta

from flask import current_app
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

import procedures
import schemas
from errors import AuthenticationError, BusinessRuleError, RemoteError, ValidationError, field_errors
from models import db, Customer, CustomerAddress, CustomerSession, Order, PasswordResetToken
from utils import log, new_token, utcnow

TOKEN_KEY = "customer_session_token"
MIN_PASSWORD_LENGTH = 6


def check_password_rules(password, confirm=None):
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                              {"password": "Too short"})
    if confirm is not None and confirm != password:
        raise ValidationError("Passwords do not match", {"confirm_password": "Passwords do not match"})


class CustomerAccounts:
    """Customer login state for one browser.

    token_store is the client-side key/value store holding the opaque
    session token (the Flask session in the app, a dict in tests).
    """

    def __init__(self, token_store):
        self.token_store = token_store
        self.customer = None

    def _commit(self, op, fatal=True):
        try:
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            log(f"{op} error: {e}")
            if fatal:
                raise RemoteError(f"An error occurred during {op}")
            return False

    def _load(self, customer_id):
        row = db.session.get(Customer, customer_id)
        return schemas.Customer.model_validate(row) if row else None

    # ---------- registration / login ----------
    def signup(self, data):
        if not data.get("privacy_accepted"):
            raise ValidationError("You must accept the privacy policy to create an account",
                                  {"privacy_accepted": "Required"})
        check_password_rules(data.get("password"), data.get("confirm_password"))
        try:
            parsed = schemas.SignupData.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Please check your details", field_errors(e))

        result = procedures.create_customer_account(
            full_name=parsed.full_name,
            email=parsed.email,
            phone=parsed.phone,
            password=parsed.password,
            privacy_accepted=parsed.privacy_accepted,
            marketing_consent=parsed.marketing_consent,
        )
        if not result:
            raise RemoteError("Failed to create account")
        customer_id = result[0]["customer_id"]

        if parsed.address:
            fields = parsed.address.model_dump()
            fields["is_default"] = True
            db.session.add(CustomerAddress(customer_id=customer_id, **fields))
            self._commit("signup address", fatal=False)

        self.customer = self._load(customer_id)
        self.create_session(customer_id)
        log(f"Customer signup {customer_id}")
        return self.customer

    def login(self, email, password):
        result = procedures.authenticate_customer(email, password)
        if not result:
            raise AuthenticationError("Invalid email or password")
        customer_id = result[0]["customer_id"]
        self.create_session(customer_id)
        row = db.session.get(Customer, customer_id)
        row.last_login = utcnow()
        self._commit("login", fatal=False)
        self.customer = schemas.Customer.model_validate(row)
        return self.customer

    # ---------- sessions ----------
    def create_session(self, customer_id):
        token = new_token()
        days = current_app.config["CUSTOMER_SESSION_DAYS"]
        db.session.add(CustomerSession(customer_id=customer_id, session_token=token,
                                       expires_at=utcnow() + timedelta(days=days)))
        self._commit("session creation")
        self.token_store[TOKEN_KEY] = token
        return token

    def check_existing_session(self):
        token = self.token_store.get(TOKEN_KEY)
        if not token:
            return None
        row = CustomerSession.query.filter(CustomerSession.session_token == token,
                                           CustomerSession.expires_at > utcnow()).first()
        if row is None or not row.customer.is_active:
            self.token_store.pop(TOKEN_KEY, None)
            self.customer = None
            return None
        row.customer.last_login = utcnow()
        self._commit("session check", fatal=False)
        self.customer = schemas.Customer.model_validate(row.customer)
        return self.customer

    def require_customer(self):
        if self.customer is None and self.check_existing_session() is None:
            raise AuthenticationError("Not authenticated")
        return self.customer

    def logout(self):
        token = self.token_store.get(TOKEN_KEY)
        if token:
            try:
                CustomerSession.query.filter_by(session_token=token).delete()
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                log(f"logout error: {e}")
        self.token_store.pop(TOKEN_KEY, None)
        self.customer = None

    # ---------- profile ----------
    def update_profile(self, patch):
        customer = self.require_customer()
        try:
            data = schemas.CustomerUpdate.model_validate(patch or {})
        except PydanticValidationError as e:
            raise ValidationError("Failed to update profile", field_errors(e))
        changes = data.model_dump(exclude_none=True)
        if "phone" in changes:
            taken = Customer.query.filter(Customer.phone == changes["phone"], Customer.id != customer.id).first()
            if taken:
                raise BusinessRuleError("An account with this phone number already exists",
                                        {"phone": "Already in use"})
        row = db.session.get(Customer, customer.id)
        for field, value in changes.items():
            setattr(row, field, value)
        self._commit("profile update")
        self.customer = schemas.Customer.model_validate(row)
        return self.customer

    def order_history(self):
        customer = self.require_customer()
        rows = Order.query.filter_by(customer_id=customer.id).order_by(Order.created_at.desc()).all()
        return [schemas.Order.model_validate(o) for o in rows]

    # ---------- address book ----------
    def addresses(self):
        customer = self.require_customer()
        rows = (CustomerAddress.query.filter_by(customer_id=customer.id)
                .order_by(CustomerAddress.is_default.desc(), CustomerAddress.created_at).all())
        return [schemas.Address.model_validate(a) for a in rows]

    def _owned_address(self, address_id):
        customer = self.require_customer()
        row = db.session.get(CustomerAddress, address_id)
        if row is None or row.customer_id != customer.id:
            raise BusinessRuleError("Address not found")
        return row

    def _clear_defaults(self, customer_id, keep_id=None):
        for other in CustomerAddress.query.filter_by(customer_id=customer_id, is_default=True).all():
            if other.id != keep_id:
                other.is_default = False

    def add_address(self, payload):
        customer = self.require_customer()
        try:
            data = schemas.AddressIn.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError("Failed to add address", field_errors(e))
        first = CustomerAddress.query.filter_by(customer_id=customer.id).count() == 0
        row = CustomerAddress(customer_id=customer.id, **data.model_dump())
        if first:
            row.is_default = True
        if row.is_default:
            self._clear_defaults(customer.id)
        db.session.add(row)
        self._commit("address add")
        return schemas.Address.model_validate(row)

    def update_address(self, address_id, patch):
        row = self._owned_address(address_id)
        current = schemas.AddressIn.model_validate(row).model_dump()
        current.update(patch or {})
        try:
            data = schemas.AddressIn.model_validate(current)
        except PydanticValidationError as e:
            raise ValidationError("Failed to update address", field_errors(e))
        if data.is_default:
            self._clear_defaults(row.customer_id, keep_id=row.id)
        for field, value in data.model_dump().items():
            setattr(row, field, value)
        self._commit("address update")
        return schemas.Address.model_validate(row)

    def delete_address(self, address_id):
        row = self._owned_address(address_id)
        was_default = row.is_default
        customer_id = row.customer_id
        db.session.delete(row)
        if was_default:
            successor = (CustomerAddress.query.filter(CustomerAddress.customer_id == customer_id,
                                                      CustomerAddress.id != address_id)
                         .order_by(CustomerAddress.created_at).first())
            if successor:
                successor.is_default = True
        self._commit("address delete")

    def set_default_address(self, address_id):
        """Make one address the default and clear the flag on the rest."""
        row = self._owned_address(address_id)
        self._clear_defaults(row.customer_id, keep_id=row.id)
        row.is_default = True
        self._commit("default address update")
        return schemas.Address.model_validate(row)

    # ---------- password reset ----------
    def request_password_reset(self, email):
        """Returns the reset token, or None for an unknown email.

        Handing the token to the customer (email/SMS) is outside this app.
        """
        row = Customer.query.filter_by(email=(email or "").strip().lower()).first()
        if row is None:
            return None
        token = new_token()
        minutes = current_app.config["PASSWORD_RESET_MINUTES"]
        db.session.add(PasswordResetToken(customer_id=row.id, token=token,
                                          expires_at=utcnow() + timedelta(minutes=minutes)))
        self._commit("password reset request")
        log(f"Password reset requested for customer {row.id}")
        return token

    def reset_password(self, token, new_password, confirm=None):
        check_password_rules(new_password, confirm)
        reset = PasswordResetToken.query.filter(PasswordResetToken.token == token,
                                                PasswordResetToken.used.is_(False),
                                                PasswordResetToken.expires_at > utcnow()).first()
        if reset is None:
            raise BusinessRuleError("Reset link is invalid or has expired")
        customer = db.session.get(Customer, reset.customer_id)
        procedures.set_customer_password(customer, new_password)
        reset.used = True
        CustomerSession.query.filter_by(customer_id=customer.id).delete()
        self._commit("password reset")
        return True
