from datetime import timedelta

import pytest

import procedures
from accounts import TOKEN_KEY, CustomerAccounts
from errors import AuthenticationError, BusinessRuleError, ValidationError
from models import db, Customer, CustomerAddress, CustomerSession, Order
from utils import utcnow


def signup_data(**kw):
    data = dict(email="Ana@Example.com", password="secret123", confirm_password="secret123",
                full_name="Ana Putri", phone="08125550001", privacy_accepted=True)
    data.update(kw)
    return data


def address(**kw):
    data = dict(label="Home", address_line1="Jl. Merdeka 5", city="Jakarta", country="Indonesia")
    data.update(kw)
    return data


@pytest.fixture
def store():
    return {}


@pytest.fixture
def accounts(ctx, store):
    return CustomerAccounts(store)


@pytest.fixture
def signed_up(accounts):
    accounts.signup(signup_data())
    return accounts


def test_signup_without_privacy_consent_never_reaches_the_store(accounts, monkeypatch):
    def must_not_run(**kw):
        raise AssertionError("account procedure called")

    monkeypatch.setattr(procedures, "create_customer_account", must_not_run)
    with pytest.raises(ValidationError) as exc:
        accounts.signup(signup_data(privacy_accepted=False))
    assert exc.value.message == "You must accept the privacy policy to create an account"
    assert Customer.query.count() == 0


def test_signup_password_rules(accounts):
    with pytest.raises(ValidationError):
        accounts.signup(signup_data(password="abc", confirm_password="abc"))
    with pytest.raises(ValidationError):
        accounts.signup(signup_data(confirm_password="different1"))
    with pytest.raises(ValidationError):
        accounts.signup(signup_data(email="not-an-email"))


def test_signup_creates_customer_session_and_address(accounts, store):
    customer = accounts.signup(signup_data(address=address()))
    assert customer.email == "ana@example.com"
    assert store[TOKEN_KEY]
    row = db.session.get(Customer, customer.id)
    assert row.password_hash != "secret123"
    addrs = CustomerAddress.query.filter_by(customer_id=customer.id).all()
    assert len(addrs) == 1 and addrs[0].is_default


def test_duplicate_email_and_phone(signed_up):
    other = CustomerAccounts({})
    with pytest.raises(BusinessRuleError, match="Email already exists"):
        other.signup(signup_data(phone="0899"))
    with pytest.raises(BusinessRuleError, match="Phone number already exists"):
        other.signup(signup_data(email="budi@example.com"))


def test_signup_race_names_the_colliding_phone(signed_up, monkeypatch):
    real = procedures._conflict
    checks = []

    def first_check_misses(email, phone):
        checks.append(email)
        return None if len(checks) == 1 else real(email, phone)

    monkeypatch.setattr(procedures, "_conflict", first_check_misses)
    with pytest.raises(BusinessRuleError, match="Phone number already exists") as exc:
        procedures.create_customer_account(full_name="Budi", email="budi@example.com", phone="08125550001",
                                           password="secret123", privacy_accepted=True)
    assert "phone" in exc.value.errors
    assert len(checks) == 2
    assert Customer.query.count() == 1


def test_login(signed_up):
    browser = CustomerAccounts({})
    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        browser.login("ana@example.com", "wrong-pass")
    customer = browser.login("ANA@example.com", "secret123")
    assert customer.last_login is not None
    assert browser.token_store[TOKEN_KEY]


def test_inactive_customer_cannot_log_in(signed_up):
    row = Customer.query.filter_by(email="ana@example.com").one()
    row.is_active = False
    db.session.commit()
    with pytest.raises(AuthenticationError):
        CustomerAccounts({}).login("ana@example.com", "secret123")
    assert signed_up.check_existing_session() is None


def test_session_restored_from_token(signed_up, store):
    browser = CustomerAccounts(store)
    assert browser.check_existing_session().email == "ana@example.com"


def test_expired_session_clears_token(signed_up, store):
    CustomerSession.query.update({CustomerSession.expires_at: utcnow() - timedelta(minutes=1)})
    db.session.commit()
    browser = CustomerAccounts(store)
    assert browser.check_existing_session() is None
    assert TOKEN_KEY not in store
    with pytest.raises(AuthenticationError):
        browser.require_customer()


def test_logout_removes_session(signed_up, store):
    signed_up.logout()
    assert TOKEN_KEY not in store
    assert CustomerSession.query.count() == 0
    assert signed_up.customer is None


def test_update_profile(signed_up):
    CustomerAccounts({}).signup(signup_data(email="budi@example.com", phone="0899"))
    updated = signed_up.update_profile({"full_name": "Ana P.", "marketing_consent": True})
    assert updated.full_name == "Ana P." and updated.marketing_consent
    with pytest.raises(BusinessRuleError):
        signed_up.update_profile({"phone": "0899"})


def test_first_address_is_default_and_set_default_clears_others(signed_up):
    home = signed_up.add_address(address())
    office = signed_up.add_address(address(label="Office", address_line1="Jl. Sudirman 1"))
    assert home.is_default and not office.is_default
    signed_up.set_default_address(office.id)
    defaults = [a.id for a in signed_up.addresses() if a.is_default]
    assert defaults == [office.id]
    signed_up.update_address(home.id, {"is_default": True})
    assert [a.id for a in signed_up.addresses() if a.is_default] == [home.id]


def test_deleting_default_address_promotes_another(signed_up):
    home = signed_up.add_address(address())
    office = signed_up.add_address(address(label="Office"))
    signed_up.delete_address(home.id)
    remaining = signed_up.addresses()
    assert [(a.id, a.is_default) for a in remaining] == [(office.id, True)]


def test_cannot_touch_someone_elses_address(signed_up):
    other = CustomerAccounts({})
    other.signup(signup_data(email="budi@example.com", phone="0899"))
    theirs = other.add_address(address())
    with pytest.raises(BusinessRuleError):
        signed_up.delete_address(theirs.id)


def test_order_history(catalog_db, signed_up):
    me = signed_up.require_customer()
    db.session.add(Order(customer_id=me.id, customer_name="Ana", customer_phone="0812",
                         customer_address="Jl. 1", subtotal=10, total=10, branch_id="b1"))
    db.session.add(Order(customer_name="Guest", customer_phone="0813", customer_address="Jl. 2",
                         subtotal=5, total=5, branch_id="b1"))
    db.session.commit()
    assert [o.customer_name for o in signed_up.order_history()] == ["Ana"]


def test_password_reset(signed_up, store):
    assert signed_up.request_password_reset("nobody@example.com") is None
    token = signed_up.request_password_reset("ana@example.com")
    with pytest.raises(ValidationError):
        signed_up.reset_password(token, "short")
    assert signed_up.reset_password(token, "newsecret1", "newsecret1")
    assert CustomerSession.query.count() == 0
    with pytest.raises(BusinessRuleError):
        signed_up.reset_password(token, "another12")
    with pytest.raises(AuthenticationError):
        CustomerAccounts({}).login("ana@example.com", "secret123")
    assert CustomerAccounts({}).login("ana@example.com", "newsecret1").full_name == "Ana Putri"
