"""
Pytest fixtures for storedesk backend tests.

Provides an in-memory database, a test client, back-office users with API
tokens, warehouses, stocked products, and accounts/invoices for payments.
"""

import pytest

from storedesk import create_app
from storedesk.extensions import db
from storedesk.models import Account, Invoice, InvoiceLine, Product, User, Warehouse
from storedesk.services import stock_ledger_service


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SECRET_KEY': 'test',
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'EXCHANGE_RATE_API_URL': None,
        'EXPOSE_ERROR_DETAILS': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(name="Admin User", email="admin@test.local", role="ADMIN", api_token="admin-token", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def sales_user(db_session):
    user = User(name="Kofi Sales", email="kofi@test.local", role="SALES", api_token="sales-token", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user.api_token)


@pytest.fixture(scope='function')
def sales_headers(sales_user):
    return auth_headers(sales_user.api_token)


@pytest.fixture(scope='function')
def warehouses(db_session):
    """Two warehouses: MAIN and ANNEX."""
    main = Warehouse(name="Main Store", code="MAIN", is_active=True)
    annex = Warehouse(name="Annex", code="ANNEX", is_active=True)
    db_session.add_all([main, annex])
    db_session.commit()
    return main, annex


@pytest.fixture(scope='function')
def make_product(db_session, warehouses):
    """
    Factory: make_product(name, price_cents, stock={warehouse: qty}, unit_cost_cents=...)

    Stock is received through the ledger so balances and movements agree.
    """
    counter = {"n": 0}

    def _make(name="Widget", price_cents=10000, stock=None, unit_cost_cents=4000, base_currency="GHS"):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name,
            price_cents=price_cents,
            base_currency=base_currency,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        for warehouse, quantity in (stock or {}).items():
            stock_ledger_service.apply_movement(
                product_id=product.id,
                warehouse_id=warehouse.id,
                movement_type=stock_ledger_service.MOVEMENT_RECEIPT,
                quantity=quantity,
                unit_cost_cents=unit_cost_cents,
                reference="OPENING",
            )
        return product

    return _make


@pytest.fixture(scope='function')
def account(db_session):
    acct = Account(name="Ama Mensah", type="INDIVIDUAL", email="ama@example.com", phone="0240000000")
    db_session.add(acct)
    db_session.commit()
    return acct


@pytest.fixture(scope='function')
def make_invoice(db_session):
    """Factory: an issued, unpaid invoice for `account` totalling `total_cents`."""
    counter = {"n": 0}

    def _make(account, total_cents=20000, *, owner=None, product=None, quantity=1, subtotal_cents=None):
        counter["n"] += 1
        subtotal = subtotal_cents if subtotal_cents is not None else total_cents
        invoice = Invoice(
            number=f"INV-T{counter['n']:04d}",
            status="SENT",
            payment_status="UNPAID",
            currency="GHS",
            subtotal_cents=subtotal,
            tax_cents=total_cents - subtotal,
            total_cents=total_cents,
            amount_paid_cents=0,
            amount_due_cents=total_cents,
            account_id=account.id,
            owner_id=owner.id if owner else None,
        )
        invoice.lines.append(InvoiceLine(
            position=0,
            product_id=product.id if product else None,
            description=product.name if product else "Services",
            quantity=quantity,
            unit_price_cents=subtotal // quantity,
            line_total_cents=subtotal,
        ))
        db_session.add(invoice)
        db_session.commit()
        return invoice

    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
