"""
Pytest fixtures for KomePOS backend tests.

Provides test database setup, a company with one location and staff,
a small menu, and a test client.
"""

from datetime import date
from decimal import Decimal

import pytest
from komepos import create_app
from komepos.extensions import db
from komepos.models import (
    AddOn,
    Company,
    DeliveryZone,
    Location,
    Option,
    OptionGroup,
    Product,
    Promotion,
    User,
)
from komepos.models.auth import ROLE_CASHIER, ROLE_MANAGER


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COMMIT_RETRY_ATTEMPTS': 3,
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
def company(db_session):
    company = Company(name="Kome Ramen", timezone="America/Panama", tax_rate=Decimal("0.0700"))
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def location(db_session, company):
    location = Location(company_id=company.id, name="Downtown")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def cashier(db_session, company, location):
    user = User(
        company_id=company.id,
        username="cashier",
        full_name="Ana Cashier",
        role=ROLE_CASHIER,
        location_id=location.id,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def second_cashier(db_session, company, location):
    user = User(
        company_id=company.id,
        username="cashier2",
        full_name="Luis Cashier",
        role=ROLE_CASHIER,
        location_id=location.id,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session, company, location):
    user = User(
        company_id=company.id,
        username="manager",
        full_name="Marta Manager",
        role=ROLE_MANAGER,
        location_id=location.id,
    )
    db_session.add(user)
    db_session.commit()
    return user


def _product(db_session, company, name, price, taxable=True):
    product = Product(company_id=company.id, name=name, base_price=Decimal(price), is_taxable=taxable)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def ramen(db_session, company):
    """Taxable $8.00 bowl with a required broth choice and an egg add-on."""
    product = _product(db_session, company, "Shoyu Ramen", "8.00")
    broth = OptionGroup(product_id=product.id, name="Broth", is_required=True,
                        min_selections=1, max_selections=1, sort_order=0)
    db_session.add(broth)
    db_session.flush()
    db_session.add_all([
        Option(group_id=broth.id, name="Light", sort_order=0),
        Option(group_id=broth.id, name="Rich", sort_order=1),
        AddOn(product_id=product.id, name="Ajitama egg", price=Decimal("1.50"), sort_order=0),
    ])
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def iced_tea(db_session, company):
    """Non-taxable $5.00 drink."""
    return _product(db_session, company, "Iced Tea", "5.00", taxable=False)


@pytest.fixture(scope='function')
def gyoza(db_session, company):
    return _product(db_session, company, "Gyoza", "6.00")


@pytest.fixture(scope='function')
def platter(db_session, company):
    return _product(db_session, company, "Sushi Platter", "23.50")


@pytest.fixture(scope='function')
def zone(db_session, company, location):
    zone = DeliveryZone(company_id=company.id, name="Centro", price=Decimal("3.00"))
    zone.locations.append(location)
    db_session.add(zone)
    db_session.commit()
    return zone


@pytest.fixture(scope='function')
def make_promotion(db_session, company):
    """Factory for promotions active since 2020 with no end date."""
    def _make(kind, value, **kwargs):
        promo = Promotion(
            company_id=company.id,
            name=kwargs.pop("name", f"{kind} {value}"),
            discount_kind=kind,
            discount_value=Decimal(str(value)),
            eligible_product_ids=kwargs.pop("eligible_product_ids", []),
            eligible_location_ids=kwargs.pop("eligible_location_ids", []),
            start_date=kwargs.pop("start_date", date(2020, 1, 1)),
            **kwargs,
        )
        db_session.add(promo)
        db_session.commit()
        return promo
    return _make
