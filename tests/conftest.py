import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault('APP_ENV', 'testing')

from cartapi.catalog.gateway import (
    AmbiguousVariation,
    CatalogGateway,
    GroupedProduct,
    SimpleProduct,
    VariableProduct,
    VariationProduct,
    match_variation,
)
from cartapi.config import DEFAULT_SHIPPING_METHODS, DEFAULT_TAX_RATES
from cartapi.errors import InvalidVariation
from cartapi.services.cart_engine import CartEngine
from cartapi.services.events import RecordingEventSink
from cartapi.services.keys import canonical_attributes
from cartapi.services.pricing import PricingEngine
from cartapi.utils import clock
from models import db
from models.coupon import Coupon
from models.product import Product
from models.user import User


# ----------------------------------------------------------------- app fixtures

@pytest.fixture(scope='session')
def app_instance():
    from cartapi import create_app
    app = create_app()
    app.config.update(TESTING=True)
    return app


@pytest.fixture(scope='function')
def app(app_instance):
    from cartapi.context import init_cart
    with app_instance.app_context():
        db.drop_all()
        db.create_all()
        # Fresh services per test so login dedup state never leaks between tests.
        init_cart(app_instance)
        yield app_instance
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin clock.now(); tests move time with ``frozen_clock.advance(seconds)``."""

    class FrozenClock:
        def __init__(self, start):
            self.value = start

        def __call__(self):
            return self.value

        def advance(self, seconds):
            self.value += seconds

    fake = FrozenClock(1_800_000_000)
    monkeypatch.setattr(clock, 'now', fake)
    return fake


# ---------------------------------------------------------------- seeding (DB)

@pytest.fixture
def seed(app):
    """Insert catalog rows and users; returns a small namespace of helpers."""

    class Seed:
        def product(self, id, name=None, price='10.00', **fields):
            row = Product(id=id, name=name or f'Product {id}', price=Decimal(price) if price is not None else None, **fields)
            db.session.add(row)
            db.session.commit()
            return row

        def coupon(self, code, discount_type='fixed_cart', amount='5.00', **fields):
            row = Coupon(code=code, discount_type=discount_type, amount=Decimal(amount), **fields)
            db.session.add(row)
            db.session.commit()
            return row

        def user(self, id, username=None, password='secret', role='customer', email=None):
            row = User(id=id, username=username or f'user{id}', role=role, email=email)
            row.set_password(password)
            db.session.add(row)
            db.session.commit()
            return row

    return Seed()


@pytest.fixture
def login_as(client):
    """Issue a bearer header for a (possibly new) user."""

    def _login(user_id=100, role='customer'):
        resp = client.post('/__auth/token', json={'user_id': user_id, 'role': role})
        assert resp.status_code == 200
        return {'Authorization': f"Bearer {resp.get_json()['data']['access']}"}

    return _login


# ---------------------------------------------------------- in-memory catalog

class InMemoryCatalog(CatalogGateway):
    """Catalog backed by dicts, for engine tests that need no database."""

    def __init__(self):
        self.products = {}
        self.coupons = {}
        self.reservations = {}

    def simple(self, id, price='10.00', **fields):
        fields.setdefault('name', f'Product {id}')
        product = SimpleProduct(id=id, price=Decimal(price) if price is not None else None, **fields)
        self.products[id] = product
        return product

    def variable(self, id, attributes, **fields):
        fields.setdefault('name', f'Variable {id}')
        product = VariableProduct(id=id, attributes=canonical_attributes_options(attributes), **fields)
        self.products[id] = product
        return product

    def variation(self, id, parent_id, attributes, price='10.00', **fields):
        fields.setdefault('name', f'Variation {id}')
        product = VariationProduct(
            id=id,
            parent_id=parent_id,
            price=Decimal(price),
            variation_attributes=canonical_attributes(attributes),
            **fields,
        )
        self.products[id] = product
        parent = self.products[parent_id]
        parent.variations.append(id)
        return product

    def grouped(self, id, children, **fields):
        fields.setdefault('name', f'Group {id}')
        product = GroupedProduct(id=id, children=list(children), purchasable=False, **fields)
        self.products[id] = product
        return product

    def coupon(self, code, **fields):
        from cartapi.catalog.gateway import CouponView
        coupon = CouponView(code=code, **fields)
        self.coupons[code] = coupon
        return coupon

    def reserve(self, product_id, draft_order_id, quantity):
        self.reservations[(product_id, draft_order_id)] = quantity

    def get_product(self, product_id):
        return self.products.get(int(product_id))

    def get_variation(self, variation_id):
        product = self.products.get(int(variation_id))
        return product if isinstance(product, VariationProduct) else None

    def resolve_variation(self, product_id, attributes):
        parent = self.products.get(product_id)
        variations = [self.products[v] for v in getattr(parent, 'variations', [])]
        matches = match_variation(variations, canonical_attributes(attributes))
        if not matches:
            raise InvalidVariation('No matching variation found.', product_id=product_id)
        if len(matches) > 1:
            raise AmbiguousVariation(product_id=product_id, variations=matches)
        return matches[0]

    def get_coupon(self, code):
        return self.coupons.get(code.strip().lower())

    def reserved_stock(self, product_id, exclude_draft_order=0):
        return sum(
            qty for (pid, order), qty in self.reservations.items()
            if pid == product_id and order != exclude_draft_order
        )


def canonical_attributes_options(attributes):
    return {f"attribute_{name.lower()}": options for name, options in attributes.items()}


@pytest.fixture
def catalog():
    return InMemoryCatalog()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def pricing():
    return PricingEngine(DEFAULT_TAX_RATES, DEFAULT_SHIPPING_METHODS)


@pytest.fixture
def engine(catalog, pricing, sink):
    return CartEngine(catalog, pricing, sink=sink, max_line_items=5)


@pytest.fixture
def new_cart():
    from cartapi.domain import Cart

    def _new(key='guest-key'):
        return Cart(cart_key=key)

    return _new
