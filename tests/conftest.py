import pytest
from datetime import datetime
from decimal import Decimal

from storefront import create_app
from storefront.database import get_session
from storefront.models.product import Product, PriceTier, VariantAxis
from storefront.services.cart_service import CartLineStore
from storefront.services.promo_clock_service import PromoWindowClock


class FixedHourClock:
    """Time source returning a settable wall-clock time."""

    def __init__(self, hour=12):
        self.now = datetime(2024, 1, 15, hour, 30, 0)

    def set_hour(self, hour):
        self.now = self.now.replace(hour=hour)

    def __call__(self):
        return self.now


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (fresh catalog and carts per test)."""
    app = create_app('config.TestConfig')
    app.config['TESTING'] = True
    yield app
    app.extensions['cart_registry'].close_all()
    app.extensions['promo_clock'].stop()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def time_source():
    """Wall clock pinned to 12:30 (promo inactive)."""
    return FixedHourClock(hour=12)


@pytest.fixture(scope='function')
def clock(time_source):
    """Promo clock driven by the fixed time source."""
    clock = PromoWindowClock(time_source=time_source)
    yield clock
    clock.stop()


@pytest.fixture(scope='function')
def advisories():
    """Collected advisories (notifier sink)."""
    return []


@pytest.fixture(scope='function')
def store(clock, advisories):
    """Empty cart line store wired to the fixed clock."""
    return CartLineStore(clock=clock, notifier=advisories.append)


@pytest.fixture
def plain_product():
    """basePrice=380, taxPercent=5, no tiers."""
    return Product(
        id='rice-1kg',
        title='Basmati Rice',
        unit='kg',
        stock=100,
        base_price=Decimal('380'),
        original_price=Decimal('400'),
        tax_percent=Decimal('5'),
    )


@pytest.fixture
def tiered_product():
    """Regular tiers 12 -> 370 and 48 -> 358; promo single 350, promo tier 12 -> 340."""
    return Product(
        id='dal-500g',
        title='Toor Dal',
        unit='pack',
        stock=100,
        base_price=Decimal('380'),
        original_price=Decimal('400'),
        tax_percent=Decimal('5'),
        bulk_tiers=(
            PriceTier(12, Decimal('370')),
            PriceTier(48, Decimal('358')),
        ),
        promo_tiers=(
            PriceTier(12, Decimal('340')),
        ),
        promo_single_unit_price=Decimal('350'),
    )


@pytest.fixture
def min_order_product():
    """Minimum order quantity of 6."""
    return Product(
        id='eggs-tray',
        title='Eggs',
        unit='tray',
        stock=30,
        min_order_quantity=6,
        base_price=Decimal('60'),
        tax_percent=Decimal('0'),
    )


@pytest.fixture
def low_stock_product():
    """Only 5 units in stock."""
    return Product(
        id=42,
        title='Saffron',
        unit='g',
        stock=5,
        base_price=Decimal('250'),
        tax_percent=Decimal('12'),
    )


@pytest.fixture
def variant_product():
    """Two variant axes (size, pack) with a per-variant stock ceiling."""
    return Product(
        id='oil',
        title='Sunflower Oil',
        unit='bottle',
        stock=50,
        base_price=Decimal('180'),
        tax_percent=Decimal('5'),
        variant_axes=(
            VariantAxis('size', ('1l', '5l')),
            VariantAxis('pack', ('1', '2')),
        ),
        variant_stock={'pack=2|size=5l': 3},
    )


@pytest.fixture
def catalog_products(plain_product, tiered_product, min_order_product, low_stock_product, variant_product):
    return [plain_product, tiered_product, min_order_product, low_stock_product, variant_product]


@pytest.fixture
def stocked_app(app, catalog_products):
    """App whose catalog holds the test products."""
    catalog = app.extensions['catalog']
    for product in catalog_products:
        catalog.put(product)
    return app


@pytest.fixture
def cart_client(stocked_app):
    """Test client with a fixed cart id."""
    client = stocked_app.test_client()
    with client.session_transaction() as sess:
        sess['cart_id'] = 'test-cart-1'
    return client
