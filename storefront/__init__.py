"""Flask application factory."""
import logging
from decimal import Decimal

from flask import Flask, request, jsonify

from storefront.database import init_db


def _delivery_policy_from_config(config):
    from storefront.services.order_total_service import DeliveryPolicy

    threshold = config.get('DELIVERY_FREE_THRESHOLD')
    return DeliveryPolicy(
        standard_charge=Decimal(str(config.get('DELIVERY_STANDARD_CHARGE', '30'))),
        always_free=bool(config.get('DELIVERY_ALWAYS_FREE', True)),
        free_threshold=Decimal(str(threshold)) if threshold not in (None, '') else None,
    )


def init_cart(app):
    """Create the shared promo clock, catalog and cart session registry."""
    from storefront.services.catalog_service import InMemoryCatalog
    from storefront.services.cart_session_service import CartSessionRegistry
    from storefront.services.promo_clock_service import PromoWindowClock

    clock = PromoWindowClock(
        start_hour=app.config.get('PROMO_START_HOUR', 18),
        end_hour=app.config.get('PROMO_END_HOUR', 9),
        poll_interval=app.config.get('PROMO_POLL_INTERVAL', 60),
        test_hour=app.config.get('PROMO_TEST_HOUR'),
    )

    catalog = InMemoryCatalog()
    if app.config.get('CATALOG_PATH'):
        catalog.load_json(app.config['CATALOG_PATH'])

    registry = CartSessionRegistry(
        clock,
        delivery_policy=_delivery_policy_from_config(app.config),
        price_tolerance=Decimal(str(app.config.get('PRICE_TOLERANCE', '0.01'))),
        max_sessions=app.config.get('CART_SESSION_LIMIT', 1000),
        idle_seconds=app.config.get('CART_SESSION_IDLE_SECONDS', 1800),
    )

    app.extensions['promo_clock'] = clock
    app.extensions['catalog'] = catalog
    app.extensions['cart_registry'] = registry

    if app.config.get('CART_CLOCK_AUTOSTART', True):
        clock.start()

    app.logger.info(f"[PROMO] Promo window {clock.start_hour}:00-{clock.end_hour}:00, active={clock.is_active}")


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Initialize database (cart snapshots)
    init_db(app)

    # Promo clock, catalog gateway and cart sessions
    init_cart(app)

    # Error Handlers
    from storefront.exceptions import CartError

    @app.errorhandler(CartError)
    def handle_cart_error(error):
        """Handle custom application exceptions."""
        app.logger.warning(f"CartError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from storefront.blueprints.cart import cart_bp
    app.register_blueprint(cart_bp)

    # Register CLI commands
    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
