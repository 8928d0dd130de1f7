"""Cart blueprint - JSON endpoints for the storefront cart."""
import uuid
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple

from flask import Blueprint, request, session, jsonify, current_app, Response

from storefront.database import get_session
from storefront.exceptions import BusinessLogicError
from storefront.services.cart_persistence_service import (
    save_cart_snapshot, load_cart_snapshot, delete_cart_snapshot
)
from storefront.services.cart_session_service import CartSession
from storefront.services.order_total_service import Coupon
from storefront.services.catalog_service import CatalogGateway
from storefront.utils.formatters import countdown, money

cart_bp = Blueprint('cart', __name__, url_prefix='/cart')

CART_ID_HEADER = 'X-Cart-Id'
TRUE_VALUES = ('true', '1', 'yes', 'on')


def _persistence_enabled() -> bool:
    return current_app.config.get('CART_PERSISTENCE_ENABLED', True)


def _current_cart_id() -> str:
    """Cart id from the X-Cart-Id header, else from the cookie session."""
    cart_id = request.headers.get(CART_ID_HEADER) or session.get('cart_id')
    if not cart_id:
        cart_id = uuid.uuid4().hex
    session['cart_id'] = cart_id
    return cart_id


def _current_cart() -> CartSession:
    registry = current_app.extensions['cart_registry']
    loader = None
    if _persistence_enabled():
        loader = lambda cart_id: load_cart_snapshot(get_session(), cart_id)
    return registry.get_or_create(_current_cart_id(), loader=loader)


def _persist(cart: CartSession) -> None:
    if _persistence_enabled():
        save_cart_snapshot(get_session(), cart.cart_id, cart.store.serialize())


def _parse_discount(raw) -> Decimal:
    if raw in (None, ''):
        return Decimal('0')
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise BusinessLogicError('Invalid discount amount.')
    if value < 0:
        raise BusinessLogicError('Discount cannot be negative.')
    return value


def _parse_flag(raw, default: bool = True) -> bool:
    """JSON booleans as given; strings such as "false" or "0" read like config flags."""
    if raw is None:
        return default
    if isinstance(raw, str):
        return raw.strip().lower() in TRUE_VALUES
    return bool(raw)


def _parse_coupon(raw) -> Optional[Coupon]:
    if raw in (None, '', {}):
        return None
    if not isinstance(raw, Mapping):
        raise BusinessLogicError('Invalid coupon.')
    try:
        return Coupon.from_dict(raw)
    except ValueError:
        raise BusinessLogicError('Invalid coupon.')


def _resolve_discount(cart: CartSession, payload: Mapping) -> Tuple[Decimal, Optional[Coupon]]:
    """
    Discount for a totals or checkout request.

    A coupon document is applied to the cart's line-level totals and wins
    over a raw ``discount`` amount.
    """
    coupon = _parse_coupon(payload.get('coupon'))
    if coupon is None:
        return _parse_discount(payload.get('discount')), None
    return cart.discount_for(coupon), coupon


def _cart_body(cart: CartSession, discount: Decimal = Decimal('0')) -> dict:
    clock = current_app.extensions['promo_clock']
    currency = current_app.config.get('CURRENCY_SYMBOL', '₹')
    breakdown = cart.breakdown(discount)
    return {
        'status': 'success',
        'cart_id': cart.cart_id,
        'promo_active': clock.is_active,
        'promo_time_remaining': countdown(clock.time_remaining()),
        'total_items': cart.store.total_items(),
        'lines': [line.to_dict() for line in cart.store.lines()],
        'items_below_minimum': [line.line_id for line in cart.store.items_below_minimum()],
        'pricing': breakdown.to_dict(),
        'total_display': money(breakdown.total, currency),
        'advisories': [a.to_dict() for a in cart.drain_advisories()],
    }


def _mutation_response(cart: CartSession, result) -> Tuple[Response, int]:
    if not result.rejected:
        _persist(cart)
    body = _cart_body(cart)
    body['result'] = result.to_dict()
    if result.rejected:
        body['status'] = 'error'
        return jsonify(body), 422
    return jsonify(body), 200


@cart_bp.route('', methods=['GET'])
def cart_view():
    """Current cart; re-prices stale lines before answering."""
    cart = _current_cart()
    if cart.inspect():
        _persist(cart)
    return jsonify(_cart_body(cart))


@cart_bp.route('/lines', methods=['POST'])
def cart_add():
    """Add a product (or set its quantity when additive is false)."""
    payload = request.get_json(silent=True) or {}
    product_id = payload.get('product_id')
    if product_id in (None, ''):
        raise BusinessLogicError('Missing product id.')

    catalog: CatalogGateway = current_app.extensions['catalog']
    product = catalog.get_product(product_id)

    cart = _current_cart()
    result = cart.store.add(
        product,
        payload.get('qty', 1),
        additive=_parse_flag(payload.get('additive'), default=True),
        variant=payload.get('variant'),
    )
    current_app.logger.info(
        f"[cart_add] cart_id={cart.cart_id}, product_id={product_id}, "
        f"line_id={result.line_id}, rejected={result.rejected}"
    )
    return _mutation_response(cart, result)


@cart_bp.route('/lines/<path:line_id>', methods=['PUT', 'PATCH'])
def cart_update(line_id):
    """Set a line quantity from direct input (0 removes the line)."""
    payload = request.get_json(silent=True) or {}
    cart = _current_cart()
    result = cart.store.set_quantity_from_input(line_id, payload.get('qty'))
    return _mutation_response(cart, result)


@cart_bp.route('/lines/<path:line_id>/increment', methods=['POST'])
def cart_increment(line_id):
    cart = _current_cart()
    return _mutation_response(cart, cart.store.increment(line_id))


@cart_bp.route('/lines/<path:line_id>/decrement', methods=['POST'])
def cart_decrement(line_id):
    cart = _current_cart()
    return _mutation_response(cart, cart.store.decrement(line_id))


@cart_bp.route('/lines/<path:line_id>', methods=['DELETE'])
def cart_remove(line_id):
    cart = _current_cart()
    return _mutation_response(cart, cart.store.remove(line_id))


@cart_bp.route('/totals', methods=['GET', 'POST'])
def cart_totals():
    """
    Checkout breakdown.

    GET takes a resolved ``discount`` amount as a query argument. POST takes
    a JSON body with either ``discount`` or a ``coupon`` document, which is
    applied to the line-level totals (409 when its minimum is not reached).
    """
    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
    else:
        payload = request.args
    cart = _current_cart()
    cart.inspect()
    discount, coupon = _resolve_discount(cart, payload)
    body = _cart_body(cart, discount)
    body['coupon_code'] = coupon.code if coupon is not None else None
    return jsonify(body)


@cart_bp.route('/checkout', methods=['POST'])
def cart_checkout():
    """
    Hand the order payload to the order submission service.

    The cart is cleared and its session stops re-pricing once the payload
    is produced; a blocked checkout (empty cart, line below minimum) leaves
    it untouched.
    """
    payload = request.get_json(silent=True) or {}
    coupon = _parse_coupon(payload.get('coupon'))
    discount = _parse_discount(payload.get('discount')) if coupon is None else Decimal('0')
    cart = _current_cart()
    order = cart.checkout_payload(discount, coupon=coupon)

    cart.complete_checkout()
    current_app.extensions['cart_registry'].discard(cart.cart_id)
    if _persistence_enabled():
        delete_cart_snapshot(get_session(), cart.cart_id)
    session.pop('cart_id', None)

    current_app.logger.info(f"[cart_checkout] cart_id={cart.cart_id}, total={order['total']}")
    return jsonify({'status': 'success', 'order': order}), 201
