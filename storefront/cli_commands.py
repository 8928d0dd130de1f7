"""
Flask CLI commands for the storefront cart.

Commands:
- flask promo-status: Show whether promotional pricing is active
- flask quote-product: Price a product from the catalog at a quantity
- flask purge-carts: Delete stored cart snapshots
"""

import click
from flask import current_app

from storefront.database import get_session
from storefront.exceptions import NotFoundError
from storefront.models.cart_snapshot import CartSnapshot
from storefront.services.pricing_service import resolve_price, tier_table
from storefront.utils.formatters import countdown, money, tier_label


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('promo-status')
    def promo_status():
        """Show the promo window state and time left in it."""
        clock = current_app.extensions['promo_clock']
        clock.poll()
        if clock.is_active:
            click.echo(click.style('Promo pricing ACTIVE', fg='green', bold=True))
            click.echo(f'   Ends in: {countdown(clock.time_remaining())}')
        else:
            click.echo(click.style('Promo pricing inactive', fg='yellow'))
            click.echo(f'   Window: {clock.start_hour:02d}:00 - {clock.end_hour:02d}:00')

    @app.cli.command('quote-product')
    @click.argument('product_id')
    @click.option('--qty', default=1, type=int, help='Quantity to price')
    @click.option('--promo/--regular', default=None, help='Force a pricing regime')
    def quote_product(product_id, qty, promo):
        """Resolve the unit price for PRODUCT_ID at a quantity."""
        catalog = current_app.extensions['catalog']
        currency = current_app.config.get('CURRENCY_SYMBOL', '₹')
        if promo is None:
            promo = current_app.extensions['promo_clock'].is_active

        try:
            product = catalog.get_product(product_id)
            resolution = resolve_price(product, qty, promo)
        except (NotFoundError, ValueError) as e:
            click.echo(click.style(f'Cannot price product: {str(e)}', fg='red'))
            return

        click.echo(click.style(f'\n{product.title or product.id}', bold=True))
        click.echo(f'   Regime: {resolution.regime}')
        click.echo(f'   Unit price: {money(resolution.unit_price, currency)}')
        click.echo(f'   Line total: {money(resolution.unit_price * qty, currency)}')
        for tier in tier_table(product, promo):
            marker = '*' if tier == resolution.tier else ' '
            click.echo(f' {marker} {tier_label(tier.threshold_qty, tier.price_per_unit, product.unit, currency)}')

    @app.cli.command('purge-carts')
    @click.confirmation_option(prompt='Delete all stored cart snapshots?')
    def purge_carts():
        """Delete every stored cart snapshot."""
        session = get_session()
        try:
            deleted = session.query(CartSnapshot).delete()
            session.commit()
            click.echo(click.style(f'Deleted {deleted} cart snapshot(s).', fg='green'))
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Error deleting snapshots: {str(e)}', fg='red'))
