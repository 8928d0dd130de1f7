"""Models package - catalog dataclasses, cart lines and the cart snapshot table."""
# Catalog (read-only)
from storefront.models.product import Product, PriceTier, PricingSnapshot, VariantAxis, variant_signature

# Cart
from storefront.models.cart_line import CartLine

# Persistence
from storefront.models.cart_snapshot import CartSnapshot

__all__ = [
    # Catalog
    'Product', 'PriceTier', 'PricingSnapshot', 'VariantAxis', 'variant_signature',
    # Cart
    'CartLine',
    # Persistence
    'CartSnapshot',
]
