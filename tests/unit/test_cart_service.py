"""
Unit tests for the cart line store.
"""

import threading
from dataclasses import replace
from decimal import Decimal

import pytest

from storefront.exceptions import Advisory, AdvisoryKind, VariantIncompleteError
from storefront.models.cart_line import CartLine
from storefront.services.cart_service import (
    CartLineStore, canonical_line_id, clamp_quantity, normalize_line_id
)
from storefront.services.pricing_service import resolve_unit_price


def _kinds(advisories):
    return [a.kind for a in advisories]


class TestLineIds:
    """Tests for canonical and legacy line ids."""

    def test_plain_product_id(self, plain_product):
        assert canonical_line_id(plain_product) == 'rice-1kg'

    def test_numeric_id_is_stringified(self, low_stock_product):
        assert canonical_line_id(low_stock_product) == '42'

    def test_variant_signature_sorted(self, variant_product):
        line_id = canonical_line_id(variant_product, {'size': '5l', 'pack': 2})
        assert line_id == 'oil::pack=2|size=5l'

    def test_incomplete_variant_raises(self, variant_product):
        with pytest.raises(VariantIncompleteError) as exc_info:
            canonical_line_id(variant_product, {'size': '1l'})
        assert exc_info.value.missing_axes == ('pack',)
        assert exc_info.value.status_code == 422

    def test_unknown_option_raises(self, variant_product):
        with pytest.raises(VariantIncompleteError) as exc_info:
            canonical_line_id(variant_product, {'size': '99l', 'pack': '2'})
        assert exc_info.value.missing_axes == ('size',)

    def test_keys_outside_axes_ignored(self, variant_product):
        line_id = canonical_line_id(variant_product, {'size': '1l', 'pack': '1', 'gift': 'no'})
        assert line_id == 'oil::pack=1|size=1l'

    @pytest.mark.parametrize('legacy, expected', [
        (42, '42'),
        (' 42 ', '42'),
        ('42-bulk1', '42'),
        ('42-bulk2', '42'),
        ('oil::size=5l|pack=2', 'oil::pack=2|size=5l'),
        ('oil::size=5l,pack=2', 'oil::pack=2|size=5l'),
        ('oil::pack=2;size=5l', 'oil::pack=2|size=5l'),
    ])
    def test_normalize_legacy_ids(self, legacy, expected):
        assert normalize_line_id(legacy) == expected


class TestClampQuantity:
    """Tests for stock and minimum order clamping."""

    def test_within_bounds(self):
        assert clamp_quantity(5, 10, 1) == (5, [])

    def test_zero_means_remove(self):
        assert clamp_quantity(0, 10, 3) == (0, [])
        assert clamp_quantity(-2, 10, 3) == (0, [])

    def test_above_stock(self):
        qty, advisories = clamp_quantity(12, 10, 1, 'x')
        assert qty == 10
        assert advisories == [Advisory.stock_insufficient('x')]
        assert advisories[0].message == 'Insufficient stock!'

    def test_below_minimum(self):
        qty, advisories = clamp_quantity(2, 10, 6, 'x')
        assert qty == 6
        assert advisories[0].message == 'Minimum order quantity is 6'

    def test_minimum_above_stock_cannot_exist(self):
        qty, advisories = clamp_quantity(2, 4, 6, 'x')
        assert qty == 0
        assert _kinds(advisories) == [AdvisoryKind.STOCK_INSUFFICIENT]


class TestAdd:
    """Tests for CartLineStore.add."""

    def test_add_creates_line(self, store, plain_product):
        result = store.add(plain_product, 1)

        assert result.ok
        assert len(store) == 1
        line = store.get('rice-1kg')
        assert line.quantity == 1
        assert line.unit_price == Decimal('380')
        assert line.stock_ceiling == 100

    def test_additive_add_crosses_tier(self, store, tiered_product):
        """Existing qty 5, add 12 -> 17 units at the 12+ tier price."""
        store.add(tiered_product, 5)
        assert store.get('dal-500g').unit_price == Decimal('380')

        store.add(tiered_product, 12)

        line = store.get('dal-500g')
        assert (line.quantity, line.unit_price) == (17, Decimal('370'))

    def test_non_additive_add_sets_quantity(self, store, tiered_product):
        store.add(tiered_product, 20)
        store.add(tiered_product, 3, additive=False)

        line = store.get('dal-500g')
        assert (line.quantity, line.unit_price) == (3, Decimal('380'))

    def test_add_clamps_to_stock(self, store, low_stock_product, advisories):
        result = store.add(low_stock_product, 9)

        assert store.get(42).quantity == 5
        assert _kinds(result.advisories) == [AdvisoryKind.STOCK_INSUFFICIENT]
        assert advisories == list(result.advisories)

    def test_add_raises_to_minimum(self, store, min_order_product, advisories):
        """Empty cart, add 5 with minimum 6 -> line of 6 plus an advisory."""
        result = store.add(min_order_product, 5)

        line = store.get('eggs-tray')
        assert line.quantity == 6
        assert line.unit_price == Decimal('60')
        assert _kinds(advisories) == [AdvisoryKind.BELOW_MINIMUM_ORDER]
        assert result.advisories[0].message == 'Minimum order quantity is 6'

    def test_incomplete_variant_rejected_without_side_effects(self, store, variant_product, advisories):
        result = store.add(variant_product, 1, variant={'size': '5l'})

        assert result.rejected
        assert len(store) == 0
        assert _kinds(advisories) == [AdvisoryKind.VARIANT_INCOMPLETE]
        assert advisories[0].message == 'Please select all product options'

    def test_variant_stock_ceiling(self, store, variant_product):
        store.add(variant_product, 10, variant={'size': '5l', 'pack': '2'})
        store.add(variant_product, 10, variant={'size': '1l', 'pack': '1'})

        assert store.get('oil::pack=2|size=5l').quantity == 3
        assert store.get('oil::pack=1|size=1l').quantity == 10
        assert len(store) == 2

    def test_extra_variant_keys_keep_variant_stock_ceiling(self, store, variant_product, advisories):
        result = store.add(variant_product, 10, variant={'size': '5l', 'pack': '2', 'gift': 'no'})

        line = store.get('oil::pack=2|size=5l')
        assert result.line_id == 'oil::pack=2|size=5l'
        assert (line.quantity, line.stock_ceiling) == (3, 3)
        assert line.variant == (('pack', '2'), ('size', '5l'))
        assert _kinds(advisories) == [AdvisoryKind.STOCK_INSUFFICIENT]

    def test_extra_variant_keys_do_not_raise_existing_ceiling(self, store, variant_product):
        store.add(variant_product, 1, variant={'size': '5l', 'pack': '2'})
        store.add(variant_product, 10, variant={'size': '5l', 'pack': '2', 'gift': 'no'})

        line = store.get('oil::pack=2|size=5l')
        assert (line.quantity, line.stock_ceiling) == (3, 3)
        assert len(store) == 1

    def test_unknown_variant_option_rejected(self, store, variant_product, advisories):
        result = store.add(variant_product, 1, variant={'size': '99l', 'pack': 'x'})

        assert result.rejected
        assert len(store) == 0
        assert _kinds(advisories) == [AdvisoryKind.VARIANT_INCOMPLETE]

    def test_quantity_string_is_parsed(self, store, plain_product):
        store.add(plain_product, '3')
        assert store.get('rice-1kg').quantity == 3

    def test_invalid_quantity_rejected(self, store, plain_product, advisories):
        store.add(plain_product, 2)
        result = store.add(plain_product, 'abc')

        assert result.rejected
        assert store.get('rice-1kg').quantity == 2
        assert _kinds(advisories) == [AdvisoryKind.INVALID_QUANTITY_INPUT]

    def test_add_uses_promo_state_at_write_time(self, store, clock, time_source, tiered_product):
        time_source.set_hour(19)
        clock.poll()

        store.add(tiered_product, 1)
        assert store.get('dal-500g').unit_price == Decimal('350')

    def test_price_change_within_tolerance_keeps_price(self, store, plain_product):
        store.add(plain_product, 1)
        nudged = replace(plain_product, base_price=Decimal('380.005'))

        store.add(nudged, 1)

        line = store.get('rice-1kg')
        assert line.quantity == 2
        assert line.unit_price == Decimal('380')

    def test_price_change_beyond_tolerance_replaces_price(self, store, plain_product):
        store.add(plain_product, 1)
        store.add(replace(plain_product, base_price=Decimal('390')), 1)

        line = store.get('rice-1kg')
        assert (line.quantity, line.unit_price) == (2, Decimal('390'))


class TestUniqueness:
    """At most one line per product+variant."""

    def test_repeated_adds_keep_one_line(self, store, tiered_product):
        for qty in (1, 4, 7, 2, 30):
            store.add(tiered_product, qty)

        assert len(store) == 1
        line = store.get('dal-500g')
        assert line.quantity == 44
        assert line.unit_price == resolve_unit_price(tiered_product, 44, False)

    def test_variant_selection_order_is_irrelevant(self, store, variant_product):
        store.add(variant_product, 1, variant={'size': '1l', 'pack': '2'})
        store.add(variant_product, 1, variant={'pack': '2', 'size': '1l'})

        assert len(store) == 1
        assert store.get('oil::pack=2|size=1l').quantity == 2

    def test_legacy_line_is_merged(self, clock, low_stock_product):
        """A line saved under a bulk shortcut id merges into the canonical one."""
        legacy = CartLine(
            line_id='42-bulk1',
            product_id=42,
            quantity=2,
            unit_price=Decimal('250'),
            snapshot=low_stock_product.pricing_snapshot(),
            stock_ceiling=5,
        )
        store = CartLineStore.deserialize({'lines': [legacy.to_dict()]}, clock=clock)
        assert '42' in store

        store.add(low_stock_product, 1)

        assert [line.line_id for line in store.lines()] == ['42']
        assert store.get('42').quantity == 3

    def test_concurrent_adds(self, store, plain_product):
        """Adds from several threads never duplicate a line or lose units."""
        def worker():
            for _ in range(10):
                store.add(plain_product, 1)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 1
        assert store.get('rice-1kg').quantity == 50


class TestSetQuantity:
    """Tests for set_quantity, steppers and removal."""

    def test_set_quantity_reprices(self, store, tiered_product):
        store.add(tiered_product, 1)
        store.set_quantity('dal-500g', 48)

        line = store.get('dal-500g')
        assert (line.quantity, line.unit_price) == (48, Decimal('358'))

    def test_set_quantity_zero_removes(self, store, plain_product):
        store.add(plain_product, 4)
        result = store.set_quantity('rice-1kg', 0)

        assert result.removed
        assert 'rice-1kg' not in store

    def test_set_quantity_clamps(self, store, low_stock_product, advisories):
        store.add(low_stock_product, 1)
        store.set_quantity(42, 50)

        assert store.get(42).quantity == 5
        assert _kinds(advisories) == [AdvisoryKind.STOCK_INSUFFICIENT]

    def test_set_quantity_unknown_line(self, store):
        result = store.set_quantity('missing', 3)
        assert result.line is None
        assert not result.removed

    def test_clean_recreation(self, store, clock, time_source, tiered_product):
        """Remove then add gives a fresh line with a freshly resolved price."""
        store.add(tiered_product, 20)
        store.set_quantity('dal-500g', 0)

        time_source.set_hour(19)
        clock.poll()
        store.add(tiered_product, 2)

        assert len(store) == 1
        line = store.get('dal-500g')
        assert (line.quantity, line.unit_price) == (2, Decimal('350'))

    def test_input_rejects_non_numeric(self, store, plain_product, advisories):
        store.add(plain_product, 4)
        result = store.set_quantity_from_input('rice-1kg', '4.5')

        assert result.rejected
        assert result.line.quantity == 4
        assert advisories[-1].message == 'Invalid quantity'

    def test_input_accepts_digits(self, store, plain_product):
        store.add(plain_product, 4)
        store.set_quantity_from_input('rice-1kg', ' 7 ')
        assert store.get('rice-1kg').quantity == 7

    def test_increment_and_decrement(self, store, plain_product):
        store.add(plain_product, 2)
        store.increment('rice-1kg')
        assert store.get('rice-1kg').quantity == 3

        store.decrement('rice-1kg')
        store.decrement('rice-1kg')
        assert store.get('rice-1kg').quantity == 1

        result = store.decrement('rice-1kg')
        assert result.removed
        assert len(store) == 0

    def test_decrement_at_minimum_removes(self, store, min_order_product):
        store.add(min_order_product, 6)
        store.decrement('eggs-tray')
        assert 'eggs-tray' not in store

    def test_remove_is_idempotent(self, store, plain_product):
        store.add(plain_product, 1)
        assert store.remove('rice-1kg').removed
        assert not store.remove('rice-1kg').removed

    def test_clear(self, store, plain_product, tiered_product):
        store.add(plain_product, 1)
        store.add(tiered_product, 1)
        store.clear()
        assert len(store) == 0
        assert store.total_items() == 0


class TestReprice:
    """Tests for reprice_all."""

    def test_reprice_keeps_quantity(self, store, tiered_product):
        store.add(tiered_product, 3)

        changed = store.reprice_all(True)

        line = store.get('dal-500g')
        assert changed == 1
        assert (line.quantity, line.unit_price) == (3, Decimal('350'))

    def test_reprice_without_change(self, store, tiered_product):
        store.add(tiered_product, 3)
        assert store.reprice_all(False) == 0


class TestSerialization:
    """Tests for serialize / deserialize."""

    def test_restore_lines(self, store, clock, tiered_product, variant_product):
        store.add(tiered_product, 13)
        store.add(variant_product, 2, variant={'size': '1l', 'pack': '1'})

        restored = CartLineStore.deserialize(store.serialize(), clock=clock)

        assert restored.lines() == store.lines()

    def test_restored_line_reprices_without_catalog(self, store, clock, tiered_product):
        store.add(tiered_product, 13)
        restored = CartLineStore.deserialize(store.serialize(), clock=clock)

        restored.set_quantity('dal-500g', 50)

        assert restored.get('dal-500g').unit_price == Decimal('358')

    def test_unreadable_lines_skipped(self, clock):
        data = {'lines': [{'line_id': 'x'}, {'line_id': 'y', 'quantity': 'two', 'unit_price': '1'}]}
        assert len(CartLineStore.deserialize(data, clock=clock)) == 0

    def test_items_below_minimum_after_restore(self, clock, min_order_product):
        stale = CartLine(
            line_id='eggs-tray',
            product_id='eggs-tray',
            quantity=2,
            unit_price=Decimal('60'),
            snapshot=min_order_product.pricing_snapshot(),
            stock_ceiling=30,
            min_order_quantity=6,
        )
        restored = CartLineStore.deserialize({'lines': [stale.to_dict()]}, clock=clock)

        assert [line.line_id for line in restored.items_below_minimum()] == ['eggs-tray']
