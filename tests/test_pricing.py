import pytest

from pool_pricing.engine.catalog_resolver import find_percentage_chains, resolve_all
from pool_pricing.engine.models import PoolDimensions, Product
from pool_pricing.engine.prerequisites import check_product_prerequisites, collect_required_surcharges
from pool_pricing.engine.price_calculator import (
    PriceContext,
    build_price_context,
    calculate_price,
    describe_price,
    format_price,
    round_price,
)

RECT = PoolDimensions(width=3, length=6, depth=1.5)


def percentage(pid, ref, pct, minimum=None, unit_price=0.0):
    return Product(
        id=pid, name=pid, unit_price=unit_price, price_type='percentage',
        price_percentage=pct, price_reference_product_id=ref, price_minimum=minimum,
    )


def coefficient(pid, coef, unit='m2', unit_price=0.0):
    return Product(
        id=pid, name=pid, unit_price=unit_price, price_type='surface_coefficient',
        price_coefficient=coef, coefficient_unit=unit,
    )


def test_fixed_price():
    calculated = calculate_price(Product(id='a', name='A', unit_price=1500), PriceContext())
    assert calculated.price == 1500
    assert calculated.price_type == 'fixed'
    assert not calculated.fell_back


def test_percentage_of_reference():
    context = PriceContext(product_prices={'base': 1000})
    calculated = calculate_price(percentage('p', 'base', 10), context)
    assert calculated.price == pytest.approx(100)
    assert calculated.reference_price == 1000
    assert calculated.percentage_applied == 10
    assert not calculated.minimum_applied


def test_percentage_minimum():
    """10 % of 400 is 40, raised to the 50 CZK minimum."""
    context = PriceContext(product_prices={'base': 400})
    calculated = calculate_price(percentage('p', 'base', 10, minimum=50), context)
    assert calculated.price == 50
    assert calculated.minimum_applied
    assert describe_price(calculated) == "10% z 400 Kč (použito minimum)"


def test_percentage_falls_back_without_reference_price():
    calculated = calculate_price(percentage('p', 'missing', 10, unit_price=777), PriceContext())
    assert calculated.price == 777
    assert calculated.fallback_reason == "reference product missing has no price"


def test_percentage_not_configured_falls_back():
    product = Product(id='p', name='P', unit_price=300, price_type='percentage')
    calculated = calculate_price(product, PriceContext(product_prices={'x': 1}))
    assert calculated.price == 300
    assert calculated.fell_back


def test_surface_coefficient_m2_and_bm():
    context = build_price_context([], 'rectangle_rounded', RECT)
    assert calculate_price(coefficient('c', 650), context).price == pytest.approx(45 * 650)

    by_perimeter = calculate_price(coefficient('b', 320, unit='bm'), context)
    assert by_perimeter.price == pytest.approx(18 * 320)
    assert describe_price(by_perimeter) == "18.0 bm × 320 Kč"


def test_surface_coefficient_without_geometry_falls_back():
    calculated = calculate_price(coefficient('c', 650, unit_price=9999), PriceContext())
    assert calculated.price == 9999
    assert calculated.fallback_reason == "pool measurement unavailable"


def test_legacy_coefficient_type_is_surface_coefficient():
    product = Product(id='c', name='C', price_type='coefficient', price_coefficient=100)
    calculated = calculate_price(product, build_price_context([], 'rectangle_rounded', RECT))
    assert calculated.price_type == 'surface_coefficient'
    assert calculated.price == pytest.approx(4500)


def test_unknown_price_type_uses_unit_price():
    calculated = calculate_price(Product(id='x', name='X', unit_price=12, price_type='bulk'), PriceContext())
    assert calculated.price == 12
    assert calculated.fallback_reason == "unknown price type 'bulk'"


def test_resolve_all_orders_dependencies():
    """Percentage products see fixed and coefficient prices regardless of list order."""
    products = [
        percentage('of-fixed', 'base', 10),
        percentage('of-coef', 'liner', 50),
        coefficient('liner', 100),
        Product(id='base', name='Base', unit_price=1000),
    ]
    resolved = resolve_all(products, 'rectangle_rounded', RECT)

    assert resolved['base'].price == 1000
    assert resolved['liner'].price == pytest.approx(4500)
    assert resolved['of-fixed'].price == pytest.approx(100)
    assert resolved['of-coef'].price == pytest.approx(2250)


def test_resolve_all_applies_minimum_floor():
    surcharge = percentage('b', 'a', 10, minimum=50)

    resolved = resolve_all([Product(id='a', name='A', unit_price=1000), surcharge])
    assert resolved['b'].price == 100
    assert not resolved['b'].minimum_applied

    resolved = resolve_all([Product(id='a', name='A', unit_price=400), surcharge])
    assert resolved['b'].price == 50
    assert resolved['b'].minimum_applied


def test_percentage_chains_are_reported():
    products = [
        Product(id='base', name='Base', unit_price=1000),
        percentage('first', 'base', 10),
        percentage('second', 'first', 10),
    ]
    assert find_percentage_chains(products) == [('second', 'first')]


def test_round_price_half_up():
    assert round_price(2.5) == 3
    assert round_price(1234.4) == 1234
    assert round_price(17969.91) == 17970
    assert format_price(12345) == "12 345 Kč"


def test_prerequisites_block_until_present():
    sharp = Product(id='sharp', name='Ostré rohy')
    thick = Product(
        id='8mm', name='8 mm', prerequisite_product_ids=['sharp'], prerequisite_pool_shapes=['circle'],
    )
    catalog = [sharp, thick]

    blocked = check_product_prerequisites(thick, [], 'rectangle_sharp', catalog)
    assert not blocked.can_add
    assert [p.id for p in blocked.missing_prerequisites] == ['sharp']
    assert blocked.message == 'Pro přidání "8 mm" je nutné nejprve přidat: Ostré rohy'

    assert check_product_prerequisites(thick, ['sharp', None], 'rectangle_sharp', catalog).can_add

    on_circle = check_product_prerequisites(thick, [], 'circle', catalog)
    assert on_circle.can_add
    assert on_circle.skipped_due_to_shape


def test_required_surcharges_follow_chains_once():
    products = {
        'pump': Product(id='pump', name='Pump', required_surcharge_ids=['power']),
        'jet': Product(id='jet', name='Jet', required_surcharge_ids=['power', 'install']),
        'power': Product(id='power', name='Power', required_surcharge_ids=['revision']),
        'install': Product(id='install', name='Install'),
        'revision': Product(id='revision', name='Revision'),
    }
    added = [products['pump'], products['jet']]
    result = collect_required_surcharges(added, {'pump', 'jet'}, products)
    assert result == ['power', 'install', 'revision']


def test_required_surcharges_skip_products_already_added():
    products = {
        'pump': Product(id='pump', name='Pump', required_surcharge_ids=['power']),
        'power': Product(id='power', name='Power'),
    }
    assert collect_required_surcharges([products['pump']], {'pump', 'power'}, products) == []


def test_circular_surcharges_terminate():
    products = {
        'a': Product(id='a', name='A', required_surcharge_ids=['b']),
        'b': Product(id='b', name='B', required_surcharge_ids=['c']),
        'c': Product(id='c', name='C', required_surcharge_ids=['b', 'a']),
    }
    assert collect_required_surcharges([products['a']], {'a'}, products) == ['b', 'c']
