"""
Quote generation against the bundled sample catalog.

Sample data highlights:
- SET-6-3 covers 6 × 3 m rectangles; its addons trigger on depth 1.5,
  sharp corners (legacy name) and full-width stairs
- skeletons BAZ-OBD-SK-4-8-1.5 (150 000) and BAZ-KRU-SK-4-1.2 (80 000)
- technology and heat pump pull in required surcharges
"""
import pytest

from pool_pricing.engine.geometry import calculate_surface
from pool_pricing.engine.models import CatalogSnapshot, PoolDimensions, Product, ProductMappingRule
from pool_pricing.engine.price_calculator import round_price
from pool_pricing.engine.quote_generator import QuoteGenerator, SkeletonAddonOptions, set_dimension_key

from conftest import make_config


def names(result):
    return [item.name for item in result.items]


def test_set_replaces_skeleton_for_exact_dimensions(generator):
    config = make_config(width=3, length=6, depth=1.5, stairs='none')
    result = generator.generate(config)

    assert result.used_set
    assert result.pool_product_id == 'set-6-3'
    assert names(result) == ["Bazénový set 6 × 3 m", "Hloubka 1,5 m", "Doprava"]
    assert [item.source for item in result.items] == ['set', 'set_addon', 'delivery']
    assert result.items[0].unit_price == 189000
    assert result.items[1].unit_price == 12000
    assert result.subtotal == 201000
    assert [item.sort_order for item in result.items] == [0, 1, 2]


def test_set_addons_follow_shape_and_stairs(generator):
    config = make_config('rectangle_sharp', width=3, length=6, depth=1.5, stairs='full_width')
    result = generator.generate(config)

    assert names(result) == [
        "Bazénový set 6 × 3 m", "Hloubka 1,5 m", "Ostré rohy", "Schody přes šířku", "Doprava",
    ]
    assert result.subtotal == 189000 + 12000 + 18000 + 14000


def test_set_addon_depth_must_match(generator):
    result = generator.generate(make_config(width=3, length=6, depth=1.2))
    assert result.used_set
    assert "Hloubka 1,5 m" not in names(result)


def test_set_dimension_key_is_length_then_width():
    assert set_dimension_key(make_config(width=3, length=6, depth=1.5)) == "6-3"
    assert set_dimension_key(make_config(width=3.5, length=7, depth=1.5)) == "7-3.5"
    assert set_dimension_key(make_config('circle', diameter=4, depth=1.2)) is None


def test_skeleton_with_merged_addons_and_accessories(generator):
    """Sharp 8 × 4 × 1.5 m skimmer with 8mm walls and a full set of accessories."""
    config = make_config(
        'rectangle_sharp', width=4, length=8, depth=1.5,
        stairs='roman', technology='shaft', lighting='led', heating='heat_pump',
    )
    result = generator.generate(config, SkeletonAddonOptions(thickness_8mm=True))

    assert not result.used_set
    assert result.pool_product_id == 'skel-obd-sk-4-8-15'

    skeleton = result.items[0]
    assert skeleton.source == 'skeleton'
    assert skeleton.category == 'skelety'
    assert skeleton.name == "Skelet 8 × 4 × 1.5 m (ostré rohy, 8mm)"
    # 150 000 + 10 % sharp corners + 68 m² × 650
    assert skeleton.unit_price == 150000 + 15000 + 44200
    assert skeleton.total_price == skeleton.unit_price

    assert names(result)[1:] == [
        "Románské schody",
        "Technologická šachta",
        "LED světlo",
        "Tepelné čerpadlo",
        "Montáž technologie",
        "Elektro přípojka",
        "Doprava",
    ]
    lighting = result.items[3]
    assert lighting.quantity == 2
    assert lighting.total_price == 13000
    assert lighting.rule_id == 'LIGHTING-LED'
    assert [i.source for i in result.items[5:7]] == ['required_surcharge', 'required_surcharge']
    assert result.subtotal == 209200 + 15000 + 45000 + 13000 + 52000 + 8000 + 4500


def test_rounded_skeleton_has_no_addons_by_default(generator):
    result = generator.generate(make_config(width=4, length=8, depth=1.5))
    assert result.items[0].name == "Skelet 8 × 4 × 1.5 m"
    assert result.items[0].unit_price == 150000


def test_8mm_selects_sharp_corners_on_rectangles(generator):
    options = SkeletonAddonOptions(sharp_corners=False, thickness_8mm=True)
    result = generator.generate(make_config(width=4, length=8, depth=1.5), options)
    assert result.items[0].name == "Skelet 8 × 4 × 1.5 m (ostré rohy, 8mm)"


def test_sharp_corners_can_be_chosen_alone(generator):
    options = SkeletonAddonOptions(sharp_corners=True)
    result = generator.generate(make_config(width=4, length=8, depth=1.5), options)
    assert result.items[0].name == "Skelet 8 × 4 × 1.5 m (ostré rohy)"
    assert result.items[0].unit_price == 165000


def test_circle_never_gets_sharp_corners(generator):
    config = make_config('circle', diameter=4, depth=1.2)
    result = generator.generate(config, SkeletonAddonOptions(sharp_corners=True, thickness_8mm=True))

    surface = calculate_surface('circle', PoolDimensions(diameter=4, depth=1.2))
    assert result.items[0].name == "Skelet Ø4 × 1.2 m (8mm)"
    assert result.items[0].unit_price == 80000 + round_price(surface * 650)


def test_missing_pool_product_is_a_warning(generator):
    result = generator.generate(make_config(width=5, length=10, depth=1.5, lighting='led'))

    assert result.pool_product_id is None
    assert "Pool product not found for code BAZ-OBD-SK-5-10-1.5" in result.warnings
    assert names(result) == ["LED světlo", "Doprava"]


def test_first_rule_in_sort_order_wins(generator):
    result = generator.generate(make_config(width=4, length=8, depth=1.5, stairs='roman'))
    stairs = [i for i in result.items if i.source == 'mapping_rule']
    assert [i.product_id for i in stairs] == ['schody-romanske']


def test_rule_shape_and_type_filters(generator):
    circle = generator.generate(make_config('circle', diameter=4, depth=1.2, stairs='corner_triangle'))
    assert "Trojúhelníkové schody" not in names(circle)

    overflow = generator.generate(make_config(pool_type='overflow', width=4, length=8, depth=1.5, technology='wall'))
    assert overflow.pool_product_id == 'skel-obd-pr-4-8-15'
    assert "Technologie ve stěně" not in names(overflow)


def test_unassigned_and_inactive_rules_warn(generator):
    config = make_config(width=4, length=8, depth=1.5, water_treatment='chlorine', stairs='with_bench')
    result = generator.generate(config)

    assert 'Mapping rule "Chlorová úprava" has no product assigned' in result.warnings
    assert any('stare-schody' in w for w in result.warnings)
    assert names(result) == ["Skelet 8 × 4 × 1.5 m", "Doprava"]


def test_shared_surcharge_added_once(generator):
    config = make_config(width=4, length=8, depth=1.5, counterflow='with_counterflow', heating='heat_pump')
    result = generator.generate(config)
    assert names(result).count("Elektro přípojka") == 1


def test_percentage_accessory_uses_catalog_reference(generator):
    result = generator.generate(make_config(width=4, length=8, depth=1.5, heating='preparation'))
    preparation = next(i for i in result.items if i.product_id == 'priprava-ohrevu')
    assert preparation.unit_price == 7500


def small_catalog(extra_products=(), rules=()):
    products = [
        Product(id='skel', code='BAZ-OBD-SK-3-6-1.5', name='Skelet', unit_price=100000, category='bazeny'),
        Product(id='lamp', name='Lampa', unit_price=2000, category='osvetleni'),
        *extra_products,
    ]
    return CatalogSnapshot(products=products, mapping_rules=list(rules))


def test_delivery_not_added_when_quote_has_delivery(settings):
    catalog = small_catalog(
        extra_products=[Product(id='truck', name='Doprava kamionem', unit_price=9000, category='doprava')],
        rules=[ProductMappingRule(id='R1', name='Doprava', config_field='roofing', config_value='with_roofing',
                                  product_id='truck')],
    )
    result = QuoteGenerator(catalog, settings=settings).generate(
        make_config(width=3, length=6, depth=1.5, roofing='with_roofing'),
    )
    assert names(result) == ['Skelet', 'Doprava kamionem']


def test_product_is_not_added_twice(settings):
    rules = [
        ProductMappingRule(id='R1', name='LED', config_field='lighting', config_value='led', product_id='lamp'),
        ProductMappingRule(id='R2', name='Solar', config_field='heating', config_value='heat_pump', product_id='lamp'),
    ]
    result = QuoteGenerator(small_catalog(rules=rules), settings=settings).generate(
        make_config(width=3, length=6, depth=1.5, lighting='led', heating='heat_pump'),
    )
    assert names(result) == ['Skelet', 'Lampa', 'Doprava']


def test_explicit_set_dimension_map_overrides_catalog(settings):
    catalog = small_catalog(extra_products=[
        Product(id='set', code='SET-X', name='Set X', unit_price=150000, category='sety'),
    ])
    generator = QuoteGenerator(catalog, set_dimension_map={"6-3": "SET-X"}, settings=settings)
    result = generator.generate(make_config(width=3, length=6, depth=1.5))
    assert result.used_set
    assert result.items[0].category == 'sety'


def test_trace_records_steps(generator):
    result = generator.generate(make_config(width=3, length=6, depth=1.5))
    steps = [t.step for t in result.trace]
    assert steps[0] == "Geometry"
    assert "Set Lookup" in steps
    assert steps[-1] == "Subtotal"
    assert "Geometry: Pool surface = 45.0 m²" in result.get_trace_text()


def test_insert_dict_shape(generator):
    item = generator.generate(make_config(width=3, length=6, depth=1.5)).items[0]
    assert set(item.to_insert_dict()) == {
        'product_id', 'name', 'description', 'category', 'quantity',
        'unit', 'unit_price', 'total_price', 'sort_order',
    }
