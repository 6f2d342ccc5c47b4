import json

import pytest

from pool_pricing.cache import TTLCache
from pool_pricing.config.settings import DATA_DIR_ENV, get_settings, reset_settings
from pool_pricing.data.catalog_loader import (
    build_catalog_report,
    catalog_warnings,
    load_catalog,
    load_products,
)
from pool_pricing.rules.compile_rules import compile_rules


def test_sample_catalog_loads(catalog):
    assert len(catalog.products) == 22
    assert len(catalog.active_products()) == 21
    assert catalog.set_dimension_map == {"6-3": "SET-6-3", "7-3.5": "SET-7-35"}

    thick = catalog.get_product('priplatek-8mm')
    assert thick.price_type == 'surface_coefficient'
    assert thick.price_coefficient == 650
    assert thick.prerequisite_product_ids == ['priplatek-ostre-rohy']
    assert thick.prerequisite_pool_shapes == ['circle']

    assert catalog.get_product('technologie-sachta').required_surcharge_ids == ['montaz-technologie']
    assert not catalog.get_product('stare-schody').active
    assert catalog.get_product('unknown') is None


def test_set_addons_attached_in_order(catalog):
    set_product = catalog.get_product('set-6-3')
    assert set_product.is_set
    assert [a.id for a in set_product.set_addons] == [
        'set-6-3-hloubka-15', 'set-6-3-ostre-rohy', 'set-6-3-schody-sirka', 'set-6-3-zastreseni',
    ]
    depth = set_product.set_addons[0].trigger
    assert depth.kind == 'depth'
    assert depth.value == 1.5
    assert set_product.set_addons[1].trigger is None


def test_rules_fall_back_to_csv(catalog):
    assert len(catalog.mapping_rules) == 13
    assert catalog.mapping_rules[0].id == 'STAIRS-ROMAN'
    assert [r.sort_order for r in catalog.mapping_rules] == sorted(r.sort_order for r in catalog.mapping_rules)


def test_compiled_rules_take_precedence(settings):
    success, _, _ = compile_rules(settings.mapping_rules_csv, settings.compiled_rules, verbose=False)
    assert success
    settings.mapping_rules_csv.unlink()

    assert len(load_catalog(settings).mapping_rules) == 13


def test_catalog_warnings(catalog):
    warnings = catalog_warnings(catalog)
    assert "Set size 7-3.5 maps to SET-7-35, which is not an active product" in warnings
    assert "1 pravidel nemá přiřazený produkt" in warnings
    assert not any("chained percentages" in w for w in warnings)


def test_missing_products_file(settings):
    settings.products_csv.unlink()
    with pytest.raises(FileNotFoundError):
        load_catalog(settings)

    report = build_catalog_report(settings, verbose=False)
    assert report["status"] == "failed"
    assert report["errors"]


def test_build_report(settings):
    report = build_catalog_report(settings, verbose=False)

    assert report["status"] == "success"
    assert report["metrics"]["product_count"] == 22
    assert report["metrics"]["active_product_count"] == 21
    assert report["metrics"]["set_count"] == 1
    assert report["metrics"]["set_addon_count"] == 4
    assert report["metrics"]["unassigned_rules"] == 1
    assert report["metrics"]["by_price_type"]["percentage"] == 2
    assert set(report["input_files"]) == {"products", "set_addons", "mapping_rules", "set_dimension_map"}

    saved = json.loads(settings.build_report.read_text(encoding='utf-8'))
    assert saved["metrics"] == report["metrics"]


def test_duplicate_product_ids_and_legacy_types(tmp_path):
    path = tmp_path / 'products.csv'
    path.write_text(
        "id,name,unit_price,price_type,price_coefficient,active\n"
        "a,First,\"1000,5\",,,true\n"
        "a,Second,2000,,,true\n"
        "b,Liner,0,coefficient,120,false\n",
        encoding='utf-8',
    )
    products = load_products(path)
    assert [p.name for p in products] == ['First', 'Liner']
    assert products[0].unit_price == 1000.5
    assert products[0].unit == 'ks'
    assert products[0].category == 'jine'
    assert products[1].price_type == 'surface_coefficient'
    assert not products[1].active


def test_unknown_category_falls_back_to_jine(tmp_path):
    path = tmp_path / 'products.csv'
    path.write_text(
        "id,name,category,unit_price\n"
        "a,Filtr,filtrace,1000\n"
        "b,Schody,schodiste,2000\n",
        encoding='utf-8',
    )
    assert [p.category for p in load_products(path)] == ['jine', 'schodiste']


def test_data_dir_from_environment(monkeypatch, data_dir):
    monkeypatch.setenv(DATA_DIR_ENV, str(data_dir))
    reset_settings()
    try:
        settings = get_settings()
        assert settings.products_csv == data_dir / 'products.csv'
        assert get_settings() is settings
    finally:
        reset_settings()


# --- TTL cache ---

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_reloads_after_ttl():
    clock = FakeClock()
    loads = []
    cache = TTLCache(lambda: loads.append(clock.now) or len(loads), ttl_seconds=60, clock=clock)

    assert cache.get() == 1
    clock.now = 59
    assert cache.get() == 1
    assert cache.is_fresh()

    clock.now = 60
    assert not cache.is_fresh()
    assert cache.get() == 2
    assert cache.loaded_at == 60


def test_cache_invalidate():
    cache = TTLCache(lambda: object(), ttl_seconds=3600)
    first = cache.get()
    assert cache.get() is first
    cache.invalidate()
    assert cache.loaded_at is None
    assert cache.get() is not first
