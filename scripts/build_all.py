#!/usr/bin/env python
"""
Build pipeline - compiles mapping rules, checks the catalog and runs tests.

Usage:
    python scripts/build_all.py
    python scripts/build_all.py --migrate-triggers
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from pool_pricing.config.settings import get_settings
from pool_pricing.data.catalog_loader import build_catalog_report
from pool_pricing.rules.compile_rules import compile_rules, migrate_addon_triggers


def main():
    settings = get_settings()

    print("=" * 60)
    print("POOL PRICING BUILD PIPELINE")
    print("=" * 60)
    print()

    if '--migrate-triggers' in sys.argv:
        print("[0/3] Migrating set addon triggers...")
        migrate_addon_triggers(settings.set_addons_csv)
        print()

    print("[1/3] Compiling mapping rules...")
    success, rules, errors = compile_rules(settings.mapping_rules_csv, settings.compiled_rules)
    if not success:
        print("\n❌ BUILD FAILED")
        for error in errors:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[2/3] Checking catalog...")
    report = build_catalog_report(settings, verbose=True)

    if report["status"] != "success":
        print("\n❌ BUILD FAILED")
        for error in report["errors"]:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[3/3] Running tests...")

    import subprocess
    test_result = subprocess.run(
        [sys.executable, '-m', 'pytest', 'tests', '-q', '--tb=short'],
        cwd=Path(__file__).parent.parent
    )

    if test_result.returncode != 0:
        print("\n❌ TESTS FAILED")
        sys.exit(1)

    metrics = report['metrics']
    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    print(f"  Active products: {metrics['active_product_count']}")
    print(f"  Sets: {metrics['set_count']} ({metrics['set_addon_count']} addons)")
    print(f"  Mapping rules: {metrics['mapping_rule_count']} ({metrics['unassigned_rules']} without product)")
    print()
    print("Price types:")
    for price_type, count in metrics.get('by_price_type', {}).items():
        print(f"  {price_type}: {count}")
    if report["warnings"]:
        print()
        print(f"⚠️  {len(report['warnings'])} catalog warnings (see {settings.build_report})")


if __name__ == "__main__":
    main()
