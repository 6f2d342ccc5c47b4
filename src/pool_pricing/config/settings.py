"""
Centralized settings and path configuration for the pool pricing package.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


DATA_DIR_ENV = 'POOL_PRICING_DATA_DIR'


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    # Catalog input files
    products_csv: Path
    set_addons_csv: Path
    mapping_rules_csv: Path
    set_dimension_map_json: Path

    # Output files
    compiled_rules: Path
    build_report: Path

    # Skeleton addon products and their default pricing
    sharp_corners_code: str = 'PRIPLATEK-OSTRE-ROHY'
    thickness_8mm_code: str = 'PRIPLATEK-8MM'
    sharp_corners_percentage: float = 10.0
    thickness_8mm_price_per_m2: float = 650.0

    # Quotes
    quote_validity_days: int = 30
    quote_number_prefix: str = 'NAB'
    order_number_prefix: str = 'OBJ'
    production_number_prefix: str = 'VYR'

    # Catalog snapshot refresh in the API process
    catalog_cache_ttl_seconds: float = 3600.0

    @classmethod
    def load(cls, project_root: Optional[Path] = None, data_dir: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure."""
        root = project_root or get_project_root()

        env_dir = os.environ.get(DATA_DIR_ENV)
        if data_dir is None:
            data_dir = Path(env_dir) if env_dir else Path(__file__).resolve().parent.parent / 'data' / 'catalog'

        return cls(
            project_root=root,
            data_dir=data_dir,
            products_csv=data_dir / 'products.csv',
            set_addons_csv=data_dir / 'set_addons.csv',
            mapping_rules_csv=data_dir / 'mapping_rules.csv',
            set_dimension_map_json=data_dir / 'set_dimension_map.json',
            compiled_rules=data_dir / 'compiled_rules.json',
            build_report=data_dir / 'outputs' / 'build_report.json',
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
