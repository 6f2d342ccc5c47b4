import os
import shutil
import sys
from pathlib import Path

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from pool_pricing.config.settings import Settings
from pool_pricing.data.catalog_loader import load_catalog
from pool_pricing.engine.models import Configuration, PoolDimensions
from pool_pricing.engine.quote_generator import QuoteGenerator

SAMPLE_DATA_DIR = Path(src_path) / 'pool_pricing' / 'data' / 'catalog'


@pytest.fixture
def data_dir(tmp_path):
    """Writable copy of the bundled sample catalog."""
    target = tmp_path / 'catalog'
    shutil.copytree(
        SAMPLE_DATA_DIR, target,
        ignore=shutil.ignore_patterns('outputs', 'compiled_rules.json'),
    )
    return target


@pytest.fixture
def settings(data_dir, tmp_path):
    return Settings.load(project_root=tmp_path, data_dir=data_dir)


@pytest.fixture
def catalog(settings):
    return load_catalog(settings)


@pytest.fixture
def generator(catalog, settings):
    return QuoteGenerator(catalog, settings=settings)


def make_config(shape='rectangle_rounded', pool_type='skimmer', **kwargs) -> Configuration:
    """Configuration with dimensions given as width/length/diameter/depth keywords."""
    dims = {k: kwargs.pop(k) for k in ('width', 'length', 'diameter', 'depth') if k in kwargs}
    return Configuration(pool_shape=shape, pool_type=pool_type, dimensions=PoolDimensions(**dims), **kwargs)
