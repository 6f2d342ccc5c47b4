"""
API state: one catalog cache and the services built on it.

Built once per app in create_app and reached from routes through the
get_app_state dependency.
"""
import logging
from typing import Optional

from fastapi import Request

from ..cache import TTLCache
from ..config.settings import get_settings, Settings
from ..data.catalog_loader import load_catalog
from ..engine.models import CatalogSnapshot
from ..engine.quote_generator import QuoteGenerator
from ..services.quote_service import QuoteService, QuoteStore
from ..services.rules_service import MappingRulesService

logger = logging.getLogger(__name__)


class AppState:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.catalog_cache: TTLCache[CatalogSnapshot] = TTLCache(
            lambda: load_catalog(self.settings),
            ttl_seconds=self.settings.catalog_cache_ttl_seconds,
        )
        self.quote_service = QuoteService(QuoteStore(), self.settings)
        self.rules_service = MappingRulesService(
            rules_csv_path=self.settings.mapping_rules_csv,
            compiled_rules_path=self.settings.compiled_rules,
            catalog_provider=self.catalog,
        )

    def catalog(self) -> CatalogSnapshot:
        return self.catalog_cache.get()

    def generator(self) -> QuoteGenerator:
        return QuoteGenerator(self.catalog(), settings=self.settings)

    def reload_data(self):
        """Drop the cached catalog so the next request reloads it."""
        logger.info("Catalog cache invalidated")
        self.catalog_cache.invalidate()


def get_app_state(request: Request) -> AppState:
    return request.app.state.pool_pricing
