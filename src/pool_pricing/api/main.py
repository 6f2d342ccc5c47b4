import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .. import __version__
from ..engine.catalog_resolver import resolve_all
from ..engine.geometry import (
    calculate_perimeter,
    calculate_surface,
    calculate_volume,
    describe_dimensions,
    format_perimeter,
    format_surface,
    format_volume,
)
from ..engine.models import PoolDimensions, POOL_SHAPES
from ..engine.price_calculator import describe_price, round_price
from .quotes_api import ConfigurationModel, DimensionsModel, SkeletonAddonsModel, skeleton_options
from .quotes_api import router as quotes_router
from .rules_api import router as rules_router
from .state import AppState, get_app_state

logger = logging.getLogger(__name__)


class GeometryRequest(BaseModel):
    pool_shape: str
    dimensions: DimensionsModel


class GenerateItemsRequest(BaseModel):
    configuration: ConfigurationModel
    skeleton_addons: Optional[SkeletonAddonsModel] = None


def create_app(app_state: Optional[AppState] = None) -> FastAPI:
    app = FastAPI(
        title="Pool Pricing API",
        description="Quote generation and pricing for pool configurations",
        version=__version__
    )
    app.state.pool_pricing = app_state or AppState()

    # Enable CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rules_router)
    app.include_router(quotes_router)

    @app.get("/")
    async def root():
        return {"status": "online", "message": "Pool Pricing API Active"}

    @app.get("/system/status")
    async def get_status(app_state: AppState = Depends(get_app_state)):
        settings = app_state.settings
        has_report = settings.build_report.exists()
        try:
            catalog = app_state.catalog()
        except FileNotFoundError as e:
            logger.error("Catalog unavailable: %s", e)
            return {"engine_active": False, "error": str(e)}
        return {
            "engine_active": True,
            "products_count": len(catalog.products),
            "active_products_count": len(catalog.active_products()),
            "rules_loaded": bool(catalog.mapping_rules),
            "rules_count": len(catalog.mapping_rules),
            "unassigned_rules": sum(1 for r in catalog.mapping_rules if r.active and not r.product_id),
            "set_sizes": len(catalog.set_dimension_map),
            "catalog_last_build": settings.build_report.stat().st_mtime if has_report else None
        }

    @app.post("/api/geometry")
    async def geometry(req: GeometryRequest):
        if req.pool_shape not in POOL_SHAPES:
            raise HTTPException(status_code=400, detail=f"Unknown pool shape '{req.pool_shape}'")
        dims = PoolDimensions.from_dict(req.dimensions.model_dump())
        surface = calculate_surface(req.pool_shape, dims)
        perimeter = calculate_perimeter(req.pool_shape, dims)
        volume = calculate_volume(req.pool_shape, dims)
        return {
            "surface": surface,
            "perimeter": perimeter,
            "volume": volume,
            "formatted": {
                "surface": format_surface(surface),
                "perimeter": format_perimeter(perimeter),
                "volume": format_volume(volume),
                "dimensions": describe_dimensions(dims, req.pool_shape),
            },
        }

    @app.get("/api/catalog/prices")
    async def catalog_prices(
        pool_shape: Optional[str] = None,
        depth: Optional[float] = None,
        diameter: Optional[float] = None,
        width: Optional[float] = None,
        length: Optional[float] = None,
        category: Optional[str] = None,
        app_state: AppState = Depends(get_app_state),
    ):
        """Effective price of every active product for an optional pool."""
        catalog = app_state.catalog()
        products = catalog.active_products()
        dims = PoolDimensions(depth=depth, diameter=diameter, width=width, length=length)
        resolved = resolve_all(products, pool_shape, dims if pool_shape else None)

        result = []
        for product in products:
            if category and product.category != category:
                continue
            calculated = resolved[product.id]
            result.append({
                "id": product.id,
                "code": product.code,
                "name": product.name,
                "category": product.category,
                "price_type": calculated.price_type,
                "price": round_price(calculated.price),
                "description": describe_price(calculated),
                "fallback_reason": calculated.fallback_reason,
            })
        return result

    @app.post("/api/quotes/generate-items")
    async def generate_items(req: GenerateItemsRequest, app_state: AppState = Depends(get_app_state)):
        """Generate priced quote lines without storing a quote."""
        result = app_state.generator().generate(
            req.configuration.to_configuration(),
            skeleton_options(req.skeleton_addons),
        )
        return {
            "items": [dict(item.to_insert_dict(), source=item.source, rule_id=item.rule_id) for item in result.items],
            "subtotal": result.subtotal,
            "pool_product_id": result.pool_product_id,
            "used_set": result.used_set,
            "warnings": result.warnings,
            "trace": jsonable_encoder(result.trace),
        }

    return app


app = create_app()
