"""
Quotes API - FastAPI router for quotes, variants, versions and orders.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.models import Configuration
from ..engine.quote_generator import SkeletonAddonOptions
from ..quotes.exceptions import (
    MissingPrerequisitesError,
    OrderAlreadyExistsError,
    OrderNotFoundError,
    ProductionOrderExistsError,
    ProductNotFoundError,
    QuoteError,
    QuoteItemNotFoundError,
    QuoteNotFoundError,
    VariantNotFoundError,
    VersionNotFoundError,
)
from ..quotes.totals import needs_comparison
from .state import AppState, get_app_state

router = APIRouter(prefix="/api", tags=["quotes"])

NOT_FOUND_ERRORS = (
    QuoteNotFoundError, QuoteItemNotFoundError, VersionNotFoundError,
    VariantNotFoundError, OrderNotFoundError, ProductNotFoundError,
)
CONFLICT_ERRORS = (OrderAlreadyExistsError, ProductionOrderExistsError)


def domain_error(e: QuoteError) -> HTTPException:
    """Map a quote domain error onto an HTTP status."""
    if isinstance(e, NOT_FOUND_ERRORS):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, CONFLICT_ERRORS):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, MissingPrerequisitesError):
        return HTTPException(
            status_code=400,
            detail={"error": e.message, "missing_product_ids": e.missing_product_ids},
        )
    return HTTPException(status_code=400, detail=e.message)


# Pydantic models for API
class DimensionsModel(BaseModel):
    depth: Optional[float] = None
    diameter: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None


class SkeletonAddonsModel(BaseModel):
    sharp_corners: Optional[bool] = None
    thickness_8mm: bool = False


class ConfigurationModel(BaseModel):
    """Configurator submission (or its manual equivalent)."""
    pool_shape: str
    pool_type: str
    dimensions: DimensionsModel
    id: Optional[str] = None
    color: Optional[str] = None
    stairs: Optional[str] = None
    technology: Optional[str] = None
    lighting: Optional[str] = None
    counterflow: Optional[str] = None
    water_treatment: Optional[str] = None
    heating: Optional[str] = None
    roofing: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_address: Optional[str] = None
    message: Optional[str] = None

    def to_configuration(self) -> Configuration:
        return Configuration.from_dict(self.model_dump())


def skeleton_options(model: Optional[SkeletonAddonsModel]) -> Optional[SkeletonAddonOptions]:
    if model is None:
        return None
    return SkeletonAddonOptions(sharp_corners=model.sharp_corners, thickness_8mm=model.thickness_8mm)


class QuoteItemModel(BaseModel):
    product_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: str = 'jine'
    quantity: float = 1
    unit: str = 'ks'
    unit_price: float
    total_price: float
    sort_order: Optional[int] = None
    variant_ids: list[str] = []


class QuoteCreate(BaseModel):
    """Manual quote, or one generated from a configuration."""
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    configuration: Optional[ConfigurationModel] = None
    skeleton_addons: Optional[SkeletonAddonsModel] = None
    generate_items: bool = True
    items: list[QuoteItemModel] = []
    discount_percent: float = 0
    discount_amount: float = 0
    valid_until: Optional[date] = None
    notes: Optional[str] = None


class QuoteUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    valid_until: Optional[date] = None
    notes: Optional[str] = None


class ItemsReplace(BaseModel):
    items: list[QuoteItemModel]


class CatalogItemAdd(BaseModel):
    product_id: str
    quantity: float = 1


class DiscountUpdate(BaseModel):
    discount_percent: float = 0
    discount_amount: float = 0


class StatusUpdate(BaseModel):
    status: str


class VariantCreate(BaseModel):
    variant_key: str
    variant_name: Optional[str] = None
    discount_percent: float = 0
    discount_amount: float = 0


class VersionCreate(BaseModel):
    notes: Optional[str] = None


class ProductionCreate(BaseModel):
    order_id: str


def _item_dict(item: QuoteItemModel) -> dict:
    data = item.model_dump()
    if data['sort_order'] is None:
        data.pop('sort_order')
    return data


def _quote_detail(app_state: AppState, quote_id: str) -> dict:
    service = app_state.quote_service
    quote = service.get_quote(quote_id)
    variant_ids = service.get_item_variant_ids(quote_id)
    variants = service.get_variants(quote_id)
    items = [dict(item.to_dict(), variant_ids=variant_ids.get(item.id, [])) for item in service.get_items(quote_id)]
    return jsonable_encoder({
        **quote.to_dict(),
        "items": items,
        "variants": [v.to_dict() for v in variants],
        "needs_comparison": needs_comparison(variants),
    })


# Quotes

@router.get("/quotes")
async def list_quotes(status: Optional[str] = None, app_state: AppState = Depends(get_app_state)):
    """List quotes, newest first."""
    return jsonable_encoder([q.to_dict() for q in app_state.quote_service.list_quotes(status)])


@router.post("/quotes", status_code=201)
async def create_quote(req: QuoteCreate, app_state: AppState = Depends(get_app_state)):
    """Create a quote; with a configuration and no items the items are generated."""
    service = app_state.quote_service
    warnings = []
    try:
        if req.configuration is not None and req.generate_items and not req.items:
            config = req.configuration.to_configuration()
            quote, result = service.create_quote_from_configuration(
                config, app_state.generator(), skeleton_options(req.skeleton_addons),
            )
            warnings = result.warnings
            updates = {k: v for k, v in req.model_dump(include=set(QuoteUpdate.model_fields)).items() if v is not None}
            if updates:
                service.update_quote(quote.id, updates)
            if req.discount_percent or req.discount_amount:
                service.set_discount(quote.id, req.discount_percent, req.discount_amount)
        else:
            if not req.customer_name:
                raise HTTPException(status_code=400, detail="customer_name is required")
            quote = service.create_quote(
                customer_name=req.customer_name,
                customer_email=req.customer_email,
                customer_phone=req.customer_phone,
                customer_address=req.customer_address,
                configuration=req.configuration.to_configuration() if req.configuration else None,
                items=[_item_dict(i) for i in req.items],
                discount_percent=req.discount_percent,
                discount_amount=req.discount_amount,
                valid_until=req.valid_until,
                notes=req.notes,
            )
    except QuoteError as e:
        raise domain_error(e)

    detail = _quote_detail(app_state, quote.id)
    detail["warnings"] = warnings
    return detail


@router.get("/quotes/{quote_id}")
async def get_quote(quote_id: str, app_state: AppState = Depends(get_app_state)):
    try:
        return _quote_detail(app_state, quote_id)
    except QuoteError as e:
        raise domain_error(e)


@router.patch("/quotes/{quote_id}")
async def update_quote(quote_id: str, updates: QuoteUpdate, app_state: AppState = Depends(get_app_state)):
    try:
        app_state.quote_service.update_quote(quote_id, updates.model_dump(exclude_unset=True))
        return _quote_detail(app_state, quote_id)
    except QuoteError as e:
        raise domain_error(e)


@router.delete("/quotes/{quote_id}")
async def delete_quote(quote_id: str, app_state: AppState = Depends(get_app_state)):
    try:
        app_state.quote_service.delete_quote(quote_id)
    except QuoteError as e:
        raise domain_error(e)
    return {"success": True}


@router.put("/quotes/{quote_id}/items")
async def replace_items(quote_id: str, req: ItemsReplace, app_state: AppState = Depends(get_app_state)):
    """Replace all items of a quote."""
    try:
        app_state.quote_service.replace_items(quote_id, [_item_dict(i) for i in req.items])
        return _quote_detail(app_state, quote_id)
    except QuoteError as e:
        raise domain_error(e)


@router.post("/quotes/{quote_id}/items", status_code=201)
async def add_catalog_item(quote_id: str, req: CatalogItemAdd, app_state: AppState = Depends(get_app_state)):
    """Add a catalog product, checking its prerequisites."""
    try:
        item = app_state.quote_service.add_catalog_item(quote_id, req.product_id, app_state.catalog(), req.quantity)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(item.to_dict())


@router.put("/quotes/{quote_id}/discount")
async def set_discount(quote_id: str, req: DiscountUpdate, app_state: AppState = Depends(get_app_state)):
    try:
        app_state.quote_service.set_discount(quote_id, req.discount_percent, req.discount_amount)
        return _quote_detail(app_state, quote_id)
    except QuoteError as e:
        raise domain_error(e)


@router.post("/quotes/{quote_id}/status")
async def set_status(quote_id: str, req: StatusUpdate, app_state: AppState = Depends(get_app_state)):
    try:
        quote = app_state.quote_service.set_status(quote_id, req.status)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(quote.to_dict())


# Variants

@router.post("/quotes/{quote_id}/variants", status_code=201)
async def add_variant(quote_id: str, req: VariantCreate, app_state: AppState = Depends(get_app_state)):
    try:
        variant = app_state.quote_service.add_variant(
            quote_id, req.variant_key, req.variant_name, req.discount_percent, req.discount_amount,
        )
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(variant.to_dict())


@router.post("/quotes/{quote_id}/variants/{variant_id}/items/{item_id}")
async def assign_item(quote_id: str, variant_id: str, item_id: str, app_state: AppState = Depends(get_app_state)):
    try:
        variant = app_state.quote_service.assign_item_to_variant(quote_id, item_id, variant_id)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(variant.to_dict())


@router.put("/quotes/{quote_id}/variants/{variant_id}/discount")
async def set_variant_discount(
    quote_id: str, variant_id: str, req: DiscountUpdate, app_state: AppState = Depends(get_app_state),
):
    try:
        variant = app_state.quote_service.set_variant_discount(
            quote_id, variant_id, req.discount_percent, req.discount_amount,
        )
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(variant.to_dict())


# Versions

@router.get("/quotes/{quote_id}/versions")
async def list_versions(quote_id: str, app_state: AppState = Depends(get_app_state)):
    """Saved versions, newest first."""
    try:
        versions = app_state.quote_service.list_versions(quote_id)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder([v.to_dict() for v in versions])


@router.post("/quotes/{quote_id}/versions", status_code=201)
async def create_version(quote_id: str, req: VersionCreate, app_state: AppState = Depends(get_app_state)):
    try:
        version = app_state.quote_service.create_version(quote_id, req.notes)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(version.to_dict())


@router.post("/quotes/{quote_id}/versions/{version_id}/restore")
async def restore_version(quote_id: str, version_id: str, app_state: AppState = Depends(get_app_state)):
    """Restore a version; the current state is saved as a backup version first."""
    try:
        _, backup = app_state.quote_service.restore_version(quote_id, version_id)
        version = app_state.quote_service.get_version(quote_id, version_id)
    except QuoteError as e:
        raise domain_error(e)
    return {
        "success": True,
        "message": f"Nabídka obnovena na verzi {version.version_number}",
        "backup_version": backup.version_number,
        "quote": _quote_detail(app_state, quote_id),
    }


# Orders

@router.post("/quotes/{quote_id}/convert", status_code=201)
async def convert_to_order(quote_id: str, app_state: AppState = Depends(get_app_state)):
    try:
        order = app_state.quote_service.convert_to_order(quote_id)
    except QuoteError as e:
        raise domain_error(e)
    return {"success": True, "order_id": order.id, "order_number": order.order_number}


@router.get("/orders")
async def list_orders(app_state: AppState = Depends(get_app_state)):
    return jsonable_encoder([o.to_dict() for o in app_state.quote_service.list_orders()])


@router.get("/orders/{order_id}")
async def get_order(order_id: str, app_state: AppState = Depends(get_app_state)):
    try:
        order = app_state.quote_service.get_order(order_id)
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(order.to_dict())


@router.get("/production")
async def list_production_orders(app_state: AppState = Depends(get_app_state)):
    return jsonable_encoder([p.to_dict() for p in app_state.quote_service.list_production_orders()])


@router.post("/production", status_code=201)
async def create_production_order(req: ProductionCreate, app_state: AppState = Depends(get_app_state)):
    try:
        production = app_state.quote_service.create_production_order(req.order_id, app_state.catalog())
    except QuoteError as e:
        raise domain_error(e)
    return jsonable_encoder(production.to_dict())
