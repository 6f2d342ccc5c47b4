"""
Mapping Rules API - FastAPI router for mapping rule management.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional

from ..engine.models import Configuration, PoolDimensions, ProductMappingRule
from .state import AppState, get_app_state

router = APIRouter(prefix="/api/mapping-rules", tags=["mapping-rules"])


# Pydantic models for API
class RuleCreate(BaseModel):
    """Request model for creating a rule."""
    id: Optional[str] = None
    name: str
    config_field: str
    config_value: str
    product_id: Optional[str] = None
    quantity: float = 1
    pool_shape: list[str] = []
    pool_type: list[str] = []
    sort_order: int = 0
    active: bool = True
    description: Optional[str] = None


class RuleUpdate(BaseModel):
    """Request model for updating a rule."""
    name: Optional[str] = None
    config_field: Optional[str] = None
    config_value: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[float] = None
    pool_shape: Optional[list[str]] = None
    pool_type: Optional[list[str]] = None
    sort_order: Optional[int] = None
    active: Optional[bool] = None
    description: Optional[str] = None


class RuleResponse(BaseModel):
    """Response model for a rule."""
    id: str
    name: str
    config_field: str
    config_value: str
    product_id: Optional[str]
    quantity: float
    pool_shape: list[str]
    pool_type: list[str]
    sort_order: int
    active: bool
    description: Optional[str]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


class TestRuleRequest(BaseModel):
    """Configurator choices to resolve against the current rules."""
    pool_shape: str
    pool_type: str
    dimensions: dict = {}
    stairs: Optional[str] = None
    technology: Optional[str] = None
    lighting: Optional[str] = None
    counterflow: Optional[str] = None
    water_treatment: Optional[str] = None
    heating: Optional[str] = None
    roofing: Optional[str] = None


def _to_rule(rule_data: RuleCreate) -> ProductMappingRule:
    data = rule_data.model_dump()
    data['id'] = data['id'] or ''
    return ProductMappingRule(**data)


def _to_response(rule: ProductMappingRule) -> RuleResponse:
    return RuleResponse(**rule.__dict__)


# Endpoints

@router.get("", response_model=list[RuleResponse])
async def list_rules(include_inactive: bool = True, app_state: AppState = Depends(get_app_state)):
    """List all mapping rules."""
    rules = app_state.rules_service.list_rules(include_inactive=include_inactive)
    return [_to_response(rule) for rule in rules]


@router.get("/stats")
async def get_stats(app_state: AppState = Depends(get_app_state)):
    """Get rule statistics."""
    return app_state.rules_service.get_stats()


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: str, app_state: AppState = Depends(get_app_state)):
    """Get a single rule by ID."""
    rule = app_state.rules_service.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")
    return _to_response(rule)


@router.post("", response_model=RuleResponse)
async def create_rule(rule_data: RuleCreate, app_state: AppState = Depends(get_app_state)):
    """Create a new mapping rule."""
    rule = _to_rule(rule_data)

    # Validate first
    validation = app_state.rules_service.validate_rule(rule)
    if not validation.valid:
        raise HTTPException(status_code=400, detail={"errors": validation.errors})

    try:
        created = app_state.rules_service.create_rule(rule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    app_state.reload_data()
    return _to_response(created)


@router.put("/{rule_id}", response_model=RuleResponse)
async def update_rule(rule_id: str, updates: RuleUpdate, app_state: AppState = Depends(get_app_state)):
    """Update an existing rule."""
    # Only fields present in the body are applied, including explicit nulls
    update_dict = updates.model_dump(exclude_unset=True)

    if app_state.rules_service.get_rule(rule_id) is None:
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")
    try:
        updated = app_state.rules_service.update_rule(rule_id, update_dict)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    app_state.reload_data()
    return _to_response(updated)


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str, app_state: AppState = Depends(get_app_state)):
    """Delete a rule."""
    try:
        app_state.rules_service.delete_rule(rule_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    app_state.reload_data()
    return {"success": True, "message": f"Rule '{rule_id}' deleted"}


@router.post("/validate", response_model=ValidationResponse)
async def validate_rule(rule_data: RuleCreate, app_state: AppState = Depends(get_app_state)):
    """Validate a rule without saving."""
    result = app_state.rules_service.validate_rule(_to_rule(rule_data))
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.post("/compile")
async def compile_rules(app_state: AppState = Depends(get_app_state)):
    """Force recompile of rules and reload the catalog."""
    success, output = app_state.rules_service.compile_rules()
    if success:
        app_state.reload_data()
    return {
        "success": success,
        "output": output
    }


@router.post("/test")
async def test_rules(request: TestRuleRequest, app_state: AppState = Depends(get_app_state)):
    """Show which rule every configurator field resolves to."""
    data = request.model_dump()
    config = Configuration(
        dimensions=PoolDimensions.from_dict(data.pop('dimensions')),
        **data,
    )
    return {"fields": app_state.rules_service.test_configuration(config)}
