"""
Calculation Rules API - FastAPI router for calculated field management.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from ..config.settings import get_settings
from ..engine import CalculationRule, FormulaError
from ..services.calculation_rules_service import CalculationRulesService
from .state import state

router = APIRouter(prefix="/api/calculation-rules", tags=["calculation-rules"])


def get_service() -> CalculationRulesService:
    return CalculationRulesService(config_path=get_settings().pricing_config)


# Pydantic models for API
class RuleCreate(BaseModel):
    """Request model for creating a rule."""
    rule_id: Optional[str] = None
    name: str
    formula: str
    output_field: str
    trigger_fields: list[str] = []
    active: bool = True

    def to_rule(self) -> CalculationRule:
        data = self.model_dump()
        data['rule_id'] = data['rule_id'] or ''
        data['trigger_fields'] = tuple(data['trigger_fields'])
        return CalculationRule(**data)


class RuleUpdate(BaseModel):
    """Request model for updating a rule."""
    name: Optional[str] = None
    formula: Optional[str] = None
    output_field: Optional[str] = None
    trigger_fields: Optional[list[str]] = None
    active: Optional[bool] = None


class RuleResponse(BaseModel):
    """Response model for a rule."""
    rule_id: str
    name: str
    formula: str
    output_field: str
    trigger_fields: list[str]
    active: bool

    @classmethod
    def from_rule(cls, rule: CalculationRule) -> 'RuleResponse':
        return cls(**rule.to_dict())


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


# Endpoints

@router.get("", response_model=list[RuleResponse])
async def list_rules(include_inactive: bool = True):
    """List all calculation rules."""
    rules = get_service().list_rules(include_inactive=include_inactive)
    return [RuleResponse.from_rule(rule) for rule in rules]


@router.get("/stats")
async def get_stats():
    """Get rule statistics."""
    return get_service().get_stats()


@router.get("/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: str):
    """Get a single rule by ID."""
    rule = get_service().get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")
    return RuleResponse.from_rule(rule)


@router.post("", response_model=RuleResponse)
async def create_rule(rule_data: RuleCreate):
    """Create a new calculation rule."""
    service = get_service()
    rule = rule_data.to_rule()

    # Validate first
    validation = service.validate_rule(rule)
    if not validation.valid:
        raise HTTPException(status_code=400, detail={"errors": validation.errors})

    try:
        created = service.create_rule(rule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    state.reload()
    return RuleResponse.from_rule(created)


@router.put("/{rule_id}", response_model=RuleResponse)
async def update_rule(rule_id: str, updates: RuleUpdate):
    """Update an existing rule."""
    # Only non-null fields present in the request body are applied
    update_dict = {k: v for k, v in updates.model_dump(exclude_unset=True).items() if v is not None}
    service = get_service()

    if service.get_rule(rule_id) is None:
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found")
    try:
        updated = service.update_rule(rule_id, update_dict)
    except FormulaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    state.reload()
    return RuleResponse.from_rule(updated)


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str):
    """Delete a rule."""
    try:
        get_service().delete_rule(rule_id)
    except FormulaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    state.reload()
    return {"success": True, "message": f"Rule '{rule_id}' deleted"}


@router.post("/validate", response_model=ValidationResponse)
async def validate_rule(rule_data: RuleCreate):
    """Validate a rule without saving."""
    result = get_service().validate_rule(rule_data.to_rule())
    return ValidationResponse(
        valid=result.valid,
        errors=result.errors,
        warnings=result.warnings,
    )
