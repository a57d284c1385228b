import logging
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request as HTTPRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config.settings import get_settings
from ..engine import (
    CalculationInput, FormulaError, LineItem, ValidationError, compile_formula,
)
from ..formatting import format_currency, format_percentage, rounded_record
from .calculation_rules_api import router as calculation_rules_router
from .state import state

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(
    title="Quote Pricing API",
    description="Quote and invoice pricing, formulas and calculated fields",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(calculation_rules_router)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: HTTPRequest, exc: ValidationError):
    return JSONResponse(status_code=422, content={"field": exc.field, "message": exc.message})


@app.exception_handler(FormulaError)
async def formula_error_handler(request: HTTPRequest, exc: FormulaError):
    return JSONResponse(
        status_code=400,
        content={"formula": exc.formula, "reason": exc.reason, "position": exc.position},
    )


class LineItemIn(BaseModel):
    kind: Literal["service", "product", "fee"] = "service"
    name: str = ""
    description: Optional[str] = None
    quantity: float
    unit_price: float
    unit_cost: float = 0.0
    taxable: bool = True


class CalcRequest(BaseModel):
    line_items: List[LineItemIn]
    tax_rate_percent: Optional[float] = None
    discount_percent: Optional[float] = None
    discount_amount: Optional[float] = None


class FormulaRequest(BaseModel):
    formula: str
    context: Dict[str, float] = Field(default_factory=dict)
    best_effort: bool = False


class FieldValuesRequest(BaseModel):
    values: Dict[str, float]
    changed_fields: Optional[List[str]] = None
    best_effort: bool = False


@app.get("/")
async def root():
    return {"status": "online", "message": "Quote Pricing API Active"}


@app.post("/calculate")
async def calculate_quote(req: CalcRequest):
    request = CalculationInput(
        line_items=[LineItem(**item.model_dump()) for item in req.line_items],
        tax_rate_percent=req.tax_rate_percent,
        discount_percent=req.discount_percent,
        discount_amount=req.discount_amount,
    )
    result = state.calculator.calculate(request)
    currency = state.config.currency
    return {
        "result": result.to_record(),
        "taxable_total": result.taxable_total,
        "rounded": rounded_record(result),
        "display": {
            "total": format_currency(result.total, currency),
            "margin": format_currency(result.margin, currency),
            "margin_percentage": format_percentage(result.margin_percentage),
        },
        "flags": [flag.value for flag in result.flags],
        "warnings": list(result.warnings),
        "trace": [
            {"step": t.step, "description": t.description, "value": t.value}
            for t in result.trace
        ],
    }


@app.post("/formulas/evaluate")
async def evaluate_formula(req: FormulaRequest):
    formula = compile_formula(req.formula)
    value = formula.evaluate(req.context, best_effort=req.best_effort)
    return {"result": value, "variables": sorted(formula.variables)}


@app.get("/formulas/defaults")
async def list_default_formulas():
    library = state.config.formula_library()
    return {
        "formulas": {name: library.defaults_for(name) for name in library.names()},
        "coefficients": state.config.coefficients.to_dict(),
    }


@app.post("/formulas/defaults/{name}")
async def compute_default_formula(name: str, params: Dict[str, float]):
    library = state.config.formula_library()
    if name not in library.names():
        raise HTTPException(status_code=404, detail=f"Unknown default formula '{name}'")
    try:
        value = library.compute(name, **params)
    except TypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"formula": name, "result": value}


@app.post("/calculated-fields")
async def apply_calculated_fields(req: FieldValuesRequest):
    rule_set = state.config.rule_set()
    context = state.config.formula_context(req.values)
    if req.changed_fields is None:
        values = rule_set.apply(context, best_effort=req.best_effort)
        applied = rule_set.evaluation_order()
    else:
        values = rule_set.apply_changes(context, req.changed_fields, best_effort=req.best_effort)
        applied = rule_set.rules_triggered_by(req.changed_fields)
    return {
        "values": {r.output_field: values[r.output_field] for r in applied},
        "applied_rules": [r.rule_id for r in applied],
    }


@app.get("/system/status")
async def get_status():
    settings = get_settings()
    return {
        "engine_active": True,
        "config_path": str(settings.pricing_config),
        "config_version": state.config.version,
        "currency": state.config.currency,
        "rules_count": len(state.config.calculation_rules),
    }
