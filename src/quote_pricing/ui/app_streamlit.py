"""
Streamlit UI for the Quote Pricing Engine.

Features:
- Editable line item grid with live totals, margin and trace
- Formula tester for calculated fields
- Default moving formulas with the tenant's coefficients
- Export of the quote snapshot to CSV
"""
import streamlit as st
import pandas as pd
import sys
from pathlib import Path
from datetime import datetime

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from quote_pricing.config.settings import get_settings
from quote_pricing.engine import (
    CalculationInput, FormulaError, LineItem, QuoteCalculator, ValidationError,
    compile_formula, load_pricing_config,
)
from quote_pricing.formatting import format_currency, format_percentage


st.set_page_config(
    page_title="Quote Pricing",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_config():
    """Get cached pricing config."""
    return load_pricing_config(get_settings().pricing_config)


try:
    config = get_config()
except (OSError, ValueError) as e:
    st.error(f"System Error: {e}")
    st.stop()

calculator = QuoteCalculator(config)
library = config.formula_library()
currency = config.currency

LINE_COLUMNS = ["kind", "name", "quantity", "unit_price", "unit_cost", "taxable"]


def empty_lines() -> pd.DataFrame:
    return pd.DataFrame([
        {"kind": "service", "name": "Packing & loading", "quantity": 1.0,
         "unit_price": 0.0, "unit_cost": 0.0, "taxable": True},
    ], columns=LINE_COLUMNS)


def frame_to_items(df: pd.DataFrame) -> list[LineItem]:
    items = []
    rows = (
        df.dropna(subset=["quantity", "unit_price"])
        .fillna({"kind": "service", "name": "", "unit_cost": 0.0, "taxable": False})
    )
    for row in rows.to_dict(orient="records"):
        items.append(LineItem(
            kind=row["kind"],
            name=row["name"],
            quantity=float(row["quantity"]),
            unit_price=float(row["unit_price"]),
            unit_cost=float(row["unit_cost"]),
            taxable=bool(row["taxable"]),
        ))
    return items


# ============================================================================
# SIDEBAR: Quote adjustments
# ============================================================================
with st.sidebar:
    st.header("Quote Adjustments")

    with st.container(border=True):
        tax_rate = st.number_input("Tax Rate (%)", min_value=0.0,
                                   value=float(config.default_tax_rate_percent), step=0.25)
        discount_mode = st.radio("Discount", ["None", "Percent", "Fixed amount"], horizontal=True)
        discount_percent = None
        discount_amount = None
        if discount_mode == "Percent":
            discount_percent = st.number_input("Discount (%)", min_value=0.0, max_value=100.0,
                                               value=0.0, step=1.0)
        elif discount_mode == "Fixed amount":
            discount_amount = st.number_input(f"Discount ({currency})", min_value=0.0,
                                              value=0.0, step=10.0)

    st.divider()
    st.caption(f"Config v{config.version} | {len(config.calculation_rules)} calculated field(s)")


# ============================================================================
# MAIN CONTENT: TABBED INTERFACE
# ============================================================================
st.title("Quote Pricing")
st.caption(f"v1.0 | {datetime.now().strftime('%Y-%m-%d')}")

tab1, tab2, tab3 = st.tabs(["Quote Builder", "Formula Tester", "Moving Formulas"])


# ============================================================================
# TAB 1: QUOTE BUILDER
# ============================================================================
with tab1:
    if 'lines' not in st.session_state:
        st.session_state.lines = empty_lines()

    col1, col2 = st.columns([1.8, 1.2], gap="large")

    with col1:
        st.subheader("Line Items")
        edited = st.data_editor(
            st.session_state.lines,
            num_rows="dynamic",
            use_container_width=True,
            column_config={
                "kind": st.column_config.SelectboxColumn("Type", options=["service", "product", "fee"]),
                "name": st.column_config.TextColumn("Item"),
                "quantity": st.column_config.NumberColumn("Qty", min_value=0.0),
                "unit_price": st.column_config.NumberColumn("Unit Price", min_value=0.0, format="%.2f"),
                "unit_cost": st.column_config.NumberColumn("Unit Cost", min_value=0.0, format="%.2f"),
                "taxable": st.column_config.CheckboxColumn("Taxable"),
            },
            key="line_editor",
        )

    with col2:
        st.subheader("Summary")
        try:
            result = calculator.calculate(CalculationInput(
                line_items=frame_to_items(edited),
                tax_rate_percent=tax_rate,
                discount_percent=discount_percent,
                discount_amount=discount_amount,
            ))
        except ValidationError as e:
            st.error(f"Invalid input for {e.field}: {e.message}")
            result = None

        if result is not None:
            m1, m2 = st.columns(2)
            m1.metric("Subtotal", format_currency(result.subtotal, currency))
            m2.metric("Discount", format_currency(result.discount_amount, currency))
            m1.metric("Tax", format_currency(result.tax_amount, currency))
            m2.metric("Total", format_currency(result.total, currency))
            m1.metric("Est. Cost", format_currency(result.estimated_cost, currency))
            m2.metric("Margin", format_currency(result.margin, currency),
                      delta=format_percentage(result.margin_percentage))

            for warning in result.warnings:
                st.warning(warning)

            with st.expander("Calculation Details"):
                for t in result.trace:
                    if t.value:
                        st.caption(f"**{t.step}**: {t.description} = `{t.value}`")
                    else:
                        st.caption(f"**{t.step}**: {t.description}")

            snapshot = pd.DataFrame([result.to_record()])
            st.download_button(
                "Export Snapshot (CSV)",
                snapshot.to_csv(index=False).encode("utf-8"),
                file_name=f"quote_{datetime.now().strftime('%Y%m%d_%H%M')}.csv",
                mime="text/csv",
            )


# ============================================================================
# TAB 2: FORMULA TESTER
# ============================================================================
with tab2:
    st.subheader("Formula Tester")
    st.caption("Arithmetic over named fields: + - * / and parentheses.")

    formula_text = st.text_input("Formula", value="rooms * avg_room_size * packing_factor")
    best_effort = st.toggle("Best effort (use 0 on error)", value=False)

    try:
        formula = compile_formula(formula_text)
    except FormulaError as e:
        st.error(e.reason)
        formula = None

    if formula is not None:
        defaults = config.coefficients.to_dict()
        context = {}
        for name in sorted(formula.variables):
            context[name] = st.number_input(name, value=float(defaults.get(name, 0.0)), key=f"var_{name}")
        try:
            st.metric("Result", f"{formula.evaluate(context, best_effort=best_effort):,.4f}")
        except FormulaError as e:
            st.error(e.reason)

    if config.calculation_rules:
        st.divider()
        st.markdown("##### Configured Calculated Fields")
        st.dataframe(pd.DataFrame([r.to_dict() for r in config.calculation_rules]),
                     use_container_width=True, hide_index=True)


# ============================================================================
# TAB 3: MOVING FORMULAS
# ============================================================================
with tab3:
    st.subheader("Moving Estimates")
    c1, c2 = st.columns(2)

    with c1:
        with st.container(border=True):
            st.markdown("##### Volume & Cost")
            rooms = st.number_input("Rooms", min_value=0.0, value=3.0, step=1.0)
            distance = st.number_input("Distance (miles)", min_value=0.0, value=25.0, step=5.0)
            volume = library.moving_volume(rooms)
            st.metric("Estimated Volume (cu ft)", f"{volume:,.0f}")
            st.metric("Estimated Move Cost", format_currency(library.moving_cost(volume, distance), currency))

    with c2:
        with st.container(border=True):
            st.markdown("##### Labor & Storage")
            hours = st.number_input("Hours", min_value=0.0, value=4.0, step=0.5)
            workers = st.number_input("Workers", min_value=0.0, value=2.0, step=1.0)
            months = st.number_input("Storage Months", min_value=0.0, value=0.0, step=1.0)
            st.metric("Labor Cost", format_currency(library.labor_cost(hours, workers), currency))
            st.metric("Storage Cost", format_currency(library.storage_cost(volume, months), currency))

    with st.expander("Coefficients"):
        st.json(config.coefficients.to_dict())
