"""
Quote Pricing Package

Quote and invoice pricing for service businesses: line item totals,
discount/tax/margin calculation, and safe formulas for calculated fields.
"""

__version__ = "1.0.0"
