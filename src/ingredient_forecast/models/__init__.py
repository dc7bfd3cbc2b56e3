"""
Models Package
===============
Data structures passed between pipeline stages.

Modules:
- results: Stage outputs with their diagnostics
"""

from .results import (
    StageDiagnostics,
    ResolutionResult,
    AggregationResult,
    DemandMatrix,
    CONSUMPTION_COLUMNS,
    DAILY_DEMAND_COLUMNS,
    DIRECT_PATH,
    SUB_RECIPE_PATH
)

__all__ = [
    'StageDiagnostics',
    'ResolutionResult',
    'AggregationResult',
    'DemandMatrix',
    'CONSUMPTION_COLUMNS',
    'DAILY_DEMAND_COLUMNS',
    'DIRECT_PATH',
    'SUB_RECIPE_PATH'
]
