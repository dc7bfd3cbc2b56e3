"""
Consumption Resolver Service
=============================
Reconstructs per-order-line consumption of a target ingredient.

An order line reaches an ingredient in one of two ways:

1. Direct path:   menu item -> recipe -> recipe ingredient
   consumed = quantity ordered x quantity per unit
2. Indirect path: menu item -> recipe -> sub-recipe -> sub-recipe ingredient
   consumed = quantity ordered x factor x quantity per unit

Both paths are computed with key joins over the reference tables and unioned.
Lines whose recipe reaches the ingredient by neither path contribute nothing.

Row-level problems are recovered locally and counted:
- ReferenceGap: unknown order, PLU missing from the menu catalog, or a recipe
  with no assignment in either recipe table
- InvalidQuantity: negative or non-numeric quantities and factors

Usage:
    resolver = ConsumptionResolver(ingredient_ids={27, 291})
    result = resolver.resolve(tables)
    result.consumption.head()
    result.diagnostics.exclusions
"""

from typing import Any, Dict, Iterable, Optional, Set, Tuple

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError
from ..models.results import (
    CONSUMPTION_COLUMNS,
    DIRECT_PATH,
    SUB_RECIPE_PATH,
    ResolutionResult,
    StageDiagnostics,
)
from ..utils.constants import (
    DATA_QUALITY_THRESHOLDS,
    DEFAULT_OVERLAP_POLICY,
    OVERLAP_POLICIES,
    TABLE_SCHEMAS,
)
from ..utils.logger import get_logger, LogContext
from ..utils.validators import require_columns
from .data_loader import InputTables

logger = get_logger(__name__)


class ConsumptionResolver:
    """
    Resolve order lines into ingredient consumption rows.

    Parameters
    ----------
    ingredient_ids : Iterable
        Catalog identifiers of the target ingredient (one logical ingredient
        may carry several identifiers, e.g. unit or catalog variants)
    overlap_policy : str
        What to do when one order line reaches the same ingredient through
        both paths. "prefer_direct" keeps only the direct rows for that
        (line, ingredient) pair; "keep_both" keeps the plain union. The number
        of overlapping pairs is reported either way.
    unit_conversions : Dict, optional
        Multiplier per unit_type_id that converts an assignment's quantity to
        the canonical unit. Unlisted unit types convert with factor 1.

    Example
    -------
    >>> resolver = ConsumptionResolver({27, 291})
    >>> result = resolver.resolve(tables)
    >>> result.diagnostics.exclusions
    {'missing_menu_item': 12, 'invalid_quantity': 3}
    """

    def __init__(
        self,
        ingredient_ids: Iterable[Any],
        overlap_policy: str = DEFAULT_OVERLAP_POLICY,
        unit_conversions: Optional[Dict[Any, float]] = None
    ):
        self.ingredient_ids = frozenset(ingredient_ids)
        if not self.ingredient_ids:
            raise ConfigurationError("Target ingredient set is empty", code="EMPTY_INGREDIENT_SET")
        if overlap_policy not in OVERLAP_POLICIES:
            raise ConfigurationError(
                f"Unknown overlap policy '{overlap_policy}'", code="INVALID_POLICY"
            )

        self.overlap_policy = overlap_policy
        self.unit_conversions = dict(unit_conversions or {})

    def resolve(self, tables: InputTables) -> ResolutionResult:
        """
        Produce ResolvedConsumption rows for the target ingredient set.

        Parameters
        ----------
        tables : InputTables
            Orders, order lines, menu catalog and the three assignment tables

        Returns
        -------
        ResolutionResult
            Consumption rows (CONSUMPTION_COLUMNS) plus diagnostics
        """
        for name in ('orders', 'order_lines', 'menu_items', 'recipe_ingredients',
                     'recipe_sub_recipes', 'sub_recipe_ingredients'):
            require_columns(getattr(tables, name), TABLE_SCHEMAS[name]['required_columns'], name)

        diagnostics = StageDiagnostics(stage='resolver', input_rows=len(tables.order_lines))

        with LogContext(logger, f"Resolving consumption for ingredients {sorted(self.ingredient_ids, key=str)}"):
            lines = self._prepare_lines(tables, diagnostics)

            direct_assignments = self._direct_assignments(tables.recipe_ingredients, diagnostics)
            indirect_assignments = self._indirect_assignments(
                tables.recipe_sub_recipes, tables.sub_recipe_ingredients, diagnostics
            )

            direct = self._apply_assignments(lines, direct_assignments, DIRECT_PATH)
            indirect = self._apply_assignments(lines, indirect_assignments, SUB_RECIPE_PATH)
            indirect = self._handle_overlap(direct, indirect, diagnostics)

            consumption = pd.concat([direct, indirect], ignore_index=True)
            consumption = consumption.sort_values(
                ['store_id', 'order_date', 'line_id', 'ingredient_id', 'path']
            ).reset_index(drop=True)[CONSUMPTION_COLUMNS]

            matched_lines = consumption['line_id'].nunique()
            diagnostics.output_rows = len(consumption)
            diagnostics.info['resolved_lines'] = len(lines)
            diagnostics.info['lines_with_target_ingredient'] = int(matched_lines)
            diagnostics.info['lines_without_target_ingredient'] = int(len(lines) - matched_lines)
            diagnostics.info['rows_by_path'] = consumption['path'].value_counts().to_dict()

            self._log_exclusions(diagnostics)

        return ResolutionResult(consumption=consumption, diagnostics=diagnostics)

    # ------------------------------------------------------------------
    # Order lines
    # ------------------------------------------------------------------

    def _prepare_lines(self, tables: InputTables, diagnostics: StageDiagnostics) -> pd.DataFrame:
        """
        Attach store, date and recipe to every valid order line.

        Excluded lines are counted under invalid_quantity, missing_order,
        ambiguous_order, missing_menu_item, ambiguous_menu_item and
        missing_recipe.
        """
        lines = tables.order_lines[['order_key', 'plu', 'quantity']].copy()
        if 'line_id' in tables.order_lines.columns:
            lines['line_id'] = tables.order_lines['line_id']
        else:
            # Index labels travel with the rows, so ids survive reordering
            lines['line_id'] = tables.order_lines.index

        lines['quantity'] = pd.to_numeric(lines['quantity'], errors='coerce')
        invalid = lines['quantity'].isna() | (lines['quantity'] < 0)
        diagnostics.add_exclusion('invalid_quantity', invalid.sum())
        lines = lines[~invalid]

        orders = tables.orders[['order_key', 'store_id', 'order_date']].copy()
        orders['order_date'] = pd.to_datetime(orders['order_date'], errors='coerce')
        orders = orders.dropna(subset=['order_key', 'store_id', 'order_date'])
        orders, ambiguous_orders = _unique_lookup(orders, 'order_key')

        ambiguous = lines['order_key'].isin(ambiguous_orders)
        diagnostics.add_exclusion('ambiguous_order', ambiguous.sum())
        lines = lines[~ambiguous]

        lines = lines.merge(orders, on='order_key', how='left', validate='many_to_one')
        missing_order = lines['store_id'].isna()
        diagnostics.add_exclusion('missing_order', missing_order.sum())
        lines = lines[~missing_order].copy()
        # Left joins upcast integer keys to float when rows fail to match
        lines['store_id'] = lines['store_id'].astype(orders['store_id'].dtype)

        menu = tables.menu_items[['plu', 'recipe_id']].dropna(subset=['recipe_id'])
        menu, ambiguous_plus = _unique_lookup(menu, 'plu')

        ambiguous = lines['plu'].isin(ambiguous_plus)
        diagnostics.add_exclusion('ambiguous_menu_item', ambiguous.sum())
        lines = lines[~ambiguous]

        lines = lines.merge(menu, on='plu', how='left', validate='many_to_one')
        missing_menu = lines['recipe_id'].isna()
        diagnostics.add_exclusion('missing_menu_item', missing_menu.sum())
        lines = lines[~missing_menu].copy()
        lines['recipe_id'] = lines['recipe_id'].astype(menu['recipe_id'].dtype)

        known_recipes = set(tables.recipe_ingredients['recipe_id'].dropna()) | set(
            tables.recipe_sub_recipes['recipe_id'].dropna()
        )
        missing_recipe = ~lines['recipe_id'].isin(known_recipes)
        diagnostics.add_exclusion('missing_recipe', missing_recipe.sum())
        lines = lines[~missing_recipe].copy()

        lines['order_date'] = lines['order_date'].dt.normalize()
        return lines

    # ------------------------------------------------------------------
    # Assignment tables
    # ------------------------------------------------------------------

    def _direct_assignments(self, recipe_ingredients: pd.DataFrame, diagnostics: StageDiagnostics) -> pd.DataFrame:
        """recipe_id, ingredient_id, per_unit for the direct path."""
        assignments = self._valid_quantities(
            recipe_ingredients, 'quantity', 'invalid_recipe_quantity', diagnostics
        )
        assignments = assignments[assignments['ingredient_id'].isin(self.ingredient_ids)].copy()
        assignments['per_unit'] = assignments['quantity'] * self._conversion_factors(assignments)
        return assignments[['recipe_id', 'ingredient_id', 'per_unit']]

    def _indirect_assignments(
        self,
        recipe_sub_recipes: pd.DataFrame,
        sub_recipe_ingredients: pd.DataFrame,
        diagnostics: StageDiagnostics
    ) -> pd.DataFrame:
        """recipe_id, ingredient_id, per_unit for the sub-recipe path."""
        sub_recipes = self._valid_quantities(
            recipe_sub_recipes, 'factor', 'invalid_sub_recipe_factor', diagnostics
        )
        ingredients = self._valid_quantities(
            sub_recipe_ingredients, 'quantity', 'invalid_sub_recipe_quantity', diagnostics
        )
        ingredients = ingredients[ingredients['ingredient_id'].isin(self.ingredient_ids)].copy()
        ingredients['per_unit'] = ingredients['quantity'] * self._conversion_factors(ingredients)

        known_sub_recipes = set(sub_recipe_ingredients['sub_recipe_id'].dropna())
        orphan = ~sub_recipes['sub_recipe_id'].isin(known_sub_recipes)
        if orphan.any():
            diagnostics.info['sub_recipes_without_ingredients'] = int(sub_recipes.loc[orphan, 'sub_recipe_id'].nunique())

        assignments = sub_recipes[['recipe_id', 'sub_recipe_id', 'factor']].merge(
            ingredients[['sub_recipe_id', 'ingredient_id', 'per_unit']],
            on='sub_recipe_id',
            how='inner'
        )
        assignments['per_unit'] = assignments['factor'] * assignments['per_unit']
        return assignments[['recipe_id', 'ingredient_id', 'per_unit']]

    def _valid_quantities(
        self,
        df: pd.DataFrame,
        column: str,
        reason: str,
        diagnostics: StageDiagnostics
    ) -> pd.DataFrame:
        """Drop assignment rows whose quantity is non-numeric or negative."""
        df = df.copy()
        df[column] = pd.to_numeric(df[column], errors='coerce')
        invalid = df[column].isna() | (df[column] < 0)
        diagnostics.add_exclusion(reason, invalid.sum())
        return df[~invalid]

    def _conversion_factors(self, assignments: pd.DataFrame) -> np.ndarray:
        if not self.unit_conversions or 'unit_type_id' not in assignments.columns:
            return np.ones(len(assignments))
        return assignments['unit_type_id'].map(self.unit_conversions).fillna(1.0).to_numpy()

    # ------------------------------------------------------------------
    # Join and union
    # ------------------------------------------------------------------

    def _apply_assignments(self, lines: pd.DataFrame, assignments: pd.DataFrame, path: str) -> pd.DataFrame:
        """
        Hash-join lines to per-unit assignments and collapse to one row per
        (line, ingredient) for this path.
        """
        joined = lines.merge(assignments, on='recipe_id', how='inner')
        joined['consumed_quantity'] = joined['quantity'] * joined['per_unit']

        keys = ['line_id', 'order_key', 'store_id', 'order_date', 'ingredient_id']
        resolved = joined.groupby(keys, sort=False, dropna=False)['consumed_quantity'].sum().reset_index()
        resolved['path'] = path
        return resolved

    def _handle_overlap(
        self,
        direct: pd.DataFrame,
        indirect: pd.DataFrame,
        diagnostics: StageDiagnostics
    ) -> pd.DataFrame:
        """Apply the overlap policy to sub-recipe rows already covered by the direct path."""
        pair = ['line_id', 'ingredient_id']
        covered = indirect[pair].merge(direct[pair], on=pair, how='left', indicator=True)['_merge'] == 'both'
        overlap_count = int(covered.sum())
        diagnostics.info['overlapping_pairs'] = overlap_count

        if overlap_count == 0:
            return indirect

        message = (
            f"{overlap_count:,} order line/ingredient pairs reach the ingredient through "
            f"both a recipe and a sub-recipe (policy: {self.overlap_policy})"
        )
        diagnostics.add_warning(message)
        logger.warning(message)

        if self.overlap_policy == 'prefer_direct':
            diagnostics.add_exclusion('overlap_sub_recipe_rows', overlap_count)
            return indirect[~covered.to_numpy()]
        return indirect

    def _log_exclusions(self, diagnostics: StageDiagnostics) -> None:
        for reason, count in diagnostics.exclusions.items():
            logger.warning(f"Excluded {count:,} rows: {reason}")

        line_exclusions = sum(
            count for reason, count in diagnostics.exclusions.items() if reason in LINE_EXCLUSIONS
        )
        if diagnostics.input_rows and line_exclusions / diagnostics.input_rows > DATA_QUALITY_THRESHOLDS['exclusion_warning_pct']:
            diagnostics.add_warning(
                f"{line_exclusions / diagnostics.input_rows:.1%} of order lines were excluded"
            )

        logger.info(
            f"Resolved {diagnostics.output_rows:,} consumption rows from "
            f"{diagnostics.input_rows:,} order lines"
        )


# Exclusion reasons that count order lines (the others count assignment rows)
LINE_EXCLUSIONS = {
    'invalid_quantity',
    'missing_order',
    'ambiguous_order',
    'missing_menu_item',
    'ambiguous_menu_item',
    'missing_recipe',
}


def _unique_lookup(df: pd.DataFrame, key: str) -> Tuple[pd.DataFrame, Set[Any]]:
    """
    Reduce a reference table to one row per key.

    Exact duplicate rows collapse; keys that still map to conflicting rows
    are returned separately so lines referencing them can be excluded
    instead of resolved arbitrarily.
    """
    df = df.drop_duplicates()
    conflicting = df[key].duplicated(keep=False)
    ambiguous = set(df.loc[conflicting, key])
    return df[~conflicting], ambiguous
