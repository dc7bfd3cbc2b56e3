"""
System-Wide Constants and Configurations
==========================================
Centralized location for table schemas, thresholds and forecasting defaults.

- All magic numbers should be defined here
- Schemas define expected columns per input table
- Aliases map the reference POS export onto canonical column names
"""

from typing import Dict, List, Any

# =============================================================================
# INPUT TABLE SCHEMAS
# =============================================================================
# Canonical column names used throughout the pipeline. Required columns
# trigger a SchemaError if missing after alias renaming.

TABLE_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "orders": {
        "description": "One row per POS order (ticket)",
        "required_columns": ["order_key", "store_id", "order_date"],
        "optional_columns": [],
        "date_columns": ["order_date"],
        "numeric_columns": [],
    },
    "order_lines": {
        "description": "One row per menu item sold within an order",
        "required_columns": ["order_key", "plu", "quantity"],
        "optional_columns": ["line_id"],
        "date_columns": [],
        "numeric_columns": ["quantity"],
    },
    "menu_items": {
        "description": "Menu catalog linking PLU codes to recipes",
        "required_columns": ["plu", "recipe_id"],
        "optional_columns": ["menu_item_id"],
        "date_columns": [],
        "numeric_columns": [],
    },
    "recipe_ingredients": {
        "description": "Direct recipe -> ingredient assignments",
        "required_columns": ["recipe_id", "ingredient_id", "quantity"],
        "optional_columns": ["unit_type_id"],
        "date_columns": [],
        "numeric_columns": ["quantity"],
    },
    "recipe_sub_recipes": {
        "description": "Recipe -> sub-recipe assignments with scaling factor",
        "required_columns": ["recipe_id", "sub_recipe_id", "factor"],
        "optional_columns": [],
        "date_columns": [],
        "numeric_columns": ["factor"],
    },
    "sub_recipe_ingredients": {
        "description": "Sub-recipe -> ingredient assignments",
        "required_columns": ["sub_recipe_id", "ingredient_id", "quantity"],
        "optional_columns": ["unit_type_id"],
        "date_columns": [],
        "numeric_columns": ["quantity"],
    },
    "stores": {
        "description": "Store metadata",
        "required_columns": ["store_id"],
        "optional_columns": ["display_name"],
        "date_columns": [],
        "numeric_columns": [],
    },
}

# Tables the resolver cannot run without
REQUIRED_TABLES: List[str] = [
    "orders",
    "order_lines",
    "menu_items",
    "recipe_ingredients",
    "recipe_sub_recipes",
    "sub_recipe_ingredients",
    "stores",
]

# File stems of the reference POS export, tried after the canonical name
REFERENCE_FILE_NAMES: Dict[str, str] = {
    "orders": "pos_ordersale",
    "order_lines": "menuitem",
    "menu_items": "menu_items",
    "recipe_ingredients": "recipe_ingredient_assignments",
    "recipe_sub_recipes": "recipe_sub_recipe_assignments",
    "sub_recipe_ingredients": "sub_recipe_ingr_assignments",
    "stores": "store_restaurant",
}

# Source column name -> canonical column name, per table
COLUMN_ALIASES: Dict[str, Dict[str, str]] = {
    "orders": {
        "MD5KEY_ORDERSALE": "order_key",
        "StoreNumber": "store_id",
        "date": "order_date",
    },
    "order_lines": {
        "MD5KEY_ORDERSALE": "order_key",
        "MD5KEY_MENUITEM": "line_id",
        "PLU": "plu",
        "Quantity": "quantity",
    },
    "menu_items": {
        "PLU": "plu",
        "MenuItemId": "menu_item_id",
        "RecipeId": "recipe_id",
    },
    "recipe_ingredients": {
        "RecipeId": "recipe_id",
        "IngredientId": "ingredient_id",
        "Quantity": "quantity",
        "UnitTypeId": "unit_type_id",
    },
    "recipe_sub_recipes": {
        "RecipeId": "recipe_id",
        "SubRecipeId": "sub_recipe_id",
        "Factor": "factor",
    },
    "sub_recipe_ingredients": {
        "SubRecipeId": "sub_recipe_id",
        "IngredientId": "ingredient_id",
        "Quantity": "quantity",
        "UnitTypeId": "unit_type_id",
    },
    "stores": {
        "STORE_NUMBER": "store_id",
        "StoreNumber": "store_id",
        "STORE_NAME": "display_name",
    },
}

# =============================================================================
# DATA QUALITY THRESHOLDS
# =============================================================================

DATA_QUALITY_THRESHOLDS = {
    # Missing values: percentage threshold for warnings
    "missing_warning_pct": 0.05,

    # Duplicates: count threshold for warnings
    "duplicate_warning_count": 10,

    # Share of order lines excluded by the resolver before a warning is logged
    "exclusion_warning_pct": 0.01,
}

# =============================================================================
# REFERENCE DEPLOYMENT
# =============================================================================
# Lettuce carries two catalog identifiers (imperial and metric portions).

DEFAULT_INGREDIENT_NAME = "lettuce"
DEFAULT_INGREDIENT_IDS = (27, 291)

# Overlap handling when a recipe reaches an ingredient by both join paths
OVERLAP_POLICIES = ("prefer_direct", "keep_both")
DEFAULT_OVERLAP_POLICY = "prefer_direct"

# =============================================================================
# FORECASTING CONFIGURATION
# =============================================================================

FORECAST_CONFIG = {
    # Days forecast ahead in the final table
    "default_forecast_horizon": 14,

    # Seasonal period (7 = weekly seasonality for restaurants)
    "seasonal_period": 7,

    # Trailing days held out to score candidate models
    "holdout_days": 14,

    # Confidence level for prediction intervals
    "confidence_level": 0.95,

    # Fallback to moving average below this many training observations
    "min_training_points": 14,
    "min_data_points_moving_avg": 3,
    "moving_average_window": 7,

    "holt_winters_defaults": {
        "trend": "add",
        "seasonal": "add",
        "damped_trend": True,
    },

    # SARIMA order search; non-seasonal d comes from the ADF test
    "arima_search": {
        "p_values": [0, 1, 2],
        "q_values": [0, 1, 2],
        "seasonal_orders": [(0, 0, 0), (0, 1, 1), (1, 0, 1)],
        "max_d": 1,
        "adf_alpha": 0.05,
    },

    "candidate_models": [
        "holt_winters_damped",
        "holt_winters_seasonal",
        "sarima",
        "seasonal_naive",
    ],
}

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================

OUTPUT_CONFIG = {
    "output_base_dir": "outputs",
    "forecast_file": "forecast_{ingredient}.csv",
    "matrix_file": "demand_matrix_{ingredient}.csv",
    "selection_file": "model_selection.csv",
    "summary_file": "run_summary.json",

    # CSV export settings
    "csv_encoding": "utf-8",
    "csv_index": False,
    "date_format": "%Y-%m-%d",
}
