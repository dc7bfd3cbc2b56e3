"""
Data Loading Service
=====================
Loads the seven input tables, maps source column names onto canonical ones
and validates schemas.

- Never silently fail: missing required tables/columns raise SchemaError
- Accept CSV or Parquet, under the canonical name or the reference export name
- Log record counts and date ranges

Usage:
    loader = DataLoader(data_dir="path/to/exports")
    result = loader.load_all()

    tables = result.tables
    validation = result.validation_results
"""

import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, fields
from datetime import datetime

from ..exceptions import SchemaError
from ..utils.logger import get_logger, LogContext, log_dataframe_info, log_date_range
from ..utils.validators import SchemaValidator, ValidationResult
from ..utils.constants import (
    COLUMN_ALIASES,
    REFERENCE_FILE_NAMES,
    REQUIRED_TABLES,
    TABLE_SCHEMAS,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class InputTables:
    """
    The reference and fact tables consumed by the pipeline, with canonical
    column names (see TABLE_SCHEMAS).
    """
    orders: pd.DataFrame
    order_lines: pd.DataFrame
    menu_items: pd.DataFrame
    recipe_ingredients: pd.DataFrame
    recipe_sub_recipes: pd.DataFrame
    sub_recipe_ingredients: pd.DataFrame
    stores: pd.DataFrame

    @classmethod
    def from_dict(cls, data: Dict[str, pd.DataFrame]) -> 'InputTables':
        missing = [f.name for f in fields(cls) if f.name not in data]
        if missing:
            raise SchemaError(f"Input tables missing: {missing}", code="MISSING_TABLE")
        return cls(**{f.name: data[f.name] for f in fields(cls)})

    def as_dict(self) -> Dict[str, pd.DataFrame]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def store_ids(self) -> List[Any]:
        return list(self.stores['store_id'].dropna().unique())

    def store_names(self) -> Dict[Any, str]:
        """Map store id to display name, falling back to the id itself."""
        stores = self.stores.dropna(subset=['store_id'])
        if 'display_name' not in stores.columns:
            return {sid: str(sid) for sid in stores['store_id']}
        return {
            sid: (str(name) if pd.notna(name) else str(sid))
            for sid, name in zip(stores['store_id'], stores['display_name'])
        }

    def order_date_range(self):
        """(min, max) normalized order date, or (None, None) if no valid dates."""
        dates = pd.to_datetime(self.orders['order_date'], errors='coerce').dropna()
        if len(dates) == 0:
            return None, None
        return dates.min().normalize(), dates.max().normalize()


@dataclass
class LoadResult:
    """
    Result of a data loading operation.

    Attributes
    ----------
    tables : InputTables
        Loaded tables with canonical column names
    validation_results : Dict[str, ValidationResult]
        Validation results for each table
    summary : Dict[str, Any]
        Loading summary statistics
    """
    tables: Optional[InputTables] = None
    validation_results: Dict[str, ValidationResult] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)


class DataLoader:
    """
    Loads input tables from a directory of exports.

    For every table the loader looks for, in order:
    `<canonical>.csv`, `<canonical>.parquet`, `<reference>.csv`,
    `<reference>.parquet` (reference names in REFERENCE_FILE_NAMES), unless
    an explicit file is given in `file_map`.

    Example
    -------
    >>> loader = DataLoader("./data")
    >>> result = loader.load_all()
    >>> print(f"Loaded {len(result.tables.order_lines)} order lines")
    """

    SUPPORTED_SUFFIXES = ('.csv', '.parquet')

    def __init__(
        self,
        data_dir: str,
        file_map: Optional[Dict[str, str]] = None,
        validate_schemas: bool = True
    ):
        """
        Parameters
        ----------
        data_dir : str
            Path to directory containing the exports
        file_map : dict, optional
            Table name -> file name overrides
        validate_schemas : bool
            Whether to run quality checks on load (default: True)
        """
        self.data_dir = Path(data_dir)
        self.file_map = dict(file_map or {})
        self.validate_schemas = validate_schemas
        self.validator = SchemaValidator()

        if not self.data_dir.exists():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

        logger.info(f"DataLoader initialized with data_dir: {self.data_dir}")

    def load_all(self) -> LoadResult:
        """
        Load every required table.

        Returns
        -------
        LoadResult
            Tables, validation results and summary

        Raises
        ------
        SchemaError
            A required table is missing or lacks required columns
        """
        result = LoadResult()
        data: Dict[str, pd.DataFrame] = {}

        with LogContext(logger, "Loading input tables"):
            for table_name in REQUIRED_TABLES:
                df = self.load_table(table_name)
                validation = self._validate(df, table_name)
                result.validation_results[table_name] = validation
                if not validation.is_valid:
                    raise SchemaError(
                        "; ".join(validation.errors),
                        code="MISSING_COLUMNS",
                        details=validation.to_dict()
                    )
                data[table_name] = df

            result.tables = InputTables.from_dict(data)
            result.summary = self._generate_summary(data)

        return result

    def load_table(self, table_name: str) -> pd.DataFrame:
        """
        Load one table and normalize its columns.

        Parameters
        ----------
        table_name : str
            Canonical table name, e.g. "order_lines"
        """
        path = self._find_file(table_name)
        if path is None:
            raise SchemaError(
                f"No file found for table '{table_name}' in {self.data_dir}",
                code="MISSING_TABLE",
                details={'table': table_name}
            )

        logger.info(f"Loading {table_name} from {path.name}")
        if path.suffix == '.parquet':
            df = pd.read_parquet(path, engine='pyarrow')
        else:
            df = pd.read_csv(path, low_memory=False, encoding='utf-8')

        df = normalize_columns(df, table_name)
        log_dataframe_info(logger, table_name, df)
        return df

    def _find_file(self, table_name: str) -> Optional[Path]:
        if table_name in self.file_map:
            path = self.data_dir / self.file_map[table_name]
            return path if path.exists() else None

        stems = [table_name]
        if table_name in REFERENCE_FILE_NAMES:
            stems.append(REFERENCE_FILE_NAMES[table_name])

        for stem in stems:
            for suffix in self.SUPPORTED_SUFFIXES:
                path = self.data_dir / f"{stem}{suffix}"
                if path.exists():
                    return path
        return None

    def _validate(self, df: pd.DataFrame, table_name: str) -> ValidationResult:
        if self.validate_schemas:
            return self.validator.validate(df, table_name)

        # Structure check only
        result = ValidationResult()
        missing = [c for c in TABLE_SCHEMAS[table_name]['required_columns'] if c not in df.columns]
        if missing:
            result.add_error(f"Missing required columns in {table_name}: {missing}")
        return result

    def _generate_summary(self, data: Dict[str, pd.DataFrame]) -> Dict[str, Any]:
        summary = {
            "load_timestamp": datetime.now().isoformat(),
            "total_tables": len(data),
            "total_rows": sum(len(df) for df in data.values()),
            "tables": {}
        }

        for table_name, df in data.items():
            summary["tables"][table_name] = {
                "rows": len(df),
                "columns": list(df.columns)
            }

        log_date_range(logger, "orders", "order_date", data["orders"])
        logger.info(f"Loaded {summary['total_tables']} tables, {summary['total_rows']:,} rows")
        return summary


def normalize_columns(df: pd.DataFrame, table_name: str) -> pd.DataFrame:
    """
    Rename source column aliases to canonical names and parse dates.

    Aliases are only applied when the canonical column is not already
    present, so canonical exports pass through untouched.
    """
    aliases = {
        source: target
        for source, target in COLUMN_ALIASES.get(table_name, {}).items()
        if source in df.columns and target not in df.columns
    }
    # Several aliases may target one column (e.g. two spellings of store id)
    renames, used = {}, set()
    for source, target in aliases.items():
        if target not in used:
            renames[source] = target
            used.add(target)
    df = df.rename(columns=renames)

    for col in TABLE_SCHEMAS.get(table_name, {}).get('date_columns', []):
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors='coerce')

    return df
