"""
Data Validation Utilities
==========================
Schema validation and data quality checks for the input tables.

- Never silently fail: always log issues
- Return structured validation results
- Warn on data quality problems, fail only on missing structure
"""

import pandas as pd
from typing import Dict, List, Any, Optional, Iterable
from dataclasses import dataclass, field

from ..exceptions import SchemaError
from .logger import get_logger
from .constants import DATA_QUALITY_THRESHOLDS, TABLE_SCHEMAS

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """
    Structured result of a validation operation.

    Attributes
    ----------
    is_valid : bool
        Overall validation status
    errors : List[str]
        Critical issues that prevent processing
    warnings : List[str]
        Non-critical issues to be aware of
    info : Dict[str, Any]
        Additional validation metadata
    """
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "info": self.info
        }


class SchemaValidator:
    """
    Validates input tables against TABLE_SCHEMAS.

    Usage
    -----
    validator = SchemaValidator()
    result = validator.validate(order_lines_df, "order_lines")

    if not result.is_valid:
        print(f"Validation failed: {result.errors}")
    """

    def __init__(
        self,
        schemas: Optional[Dict[str, Dict[str, Any]]] = None,
        thresholds: Optional[Dict] = None
    ):
        self.schemas = schemas or TABLE_SCHEMAS
        self.thresholds = thresholds or DATA_QUALITY_THRESHOLDS

    def validate(self, df: pd.DataFrame, table_name: str) -> ValidationResult:
        """
        Validate a DataFrame against the schema of `table_name`.

        Parameters
        ----------
        df : pd.DataFrame
            The DataFrame to validate
        table_name : str
            Canonical table name (key of TABLE_SCHEMAS)

        Returns
        -------
        ValidationResult
            Structured validation result with errors/warnings
        """
        result = ValidationResult()
        result.info["table"] = table_name
        result.info["row_count"] = len(df)
        result.info["column_count"] = len(df.columns)

        schema = self.schemas.get(table_name)
        if schema is None:
            result.add_error(f"No schema defined for table '{table_name}'")
            return result

        missing = [col for col in schema["required_columns"] if col not in df.columns]
        if missing:
            result.add_error(f"Missing required columns in {table_name}: {missing}")
        else:
            result.info["required_columns_present"] = True

        result.info["optional_columns_present"] = [
            col for col in schema.get("optional_columns", []) if col in df.columns
        ]

        for col in schema.get("date_columns", []):
            if col in df.columns:
                self._validate_dates(df, col, result)

        for col in schema.get("numeric_columns", []):
            if col in df.columns:
                self._validate_numeric(df, col, result)

        if len(df) > 0:
            self._validate_missing_values(df, table_name, result)
            self._validate_duplicates(df, table_name, result)

        if result.is_valid:
            logger.info(f"Validation PASSED for {table_name}")
        else:
            logger.error(f"Validation FAILED for {table_name}: {result.errors}")

        for warning in result.warnings:
            logger.warning(warning)

        return result

    def _validate_dates(self, df: pd.DataFrame, column: str, result: ValidationResult) -> None:
        """Warn on unparseable dates and record the range."""
        sample = df[column].dropna()
        if len(sample) == 0:
            result.add_warning(f"Date column '{column}' is empty")
            return

        parsed = pd.to_datetime(sample, errors='coerce')
        valid_count = int(parsed.notna().sum())

        if valid_count < len(sample):
            invalid_pct = (len(sample) - valid_count) / len(sample) * 100
            result.add_warning(f"Column '{column}' has {invalid_pct:.1f}% unparseable dates")

        if valid_count > 0:
            result.info[f"{column}_date_range"] = {
                "min": str(parsed.min()),
                "max": str(parsed.max())
            }

    def _validate_numeric(self, df: pd.DataFrame, column: str, result: ValidationResult) -> None:
        """Count non-numeric and negative values; the resolver excludes them."""
        values = pd.to_numeric(df[column], errors='coerce')
        non_numeric = int((values.isna() & df[column].notna()).sum())
        negative = int((values < 0).sum())

        if non_numeric:
            result.add_warning(f"Column '{column}' has {non_numeric} non-numeric values")
        if negative:
            result.add_warning(f"Column '{column}' has {negative} negative values")

        if values.notna().any():
            result.info[f"{column}_stats"] = {
                "min": float(values.min()),
                "max": float(values.max()),
                "mean": float(values.mean()),
            }

    def _validate_missing_values(self, df: pd.DataFrame, table_name: str, result: ValidationResult) -> None:
        missing_pct = df.isnull().sum() / len(df)

        for col, pct in missing_pct.items():
            if pct > self.thresholds["missing_warning_pct"]:
                result.add_warning(
                    f"Column '{col}' in {table_name} has {pct * 100:.1f}% missing values"
                )

    def _validate_duplicates(self, df: pd.DataFrame, table_name: str, result: ValidationResult) -> None:
        dup_count = int(df.duplicated().sum())
        result.info["duplicate_count"] = dup_count

        if dup_count > self.thresholds["duplicate_warning_count"]:
            result.add_warning(f"{table_name} has {dup_count} duplicate rows")


def require_columns(df: pd.DataFrame, columns: Iterable[str], table_name: str) -> None:
    """
    Raise SchemaError if any of `columns` is absent from `df`.

    Parameters
    ----------
    df : pd.DataFrame
        Table to check
    columns : Iterable[str]
        Column names that must be present
    table_name : str
        Name used in the error message
    """
    if df is None:
        raise SchemaError(f"Table '{table_name}' was not provided", code="MISSING_TABLE")

    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SchemaError(
            f"Table '{table_name}' is missing required columns: {missing}",
            code="MISSING_COLUMNS",
            details={'table': table_name, 'missing': missing}
        )
