"""
Ingredient Forecast - Configuration Module
===========================================

Centralized configuration for the ingredient demand pipeline.

Per-store policies (date-range start, leading truncation, zero-as-missing)
live in explicit StoreConfig records that the calendar densifier consumes
uniformly, instead of per-store branches in code.

Usage:
    config = PipelineConfig.from_json('run_config.json')
    config.stores[4904].leading_truncation_days
"""

import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, FrozenSet, Iterable, Optional

import pandas as pd

from .exceptions import ConfigurationError
from .utils.constants import (
    DEFAULT_INGREDIENT_IDS,
    DEFAULT_INGREDIENT_NAME,
    DEFAULT_OVERLAP_POLICY,
    FORECAST_CONFIG,
    OVERLAP_POLICIES,
)


@dataclass(frozen=True)
class StoreConfig:
    """
    Calendar policies for one store.

    Attributes
    ----------
    store_id : Any
        Store identifier as it appears in the orders table
    leading_truncation_days : int
        Number of initial observed days to drop (late activation or an
        unreliable ramp-up period)
    zero_as_missing : bool
        Rewrite a summed value of exactly zero to missing. Encodes the
        legacy assumption that a zero day is an unreported day.
    start_date : pd.Timestamp, optional
        Dates before this are outside the store's range
    """
    store_id: Any
    leading_truncation_days: int = 0
    zero_as_missing: bool = True
    start_date: Optional[pd.Timestamp] = None

    def __post_init__(self):
        if self.start_date is not None and not isinstance(self.start_date, pd.Timestamp):
            object.__setattr__(self, 'start_date', pd.Timestamp(self.start_date).normalize())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreConfig':
        if 'store_id' not in data:
            raise ConfigurationError(
                f"Store entry without a store_id: {data}", code="INVALID_CONFIG"
            )
        return cls(
            store_id=data['store_id'],
            leading_truncation_days=int(data.get('leading_truncation_days', 0)),
            zero_as_missing=bool(data.get('zero_as_missing', True)),
            start_date=data.get('start_date'),
        )


@dataclass
class ForecastSettings:
    """Settings for the per-store model selection and forecast"""
    horizon: int = FORECAST_CONFIG['default_forecast_horizon']
    seasonal_periods: int = FORECAST_CONFIG['seasonal_period']
    holdout_days: int = FORECAST_CONFIG['holdout_days']
    confidence_level: float = FORECAST_CONFIG['confidence_level']
    candidate_models: tuple = tuple(FORECAST_CONFIG['candidate_models'])


@dataclass
class PipelineConfig:
    """
    Master configuration for a pipeline run.

    Usage:
        config = PipelineConfig(ingredient_ids={27, 291})
        config.stores[46673].zero_as_missing
    """

    # Paths
    data_path: Path = field(default_factory=lambda: Path.cwd() / 'data')
    output_path: Path = field(default_factory=lambda: Path.cwd() / 'outputs')

    # Target ingredient
    ingredient_name: str = DEFAULT_INGREDIENT_NAME
    ingredient_ids: FrozenSet[Any] = field(default_factory=lambda: frozenset(DEFAULT_INGREDIENT_IDS))

    # Per-store calendar policies; stores without an entry use `default_store`
    stores: Dict[Any, StoreConfig] = field(default_factory=dict)
    default_store: Dict[str, Any] = field(default_factory=lambda: {
        'leading_truncation_days': 0,
        'zero_as_missing': True,
    })

    # Observation window (defaults to the span of the data)
    window_start: Optional[pd.Timestamp] = None
    window_end: Optional[pd.Timestamp] = None

    # Resolver policies
    overlap_policy: str = DEFAULT_OVERLAP_POLICY
    unit_conversions: Dict[Any, float] = field(default_factory=dict)

    forecast: ForecastSettings = field(default_factory=ForecastSettings)

    def __post_init__(self):
        """Normalize paths, ids and dates"""
        if isinstance(self.data_path, str):
            self.data_path = Path(self.data_path)
        if isinstance(self.output_path, str):
            self.output_path = Path(self.output_path)
        if not isinstance(self.ingredient_ids, frozenset):
            self.ingredient_ids = frozenset(self.ingredient_ids)
        if self.window_start is not None:
            self.window_start = pd.Timestamp(self.window_start).normalize()
        if self.window_end is not None:
            self.window_end = pd.Timestamp(self.window_end).normalize()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        """
        Build a config from a plain dictionary (e.g. parsed JSON).

        Store entries may be given as a list of objects with a `store_id` key.

        Raises
        ------
        ConfigurationError
            Unknown keys, malformed store entries or values of the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Run configuration must be an object, got {type(data).__name__}",
                code="INVALID_CONFIG"
            )

        data = dict(data)
        try:
            stores = {}
            for entry in data.pop('stores', []):
                store = StoreConfig.from_dict(entry)
                stores[store.store_id] = store

            forecast_settings = data.pop('forecast', {})
            forecast = ForecastSettings(**forecast_settings)
            if 'candidate_models' in forecast_settings:
                forecast.candidate_models = tuple(forecast.candidate_models)

            unit_conversions = {
                _coerce_key(k): float(v) for k, v in data.pop('unit_conversions', {}).items()
            }

            return cls(stores=stores, forecast=forecast, unit_conversions=unit_conversions, **data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid run configuration: {e}", code="INVALID_CONFIG") from e

    @classmethod
    def from_json(cls, path: str) -> 'PipelineConfig':
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    f"Run configuration {path} is not valid JSON: {e}",
                    code="INVALID_CONFIG"
                ) from e
        return cls.from_dict(data)

    def validate(
        self,
        known_store_ids: Iterable[Any],
        data_start: Optional[pd.Timestamp] = None,
        data_end: Optional[pd.Timestamp] = None
    ) -> None:
        """
        Check the configuration against the loaded data.

        Raises
        ------
        ConfigurationError
            Empty ingredient set, unknown store ids, invalid policy values or
            an observation window outside the available data.
        """
        if not self.ingredient_ids:
            raise ConfigurationError(
                "Target ingredient set is empty", code="EMPTY_INGREDIENT_SET"
            )

        if self.overlap_policy not in OVERLAP_POLICIES:
            raise ConfigurationError(
                f"Unknown overlap policy '{self.overlap_policy}'",
                code="INVALID_POLICY",
                details={'allowed': list(OVERLAP_POLICIES)}
            )

        known = set(known_store_ids)
        unknown = [s for s in self.stores if s not in known]
        if unknown:
            raise ConfigurationError(
                f"Unknown store identifiers in store configuration: {unknown}",
                code="UNKNOWN_STORE",
                details={'unknown_store_ids': unknown}
            )

        # Stores without an entry are densified with this record
        try:
            default = StoreConfig(store_id=None, **self.default_store)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid default store policy {self.default_store}: {e}",
                code="INVALID_POLICY"
            ) from e

        for store in [*self.stores.values(), default]:
            if store.leading_truncation_days < 0:
                label = 'default policy' if store is default else f"store {store.store_id}"
                raise ConfigurationError(
                    f"Negative leading truncation for {label}",
                    code="INVALID_POLICY"
                )

        if self.forecast.horizon < 1:
            raise ConfigurationError("Forecast horizon must be at least 1 day", code="INVALID_HORIZON")
        if self.forecast.holdout_days < 1:
            raise ConfigurationError("Holdout window must be at least 1 day", code="INVALID_HOLDOUT")
        if self.forecast.seasonal_periods < 1:
            raise ConfigurationError("Seasonal period must be at least 1 day", code="INVALID_SEASONALITY")
        if not 0 < self.forecast.confidence_level < 1:
            raise ConfigurationError(
                f"Confidence level {self.forecast.confidence_level} outside (0, 1)",
                code="INVALID_CONFIDENCE"
            )

        unknown_models = [
            m for m in self.forecast.candidate_models if m not in FORECAST_CONFIG['candidate_models']
        ]
        if unknown_models or not self.forecast.candidate_models:
            raise ConfigurationError(
                f"Unknown or empty candidate models: {unknown_models}",
                code="INVALID_MODEL",
                details={'allowed': list(FORECAST_CONFIG['candidate_models'])}
            )

        self._validate_window(data_start, data_end, default)

    def _validate_window(self, data_start, data_end, default: StoreConfig) -> None:
        start, end = self.window_start, self.window_end

        if start is not None and end is not None and start > end:
            raise ConfigurationError(
                f"Window start {start.date()} is after window end {end.date()}",
                code="INVALID_DATE_RANGE"
            )

        # A store range that opens after the window closes leaves an empty column
        last_days = [d for d in (end, data_end) if d is not None]
        for store in [*self.stores.values(), default]:
            if store.start_date is None or not last_days:
                continue
            if store.start_date > min(last_days):
                label = 'default policy' if store is default else f"store {store.store_id}"
                raise ConfigurationError(
                    f"Start date {store.start_date.date()} of {label} "
                    f"is after the last day {min(last_days).date()}",
                    code="DATE_RANGE_OUT_OF_DATA",
                    details={'store_id': store.store_id}
                )

        if data_start is None or data_end is None:
            return

        if start is not None and not (data_start <= start <= data_end):
            raise ConfigurationError(
                f"Window start {start.date()} outside available data "
                f"({data_start.date()} to {data_end.date()})",
                code="DATE_RANGE_OUT_OF_DATA"
            )
        if end is not None and not (data_start <= end <= data_end):
            raise ConfigurationError(
                f"Window end {end.date()} outside available data "
                f"({data_start.date()} to {data_end.date()})",
                code="DATE_RANGE_OUT_OF_DATA"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used in the run summary"""
        return {
            'data_path': str(self.data_path),
            'output_path': str(self.output_path),
            'ingredient_name': self.ingredient_name,
            'ingredient_ids': sorted(self.ingredient_ids, key=str),
            'stores': [
                {**asdict(s), 'start_date': str(s.start_date.date()) if s.start_date is not None else None}
                for s in self.stores.values()
            ],
            'default_store': dict(self.default_store),
            'window_start': str(self.window_start.date()) if self.window_start is not None else None,
            'window_end': str(self.window_end.date()) if self.window_end is not None else None,
            'overlap_policy': self.overlap_policy,
            'unit_conversions': dict(self.unit_conversions),
            'forecast': asdict(self.forecast),
        }


def _coerce_key(key):
    # JSON object keys are strings; unit type ids are usually integers
    try:
        return int(key)
    except (TypeError, ValueError):
        return key


# Default configuration instance
DEFAULT_CONFIG = PipelineConfig()
