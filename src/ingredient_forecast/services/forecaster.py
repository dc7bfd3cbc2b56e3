"""
Store Forecasting Service
==========================
Per-store model selection and forecasting on the densified demand sequences.

For every store:
1. Hold out the last `holdout_days` of the sequence
2. Fit each candidate model on the rest and score RMSE/MAE on the observed
   holdout days
3. Refit the lowest-RMSE candidate on the full sequence and forecast the
   horizon, clipped at zero, with normal-theory bands

Candidates (statsmodels):
- holt_winters_damped:   additive trend (damped) + additive weekly seasonality
- holt_winters_seasonal: level + additive weekly seasonality
- sarima:                SARIMA, d from an ADF test, orders by AICc
- seasonal_naive:        repeat the last observed week

Missing days are linearly interpolated for models that need a complete
series; SARIMA consumes them natively through the Kalman filter.

Fallbacks:
- Too little history for a holdout: moving average
- Fewer than 3 observations: mean with a wide band
"""

import math
import warnings
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.statespace.sarimax import SARIMAX
from statsmodels.tsa.stattools import adfuller

from ..exceptions import ForecastError
from ..models.results import DemandMatrix
from ..utils.constants import FORECAST_CONFIG
from ..utils.logger import get_logger, LogContext

logger = get_logger(__name__)


@dataclass
class CandidateScore:
    """Holdout accuracy of one candidate model for one store."""
    model: str
    rmse: float = float('nan')
    mae: float = float('nan')
    holdout_points: int = 0
    params: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and np.isfinite(self.rmse)


@dataclass
class ForecastResult:
    """
    Result of a forecast operation for a single store.

    Attributes
    ----------
    store_id : Any
        Identifier of the forecasted store
    method : str
        Selected model, "moving_average" or "insufficient_data"
    forecast : pd.DataFrame
        Columns: date, forecast, lower_bound, upper_bound
    model_params : Dict[str, Any]
        Parameters of the selected model
    quality_metrics : Dict[str, float]
        Holdout RMSE/MAE of the selected model and data counts
    candidates : List[CandidateScore]
        Holdout scores of every candidate tried
    explanation : str
        Human-readable summary of the selection
    """
    store_id: Any
    method: str
    forecast: pd.DataFrame
    model_params: Dict[str, Any] = field(default_factory=dict)
    quality_metrics: Dict[str, float] = field(default_factory=dict)
    candidates: List[CandidateScore] = field(default_factory=list)
    explanation: str = ""


class StoreForecaster:
    """
    Holdout-based model selection and forecasting per store.

    Usage
    -----
    >>> forecaster = StoreForecaster(horizon=14)
    >>> results = forecaster.forecast_matrix(demand_matrix)
    >>> table = build_forecast_table(results)
    """

    def __init__(
        self,
        horizon: int = None,
        seasonal_periods: int = None,
        holdout_days: int = None,
        confidence_level: float = None,
        candidate_models: Optional[List[str]] = None
    ):
        """
        Parameters
        ----------
        horizon : int, optional
            Number of days to forecast ahead. Default from config (14).
        seasonal_periods : int, optional
            Length of seasonal cycle (7 = weekly). Default from config.
        holdout_days : int, optional
            Trailing days used to score candidates. Default from config.
        confidence_level : float, optional
            Confidence level for prediction intervals (0-1). Default: 0.95
        candidate_models : list, optional
            Subset of FORECAST_CONFIG["candidate_models"]
        """
        self.horizon = horizon or FORECAST_CONFIG["default_forecast_horizon"]
        self.seasonal_periods = seasonal_periods or FORECAST_CONFIG["seasonal_period"]
        self.holdout_days = holdout_days or FORECAST_CONFIG["holdout_days"]
        self.confidence_level = confidence_level or FORECAST_CONFIG["confidence_level"]
        self.candidate_models = list(candidate_models or FORECAST_CONFIG["candidate_models"])

        unknown = [m for m in self.candidate_models if m not in self._CANDIDATES]
        if unknown:
            raise ValueError(f"Unknown candidate models: {unknown}")

        self.min_training_points = max(
            FORECAST_CONFIG["min_training_points"], 2 * self.seasonal_periods
        )
        self.min_points_ma = FORECAST_CONFIG["min_data_points_moving_avg"]
        self.z_score = stats.norm.ppf((1 + self.confidence_level) / 2)

        logger.info(
            f"Forecaster initialized: horizon={self.horizon} days, "
            f"seasonal_periods={self.seasonal_periods}, holdout={self.holdout_days} days"
        )

    def forecast_matrix(self, matrix: DemandMatrix) -> List[ForecastResult]:
        """
        Forecast every store of a DemandMatrix.

        Stores without a single observation are skipped and logged.
        """
        results = []

        with LogContext(logger, f"Forecasting {len(matrix.store_series)} stores"):
            for store_id, series in matrix.store_series.items():
                try:
                    results.append(self.forecast_store(series, store_id))
                except ForecastError as e:
                    logger.warning(f"Skipping store {store_id}: {e}")

        by_method = pd.Series([r.method for r in results]).value_counts().to_dict()
        logger.info(f"Forecasting complete: {by_method}")
        return results

    def forecast_store(self, series: pd.Series, store_id: Any = None) -> ForecastResult:
        """
        Select a model by holdout RMSE and forecast one store.

        Parameters
        ----------
        series : pd.Series
            Daily sequence with a DatetimeIndex; NaN marks missing days
        store_id : Any
            Store identifier (defaults to series.name)

        Raises
        ------
        ForecastError
            If the sequence holds no observation at all
        """
        store_id = series.name if store_id is None else store_id
        first_valid = series.first_valid_index()
        if first_valid is None:
            raise ForecastError(f"No observed demand for store {store_id}", code="NO_DATA")

        series = series.loc[first_valid:].astype(float)
        n_observed = int(series.notna().sum())
        n_train = len(series) - self.holdout_days

        if n_train >= self.min_training_points and series.iloc[-self.holdout_days:].notna().any():
            return self._select_and_forecast(series, store_id)
        if n_observed >= self.min_points_ma:
            return self._forecast_moving_average(series, store_id)
        return self._insufficient_data_forecast(series, store_id)

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    def _select_and_forecast(self, series: pd.Series, store_id: Any) -> ForecastResult:
        train = series.iloc[:-self.holdout_days]
        test = series.iloc[-self.holdout_days:]

        candidates = [self._score_candidate(name, train, test, store_id) for name in self.candidate_models]
        successful = [c for c in candidates if c.succeeded]

        if not successful:
            logger.warning(f"All candidate models failed for store {store_id}, using moving average")
            result = self._forecast_moving_average(series, store_id)
            result.candidates = candidates
            return result

        best = min(successful, key=lambda c: (c.rmse, self.candidate_models.index(c.model)))

        try:
            values, resid_std, params = self._fit_predict(best.model, series, self.horizon, best.params)
        except Exception as e:
            logger.warning(f"Refit of {best.model} failed for store {store_id}: {e}")
            result = self._forecast_moving_average(series, store_id)
            result.candidates = candidates
            return result

        forecast_df = self._forecast_frame(series.index[-1], values, resid_std)

        explanation = (
            f"Selected {best.model} out of {len(successful)} candidate models by holdout RMSE "
            f"({best.rmse:.2f} over the last {self.holdout_days} days). "
            f"Refit on {int(series.notna().sum())} observed days; weekly seasonality "
            f"(period {self.seasonal_periods})."
        )

        return ForecastResult(
            store_id=store_id,
            method=best.model,
            forecast=forecast_df,
            model_params=params,
            quality_metrics={
                'rmse': best.rmse,
                'mae': best.mae,
                'holdout_points': best.holdout_points,
                'std_residual': resid_std,
                'data_points': int(series.notna().sum()),
            },
            candidates=candidates,
            explanation=explanation
        )

    def _score_candidate(self, name: str, train: pd.Series, test: pd.Series, store_id: Any) -> CandidateScore:
        try:
            predicted, _, params = self._fit_predict(name, train, len(test))
        except Exception as e:
            logger.warning(f"{name} failed for store {store_id}: {e}")
            return CandidateScore(model=name, error=str(e))

        observed = test.notna().to_numpy()
        errors = test.to_numpy()[observed] - predicted[observed]

        return CandidateScore(
            model=name,
            rmse=float(np.sqrt(np.mean(errors ** 2))),
            mae=float(np.mean(np.abs(errors))),
            holdout_points=int(observed.sum()),
            params=params
        )

    def _fit_predict(
        self,
        name: str,
        series: pd.Series,
        steps: int,
        params: Optional[Dict[str, Any]] = None
    ) -> Tuple[np.ndarray, float, Dict[str, Any]]:
        """Fit one candidate and return (point forecast, residual std, params)."""
        with warnings.catch_warnings():
            # statsmodels convergence and frequency chatter
            warnings.simplefilter('ignore')
            return self._CANDIDATES[name](self, series, steps, params or {})

    def _holt_winters(self, series: pd.Series, steps: int, trend: Optional[str]) -> Tuple[np.ndarray, float, Dict[str, Any]]:
        """
        Holt-Winters exponential smoothing with additive weekly seasonality.

        Forecasts of a damped trend converge instead of growing without
        bound over the horizon.
        """
        y = _interpolate(series)
        hw_params = FORECAST_CONFIG["holt_winters_defaults"]

        model = ExponentialSmoothing(
            y,
            trend=trend,
            damped_trend=hw_params["damped_trend"] if trend else False,
            seasonal=hw_params["seasonal"],
            seasonal_periods=self.seasonal_periods,
            initialization_method='estimated'
        )
        fitted = model.fit(optimized=True)

        params = {
            'trend': trend,
            'damped': bool(trend and hw_params["damped_trend"]),
            'seasonal': hw_params["seasonal"],
            'seasonal_periods': self.seasonal_periods,
            'smoothing_level': float(fitted.params.get('smoothing_level', np.nan)),
        }
        return np.asarray(fitted.forecast(steps)), float(np.std(fitted.resid)), params

    def _holt_winters_damped(self, series, steps, params):
        return self._holt_winters(series, steps, trend=FORECAST_CONFIG["holt_winters_defaults"]["trend"])

    def _holt_winters_seasonal(self, series, steps, params):
        return self._holt_winters(series, steps, trend=None)

    def _sarima(self, series: pd.Series, steps: int, params: Dict[str, Any]) -> Tuple[np.ndarray, float, Dict[str, Any]]:
        """
        SARIMA with the non-seasonal differencing order chosen by an ADF test
        and (p, q, seasonal) orders chosen by AICc. A known order in `params`
        (from the holdout fit) is reused as is.
        """
        y = series.to_numpy(dtype=float)

        if 'order' in params:
            order, seasonal_order = tuple(params['order']), tuple(params['seasonal_order'])
            fitted = self._fit_sarimax(y, order, seasonal_order)
            aicc = float(fitted.aicc)
        else:
            d = self._differencing_order(series)
            search = FORECAST_CONFIG["arima_search"]
            best = None
            for p in search["p_values"]:
                for q in search["q_values"]:
                    for P, D, Q in search["seasonal_orders"]:
                        seasonal_order = (P, D, Q, self.seasonal_periods) if (P or D or Q) else (0, 0, 0, 0)
                        try:
                            fitted = self._fit_sarimax(y, (p, d, q), seasonal_order)
                        except (ValueError, np.linalg.LinAlgError):
                            continue
                        if np.isfinite(fitted.aicc) and (best is None or fitted.aicc < best[0]):
                            best = (fitted.aicc, (p, d, q), seasonal_order, fitted)
            if best is None:
                raise ForecastError("No SARIMA order could be fitted", code="SARIMA_FAILED")
            aicc, order, seasonal_order, fitted = best

        values = np.asarray(fitted.get_forecast(steps).predicted_mean)
        resid = np.asarray(fitted.resid)
        params = {
            'order': list(order),
            'seasonal_order': list(seasonal_order),
            'aicc': float(aicc),
        }
        return values, float(np.nanstd(resid)), params

    def _fit_sarimax(self, y: np.ndarray, order, seasonal_order):
        differenced = order[1] > 0 or seasonal_order[1] > 0
        model = SARIMAX(
            y,
            order=order,
            seasonal_order=seasonal_order,
            trend='n' if differenced else 'c',
            enforce_stationarity=False,
            enforce_invertibility=False
        )
        return model.fit(disp=False)

    def _differencing_order(self, series: pd.Series) -> int:
        """Difference until the ADF test rejects a unit root (up to max_d)."""
        search = FORECAST_CONFIG["arima_search"]
        y = _interpolate(series)

        for d in range(search["max_d"] + 1):
            if d > 0:
                y = np.diff(y)
            if len(y) < 3 or np.ptp(y) == 0:
                return d
            p_value = adfuller(y, autolag='AIC')[1]
            if p_value < search["adf_alpha"]:
                return d
        return search["max_d"]

    def _seasonal_naive(self, series: pd.Series, steps: int, params: Dict[str, Any]) -> Tuple[np.ndarray, float, Dict[str, Any]]:
        y = _interpolate(series)
        period = self.seasonal_periods
        if len(y) < period:
            raise ForecastError("Series shorter than one season", code="SHORT_SERIES")

        last_season = y[-period:]
        values = np.resize(last_season, steps)
        resid = y[period:] - y[:-period]
        resid_std = float(np.std(resid)) if len(resid) > 1 else float(np.std(y))
        return values, resid_std, {'seasonal_periods': period}

    _CANDIDATES = {
        'holt_winters_damped': _holt_winters_damped,
        'holt_winters_seasonal': _holt_winters_seasonal,
        'sarima': _sarima,
        'seasonal_naive': _seasonal_naive,
    }

    # ------------------------------------------------------------------
    # Fallbacks
    # ------------------------------------------------------------------

    def _forecast_moving_average(self, series: pd.Series, store_id: Any) -> ForecastResult:
        """
        Fallback: mean of the most recent observed days.

        More stable with limited data and needs no seasonality assumption.
        """
        observed = series.dropna().to_numpy()
        window = min(FORECAST_CONFIG["moving_average_window"], len(observed))
        recent_values = observed[-window:]

        forecast_value = float(np.mean(recent_values))
        std_dev = float(np.std(recent_values)) if len(recent_values) > 1 else forecast_value * 0.2

        forecast_df = self._forecast_frame(
            series.index[-1], np.full(self.horizon, forecast_value), std_dev
        )

        explanation = (
            f"Forecast generated using {window}-day moving average. "
            f"Limited history ({len(observed)} observed days) prevented holdout model selection. "
            f"Average daily demand: {forecast_value:.1f} units."
        )

        return ForecastResult(
            store_id=store_id,
            method='moving_average',
            forecast=forecast_df,
            model_params={'window': window, 'method': 'simple_moving_average'},
            quality_metrics={
                'std_dev': std_dev,
                'data_points': len(observed),
                'mean_demand': forecast_value
            },
            explanation=explanation
        )

    def _insufficient_data_forecast(self, series: pd.Series, store_id: Any) -> ForecastResult:
        """Conservative forecast with high uncertainty."""
        observed = series.dropna().to_numpy()
        mean_value = float(np.mean(observed))
        uncertainty = max(mean_value * 0.5, 1.0)

        forecast_df = pd.DataFrame({
            'date': self._forecast_dates(series.index[-1]),
            'forecast': [mean_value] * self.horizon,
            'lower_bound': [max(0.0, mean_value - uncertainty)] * self.horizon,
            'upper_bound': [mean_value + uncertainty] * self.horizon
        })

        explanation = (
            f"Insufficient history ({len(observed)} observed days) for a reliable forecast. "
            f"Using the mean with a wide uncertainty band."
        )

        return ForecastResult(
            store_id=store_id,
            method='insufficient_data',
            forecast=forecast_df,
            model_params={'data_points': len(observed), 'required_minimum': self.min_points_ma},
            quality_metrics={'data_points': len(observed)},
            explanation=explanation
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _forecast_dates(self, last_date) -> pd.DatetimeIndex:
        return pd.date_range(
            start=pd.Timestamp(last_date) + timedelta(days=1),
            periods=self.horizon,
            freq='D'
        )

    def _forecast_frame(self, last_date, values: np.ndarray, std: float) -> pd.DataFrame:
        values = np.maximum(np.nan_to_num(np.asarray(values, dtype=float)), 0)
        std = std if np.isfinite(std) else 0.0

        return pd.DataFrame({
            'date': self._forecast_dates(last_date),
            'forecast': values,
            'lower_bound': np.maximum(values - self.z_score * std, 0),
            'upper_bound': values + self.z_score * std
        })


def _interpolate(series: pd.Series) -> np.ndarray:
    """Linear interpolation of missing days; edges take the nearest value."""
    filled = series.astype(float).interpolate(method='linear', limit_direction='both')
    return filled.fillna(0.0).to_numpy()


def build_forecast_table(
    results: List[ForecastResult],
    store_names: Optional[Dict[Any, str]] = None
) -> pd.DataFrame:
    """
    Pivot per-store forecasts into the final wide table.

    One `date` column and one column per store (display name when known);
    values are rounded up to the next whole unit. Stores sharing a display
    name get the store id appended so no column is overwritten.
    """
    store_names = store_names or {}
    labels = [store_names.get(r.store_id, str(r.store_id)) for r in results]
    counts = Counter(labels)
    columns = {}

    for result, label in zip(results, labels):
        if counts[label] > 1:
            logger.warning(f"Display name '{label}' is shared by several stores; "
                           f"using '{label} ({result.store_id})'")
            label = f"{label} ({result.store_id})"
        values = result.forecast.set_index('date')['forecast']
        columns[label] = values.apply(math.ceil).astype(int)

    if not columns:
        return pd.DataFrame(columns=['date'])

    table = pd.DataFrame(columns)
    table.index.name = 'date'
    return table.reset_index()


def selection_table(results: List[ForecastResult]) -> pd.DataFrame:
    """Holdout scores of every candidate per store, with the selected flag."""
    rows = []
    for result in results:
        for candidate in result.candidates:
            rows.append({
                'store_id': result.store_id,
                'model': candidate.model,
                'rmse': candidate.rmse,
                'mae': candidate.mae,
                'holdout_points': candidate.holdout_points,
                'selected': candidate.model == result.method,
                'error': candidate.error,
            })
        if not result.candidates:
            rows.append({
                'store_id': result.store_id,
                'model': result.method,
                'rmse': float('nan'),
                'mae': float('nan'),
                'holdout_points': 0,
                'selected': True,
                'error': None,
            })
    return pd.DataFrame(rows, columns=['store_id', 'model', 'rmse', 'mae', 'holdout_points', 'selected', 'error'])
