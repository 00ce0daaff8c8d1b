"""Kalman filter for a dynamic hedge ratio and intercept between two price series."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

import numpy as np
import structlog

from .linalg import Matrix2, Vector2

logger = structlog.get_logger(__name__)

# Tolerance used when flagging a covariance that drifted away from PSD
PSD_TOLERANCE = 1e-12


class HedgeRatioFilterError(Exception):
    """Base exception for hedge ratio filter failures."""


class InvalidPriceError(HedgeRatioFilterError, ValueError):
    """A price passed to the filter was not a finite number."""


class NumericalInstabilityError(HedgeRatioFilterError, ArithmeticError):
    """The covariance recursion produced a non-positive or non-finite value."""


class FilterConfigurationError(HedgeRatioFilterError, ValueError):
    """The filter was constructed with out-of-range parameters."""


class UnknownPairError(HedgeRatioFilterError, KeyError):
    """No filter is registered for the requested pair."""


class FilterResult(NamedTuple):
    """Per-step filter output."""
    forecast_error: float
    forecast_std: float
    hedge_quantity: int

    @property
    def z_score(self) -> float:
        """Forecast error in units of its predictive standard deviation."""
        return self.forecast_error / self.forecast_std


@dataclass
class FilterState:
    """Snapshot of the filter state."""
    theta: np.ndarray
    state_covariance: np.ndarray
    prior_covariance: np.ndarray
    has_prior: bool
    timestamp: Optional[datetime]
    n_observations: int


class HedgeRatioFilter:
    """
    Kalman filter tracking the linear relationship between two price series.

    State-space model:
    - State: theta = [hedge_ratio, intercept], a random walk with
      covariance W = diag(delta / (1 - delta), delta / (1 - delta))
    - Observation: price_b = hedge_ratio * price_a + intercept + noise(v)

    Each call to update() advances the filter by exactly one step. Calls must
    be made in chronological order; the filter has no notion of timestamps
    beyond recording the last one it saw.
    """

    def __init__(
        self,
        delta: float = 1e-4,
        observation_noise_variance: float = 1e-3,
        quantity_scale: float = 2000.0
    ):
        """
        Initialize the filter.

        Args:
            delta: Process noise scale in (0, 1). Higher values let the hedge
                ratio adapt faster at the cost of noisier estimates.
            observation_noise_variance: Measurement noise variance (v). Higher
                values make the filter trust new observations less.
            quantity_scale: Multiplier converting the hedge ratio into a unit
                count for the second leg of the pair.
        """
        if not (0.0 < delta < 1.0):
            raise FilterConfigurationError(f"delta must be in (0, 1), got {delta}")
        if not (math.isfinite(observation_noise_variance) and observation_noise_variance > 0):
            raise FilterConfigurationError(
                f"observation_noise_variance must be finite and positive, got {observation_noise_variance}"
            )
        if not (math.isfinite(quantity_scale) and quantity_scale > 0):
            raise FilterConfigurationError(
                f"quantity_scale must be finite and positive, got {quantity_scale}"
            )

        self.delta = delta
        self.observation_noise_variance = observation_noise_variance
        self.quantity_scale = quantity_scale

        process_variance = delta / (1.0 - delta)
        self.process_covariance = Matrix2.diagonal(process_variance, process_variance)

        self.theta = Vector2.zeros()
        self.state_covariance = Matrix2.zeros()
        self.prior_covariance = Matrix2.zeros()
        self._has_prior = False

        self.n_observations = 0
        self.last_update: Optional[datetime] = None

        logger.info(
            "Hedge ratio filter initialized",
            delta=delta,
            observation_noise_variance=observation_noise_variance,
            quantity_scale=quantity_scale
        )

    @property
    def has_prior(self) -> bool:
        """Whether a posterior covariance from a previous step exists."""
        return self._has_prior

    @property
    def params(self) -> Dict[str, float]:
        """Constructor arguments that reproduce this filter's configuration."""
        return {
            'delta': self.delta,
            'observation_noise_variance': self.observation_noise_variance,
            'quantity_scale': self.quantity_scale
        }

    @property
    def hedge_ratio(self) -> float:
        return self.theta.x0

    @property
    def intercept(self) -> float:
        return self.theta.x1

    def compute_hedge_quantity(self, hedge_ratio: float) -> int:
        """Units of the second instrument for a hedge ratio, floored toward -inf."""
        return math.floor(self.quantity_scale * hedge_ratio)

    def update(
        self,
        price_a: float,
        price_b: float,
        timestamp: Optional[datetime] = None
    ) -> FilterResult:
        """
        Advance the filter by one observation.

        Args:
            price_a: Price of the first instrument (the regressor)
            price_b: Price of the second instrument (the observed value)
            timestamp: Bar timestamp, recorded for diagnostics only

        Returns:
            FilterResult(forecast_error, forecast_std, hedge_quantity)

        Raises:
            InvalidPriceError: if either price is not a finite number
            NumericalInstabilityError: if the innovation variance is not
                positive or any updated quantity is non-finite. The filter
                state is left untouched in both cases.
        """
        price_a = self._validate_price("price_a", price_a)
        price_b = self._validate_price("price_b", price_b)

        observation = Vector2(price_a, 1.0)

        # Prior covariance: nothing before the first observation
        if self._has_prior:
            prior_covariance = self.state_covariance + self.process_covariance
        else:
            prior_covariance = Matrix2.zeros()

        # Innovation
        predicted = observation.dot(self.theta)
        forecast_error = price_b - predicted

        # Innovation variance: F R F^T + v
        fr = prior_covariance.matvec(observation)
        innovation_variance = observation.dot(fr) + self.observation_noise_variance
        if not math.isfinite(innovation_variance) or innovation_variance <= 0.0:
            logger.error(
                "Non-positive innovation variance",
                innovation_variance=innovation_variance,
                price_a=price_a,
                price_b=price_b,
                n_observations=self.n_observations
            )
            raise NumericalInstabilityError(
                f"Innovation variance must be positive, got {innovation_variance}"
            )
        forecast_std = math.sqrt(innovation_variance)

        # Kalman gain and posterior update
        gain = fr / innovation_variance
        theta = self.theta + gain.scale(forecast_error)
        state_covariance = (prior_covariance - gain.outer(fr)).symmetrized()

        if not (theta.is_finite() and state_covariance.is_finite()):
            logger.error(
                "Non-finite filter state after update",
                theta=theta.to_array().tolist(),
                state_covariance=state_covariance.to_array().tolist(),
                n_observations=self.n_observations
            )
            raise NumericalInstabilityError("Filter update produced non-finite state")

        try:
            hedge_quantity = self.compute_hedge_quantity(theta.x0)
        except (OverflowError, ValueError) as e:
            logger.error(
                "Hedge quantity out of range",
                hedge_ratio=theta.x0,
                quantity_scale=self.quantity_scale,
                n_observations=self.n_observations
            )
            raise NumericalInstabilityError(f"Cannot size hedge for ratio {theta.x0}") from e

        # Commit
        self.prior_covariance = prior_covariance
        self.theta = theta
        self.state_covariance = state_covariance
        self._has_prior = True
        self.n_observations += 1
        self.last_update = timestamp or datetime.now(timezone.utc)

        if not self._is_positive_semidefinite(state_covariance):
            logger.warning(
                "State covariance is no longer positive semidefinite",
                state_covariance=state_covariance.to_array().tolist(),
                n_observations=self.n_observations
            )

        logger.debug(
            "Hedge ratio filter updated",
            hedge_ratio=theta.x0,
            intercept=theta.x1,
            forecast_error=forecast_error,
            forecast_std=forecast_std,
            hedge_quantity=hedge_quantity,
            n_observations=self.n_observations
        )

        return FilterResult(forecast_error, forecast_std, hedge_quantity)

    @staticmethod
    def _validate_price(name: str, value: float) -> float:
        if isinstance(value, (str, bytes, bool, np.bool_)):
            raise InvalidPriceError(f"{name} must be a number, got {type(value).__name__} {value!r}")
        try:
            price = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidPriceError(f"{name} is not a number: {value!r}") from e
        if not math.isfinite(price):
            logger.warning("Rejected non-finite price", field=name, value=price)
            raise InvalidPriceError(f"{name} must be finite, got {price}")
        return price

    @staticmethod
    def _is_positive_semidefinite(matrix: Matrix2) -> bool:
        scale = max(abs(matrix.a00), abs(matrix.a11), 1.0)
        tol = PSD_TOLERANCE * scale
        return (
            matrix.a00 >= -tol
            and matrix.a11 >= -tol
            and matrix.determinant() >= -tol * scale
        )

    def get_current_state(self) -> FilterState:
        """Get a copy of the current filter state."""
        return FilterState(
            theta=self.theta.to_array(),
            state_covariance=self.state_covariance.to_array(),
            prior_covariance=self.prior_covariance.to_array(),
            has_prior=self._has_prior,
            timestamp=self.last_update,
            n_observations=self.n_observations
        )

    def set_state(self, state: FilterState) -> None:
        """
        Set the filter state (used for loading from persistence).

        Every field is converted before any is assigned, so a malformed
        snapshot raises ValueError and leaves the filter as it was.
        """
        theta = Vector2.from_array(state.theta)
        state_covariance = Matrix2.from_array(state.state_covariance)
        prior_covariance = Matrix2.from_array(state.prior_covariance)
        n_observations = int(state.n_observations)
        if n_observations < 0:
            raise ValueError(f"n_observations must be non-negative, got {n_observations}")

        self.theta = theta
        self.state_covariance = state_covariance
        self.prior_covariance = prior_covariance
        self._has_prior = bool(state.has_prior)
        self.last_update = state.timestamp
        self.n_observations = n_observations

        logger.info(
            "Hedge ratio filter state loaded",
            hedge_ratio=self.theta.x0,
            intercept=self.theta.x1,
            n_observations=self.n_observations
        )

    def reset(self) -> None:
        """Re-initialize the filter, discarding all history."""
        self.theta = Vector2.zeros()
        self.state_covariance = Matrix2.zeros()
        self.prior_covariance = Matrix2.zeros()
        self._has_prior = False
        self.n_observations = 0
        self.last_update = None

        logger.info("Hedge ratio filter reset")

    def get_diagnostics(self) -> Dict[str, Any]:
        """Get diagnostic information about the filter."""
        return {
            'theta': self.theta.to_array().tolist(),
            'state_covariance': self.state_covariance.to_array().tolist(),
            'prior_covariance': self.prior_covariance.to_array().tolist(),
            'state_covariance_determinant': self.state_covariance.determinant(),
            'state_covariance_min_eigenvalue': self.state_covariance.min_eigenvalue(),
            'state_covariance_symmetric': self.state_covariance.is_symmetric(),
            'state_covariance_psd': self._is_positive_semidefinite(self.state_covariance),
            'has_prior': self._has_prior,
            'n_observations': self.n_observations,
            'last_update': self.last_update.isoformat() if self.last_update else None,
            **self.params
        }


class PairHedgeRatioFilters:
    """
    Manages one independent HedgeRatioFilter per tracked pair.
    """

    def __init__(self):
        self.filters: Dict[str, HedgeRatioFilter] = {}
        self.pair_configs: Dict[str, Dict[str, Any]] = {}

    def add_pair(
        self,
        pair_id: str,
        asset_a: str,
        asset_b: str,
        delta: float = 1e-4,
        observation_noise_variance: float = 1e-3,
        quantity_scale: float = 2000.0
    ) -> HedgeRatioFilter:
        """Add a new trading pair with its own filter."""
        if pair_id in self.filters:
            raise ValueError(f"Pair already registered: {pair_id}")

        filter_obj = HedgeRatioFilter(
            delta=delta,
            observation_noise_variance=observation_noise_variance,
            quantity_scale=quantity_scale
        )
        self.filters[pair_id] = filter_obj
        self.pair_configs[pair_id] = {
            'asset_a': asset_a,
            'asset_b': asset_b,
            'delta': delta,
            'observation_noise_variance': observation_noise_variance,
            'quantity_scale': quantity_scale
        }

        logger.info("Trading pair added", pair_id=pair_id, asset_a=asset_a, asset_b=asset_b)
        return filter_obj

    def remove_pair(self, pair_id: str) -> None:
        self._get_filter(pair_id)
        del self.filters[pair_id]
        del self.pair_configs[pair_id]
        logger.info("Trading pair removed", pair_id=pair_id)

    def update_pair(
        self,
        pair_id: str,
        price_a: float,
        price_b: float,
        timestamp: Optional[datetime] = None
    ) -> FilterResult:
        """Update a trading pair with new prices."""
        return self._get_filter(pair_id).update(price_a, price_b, timestamp)

    def reset_pair(self, pair_id: str) -> None:
        self._get_filter(pair_id).reset()

    def get_pair_state(self, pair_id: str) -> FilterState:
        """Get the current state of a trading pair."""
        return self._get_filter(pair_id).get_current_state()

    def get_all_pairs(self) -> Dict[str, Dict[str, Any]]:
        """Get information about all trading pairs."""
        result = {}
        for pair_id, config in self.pair_configs.items():
            filter_obj = self.filters[pair_id]
            result[pair_id] = {
                **config,
                'hedge_ratio': filter_obj.hedge_ratio,
                'intercept': filter_obj.intercept,
                'n_observations': filter_obj.n_observations,
                'last_update': filter_obj.last_update.isoformat() if filter_obj.last_update else None
            }
        return result

    def _get_filter(self, pair_id: str) -> HedgeRatioFilter:
        try:
            return self.filters[pair_id]
        except KeyError:
            logger.warning("Unknown trading pair", pair_id=pair_id)
            raise UnknownPairError(pair_id) from None
