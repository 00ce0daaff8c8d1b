"""Kalman filter service for a dynamic hedge ratio between two price series."""

from .filter import (
    FilterResult,
    FilterState,
    FilterConfigurationError,
    HedgeRatioFilter,
    HedgeRatioFilterError,
    InvalidPriceError,
    NumericalInstabilityError,
    PairHedgeRatioFilters,
    UnknownPairError
)
from .linalg import Matrix2, Vector2
from .state import StateManager

__all__ = [
    'FilterResult',
    'FilterState',
    'FilterConfigurationError',
    'HedgeRatioFilter',
    'HedgeRatioFilterError',
    'InvalidPriceError',
    'NumericalInstabilityError',
    'PairHedgeRatioFilters',
    'UnknownPairError',
    'Matrix2',
    'Vector2',
    'StateManager'
]

__version__ = '1.0.0'
