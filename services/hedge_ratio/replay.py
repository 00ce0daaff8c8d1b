"""Batch replay of aligned price histories through a hedge ratio filter."""

from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import structlog

from .filter import HedgeRatioFilter

logger = structlog.get_logger(__name__)

OUTPUT_COLUMNS = [
    'forecast_error',
    'forecast_std',
    'hedge_quantity',
    'z_score',
    'hedge_ratio',
    'intercept',
]


def load_price_csv(
    path: Union[str, Path],
    column_a: str,
    column_b: str,
    timestamp_column: Optional[str] = None
) -> pd.DataFrame:
    """
    Load two aligned price columns from a CSV file.

    Rows are sorted by ``timestamp_column`` when given, and rows where either
    price is missing are dropped. Beyond that the two series are assumed to be
    aligned already.

    Returns:
        DataFrame with columns ``price_a`` and ``price_b``
    """
    frame = pd.read_csv(path)

    missing = [c for c in (column_a, column_b, timestamp_column) if c and c not in frame.columns]
    if missing:
        raise ValueError(f"Columns not found in {path}: {missing}")

    if timestamp_column:
        frame[timestamp_column] = pd.to_datetime(frame[timestamp_column])
        frame = frame.sort_values(timestamp_column, kind="stable").set_index(timestamp_column)

    prices = frame[[column_a, column_b]].rename(columns={column_a: 'price_a', column_b: 'price_b'})
    n_rows = len(prices)
    prices = prices.dropna()

    if len(prices) < n_rows:
        logger.warning("Dropped rows with missing prices", dropped=n_rows - len(prices), file=str(path))

    logger.info("Price history loaded", file=str(path), rows=len(prices))
    return prices.astype(float)


def replay_prices(
    filter_obj: HedgeRatioFilter,
    prices_a: Sequence[float],
    prices_b: Sequence[float],
    index: Optional[pd.Index] = None
) -> pd.DataFrame:
    """
    Feed paired prices through the filter in order.

    Errors raised by the filter propagate unchanged; rows processed before the
    failure have already advanced the filter state.

    Returns:
        DataFrame with one row per input pair and OUTPUT_COLUMNS
    """
    prices_a = np.asarray(prices_a, dtype=float)
    prices_b = np.asarray(prices_b, dtype=float)
    if prices_a.shape != prices_b.shape or prices_a.ndim != 1:
        raise ValueError(
            f"Price series must be one-dimensional and equal length, got {prices_a.shape} and {prices_b.shape}"
        )

    timestamps = index if isinstance(index, pd.DatetimeIndex) else None

    rows = []
    for i, (price_a, price_b) in enumerate(zip(prices_a, prices_b)):
        timestamp = timestamps[i].to_pydatetime() if timestamps is not None else None
        result = filter_obj.update(price_a, price_b, timestamp)
        rows.append((
            result.forecast_error,
            result.forecast_std,
            result.hedge_quantity,
            result.z_score,
            filter_obj.hedge_ratio,
            filter_obj.intercept,
        ))

    frame = pd.DataFrame(rows, columns=OUTPUT_COLUMNS, index=index)
    frame['hedge_quantity'] = frame['hedge_quantity'].astype('int64')

    logger.info(
        "Replay completed",
        rows=len(frame),
        hedge_ratio=filter_obj.hedge_ratio,
        intercept=filter_obj.intercept
    )
    return frame
