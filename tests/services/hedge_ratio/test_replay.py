"""Tests for batch replay and CSV loading."""

import math

import numpy as np
import pandas as pd
import pytest

from services.hedge_ratio.filter import HedgeRatioFilter, InvalidPriceError
from services.hedge_ratio.replay import OUTPUT_COLUMNS, load_price_csv, replay_prices


class TestReplayPrices:

    def test_output_frame(self, hedge_filter, correlated_prices):
        price_a, price_b = correlated_prices

        frame = replay_prices(hedge_filter, price_a, price_b)

        assert list(frame.columns) == OUTPUT_COLUMNS
        assert len(frame) == len(price_a)
        assert frame['hedge_quantity'].dtype == np.int64
        assert frame['forecast_error'].iloc[0] == price_b[0]
        assert frame['forecast_std'].iloc[0] == math.sqrt(1e-3)
        assert (frame['forecast_std'] > 0).all()
        assert hedge_filter.n_observations == len(price_a)
        assert frame['hedge_ratio'].iloc[-1] == hedge_filter.hedge_ratio

    def test_matches_step_by_step_updates(self, correlated_prices):
        price_a, price_b = correlated_prices
        batch = replay_prices(HedgeRatioFilter(), price_a[:100], price_b[:100])

        stepwise = HedgeRatioFilter()
        for i, (a, b) in enumerate(zip(price_a[:100], price_b[:100])):
            result = stepwise.update(a, b)
            assert batch['forecast_error'].iloc[i] == result.forecast_error
            assert batch['forecast_std'].iloc[i] == result.forecast_std
            assert batch['hedge_quantity'].iloc[i] == result.hedge_quantity
            assert batch['z_score'].iloc[i] == pytest.approx(result.z_score)

    def test_datetime_index(self, hedge_filter):
        index = pd.date_range('2024-01-01', periods=3, freq='D', tz='UTC')

        frame = replay_prices(hedge_filter, [10.0, 11.0, 12.0], [15.0, 16.5, 18.0], index=index)

        assert frame.index.equals(index)
        assert hedge_filter.last_update == index[-1].to_pydatetime()

    def test_length_mismatch(self, hedge_filter):
        with pytest.raises(ValueError):
            replay_prices(hedge_filter, [1.0, 2.0], [1.0])

        assert hedge_filter.n_observations == 0

    def test_invalid_price_propagates(self, hedge_filter):
        with pytest.raises(InvalidPriceError):
            replay_prices(hedge_filter, [1.0, float('nan'), 3.0], [2.0, 4.0, 6.0])

        assert hedge_filter.n_observations == 1

    def test_empty_input(self, hedge_filter):
        frame = replay_prices(hedge_filter, [], [])

        assert frame.empty
        assert list(frame.columns) == OUTPUT_COLUMNS


class TestLoadPriceCsv:

    def test_load_sorted_and_renamed(self, tmp_path):
        path = tmp_path / "prices.csv"
        pd.DataFrame({
            'date': ['2024-01-03', '2024-01-01', '2024-01-02'],
            'EWA': [21.0, 20.0, 20.5],
            'EWC': [26.0, 25.0, None],
        }).to_csv(path, index=False)

        prices = load_price_csv(path, 'EWA', 'EWC', timestamp_column='date')

        assert list(prices.columns) == ['price_a', 'price_b']
        assert len(prices) == 2
        assert prices.index.is_monotonic_increasing
        assert prices['price_a'].tolist() == [20.0, 21.0]
        assert prices['price_b'].tolist() == [25.0, 26.0]

    def test_without_timestamp_column(self, price_csv):
        prices = load_price_csv(price_csv, 'AAA', 'BBB')

        assert len(prices) == 1000
        assert prices['price_a'].dtype == float

    def test_missing_column(self, price_csv):
        with pytest.raises(ValueError):
            load_price_csv(price_csv, 'AAA', 'ZZZ')
