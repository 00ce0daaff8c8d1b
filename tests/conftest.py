"""Pytest configuration and fixtures."""

import numpy as np
import pandas as pd
import pytest

from services.hedge_ratio.filter import HedgeRatioFilter


@pytest.fixture
def hedge_filter():
    """Filter with the default configuration."""
    return HedgeRatioFilter(delta=1e-4, observation_noise_variance=1e-3, quantity_scale=2000)


@pytest.fixture
def correlated_prices():
    """Two positively correlated synthetic price series, price_b ~ 1.5 * price_a."""
    rng = np.random.default_rng(42)
    n = 1000
    t = np.arange(n)
    price_a = 100.0 + 30.0 * np.sin(t / 40.0) + rng.normal(0.0, 0.5, n)
    price_b = 1.5 * price_a + rng.normal(0.0, 0.01, n)
    return price_a, price_b


@pytest.fixture
def price_csv(tmp_path, correlated_prices):
    """CSV file with timestamped prices for both instruments."""
    price_a, price_b = correlated_prices
    frame = pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=len(price_a), freq='D'),
        'AAA': price_a,
        'BBB': price_b,
    })
    path = tmp_path / "prices.csv"
    frame.to_csv(path, index=False)
    return path


# Markers for different test types
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
