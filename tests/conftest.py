"""
Shared fixtures: synthetic observations and seasonal prediction grids.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from marine_sdm.schema import COVARIATES, SEASONS

TRUE_INTERCEPT = -0.5
TRUE_SLOPE = 1.5


def _covariate_frame(rng, n):
    return pd.DataFrame({
        "slope": rng.gamma(2.0, 0.5, n),
        "depth": -rng.gamma(3.0, 8.0, n),
        "sandeel": rng.normal(50.0, 10.0, n),
        "chl_day": rng.lognormal(0.5, 0.3, n),
        "chl_week": rng.lognormal(0.5, 0.3, n),
        "chl_day_lag": rng.lognormal(0.5, 0.3, n),
        "chl_week_lag": rng.lognormal(0.5, 0.3, n),
        "sst_day": rng.normal(12.0, 3.0, n),
        "sst_week": rng.normal(12.0, 3.0, n),
        "sal_day": rng.normal(20.0, 5.0, n),
        "sal_week": rng.normal(20.0, 5.0, n),
    })[COVARIATES]


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def single_covariate_data(rng):
    """1000 rows with logit(p) = TRUE_INTERCEPT + TRUE_SLOPE * x."""
    n = 1000
    x = rng.normal(0.0, 1.0, n)
    p = 1.0 / (1.0 + np.exp(-(TRUE_INTERCEPT + TRUE_SLOPE * x)))
    return pd.DataFrame({"x_cov": x, "presence": rng.binomial(1, p)})


@pytest.fixture
def nonlinear_data(rng):
    """1000 rows with a strongly non-linear (sinusoidal) logit."""
    n = 1000
    x = rng.uniform(-3.0, 3.0, n)
    p = 1.0 / (1.0 + np.exp(-3.0 * np.sin(2.0 * x)))
    return pd.DataFrame({"x_cov": x, "presence": rng.binomial(1, p)})


@pytest.fixture
def observations(rng):
    """Observation table with every schema column; presence driven by depth and SST."""
    n = 400
    frame = _covariate_frame(rng, n)
    logit = 0.08 * (frame["depth"] + 24.0) - 0.4 * (frame["sst_day"] - 12.0)
    frame["presence"] = rng.binomial(1, 1.0 / (1.0 + np.exp(-logit)))
    frame.insert(0, "id", np.arange(n))
    frame.insert(1, "day", rng.integers(1, 28, n))
    frame.insert(2, "month", rng.integers(1, 13, n))
    frame.insert(3, "year", rng.integers(2010, 2016, n))
    frame.insert(4, "lat", rng.uniform(55.0, 57.0, n))
    frame.insert(5, "lon", rng.uniform(10.0, 12.0, n))
    return frame


def make_grid(rng, nx=6, ny=5, spacing=2000.0):
    xs, ys = np.meshgrid(500000.0 + spacing * np.arange(nx), 6200000.0 + spacing * np.arange(ny))
    grid = _covariate_frame(rng, nx * ny)
    grid.insert(0, "x", xs.ravel())
    grid.insert(1, "y", ys.ravel())
    return grid


@pytest.fixture
def seasonal_grids(rng):
    return {season: make_grid(rng) for season in SEASONS}


@pytest.fixture
def data_dir(tmp_path, observations, seasonal_grids):
    """Directory with observations.csv and grid_<season>.csv files."""
    observations.to_csv(tmp_path / "observations.csv", index=False)
    for season, grid in seasonal_grids.items():
        grid.to_csv(tmp_path / f"grid_{season}.csv", index=False)
    return tmp_path
