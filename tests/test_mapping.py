"""
Tests for observation and seasonal map rendering (Agg backend).
"""

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from marine_sdm.data import project_coordinates
from marine_sdm.geodata import Bathymetry
from marine_sdm.mapping import (
    add_scale_bar,
    plot_observations,
    plot_seasonal_maps,
    plot_smooth_terms,
    shared_extent,
)
from marine_sdm.model import PresenceModel
from marine_sdm.predict import predict_seasons
from marine_sdm.schema import SEASONS


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def coastlines():
    return gpd.GeoDataFrame({"iso": ["DNK"]}, geometry=[box(10.5, 55.5, 11.5, 56.5)], crs="EPSG:4326")


@pytest.fixture
def bathymetry():
    lon = np.linspace(9.0, 13.0, 20)
    lat = np.linspace(58.0, 54.0, 20)
    depth = -np.add.outer(np.linspace(5, 80, 20), np.linspace(0, 40, 20))
    return Bathymetry(lon=lon, lat=lat, depth=depth, transform=from_origin(8.9, 58.1, 0.2, 0.2))


@pytest.fixture
def seasonal_predictions(observations, seasonal_grids):
    model = PresenceModel(family="glm", covariates=["depth", "sst_day"])
    model.fit(observations)
    return predict_seasons(model, seasonal_grids)


def test_shared_extent_covers_all_frames(seasonal_grids):
    """Test that the extent contains every grid's coordinates."""
    shifted = seasonal_grids["summer"].assign(x=seasonal_grids["summer"]["x"] + 50000.0)

    xmin, xmax, ymin, ymax = shared_extent([seasonal_grids["winter"], shifted], pad=0.0)

    assert xmin == seasonal_grids["winter"]["x"].min()
    assert xmax == shifted["x"].max()
    assert (ymin, ymax) == (seasonal_grids["winter"]["y"].min(), seasonal_grids["winter"]["y"].max())


def test_plot_observations(observations, coastlines, bathymetry):
    """Test points are drawn per class with legend counts."""
    observations = project_coordinates(observations)

    ax = plot_observations(observations, coastlines=coastlines, bathymetry=bathymetry)

    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    n_presence = int(observations["presence"].sum())
    assert f"Presence (n={n_presence})" in labels
    assert f"Absence (n={len(observations) - n_presence})" in labels


def test_plot_seasonal_maps_share_scale_and_extent(tmp_path, seasonal_predictions, coastlines, bathymetry):
    """Test four panels with identical limits and colour scale."""
    output = tmp_path / "maps" / "seasons.png"

    fig = plot_seasonal_maps(seasonal_predictions, coastlines=coastlines, bathymetry=bathymetry,
                             output_path=output)

    assert output.exists()
    panels = [ax for ax in fig.axes if ax.get_title() in {s.capitalize() for s in SEASONS}]
    assert len(panels) == 4
    assert len({ax.get_xlim() for ax in panels}) == 1
    assert len({ax.get_ylim() for ax in panels}) == 1
    for ax in panels:
        image = ax.get_images()[0]
        assert image.get_clim() == (0.0, 1.0)


def test_plot_seasonal_maps_data_range(seasonal_predictions):
    """Test that vmin/vmax of None use the range across seasons."""
    fig = plot_seasonal_maps(seasonal_predictions, vmin=None, vmax=None)

    low = min(g["probability"].min() for g in seasonal_predictions.values())
    high = max(g["probability"].max() for g in seasonal_predictions.values())
    clims = {ax.get_images()[0].get_clim() for ax in fig.axes if ax.get_images()}
    assert len(clims) == 1
    assert clims.pop() == pytest.approx((low, high))


def test_plot_seasonal_maps_empty():
    with pytest.raises(ValueError):
        plot_seasonal_maps({})


def test_scale_bar_length():
    """Test that the bar is a round length near a fifth of the width."""
    _, ax = plt.subplots()
    ax.set_xlim(0, 100000)
    ax.set_ylim(0, 100000)

    assert add_scale_bar(ax) == 20


def test_plot_smooth_terms(tmp_path, nonlinear_data):
    """Test one panel per smooth term."""
    model = PresenceModel(family="gam", covariates=["x_cov"], n_splines=8)
    model.fit(nonlinear_data)

    fig = plot_smooth_terms(model, output_path=tmp_path / "smooths.png")

    assert (tmp_path / "smooths.png").exists()
    visible = [ax for ax in fig.axes if ax.get_visible()]
    assert visible[0].get_xlabel() == "x_cov"


def test_plot_smooth_terms_requires_gam(observations):
    model = PresenceModel(family="glm", covariates=["depth"])
    model.fit(observations)

    with pytest.raises(ValueError, match="GAM"):
        plot_smooth_terms(model)
