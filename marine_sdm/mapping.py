"""
Maps of observations and seasonal probability surfaces.
"""

import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.lines import Line2D
from pyproj import Transformer
from rasterio.plot import plotting_extent

from .config import (
    CONTOUR_LEVELS,
    DEFAULT_CRS,
    GEOGRAPHIC_CRS,
    LABEL_COLORS,
    LAND_COLOR,
    PROBABILITY_CMAP,
)
from .data import require_columns
from .geodata import Bathymetry
from .model import PresenceModel
from .predict import grid_to_raster
from .schema import LABEL_COL, PROBABILITY_COL, X_COL, Y_COL

logger = logging.getLogger(__name__)

Extent = tuple[float, float, float, float]  # (xmin, xmax, ymin, ymax)

SCALE_STEPS_KM = [1, 2, 5, 10, 20, 25, 50, 100, 200, 500]


def shared_extent(frames: list[pd.DataFrame], pad: float = 0.02) -> Extent:
    """
    One extent covering the x/y of every frame.

    Args:
        frames: Tables with x and y columns
        pad: Padding as a fraction of the larger side

    Returns:
        (xmin, xmax, ymin, ymax)
    """
    if not frames:
        raise ValueError("At least one frame is required")
    for frame in frames:
        require_columns(frame, [X_COL, Y_COL], "map layer")

    xs = np.concatenate([f[X_COL].to_numpy(dtype=float) for f in frames])
    ys = np.concatenate([f[Y_COL].to_numpy(dtype=float) for f in frames])
    margin = pad * max(xs.max() - xs.min(), ys.max() - ys.min(), 1.0)
    return (xs.min() - margin, xs.max() + margin, ys.min() - margin, ys.max() + margin)


def _draw_context(
    ax,
    coastlines: Optional[gpd.GeoDataFrame],
    bathymetry: Optional[Bathymetry],
    crs: str,
    contour_levels: list[float],
) -> None:
    if bathymetry is not None:
        transformer = Transformer.from_crs(GEOGRAPHIC_CRS, crs, always_xy=True)
        lon, lat = np.meshgrid(bathymetry.lon, bathymetry.lat)
        x, y = transformer.transform(lon, lat)
        low, high = np.nanmin(bathymetry.depth), np.nanmax(bathymetry.depth)
        levels = sorted(level for level in contour_levels if low < level < high)
        if levels:
            contours = ax.contour(x, y, bathymetry.depth, levels=levels, colors="grey",
                                  linewidths=0.4, zorder=2)
            ax.clabel(contours, fontsize=6, fmt="%d m")

    if coastlines is not None and not coastlines.empty:
        coastlines.to_crs(crs).plot(ax=ax, color=LAND_COLOR, edgecolor="black", linewidth=0.3, zorder=3)


def add_north_arrow(ax, x: float = 0.93, y: float = 0.90, size: float = 0.08) -> None:
    """Draw a north arrow in axes coordinates."""
    ax.annotate("N", xy=(x, y), xycoords="axes fraction", ha="center", va="bottom",
                fontsize=10, fontweight="bold")
    ax.annotate("", xy=(x, y), xytext=(x, y - size), xycoords="axes fraction",
                arrowprops=dict(arrowstyle="->", color="black", lw=1.5))


def add_scale_bar(ax, x: float = 0.05, y: float = 0.05) -> float:
    """
    Draw a scale bar on an axis in projected meters.

    Returns:
        Bar length in kilometers
    """
    xmin, xmax = ax.get_xlim()
    ymin, ymax = ax.get_ylim()
    target_km = (xmax - xmin) / 1000 / 5
    length_km = max([s for s in SCALE_STEPS_KM if s <= target_km], default=SCALE_STEPS_KM[0])

    x0 = xmin + x * (xmax - xmin)
    y0 = ymin + y * (ymax - ymin)
    ax.plot([x0, x0 + length_km * 1000], [y0, y0], color="black", lw=3, solid_capstyle="butt", zorder=5)
    ax.text(x0 + length_km * 500, y0 + 0.015 * (ymax - ymin), f"{length_km} km",
            ha="center", va="bottom", fontsize=8, zorder=5)
    return length_km


def plot_observations(
    observations: pd.DataFrame,
    coastlines: Optional[gpd.GeoDataFrame] = None,
    bathymetry: Optional[Bathymetry] = None,
    crs: str = DEFAULT_CRS,
    ax=None,
    extent: Optional[Extent] = None,
    contour_levels: list[float] = CONTOUR_LEVELS,
    label: str = LABEL_COL,
):
    """
    Map sampling locations coloured by presence/absence.

    Args:
        observations: Table with projected x/y and the label column
        coastlines: Country polygons (any CRS)
        bathymetry: Depth grid drawn as contour lines
        crs: Projected CRS of x/y
        ax: Matplotlib axis (default: new figure)
        extent: Axis limits (default: the observations' extent)
        contour_levels: Depths (negative meters) to contour
        label: Binary response column

    Returns:
        Matplotlib axis
    """
    require_columns(observations, [X_COL, Y_COL, label], "observations")
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 8))

    extent = extent or shared_extent([observations])
    _draw_context(ax, coastlines, bathymetry, crs, contour_levels)

    # Absences first so presences are drawn on top
    for value, name in ((0, "Absence"), (1, "Presence")):
        subset = observations[observations[label] == value]
        ax.scatter(subset[X_COL], subset[Y_COL], s=8, color=LABEL_COLORS[value],
                   label=f"{name} (n={len(subset)})", zorder=4, alpha=0.8)

    ax.set_xlim(extent[0], extent[1])
    ax.set_ylim(extent[2], extent[3])
    ax.set_aspect("equal")
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.legend(loc="upper left", fontsize=8)
    add_north_arrow(ax)
    add_scale_bar(ax)
    return ax


def plot_probability_surface(
    grid: pd.DataFrame,
    ax,
    column: str = PROBABILITY_COL,
    vmin: float = 0.0,
    vmax: float = 1.0,
    cmap: str = PROBABILITY_CMAP,
):
    """Draw one augmented grid as a raster and return the image artist."""
    raster, transform = grid_to_raster(grid, column=column)
    return ax.imshow(
        np.ma.masked_invalid(raster),
        extent=plotting_extent(raster, transform),
        origin="upper",
        vmin=vmin,
        vmax=vmax,
        cmap=cmap,
        interpolation="nearest",
        zorder=1,
    )


def plot_seasonal_maps(
    grids: dict[str, pd.DataFrame],
    coastlines: Optional[gpd.GeoDataFrame] = None,
    bathymetry: Optional[Bathymetry] = None,
    crs: str = DEFAULT_CRS,
    column: str = PROBABILITY_COL,
    vmin: Optional[float] = 0.0,
    vmax: Optional[float] = 1.0,
    cmap: str = PROBABILITY_CMAP,
    contour_levels: list[float] = CONTOUR_LEVELS,
    title: Optional[str] = None,
    output_path: Optional[Path] = None,
):
    """
    Render the seasonal probability surfaces side by side.

    Every panel shares the colour scale and the axis limits.

    Args:
        grids: Mapping of season name to augmented grid
        coastlines: Country polygons
        bathymetry: Depth grid drawn as contour lines
        crs: Projected CRS of the grid coordinates
        column: Probability column
        vmin, vmax: Colour scale limits; None uses the range across all seasons
        cmap: Matplotlib colormap name
        contour_levels: Depths (negative meters) to contour
        title: Figure title
        output_path: If provided, save the figure here

    Returns:
        Matplotlib figure
    """
    if not grids:
        raise ValueError("No seasonal grids to plot")
    for season, grid in grids.items():
        require_columns(grid, [X_COL, Y_COL, column], f"{season} grid")

    if vmin is None:
        vmin = float(min(g[column].min() for g in grids.values()))
    if vmax is None:
        vmax = float(max(g[column].max() for g in grids.values()))

    extent = shared_extent(list(grids.values()))
    n_cols = 2 if len(grids) > 1 else 1
    n_rows = int(np.ceil(len(grids) / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(6 * n_cols, 5.5 * n_rows), squeeze=False)

    image = None
    for ax, (season, grid) in zip(axes.flat, grids.items()):
        image = plot_probability_surface(grid, ax, column=column, vmin=vmin, vmax=vmax, cmap=cmap)
        _draw_context(ax, coastlines, bathymetry, crs, contour_levels)
        ax.set_xlim(extent[0], extent[1])
        ax.set_ylim(extent[2], extent[3])
        ax.set_aspect("equal")
        ax.set_title(season.capitalize())
        ax.tick_params(labelsize=7)
        add_north_arrow(ax)
        add_scale_bar(ax)

    for ax in list(axes.flat)[len(grids):]:
        ax.set_visible(False)

    fig.colorbar(image, ax=axes.ravel().tolist(), shrink=0.8, label="Probability of presence")
    if title:
        fig.suptitle(title)

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches="tight")
        logger.info(f"Saved seasonal maps to {output_path}")

    return fig


def plot_smooth_terms(model: PresenceModel, width: float = 0.95, output_path: Optional[Path] = None):
    """
    Plot the fitted smooth of each GAM covariate with its confidence band.

    Args:
        model: Fitted PresenceModel of family "gam"
        width: Confidence band width
        output_path: If provided, save the figure here

    Returns:
        Matplotlib figure
    """
    if model.family != "gam":
        raise ValueError("Smooth terms exist only for GAM models")
    model._check_fitted()

    gam = model.result
    n = len(model.covariates)
    n_cols = min(3, n)
    n_rows = int(np.ceil(n / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(4 * n_cols, 3 * n_rows), squeeze=False)
    edof = model.effective_dof()

    for i, (ax, covariate) in enumerate(zip(axes.flat, model.covariates)):
        XX = gam.generate_X_grid(term=i)
        pdep, confi = gam.partial_dependence(term=i, X=XX, width=width)
        ax.plot(XX[:, i], pdep, color="black")
        ax.fill_between(XX[:, i], confi[:, 0], confi[:, 1], color="grey", alpha=0.3)
        ax.axhline(0, color="grey", lw=0.5, ls="--")
        ax.set_xlabel(covariate)
        ax.set_ylabel(f"s({covariate}, {edof[covariate]:.2f})")

    for ax in list(axes.flat)[n:]:
        ax.set_visible(False)

    handles = [Line2D([0], [0], color="black", label="Smooth"),
               Line2D([0], [0], color="grey", lw=6, alpha=0.3, label=f"{width:.0%} interval")]
    fig.legend(handles=handles, loc="lower right", fontsize=8)
    fig.tight_layout()

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches="tight")
        logger.info(f"Saved smooth term plots to {output_path}")

    return fig
