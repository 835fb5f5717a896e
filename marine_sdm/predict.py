"""
Prediction of presence probability on seasonal grids.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import rasterio
from rasterio.transform import Affine, from_origin
from tqdm import tqdm

from .config import DEFAULT_CRS
from .data import require_columns
from .model import PresenceModel
from .schema import PROBABILITY_COL, X_COL, Y_COL

logger = logging.getLogger(__name__)


def predict_grid(
    model: PresenceModel,
    grid: pd.DataFrame,
    column: str = PROBABILITY_COL,
) -> pd.DataFrame:
    """
    Add the predicted presence probability to a prediction grid.

    Args:
        model: Fitted PresenceModel
        grid: Grid table containing every covariate the model uses
        column: Name of the probability column to add

    Returns:
        Copy of the grid with the probability column (NaN where a covariate is missing)
    """
    probabilities = model.predict_proba(grid)

    augmented = grid.copy()
    augmented[column] = probabilities

    n_missing = int(np.isnan(probabilities).sum())
    if n_missing > 0:
        logger.warning(f"{n_missing} of {len(grid)} grid cells lack covariates; prediction left missing")

    return augmented


def predict_seasons(
    model: PresenceModel,
    grids: dict[str, pd.DataFrame],
    column: str = PROBABILITY_COL,
) -> dict[str, pd.DataFrame]:
    """
    Apply a fitted model to each seasonal grid.

    Args:
        model: Fitted PresenceModel
        grids: Mapping of season name to grid table
        column: Name of the probability column to add

    Returns:
        Mapping of season name to augmented grid, in the input order
    """
    predictions = {}
    for season, grid in tqdm(grids.items(), total=len(grids), desc="Predicting seasons"):
        predictions[season] = predict_grid(model, grid, column=column)
        values = predictions[season][column]
        logger.info(f"  {season}: mean probability {values.mean():.3f} (range {values.min():.3f} - {values.max():.3f})")
    return predictions


def summarize_predictions(
    grids: dict[str, pd.DataFrame],
    column: str = PROBABILITY_COL,
) -> pd.DataFrame:
    """Per-season count, missing count, mean, min and max of the predictions."""
    rows = []
    for season, grid in grids.items():
        require_columns(grid, [column], f"{season} grid")
        values = grid[column]
        rows.append({
            "season": season,
            "n_cells": int(len(values)),
            "n_missing": int(values.isna().sum()),
            "mean": float(values.mean()),
            "min": float(values.min()),
            "max": float(values.max()),
        })
    return pd.DataFrame(rows).set_index("season")


def _cell_size(values: np.ndarray) -> float:
    steps = np.diff(np.unique(values))
    steps = steps[steps > 0]
    return float(steps.min()) if len(steps) else 1.0


def grid_to_raster(
    grid: pd.DataFrame,
    column: str = PROBABILITY_COL,
) -> tuple[np.ndarray, Affine]:
    """
    Arrange grid cells on a regular 2-D array.

    Cell size is the smallest spacing between distinct x (and y) values;
    cells absent from the table are NaN.

    Args:
        grid: Table with x, y and the value column
        column: Column to rasterise

    Returns:
        Tuple of (array of shape (rows, cols) with north at row 0, affine transform)
    """
    require_columns(grid, [X_COL, Y_COL, column], "grid")
    if grid.empty:
        raise ValueError("Cannot rasterise an empty grid")

    x = grid[X_COL].to_numpy(dtype=float)
    y = grid[Y_COL].to_numpy(dtype=float)
    res_x = _cell_size(x)
    res_y = _cell_size(y)

    min_x, max_y = x.min(), y.max()
    cols = np.rint((x - min_x) / res_x).astype(int)
    rows = np.rint((max_y - y) / res_y).astype(int)

    raster = np.full((rows.max() + 1, cols.max() + 1), np.nan, dtype=np.float32)
    raster[rows, cols] = grid[column].to_numpy(dtype=np.float32)

    transform = from_origin(min_x - res_x / 2, max_y + res_y / 2, res_x, res_y)
    return raster, transform


def save_prediction_table(grid: pd.DataFrame, path: str | Path, sep: str = ",") -> None:
    """Save an augmented grid as a delimited table."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    grid.to_csv(path, sep=sep, index=False)
    logger.info(f"Saved {len(grid)} predictions to {path}")


def save_probability_raster(
    grid: pd.DataFrame,
    path: str | Path,
    crs: str = DEFAULT_CRS,
    column: str = PROBABILITY_COL,
) -> None:
    """Save an augmented grid as a single-band GeoTIFF."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    raster, transform = grid_to_raster(grid, column=column)

    with rasterio.open(
        path, "w",
        driver="GTiff",
        height=raster.shape[0],
        width=raster.shape[1],
        count=1,
        dtype=np.float32,
        crs=crs,
        transform=transform,
        nodata=np.nan,
        compress="lzw",
    ) as dst:
        dst.write(raster, 1)
    logger.info(f"Saved probability raster: {path}")
