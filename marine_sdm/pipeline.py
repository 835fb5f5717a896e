"""
Two-stage workflow: fit a presence model, then project it onto seasonal grids.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .config import DEFAULT_CRS
from .data import load_observations, load_prediction_grids, summarize_observations
from .model import Family, PresenceModel
from .predict import (
    predict_seasons,
    save_prediction_table,
    save_probability_raster,
    summarize_predictions,
)
from .schema import COVARIATES, SEASONS

logger = logging.getLogger(__name__)


@dataclass
class SeasonalProjection:
    """Container for a fitted model and its seasonal predictions."""

    model: PresenceModel
    fit_stats: dict
    grids: dict[str, pd.DataFrame]
    crs: str = DEFAULT_CRS
    observation_stats: dict = field(default_factory=dict)

    def summary(self) -> pd.DataFrame:
        return summarize_predictions(self.grids)

    def save(self, output_dir: Path) -> dict[str, Path]:
        """Save predictions, rasters, coefficients and the model."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        prefix = self.model.family

        paths = {}
        for season, grid in self.grids.items():
            table_path = output_dir / f"{prefix}_{season}.csv"
            save_prediction_table(grid, table_path)
            paths[f"{season}_table"] = table_path

            raster_path = output_dir / f"{prefix}_{season}.tif"
            save_probability_raster(grid, raster_path, crs=self.crs)
            paths[f"{season}_raster"] = raster_path

        coef_path = output_dir / f"{prefix}_coefficients.json"
        with open(coef_path, "w") as f:
            json.dump({
                "fit": self.fit_stats,
                "terms": self.model.coefficient_table(),
            }, f, indent=2)
        paths["coefficients"] = coef_path
        logger.info(f"Saved coefficient table: {coef_path}")

        model_path = output_dir / f"{prefix}_model.joblib"
        self.model.save(model_path)
        paths["model"] = model_path
        logger.info(f"Saved model: {model_path}")

        return paths


def run_seasonal_projection(
    observations_path: Union[str, Path],
    grid_dir: Union[str, Path],
    family: Family = "glm",
    covariates: Optional[list[str]] = None,
    n_splines: Union[int, dict[str, int], None] = None,
    output_dir: Optional[Path] = None,
    crs: str = DEFAULT_CRS,
    seasons: tuple[str, ...] = SEASONS,
    grid_pattern: str = "grid_{season}.csv",
) -> SeasonalProjection:
    """
    Fit a presence model and predict it on every seasonal grid.

    Args:
        observations_path: Delimited observation file
        grid_dir: Directory with one prediction grid per season
        family: "glm" or "gam"
        covariates: Covariates in the model (default: all)
        n_splines: GAM basis size (int or per-covariate mapping)
        output_dir: If provided, save results to this directory
        crs: Projected CRS of the grid coordinates
        seasons: Season names to load
        grid_pattern: Grid file name pattern with a ``{season}`` placeholder

    Returns:
        SeasonalProjection with the model and augmented grids
    """
    logger.info("=" * 60)
    logger.info(f"Seasonal projection: {family.upper()}")
    logger.info("=" * 60)

    # 1. Load data
    logger.info("[1/4] Loading observations and prediction grids...")
    observations = load_observations(observations_path, crs=crs)
    observation_stats = summarize_observations(observations)
    logger.info(f"  {observation_stats['n_presence']} presences, {observation_stats['n_absence']} absences "
                f"(prevalence {observation_stats['prevalence']:.3f})")
    covariates = list(covariates) if covariates is not None else list(COVARIATES)
    grids = load_prediction_grids(grid_dir, pattern=grid_pattern, seasons=seasons, covariates=covariates)

    # 2. Fit
    logger.info("[2/4] Fitting model...")
    model = PresenceModel(family=family, covariates=covariates, n_splines=n_splines)
    fit_stats = model.fit(observations)

    insignificant = model.insignificant_terms()
    if insignificant:
        logger.info(f"  Non-significant terms: {', '.join(insignificant)}")

    # 3. Predict
    logger.info("[3/4] Predicting seasonal grids...")
    predictions = predict_seasons(model, grids)

    result = SeasonalProjection(
        model=model,
        fit_stats=fit_stats,
        grids=predictions,
        crs=crs,
        observation_stats=observation_stats,
    )

    # 4. Save
    if output_dir:
        logger.info("[4/4] Saving results...")
        result.save(output_dir)
    else:
        logger.info("[4/4] No output directory given, results not saved")

    logger.info("=" * 60)
    logger.info("COMPLETE")
    logger.info("=" * 60)

    return result
