"""
Observation and prediction grid loading.

Observations are presence/absence records with environmental covariates;
prediction grids carry the same covariates on a regular spatial tessellation,
one file per season.
"""

import logging
from pathlib import Path
from typing import Iterable

import geopandas as gpd
import numpy as np
import pandas as pd

from .config import DEFAULT_CRS, GEOGRAPHIC_CRS
from .errors import DataQualityError, DegenerateCovariateError, SchemaError
from .schema import (
    COVARIATES,
    DATE_COL,
    DAY_COL,
    LABEL_COL,
    LAT_COL,
    LON_COL,
    MONTH_COL,
    OBSERVATION_COLUMNS,
    SEASONS,
    X_COL,
    Y_COL,
    YEAR_COL,
)

logger = logging.getLogger(__name__)


def require_columns(frame: pd.DataFrame, columns: Iterable[str], what: str = "table") -> None:
    """Raise SchemaError naming every required column absent from ``frame``."""
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise SchemaError(f"{what} is missing required column(s): {', '.join(missing)}")


def coerce_numeric(frame: pd.DataFrame, columns: Iterable[str], what: str) -> pd.DataFrame:
    """Convert ``columns`` to numbers; blanks become NaN, other text raises SchemaError."""
    frame = frame.copy()
    for col in columns:
        if pd.api.types.is_numeric_dtype(frame[col]):
            continue
        converted = pd.to_numeric(frame[col], errors="coerce")
        # Text that is neither blank nor numeric is a type error, not a missing value
        bad = converted.isna() & frame[col].notna() & (frame[col].astype(str).str.strip() != "")
        if bad.any():
            sample = frame.loc[bad, col].iloc[0]
            raise SchemaError(f"{what} column '{col}' must be numeric (found {sample!r})")
        frame[col] = converted
    return frame


def project_coordinates(frame: pd.DataFrame, crs: str = DEFAULT_CRS) -> pd.DataFrame:
    """
    Add projected x/y (meters) computed from lon/lat.

    Args:
        frame: Table with lon/lat columns in degrees
        crs: Target projected CRS

    Returns:
        Copy of the table with x and y columns
    """
    require_columns(frame, [LON_COL, LAT_COL], "observations")
    points = gpd.GeoSeries(
        gpd.points_from_xy(frame[LON_COL], frame[LAT_COL]),
        index=frame.index,
        crs=GEOGRAPHIC_CRS,
    ).to_crs(crs)

    frame = frame.copy()
    frame[X_COL] = points.x
    frame[Y_COL] = points.y
    return frame


def load_observations(
    path: str | Path,
    sep: str = ",",
    crs: str = DEFAULT_CRS,
) -> pd.DataFrame:
    """
    Load the presence/absence observation table.

    Args:
        path: Delimited file with one sampling event per row
        sep: Field delimiter
        crs: Projected CRS used when x/y must be derived from lon/lat

    Returns:
        DataFrame with numeric covariates, a date column and projected x/y
    """
    path = Path(path)
    frame = pd.read_csv(path, sep=sep)
    require_columns(frame, OBSERVATION_COLUMNS, f"observations ({path.name})")

    numeric = [LABEL_COL, LAT_COL, LON_COL, DAY_COL, MONTH_COL, YEAR_COL] + COVARIATES
    frame = coerce_numeric(frame, numeric, "observations")

    frame[DATE_COL] = pd.to_datetime(
        pd.DataFrame({"year": frame[YEAR_COL], "month": frame[MONTH_COL], "day": frame[DAY_COL]}),
        errors="coerce",
    )
    n_bad_dates = int(frame[DATE_COL].isna().sum())
    if n_bad_dates:
        logger.warning(f"{n_bad_dates} observations have an invalid date")

    if X_COL not in frame.columns or Y_COL not in frame.columns:
        logger.info(f"Projecting observation coordinates to {crs}")
        frame = project_coordinates(frame, crs=crs)

    logger.info(f"Loaded {len(frame)} observations from {path}")
    return frame


def load_prediction_grid(
    path: str | Path,
    sep: str = ",",
    covariates: Iterable[str] = COVARIATES,
) -> pd.DataFrame:
    """Load one prediction grid. Only x, y and ``covariates`` are required."""
    path = Path(path)
    frame = pd.read_csv(path, sep=sep)
    required = [X_COL, Y_COL] + list(covariates)
    require_columns(frame, required, f"prediction grid ({path.name})")
    frame = coerce_numeric(frame, required, "prediction grid")
    logger.info(f"Loaded prediction grid {path.name}: {len(frame)} cells")
    return frame


def load_prediction_grids(
    directory: str | Path,
    pattern: str = "grid_{season}.csv",
    seasons: Iterable[str] = SEASONS,
    sep: str = ",",
    covariates: Iterable[str] = COVARIATES,
) -> dict[str, pd.DataFrame]:
    """
    Load the seasonal prediction grids.

    Args:
        directory: Directory holding one grid file per season
        pattern: File name pattern with a ``{season}`` placeholder
        seasons: Season names, in display order
        sep: Field delimiter
        covariates: Covariate columns each grid must carry

    Returns:
        Dictionary mapping season name to grid DataFrame
    """
    directory = Path(directory)
    grids = {}
    for season in seasons:
        path = directory / pattern.format(season=season)
        if not path.exists():
            raise FileNotFoundError(f"Prediction grid for {season} not found: {path}")
        grids[season] = load_prediction_grid(path, sep=sep, covariates=covariates)
    return grids


def validate_labels(labels: pd.Series, require_both_classes: bool = True) -> None:
    """Raise DataQualityError unless labels are all 0/1 and both classes occur."""
    values = set(pd.unique(labels.dropna()))
    invalid = values - {0, 1}
    if invalid:
        shown = sorted(invalid, key=str)[:5]
        raise DataQualityError(f"Label column '{labels.name}' must be binary (0/1); found {shown}")
    if require_both_classes and len(values) < 2:
        raise DataQualityError(f"Label column '{labels.name}' contains a single class: {sorted(values)}")


def prepare_model_frame(
    observations: pd.DataFrame,
    covariates: list[str],
    label: str = LABEL_COL,
) -> pd.DataFrame:
    """
    Select and validate the rows and columns used for model fitting.

    Rows missing the label or any covariate are dropped. Label values other
    than 0/1 are rejected first, including on rows that would be dropped.

    Args:
        observations: Observation table
        covariates: Covariate column names
        label: Binary response column

    Returns:
        DataFrame with the label and covariate columns, complete rows only
    """
    if not covariates:
        raise SchemaError("At least one covariate is required")
    require_columns(observations, [label] + list(covariates), "observations")

    frame = coerce_numeric(observations[[label] + list(covariates)], [label] + list(covariates), "observations")
    validate_labels(frame[label], require_both_classes=False)
    complete = frame.dropna()

    n_dropped = len(frame) - len(complete)
    if n_dropped > 0:
        logger.warning(f"{n_dropped} of {len(frame)} observations dropped for missing values")

    if complete.empty:
        raise DataQualityError("No complete observations remain after removing rows with missing values")

    validate_labels(complete[label])

    for col in covariates:
        if np.isclose(complete[col].std(ddof=0), 0.0):
            raise DegenerateCovariateError(f"Covariate '{col}' has zero variance")

    complete = complete.copy()
    complete[label] = complete[label].astype(int)
    return complete


def summarize_observations(observations: pd.DataFrame, label: str = LABEL_COL) -> dict:
    """
    Describe the observation table.

    Returns:
        Dictionary with record counts, prevalence and records per month
    """
    require_columns(observations, [label], "observations")
    labels = observations[label].dropna()
    n_presence = int((labels == 1).sum())
    n_absence = int((labels == 0).sum())

    stats = {
        "n_records": int(len(observations)),
        "n_presence": n_presence,
        "n_absence": n_absence,
        "prevalence": float(n_presence / len(labels)) if len(labels) else float("nan"),
    }
    if MONTH_COL in observations.columns:
        per_month = observations.groupby(MONTH_COL)[label].agg(["size", "sum"])
        stats["per_month"] = {
            int(month): {"n_records": int(row["size"]), "n_presence": int(row["sum"])}
            for month, row in per_month.iterrows()
        }
    return stats
