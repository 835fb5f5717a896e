"""
Seasonal Species Distribution Modelling for Marine Mammals

This module provides tools to fit presence/absence models (logistic GLM and
smooth-term GAM) to survey observations with environmental covariates, project
them onto seasonal prediction grids and map the results against coastline and
bathymetry layers.
"""

from .data import load_observations, load_prediction_grid, load_prediction_grids, prepare_model_frame
from .errors import (
    ConvergenceError,
    DataQualityError,
    DegenerateCovariateError,
    ExternalDataError,
    ModelFitError,
    SchemaError,
    SDMError,
)
from .geodata import Bathymetry, fetch_bathymetry, fetch_coastlines, fetch_country_boundaries
from .model import PresenceModel, backward_select, compare_models, is_improvement
from .predict import grid_to_raster, predict_grid, predict_seasons, save_prediction_table, save_probability_raster
from .pipeline import SeasonalProjection, run_seasonal_projection

__all__ = [
    'load_observations',
    'load_prediction_grid',
    'load_prediction_grids',
    'prepare_model_frame',
    'SDMError',
    'SchemaError',
    'DataQualityError',
    'ModelFitError',
    'ConvergenceError',
    'DegenerateCovariateError',
    'ExternalDataError',
    'Bathymetry',
    'fetch_bathymetry',
    'fetch_coastlines',
    'fetch_country_boundaries',
    'PresenceModel',
    'backward_select',
    'compare_models',
    'is_improvement',
    'grid_to_raster',
    'predict_grid',
    'predict_seasons',
    'save_prediction_table',
    'save_probability_raster',
    'SeasonalProjection',
    'run_seasonal_projection',
]
