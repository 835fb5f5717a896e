"""
Exceptions raised by the modelling and mapping pipeline.
"""


class SDMError(Exception):
    """Base class for all pipeline errors."""


class SchemaError(SDMError, ValueError):
    """A required column is missing, misnamed or has the wrong type."""


class DataQualityError(SDMError, ValueError):
    """Required values are missing, invalid or leave no usable rows."""


class ModelFitError(SDMError, RuntimeError):
    """The statistical model could not be fitted."""


class ConvergenceError(ModelFitError):
    """The fitting optimizer did not converge."""


class DegenerateCovariateError(ModelFitError):
    """A covariate has zero variance or makes the design singular."""


class ExternalDataError(SDMError, RuntimeError):
    """Fetching boundary or bathymetry data from a remote service failed."""
