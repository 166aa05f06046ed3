"""
BLUEKit — combination of correlated measurements:
- Measurements, uncertainty sources and their correlations
- Total covariance assembly with nuisance correlation coefficients
- Best linear unbiased estimator for one or several observables
- Gaussian likelihood and maximum-likelihood fit of model parameters
"""

from .observables import Observable, Params, make_bin_observables
from .measurements import (
    Measurement,
    MeasurementDistribution,
    Correlation,
    NoCorrelation,
    NuisanceCorrelation,
    to_correlation_matrix,
)
from .model import CombinationModel
from .covariance import convert_covariance, cov_to_cor, build_total_covariance
from .estimators import BlueResult, MultiBlueResult, blue, blue_multi
from .likelihood import CombinationLikelihood
from .stats import fit_mle
from .errors import (
    CombinationError,
    ConfigurationError,
    ObservableMismatchError,
    SingularMatrixError,
    NonPositiveDefiniteWarning,
)

__all__ = [
    "Observable",
    "Params",
    "make_bin_observables",
    "Measurement",
    "MeasurementDistribution",
    "Correlation",
    "NoCorrelation",
    "NuisanceCorrelation",
    "to_correlation_matrix",
    "CombinationModel",
    "convert_covariance",
    "cov_to_cor",
    "build_total_covariance",
    "BlueResult",
    "MultiBlueResult",
    "blue",
    "blue_multi",
    "CombinationLikelihood",
    "fit_mle",
    "CombinationError",
    "ConfigurationError",
    "ObservableMismatchError",
    "SingularMatrixError",
    "NonPositiveDefiniteWarning",
]

__version__ = "2026.10.0"
