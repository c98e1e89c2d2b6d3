"""posterior_core public API."""
__version__ = "0.1.0"

from .params import ParameterDescription, ParameterRange, Parameter, Parameters, RangeError
from .priors import (
    CovarianceError,
    CurtailedGauss,
    Flat,
    MultivariateGaussian,
    Prior,
    Scale,
    UnknownPriorError,
    make_prior,
)
from .likelihood import GaussianLikelihood, LogLikelihood
from .posterior import Posterior
from .optimize import OptimizationOptions, OptimizationResult, optimize
from .goodness import GoodnessOfFit, goodness_of_fit, goodness_of_fit_report
from .proposal import proposal_covariance

__all__ = [
    "ParameterDescription",
    "ParameterRange",
    "Parameter",
    "Parameters",
    "RangeError",
    "Prior",
    "Flat",
    "CurtailedGauss",
    "Scale",
    "MultivariateGaussian",
    "CovarianceError",
    "UnknownPriorError",
    "make_prior",
    "GaussianLikelihood",
    "LogLikelihood",
    "Posterior",
    "OptimizationOptions",
    "OptimizationResult",
    "optimize",
    "GoodnessOfFit",
    "goodness_of_fit",
    "goodness_of_fit_report",
    "proposal_covariance",
]
