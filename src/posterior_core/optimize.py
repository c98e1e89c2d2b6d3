from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.optimize import OptimizeResult, minimize
from warnings import warn

from .posterior import Posterior


__all__ = ["OptimizationOptions", "OptimizationResult", "optimize"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizationOptions:
    """Settings for the simplex search.

    - initial_step_size: fraction of each parameter's range used as the
      initial simplex edge, in (0, 1]
    - tolerance: simplex size below which the search has converged, in (0, 1]
    - maximum_iterations: hard cap on simplex iterations
    """

    initial_step_size: float = 0.1
    tolerance: float = 0.1
    maximum_iterations: int = 8000

    def __post_init__(self) -> None:
        if not 0.0 < float(self.initial_step_size) <= 1.0:
            raise ValueError(
                f"initial_step_size must lie in (0, 1], got {self.initial_step_size!r}."
            )
        if not 0.0 < float(self.tolerance) <= 1.0:
            raise ValueError(f"tolerance must lie in (0, 1], got {self.tolerance!r}.")
        if int(self.maximum_iterations) < 1:
            raise ValueError(
                f"maximum_iterations must be positive, got {self.maximum_iterations!r}."
            )


@dataclass(frozen=True)
class OptimizationResult:
    """Mode found by optimize(); unpacks as (x, log_posterior)."""

    x: np.ndarray
    log_posterior: float
    improved: bool
    converged: bool = False
    iterations: int = 0
    message: str = ""

    def __iter__(self) -> Iterator[Any]:
        return iter((self.x, self.log_posterior))


def _initial_steps(posterior: Posterior, step_size: float) -> np.ndarray:
    """Per-dimension simplex edge: range width times step size.

    Unbounded ranges (multivariate priors) fall back to the prior's
    standard deviation.
    """
    steps = []
    for d in posterior.parameter_descriptions:
        width = float(d.max) - float(d.min)
        if not math.isfinite(width):
            prior = posterior.prior_for(d.name)
            width = math.sqrt(prior.variance(d.name)) if prior is not None else 1.0
        steps.append(width * step_size)
    return np.asarray(steps, dtype=float)


def optimize(
    posterior: Posterior,
    initial_guess: Sequence[float],
    options: Union[OptimizationOptions, Mapping[str, Any], None] = None,
) -> OptimizationResult:
    """Maximize the log-posterior with the Nelder-Mead simplex.

    The search minimizes the negated log-posterior starting from
    ``initial_guess``. If it does not improve on the starting point, the
    starting point is returned with its own posterior value and a warning.
    The posterior's parameters are left at the returned point.
    """
    if options is None:
        options = OptimizationOptions()
    elif isinstance(options, Mapping):
        options = OptimizationOptions(**options)

    x0 = np.array(initial_guess, dtype=float, copy=True).reshape((-1,))
    npar = len(posterior)
    if x0.shape[0] != npar:
        raise ValueError(
            f"optimize: starting point doesn't have the correct dimension: "
            f"{x0.shape[0]} vs {npar}"
        )

    def objective(theta: np.ndarray) -> float:
        f = posterior.negative_log_posterior(theta)
        return math.inf if math.isnan(f) else f

    # save minimum for later comparison
    initial_minimum = objective(x0)

    steps = _initial_steps(posterior, float(options.initial_step_size))
    simplex = np.vstack([x0, x0[None, :] + np.diag(steps)])

    def _report(intermediate_result: OptimizeResult) -> None:
        logger.debug("f() = %g\tx = %s", intermediate_result.fun, intermediate_result.x)

    res = minimize(
        objective,
        x0,
        method="Nelder-Mead",
        callback=_report,
        options={
            "initial_simplex": simplex,
            "maxiter": int(options.maximum_iterations),
            "xatol": float(options.tolerance),
            "fatol": np.inf,
        },
    )

    iterations = int(getattr(res, "nit", 0))
    converged = bool(res.success)
    if converged:
        logger.info("Simplex algorithm converged after %d iterations", iterations)
    elif int(res.status) != 2:
        logger.warning("Simplex algorithm stopped: %s", res.message)

    mode = float(res.fun)
    if not mode < initial_minimum:
        warn("Simplex algorithm did not improve on initial guess")
        posterior.set_values(x0)
        return OptimizationResult(
            x=x0,
            log_posterior=-initial_minimum,
            improved=False,
            converged=converged,
            iterations=iterations,
            message=str(res.message),
        )

    theta = np.asarray(res.x, dtype=float)
    posterior.set_values(theta)
    logger.info(
        "Results: maximum of posterior = %s at ( %s )",
        -mode,
        " ".join(repr(float(v)) for v in theta),
    )

    # minus sign to convert to posterior
    return OptimizationResult(
        x=theta,
        log_posterior=-mode,
        improved=True,
        converged=converged,
        iterations=iterations,
        message=str(res.message),
    )
