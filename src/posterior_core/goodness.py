from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import chi2
from warnings import warn

from .params import RangeError
from .posterior import Posterior
from .util import stringify, stringify_vector


__all__ = ["GoodnessOfFit", "goodness_of_fit", "goodness_of_fit_report"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoodnessOfFit:
    """Everything computed by a goodness-of-fit run.

    p-values that cannot be computed (non-positive degrees of freedom) are
    None.
    """

    parameters: np.ndarray
    log_posterior: float
    p_value_simulated: float
    chi2_simulated: float
    dof: int
    dof_scan: int
    p_value_analytic: Optional[float]
    p_value_analytic_scan: Optional[float]
    constraint_names: Tuple[str, ...]
    significances: np.ndarray
    chi2_significance: float
    p_value_significance: Optional[float]
    p_value_significance_scan: Optional[float]
    observables: Dict[str, float] = field(default_factory=dict)

    def as_pair(self) -> Tuple[float, float]:
        """(simulated p-value, analytic p-value with full dof); nan if not computable."""
        p = self.p_value_analytic
        return self.p_value_simulated, (math.nan if p is None else p)


def _chi2_p_value(chi_squared: float, dof: int) -> Optional[float]:
    if dof <= 0:
        return None
    return float(chi2.sf(chi_squared, dof))


def goodness_of_fit_report(
    posterior: Posterior,
    parameter_values: Sequence[float],
    simulated_datasets: int,
) -> GoodnessOfFit:
    """Evaluate fit quality at ``parameter_values``.

    Sets the parameters, runs ``simulated_datasets`` pseudo experiments via
    the likelihood's bootstrap, and derives chi^2 p-values with
    n_observations - n_parameters and n_observations - n_scan_parameters
    degrees of freedom, both from the simulation and from the summed squared
    significances of all constraint blocks.
    """
    descriptions = posterior.parameter_descriptions
    values = np.array(parameter_values, dtype=float, copy=True).reshape((-1,))
    if values.shape[0] != len(descriptions):
        raise ValueError(
            "goodness_of_fit: starting point doesn't have the correct dimension: "
            f"{values.shape[0]} vs {len(descriptions)}"
        )

    for d, v in zip(descriptions, values):
        if v < d.min or v > d.max:
            raise RangeError(
                f"goodness_of_fit: parameter {d.name} out of bounds "
                f"[{stringify(d.min)}, {stringify(d.max)}]: {stringify(v)}"
            )
        d.parameter.set(float(v))

    scan_parameters = sum(1 for d in descriptions if not d.nuisance)
    likelihood = posterior.log_likelihood

    # updates observables for the new parameter values
    ll = float(likelihood())
    log_post = ll + posterior.log_prior()
    logger.info(
        "Calculating p-values at parameters %s with log(post) = %s",
        stringify_vector(values),
        log_post,
    )

    p_simulated, chi_squared = likelihood.bootstrap_p_value(simulated_datasets)
    p_simulated = float(p_simulated)
    chi_squared = float(chi_squared)

    n_obs = int(likelihood.number_of_observations())
    dof = n_obs - len(descriptions)
    dof_scan = n_obs - scan_parameters

    p_analytic = _chi2_p_value(chi_squared, dof)
    if p_analytic is None:
        warn(
            f"Cannot compute p-value for non-positive dof ({dof}). "
            "Need more constraints / less parameters"
        )
    else:
        logger.debug(
            "dof = %d, parameters = %d, #observations = %d", dof, len(descriptions), n_obs
        )
        logger.info(
            "p-value from simulating pseudo experiments after applying DoF correction "
            "and using the chi^2-distribution has a value of %s",
            p_analytic,
        )

    p_analytic_scan = _chi2_p_value(chi_squared, dof_scan)
    if p_analytic_scan is None:
        warn(
            f"Cannot compute p-value for non-positive dof_scan ({dof_scan}). "
            "Need more constraints / less parameters"
        )
    else:
        logger.info(
            "p-value from simulating pseudo experiments after applying DoF correction "
            "(scan parameters only) has a value of %s",
            p_analytic_scan,
        )

    logger.info("Significances for each constraint:")
    names = []
    significances = []
    for c in likelihood:
        for b in c.blocks:
            s = float(b.significance())
            logger.info("%s: %s sigma", c.name, s)
            names.append(c.name)
            significances.append(s)
    sig = np.asarray(significances, dtype=float)
    total_significance_squared = float(np.sum(sig**2))

    logger.info("Listing the individual observables' predicted values:")
    cache = likelihood.observable_cache()
    observables = {}
    for i in range(len(cache)):
        observables[cache.name(i)] = float(cache[i])
        logger.info("%s = %s", cache.name(i), cache[i])

    p_significance = _chi2_p_value(total_significance_squared, dof)
    if p_significance is not None:
        logger.info(
            "p-value from calculating significances, treating them as coming from a "
            "Gaussian, is %s. The pseudo chi_squared/dof is %s/%d = %s",
            p_significance,
            total_significance_squared,
            dof,
            total_significance_squared / dof,
        )

    p_significance_scan = _chi2_p_value(total_significance_squared, dof_scan)
    if p_significance_scan is not None:
        logger.info(
            "p-value from calculating significances (dof from scan parameters only) "
            "is %s. The pseudo chi_squared/dof is %s/%d = %s",
            p_significance_scan,
            total_significance_squared,
            dof_scan,
            total_significance_squared / dof_scan,
        )

    return GoodnessOfFit(
        parameters=values,
        log_posterior=log_post,
        p_value_simulated=p_simulated,
        chi2_simulated=chi_squared,
        dof=dof,
        dof_scan=dof_scan,
        p_value_analytic=p_analytic,
        p_value_analytic_scan=p_analytic_scan,
        constraint_names=tuple(names),
        significances=sig,
        chi2_significance=total_significance_squared,
        p_value_significance=p_significance,
        p_value_significance_scan=p_significance_scan,
        observables=observables,
    )


def goodness_of_fit(
    posterior: Posterior,
    parameter_values: Sequence[float],
    simulated_datasets: int,
    output_file: Optional[str] = None,
) -> Tuple[float, float]:
    """Return (simulated p-value, analytic p-value with full dof).

    With ``output_file`` the descriptions, the point and the significances
    are written to HDF5 (requires h5py).
    """
    report = goodness_of_fit_report(posterior, parameter_values, simulated_datasets)
    if output_file:
        from .io import dump_goodness_of_fit

        dump_goodness_of_fit(output_file, posterior, report)
    return report.as_pair()
