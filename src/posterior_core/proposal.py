from __future__ import annotations

import numpy as np

from .posterior import Posterior


__all__ = ["proposal_covariance"]


def proposal_covariance(
    posterior: Posterior, scale_reduction: float = 1.0, scale_nuisance: bool = True
) -> np.ndarray:
    """Diagonal proposal covariance built from prior variances.

    Entry i is the prior variance of parameter i (the marginal variance for
    multivariate priors), divided by scale_reduction**2 unless the parameter
    is a nuisance parameter and ``scale_nuisance`` is False. Correlations
    encoded in the priors are ignored.
    """
    scale_reduction = float(scale_reduction)
    if scale_reduction <= 0.0:
        raise ValueError(f"scale_reduction must be positive, got {scale_reduction!r}.")

    descriptions = posterior.parameter_descriptions
    npar = len(descriptions)
    covariance = np.zeros((npar, npar), dtype=float)

    for i, d in enumerate(descriptions):
        prior = posterior.prior_for(d.name)
        if prior is None:
            raise KeyError(f"proposal_covariance: no prior for parameter {d.name!r}")
        covariance[i, i] = prior.variance(d.name)

        # shrink scan parameters so fewer draws land outside the allowed range
        if not d.nuisance or scale_nuisance:
            covariance[i, i] /= scale_reduction**2

    return covariance
