import logging

import numpy as np
from posterior_core import (
    Flat,
    GaussianLikelihood,
    OptimizationOptions,
    Parameters,
    Posterior,
    goodness_of_fit_report,
    proposal_covariance,
)

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

# straight line y = m x + b measured at five points, b treated as nuisance
rng = np.random.default_rng(1)
x = np.linspace(0.0, 4.0, 5)
sigma = 0.3
y = 2.0 * x - 1.0 + rng.normal(0.0, sigma, size=x.size)

params = Parameters({"m": 0.0, "b": 0.0}, seed=2)
llh = GaussianLikelihood(params, seed=3)
for i, xi in enumerate(x):
    llh.add_observable(f"y({xi:g})", lambda p, xi=xi: p["m"].evaluate() * xi + p["b"].evaluate())
    llh.add_constraint(f"point-{i}", [f"y({xi:g})"], [y[i]], [sigma])

posterior = Posterior(llh)
posterior.add(Flat(params, "m", (-10.0, 10.0)))
posterior.add(Flat(params, "b", (-10.0, 10.0)), nuisance=True)

result = posterior.optimize([0.0, 0.0], OptimizationOptions(tolerance=1e-6, maximum_iterations=5000))
print("mode:", result.x, "log(post):", result.log_posterior, "converged:", result.converged)

report = goodness_of_fit_report(posterior, result.x, 2000)
print("p-value (simulated):", report.p_value_simulated)
print("p-value (chi^2, dof=%d):" % report.dof, report.p_value_analytic)
print("pulls:", np.round(report.significances, 2))

print("proposal covariance:")
print(proposal_covariance(posterior, scale_reduction=10.0, scale_nuisance=False))
