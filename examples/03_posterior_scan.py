import numpy as np
import matplotlib.pyplot as plt
from posterior_core import CurtailedGauss, GaussianLikelihood, Parameters, Posterior

# a measurement of mu = 1.2 +- 0.4 combined with an asymmetric prior
params = Parameters({"mu": 0.0}, seed=0)
llh = GaussianLikelihood(params)
llh.add_observable("mu", lambda p: p["mu"].evaluate())
llh.add_constraint("measurement", ["mu"], [1.2], [0.4])

posterior = Posterior(llh)
posterior.add(CurtailedGauss(params, "mu", (-1.0, 3.0), 0.0, 0.5, 2.0))

grid = np.linspace(-1.0, 3.0, 400)
log_post = np.array([-posterior.negative_log_posterior([v]) for v in grid])
log_prior = np.array([posterior.prior_for("mu").log_density(v) for v in grid])

result = posterior.optimize([0.5])

fig, ax = plt.subplots()
ax.plot(grid, np.exp(log_prior), label="prior")
ax.plot(grid, np.exp(log_post - log_post.max()), label="posterior (scaled)")
ax.axvline(result.x[0], color="k", ls=":", label="mode")
ax.set_xlabel("mu")
ax.legend()
plt.show()
