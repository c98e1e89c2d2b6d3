import numpy as np
from posterior_core import CurtailedGauss, MultivariateGaussian, Parameters, Scale, make_prior

params = Parameters({"mass": 4.2, "width": 1.0, "a": 0.0, "b": 0.0}, seed=0)

# asymmetric Gaussian, cut off at the range boundaries
mass = CurtailedGauss(params, "mass", (3.0, 5.5), 3.9, 4.2, 4.8)
width = Scale(params, "width", 1.0, 10.0)
ab = MultivariateGaussian(params, ["a", "b"], [0.0, 1.0], [[1.0, 0.5], [0.5, 2.0]])

for prior in (mass, width, ab):
    print(prior)
    print("  log density at current point:", prior.evaluate())

draws = []
for _ in range(20_000):
    mass.sample()
    draws.append(params["mass"].evaluate())
print("sampled std:", np.std(draws), "analytic:", np.sqrt(mass.variance()))

# priors can be rebuilt from their descriptions
rebuilt = make_prior(Parameters({"mass": 4.2}), mass.describe())
print("rebuilt:", rebuilt)
