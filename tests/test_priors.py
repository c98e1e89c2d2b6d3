import math

import numpy as np
import pytest
from scipy import integrate, stats

from posterior_core import (
    CovarianceError,
    CurtailedGauss,
    Flat,
    MultivariateGaussian,
    Parameters,
    RangeError,
    Scale,
    UnknownPriorError,
    make_prior,
)


def _draws(prior, name, n):
    handle = prior.parameters[name]
    out = np.empty(n, dtype=float)
    for i in range(n):
        prior.sample()
        out[i] = handle.evaluate()
    return out


def test_flat_is_constant_and_samples_uniformly():
    params = Parameters({"x": 0.0}, seed=0)
    prior = Flat(params, "x", (-1.0, 3.0))

    values = []
    for x in (-1.0, 0.0, 2.5, 100.0):
        params["x"].set(x)
        values.append(prior.evaluate())
    assert values == pytest.approx([-math.log(4.0)] * 4)
    assert not prior.informative

    samples = _draws(prior, "x", 100_000)
    assert samples.min() >= -1.0
    assert samples.max() <= 3.0
    assert stats.kstest(samples, "uniform", args=(-1.0, 4.0)).pvalue > 1e-3
    assert prior.variance() == pytest.approx(16.0 / 12.0)


@pytest.mark.parametrize("bounds", [(1.0, 1.0), (2.0, -1.0)])
def test_flat_rejects_degenerate_range(bounds):
    params = Parameters({"x": 0.0})
    with pytest.raises(RangeError, match="must be smaller than maximum"):
        Flat(params, "x", bounds)


def test_unknown_parameter_name_raises():
    params = Parameters({"x": 0.0})
    with pytest.raises(KeyError, match="'y'"):
        Flat(params, "y", (0.0, 1.0))


@pytest.mark.parametrize(
    "bounds, lower, central, upper",
    [
        ((0.0, 10.0), 1.0, 2.0, 3.0),
        ((-1.0, 1.0), -0.5, 0.1, 0.4),
        ((0.0, 5.0), 0.5, 1.0, 4.0),
        ((-3.0, 0.5), -1.0, 0.0, 0.2),
    ],
)
def test_curtailed_gauss_is_continuous_and_normalized(bounds, lower, central, upper):
    params = Parameters({"x": 0.0})
    prior = CurtailedGauss(params, "x", bounds, lower, central, upper)
    handle = params["x"]

    def density(x):
        handle.set(x)
        return math.exp(prior.evaluate())

    left = prior.log_density(np.nextafter(central, -np.inf))
    right = prior.log_density(central)
    assert left == pytest.approx(right, abs=1e-9)

    total, _ = integrate.quad(density, bounds[0], bounds[1], points=[central])
    assert total == pytest.approx(1.0, abs=1e-3)


def test_curtailed_gauss_sampling_matches_density():
    params = Parameters({"x": 0.0}, seed=1)
    bounds = (0.0, 6.0)
    prior = CurtailedGauss(params, "x", bounds, 1.5, 2.0, 3.5)

    mean, _ = integrate.quad(lambda x: x * math.exp(prior.log_density(x)), *bounds, points=[2.0])
    var, _ = integrate.quad(
        lambda x: (x - mean) ** 2 * math.exp(prior.log_density(x)), *bounds, points=[2.0]
    )
    assert prior.variance() == pytest.approx(var, rel=1e-6)

    mass_left, _ = integrate.quad(lambda x: math.exp(prior.log_density(x)), bounds[0], 2.0)
    assert prior.prob_lower == pytest.approx(mass_left, rel=1e-6)

    samples = _draws(prior, "x", 100_000)
    assert samples.min() >= bounds[0]
    assert samples.max() <= bounds[1]
    assert np.mean(samples) == pytest.approx(mean, abs=0.02)
    assert np.var(samples) == pytest.approx(var, rel=0.03)
    assert np.mean(samples < 2.0) == pytest.approx(prior.prob_lower, abs=0.01)


@pytest.mark.parametrize(
    "lower, central, upper, match",
    [
        (2.0, 2.0, 3.0, "lower value"),
        (2.5, 2.0, 3.0, "lower value"),
        (1.0, 2.0, 2.0, "upper value"),
        (1.0, 2.0, 1.5, "upper value"),
    ],
)
def test_curtailed_gauss_rejects_bad_knee_points(lower, central, upper, match):
    params = Parameters({"x": 0.0})
    with pytest.raises(RangeError, match=match):
        CurtailedGauss(params, "x", (0.0, 10.0), lower, central, upper)


def test_curtailed_gauss_rejects_degenerate_range():
    params = Parameters({"x": 0.0})
    with pytest.raises(RangeError, match="must be smaller than maximum"):
        CurtailedGauss(params, "x", (3.0, 3.0), 1.0, 2.0, 3.0)
    with pytest.raises(RangeError, match="outside range"):
        CurtailedGauss(params, "x", (5.0, 10.0), 1.0, 2.0, 3.0)


def test_scale_prior_range_and_density():
    params = Parameters({"mu": 1.0}, seed=2)
    prior = Scale(params, "mu", 1.0, 2.0)

    (d,) = prior.descriptions
    assert (d.min, d.max) == pytest.approx((0.5, 2.0))
    assert prior.informative

    params["mu"].set(0.1)
    assert prior.evaluate() == -math.inf
    params["mu"].set(3.0)
    assert prior.evaluate() == -math.inf
    params["mu"].set(1.0)
    assert prior.evaluate() == pytest.approx(1.0 / (2.0 * math.log(2.0) * 1.0))

    samples = _draws(prior, "mu", 50_000)
    assert samples.min() >= 0.5
    assert samples.max() <= 2.0
    logs = np.log(samples)
    span = 2.0 * math.log(2.0)
    assert stats.kstest(logs, "uniform", args=(-math.log(2.0), span)).pvalue > 1e-3
    assert np.var(samples) == pytest.approx(prior.variance(), rel=0.03)


@pytest.mark.parametrize("mu_0, lambda_, match", [(0.0, 2.0, "mu_0"), (-1.0, 2.0, "mu_0"), (1.0, 1.0, "lambda")])
def test_scale_rejects_bad_parameters(mu_0, lambda_, match):
    params = Parameters({"mu": 1.0})
    with pytest.raises(RangeError, match=match):
        Scale(params, "mu", mu_0, lambda_)


def test_multivariate_gaussian_peak_and_sampling():
    params = Parameters({"a": 0.0, "b": 0.0}, seed=3)
    mean = np.array([1.0, -2.0])
    cov = np.array([[1.0, 0.6], [0.6, 2.0]])
    prior = MultivariateGaussian(params, ["a", "b"], mean, cov)

    params["a"].set(1.0)
    params["b"].set(-2.0)
    peak = -math.log(2.0 * math.pi) - 0.5 * math.log(np.linalg.det(cov))
    assert prior.evaluate() == pytest.approx(peak)
    assert prior.norm == pytest.approx(peak)

    params["a"].set(2.0)
    expected = stats.multivariate_normal(mean, cov).logpdf([2.0, -2.0])
    assert prior.evaluate() == pytest.approx(expected)

    n = 100_000
    draws = np.empty((n, 2))
    for i in range(n):
        prior.sample()
        draws[i] = (params["a"].evaluate(), params["b"].evaluate())
    assert np.mean(draws, axis=0) == pytest.approx(mean, abs=0.03)
    assert np.cov(draws.T) == pytest.approx(cov, abs=0.05)

    assert prior.variance("a") == pytest.approx(1.0)
    assert prior.variance("b") == pytest.approx(2.0)
    with pytest.raises(ValueError):
        prior.variance()


def test_multivariate_gaussian_owns_its_inputs():
    params = Parameters({"a": 0.0, "b": 0.0})
    mean = np.array([0.0, 0.0])
    cov = np.eye(2)
    prior = MultivariateGaussian(params, ["a", "b"], mean, cov)
    mean[0] = 5.0
    cov[0, 0] = 100.0
    assert prior.mean == pytest.approx([0.0, 0.0])
    assert prior.covariance == pytest.approx(np.eye(2))
    assert np.allclose(np.triu(prior.cholesky, 1), 0.0)


@pytest.mark.parametrize(
    "names, mean, cov",
    [
        (["a", "b"], [0.0, 0.0], [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        (["a", "b"], [0.0, 0.0, 0.0], np.eye(3)),
        (["a"], [0.0, 0.0], np.eye(2)),
        (["a", "b"], [0.0, 0.0], [[1.0, 2.0], [2.0, 1.0]]),
        (["a", "b"], [0.0, 0.0], [[-1.0, 0.0], [0.0, 1.0]]),
    ],
)
def test_multivariate_gaussian_rejects_invalid_covariance(names, mean, cov):
    params = Parameters({"a": 0.0, "b": 0.0})
    with pytest.raises(CovarianceError):
        MultivariateGaussian(params, names, mean, cov)


def test_clone_binds_to_other_store():
    first = Parameters({"x": 2.0})
    second = Parameters({"x": 5.0})
    prior = CurtailedGauss(first, "x", (0.0, 10.0), 1.0, 2.0, 3.0)
    copy = prior.clone(second)

    assert copy.parameters is second
    assert copy.descriptions[0].parameter.store is second
    assert copy.evaluate() == pytest.approx(prior.log_density(5.0))
    assert prior.evaluate() == pytest.approx(prior.log_density(2.0))

    copy.sample()
    assert first["x"].evaluate() == 2.0


@pytest.mark.parametrize(
    "make",
    [
        lambda p: Flat(p, "B->K::a_0@BSZ2015", (-0.5, 1.25)),
        lambda p: CurtailedGauss(p, "B->K::a_0@BSZ2015", (0.0, 1.0), 0.3, 0.4, 0.5),
        lambda p: CurtailedGauss(p, "B->K::a_0@BSZ2015", (-1.0, 1.0), -0.2, 0.1, 0.7),
        lambda p: Scale(p, "B->K::a_0@BSZ2015", 4.2, 2.0),
    ],
)
def test_make_prior_round_trips_describe(make):
    params = Parameters({"B->K::a_0@BSZ2015": 0.4})
    prior = make(params)
    rebuilt = make_prior(params, prior.describe())

    assert type(rebuilt) is type(prior)
    assert rebuilt.names == prior.names
    assert rebuilt.descriptions[0].min == pytest.approx(prior.descriptions[0].min)
    assert rebuilt.descriptions[0].max == pytest.approx(prior.descriptions[0].max)
    assert rebuilt.evaluate() == pytest.approx(prior.evaluate())


def test_describe_formats():
    params = Parameters({"x": 0.0, "y": 0.0})
    assert Flat(params, "x", (0, 1)).describe() == (
        "Parameter: x, prior type: flat, range: [0.0,1.0]"
    )
    assert CurtailedGauss(params, "x", (0, 4), 1, 2, 3).describe().endswith("x = 2.0 +- 1.0")
    assert CurtailedGauss(params, "x", (0, 4), 1.5, 2, 3).describe().endswith(
        "x = 2.0 + 1.0 - 0.5"
    )
    mvg = MultivariateGaussian(params, ["x", "y"], [0, 1], [[1, 0], [0, 4]])
    text = mvg.describe()
    assert text.startswith("Parameters: x, y, prior type: MultivariateGaussian")
    assert "[[1.0, 0.0], [0.0, 4.0]]" in text


@pytest.mark.parametrize(
    "text",
    [
        "Parameter: x, prior type: LogGamma, range: [0.0,1.0], x = 0.5 + 0.1 - 0.2, lambda = 1",
        "Parameter: x, prior type: Gaussian, range: [0.0,1.0]",
        "Parameter: x, prior type: flat, range: [zero,1.0]",
        "not a prior at all",
    ],
)
def test_make_prior_rejects_unknown_strings(text):
    params = Parameters({"x": 0.5})
    with pytest.raises(UnknownPriorError):
        make_prior(params, text)


def test_sampling_takes_one_uniform_draw_per_dimension():
    a = Parameters({"x": 0.0, "y": 0.0, "z": 2.0, "s": 1.0}, seed=21)
    b = Parameters({"x": 0.0, "y": 0.0, "z": 2.0, "s": 1.0}, seed=21)
    priors = [
        MultivariateGaussian(a, ["x", "y"], [0.0, 1.0], [[1.0, 0.3], [0.3, 2.0]]),
        CurtailedGauss(a, "z", (0.0, 4.0), 1.0, 2.0, 3.5),
        Flat(a, "x", (0.0, 1.0)),
        Scale(a, "s", 1.0, 2.0),
    ]

    for prior in priors:
        prior.sample()
    skipped = [b.uniform() for _ in range(5)]

    assert len(skipped) == 5
    assert a.uniform() == b.uniform()
