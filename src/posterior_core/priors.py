"""Prior distributions over named parameters.

Four kinds share one capability set: ``evaluate`` (natural-log density at the
current parameter values), ``sample`` (draw and write back), ``clone`` (bind
to another Parameters store), ``describe`` (human readable and parseable by
:func:`make_prior`), ``variance`` and the ``informative`` flag.

Sampling consumes one uniform(0, 1) draw per scalar dimension from the
parameter store's generator, so two stores seeded alike sample alike.
"""
from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg
from scipy.special import ndtr, ndtri

from .params import (
    ParameterDescription,
    Parameters,
    RangeError,
    RangeLike,
    as_range,
)
from .util import (
    std_normal_pdf,
    stringify,
    stringify_matrix,
    stringify_vector,
    z_times_pdf,
)


__all__ = [
    "CovarianceError",
    "UnknownPriorError",
    "Prior",
    "Flat",
    "CurtailedGauss",
    "Scale",
    "MultivariateGaussian",
    "make_prior",
]

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


class CovarianceError(ValueError):
    """Covariance matrix is malformed or not positive definite."""


class UnknownPriorError(ValueError):
    """A prior description string could not be parsed."""


class Prior(ABC):
    """Common base of all prior kinds."""

    kind: str = ""
    informative: bool = True

    def __init__(self, parameters: Parameters):
        self._parameters = parameters
        self._descriptions: List[ParameterDescription] = []

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    @property
    def descriptions(self) -> List[ParameterDescription]:
        return self._descriptions

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(d.name for d in self._descriptions)

    def __iter__(self) -> Iterator[ParameterDescription]:
        return iter(self._descriptions)

    def __call__(self) -> float:
        return self.evaluate()

    def __str__(self) -> str:
        return self.describe()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {', '.join(self.names)}>"

    @abstractmethod
    def evaluate(self) -> float:
        """Log prior density at the parameters' current values."""

    @abstractmethod
    def sample(self) -> None:
        """Draw from the prior and write the draw into the parameter(s)."""

    @abstractmethod
    def clone(self, parameters: Parameters) -> "Prior":
        """Independent copy bound to ``parameters``."""

    @abstractmethod
    def describe(self) -> str:
        ...

    @abstractmethod
    def variance(self, name: Optional[str] = None) -> float:
        """Prior variance of one parameter (marginal for multivariate kinds)."""


class Flat(Prior):
    """Uniform prior on [min, max].

    The density is returned for any value; the range only matters for
    sampling and for the optimizer's step sizes.
    """

    kind = "flat"
    informative = False

    def __init__(self, parameters: Parameters, name: str, bounds: RangeLike):
        super().__init__(parameters)
        r = as_range(bounds)
        if r.min >= r.max:
            raise RangeError(
                f"Flat({name}): minimum ({stringify(r.min)}) must be smaller "
                f"than maximum ({stringify(r.max)})"
            )
        self._name = str(name)
        self._parameter = parameters[self._name]
        self._range = r
        self._value = math.log(1.0 / (r.max - r.min))
        self._descriptions.append(
            ParameterDescription(self._parameter.clone(), r.min, r.max, False)
        )

    @property
    def range(self):
        return self._range

    def evaluate(self) -> float:
        return self._value

    def sample(self) -> None:
        u = self._parameter.evaluate_generator()
        self._parameter.set(u * (self._range.max - self._range.min) + self._range.min)

    def clone(self, parameters: Parameters) -> "Flat":
        return Flat(parameters, self._name, self._range)

    def describe(self) -> str:
        return (
            f"Parameter: {self._name}, prior type: flat, "
            f"range: [{stringify(self._range.min)},{stringify(self._range.max)}]"
        )

    def variance(self, name: Optional[str] = None) -> float:
        return self._range.width ** 2 / 12.0


class CurtailedGauss(Prior):
    """Asymmetric Gaussian x^{+(upper-central)}_{-(central-lower)} on [min, max].

    The pdf is c_b N(y|central, sigma_lower) left of central and
    c_a N(y|central, sigma_upper) right of it. c_a and c_b make the density
    continuous at central and integrate to one over the range.
    """

    kind = "Gaussian"

    def __init__(
        self,
        parameters: Parameters,
        name: str,
        bounds: RangeLike,
        lower: float,
        central: float,
        upper: float,
    ):
        super().__init__(parameters)
        r = as_range(bounds)
        lower, central, upper = float(lower), float(central), float(upper)
        if r.min >= r.max:
            raise RangeError(
                f"CurtailedGauss({name}): minimum ({stringify(r.min)}) must be smaller "
                f"than maximum ({stringify(r.max)})"
            )
        if lower >= central:
            raise RangeError(
                f"CurtailedGauss({name}): lower value ({stringify(lower)}) must be smaller "
                f"than central value ({stringify(central)})"
            )
        if upper <= central:
            raise RangeError(
                f"CurtailedGauss({name}): upper value ({stringify(upper)}) must be larger "
                f"than central value ({stringify(central)})"
            )
        if not r.contains(central):
            raise RangeError(
                f"CurtailedGauss({name}): central value ({stringify(central)}) outside "
                f"range [{stringify(r.min)},{stringify(r.max)}]"
            )

        self._name = str(name)
        self._parameter = parameters[self._name]
        self._range = r
        self._lower = lower
        self._central = central
        self._upper = upper
        self._sigma_lower = central - lower
        self._sigma_upper = upper - central

        # Gaussian mass of each half inside the range, before rescaling
        self._z_min = (r.min - central) / self._sigma_lower
        self._z_max = (r.max - central) / self._sigma_upper
        mass_lower = 0.5 - float(ndtr(self._z_min))
        mass_upper = float(ndtr(self._z_max)) - 0.5
        ratio = self._sigma_lower / self._sigma_upper

        self._c_a = 1.0 / (ratio * mass_lower + mass_upper)
        self._c_b = ratio * self._c_a
        self._prob_lower = self._c_b * mass_lower
        self._norm_lower = math.log(self._c_b / self._sigma_lower) - _LOG_SQRT_2PI
        self._norm_upper = math.log(self._c_a / self._sigma_upper) - _LOG_SQRT_2PI

        self._descriptions.append(
            ParameterDescription(self._parameter.clone(), r.min, r.max, False)
        )

    @property
    def range(self):
        return self._range

    @property
    def central(self) -> float:
        return self._central

    @property
    def sigma_lower(self) -> float:
        return self._sigma_lower

    @property
    def sigma_upper(self) -> float:
        return self._sigma_upper

    @property
    def prob_lower(self) -> float:
        """Probability mass left of central."""
        return self._prob_lower

    def log_density(self, x: float) -> float:
        if x < self._central:
            sigma, norm = self._sigma_lower, self._norm_lower
        else:
            sigma, norm = self._sigma_upper, self._norm_upper
        return norm - 0.5 * ((x - self._central) / sigma) ** 2

    def evaluate(self) -> float:
        return self.log_density(self._parameter.evaluate())

    def sample(self) -> None:
        p = self._parameter.evaluate_generator()
        if p < self._prob_lower:
            z = ndtri((p - self._prob_lower) / self._c_b + 0.5)
            self._parameter.set(self._sigma_lower * float(z) + self._central)
        else:
            z = ndtri((p - self._prob_lower) / self._c_a + 0.5)
            self._parameter.set(self._sigma_upper * float(z) + self._central)

    def clone(self, parameters: Parameters) -> "CurtailedGauss":
        return CurtailedGauss(
            parameters, self._name, self._range, self._lower, self._central, self._upper
        )

    def describe(self) -> str:
        result = (
            f"Parameter: {self._name}, prior type: Gaussian, "
            f"range: [{stringify(self._range.min)},{stringify(self._range.max)}]"
            f", x = {stringify(self._central)}"
        )
        if abs(self._sigma_upper - self._sigma_lower) < 1e-15:
            result += f" +- {stringify(self._sigma_upper)}"
        else:
            result += f" + {stringify(self._sigma_upper)} - {stringify(self._sigma_lower)}"
        return result

    def variance(self, name: Optional[str] = None) -> float:
        a, b = self._z_min, self._z_max
        sl, su = self._sigma_lower, self._sigma_upper
        phi0 = std_normal_pdf(0.0)

        # first and second moments of (x - central), half by half
        m1 = self._c_b * sl * (std_normal_pdf(a) - phi0) + self._c_a * su * (
            phi0 - std_normal_pdf(b)
        )
        m2 = self._c_b * sl**2 * (0.5 - float(ndtr(a)) + z_times_pdf(a)) + self._c_a * su**2 * (
            float(ndtr(b)) - z_times_pdf(b) - 0.5
        )
        return m2 - m1**2


class Scale(Prior):
    """Prior for renormalization scales: log(x) uniform on [mu_0/lambda, mu_0*lambda].

    evaluate() returns the linear density 1/(2 ln(lambda) x), not its log.
    """

    kind = "Scale"

    def __init__(self, parameters: Parameters, name: str, mu_0: float, lambda_: float):
        super().__init__(parameters)
        mu_0, lambda_ = float(mu_0), float(lambda_)
        if mu_0 <= 0.0:
            raise RangeError(f"Scale({name}): default value mu_0 must be strictly positive")
        if lambda_ <= 1.0:
            raise RangeError(
                f"Scale({name}): scale factor lambda must be strictly larger than 1"
            )

        self._name = str(name)
        self._parameter = parameters[self._name]
        self._mu_0 = mu_0
        self._lambda = lambda_
        self._min = mu_0 / lambda_
        self._max = mu_0 * lambda_
        self._ln_lambda = math.log(lambda_)
        self._descriptions.append(
            ParameterDescription(self._parameter.clone(), self._min, self._max, False)
        )

    @property
    def range(self):
        return as_range((self._min, self._max))

    @property
    def mu_0(self) -> float:
        return self._mu_0

    @property
    def lambda_(self) -> float:
        return self._lambda

    def density(self, x: float) -> float:
        if x < self._min or self._max < x:
            return -math.inf
        return 1.0 / (2.0 * self._ln_lambda * x)

    def evaluate(self) -> float:
        return self.density(self._parameter.evaluate())

    def sample(self) -> None:
        # inverse CDF: x = mu_0 * lambda^(2 p - 1)
        p = self._parameter.evaluate_generator()
        self._parameter.set(self._mu_0 * self._lambda ** (2.0 * p - 1.0))

    def clone(self, parameters: Parameters) -> "Scale":
        return Scale(parameters, self._name, self._mu_0, self._lambda)

    def describe(self) -> str:
        return (
            f"Parameter: {self._name}, prior type: Scale, "
            f"range: [{stringify(self._min)},{stringify(self._max)}]"
            f", mu_0 = {stringify(self._mu_0)}, lambda = {stringify(self._lambda)}"
        )

    def variance(self, name: Optional[str] = None) -> float:
        span = 2.0 * self._ln_lambda
        lo, hi = self._min, self._max
        mean = (hi - lo) / span
        second = (hi**2 - lo**2) / (2.0 * span)
        return second - mean**2


class MultivariateGaussian(Prior):
    """Correlated Gaussian prior over several parameters."""

    kind = "MultivariateGaussian"

    def __init__(
        self,
        parameters: Parameters,
        names: Sequence[str],
        mean: Sequence[float],
        covariance: Sequence[Sequence[float]],
    ):
        super().__init__(parameters)
        self._names = tuple(str(n) for n in names)
        self._dim = len(self._names)
        self._mean = np.array(mean, dtype=float, copy=True)
        self._covariance = np.array(covariance, dtype=float, copy=True)

        cov = self._covariance
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            raise CovarianceError(
                "MultivariateGaussian: covariance matrix is not a square matrix"
            )
        if self._mean.ndim != 1 or cov.shape[0] != self._mean.shape[0]:
            raise CovarianceError(
                "MultivariateGaussian: number of parameters and dimension of "
                "covariance matrix are not identical"
            )
        if self._dim != self._mean.shape[0]:
            raise CovarianceError(
                "MultivariateGaussian: number of parameters and dimension of "
                "mean vector are not identical"
            )
        if self._dim == 0:
            raise CovarianceError("MultivariateGaussian: needs at least one parameter")

        try:
            chol = np.linalg.cholesky(cov)
        except np.linalg.LinAlgError as e:
            raise CovarianceError(
                "MultivariateGaussian: Cholesky decomposition failed"
            ) from e
        if not np.all(np.isfinite(chol)):
            raise CovarianceError("MultivariateGaussian: Cholesky decomposition failed")

        # lower triangular, upper part zero
        self._chol = np.tril(chol)
        self._covariance_inv = scipy.linalg.cho_solve(
            (self._chol, True), np.eye(self._dim)
        )
        log_det = 2.0 * float(np.sum(np.log(np.diag(self._chol))))
        self._norm = -self._dim * _LOG_SQRT_2PI - 0.5 * log_det

        big = float(np.finfo(float).max)
        self._handles = []
        for n in self._names:
            handle = parameters[n]
            self._handles.append(handle)
            self._descriptions.append(ParameterDescription(handle.clone(), -big, big, False))

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def mean(self) -> np.ndarray:
        return self._mean.copy()

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance.copy()

    @property
    def cholesky(self) -> np.ndarray:
        return self._chol.copy()

    @property
    def norm(self) -> float:
        """Log normalization -k/2 ln(2 pi) - 1/2 ln det(covariance)."""
        return self._norm

    def log_density(self, values: Sequence[float]) -> float:
        v = np.asarray(values, dtype=float)
        if v.shape != self._mean.shape:
            raise ValueError(
                f"MultivariateGaussian: expected {self._dim} values, got shape {v.shape}"
            )
        d = v - self._mean
        chi_square = float(d @ self._covariance_inv @ d)
        return self._norm - 0.5 * chi_square

    def evaluate(self) -> float:
        return self.log_density([h.evaluate() for h in self._handles])

    def sample(self) -> None:
        u = np.array([h.evaluate_generator() for h in self._handles], dtype=float)
        x = self._chol @ ndtri(u) + self._mean
        for h, xi in zip(self._handles, x):
            h.set(float(xi))

    def clone(self, parameters: Parameters) -> "MultivariateGaussian":
        return MultivariateGaussian(parameters, self._names, self._mean, self._covariance)

    def describe(self) -> str:
        return (
            f"Parameters: {', '.join(self._names)}, prior type: MultivariateGaussian"
            f", mean: {stringify_vector(self._mean)}"
            f", covariance: {stringify_matrix(self._covariance)}"
        )

    def variance(self, name: Optional[str] = None) -> float:
        if name is None:
            if self._dim != 1:
                raise ValueError(
                    "MultivariateGaussian.variance needs a parameter name when k > 1."
                )
            return float(self._covariance[0, 0])
        try:
            i = self._names.index(name)
        except ValueError as e:
            raise KeyError(f"MultivariateGaussian: no such parameter {name!r}") from e
        return float(self._covariance[i, i])


_HEADER = re.compile(
    r"^Parameter: (?P<name>.+?), prior type: (?P<kind>[^,]+), "
    r"range: \[(?P<min>[^,\]]+),(?P<max>[^\]]+)\](?P<rest>.*)$"
)
_GAUSS_SYMMETRIC = re.compile(r"^, x = (?P<central>\S+) \+- (?P<sigma>\S+)$")
_GAUSS_ASYMMETRIC = re.compile(
    r"^, x = (?P<central>\S+) \+ (?P<upper>\S+) - (?P<lower>\S+)$"
)
_SCALE = re.compile(r"^, mu_0 = (?P<mu_0>\S+), lambda = (?P<lambda_>\S+)$")


def make_prior(parameters: Parameters, text: str) -> Prior:
    """Rebuild a prior from its describe() string."""
    m = _HEADER.match(text.strip())
    if m is None:
        raise UnknownPriorError(f"Cannot construct prior from {text!r}")

    name = m.group("name")
    kind = m.group("kind")
    rest = m.group("rest")
    try:
        bounds = (float(m.group("min")), float(m.group("max")))

        if kind == "flat" and not rest:
            return Flat(parameters, name, bounds)

        if kind == "Gaussian":
            g = _GAUSS_SYMMETRIC.match(rest)
            if g is not None:
                central = float(g.group("central"))
                sigma_upper = sigma_lower = float(g.group("sigma"))
            else:
                g = _GAUSS_ASYMMETRIC.match(rest)
                if g is None:
                    raise UnknownPriorError(f"Cannot construct prior from {text!r}")
                central = float(g.group("central"))
                sigma_upper = float(g.group("upper"))
                sigma_lower = float(g.group("lower"))
            return CurtailedGauss(
                parameters, name, bounds, central - sigma_lower, central, central + sigma_upper
            )

        if kind == "Scale":
            s = _SCALE.match(rest)
            if s is not None:
                return Scale(parameters, name, float(s.group("mu_0")), float(s.group("lambda_")))
    except ValueError as e:
        if isinstance(e, (UnknownPriorError, RangeError)):
            raise
        raise UnknownPriorError(f"Cannot construct prior from {text!r}") from e

    raise UnknownPriorError(f"Cannot construct prior from {text!r}")
