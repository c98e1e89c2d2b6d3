from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import (
    Callable,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

import numpy as np
from scipy.stats import chi2

from .params import Parameters


__all__ = [
    "LogLikelihood",
    "Observable",
    "ObservableCache",
    "GaussianBlock",
    "Constraint",
    "GaussianLikelihood",
]

ObservableFunc = Callable[[Parameters], float]


class LogLikelihood(Protocol):
    """What the posterior needs from a likelihood."""

    def __call__(self) -> float: ...

    def parameters(self) -> Parameters: ...

    def number_of_observations(self) -> int: ...

    def bootstrap_p_value(self, simulated_datasets: int) -> Tuple[float, float]: ...

    def observable_cache(self) -> "ObservableCache": ...

    def clone(self) -> "LogLikelihood": ...

    def __iter__(self) -> Iterator["Constraint"]: ...


@dataclass(frozen=True)
class Observable:
    name: str
    func: ObservableFunc


class ObservableCache:
    """Predicted observable values at the last likelihood evaluation."""

    def __init__(self, parameters: Parameters):
        self._parameters = parameters
        self._observables: List[Observable] = []
        self._values: List[float] = []

    def add(self, observable: Observable) -> int:
        for i, o in enumerate(self._observables):
            if o.name == observable.name:
                return i
        self._observables.append(observable)
        self._values.append(math.nan)
        return len(self._observables) - 1

    def update(self) -> None:
        for i, o in enumerate(self._observables):
            self._values[i] = float(o.func(self._parameters))

    def name(self, index: int) -> str:
        return self._observables[index].name

    def observable(self, index: int) -> Observable:
        return self._observables[index]

    def __getitem__(self, index: int) -> float:
        return self._values[index]

    def __len__(self) -> int:
        return len(self._observables)

    def clone(self, parameters: Parameters) -> "ObservableCache":
        result = ObservableCache(parameters)
        for o in self._observables:
            result.add(o)
        result._values = list(self._values)
        return result


@dataclass
class GaussianBlock:
    """One Gaussian measurement of one observable."""

    cache: ObservableCache
    index: int
    mean: float
    sigma: float

    def prediction(self) -> float:
        return self.cache[self.index]

    def evaluate(self) -> float:
        z = (self.prediction() - self.mean) / self.sigma
        return -0.5 * z * z - math.log(self.sigma) - 0.5 * math.log(2.0 * math.pi)

    def significance(self) -> float:
        """Signed deviation of prediction from measurement, in sigma."""
        return (self.prediction() - self.mean) / self.sigma


@dataclass
class Constraint:
    name: str
    blocks: List[GaussianBlock] = field(default_factory=list)

    def __iter__(self) -> Iterator[GaussianBlock]:
        return iter(self.blocks)


class GaussianLikelihood:
    """Sum of independent Gaussian constraints on observables.

    log L = sum_i [ -1/2 ((v_i - m_i)/s_i)^2 - ln s_i - 1/2 ln(2 pi) ]
    where v_i = observable_i(parameters).
    """

    def __init__(
        self,
        parameters: Parameters,
        *,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self._parameters = parameters
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self._cache = ObservableCache(parameters)
        self._constraints: List[Constraint] = []

    # ---- construction ----
    def add_observable(self, name: str, func: ObservableFunc) -> int:
        return self._cache.add(Observable(str(name), func))

    def add_constraint(
        self,
        name: str,
        observables: Sequence[str],
        means: Sequence[float],
        sigmas: Sequence[float],
    ) -> Constraint:
        """Add one Gaussian block per (observable, mean, sigma)."""
        if not (len(observables) == len(means) == len(sigmas)):
            raise ValueError(
                f"Constraint {name!r}: observables, means and sigmas differ in length."
            )
        known = {self._cache.name(i): i for i in range(len(self._cache))}
        constraint = Constraint(str(name))
        for obs, m, s in zip(observables, means, sigmas):
            if obs not in known:
                raise KeyError(f"Constraint {name!r}: unknown observable {obs!r}.")
            if not float(s) > 0.0:
                raise ValueError(f"Constraint {name!r}: sigma must be positive, got {s!r}.")
            constraint.blocks.append(
                GaussianBlock(self._cache, known[obs], float(m), float(s))
            )
        self._constraints.append(constraint)
        return constraint

    # ---- LogLikelihood interface ----
    def parameters(self) -> Parameters:
        return self._parameters

    def observable_cache(self) -> ObservableCache:
        return self._cache

    def number_of_observations(self) -> int:
        return sum(len(c.blocks) for c in self._constraints)

    def __iter__(self) -> Iterator[Constraint]:
        return iter(self._constraints)

    def __len__(self) -> int:
        return len(self._constraints)

    def __call__(self) -> float:
        self._cache.update()
        return float(sum(b.evaluate() for c in self._constraints for b in c.blocks))

    def _arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        blocks = [b for c in self._constraints for b in c.blocks]
        pred = np.array([b.prediction() for b in blocks], dtype=float)
        mean = np.array([b.mean for b in blocks], dtype=float)
        sigma = np.array([b.sigma for b in blocks], dtype=float)
        return pred, mean, sigma

    def bootstrap_p_value(self, simulated_datasets: int) -> Tuple[float, float]:
        """p-value of the current prediction from pseudo experiments.

        Pseudo measurements are drawn around the current prediction; the
        p-value is the fraction whose chi^2 is at least the observed one.
        Returns (p_value, chi^2 quantile with n_observations dof).
        """
        n = int(simulated_datasets)
        if n < 1:
            raise ValueError("bootstrap_p_value needs at least one simulated data set.")
        self._cache.update()
        pred, mean, sigma = self._arrays()
        chi2_obs = float(np.sum(((pred - mean) / sigma) ** 2))

        pseudo = self._rng.normal(pred, sigma, size=(n, pred.size))
        chi2_sim = np.sum(((pseudo - pred) / sigma) ** 2, axis=1)
        p_value = float(np.count_nonzero(chi2_sim >= chi2_obs)) / n
        return p_value, float(chi2.isf(p_value, pred.size))

    def clone(self) -> "GaussianLikelihood":
        parameters = self._parameters.clone()
        result = GaussianLikelihood(parameters, rng=self._rng.spawn(1)[0])
        result._cache = self._cache.clone(parameters)
        for c in self._constraints:
            result._constraints.append(
                Constraint(
                    c.name,
                    [GaussianBlock(result._cache, b.index, b.mean, b.sigma) for b in c.blocks],
                )
            )
        return result
