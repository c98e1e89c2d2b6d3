from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .likelihood import LogLikelihood
from .params import Parameter, ParameterDescription, Parameters
from .priors import Prior

if TYPE_CHECKING:
    from .optimize import OptimizationOptions, OptimizationResult


__all__ = ["Posterior"]

DescriptionRecord = Tuple[str, float, float, int, str]


class Posterior:
    """Log-posterior = sum of independent log-priors + log-likelihood.

    The posterior evaluates on the likelihood's own Parameters store; priors
    passed to add() are cloned onto that store first.
    """

    def __init__(self, likelihood: LogLikelihood):
        self._likelihood = likelihood
        self._parameters = likelihood.parameters()
        self._priors: List[Prior] = []
        self._descriptions: List[ParameterDescription] = []
        self._names: Set[str] = set()
        self._informative_priors = 0

    # ---- registry ----
    def add(self, prior: Prior, nuisance: bool = False) -> bool:
        """Register a clone of ``prior``.

        Returns False, registering nothing, if any of its parameters is
        already known. The informative-prior count is bumped either way.
        """
        prior_clone = prior.clone(self._parameters)
        self._informative_priors += 1 if prior.informative else 0

        names = prior_clone.names
        if len(set(names)) != len(names) or any(n in self._names for n in names):
            return False

        for d in prior_clone.descriptions:
            self._names.add(d.name)
            d.nuisance = bool(nuisance)
            self._descriptions.append(d)

        self._priors.append(prior_clone)
        return True

    def clone(self) -> "Posterior":
        """Independent posterior over a cloned likelihood.

        Ranges and nuisance flags are carried over; parameter values live in
        the likelihood clone's store.
        """
        result = Posterior(self._likelihood.clone())
        for prior in self._priors:
            result.add(prior.clone(result.parameters))

        for src, dst in zip(self._descriptions, result._descriptions):
            dst.min = src.min
            dst.max = src.max
            dst.nuisance = src.nuisance
        return result

    # ---- evaluation ----
    def log_prior(self) -> float:
        if not self._priors:
            raise RuntimeError("Posterior.log_prior(): prior is undefined")
        # all prior components are independent: logs add up
        return float(sum(p.evaluate() for p in self._priors))

    def log_posterior(self) -> float:
        return self.log_prior() + float(self._likelihood())

    def evaluate(self) -> float:
        return self.log_posterior()

    def __call__(self) -> float:
        return self.log_posterior()

    def set_values(self, values: Sequence[float]) -> None:
        """Set every registered parameter, in registration order."""
        values = np.asarray(values, dtype=float).reshape((-1,))
        if values.shape[0] != len(self._descriptions):
            raise ValueError(
                f"Expected {len(self._descriptions)} parameter values, got {values.shape[0]}."
            )
        for d, v in zip(self._descriptions, values):
            d.parameter.set(float(v))

    def values(self) -> np.ndarray:
        return np.array([d.parameter.evaluate() for d in self._descriptions], dtype=float)

    def negative_log_posterior(self, values: Sequence[float]) -> float:
        self.set_values(values)
        return -(self.log_prior() + float(self._likelihood()))

    # ---- lookup ----
    def index(self, name: str) -> int:
        for i, d in enumerate(self._descriptions):
            if d.name == name:
                return i
        raise KeyError(f"Posterior: no such parameter {name!r}")

    def prior_for(self, name: str) -> Optional[Prior]:
        """The prior that contributed ``name`` (last match), or None."""
        result = None
        for prior in self._priors:
            for d in prior.descriptions:
                if d.name == name:
                    result = prior
        return result

    def nuisance(self, name: str) -> bool:
        return self._descriptions[self.index(name)].nuisance

    def __getitem__(self, index: int) -> Parameter:
        return self._descriptions[index].parameter

    def __len__(self) -> int:
        return len(self._descriptions)

    @property
    def informative_priors(self) -> int:
        return self._informative_priors

    @property
    def parameter_descriptions(self) -> List[ParameterDescription]:
        return self._descriptions

    @property
    def priors(self) -> Tuple[Prior, ...]:
        return tuple(self._priors)

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    @property
    def log_likelihood(self) -> LogLikelihood:
        return self._likelihood

    def description_records(self) -> List[DescriptionRecord]:
        """Rows (name, min, max, nuisance, prior) of the parameter table."""
        rows = []
        for d in self._descriptions:
            prior = self.prior_for(d.name)
            rows.append(
                (
                    d.name,
                    float(d.min),
                    float(d.max),
                    int(d.nuisance),
                    prior.describe() if prior is not None else "",
                )
            )
        return rows

    # ---- numerical anchors ----
    def optimize(
        self,
        initial_guess: Sequence[float],
        options: Optional[Union["OptimizationOptions", Mapping[str, Any]]] = None,
    ) -> "OptimizationResult":
        from .optimize import optimize

        return optimize(self, initial_guess, options)

    def goodness_of_fit(
        self,
        parameter_values: Sequence[float],
        simulated_datasets: int,
        output_file: Optional[str] = None,
    ) -> Tuple[float, float]:
        from .goodness import goodness_of_fit

        return goodness_of_fit(self, parameter_values, simulated_datasets, output_file)

    def __repr__(self) -> str:
        return f"Posterior({', '.join(d.name for d in self._descriptions)})"
