from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

import numpy as np


__all__ = [
    "RangeError",
    "ParameterRange",
    "Parameter",
    "Parameters",
    "ParameterDescription",
]


class RangeError(ValueError):
    """Invalid range, knee points or out-of-range parameter values."""


@dataclass(frozen=True)
class ParameterRange:
    min: float
    max: float

    @property
    def width(self) -> float:
        return float(self.max) - float(self.min)

    def contains(self, value: float) -> bool:
        return float(self.min) <= float(value) <= float(self.max)


RangeLike = Union[ParameterRange, Tuple[float, float]]


def as_range(r: RangeLike) -> ParameterRange:
    """Accept ParameterRange or a (min, max) pair."""
    if isinstance(r, ParameterRange):
        return ParameterRange(float(r.min), float(r.max))
    lo, hi = r
    return ParameterRange(float(lo), float(hi))


class Parameter:
    """Handle to one named value inside a Parameters store.

    Handles never own the value: several handles (held by priors and by a
    posterior) may read and set the same entry.
    """

    __slots__ = ("_store", "_name")

    def __init__(self, store: "Parameters", name: str):
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def store(self) -> "Parameters":
        return self._store

    def evaluate(self) -> float:
        return self._store._values[self._name]

    def set(self, value: float) -> None:
        self._store._values[self._name] = float(value)

    def evaluate_generator(self) -> float:
        """One uniform(0, 1) draw from the store's generator."""
        return self._store.uniform()

    def clone(self) -> "Parameter":
        return Parameter(self._store, self._name)

    def __float__(self) -> float:
        return self.evaluate()

    def __repr__(self) -> str:
        return f"Parameter({self._name!r}, {self.evaluate()!r})"


class Parameters:
    """Named scalar values plus the generator used to sample priors."""

    def __init__(
        self,
        values: Optional[Mapping[str, float]] = None,
        *,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self._values: Dict[str, float] = {}
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        for k, v in (values or {}).items():
            self._values[str(k)] = float(v)

    def declare(self, name: str, value: float = 0.0) -> Parameter:
        """Add a parameter (or overwrite its value) and return its handle."""
        self._values[str(name)] = float(value)
        return Parameter(self, str(name))

    def __getitem__(self, name: str) -> Parameter:
        if name not in self._values:
            raise KeyError(f"No such parameter {name!r}.")
        return Parameter(self, name)

    def __contains__(self, name: Any) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._values)

    def uniform(self) -> float:
        """Draw from the open interval (0, 1)."""
        u = float(self._rng.random())
        while u == 0.0:
            u = float(self._rng.random())
        return u

    def clone(self) -> "Parameters":
        """Independent copy: same values, generator spawned from this one."""
        child = self._rng.spawn(1)[0]
        return Parameters(self._values, rng=child)

    def __repr__(self) -> str:
        return f"Parameters({self._values!r})"


@dataclass
class ParameterDescription:
    """A parameter handle together with its admissible range.

    min/max/nuisance are mutable: a Posterior overwrites nuisance on add()
    and copies ranges across clones.
    """

    parameter: Parameter
    min: float
    max: float
    nuisance: bool = False

    @property
    def name(self) -> str:
        return self.parameter.name

    @property
    def range(self) -> ParameterRange:
        return ParameterRange(self.min, self.max)

    def as_tuple(self) -> Tuple[str, float, float, bool]:
        return (self.name, float(self.min), float(self.max), bool(self.nuisance))
