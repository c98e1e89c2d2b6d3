from __future__ import annotations

import math
from typing import Any, Iterable

import numpy as np


def stringify(x: Any) -> str:
    """Shortest round-trip text for a float (numpy scalars included)."""
    return repr(float(x))


def stringify_vector(values: Iterable[Any]) -> str:
    return "[" + ", ".join(stringify(v) for v in values) + "]"


def stringify_matrix(m: np.ndarray) -> str:
    return "[" + ", ".join(stringify_vector(row) for row in np.asarray(m)) + "]"


def std_normal_pdf(z: float) -> float:
    """Standard Normal density; 0 at +-inf."""
    if math.isinf(z):
        return 0.0
    return math.exp(-0.5 * z * z) / math.sqrt(2.0 * math.pi)


def z_times_pdf(z: float) -> float:
    """z * phi(z), with the limit 0 at +-inf."""
    if math.isinf(z):
        return 0.0
    return z * std_normal_pdf(z)
