"""HDF5 output of posterior descriptions and goodness-of-fit runs.

Layout below ``base`` (default ``/descriptions``):

- ``parameters``: compound {name, min, max, nuisance (int), prior}, with a
  ``version`` attribute
- ``constraints``: compound {name}
- ``observables``: compound {name}

A goodness-of-fit file additionally holds ``/data/parameters`` and
``/data/significances`` (attributes ``chi2_significance`` and
``chi2_simulation``).
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Tuple, Union

import numpy as np

from . import __version__
from .posterior import DescriptionRecord, Posterior


__all__ = [
    "StoredDescriptions",
    "dump_descriptions",
    "read_descriptions",
    "dump_goodness_of_fit",
]

FileLike = Union[str, "os.PathLike[str]", Any]


def _require_h5py():
    try:
        import h5py  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("Missing dependency: h5py is required for HDF5 output.") from e
    return h5py


@contextmanager
def _opened(file: FileLike, mode: str) -> Iterator[Any]:
    """Yield an h5py group, opening ``file`` first if it is a path."""
    if isinstance(file, (str, os.PathLike)):
        h5py = _require_h5py()
        with h5py.File(Path(file).expanduser(), mode) as f:
            yield f
    else:
        yield file


def _text(x: Any) -> str:
    return x.decode("utf-8") if isinstance(x, bytes) else str(x)


@dataclass(frozen=True)
class StoredDescriptions:
    parameters: List[DescriptionRecord]
    constraints: List[str]
    observables: List[str]
    version: str


def _name_table(h5py, names: List[str]) -> np.ndarray:
    dtype = np.dtype([("name", h5py.string_dtype())])
    return np.array([(n,) for n in names], dtype=dtype)


def dump_descriptions(
    file: FileLike, posterior: Posterior, base: str = "/descriptions"
) -> None:
    """Write parameter, constraint and observable tables under ``base``."""
    h5py = _require_h5py()
    str_t = h5py.string_dtype()
    dtype = np.dtype(
        [
            ("name", str_t),
            ("min", "f8"),
            ("max", "f8"),
            ("nuisance", "i4"),
            ("prior", str_t),
        ]
    )
    records = np.array(posterior.description_records(), dtype=dtype)
    likelihood = posterior.log_likelihood
    cache = likelihood.observable_cache()

    with _opened(file, "a") as f:
        ds = f.create_dataset(f"{base}/parameters", data=records)
        ds.attrs["version"] = __version__
        f.create_dataset(
            f"{base}/constraints", data=_name_table(h5py, [c.name for c in likelihood])
        )
        f.create_dataset(
            f"{base}/observables",
            data=_name_table(h5py, [cache.name(i) for i in range(len(cache))]),
        )


def read_descriptions(file: FileLike, base: str = "/descriptions") -> StoredDescriptions:
    """Read back what dump_descriptions wrote.

    Prior strings can be turned into priors again with
    :func:`posterior_core.priors.make_prior`.
    """
    with _opened(file, "r") as f:
        ds = f[f"{base}/parameters"]
        rows = [
            (_text(r["name"]), float(r["min"]), float(r["max"]), int(r["nuisance"]), _text(r["prior"]))
            for r in ds[()]
        ]
        version = _text(ds.attrs.get("version", ""))
        constraints = [_text(r["name"]) for r in f[f"{base}/constraints"][()]]
        observables = [_text(r["name"]) for r in f[f"{base}/observables"][()]]
    return StoredDescriptions(rows, constraints, observables, version)


def dump_goodness_of_fit(path: FileLike, posterior: Posterior, report: Any) -> None:
    """Create ``path`` holding descriptions, the point and the significances."""
    h5py = _require_h5py()
    if isinstance(path, (str, os.PathLike)):
        ctx = h5py.File(Path(path).expanduser(), "w")
    else:
        ctx = _opened(path, "a")
    with ctx as f:
        dump_descriptions(f, posterior, "/descriptions")
        f.create_dataset("/data/parameters", data=np.asarray(report.parameters, dtype=float))
        ds = f.create_dataset(
            "/data/significances", data=np.asarray(report.significances, dtype=float)
        )
        ds.attrs["chi2_significance"] = float(report.chi2_significance)
        ds.attrs["chi2_simulation"] = float(report.chi2_simulated)


def description_tuples(stored: StoredDescriptions) -> List[Tuple[str, float, float, bool]]:
    """(name, min, max, nuisance) rows, comparable with ParameterDescription.as_tuple()."""
    return [(n, lo, hi, bool(nu)) for n, lo, hi, nu, _ in stored.parameters]
