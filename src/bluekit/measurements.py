from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from .covariance import validate_correlation_matrix
from .errors import ConfigurationError
from .observables import Observable, PredictionFunction, as_observable


def _magnitude(name: str, source: str, value: object) -> float:
    try:
        mag = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{name}: uncertainty {source!r} must be a scalar, got {value!r}"
        ) from e
    if not np.isfinite(mag) or mag < 0:
        raise ConfigurationError(
            f"{name}: uncertainty {source!r} must be finite and >= 0, got {mag}"
        )
    return mag


@dataclass(frozen=True)
class MeasurementEntry:
    """One scalar entry of the combination: a measurement or a single bin."""

    name: str
    observable: Observable
    value: float
    uncertainties: Mapping[str, float]
    active: bool
    parent: str


@dataclass(frozen=True)
class Measurement:
    """
    A single measured value of an observable.

    Attributes
    ----------
    name : str
        Identifier, used to address the measurement in correlations.
    observable : Observable | callable
        What is measured. A bare prediction function is wrapped; its identity
        is the identity of the observable.
    value : float
        Measured value.
    uncertainties : Mapping[str, float]
        Magnitude of each uncertainty source, e.g. ``{"stat": 0.8, "syst": 1.8}``.
    active : bool
        Inactive measurements are left out of every combination.
    """

    name: str
    observable: Union[Observable, PredictionFunction]
    value: float
    uncertainties: Mapping[str, float]
    active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "observable", as_observable(self.observable, self.name))
        try:
            object.__setattr__(self, "value", float(self.value))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"{self.name}: value must be a scalar; "
                "use MeasurementDistribution for binned measurements"
            ) from e
        unc = {k: _magnitude(self.name, k, v) for k, v in self.uncertainties.items()}
        object.__setattr__(self, "uncertainties", MappingProxyType(unc))
        object.__setattr__(self, "active", bool(self.active))

    @property
    def entry_names(self) -> list[str]:
        return [self.name]

    def entries(self) -> list[MeasurementEntry]:
        assert isinstance(self.observable, Observable)
        return [
            MeasurementEntry(
                self.name,
                self.observable,
                self.value,
                self.uncertainties,
                self.active,
                self.name,
            )
        ]


@dataclass(frozen=True)
class MeasurementDistribution:
    """
    A binned measurement: one value and one observable per bin.

    Uncertainty magnitudes are per-bin sequences. `active` is either a single
    flag for the whole distribution or one flag per bin. Bins are addressed
    as ``"{name}_bin{i}"`` with i starting at 1.
    """

    name: str
    observables: Sequence[Union[Observable, PredictionFunction]]
    values: Sequence[float]
    uncertainties: Mapping[str, Sequence[float]]
    active: Union[bool, Sequence[bool]] = True

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=float)
        if values.ndim != 1 or values.size == 0:
            raise ConfigurationError(f"{self.name}: values must be a non-empty 1D sequence")
        nbins = values.size
        if len(self.observables) != nbins:
            raise ConfigurationError(
                f"{self.name}: {len(self.observables)} observables for {nbins} bins"
            )
        observables = tuple(
            as_observable(o, f"{self.name}_bin{i}")
            for i, o in enumerate(self.observables, start=1)
        )

        unc = {}
        for source, mags in self.uncertainties.items():
            arr = np.atleast_1d(np.asarray(mags, dtype=float))
            if arr.shape != (nbins,):
                raise ConfigurationError(
                    f"{self.name}: uncertainty {source!r} needs {nbins} values, "
                    f"got shape {arr.shape}"
                )
            unc[source] = tuple(_magnitude(self.name, source, m) for m in arr)

        if isinstance(self.active, (bool, np.bool_)):
            active = (bool(self.active),) * nbins
        else:
            active = tuple(bool(a) for a in self.active)
            if len(active) != nbins:
                raise ConfigurationError(
                    f"{self.name}: {len(active)} activation flags for {nbins} bins"
                )

        object.__setattr__(self, "observables", observables)
        object.__setattr__(self, "values", tuple(float(v) for v in values))
        object.__setattr__(self, "uncertainties", MappingProxyType(unc))
        object.__setattr__(self, "active", active)

    @property
    def entry_names(self) -> list[str]:
        return [f"{self.name}_bin{i}" for i in range(1, len(self.values) + 1)]

    def entries(self) -> list[MeasurementEntry]:
        return [
            MeasurementEntry(
                bin_name,
                obs,  # type: ignore[arg-type]
                val,
                MappingProxyType({k: v[i] for k, v in self.uncertainties.items()}),
                act,  # type: ignore[arg-type]
                self.name,
            )
            for i, (bin_name, obs, val, act) in enumerate(
                zip(self.entry_names, self.observables, self.values, self.active)  # type: ignore[arg-type]
            )
        ]


AnyMeasurement = Union[Measurement, MeasurementDistribution]


@dataclass(frozen=True, eq=False)
class Correlation:
    """Correlation matrix of one uncertainty source over all entries of a model."""

    matrix: np.ndarray
    active: bool = True

    def __post_init__(self) -> None:
        m = np.array(self.matrix, dtype=float)
        m.setflags(write=False)
        object.__setattr__(self, "matrix", m)


@dataclass(frozen=True)
class NoCorrelation:
    """Uncorrelated uncertainty source: the identity matrix of the right size."""

    active: bool = True

    @property
    def matrix(self) -> None:
        return None


CorrelationSpec = Union[Correlation, NoCorrelation]


@dataclass(frozen=True)
class NuisanceCorrelation:
    """
    A correlation coefficient of one uncertainty source treated as a parameter.

    `entry1`/`entry2` are entry names (measurement names or ``"{dist}_binN"``).
    `prior` is not interpreted here; it is kept for whoever samples the value.
    """

    uncertainty: str
    entry1: str
    entry2: str
    prior: Any = (-1.0, 1.0)

    def __post_init__(self) -> None:
        if self.entry1 == self.entry2:
            raise ConfigurationError(
                f"nuisance correlation of {self.entry1!r} with itself is fixed to 1"
            )


@dataclass(frozen=True, eq=False)
class UncertaintyType:
    """
    One uncertainty source as seen by the covariance builder.

    `magnitudes` and `correlation` span every entry of the model, active or not;
    a `correlation` of None stands for the identity.
    """

    name: str
    magnitudes: np.ndarray
    correlation: Optional[np.ndarray]
    active: bool = True


def entry_index(measurements: Sequence[AnyMeasurement]) -> dict[str, list[int]]:
    """
    Map every addressable name to its entry positions.

    Measurement and distribution names map to all of their entries, bin names to
    their single entry.
    """
    index: dict[str, list[int]] = {}
    pos = 0
    for m in measurements:
        names = m.entry_names
        positions = list(range(pos, pos + len(names)))
        if m.name in index:
            raise ConfigurationError(f"duplicate measurement name {m.name!r}")
        index[m.name] = positions
        if isinstance(m, MeasurementDistribution):
            for n, p in zip(names, positions):
                if n in index:
                    raise ConfigurationError(f"duplicate entry name {n!r}")
                index[n] = [p]
        pos += len(names)
    return index


def to_correlation_matrix(
    measurements: Sequence[AnyMeasurement], *pairs: tuple[str, str, Any]
) -> np.ndarray:
    """
    Build a correlation matrix over all entries of `measurements`.

    Starts from the identity; each ``(a, b, value)`` sets the correlation between
    the entries addressed by `a` and `b` (and its mirror). A scalar `value` is
    used for every entry pair, a matrix `value` fills the (a, b) block::

        to_correlation_matrix(meas,
            ("Meas1", "Meas2", 0.4),
            ("MeasDist", "MeasDist", dist_corr),
            ("MeasDist_bin2", "MeasDist_bin3", 0.3),
        )

    Later pairs overwrite earlier ones.
    """
    index = entry_index(measurements)
    n = sum(len(m.entry_names) for m in measurements)
    cor = np.eye(n, dtype=float)

    for a, b, value in pairs:
        try:
            ia, ib = index[a], index[b]
        except KeyError as e:
            raise ConfigurationError(f"unknown measurement or bin {e.args[0]!r}") from e
        v = np.asarray(value, dtype=float)
        if v.ndim == 0:
            for i in ia:
                for j in ib:
                    if i != j:
                        cor[i, j] = cor[j, i] = float(v)
        elif v.shape == (len(ia), len(ib)):
            cor[np.ix_(ia, ib)] = v
            cor[np.ix_(ib, ia)] = v.T
        else:
            raise ConfigurationError(
                f"correlation block ({a!r}, {b!r}) must be a scalar or of shape "
                f"{(len(ia), len(ib))}, got {v.shape}"
            )

    validate_correlation_matrix(cor, n)
    return cor
