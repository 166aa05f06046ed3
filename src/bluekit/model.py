from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .covariance import (
    build_total_covariance,
    nuisance_overrides,
    validate_correlation_matrix,
)
from .errors import ConfigurationError
from .measurements import (
    AnyMeasurement,
    CorrelationSpec,
    MeasurementEntry,
    NuisanceCorrelation,
    UncertaintyType,
    entry_index,
)
from .observables import Observable


@dataclass(frozen=True, eq=False)
class CombinationModel:
    """
    Measurements, the correlations of their uncertainty sources and (optionally)
    correlation coefficients treated as nuisance parameters.

    Attributes
    ----------
    measurements : Sequence[Measurement | MeasurementDistribution]
        Order defines the entry order of every vector and matrix.
    correlations : Mapping[str, Correlation | NoCorrelation]
        One correlation specification per uncertainty source. Every measurement
        must give a magnitude for exactly these sources.
    nuisance_correlations : Mapping[str, NuisanceCorrelation]
        Named correlation coefficients that are parameters rather than constants.
    nuisance_values : Mapping[str, float]
        Current values of (some of) the nuisance correlations. Coefficients without
        a value keep the number from the static correlation matrix.

    The model is immutable; use `with_nuisance_values` to evaluate it at another
    point of the nuisance parameter space.
    """

    measurements: Sequence[AnyMeasurement]
    correlations: Mapping[str, CorrelationSpec]
    nuisance_correlations: Mapping[str, NuisanceCorrelation] = field(
        default_factory=dict
    )
    nuisance_values: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        measurements = tuple(self.measurements)
        if not measurements:
            raise ConfigurationError("a combination needs at least one measurement")
        index = entry_index(measurements)
        entries = tuple(e for m in measurements for e in m.entries())
        n = len(entries)

        sources = set(self.correlations)
        for m in measurements:
            given = set(m.uncertainties)
            if sources - given:
                raise ConfigurationError(
                    f"{m.name}: no magnitude for uncertainties {sorted(sources - given)}"
                )
            if given - sources:
                raise ConfigurationError(
                    f"{m.name}: no correlation defined for uncertainties "
                    f"{sorted(given - sources)}"
                )

        utypes = []
        for name, corr in self.correlations.items():
            if corr.matrix is not None:
                validate_correlation_matrix(corr.matrix, n, name)
            mags = np.array([e.uncertainties[name] for e in entries], dtype=float)
            mags.setflags(write=False)
            utypes.append(UncertaintyType(name, mags, corr.matrix, bool(corr.active)))

        claimed: dict[tuple[str, frozenset[int]], str] = {}
        for key, nc in self.nuisance_correlations.items():
            if nc.uncertainty not in sources:
                raise ConfigurationError(
                    f"nuisance correlation {key!r} refers to unknown uncertainty "
                    f"{nc.uncertainty!r}"
                )
            for entry in (nc.entry1, nc.entry2):
                if len(index.get(entry, [])) != 1:
                    raise ConfigurationError(
                        f"nuisance correlation {key!r}: {entry!r} does not name a "
                        "single measurement or bin"
                    )
            # (a, b) and (b, a) address the same coefficient
            pair = (nc.uncertainty, frozenset(index[nc.entry1] + index[nc.entry2]))
            if pair in claimed:
                raise ConfigurationError(
                    f"nuisance correlations {claimed[pair]!r} and {key!r} both set "
                    f"the {nc.uncertainty!r} correlation of {nc.entry1!r} and {nc.entry2!r}"
                )
            claimed[pair] = key

        object.__setattr__(self, "measurements", measurements)
        object.__setattr__(self, "correlations", MappingProxyType(dict(self.correlations)))
        object.__setattr__(
            self,
            "nuisance_correlations",
            MappingProxyType(dict(self.nuisance_correlations)),
        )
        object.__setattr__(
            self,
            "nuisance_values",
            MappingProxyType({k: float(v) for k, v in self.nuisance_values.items()}),
        )
        object.__setattr__(self, "_index", index)
        object.__setattr__(self, "_entries", entries)
        object.__setattr__(self, "_utypes", tuple(utypes))

        # fail early on unknown or out-of-range nuisance values
        nuisance_overrides(self, self.nuisance_values)

    @property
    def entries(self) -> tuple[MeasurementEntry, ...]:
        """All scalar entries (measurements and bins), active or not."""
        return self._entries  # type: ignore[attr-defined,no-any-return]

    @property
    def active_entries(self) -> list[MeasurementEntry]:
        return [e for e in self.entries if e.active]

    @property
    def uncertainty_types(self) -> tuple[UncertaintyType, ...]:
        return self._utypes  # type: ignore[attr-defined,no-any-return]

    @property
    def values(self) -> NDArray[np.float64]:
        """Measured values of the active entries."""
        return np.asarray([e.value for e in self.active_entries], dtype=float)

    @property
    def observables(self) -> list[Observable]:
        """Distinct observables of the active entries, in order of first appearance."""
        return list(dict.fromkeys(e.observable for e in self.active_entries))

    def entry_position(self, name: str) -> int:
        """Position of a measurement or bin among all entries."""
        positions = self._index.get(name)  # type: ignore[attr-defined]
        if positions is None or len(positions) != 1:
            raise ConfigurationError(f"{name!r} does not name a single measurement or bin")
        return int(positions[0])

    def all_observables_equal(self) -> bool:
        return len(self.observables) <= 1

    def with_nuisance_values(self, values: Mapping[str, float]) -> "CombinationModel":
        """Copy of the model with `values` merged into its nuisance values."""
        return replace(self, nuisance_values={**self.nuisance_values, **values})

    def total_covariance(
        self, nuisance: Optional[Mapping[str, float]] = None
    ) -> NDArray[np.float64]:
        return build_total_covariance(self, nuisance)
