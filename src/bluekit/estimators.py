from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, cast

import numpy as np
from numpy.typing import NDArray

from .covariance import build_total_covariance
from .errors import ConfigurationError, ObservableMismatchError, SingularMatrixError
from .model import CombinationModel
from .observables import Observable


@dataclass(frozen=True, eq=False)
class BlueResult:
    """Combination of measurements of one observable."""

    value: float
    unc: float
    weights: NDArray[np.float64]  # shape (n,), one per active entry, sums to 1


@dataclass(frozen=True, eq=False)
class MultiBlueResult:
    """Simultaneous combination of several observables."""

    values: NDArray[np.float64]  # shape (n_obs,)
    uncs: NDArray[np.float64]  # shape (n_obs,)
    weights: NDArray[np.float64]  # shape (n_obs, n)
    observables: list[Observable]


def _inv(M: NDArray[np.float64], what: str) -> NDArray[np.float64]:
    try:
        return cast(NDArray[np.float64], np.linalg.inv(M))
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(
            f"{what} is singular; deactivate a redundant measurement, "
            "uncertainty or correlation"
        ) from e


def _active_values(model: CombinationModel) -> NDArray[np.float64]:
    y = model.values
    if y.size == 0:
        raise ConfigurationError("the model has no active measurements")
    return y


def blue(
    model: CombinationModel, nuisance: Optional[Mapping[str, float]] = None
) -> BlueResult:
    """
    Best linear unbiased estimator for measurements of a single observable
    (Lyons, Gibaut, Clifford, NIM A270 (1988) 110):

        alpha = M^-1 u / (u^T M^-1 u),   value = alpha . y,   unc^2 = alpha^T M alpha

    Raises ObservableMismatchError if the active measurements do not all share
    the same observable, before the covariance is assembled.
    """
    observables = model.observables
    if len(observables) > 1:
        raise ObservableMismatchError(observables)
    y = _active_values(model)

    M = build_total_covariance(model, nuisance)
    Minv = _inv(M, "total covariance")
    u = np.ones(y.size)
    alpha = Minv @ u / (u @ Minv @ u)

    value = float(alpha @ y)
    unc = float(np.sqrt(alpha @ M @ alpha))
    return BlueResult(value=value, unc=unc, weights=alpha)


def blue_multi(
    model: CombinationModel, nuisance: Optional[Mapping[str, float]] = None
) -> MultiBlueResult:
    """
    BLUE for measurements of several observables at once.

    With the indicator matrix U (U[i, o] = 1 iff entry i measures observable o):

        W = (U^T M^-1 U)^-1 U^T M^-1,   values = W y

    and the uncertainty of observable o is sqrt(sum_ij W[o, i] M[i, j] W[o, j]).
    """
    y = _active_values(model)
    observables = model.observables
    column = {obs: j for j, obs in enumerate(observables)}

    U = np.zeros((y.size, len(observables)), dtype=float)
    for i, entry in enumerate(model.active_entries):
        U[i, column[entry.observable]] = 1.0

    M = build_total_covariance(model, nuisance)
    Minv = _inv(M, "total covariance")
    P = U.T @ Minv @ U
    W = _inv(P, "U^T M^-1 U") @ U.T @ Minv

    values = W @ y
    uncs = np.sqrt(np.einsum("oi,ij,oj->o", W, M, W))
    return MultiBlueResult(values=values, uncs=uncs, weights=W, observables=observables)
