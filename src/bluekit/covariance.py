from __future__ import annotations

import logging
import warnings
from typing import Mapping, Optional, TYPE_CHECKING, cast

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import ConfigurationError, NonPositiveDefiniteWarning

if TYPE_CHECKING:
    from .model import CombinationModel

logger = logging.getLogger(__name__)

_TOL = 1e-10


def is_positive_definite(cov: ArrayLike) -> bool:
    """True for a symmetric matrix with a Cholesky decomposition."""
    M = np.asarray(cov, dtype=float)
    if M.ndim != 2 or M.shape[0] != M.shape[1] or not np.allclose(M, M.T):
        return False
    try:
        np.linalg.cholesky(M)
    except np.linalg.LinAlgError:
        return False
    return True


def validate_correlation_matrix(cor: ArrayLike, n: int, name: str = "") -> None:
    """
    Raise ConfigurationError unless `cor` is an (n, n) symmetric matrix with unit
    diagonal and entries in [-1, 1].
    """
    label = f"correlation matrix {name!r}" if name else "correlation matrix"
    C = np.asarray(cor, dtype=float)
    if C.shape != (n, n):
        raise ConfigurationError(f"{label} has shape {C.shape}, expected {(n, n)}")
    if not np.all(np.isfinite(C)):
        raise ConfigurationError(f"{label} contains non-finite values")
    if not np.allclose(C, C.T, rtol=0.0, atol=_TOL):
        raise ConfigurationError(f"{label} is not symmetric")
    if not np.allclose(np.diag(C), 1.0, rtol=0.0, atol=_TOL):
        raise ConfigurationError(f"{label} must have a unit diagonal")
    if np.any(np.abs(C) > 1.0 + _TOL):
        raise ConfigurationError(f"{label} has entries outside [-1, 1]")


def convert_covariance(
    cov: ArrayLike,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Split a covariance matrix into a correlation matrix and uncertainties.

        unc[i]    = sqrt(cov[i, i])
        cor[i, j] = cov[i, j] / (unc[i] * unc[j])

    A matrix that is not positive definite only triggers a
    NonPositiveDefiniteWarning; the conversion is carried out regardless.
    An entry with zero variance has no defined correlation: its off-diagonal
    row and column come out as nan.

    Example
    -------
    >>> cor, unc = convert_covariance([[4.0, 1.0], [1.0, 9.0]])
    """
    C = np.asarray(cov, dtype=float)
    if C.ndim != 2 or C.shape[0] != C.shape[1]:
        raise ConfigurationError(f"covariance must be a square matrix, got shape {C.shape}")

    if not is_positive_definite(C):
        warnings.warn(
            f"The covariance matrix {C.tolist()} is not positive definite!",
            NonPositiveDefiniteWarning,
            stacklevel=2,
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        unc = np.sqrt(np.diag(C))
        cor = C / np.outer(unc, unc)
    np.fill_diagonal(cor, 1.0)
    return cast(NDArray[np.float64], cor), cast(NDArray[np.float64], unc)


cov_to_cor = convert_covariance


def nuisance_overrides(
    model: "CombinationModel", values: Mapping[str, float]
) -> dict[str, list[tuple[int, int, float]]]:
    """Group the nuisance values by uncertainty source as (i, j, rho) triples."""
    unknown = set(values) - set(model.nuisance_correlations)
    if unknown:
        raise ConfigurationError(
            f"values given for unknown nuisance correlations: {sorted(unknown)}"
        )

    overrides: dict[str, list[tuple[int, int, float]]] = {}
    for key, nc in model.nuisance_correlations.items():
        if key not in values:
            continue
        rho = float(values[key])
        if not -1.0 <= rho <= 1.0:
            raise ConfigurationError(
                f"nuisance correlation {key!r} = {rho} is outside [-1, 1]"
            )
        i = model.entry_position(nc.entry1)
        j = model.entry_position(nc.entry2)
        overrides.setdefault(nc.uncertainty, []).append((i, j, rho))
    return overrides


def build_total_covariance(
    model: "CombinationModel", nuisance: Optional[Mapping[str, float]] = None
) -> NDArray[np.float64]:
    """
    Total covariance of the active entries of `model`:

        M = sum_t active(t) * outer(sigma_t, sigma_t) * C_t

    with the nuisance correlation values (explicit `nuisance`, on top of the
    model's `nuisance_values`) substituted into C_t and its mirror entry. The
    active entries are read from the model's activation flags on every call.

    Nothing is cached and the model is never modified, so concurrent calls with
    different nuisance values are safe.
    """
    entries = model.entries
    n_all = len(entries)
    active = np.flatnonzero([e.active for e in entries])
    if active.size < n_all:
        logger.debug("covariance: %d of %d entries inactive", n_all - active.size, n_all)

    values = dict(model.nuisance_values)
    if nuisance:
        values.update(nuisance)
    overrides = nuisance_overrides(model, values)

    M = np.zeros((active.size, active.size), dtype=float)
    for utype in model.uncertainty_types:
        if not utype.active:
            logger.debug("covariance: skipping inactive uncertainty %r", utype.name)
            continue

        sigma = np.asarray(utype.magnitudes, dtype=float)
        if sigma.shape != (n_all,):
            raise ConfigurationError(
                f"uncertainty {utype.name!r} has {sigma.size} magnitudes "
                f"for {n_all} entries"
            )
        s = sigma[active]
        pairs = overrides.get(utype.name, [])

        if utype.correlation is None and not pairs:
            M[np.diag_indices_from(M)] += s * s
            continue

        if utype.correlation is None:
            C = np.eye(n_all, dtype=float)
        else:
            C = np.array(utype.correlation, dtype=float)
            if C.shape != (n_all, n_all):
                raise ConfigurationError(
                    f"correlation of {utype.name!r} has shape {C.shape}, "
                    f"expected {(n_all, n_all)}"
                )
        for i, j, rho in pairs:
            logger.debug(
                "covariance: %r correlation (%d, %d) set to %g", utype.name, i, j, rho
            )
            C[i, j] = C[j, i] = rho

        M += np.outer(s, s) * C[np.ix_(active, active)]

    return cast(NDArray[np.float64], M)
