from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import OptimizeResult, minimize, minimize_scalar

from .likelihood import CombinationLikelihood
from .observables import Params

logger = logging.getLogger(__name__)

Bounds = Mapping[str, Tuple[float, float]]


def _fit_one(
    objective: Callable[[np.ndarray], float], x0: float, bounds: Optional[Tuple[float, float]]
) -> OptimizeResult:
    if bounds is not None:
        return minimize_scalar(objective, bounds=bounds, method="bounded")
    return minimize_scalar(objective, bracket=(x0, x0 + 1.0))


def _fit_many(
    objective: Callable[[np.ndarray], float],
    x0: np.ndarray,
    bounds: Optional[Sequence[Tuple[float, float]]],
) -> OptimizeResult:
    res = minimize(objective, x0, bounds=bounds, method="L-BFGS-B")
    if res.success and not np.allclose(res.x, x0):
        return res
    # stalls at the start on flat or out-of-bounds (inf) regions
    logger.debug("fit_mle: L-BFGS-B stopped at the start (%s), trying Powell", res.message)
    return minimize(objective, x0, bounds=bounds, method="Powell")


def fit_mle(
    like: CombinationLikelihood,
    start: Params,
    bounds: Optional[Bounds] = None,
    nuisance: Optional[Mapping[str, float]] = None,
) -> tuple[dict[str, float], float]:
    """
    Fit the model parameters to the combined measurements.

    Returns the parameter values minimising ``like.nll`` and the minimum.
    Nuisance correlations are not fitted: they stay at `nuisance`, or at the
    values bound to the model, for the whole minimisation. Parameters are those
    named in `start`; `bounds` may restrict any of them.

    Raises RuntimeError if the optimiser does not converge.
    """
    names = list(start)

    def objective(x: np.ndarray) -> float:
        return like.nll(dict(zip(names, map(float, np.atleast_1d(x)))), nuisance)

    if len(names) == 1:
        res = _fit_one(objective, float(start[names[0]]), (bounds or {}).get(names[0]))
    else:
        opt_bounds = None
        if bounds:
            opt_bounds = [bounds.get(n, (-np.inf, np.inf)) for n in names]
        res = _fit_many(objective, np.asarray([start[n] for n in names], dtype=float), opt_bounds)

    if not res.success:
        raise RuntimeError(f"fit of {names} did not converge: {res.message}")
    best = dict(zip(names, map(float, np.atleast_1d(res.x))))
    return best, float(res.fun)
