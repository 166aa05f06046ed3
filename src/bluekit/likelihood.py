from __future__ import annotations

from typing import Mapping, Optional, cast

import numpy as np
from numpy.typing import NDArray

from .errors import SingularMatrixError
from .model import CombinationModel
from .observables import Params


class CombinationLikelihood:
    """
    -2 log L for the active entries of a combination model:

        nll(params) = (y - mu(params))^T M^{-1} (y - mu(params)) + const

    where mu are the observable predictions and M the total covariance at the
    given nuisance correlation values. The additive constant is omitted.
    Predictions outside an observable's [min, max] give nll = +inf.
    """

    def __init__(self, model: CombinationModel) -> None:
        self.model = model
        entries = model.active_entries
        self.observables = [e.observable for e in entries]
        self.y: NDArray[np.float64] = model.values
        # the covariance only changes with the nuisance values
        self._Minv = self._inverse(None)

    def _inverse(self, nuisance: Optional[Mapping[str, float]]) -> NDArray[np.float64]:
        try:
            return cast(
                NDArray[np.float64],
                np.linalg.inv(self.model.total_covariance(nuisance)),
            )
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError("total covariance is singular") from e

    def predict_vector(self, params: Params) -> NDArray[np.float64]:
        """Return prediction vector mu(params) aligned to the active entries."""
        return np.asarray([o.predict(params) for o in self.observables], dtype=float)

    def nll(self, params: Params, nuisance: Optional[Mapping[str, float]] = None) -> float:
        mu = self.predict_vector(params)
        if not all(o.allows(m) for o, m in zip(self.observables, mu)):
            return float(np.inf)
        Minv = self._Minv if not nuisance else self._inverse(nuisance)
        r = self.y - mu
        return float(r.T @ Minv @ r)
