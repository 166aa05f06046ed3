from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from .observables import Observable


class CombinationError(Exception):
    """Base class for errors raised while combining measurements."""


class ConfigurationError(CombinationError, ValueError):
    """Inconsistent model definition: sizes, names or correlation matrices."""


class ObservableMismatchError(CombinationError, ValueError):
    """Scalar BLUE requested for measurements of more than one observable."""

    def __init__(self, observables: Sequence["Observable"]) -> None:
        self.observables = list(observables)
        names = ", ".join(o.name for o in self.observables)
        super().__init__(
            "measurements have different observables "
            f"({names}); use blue_multi to combine them"
        )


class SingularMatrixError(CombinationError, np.linalg.LinAlgError):
    """A covariance (or BLUE normalisation) matrix could not be inverted."""


class NonPositiveDefiniteWarning(UserWarning):
    """Advisory: a covariance matrix is not positive definite."""
