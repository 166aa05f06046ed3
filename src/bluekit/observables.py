from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import numpy as np

from .errors import ConfigurationError

Params = Mapping[str, float]
PredictionFunction = Callable[[Params], float]


@dataclass(frozen=True, eq=False)
class Observable:
    """
    A physical quantity defined by its prediction function.

    The function takes a parameter dict (name -> value) and returns a scalar prediction.
    Identity is carried by the function object: two observables are equal iff they
    wrap the very same callable, whatever their names. `min`/`max` bound the
    physically allowed prediction.
    """

    name: str
    predict: PredictionFunction
    min: float = -np.inf
    max: float = np.inf

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Observable):
            return NotImplemented
        return self.predict is other.predict

    def __hash__(self) -> int:
        return hash(id(self.predict))

    def allows(self, prediction: float) -> bool:
        return self.min <= prediction <= self.max


def as_observable(obs: Observable | PredictionFunction, name: str) -> Observable:
    """Wrap a bare prediction function; Observables pass through unchanged."""
    if isinstance(obs, Observable):
        return obs
    if not callable(obs):
        raise ConfigurationError(
            f"observable for {name!r} must be an Observable or a callable"
        )
    func_name = getattr(obs, "__name__", "<lambda>")
    return Observable(name if func_name == "<lambda>" else func_name, obs)


def make_bin_observables(
    name: str,
    func: Callable[[Params, Any], float],
    coefficients: Sequence[Any],
    **bounds: float,
) -> list[Observable]:
    """
    Build one Observable per bin of a distribution from a shared function.

    Bin i (1-based in the name) predicts ``func(params, coefficients[i - 1])``.
    Extra keyword arguments (``min``, ``max``) are applied to every bin.
    """

    def bin_prediction(c: Any) -> PredictionFunction:
        def predict(params: Params) -> float:
            return func(params, c)

        return predict

    return [
        Observable(f"{name}_bin{i}", bin_prediction(c), **bounds)
        for i, c in enumerate(coefficients, start=1)
    ]
