"""
activations.py
~~~~~~~~~~~~~~

Activation functions and their derivatives.

Every member of :class:`Activation` carries a stable integer tag which is
what the persistence codec writes to disk, so new functions must be
appended with a fresh value rather than renumbering existing ones.
"""

from enum import IntEnum
from typing import Tuple, Union

import numpy as np

LEAKY_RELU_SLOPE = 0.01


class Activation(IntEnum):
    """Element-wise activation applied to a layer's weighted sum."""

    IDENTITY = 0
    SIGMOID = 1
    TANH = 2
    RELU = 3
    LEAKY_RELU = 4

    @classmethod
    def parse(cls, value: Union['Activation', str, int]) -> 'Activation':
        """
        Resolve an activation from a member, its name or its integer tag.

        Args:
            value: Activation member, name such as ``"tanh"``, or tag

        Returns:
            Activation: The matching member

        Raises:
            ValueError: If no activation matches
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace('-', '_')
            if key in cls.__members__:
                return cls[key]
            raise ValueError(f"Unknown activation function: {value!r}")
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            return cls(int(value))
        raise ValueError(f"Unknown activation function: {value!r}")

    @property
    def output_range(self) -> Tuple[float, float]:
        """Closed interval containing every value the function can produce."""
        return _RANGES[self]

    def apply(self, x: np.ndarray) -> np.ndarray:
        """Compute f(x) element-wise."""
        if self is Activation.IDENTITY:
            return np.array(x, dtype=np.float64, copy=True)
        if self is Activation.SIGMOID:
            return 1.0 / (1.0 + np.exp(-np.clip(x, -500, 500)))
        if self is Activation.TANH:
            return np.tanh(x)
        if self is Activation.RELU:
            return np.maximum(x, 0.0)
        if self is Activation.LEAKY_RELU:
            return np.where(x > 0, x, LEAKY_RELU_SLOPE * x)
        raise NotImplementedError(self)

    def derivative(self, x: np.ndarray, fx: np.ndarray) -> np.ndarray:
        """
        Compute f'(x) element-wise.

        Both the pre-activation ``x`` and the output ``fx = f(x)`` are
        passed in; sigmoid and tanh use the output form, the rectifiers
        use the sign of ``x``.

        Args:
            x: Pre-activation values
            fx: Values of f(x), as returned by :meth:`apply`

        Returns:
            np.ndarray: The derivative, same shape as ``x``
        """
        if self is Activation.IDENTITY:
            return np.ones_like(x, dtype=np.float64)
        if self is Activation.SIGMOID:
            return fx * (1.0 - fx)
        if self is Activation.TANH:
            return 1.0 - fx * fx
        if self is Activation.RELU:
            return (x > 0).astype(np.float64)
        if self is Activation.LEAKY_RELU:
            return np.where(x > 0, 1.0, LEAKY_RELU_SLOPE)
        raise NotImplementedError(self)


_RANGES = {
    Activation.IDENTITY: (-np.inf, np.inf),
    Activation.SIGMOID: (0.0, 1.0),
    Activation.TANH: (-1.0, 1.0),
    Activation.RELU: (0.0, np.inf),
    Activation.LEAKY_RELU: (-np.inf, np.inf),
}
