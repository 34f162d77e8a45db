"""
layer.py
~~~~~~~~

A single fully-connected layer: weights, optional bias and activation.
"""

from typing import Optional, Tuple

import numpy as np

from ffnet.activations import Activation


class Layer:
    """
    Fully-connected transition between two widths.

    ``weights`` has shape ``(input_width, output_width)`` so that a flat
    input vector maps to the layer's output with ``inputs @ weights``.
    ``bias`` is ``None`` when the owning network was built without bias.
    """

    def __init__(
        self,
        weights: np.ndarray,
        activation: Activation,
        bias: Optional[np.ndarray] = None
    ):
        self.weights = weights
        self.activation = activation
        self.bias = bias

    @classmethod
    def random(
        cls,
        input_width: int,
        output_width: int,
        activation: Activation,
        use_bias: bool,
        rng: np.random.Generator,
        init_range: float
    ) -> 'Layer':
        """Create a layer with parameters drawn uniformly from [-init_range, init_range]."""
        weights = rng.uniform(-init_range, init_range, size=(input_width, output_width))
        bias = None
        if use_bias:
            bias = rng.uniform(-init_range, init_range, size=output_width)
        return cls(weights, activation, bias)

    @property
    def input_width(self) -> int:
        return self.weights.shape[0]

    @property
    def output_width(self) -> int:
        return self.weights.shape[1]

    @property
    def use_bias(self) -> bool:
        return self.bias is not None

    def forward(self, inputs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Apply the layer to a flat input vector.

        Returns:
            tuple: (pre-activation, post-activation) vectors
        """
        raw = inputs @ self.weights
        if self.bias is not None:
            raw = raw + self.bias
        return raw, self.activation.apply(raw)

    def update(self, inputs: np.ndarray, delta: np.ndarray, learning_rate: float) -> None:
        """Move the parameters along ``delta`` for the given layer input."""
        self.weights += learning_rate * np.outer(inputs, delta)
        if self.bias is not None:
            self.bias += learning_rate * delta

    def __repr__(self) -> str:
        return (
            f"Layer({self.input_width}->{self.output_width}, "
            f"{self.activation.name}, bias={self.use_bias})"
        )
