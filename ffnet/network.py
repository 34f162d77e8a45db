"""
network.py
~~~~~~~~~~

Fully-connected feed-forward neural network trained with online
stochastic gradient descent.

A network is described by its layer widths (input first, output last),
one activation per weighted transition, and a single ``use_bias`` flag
shared by every layer.  Vectors are flat numpy arrays; a layer maps an
input vector ``a`` to ``f(a @ W + b)``.

Example:
    >>> net = Network([9, 9, 7], ['tanh', 'tanh'], use_bias=True, seed=42)
    >>> out = net.feedforward([0] * 9)
    >>> net.backpropagate([0] * 9, [1, 1, 1, 1, 1, 1, 0])
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from ffnet import codec
from ffnet.activations import Activation
from ffnet.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    TopologyMismatchError
)
from ffnet.layer import Layer

logger = logging.getLogger(__name__)

# Step size of every gradient-descent update
LEARNING_RATE = 0.01

# Initial weights and biases are uniform in [-WEIGHT_INIT_RANGE, WEIGHT_INIT_RANGE]
WEIGHT_INIT_RANGE = 0.5

ActivationLike = Union[Activation, str, int]


def _validate_sizes(sizes: Sequence[int]) -> List[int]:
    try:
        sizes = list(sizes)
    except TypeError:
        raise ConfigurationError(f"Layer sizes must be a sequence, got {sizes!r}")

    if len(sizes) < 2:
        raise ConfigurationError(
            f"A network needs at least an input and an output layer, got {sizes}"
        )
    for width in sizes:
        if isinstance(width, bool) or not isinstance(width, (int, np.integer)):
            raise ConfigurationError(f"Layer widths must be integers, got {width!r}")
        if width <= 0:
            raise ConfigurationError(f"Layer widths must be positive, got {sizes}")
    return [int(width) for width in sizes]


def _validate_activations(
    activations: Sequence[ActivationLike],
    layer_count: int
) -> List[Activation]:
    try:
        activations = list(activations)
    except TypeError:
        raise ConfigurationError(
            f"Activations must be a sequence, got {activations!r}"
        )

    # One entry per node layer is accepted too; the input layer's is unused.
    if len(activations) == layer_count:
        activations = activations[1:]
    if len(activations) != layer_count - 1:
        raise ConfigurationError(
            f"Expected {layer_count - 1} activations (one per transition), "
            f"got {len(activations)}"
        )

    try:
        return [Activation.parse(a) for a in activations]
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _validate_seed(seed: Optional[int]) -> int:
    if not seed:
        return int(np.random.SeedSequence().entropy)
    if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
        raise ConfigurationError(f"Seed must be a non-negative integer, got {seed!r}")
    return int(seed)


def _as_vector(values, width: int, what: str) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1 or vector.shape[0] != width:
        raise DimensionMismatchError(what, width, vector.shape)
    return vector


class Network:
    """
    Feed-forward network owning its layers exclusively.

    Not thread-safe: calls against one instance must be serialized by the
    caller.  Separate instances share nothing.
    """

    def __init__(
        self,
        sizes: Sequence[int],
        activations: Sequence[ActivationLike],
        use_bias: bool = False,
        seed: Optional[int] = 0
    ):
        """
        Build a network with randomly initialised parameters.

        Args:
            sizes: Layer widths, input first and output last (at least two)
            activations: One activation per transition (``len(sizes) - 1``),
                or one per layer (``len(sizes)``) with the first ignored
            use_bias: Whether every layer carries a bias vector
            seed: Seed for weight initialisation; ``0`` or ``None`` draws
                fresh entropy so runs are not reproducible

        Raises:
            ConfigurationError: If the topology is inconsistent
        """
        self.sizes = _validate_sizes(sizes)
        activations = _validate_activations(activations, len(self.sizes))
        self.use_bias = bool(use_bias)
        self.seed = _validate_seed(seed)

        rng = np.random.default_rng(self.seed)
        self.layers = [
            Layer.random(n_in, n_out, activation, self.use_bias, rng, WEIGHT_INIT_RANGE)
            for n_in, n_out, activation in zip(self.sizes[:-1], self.sizes[1:], activations)
        ]

        logger.debug(
            f"Created network {self.sizes} activations="
            f"{[a.name for a in activations]} use_bias={self.use_bias} seed={self.seed}"
        )

    @property
    def activations(self) -> List[Activation]:
        return [layer.activation for layer in self.layers]

    @property
    def weights(self) -> List[np.ndarray]:
        return [layer.weights for layer in self.layers]

    @property
    def biases(self) -> List[np.ndarray]:
        return [layer.bias for layer in self.layers if layer.bias is not None]

    @property
    def input_width(self) -> int:
        return self.sizes[0]

    @property
    def output_width(self) -> int:
        return self.sizes[-1]

    def feedforward(self, inputs) -> np.ndarray:
        """
        Return the network's output for ``inputs``.

        Raises:
            DimensionMismatchError: If ``inputs`` is not a flat vector of
                the input width
        """
        a = _as_vector(inputs, self.input_width, 'input')
        for layer in self.layers:
            _, a = layer.forward(a)
        return a

    def backpropagate(self, inputs, desired) -> float:
        """
        Perform one gradient-descent step on a single sample.

        Deltas for every layer are computed against the current weights
        before any layer is updated.

        Args:
            inputs: Input vector of the network's input width
            desired: Target vector of the network's output width

        Returns:
            float: Half the squared error of the sample before the update

        Raises:
            DimensionMismatchError: If either vector has the wrong shape;
                the network is left untouched
        """
        x = _as_vector(inputs, self.input_width, 'input')
        y = _as_vector(desired, self.output_width, 'desired output')

        layer_inputs = []
        pre_activations = []
        post_activations = []
        a = x
        for layer in self.layers:
            layer_inputs.append(a)
            z, a = layer.forward(a)
            pre_activations.append(z)
            post_activations.append(a)

        error = y - a
        delta = error * self.layers[-1].activation.derivative(
            pre_activations[-1], post_activations[-1]
        )
        deltas = [delta]
        for i in range(len(self.layers) - 2, -1, -1):
            layer = self.layers[i]
            delta = (delta @ self.layers[i + 1].weights.T) * layer.activation.derivative(
                pre_activations[i], post_activations[i]
            )
            deltas.append(delta)
        deltas.reverse()

        for layer, layer_input, delta in zip(self.layers, layer_inputs, deltas):
            layer.update(layer_input, delta, LEARNING_RATE)

        return 0.5 * float(np.dot(error, error))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Serialize topology and parameters with :mod:`ffnet.codec`."""
        return codec.encode(self)

    def save(self, path: str) -> None:
        """Write the network to ``path`` in the binary codec format."""
        codec.save(self, path)

    def load(self, path: str) -> None:
        """
        Replace this network's parameters with those stored at ``path``.

        Raises:
            OSError: If the file cannot be read
            CorruptFileError: If the file is truncated or malformed
            TopologyMismatchError: If the stored topology differs
        """
        self.restore(codec.read(path))
        logger.info(f"Loaded parameters for network {self.sizes} from {path}")

    def load_bytes(self, data: bytes) -> None:
        """Like :meth:`load`, reading from an in-memory payload."""
        self.restore(codec.decode(data))

    def restore(self, stored: 'codec.StoredNetwork') -> None:
        """Assign decoded parameters after checking they fit this topology."""
        if (
            stored.sizes != self.sizes
            or stored.activations != self.activations
            or stored.use_bias != self.use_bias
        ):
            raise TopologyMismatchError(
                f"Stored network {stored.sizes} "
                f"{[a.name for a in stored.activations]} use_bias={stored.use_bias} "
                f"does not match {self.sizes} "
                f"{[a.name for a in self.activations]} use_bias={self.use_bias}"
            )

        for layer, weights, bias in zip(self.layers, stored.weights, stored.biases):
            layer.weights = weights.copy()
            layer.bias = None if bias is None else bias.copy()

    @classmethod
    def from_stored(cls, stored: 'codec.StoredNetwork') -> 'Network':
        """Build a new network directly from decoded codec contents."""
        network = cls.__new__(cls)
        network.sizes = list(stored.sizes)
        network.use_bias = stored.use_bias
        network.seed = None
        network.layers = [
            Layer(
                weights.copy(),
                activation,
                None if bias is None else bias.copy()
            )
            for weights, bias, activation
            in zip(stored.weights, stored.biases, stored.activations)
        ]
        return network

    @classmethod
    def from_file(cls, path: str) -> 'Network':
        """Build a new network from a file written by :meth:`save`."""
        network = cls.from_stored(codec.read(path))
        logger.info(f"Loaded network {network.sizes} from {path}")
        return network

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Network':
        """Build a new network from bytes produced by :meth:`to_bytes`."""
        return cls.from_stored(codec.decode(data))

    def __repr__(self) -> str:
        return (
            f"Network(sizes={self.sizes}, "
            f"activations={[a.name for a in self.activations]}, "
            f"use_bias={self.use_bias})"
        )
