"""
ffnet package
~~~~~~~~~~~~~

Small fully-connected neural network engine.
Contains the network and layer implementation, activation functions,
the binary persistence codec, a caller-level training loop, the
seven-segment counting curriculum, model storage and the API server.
"""

from ffnet.activations import Activation
from ffnet.exceptions import (
    NetworkError,
    ConfigurationError,
    DimensionMismatchError,
    PersistenceError,
    CorruptFileError,
    TopologyMismatchError
)
from ffnet.network import Network, LEARNING_RATE, WEIGHT_INIT_RANGE

__version__ = "1.0.0"

__all__ = [
    'Activation',
    'Network',
    'LEARNING_RATE',
    'WEIGHT_INIT_RANGE',
    'NetworkError',
    'ConfigurationError',
    'DimensionMismatchError',
    'PersistenceError',
    'CorruptFileError',
    'TopologyMismatchError',
]
