"""
codec.py
~~~~~~~~

Binary persistence format for networks.

Layout (little-endian)::

    magic            4 bytes   b"FFNT"
    version          uint8     1
    layer count L    uint32    2 <= L <= MAX_LAYERS
    widths           L x uint32, each 1 <= w <= MAX_WIDTH
    activations      (L-1) x uint8, Activation tags
    use_bias         uint8     0 or 1
    parameters       float64 values; for each layer the weight matrix
                     (input_width x output_width, row-major) followed by
                     the bias vector when use_bias is set

The payload must end exactly after the last parameter.
"""

import os
import struct
import logging
from typing import List, NamedTuple, Optional

import numpy as np

from ffnet.activations import Activation
from ffnet.exceptions import CorruptFileError

logger = logging.getLogger(__name__)

MAGIC = b'FFNT'
VERSION = 1
MAX_LAYERS = 1024
MAX_WIDTH = 1 << 20

_FLOAT = np.dtype('<f8')


class StoredNetwork(NamedTuple):
    """Topology and parameters decoded from a payload."""
    sizes: List[int]
    activations: List[Activation]
    use_bias: bool
    weights: List[np.ndarray]
    biases: List[Optional[np.ndarray]]


class _Reader:
    """Sequential reader that reports truncation as CorruptFileError."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, size: int, what: str) -> bytes:
        if self.remaining < size:
            raise CorruptFileError(
                f"Unexpected end of data reading {what}: "
                f"needed {size} bytes, {self.remaining} left"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def unpack(self, fmt: str, what: str) -> tuple:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt), what))

    def floats(self, count: int, what: str) -> np.ndarray:
        raw = self.take(count * _FLOAT.itemsize, what)
        return np.frombuffer(raw, dtype=_FLOAT).astype(np.float64)


def encode(network) -> bytes:
    """
    Serialize a network's topology and parameters.

    Args:
        network: Object exposing ``sizes``, ``activations``, ``use_bias``
            and ``layers`` (as :class:`ffnet.network.Network` does)

    Returns:
        bytes: The encoded payload
    """
    sizes = network.sizes
    parts = [
        MAGIC,
        struct.pack('<BI', VERSION, len(sizes)),
        struct.pack(f'<{len(sizes)}I', *sizes),
        struct.pack(f'<{len(sizes) - 1}B', *[int(a) for a in network.activations]),
        struct.pack('<B', 1 if network.use_bias else 0),
    ]
    for layer in network.layers:
        parts.append(np.ascontiguousarray(layer.weights, dtype=_FLOAT).tobytes())
        if network.use_bias:
            parts.append(np.ascontiguousarray(layer.bias, dtype=_FLOAT).tobytes())
    return b''.join(parts)


def decode(data: bytes) -> StoredNetwork:
    """
    Parse a payload produced by :func:`encode`.

    Raises:
        CorruptFileError: If the payload is truncated, has trailing bytes,
            or any header field is out of range
    """
    reader = _Reader(bytes(data))

    magic = reader.take(len(MAGIC), 'magic')
    if magic != MAGIC:
        raise CorruptFileError(f"Bad magic {magic!r}, expected {MAGIC!r}")

    version, = reader.unpack('<B', 'version')
    if version != VERSION:
        raise CorruptFileError(f"Unsupported format version {version}")

    count, = reader.unpack('<I', 'layer count')
    if not 2 <= count <= MAX_LAYERS:
        raise CorruptFileError(f"Layer count {count} out of range 2..{MAX_LAYERS}")

    sizes = list(reader.unpack(f'<{count}I', 'layer widths'))
    for width in sizes:
        if not 1 <= width <= MAX_WIDTH:
            raise CorruptFileError(f"Layer width {width} out of range 1..{MAX_WIDTH}")

    tags = reader.unpack(f'<{count - 1}B', 'activation tags')
    try:
        activations = [Activation(tag) for tag in tags]
    except ValueError as e:
        raise CorruptFileError(f"Unknown activation tag: {e}") from e

    flag, = reader.unpack('<B', 'bias flag')
    if flag not in (0, 1):
        raise CorruptFileError(f"Bias flag must be 0 or 1, got {flag}")
    use_bias = bool(flag)

    expected = sum(
        n_in * n_out + (n_out if use_bias else 0)
        for n_in, n_out in zip(sizes[:-1], sizes[1:])
    ) * _FLOAT.itemsize
    if reader.remaining < expected:
        raise CorruptFileError(
            f"Unexpected end of data: {expected} parameter bytes expected, "
            f"{reader.remaining} present"
        )
    if reader.remaining > expected:
        raise CorruptFileError(
            f"{reader.remaining - expected} trailing bytes after parameters"
        )

    weights = []
    biases = []
    for i, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
        weights.append(reader.floats(n_in * n_out, f'layer {i} weights').reshape(n_in, n_out))
        biases.append(reader.floats(n_out, f'layer {i} bias') if use_bias else None)

    return StoredNetwork(sizes, activations, use_bias, weights, biases)


def save(network, path: str) -> None:
    """
    Write ``network`` to ``path``, creating the parent directory if needed.

    Raises:
        OSError: On filesystem failures
    """
    data = encode(network)
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)
    with open(path, 'wb') as f:
        f.write(data)
    logger.info(f"Saved network {network.sizes} to {path} ({len(data)} bytes)")


def read(path: str) -> StoredNetwork:
    """
    Read and decode a network file.

    Raises:
        OSError: If the file cannot be opened or read
        CorruptFileError: If its contents are malformed
    """
    with open(path, 'rb') as f:
        data = f.read()
    return decode(data)


def load(network, path: str) -> None:
    """Replace the parameters of ``network`` with those stored at ``path``."""
    network.load(path)
