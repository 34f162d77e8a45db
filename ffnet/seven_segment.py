"""
seven_segment.py
~~~~~~~~~~~~~~~~

Counting curriculum: map a vector of bits to the seven-segment pattern of
the number of bits that are set.

Segments are ordered ``a`` to ``g``::

       -a-
      f   b
       -g-
      e   c
       -d-

Every permutation of ``width`` bits is a sample, so the network has to
learn to count regardless of which bits are on.
"""

from typing import List, Tuple

import numpy as np

from ffnet.activations import Activation
from ffnet.network import Network

SEGMENTS = 'abcdefg'

# Segments to light for digits 0-9, in a..g order
SEGMENT_PATTERNS = (
    (1, 1, 1, 1, 1, 1, 0),  # 0
    (0, 1, 1, 0, 0, 0, 0),  # 1
    (1, 1, 0, 1, 1, 0, 1),  # 2
    (1, 1, 1, 1, 0, 0, 1),  # 3
    (0, 1, 1, 0, 0, 1, 1),  # 4
    (1, 0, 1, 1, 0, 1, 1),  # 5
    (1, 0, 1, 1, 1, 1, 1),  # 6
    (1, 1, 1, 0, 0, 0, 0),  # 7
    (1, 1, 1, 1, 1, 1, 1),  # 8
    (1, 1, 1, 1, 0, 1, 1),  # 9
)

INPUT_WIDTH = 9
OUTPUT_WIDTH = len(SEGMENTS)

# Hidden layers used by the demo network
HIDDEN_LAYERS = (9, 9, 9, 9)

# Output above this value lights a segment
ON_THRESHOLD = 0.8


def binary_amount(value: int, width: int = INPUT_WIDTH) -> Tuple[np.ndarray, int]:
    """
    Return ``value`` as a most-significant-bit-first vector and its bit count.

    Raises:
        ValueError: If ``value`` does not fit in ``width`` bits
    """
    if not 0 <= value < (1 << width):
        raise ValueError(f"{value} does not fit in {width} bits")
    bits = np.array(
        [(value >> shift) & 1 for shift in range(width - 1, -1, -1)],
        dtype=np.float64
    )
    return bits, int(bits.sum())


def training_samples(width: int = INPUT_WIDTH) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Build one (bits, segment pattern) sample for every ``width``-bit value."""
    if not 1 <= width <= len(SEGMENT_PATTERNS) - 1:
        raise ValueError(
            f"width must be between 1 and {len(SEGMENT_PATTERNS) - 1}, got {width}"
        )
    samples = []
    for value in range(1 << width):
        bits, count = binary_amount(value, width)
        samples.append((bits, np.array(SEGMENT_PATTERNS[count], dtype=np.float64)))
    return samples


def decode_segments(outputs, threshold: float = ON_THRESHOLD) -> List[Tuple[str, bool, float]]:
    """Pair every output with its segment name and on/off state."""
    outputs = np.asarray(outputs, dtype=np.float64)
    if outputs.shape != (OUTPUT_WIDTH,):
        raise ValueError(f"Expected {OUTPUT_WIDTH} outputs, got shape {outputs.shape}")
    return [
        (segment, bool(value > threshold), float(value))
        for segment, value in zip(SEGMENTS, outputs)
    ]


def lit_segments(outputs, threshold: float = ON_THRESHOLD) -> str:
    """Return the names of the lit segments, e.g. ``"bc"`` for a one."""
    return ''.join(segment for segment, on, _ in decode_segments(outputs, threshold) if on)


def digit_for(outputs) -> int:
    """
    Return the digit whose pattern matches the rounded outputs, or -1.
    """
    rounded = tuple(int(v) for v in np.rint(np.asarray(outputs, dtype=np.float64)))
    try:
        return SEGMENT_PATTERNS.index(rounded)
    except ValueError:
        return -1


def default_network(seed: int = 0) -> Network:
    """
    Build the demo network: 9 inputs, four hidden layers of 9, 7 outputs.

    TanH is used everywhere.  Bias is enabled since with no bias an all-zero
    input always produces an all-zero output, which cannot light the
    segments of a zero.
    """
    sizes = [INPUT_WIDTH, *HIDDEN_LAYERS, OUTPUT_WIDTH]
    return Network(
        sizes,
        [Activation.TANH] * (len(sizes) - 1),
        use_bias=True,
        seed=seed
    )
