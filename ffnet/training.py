"""
training.py
~~~~~~~~~~~

Caller-level training loop for :class:`ffnet.network.Network`.

Each epoch presents every sample once through ``backpropagate``.  After a
warm-up period the loop periodically checks whether every output, rounded
to the nearest integer, matches its target, and stops as soon as it does.
Reaching the epoch ceiling without converging is a normal outcome
reported through :class:`TrainingResult`; a poor random initialisation is
fixed by rebuilding the network with a new seed
(see :func:`train_with_restarts`).
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from ffnet import config
from ffnet.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)

Sample = Tuple[Sequence[float], Sequence[float]]


@dataclass
class TrainingConfig:
    """Epoch limits for :func:`train`."""
    max_epochs: int = config.DEFAULT_MAX_EPOCHS
    warmup_epochs: int = config.DEFAULT_WARMUP_EPOCHS
    evaluation_interval: int = config.DEFAULT_EVALUATION_INTERVAL
    progress_interval: int = config.DEFAULT_PROGRESS_INTERVAL

    def __post_init__(self):
        if self.max_epochs < 1:
            raise ValueError(f"max_epochs must be positive, got {self.max_epochs}")
        if self.warmup_epochs < 0:
            raise ValueError(
                f"warmup_epochs must be non-negative, got {self.warmup_epochs}"
            )
        if self.evaluation_interval < 1:
            raise ValueError(
                f"evaluation_interval must be positive, got {self.evaluation_interval}"
            )
        if self.progress_interval < 1:
            raise ValueError(
                f"progress_interval must be positive, got {self.progress_interval}"
            )

    @classmethod
    def from_env(cls) -> 'TrainingConfig':
        """Build a config from the ``FFNET_*`` environment variables."""
        return cls(**config.training_settings())


@dataclass
class TrainingResult:
    """Outcome of a training run."""
    converged: bool
    epochs: int
    correct: int
    total: int
    error: float
    elapsed_time: float
    seed: Optional[int] = None
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'converged': self.converged,
            'epochs': self.epochs,
            'correct': self.correct,
            'total': self.total,
            'error': self.error,
            'elapsed_time': self.elapsed_time,
            'seed': self.seed,
            'attempts': self.attempts,
        }


def is_trained(output, desired) -> bool:
    """
    Check whether every rounded output equals its desired value.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    output = np.asarray(output, dtype=np.float64)
    desired = np.asarray(desired, dtype=np.float64)
    if output.shape != desired.shape:
        raise DimensionMismatchError('desired output', output.size, desired.shape)
    return bool(np.array_equal(np.rint(output), np.rint(desired)))


def evaluate(network, samples: Iterable[Sample]) -> int:
    """Return the number of samples whose rounded outputs all match."""
    return sum(
        1 for inputs, desired in samples
        if is_trained(network.feedforward(inputs), desired)
    )


def train(
    network,
    samples: Iterable[Sample],
    training_config: Optional[TrainingConfig] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None
) -> TrainingResult:
    """
    Train ``network`` on ``samples`` until it converges or hits the ceiling.

    Args:
        network: Network to train in place
        samples: (input, desired output) pairs
        training_config: Epoch limits; read from the environment if omitted
        callback: Called every ``progress_interval`` epochs and at the end
            with a dict of ``epoch``, ``total_epochs``, ``error``,
            ``correct``, ``total`` and ``elapsed_time``
        yield_func: Called after every epoch, e.g. to let a cooperative
            server handle requests

    Returns:
        TrainingResult: ``converged`` is False if the ceiling was reached

    Raises:
        ValueError: If there are no samples
        DimensionMismatchError: If a sample does not fit the network
    """
    samples = list(samples)
    if not samples:
        raise ValueError("Cannot train on an empty sample set")
    training_config = training_config or TrainingConfig.from_env()

    start_time = time.time()
    converged = False
    correct = 0
    error = 0.0
    epoch = 0

    logger.info(
        f"Training network {network.sizes} on {len(samples)} samples: "
        f"max_epochs={training_config.max_epochs}, "
        f"warmup_epochs={training_config.warmup_epochs}"
    )

    for epoch in range(1, training_config.max_epochs + 1):
        error = 0.0
        for inputs, desired in samples:
            error += network.backpropagate(inputs, desired)

        past_warmup = epoch > training_config.warmup_epochs
        due = (epoch - training_config.warmup_epochs) % training_config.evaluation_interval == 0
        if past_warmup and due:
            correct = evaluate(network, samples)
            converged = correct == len(samples)

        last = converged or epoch == training_config.max_epochs
        if epoch % training_config.progress_interval == 0 or last:
            elapsed = time.time() - start_time
            logger.info(
                f"Epoch {epoch}/{training_config.max_epochs}: "
                f"error={error:.6f}, correct={correct}/{len(samples)}, "
                f"elapsed={elapsed:.1f}s"
            )
            if callback is not None:
                callback({
                    'epoch': epoch,
                    'total_epochs': training_config.max_epochs,
                    'error': error,
                    'correct': correct,
                    'total': len(samples),
                    'elapsed_time': elapsed
                })

        if yield_func is not None:
            yield_func()

        if converged:
            break

    result = TrainingResult(
        converged=converged,
        epochs=epoch,
        correct=correct,
        total=len(samples),
        error=error,
        elapsed_time=time.time() - start_time,
        seed=network.seed
    )

    if converged:
        logger.info(f"Network converged after {epoch} epochs")
    else:
        logger.warning(
            f"Network did not converge within {training_config.max_epochs} epochs "
            f"({correct}/{len(samples)} samples correct)"
        )
    return result


def train_with_restarts(
    build_network: Callable[[int], Any],
    samples: Iterable[Sample],
    training_config: Optional[TrainingConfig] = None,
    max_attempts: int = 3,
    seeds: Optional[Iterable[int]] = None,
    callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    yield_func: Optional[Callable[[], None]] = None
):
    """
    Train freshly initialised networks until one converges.

    Args:
        build_network: Called with a seed, returns a new network
        samples: (input, desired output) pairs
        training_config: Epoch limits shared by every attempt
        max_attempts: Number of networks to try
        seeds: Seeds to use in order; fresh entropy when omitted or exhausted
        callback: Forwarded to :func:`train`, with ``attempt`` added
        yield_func: Forwarded to :func:`train`

    Returns:
        tuple: (network, TrainingResult) for the first converged attempt,
        or for the last attempt if none converged
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be positive, got {max_attempts}")

    samples = list(samples)
    seed_iter = iter(seeds or ())
    network = None
    result = None

    for attempt in range(1, max_attempts + 1):
        seed = next(seed_iter, None)
        if seed is None:
            seed = int(np.random.SeedSequence().generate_state(1)[0]) or 1
        network = build_network(seed)

        def report(data, attempt=attempt):
            if callback is not None:
                callback(dict(data, attempt=attempt))

        result = train(network, samples, training_config, report, yield_func)
        result.attempts = attempt
        if result.converged:
            break
        logger.info(f"Attempt {attempt}/{max_attempts} with seed {seed} did not converge")

    return network, result
