#!/usr/bin/env python3
"""
Train the seven-segment counting network.

The network learns to light the segments of the digit equal to the
number of set bits in a 9-bit input, for every one of the 512 inputs.

Usage:
    python scripts/train_seven_segment.py [--model PATH] [--seed N]
                                          [--attempts N] [--retrain]

The script will:
1. Load the model file if it already exists (unless --retrain is given)
2. Otherwise train with fresh seeds until a network converges
3. Save the converged network to the model file
4. Show the segments lit for a few sample inputs
"""

import os
import sys

import click

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from ffnet import config
from ffnet.exceptions import PersistenceError
from ffnet.network import Network
from ffnet.seven_segment import (
    binary_amount,
    default_network,
    digit_for,
    lit_segments,
    training_samples
)
from ffnet.training import TrainingConfig, evaluate, train_with_restarts


def report_progress(data: dict) -> None:
    """Print one line of training progress."""
    click.echo(
        f"   attempt {data['attempt']} | epoch {data['epoch']:>6}/{data['total_epochs']}"
        f" | error {data['error']:.4f}"
        f" | correct {data['correct']}/{data['total']}"
        f" | {data['elapsed_time']:.0f}s"
    )


def show_examples(network: Network) -> None:
    """Print the network's answer for a handful of inputs."""
    click.echo("\n🔍 Sample answers:")
    for value in (0b000000000, 0b000000001, 0b010101000, 0b111100000, 0b111111111):
        inputs, count = binary_amount(value)
        output = network.feedforward(inputs)
        bits = ''.join(str(int(b)) for b in inputs)
        click.echo(
            f"   {bits} -> segments '{lit_segments(output)}' "
            f"shows {digit_for(output)} (expected {count})"
        )


@click.command()
@click.option('--model', 'model_path', default=config.MODEL_PATH, show_default=True,
              help='Model file to load from or save to')
@click.option('--seed', type=int, default=0,
              help='Seed for the first attempt (0 = random)')
@click.option('--attempts', type=int, default=3, show_default=True,
              help='Fresh networks to try before giving up')
@click.option('--retrain', is_flag=True, help='Ignore an existing model file')
def main(model_path: str, seed: int, attempts: int, retrain: bool):
    """Train (or load) the seven-segment counting network."""
    click.echo("=" * 60)
    click.echo("Seven-Segment Counting Network")
    click.echo("9 bits in → segments a-g of the number of set bits")
    click.echo("=" * 60)

    samples = training_samples()

    if os.path.exists(model_path) and not retrain:
        click.echo(f"\n📂 Loading pre-trained model from: {model_path}")
        try:
            network = Network.from_file(model_path)
        except PersistenceError as e:
            click.echo(f"❌ Model file is unusable: {e}")
            click.echo("   Re-run with --retrain to replace it.")
            sys.exit(1)
        correct = evaluate(network, samples)
        click.echo(f"✅ Loaded: {correct}/{len(samples)} inputs answered correctly")
        show_examples(network)
        return

    training_config = TrainingConfig.from_env()
    click.echo(
        f"\n🏋️  Training: up to {attempts} attempt(s), "
        f"{training_config.max_epochs} epochs each "
        f"(convergence checked after epoch {training_config.warmup_epochs})"
    )

    network, result = train_with_restarts(
        default_network,
        samples,
        training_config,
        max_attempts=attempts,
        seeds=[seed] if seed else None,
        callback=report_progress
    )

    if not result.converged:
        click.echo(
            f"\n❌ Unable to train successfully after {result.attempts} attempt(s) "
            f"({result.correct}/{result.total} correct). Poor initial weights; please re-run."
        )
        sys.exit(1)

    network.save(model_path)

    click.echo("\n" + "=" * 60)
    click.echo("✅ TRAINING COMPLETE!")
    click.echo("=" * 60)
    click.echo(f"   - Seed: {result.seed}")
    click.echo(f"   - Epochs: {result.epochs}")
    click.echo(f"   - Time: {result.elapsed_time:.1f}s")
    click.echo(f"   - Model file: {model_path}")
    show_examples(network)


if __name__ == '__main__':
    main()
