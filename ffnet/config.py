"""
config.py
~~~~~~~~~

Environment-driven settings shared by the trainer, model store and server.
"""

import os


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
IS_PRODUCTION = os.getenv('FLASK_ENV') == 'production'
PORT = _env_int('PORT', 8000)

# Directory holding the SQLite model store
MODEL_DIR = os.getenv('FFNET_MODEL_DIR', 'models')

# Model file written by the training script
MODEL_PATH = os.getenv('FFNET_MODEL_PATH', os.path.join(MODEL_DIR, 'count.ffnt'))

# Networks older than this many days are removed by the cleanup task
RETENTION_DAYS = _env_int('FFNET_RETENTION_DAYS', 2)

# Training loop: give up after this many epochs
DEFAULT_MAX_EPOCHS = 50000

# Training loop: do not check convergence before this many epochs
DEFAULT_WARMUP_EPOCHS = 15000

# Training loop: check convergence every N epochs once warmed up
DEFAULT_EVALUATION_INTERVAL = 1

# Training loop: report progress every N epochs
DEFAULT_PROGRESS_INTERVAL = 1000


def training_settings() -> dict:
    """Read training loop settings, falling back to the defaults above."""
    return {
        'max_epochs': _env_int('FFNET_MAX_EPOCHS', DEFAULT_MAX_EPOCHS),
        'warmup_epochs': _env_int('FFNET_WARMUP_EPOCHS', DEFAULT_WARMUP_EPOCHS),
        'evaluation_interval': _env_int(
            'FFNET_EVALUATION_INTERVAL', DEFAULT_EVALUATION_INTERVAL
        ),
        'progress_interval': _env_int(
            'FFNET_PROGRESS_INTERVAL', DEFAULT_PROGRESS_INTERVAL
        ),
    }
