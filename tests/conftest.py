"""
conftest.py
~~~~~~~~~~~

Shared fixtures. The model store directory is pointed at a temporary
directory before any ffnet module reads its configuration, and removed
when the test session ends.
"""

import os
import shutil
import sys
import tempfile

if 'FFNET_MODEL_DIR' in os.environ:
    SESSION_MODEL_DIR = None
else:
    SESSION_MODEL_DIR = tempfile.mkdtemp(prefix='ffnet-models-')
    os.environ['FFNET_MODEL_DIR'] = SESSION_MODEL_DIR

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from ffnet.activations import Activation
from ffnet.network import Network


@pytest.fixture(scope='session', autouse=True)
def session_model_dir():
    """Remove the session's model store directory after the last test."""
    yield SESSION_MODEL_DIR
    if SESSION_MODEL_DIR is not None:
        shutil.rmtree(SESSION_MODEL_DIR, ignore_errors=True)


@pytest.fixture
def simple_network():
    """Create a small tanh network with bias for testing."""
    return Network([3, 4, 2], [Activation.TANH, Activation.TANH], use_bias=True, seed=1234)


@pytest.fixture
def no_bias_network():
    """Create a small network without bias."""
    return Network([3, 4, 2], ['tanh', 'sigmoid'], use_bias=False, seed=99)


@pytest.fixture
def temp_model_dir(tmp_path):
    """Create a temporary directory for model storage."""
    model_dir = tmp_path / "test_models"
    model_dir.mkdir()
    return str(model_dir)
