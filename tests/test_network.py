"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for network construction, forward and backward passes.
"""

import numpy as np
import pytest

from ffnet.activations import Activation
from ffnet.exceptions import ConfigurationError, DimensionMismatchError
from ffnet.network import Network, WEIGHT_INIT_RANGE


TOPOLOGIES = [
    ([1, 1], ['tanh']),
    ([3, 4, 2], ['tanh', 'tanh']),
    ([9, 9, 9, 9, 9, 7], ['tanh'] * 5),
    ([5, 3, 6], ['sigmoid', 'relu']),
    ([4, 8, 8, 2], ['relu', 'leaky_relu', 'identity']),
]


def _copy_weights(network):
    return [w.copy() for w in network.weights], [b.copy() for b in network.biases]


@pytest.mark.unit
class TestConstruction:
    """Topology validation and initialisation."""

    def test_layers_chain_widths(self):
        net = Network([9, 5, 3, 7], ['tanh'] * 3, use_bias=True, seed=3)
        assert net.sizes == [9, 5, 3, 7]
        assert [w.shape for w in net.weights] == [(9, 5), (5, 3), (3, 7)]
        assert [b.shape for b in net.biases] == [(5,), (3,), (7,)]
        for previous, following in zip(net.layers, net.layers[1:]):
            assert previous.output_width == following.input_width

    def test_one_activation_per_layer_ignores_input_entry(self):
        net = Network([2, 3, 1], ['relu', 'sigmoid', 'tanh'], seed=5)
        assert net.activations == [Activation.SIGMOID, Activation.TANH]

    def test_no_bias_means_no_bias_arrays(self, no_bias_network):
        assert no_bias_network.biases == []
        assert all(layer.bias is None for layer in no_bias_network.layers)

    def test_weights_within_init_range(self):
        net = Network([20, 30, 10], ['tanh', 'tanh'], use_bias=True, seed=11)
        for array in net.weights + net.biases:
            assert np.all(np.abs(array) <= WEIGHT_INIT_RANGE)

    def test_same_seed_gives_identical_weights(self):
        a = Network([9, 9, 7], ['tanh', 'tanh'], use_bias=True, seed=2024)
        b = Network([9, 9, 7], ['tanh', 'tanh'], use_bias=True, seed=2024)
        for wa, wb in zip(a.weights + a.biases, b.weights + b.biases):
            assert np.array_equal(wa, wb)
        probe = np.linspace(-1, 1, 9)
        assert np.array_equal(a.feedforward(probe), b.feedforward(probe))

    def test_different_seeds_differ(self):
        a = Network([9, 9, 7], ['tanh', 'tanh'], seed=1)
        b = Network([9, 9, 7], ['tanh', 'tanh'], seed=2)
        assert not np.array_equal(a.weights[0], b.weights[0])

    def test_zero_seed_draws_fresh_entropy(self):
        a = Network([9, 9, 7], ['tanh', 'tanh'], seed=0)
        b = Network([9, 9, 7], ['tanh', 'tanh'], seed=None)
        assert a.seed and b.seed
        assert not np.array_equal(a.weights[0], b.weights[0])

    @pytest.mark.parametrize('sizes, activations', [
        ([9], []),
        ([], []),
        ([9, 0, 7], ['tanh', 'tanh']),
        ([9, -3, 7], ['tanh', 'tanh']),
        ([9, 2.5, 7], ['tanh', 'tanh']),
        ([9, True, 7], ['tanh', 'tanh']),
        ([9, 9, 7], ['tanh']),
        ([9, 9, 7], ['tanh'] * 4),
        ([9, 9, 7], ['tanh', 'swish']),
        (None, ['tanh']),
        ([9, 7], None),
    ])
    def test_malformed_topology_raises(self, sizes, activations):
        with pytest.raises(ConfigurationError):
            Network(sizes, activations)

    @pytest.mark.parametrize('seed', [-1, 'abc', 1.5])
    def test_bad_seed_raises(self, seed):
        with pytest.raises(ConfigurationError):
            Network([2, 2], ['tanh'], seed=seed)


@pytest.mark.unit
class TestFeedforward:
    """Forward pass behaviour."""

    @pytest.mark.parametrize('sizes, activations', TOPOLOGIES)
    @pytest.mark.parametrize('use_bias', [True, False])
    def test_zero_input_gives_output_in_range(self, sizes, activations, use_bias):
        net = Network(sizes, activations, use_bias=use_bias, seed=17)
        output = net.feedforward(np.zeros(sizes[0]))
        assert output.shape == (sizes[-1],)
        low, high = Activation.parse(activations[-1]).output_range
        assert np.all(output >= low) and np.all(output <= high)

    def test_zero_input_without_bias_gives_activation_of_zero(self, no_bias_network):
        # tanh(0) = 0 then sigmoid(0) = 0.5
        assert np.allclose(no_bias_network.feedforward([0, 0, 0]), [0.5, 0.5])

    def test_matches_manual_computation(self, simple_network):
        x = np.array([0.2, -0.4, 1.0])
        hidden = np.tanh(x @ simple_network.weights[0] + simple_network.biases[0])
        expected = np.tanh(hidden @ simple_network.weights[1] + simple_network.biases[1])
        assert np.allclose(simple_network.feedforward(x), expected)

    def test_is_repeatable(self, simple_network):
        x = [1, 0, 1]
        first = simple_network.feedforward(x)
        simple_network.feedforward([0, 1, 0])
        assert np.array_equal(simple_network.feedforward(x), first)

    def test_accepts_lists(self, simple_network):
        assert simple_network.feedforward([1, 0, 1]).shape == (2,)

    @pytest.mark.parametrize('inputs', [
        [0.0] * 2,
        [0.0] * 4,
        [[0.0, 0.0, 0.0]],
        np.zeros((3, 1)),
        [],
    ])
    def test_wrong_shape_raises(self, simple_network, inputs):
        with pytest.raises(DimensionMismatchError):
            simple_network.feedforward(inputs)

    def test_eight_inputs_to_nine_input_network(self):
        net = Network([9, 9, 7], ['tanh', 'tanh'], seed=8)
        with pytest.raises(DimensionMismatchError) as exc_info:
            net.feedforward([0.0] * 8)
        assert exc_info.value.expected == 9


@pytest.mark.unit
class TestBackpropagate:
    """Single gradient-descent steps."""

    def test_reduces_error_on_repeated_sample(self, simple_network):
        x, y = [1.0, 0.0, 1.0], [0.8, -0.3]
        first = simple_network.backpropagate(x, y)
        for _ in range(200):
            last = simple_network.backpropagate(x, y)
        assert last < first

    def test_returns_error_before_update(self, simple_network):
        x, y = np.array([0.5, 0.5, -0.5]), np.array([1.0, 0.0])
        output = simple_network.feedforward(x)
        expected = 0.5 * np.sum((y - output) ** 2)
        assert simple_network.backpropagate(x, y) == pytest.approx(expected)

    def test_updates_every_layer(self, simple_network):
        weights, biases = _copy_weights(simple_network)
        simple_network.backpropagate([1.0, 1.0, 1.0], [1.0, -1.0])
        for before, after in zip(weights + biases, simple_network.weights + simple_network.biases):
            assert not np.array_equal(before, after)

    def test_matches_gradient_of_squared_error(self, simple_network):
        from ffnet.network import LEARNING_RATE

        x, y = np.array([0.3, -0.6, 0.9]), np.array([0.4, -0.2])
        w = simple_network.weights[0]
        i, j, h = 1, 2, 1e-6

        def loss():
            out = simple_network.feedforward(x)
            return 0.5 * np.sum((y - out) ** 2)

        original = w[i, j]
        w[i, j] = original + h
        up = loss()
        w[i, j] = original - h
        down = loss()
        w[i, j] = original
        gradient = (up - down) / (2 * h)

        simple_network.backpropagate(x, y)
        assert simple_network.weights[0][i, j] - original == pytest.approx(
            -LEARNING_RATE * gradient, rel=1e-4, abs=1e-10
        )

    def test_without_bias_only_weights_change(self, no_bias_network):
        no_bias_network.backpropagate([1.0, 0.0, 1.0], [0.0, 1.0])
        assert no_bias_network.biases == []

    @pytest.mark.parametrize('inputs, desired', [
        ([0.0] * 2, [0.0, 0.0]),
        ([0.0] * 3, [0.0]),
        ([0.0] * 3, [0.0, 0.0, 0.0]),
        ([0.0] * 4, [0.0, 0.0]),
    ])
    def test_wrong_shape_raises_and_leaves_weights(self, simple_network, inputs, desired):
        weights, biases = _copy_weights(simple_network)
        with pytest.raises(DimensionMismatchError):
            simple_network.backpropagate(inputs, desired)
        for before, after in zip(weights + biases, simple_network.weights + simple_network.biases):
            assert np.array_equal(before, after)

    def test_independent_networks_do_not_share_state(self):
        a = Network([3, 3, 2], ['tanh', 'tanh'], use_bias=True, seed=21)
        b = Network([3, 3, 2], ['tanh', 'tanh'], use_bias=True, seed=21)
        a.backpropagate([1, 1, 1], [1, 1])
        assert not np.array_equal(a.weights[0], b.weights[0])
