"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST endpoints using Flask's test client.
"""

import numpy as np
import pytest

from ffnet import api_server
from ffnet.network import Network
from ffnet.training import TrainingConfig


@pytest.fixture
def client(temp_model_dir, monkeypatch):
    """Test client with empty server state and a private model store."""
    monkeypatch.setattr(api_server.config, 'MODEL_DIR', temp_model_dir)
    api_server.active_networks.clear()
    api_server.training_jobs.clear()
    api_server.app.config['TESTING'] = True
    with api_server.app.test_client() as client:
        yield client
    api_server.active_networks.clear()
    api_server.training_jobs.clear()


@pytest.fixture
def emitted(monkeypatch):
    """Record WebSocket events instead of sending them."""
    events = []
    monkeypatch.setattr(
        api_server.socketio, 'emit',
        lambda event, data=None, **kwargs: events.append((event, data))
    )
    return events


def _create(client, **body):
    response = client.post('/api/networks', json=body)
    assert response.status_code == 201
    return response.get_json()['network_id']


@pytest.mark.unit
class TestNetworkEndpoints:
    """Creating, listing, querying and deleting networks."""

    def test_status(self, client):
        response = client.get('/api/status')
        assert response.status_code == 200
        assert response.get_json() == {
            'status': 'online', 'active_networks': 0, 'training_jobs': 0
        }

    def test_create_default_network(self, client):
        response = client.post('/api/networks', json={'seed': 3})
        data = response.get_json()
        assert response.status_code == 201
        assert data['architecture'] == [9, 9, 9, 9, 9, 7]
        assert data['activations'] == ['TANH'] * 5
        assert data['use_bias'] is True
        assert data['seed'] == 3

    def test_create_custom_network(self, client):
        network_id = _create(
            client, layer_sizes=[4, 6, 7], activations=['relu', 'sigmoid'], use_bias=False, seed=1
        )
        net = api_server.active_networks[network_id]['network']
        assert net.sizes == [4, 6, 7]
        assert net.use_bias is False

    @pytest.mark.parametrize('body', [
        {'layer_sizes': [9]},
        {'layer_sizes': [9, 0, 7]},
        {'layer_sizes': 'abc'},
        {'layer_sizes': [9, 7], 'activations': ['tanh', 'tanh', 'tanh']},
        {'activations': ['bogus'] * 5},
        {'use_bias': 'yes'},
        {'seed': -4},
    ])
    def test_create_rejects_bad_topology(self, client, body):
        assert client.post('/api/networks', json=body).status_code == 400

    def test_predict(self, client):
        network_id = _create(client, seed=12)
        response = client.post(
            f'/api/networks/{network_id}/predict',
            json={'inputs': [0, 1, 0, 0, 1, 0, 0, 0, 1]}
        )
        data = response.get_json()
        assert response.status_code == 200
        assert len(data['outputs']) == 7
        assert [s['segment'] for s in data['segments']] == list('abcdefg')
        assert isinstance(data['lit_segments'], str)
        assert -1 <= data['digit'] <= 9

        net = api_server.active_networks[network_id]['network']
        expected = net.feedforward([0, 1, 0, 0, 1, 0, 0, 0, 1])
        assert np.allclose(data['outputs'], expected)

    @pytest.mark.parametrize('body', [
        {'inputs': [0] * 8},
        {'inputs': 'abc'},
        {'inputs': ['a'] * 9},
        {'inputs': [{}] * 9},
        {'inputs': [None] * 9},
        {'inputs': [[0, 1]] * 9},
        {},
    ])
    def test_predict_rejects_bad_inputs(self, client, body):
        network_id = _create(client, seed=12)
        response = client.post(f'/api/networks/{network_id}/predict', json=body)
        assert response.status_code == 400

    def test_unknown_network(self, client):
        assert client.post('/api/networks/nope/predict', json={'inputs': []}).status_code == 404
        assert client.post('/api/networks/nope/train').status_code == 404
        assert client.get('/api/networks/nope/export').status_code == 404
        assert client.delete('/api/networks/nope').status_code == 404
        assert client.get('/api/training/nope').status_code == 404

    def test_list_and_delete(self, client):
        network_id = _create(client, seed=2)
        networks = client.get('/api/networks').get_json()['networks']
        assert [n['network_id'] for n in networks] == [network_id]
        assert networks[0]['status'] == 'in_memory'

        response = client.delete(f'/api/networks/{network_id}')
        assert response.status_code == 200
        assert response.get_json()['deleted_from_memory'] is True
        assert client.get('/api/networks').get_json()['networks'] == []

    def test_export_then_import(self, client):
        network_id = _create(client, seed=44)
        exported = client.get(f'/api/networks/{network_id}/export')
        assert exported.status_code == 200
        assert exported.mimetype == 'application/octet-stream'

        response = client.post(
            '/api/networks/import',
            data=exported.data,
            content_type='application/octet-stream'
        )
        assert response.status_code == 201
        imported_id = response.get_json()['network_id']

        original = api_server.active_networks[network_id]['network']
        imported = api_server.active_networks[imported_id]['network']
        for a, b in zip(original.weights + original.biases, imported.weights + imported.biases):
            assert np.array_equal(a, b)

    def test_import_rejects_garbage(self, client):
        response = client.post(
            '/api/networks/import', data=b'garbage', content_type='application/octet-stream'
        )
        assert response.status_code == 400

    def test_cleanup_endpoint(self, client):
        response = client.post('/api/networks/cleanup', json={'days': 2})
        assert response.status_code == 200
        assert response.get_json()['deleted_count'] == 0
        assert client.post('/api/networks/cleanup', json={'days': -1}).status_code == 400


@pytest.mark.unit
class TestTrainingEndpoints:
    """Starting training jobs and the background task."""

    def test_train_rejects_wrong_output_width(self, client):
        network_id = _create(client, layer_sizes=[9, 4, 3], seed=1)
        assert client.post(f'/api/networks/{network_id}/train').status_code == 400

    def test_train_rejects_bad_settings(self, client):
        network_id = _create(client, seed=1)
        response = client.post(f'/api/networks/{network_id}/train', json={'max_epochs': 0})
        assert response.status_code == 400
        response = client.post(f'/api/networks/{network_id}/train', json={'max_epochs': 'many'})
        assert response.status_code == 400

    def test_train_rejects_second_job(self, client):
        network_id = _create(client, seed=1)
        api_server.training_jobs['job'] = {'network_id': network_id, 'status': 'training'}
        response = client.post(f'/api/networks/{network_id}/train')
        assert response.status_code == 409
        assert client.delete(f'/api/networks/{network_id}').status_code == 409

    def test_train_starts_background_job(self, client, monkeypatch):
        started = []
        monkeypatch.setattr(
            api_server.socketio, 'start_background_task',
            lambda *args: started.append(args)
        )
        network_id = _create(client, seed=1)
        response = client.post(
            f'/api/networks/{network_id}/train',
            json={'max_epochs': 10, 'warmup_epochs': 2}
        )
        assert response.status_code == 202
        job_id = response.get_json()['job_id']

        task, task_network_id, task_job_id, training_config = started[0]
        assert task is api_server.train_network_task
        assert (task_network_id, task_job_id) == (network_id, job_id)
        assert training_config.max_epochs == 10
        assert training_config.warmup_epochs == 2

        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'pending'

    def test_training_task_reports_non_convergence(self, client, emitted):
        network_id = _create(client, layer_sizes=[3, 4, 7], seed=9)
        api_server.training_jobs['job'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'epochs': 2
        }

        api_server.train_network_task(
            network_id, 'job', TrainingConfig(max_epochs=2, warmup_epochs=5, progress_interval=1)
        )

        job = api_server.training_jobs['job']
        assert job['status'] == 'completed'
        assert job['converged'] is False
        assert job['epochs_run'] == 2
        events = [event for event, _ in emitted]
        assert events == ['training_update', 'training_update', 'training_complete']
        assert api_server.active_networks[network_id]['trained'] is False

    def test_training_task_saves_converged_network(self, client, emitted, monkeypatch, temp_model_dir):
        network_id = _create(client, layer_sizes=[1, 7], seed=9)
        # one-bit curriculum: 0 -> pattern of 0, 1 -> pattern of 1
        monkeypatch.setattr(api_server, 'train', _fake_converged_train)
        api_server.training_jobs['job'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'epochs': 10
        }

        api_server.train_network_task(network_id, 'job', TrainingConfig(max_epochs=10))

        assert api_server.training_jobs['job']['converged'] is True
        assert api_server.active_networks[network_id]['trained'] is True
        saved = api_server.load_network(network_id, temp_model_dir)
        assert isinstance(saved, Network)
        assert emitted[-1][0] == 'training_complete'

    def test_training_task_failure_is_reported(self, client, emitted, monkeypatch):
        network_id = _create(client, seed=9)

        def broken_train(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(api_server, 'train', broken_train)
        api_server.training_jobs['job'] = {
            'network_id': network_id, 'status': 'pending', 'progress': 0, 'epochs': 1
        }

        api_server.train_network_task(network_id, 'job', TrainingConfig(max_epochs=1))

        assert api_server.training_jobs['job']['status'] == 'failed'
        assert api_server.training_jobs['job']['error'] == 'boom'
        assert emitted[-1][0] == 'training_error'


def _fake_converged_train(network, samples, training_config, callback=None, yield_func=None):
    from ffnet.training import TrainingResult
    return TrainingResult(
        converged=True, epochs=3, correct=len(samples), total=len(samples),
        error=0.0, elapsed_time=0.0, seed=network.seed
    )
