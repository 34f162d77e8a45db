"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for training and
querying seven-segment counting networks.

This module provides endpoints for:
- Creating and managing networks
- Training networks on the counting curriculum with real-time progress
  updates via WebSockets
- Asking a network which segments to light for a vector of bits
- Exporting and importing networks in the binary codec format
- Persisting networks to/from the SQLite model store

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for cooperative background training tasks
- SQLite for network persistence
"""

import sys
import uuid
import logging
from typing import Dict, Any, List

import gevent
import numpy as np
from flask import Flask, Response, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from ffnet import config
from ffnet import seven_segment
from ffnet.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    PersistenceError
)
from ffnet.network import Network
from ffnet.training import TrainingConfig, train
from ffnet.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level = getattr(logging, config.LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if config.IS_PRODUCTION:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('ffnet').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not config.IS_PRODUCTION,
    engineio_logger=not config.IS_PRODUCTION,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

ACTIVE_JOB_STATUSES = ('pending', 'training')


def _network_info(net: Network, trained: bool = False, accuracy=None) -> Dict[str, Any]:
    return {
        'network': net,
        'architecture': net.sizes,
        'activations': [a.name for a in net.activations],
        'use_bias': net.use_bias,
        'trained': trained,
        'accuracy': accuracy
    }


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks()

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        active_networks[network_id] = _network_info(
            net, net_info['trained'], net_info['accuracy']
        )
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()

# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours to:
    - Delete networks older than the retention period from the database
    - Sync in-memory networks with the database
    - Remove completed/failed training jobs from memory
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_old_networks(days=config.RETENTION_DAYS)

            if deleted_count > 0:
                saved_ids = {net['network_id'] for net in list_saved_networks()}
                stale = [
                    nid for nid, info in active_networks.items()
                    if info['trained'] and nid not in saved_ids
                ]
                for nid in stale:
                    del active_networks[nid]
                    logger.info(f"Removed network {nid} from memory (deleted from database)")
            elif deleted_count < 0:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Idempotent: calling it more than once has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


start_cleanup_task()

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in np.asarray(array).flatten()]


def has_active_job(network_id: str) -> bool:
    return any(
        job['network_id'] == network_id and job['status'] in ACTIVE_JOB_STATUSES
        for job in training_jobs.values()
    )

# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and counts of networks and running jobs."""
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body (all optional):
        {
            'layer_sizes': [9, 9, 9, 9, 9, 7],
            'activations': ['tanh', ...],   # one per transition
            'use_bias': true,
            'seed': 0                       # 0 = not reproducible
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get(
        'layer_sizes',
        [seven_segment.INPUT_WIDTH, *seven_segment.HIDDEN_LAYERS, seven_segment.OUTPUT_WIDTH]
    )
    activations = data.get('activations')
    if activations is None and isinstance(layer_sizes, list):
        activations = ['tanh'] * max(len(layer_sizes) - 1, 0)
    use_bias = data.get('use_bias', True)
    seed = data.get('seed', 0)

    if not isinstance(use_bias, bool):
        return jsonify({'error': 'use_bias must be a boolean'}), 400

    try:
        net = Network(layer_sizes, activations, use_bias=use_bias, seed=seed)
    except ConfigurationError as e:
        logger.warning(f"Invalid architecture requested: {layer_sizes}: {e}")
        return jsonify({'error': f'Invalid architecture: {e}'}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net)

    logger.info(f"Created network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'activations': [a.name for a in net.activations],
        'use_bias': net.use_bias,
        'seed': net.seed,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network on the counting curriculum in the background.

    Request body (all optional, defaults from the environment):
        {
            'max_epochs': 50000,
            'warmup_epochs': 15000,
            'evaluation_interval': 1
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    net = active_networks[network_id]['network']
    if net.input_width > len(seven_segment.SEGMENT_PATTERNS) - 1 \
            or net.output_width != seven_segment.OUTPUT_WIDTH:
        return jsonify({
            'error': 'Counting curriculum needs at most 9 inputs and exactly 7 outputs'
        }), 400

    if has_active_job(network_id):
        return jsonify({'error': 'Network is already training'}), 409

    data = request.get_json(silent=True) or {}
    settings = config.training_settings()
    for key in ('max_epochs', 'warmup_epochs', 'evaluation_interval'):
        value = data.get(key, settings[key])
        if isinstance(value, bool) or not isinstance(value, int):
            return jsonify({'error': f'{key} must be an integer'}), 400
        settings[key] = value

    try:
        training_config = TrainingConfig(**settings)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': training_config.max_epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"max_epochs={training_config.max_epochs}, "
        f"warmup_epochs={training_config.warmup_epochs}"
    )

    socketio.start_background_task(
        train_network_task, network_id, job_id, training_config
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    training_config: TrainingConfig
) -> None:
    """
    Background task that trains a network on the counting curriculum.

    Sends progress updates via WebSocket as training progresses and saves
    the network to the model store once it converges.
    """
    info = active_networks[network_id]
    net = info['network']
    samples = seven_segment.training_samples(net.input_width)

    def on_progress(data: Dict[str, Any]) -> None:
        """Called periodically during training to send progress updates."""
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'error': data['error'],
            'correct': data['correct'],
            'total': data['total'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        def yield_to_other_tasks():
            gevent.sleep(0)

        result = train(
            net,
            samples,
            training_config,
            callback=on_progress,
            yield_func=yield_to_other_tasks
        )

        accuracy = result.correct / result.total
        info['trained'] = result.converged
        info['accuracy'] = accuracy

        job = training_jobs[job_id]
        job['status'] = 'completed'
        job['progress'] = 100
        job['converged'] = result.converged
        job['epochs_run'] = result.epochs
        job['accuracy'] = accuracy

        if result.converged:
            save_network(
                net,
                network_id,
                trained=True,
                accuracy=accuracy,
                converged_epoch=result.epochs
            )
            logger.info(f"Training converged for job {job_id} after {result.epochs} epochs")
        else:
            logger.warning(
                f"Training for job {job_id} did not converge; "
                f"recreate the network with a new seed to retry"
            )

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'converged': result.converged,
            'epochs': result.epochs,
            'accuracy': float(accuracy),
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Run the network on a vector of inputs.

    Request body:
        {'inputs': [0, 1, 0, 0, 1, 0, 0, 0, 1]}

    Returns:
        JSON with the raw outputs and, for seven-output networks, the
        decoded segments and the digit they show
    """
    if network_id not in active_networks:
        logger.warning(f"Prediction requested for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    inputs = data.get('inputs')
    if not isinstance(inputs, list):
        return jsonify({'error': 'inputs must be a list of numbers'}), 400

    try:
        vector = np.asarray(inputs, dtype=np.float64)
    except (TypeError, ValueError) as e:
        return jsonify({'error': f'inputs must be numeric: {e}'}), 400
    if not np.all(np.isfinite(vector)):
        return jsonify({'error': 'inputs must be finite numbers'}), 400

    net = active_networks[network_id]['network']
    try:
        output = net.feedforward(vector)
    except DimensionMismatchError as e:
        return jsonify({'error': str(e)}), 400

    response = {
        'network_id': network_id,
        'inputs': array_to_float_list(vector),
        'outputs': array_to_float_list(output)
    }
    if net.output_width == seven_segment.OUTPUT_WIDTH:
        response['segments'] = [
            {'segment': segment, 'on': on, 'value': value}
            for segment, on, value in seven_segment.decode_segments(output)
        ]
        response['lit_segments'] = seven_segment.lit_segments(output)
        response['digit'] = seven_segment.digit_for(output)

    return jsonify(response), 200


@app.route('/api/networks/<network_id>/export', methods=['GET'])
def export_network(network_id: str):
    """Return the network in the binary codec format."""
    if network_id not in active_networks:
        return jsonify({'error': 'Network not found'}), 404

    data = active_networks[network_id]['network'].to_bytes()
    return Response(
        data,
        mimetype='application/octet-stream',
        headers={'Content-Disposition': f'attachment; filename={network_id}.ffnt'}
    )


@app.route('/api/networks/import', methods=['POST'])
def import_network():
    """Create a network from a binary codec payload in the request body."""
    try:
        net = Network.from_bytes(request.get_data())
    except PersistenceError as e:
        logger.warning(f"Rejected network import: {e}")
        return jsonify({'error': f'Invalid network data: {e}'}), 400

    network_id = str(uuid.uuid4())
    active_networks[network_id] = _network_info(net)
    logger.info(f"Imported network {network_id} with architecture {net.sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': net.sizes,
        'activations': [a.name for a in net.activations],
        'use_bias': net.use_bias,
        'status': 'imported'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'activations': info['activations'],
            'use_bias': info['use_bias'],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks():
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    if has_active_job(network_id):
        return jsonify({'error': 'Network is training'}), 409

    deleted_from_memory = False
    if network_id in active_networks:
        del active_networks[network_id]
        deleted_from_memory = True

    deleted_from_disk = delete_network(network_id)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', config.RETENTION_DAYS)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=int(days))
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200

# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = config.PORT
    logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not config.IS_PRODUCTION,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
