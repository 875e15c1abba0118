"""
Notification Dispatch REST API

Minimal Flask API over the DispatchCoordinator, for the strategy
evaluation engine and the dashboard's quota widget and notification
history.

Endpoints:
    GET  /health                - Health check
    POST /signals               - Dispatch a signal {signal, strategy, subscription_tier}
    GET  /quota/<strategy_id>   - Today's quota usage (?limit=)
    GET  /logs/<user_id>        - Delivery log entries, newest first (?limit=, max 500)
    POST /quota/sweep           - Remove expired quota records

Usage:
    from signal_dispatch.api.server import init_api, run_api

    init_api(coordinator)
    run_api(host='0.0.0.0', port=8082)
"""

import logging
from typing import Optional

from flask import Flask, jsonify, request

from signal_dispatch.coordinators.dispatch_coordinator import DispatchCoordinator
from signal_dispatch.delivery_log import MAX_LIST_LIMIT
from signal_dispatch.errors import InvalidSignalEvent, LedgerUnavailable
from signal_dispatch.models import SignalEvent, StrategyConfig

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Global coordinator reference (set via init_api)
_coordinator: Optional[DispatchCoordinator] = None


def init_api(coordinator: DispatchCoordinator) -> None:
    """
    Initialize API with coordinator reference.

    Args:
        coordinator: DispatchCoordinator serving requests
    """
    global _coordinator
    _coordinator = coordinator
    logger.info("Notification API initialized with coordinator reference")


def run_api(host: str = '0.0.0.0', port: int = 8082, debug: bool = False) -> None:
    """
    Run the Flask API server.

    Args:
        host: Host to bind to (default: 0.0.0.0 for all interfaces)
        port: Port to bind to (default: 8082)
        debug: Enable Flask debug mode
    """
    logger.info(f"Starting notification API server on {host}:{port}")
    app.run(host=host, port=port, debug=debug, threaded=True)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def _not_initialized():
    return jsonify({'error': 'Coordinator not initialized'}), 503


def _int_arg(name: str, default: Optional[int]) -> Optional[int]:
    """Integer query parameter; raises ValueError on garbage."""
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    return int(raw)


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.route('/health')
def health():
    """
    Health check endpoint.

    Returns:
        JSON with status
    """
    if _coordinator is None:
        return jsonify({
            'status': 'error',
            'message': 'Coordinator not initialized'
        }), 503

    return jsonify({'status': 'ok'})


@app.route('/signals', methods=['POST'])
def dispatch_signal():
    """
    Dispatch a generated signal.

    Body:
        {"signal": {...}, "strategy": {...}, "subscription_tier": "pro"}

    Returns:
        DispatchResult as JSON; 400 on invalid input
    """
    if _coordinator is None:
        return _not_initialized()

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        signal = SignalEvent.from_dict(payload.get('signal'))
        strategy_data = payload.get('strategy')
        if not isinstance(strategy_data, dict):
            raise InvalidSignalEvent("'strategy' must be an object")
        strategy_data = dict(strategy_data)
        strategy_data.setdefault('strategy_id', signal.strategy_id)
        strategy = StrategyConfig.from_dict(strategy_data)
        result = _coordinator.on_signal_generated(
            signal,
            strategy,
            payload.get('subscription_tier'),
        )
    except (ValueError, TypeError) as e:
        # InvalidSignalEvent and malformed strategy/channel definitions
        logger.warning(f"Rejected signal payload: {e}")
        return jsonify({'error': str(e)}), 400

    return jsonify(result.to_dict())


@app.route('/quota/<strategy_id>')
def get_quota(strategy_id: str):
    """
    Today's quota usage for a strategy.

    Returns:
        {"count", "limit", "remaining", "is_limit_reached"}
    """
    if _coordinator is None:
        return _not_initialized()

    try:
        limit = _int_arg('limit', None)
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400

    try:
        usage = _coordinator.get_usage(strategy_id, limit)
    except LedgerUnavailable as e:
        logger.error(f"Quota lookup failed for {strategy_id}: {e}")
        return jsonify({'error': 'Quota ledger unavailable'}), 503

    return jsonify(usage.to_dict())


@app.route('/logs/<user_id>')
def get_logs(user_id: str):
    """
    Delivery log entries for a user, newest first.

    Returns:
        List of delivery log entries
    """
    if _coordinator is None:
        return _not_initialized()

    try:
        limit = _int_arg('limit', 50)
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    entries = _coordinator.list_delivery_logs(user_id, limit)
    return jsonify([e.to_dict() for e in entries])


@app.route('/quota/sweep', methods=['POST'])
def sweep_quota():
    """
    Remove quota records older than the retention window.

    Returns:
        {"removed": N}
    """
    if _coordinator is None:
        return _not_initialized()

    try:
        removed = _coordinator.sweep()
    except LedgerUnavailable as e:
        logger.error(f"Quota sweep failed: {e}")
        return jsonify({'error': 'Quota ledger unavailable'}), 503

    return jsonify({'removed': removed})
