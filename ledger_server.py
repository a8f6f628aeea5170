from flask import Flask, jsonify, request
import logging
from typing import Any, Dict, Optional

import requests

import ledger_store
import ledger_settings as settings
from ledger_errors import ConfigError, StorageFailure
from mode_controller import ModeController
from sync_gateway import OperationKind, SyncGateway


def create_app(
    db_path: Optional[str] = None,
    endpoint: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Flask:
    """Wire store, mode controller and gateway into a Flask app.

    endpoint only seeds the configuration when none has been persisted yet.
    """
    app = Flask(__name__)
    app.logger.setLevel(settings.log_level())
    try:
        logging.getLogger('werkzeug').setLevel(settings.log_level())
    except Exception:
        pass

    store = ledger_store.init(db_path or settings.LEDGER_DB_PATH)
    modes = ModeController(store, default_endpoint=endpoint or settings.LEDGER_API_URL)
    gateway = SyncGateway(store, modes, session=session)
    app.extensions['ledger'] = {'store': store, 'modes': modes, 'gateway': gateway}

    def _json_object() -> Optional[Dict[str, Any]]:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else None

    def _send(kind: OperationKind):
        payload = _json_object()
        if payload is None:
            return jsonify({'status': 'error', 'message': 'Invalid JSON payload'}), 400
        return jsonify(gateway.send(kind, payload))

    def _mode_payload() -> Dict[str, Any]:
        return {'mode': modes.current_mode().value, 'endpoint': modes.endpoint}

    @app.errorhandler(StorageFailure)
    def handle_storage_failure(exc):
        app.logger.error('Local storage failed: %s', exc)
        return jsonify({'status': 'error', 'message': str(exc)}), 500

    # Disable caching; every read reflects the latest commit
    @app.after_request
    def add_no_cache_headers(response):
        response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
        response.headers['Pragma'] = 'no-cache'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        return response

    @app.route('/api/sales', methods=['POST'])
    def api_save_sale():
        return _send(OperationKind.SALE)

    @app.route('/api/cash', methods=['POST'])
    def api_save_cash():
        return _send(OperationKind.CASH)

    @app.route('/api/expenses', methods=['POST'])
    def api_save_expense():
        return _send(OperationKind.EXPENSE)

    @app.route('/api/cash/latest')
    def api_latest_cash():
        return jsonify({
            'latest': store.most_recent_cash(),
            'current_amount': store.current_cash_amount,
            'last_date': store.last_cash_date,
        })

    @app.route('/api/mode', methods=['GET'])
    def api_get_mode():
        return jsonify(_mode_payload())

    @app.route('/api/mode', methods=['POST'])
    def api_set_mode():
        payload = _json_object()
        if payload is None:
            return jsonify({'status': 'error', 'message': 'Invalid JSON payload'}), 400
        try:
            modes.set_endpoint(payload.get('endpoint'))
        except ConfigError as exc:
            return jsonify({'status': 'error', 'message': str(exc), **_mode_payload()}), 400
        return jsonify(_mode_payload())

    @app.route('/api/connection/test', methods=['POST'])
    def api_connection_test():
        return jsonify(gateway.test_connection())

    @app.route('/api/summary')
    def api_summary():
        day = (request.args.get('date') or '').strip() or None
        return jsonify(store.summary(day))

    return app
