from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from wagerpong import socketio
from wagerpong.ledger import get_ledger, LedgerError
from wagerpong.relay import room_name


ledger_api = Blueprint('ledger_api', __name__)


@ledger_api.errorhandler(LedgerError)
def handle_ledger_error(exc):
    current_app.logger.info(f"[ledger-reject] path={request.path} code={exc.code} message={exc.message}")
    return jsonify(exc.to_dict()), exc.status


def _amount(data, key):
    """Amounts may arrive as JSON integers or decimal strings (large values)."""
    value = data.get(key)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _notify_room(match):
    # Best-effort hint for clients in the room; they still confirm via the ledger
    socketio.emit('match-updated', {'matchId': match.id, 'state': match.state},
                  to=room_name(match.id), namespace='/ws')


# ---- accounts ----

@ledger_api.route('/accounts', methods=['POST'])
def open_account():
    data = request.get_json(silent=True) or {}
    address = data.get('address')
    api_key = get_ledger().open_account(address)
    return jsonify({'address': address.lower(), 'api_key': api_key}), 201


@ledger_api.route('/accounts/<string:address>', methods=['GET'])
def get_account(address):
    ledger = get_ledger()
    return jsonify({'address': address.lower(), 'balance': ledger.balance(address)})


@ledger_api.route('/accounts/<string:address>/deposit', methods=['POST'])
def deposit(address):
    data = request.get_json(silent=True) or {}
    balance = get_ledger().deposit(address, _amount(data, 'amount'))
    return jsonify({'address': address.lower(), 'balance': balance})


# ---- matches ----

@ledger_api.route('/matches', methods=['POST'])
@login_required
def create_match():
    data = request.get_json(silent=True) or {}
    match = get_ledger().create(
        current_user.address,
        data.get('difficulty'),
        data.get('duration'),
        _amount(data, 'value'),
    )
    return jsonify(match.to_dict()), 201


@ledger_api.route('/matches/pending', methods=['GET'])
def pending_matches():
    include_expired = request.args.get('include_expired', '1') != '0'
    matches = get_ledger().pending_matches(include_expired=include_expired)
    return jsonify([m.to_dict() for m in matches])


@ledger_api.route('/matches/<int:match_id>', methods=['GET'])
def get_match(match_id):
    return jsonify(get_ledger().get_match(match_id).to_dict())


@ledger_api.route('/matches/<int:match_id>/events', methods=['GET'])
def match_events(match_id):
    return jsonify([e.to_dict() for e in get_ledger().match_events(match_id)])


@ledger_api.route('/matches/<int:match_id>/join', methods=['POST'])
@login_required
def join_match(match_id):
    data = request.get_json(silent=True) or {}
    match = get_ledger().join(current_user.address, match_id, _amount(data, 'value'))
    _notify_room(match)
    return jsonify(match.to_dict())


@ledger_api.route('/matches/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel_match(match_id):
    match = get_ledger().cancel(current_user.address, match_id)
    _notify_room(match)
    return jsonify(match.to_dict())


@ledger_api.route('/matches/<int:match_id>/cancel-expired', methods=['POST'])
@login_required
def cancel_expired_match(match_id):
    match = get_ledger().cancel_expired(current_user.address, match_id)
    _notify_room(match)
    return jsonify(match.to_dict())


@ledger_api.route('/matches/<int:match_id>/complete', methods=['POST'])
@login_required
def complete_match(match_id):
    data = request.get_json(silent=True) or {}
    match = get_ledger().complete(current_user.address, match_id, data.get('winner'))
    _notify_room(match)
    return jsonify(match.to_dict())


# ---- players ----

@ledger_api.route('/players/<string:address>', methods=['GET'])
def player_record(address):
    record = get_ledger().player_record(address)
    payload = record.to_dict()
    payload['exists'] = True
    return jsonify(payload)


@ledger_api.route('/players/<string:address>/matches', methods=['GET'])
def player_matches(address):
    return jsonify({'address': address.lower(), 'matchIds': get_ledger().match_history(address)})


# ---- client settings ----

@ledger_api.route('/config', methods=['GET'])
def client_config():
    cfg = current_app.config
    ledger = get_ledger()
    return jsonify({
        'feeBps': ledger.fee_bps,
        'feeRecipient': ledger.fee_recipient,
        'maxDuration': ledger.max_duration,
        'poll': {
            'interval': float(cfg.get('READY_POLL_INTERVAL_SEC', 2)),
            'maxAttempts': int(cfg.get('READY_POLL_MAX_ATTEMPTS', 10)),
            'backoff': float(cfg.get('READY_POLL_BACKOFF', 1.5)),
        },
    })
