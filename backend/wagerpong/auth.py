from flask import jsonify


def load_caller_from_request(req):
    """Flask-Login request loader: ``X-Address`` plus ``Authorization: Bearer <api key>``."""
    from wagerpong.ledger import get_ledger
    address = req.headers.get('X-Address', '')
    auth_header = req.headers.get('Authorization', '')
    if not address or not auth_header.startswith('Bearer '):
        return None
    api_key = auth_header[len('Bearer '):].strip()
    return get_ledger().verify_api_key(address, api_key)


def unauthorized():
    return jsonify({'error': 'Unauthenticated', 'message': 'X-Address and a valid API key are required'}), 401
