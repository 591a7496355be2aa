from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the WagerPong ledger and relay!'})

@main.route('/api/relay/rooms')
def relay_rooms():
    rooms = current_app.extensions['room_registry'].snapshot()
    return jsonify({'rooms': rooms, 'count': len(rooms)})
