from flask import Blueprint, jsonify

from codeduel import get_coordinator

api = Blueprint('api', __name__)


@api.route('/rooms', methods=['GET'])
def list_rooms():
    return jsonify(get_coordinator().list_rooms())


@api.route('/status', methods=['GET'])
def status():
    coordinator = get_coordinator()
    return jsonify({
        'online': coordinator.registry.count(),
        'queued': len(coordinator.queue),
        'rooms': len(coordinator.store),
    })


@api.route('/challenges', methods=['GET'])
def list_challenges():
    return jsonify([c.to_dict() for c in get_coordinator().catalog.all()])


@api.route('/challenges/<string:challenge_id>', methods=['GET'])
def get_challenge(challenge_id):
    challenge = get_coordinator().catalog.get(challenge_id)
    if challenge is None:
        return jsonify({'error': 'Challenge not found'}), 404
    return jsonify(challenge.to_dict())
