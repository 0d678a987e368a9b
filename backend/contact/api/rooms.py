from flask import Blueprint, jsonify, request

from contact import store
from contact.api import register_error_handlers
from contact.services.game import coordinator

rooms = Blueprint('rooms', __name__)
register_error_handlers(rooms)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@rooms.route('/', methods=['POST'], strict_slashes=False)
def create_room():
    data = _body()
    room = coordinator.create_room(data.get('player_id'), data.get('nickname'))
    return jsonify(room.to_dict()), 201


@rooms.route('/', methods=['GET'], strict_slashes=False)
def list_rooms():
    return jsonify([r.to_dict() for r in store.list_rooms()])


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    return jsonify(store.get_room(room_id).to_dict())


@rooms.route('/<string:room_id>/settings', methods=['PUT'])
def update_settings(room_id):
    data = _body()
    room = coordinator.update_room_settings(
        room_id,
        data.get('requester_id'),
        round_time_minutes=data.get('round_time_minutes'),
        wordmaster_guess_limit=data.get('wordmaster_guess_limit'),
    )
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/players', methods=['POST'])
def add_player(room_id):
    data = _body()
    room = coordinator.add_player(room_id, data.get('player_id'), data.get('nickname'))
    return jsonify(room.to_dict()), 201


@rooms.route('/<string:room_id>/players/<string:player_id>', methods=['DELETE'])
def remove_player(room_id, player_id):
    requester_id = request.args.get('requester_id') or _body().get('requester_id')
    room = coordinator.remove_player(room_id, player_id, requester_id=requester_id)
    if room is None:
        return jsonify({'message': 'Room closed', 'room_id': room_id.upper()})
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/players/<string:player_id>/role', methods=['PUT'])
def update_role(room_id, player_id):
    data = _body()
    room = coordinator.update_player_role(room_id, player_id, data.get('role'),
                                          requester_id=data.get('requester_id'))
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/status', methods=['PUT'])
def update_status(room_id):
    data = _body()
    room = coordinator.force_room_status(room_id, data.get('requester_id'), data.get('status'))
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/start', methods=['POST'])
def start(room_id):
    room = coordinator.request_start(room_id, _body().get('requester_id'))
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>/target-word', methods=['POST'])
def submit_target_word(room_id):
    data = _body()
    game = coordinator.submit_target_word(room_id, data.get('player_id'), data.get('target_word'),
                                          data.get('word_type'))
    return jsonify(game.to_dict()), 201


@rooms.route('/<string:room_id>/lobby', methods=['POST'])
def return_to_lobby(room_id):
    room = coordinator.return_to_lobby(room_id, _body().get('player_id'))
    return jsonify(room.to_dict())


@rooms.route('/<string:room_id>', methods=['DELETE'])
def delete_room(room_id):
    requester_id = request.args.get('requester_id') or _body().get('requester_id')
    coordinator.delete_room(room_id, requester_id)
    return jsonify({'message': 'Room deleted', 'room_id': room_id.upper()})
