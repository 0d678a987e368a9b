from flask import Blueprint, current_app, jsonify

from contact import store
from contact.api import register_error_handlers
from contact.errors import ConflictError, NotFoundError

games = Blueprint('games', __name__)
register_error_handlers(games)


@games.route('/', methods=['GET'], strict_slashes=False)
def list_games():
    return jsonify([g.to_dict() for g in store.list_games()])


@games.route('/<string:game_id>', methods=['GET'])
def get_game(game_id):
    return jsonify(store.get_game(game_id).to_dict())


@games.route('/room/<string:room_id>', methods=['GET'])
def list_room_games(room_id):
    return jsonify([g.to_dict() for g in store.find_games_by_room(room_id)])


@games.route('/room/<string:room_id>/active', methods=['GET'])
def get_active_game(room_id):
    game = store.find_active_game_by_room(room_id)
    if not game:
        raise NotFoundError('No active game in this room')
    return jsonify(game.to_dict())


@games.route('/<string:game_id>', methods=['DELETE'])
def delete_game(game_id):
    game = store.get_game(game_id)
    if game.is_active:
        raise ConflictError('Active games cannot be deleted')
    store.delete_game(game_id)
    current_app.logger.info(f"[game-purge] game={game_id}")
    return jsonify({'message': 'Game deleted', 'game_id': game_id})
