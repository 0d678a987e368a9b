import os
import sys
import pytest

# Ensure the backend root (containing the `contact` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from contact import create_app, db, socketio
from contact.services.game import coordinator as game_coordinator


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = []
    RESOLVE_ON_WORDMASTER_EXHAUSTED = False


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import contact.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def coordinator(flask_app):
    return game_coordinator


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


def received(sio, name=None):
    """Drain a test client's queue; payloads of `name` only when given."""
    packets = sio.get_received('/ws')
    if name is None:
        return packets
    return [p['args'][0] if p['args'] else None for p in packets if p['name'] == name]


@pytest.fixture()
def connect_player(flask_app):
    """Open a Socket.IO connection and join `room_id` as `player_id`."""
    opened = []

    def _connect(room_id, player_id, nickname):
        sio = socketio.test_client(flask_app, namespace='/ws')
        ack = sio.emit('join_room', {'room_id': room_id, 'player_id': player_id, 'nickname': nickname},
                       namespace='/ws', callback=True)
        opened.append(sio)
        return sio, ack

    yield _connect
    for sio in opened:
        if sio.is_connected('/ws'):
            sio.disconnect(namespace='/ws')


@pytest.fixture()
def setup_game(client, connect_player):
    """Seat a wordmaster plus guessers, start a game and return the live handles.

    The first guesser listed is the clue-giver of round 1.
    """

    def _setup(guessers=('alice', 'bob', 'carol'), target_word='harmony'):
        res = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'})
        assert res.status_code == 201
        room_id = res.get_json()['room_id']

        sockets, tokens = {}, {}
        for pid in ('wendy',) + tuple(guessers):
            sockets[pid], ack = connect_player(room_id, pid, pid.title())
            tokens[pid] = ack['session_token']

        client.put(f'/api/rooms/{room_id}/players/wendy/role', json={'role': 'wordmaster'})
        for pid in guessers:
            res = client.put(f'/api/rooms/{room_id}/players/{pid}/role', json={'role': 'guesser'})
            assert res.status_code == 200

        res = client.post(f'/api/rooms/{room_id}/start', json={'requester_id': 'wendy'})
        assert res.status_code == 200, res.get_json()
        res = client.post(f'/api/rooms/{room_id}/target-word',
                          json={'player_id': 'wendy', 'target_word': target_word, 'word_type': 'noun'})
        assert res.status_code == 201, res.get_json()
        game = res.get_json()

        for sio in sockets.values():
            sio.get_received('/ws')
        return {'room_id': room_id, 'game_id': game['game_id'], 'sockets': sockets, 'tokens': tokens, 'game': game}

    return _setup
