from contact import socketio, store
from conftest import received
from contact.errors import PersistenceError
from contact.states import ResolutionTrigger


def _clue(sio, game_id, clue_word, clue='a clue', round_number=1, second=False):
    sio.emit('submit_clue', {
        'game_id': game_id,
        'round_number': round_number,
        'clue_word': clue_word,
        'clue': clue,
        'is_second_clue': second,
    }, namespace='/ws')


def _contact(sio, game_id, word, round_number=1, event='contact_click'):
    sio.emit(event, {'game_id': game_id, 'round_number': round_number, 'word': word}, namespace='/ws')


def _flush(sockets):
    for sio in sockets.values():
        sio.get_received('/ws')


def test_socket_connect(sio_client):
    assert sio_client.is_connected('/ws')
    names = [pkt['name'] for pkt in sio_client.get_received('/ws')]
    assert 'connected' in names


def test_join_room_returns_session_token(client, sio_client):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    sio_client.get_received('/ws')
    ack = sio_client.emit('join_room', {'room_id': room_id, 'player_id': 'bob', 'nickname': 'Bob'},
                          namespace='/ws', callback=True)
    assert ack['session_token']
    assert [p['player_id'] for p in ack['room']['players']] == ['wendy', 'bob']
    updates = received(sio_client, 'room_updated')
    assert updates and updates[-1]['room_id'] == room_id


def test_join_unknown_room_reports_error(sio_client):
    sio_client.get_received('/ws')
    ack = sio_client.emit('join_room', {'room_id': 'ZZZZZZ', 'player_id': 'bob', 'nickname': 'Bob'},
                          namespace='/ws', callback=True)
    assert ack == {'error': 'Room not found'}
    assert received(sio_client, 'error') == [{'message': 'Room not found'}]


def test_actions_require_joining_first(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('contact_click', {'game_id': 'game_x', 'round_number': 1, 'word': 'hat'}, namespace='/ws')
    assert received(sio_client, 'error') == [{'message': 'Join a room before playing'}]


def test_start_notifies_wordmaster(client, connect_player):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    wendy, _ = connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    connect_player(room_id, 'cid', 'Cid')
    client.put(f'/api/rooms/{room_id}/players/wendy/role', json={'role': 'wordmaster'})
    client.put(f'/api/rooms/{room_id}/players/bob/role', json={'role': 'guesser'})
    client.put(f'/api/rooms/{room_id}/players/cid/role', json={'role': 'guesser'})
    wendy.get_received('/ws')
    bob.get_received('/ws')

    client.post(f'/api/rooms/{room_id}/start', json={'requester_id': 'wendy'})
    wendy_events = [p['name'] for p in wendy.get_received('/ws')]
    bob_events = [p['name'] for p in bob.get_received('/ws')]
    assert 'show_target_word_modal' in wendy_events
    assert 'show_target_word_modal' not in bob_events
    assert 'wordmaster_choosing' in bob_events

    client.post(f'/api/rooms/{room_id}/target-word', json={'player_id': 'wendy', 'target_word': 'harmony'})
    started = received(bob, 'game_started')
    assert len(started) == 1
    assert started[0]['game']['target_word'] is None


def test_contact_success_reveals_next_letter(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']

    _clue(s['alice'], game_id, 'hat', 'Worn on the head')
    clue_events = received(s['bob'], 'clue_submitted')
    assert clue_events[0]['clue'] == 'Worn on the head'
    # Guessers never see the clue word while the round is open
    assert clue_events[0]['game']['rounds'][0]['clue_word'] is None
    assert coordinator.round_timers.is_pending((game_id, 1))

    _contact(s['bob'], game_id, 'HAT')
    _contact(s['carol'], game_id, 'hat')
    _flush(s)

    assert coordinator.round_timers.fire((game_id, 1))
    ended = received(s['wendy'], 'round_ended')
    assert len(ended) == 1
    result = ended[0]
    assert result['contact_successful'] is True
    assert result['trigger'] == 'timer_expired'
    assert result['new_letter'] == 'A'
    assert result['clue_word'] == 'HAT'
    assert result['points_awarded'] == {'alice': 20, 'bob': 15, 'carol': 15}
    assert result['game']['revealed_letters'] == ['H', 'A']
    assert result['game']['scores'] == {'wendy': 0, 'alice': 20, 'bob': 15, 'carol': 15}

    game = store.get_game(game_id)
    assert game.current_round_number == 2
    assert game.current_round.clue_giver_id == 'bob'
    assert game.find_round(1).contact_successful is True


def test_next_round_rotates_clue_giver(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)
    coordinator.round_timers.fire((game_id, 1))

    started = received(s['carol'], 'next_round_started')
    assert started[0]['round_number'] == 2
    assert started[0]['clue_giver_id'] == 'bob'
    round_one = started[0]['game']['rounds'][0]
    assert round_one['contact_successful'] is False
    assert round_one['clue_word'] == 'HAT'


def test_round_without_contacts_fails(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)
    coordinator.round_timers.fire((game_id, 1))
    result = received(s['wendy'], 'round_ended')[0]
    assert result['contact_successful'] is False
    assert result['reason'] == 'No contacts were made'
    assert result['game']['revealed_letters'] == ['H']


def test_mismatched_contacts_fail(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _contact(s['bob'], game_id, 'hat')
    _contact(s['carol'], game_id, 'hot')
    _flush(s)
    coordinator.round_timers.fire((game_id, 1))
    result = received(s['wendy'], 'round_ended')[0]
    assert result['contact_successful'] is False
    assert result['reason'] == 'Contact guesses did not match'
    assert result['points_awarded'] == {}
    words = {w['player_id']: w for w in result['revealed_words']}
    assert words['bob']['is_correct'] is True
    assert words['carol']['is_correct'] is False


def test_wordmaster_block_ends_round(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _contact(s['bob'], game_id, 'hat')
    _contact(s['carol'], game_id, 'hat')
    _flush(s)

    s['wendy'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': 'Hat'}, namespace='/ws')
    guessed = received(s['bob'], 'wordmaster_guessed')
    assert guessed[0]['correct'] is True
    assert guessed[0]['guess'] == 'HAT'

    result = received(s['wendy'], 'round_ended')[0]
    assert result['contact_successful'] is False
    assert result['trigger'] == 'wordmaster_blocked'
    assert result['reason'] == 'Wordmaster blocked the clue word'
    assert result['new_letter'] is None
    assert result['game']['revealed_letters'] == ['H']
    assert result['game']['scores']['wendy'] == 10
    assert result['game']['scores']['alice'] == 0

    # The round timer was cancelled; a late expiry does nothing
    assert not coordinator.round_timers.is_pending((game_id, 1))
    assert coordinator.round_timers.fire((game_id, 1)) is False


def test_wordmaster_guess_limit(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    for guess in ('hen', 'hog', 'hut'):
        s['wendy'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': guess},
                        namespace='/ws')
    remaining = [e['guesses_remaining'] for e in received(s['wendy'], 'wordmaster_guessed')]
    assert remaining == [2, 1, 0]

    s['wendy'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': 'hip'}, namespace='/ws')
    assert received(s['wendy'], 'error') == [{'message': 'No guesses remaining this round'}]

    rnd = store.get_game(game_id).find_round(1)
    assert rnd.wordmaster_guesses_remaining == 0
    assert len(rnd.wordmaster_guesses) == 3
    # Running out of guesses leaves the round open for the timer
    assert rnd.is_open
    assert coordinator.round_timers.is_pending((game_id, 1))


def test_exhausted_wordmaster_resolves_when_configured(flask_app, setup_game, coordinator):
    flask_app.config['RESOLVE_ON_WORDMASTER_EXHAUSTED'] = True
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _contact(s['bob'], game_id, 'hat')
    _contact(s['carol'], game_id, 'hat')
    _flush(s)

    for guess in ('hen', 'hog', 'hut'):
        s['wendy'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': guess},
                        namespace='/ws')
    result = received(s['bob'], 'round_ended')
    assert len(result) == 1
    assert result[0]['trigger'] == 'guesses_exhausted'
    assert result[0]['contact_successful'] is True
    assert result[0]['new_letter'] == 'A'


def test_only_wordmaster_can_block(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)
    s['bob'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': 'hat'}, namespace='/ws')
    assert received(s['bob'], 'error') == [{'message': 'Only the Wordmaster can block a clue'}]


def test_wordmaster_cannot_block_before_clue(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    s['wendy'].emit('wordmaster_guess', {'game_id': game_id, 'round_number': 1, 'guess': 'hat'}, namespace='/ws')
    assert received(s['wendy'], 'error') == [{'message': 'There is no clue to block yet'}]


def test_clue_word_must_start_with_revealed_letters(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'cat')
    assert received(s['alice'], 'error') == [{'message': 'Clue word must start with "H"'}]
    assert received(s['bob'], 'clue_submitted') == []
    assert store.get_game(game_id).find_round(1).clue_word is None
    assert not coordinator.round_timers.is_pending((game_id, 1))


def test_only_clue_giver_gives_clues(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['bob'], game_id, 'hat')
    assert received(s['bob'], 'error') == [{'message': 'Only the clue-giver can give a clue'}]


def test_first_clue_resubmission(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    # Same clue word again is ignored
    _clue(s['alice'], game_id, 'HAT')
    assert received(s['alice'], 'error') == []
    assert received(s['bob'], 'clue_submitted') == []

    _clue(s['alice'], game_id, 'hen')
    assert received(s['alice'], 'error') == [{'message': 'You have already given a clue this round'}]
    assert store.get_game(game_id).find_round(1).clue_word == 'HAT'


def test_second_clue(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, None, 'more help', second=True)
    assert received(s['alice'], 'error') == [{'message': 'Give your first clue before a second one'}]

    _clue(s['alice'], game_id, 'hat', 'Worn on the head')
    _clue(s['alice'], game_id, None, 'Has a brim', second=True)
    events = received(s['bob'], 'clue_submitted')
    assert [e['is_second_clue'] for e in events] == [False, True]
    assert store.get_game(game_id).find_round(1).second_clue == 'Has a brim'

    _clue(s['alice'], game_id, None, 'One more', second=True)
    assert received(s['alice'], 'error')[-1] == {'message': 'You have already given a second clue'}


def test_round_timer_starts_with_first_clue_only(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _clue(s['alice'], game_id, None, 'Has a brim', second=True)
    timers = received(s['carol'], 'round_timer_started')
    assert len(timers) == 1
    assert timers[0]['round_number'] == 1
    assert timers[0]['duration_sec'] == 120


def test_contact_replaced_then_removed(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _contact(s['bob'], game_id, 'hot')
    _contact(s['bob'], game_id, 'hat', event='update_contact')

    rnd = store.get_game(game_id).find_round(1)
    assert [(c.player_id, c.word) for c in rnd.contacts] == [('bob', 'HAT')]

    updates = received(s['carol'], 'contact_updated')
    assert len(updates) == 2
    # Contact words stay hidden while the round is open
    assert updates[-1]['game']['rounds'][0]['contacts'][0]['word'] is None

    s['bob'].emit('remove_contact', {'game_id': game_id, 'round_number': 1}, namespace='/ws')
    assert store.get_game(game_id).find_round(1).contacts == []
    events = [e.event for e in store.get_game(game_id).event_log]
    assert events[-3:] == ['contact_clicked', 'contact_updated', 'contact_removed']


def test_contact_rules(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']

    _contact(s['bob'], game_id, 'hat')
    assert received(s['bob'], 'error') == [{'message': 'Wait for the clue before making contact'}]

    _clue(s['alice'], game_id, 'hat')
    _contact(s['alice'], game_id, 'hat')
    assert received(s['alice'], 'error')[-1] == {'message': 'The clue-giver cannot make contact'}

    _contact(s['wendy'], game_id, 'hat')
    assert received(s['wendy'], 'error')[-1] == {'message': 'Only guessers can make contact'}


def test_actions_on_ended_round_are_ignored(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    coordinator.round_timers.fire((game_id, 1))
    _flush(s)

    _contact(s['carol'], game_id, 'hat', round_number=1)
    assert received(s['carol']) == []
    assert coordinator.resolve_round(game_id, g['room_id'], 1, ResolutionTrigger.TIMER_EXPIRED) is None


def test_target_word_guess_wins_with_bonus(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    completed = received(s['carol'], 'game_completed')
    assert len(completed) == 1
    assert completed[0]['winner_id'] == 'bob'
    assert completed[0]['points'] == 125
    assert completed[0]['game']['target_word'] == 'HARMONY'
    assert completed[0]['game']['scores']['bob'] == 125
    assert completed[0]['game']['status'] == 'completed'

    assert store.get_room(g['room_id']).status == 'completed'
    assert not coordinator.round_timers.is_pending((game_id, 1))

    # The game is over: nothing more is accepted or reported
    s['carol'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    assert received(s['carol']) == []


def test_target_word_bonus_only_for_first_attempt(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'melody'}, namespace='/ws')
    assert received(s['bob'], 'target_word_guess_result')[0]['correct'] is False
    assert received(s['carol'], 'target_word_guess_result') == []

    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    assert received(s['bob'], 'error') == [{'message': 'You already used your guess for this letter'}]

    s['carol'].emit('target_word_guess', {'game_id': game_id, 'guess': 'HARMONY'}, namespace='/ws')
    completed = received(s['alice'], 'game_completed')[0]
    assert completed['winner_id'] == 'carol'
    assert completed['points'] == 100


def test_target_word_attempt_resets_with_new_letter(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'melody'}, namespace='/ws')
    _contact(s['bob'], game_id, 'hat')
    _contact(s['carol'], game_id, 'hat')
    coordinator.round_timers.fire((game_id, 1))
    _flush(s)

    assert store.get_game(game_id).per_letter_guess_attempts == {}
    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    completed = received(s['wendy'], 'game_completed')[0]
    assert completed['winner_id'] == 'bob'
    # Two letters showing, and not the first attempt of the game
    assert completed['points'] == 90


def test_target_word_guess_needs_a_clue(setup_game):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    assert received(s['bob'], 'error') == [{'message': 'Wait for the first clue before guessing the secret word'}]
    s['wendy'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    assert received(s['wendy'], 'error') == [{'message': 'Only guessers can guess the secret word'}]


def test_fully_revealed_word_ends_without_winner(setup_game, coordinator):
    g = setup_game(target_word='hello')
    game_id, s = g['game_id'], g['sockets']
    rotation = ['alice', 'bob', 'carol', 'alice']
    for number, (clue_word, giver) in enumerate(zip(['hat', 'help', 'helmet', 'hells'], rotation), start=1):
        _clue(s[giver], game_id, clue_word, round_number=number)
        for pid in ('alice', 'bob', 'carol'):
            if pid != giver:
                _contact(s[pid], game_id, clue_word, round_number=number)
        assert coordinator.round_timers.fire((game_id, number))

    completed = received(s['wendy'], 'game_completed')
    assert len(completed) == 1
    assert completed[0]['winner_id'] is None
    game = completed[0]['game']
    assert game['revealed_letters'] == list('HELLO')
    assert game['status'] == 'completed'
    assert store.get_room(g['room_id']).status == 'completed'
    assert not coordinator.round_timers.is_pending((game_id, 5))


def test_guesser_disconnect_keeps_round_going(setup_game, coordinator):
    g = setup_game(guessers=('alice', 'bob', 'carol', 'dave'))
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    s['bob'].disconnect(namespace='/ws')
    assert coordinator.disconnect_timers.is_pending('bob')
    assert coordinator.disconnect_timers.fire('bob')

    notices = received(s['wendy'])
    names = [p['name'] for p in notices]
    assert 'player_disconnected_during_game' in names
    assert 'game_ended_disconnect' not in names
    assert 'player_left' in names
    notice = next(p['args'][0] for p in notices if p['name'] == 'player_disconnected_during_game')
    assert notice['was_clue_giver'] is False
    assert notice['disconnected_player'] == 'Bob'

    game = store.get_game(game_id)
    assert game.is_active
    assert game.guessers == ['alice', 'carol', 'dave']
    assert game.find_round(1).is_open
    assert coordinator.round_timers.is_pending((game_id, 1))
    assert store.get_room(g['room_id']).find_player('bob') is None


def test_clue_giver_disconnect_starts_next_round(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    s['alice'].disconnect(namespace='/ws')
    coordinator.disconnect_timers.fire('alice')

    notice = received(s['bob'])
    by_name = {p['name']: p['args'][0] for p in notice}
    assert by_name['player_disconnected_during_game']['was_clue_giver'] is True
    assert by_name['next_round_started']['round_number'] == 2
    assert by_name['next_round_started']['clue_giver_id'] == 'bob'
    assert 'round_ended' not in by_name

    game = store.get_game(game_id)
    assert game.is_active
    assert game.guessers == ['bob', 'carol']
    assert game.find_round(1).contact_successful is False
    assert not game.find_round(1).is_open
    assert game.revealed_letters == ['H']
    assert not coordinator.round_timers.is_pending((game_id, 1))


def test_disconnect_below_three_players_ends_game(setup_game, coordinator):
    g = setup_game(guessers=('alice', 'bob'))
    game_id, s = g['game_id'], g['sockets']

    s['bob'].disconnect(namespace='/ws')
    coordinator.disconnect_timers.fire('bob')

    ended = received(s['alice'], 'game_ended_disconnect')
    assert len(ended) == 1
    assert ended[0]['reason'] == 'Not enough players'
    assert ended[0]['game']['winner_id'] is None
    assert ended[0]['game']['status'] == 'completed'
    assert store.get_room(g['room_id']).status == 'completed'


def test_wordmaster_disconnect_ends_game(setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    s['wendy'].disconnect(namespace='/ws')
    coordinator.disconnect_timers.fire('wendy')

    ended = received(s['carol'], 'game_ended_disconnect')
    assert ended[0]['reason'] == 'Wordmaster disconnected'
    room = store.get_room(g['room_id'])
    assert room.find_player('wendy') is None
    assert room.admin_id == 'alice'


def test_reconnect_within_grace_window(flask_app, setup_game, coordinator):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    s['alice'].disconnect(namespace='/ws')
    assert coordinator.disconnect_timers.is_pending('alice')

    again = socketio.test_client(flask_app, namespace='/ws', auth={'session_token': g['tokens']['alice']})
    try:
        connected = received(again, 'connected')
        assert connected[0]['player_id'] == 'alice'
        assert not coordinator.disconnect_timers.is_pending('alice')
        assert coordinator.disconnect_timers.fire('alice') is False
        assert received(s['bob'], 'player_reconnected')[0]['player_id'] == 'alice'

        # The restored connection acts as alice
        _clue(again, game_id, 'hat')
        assert store.get_game(game_id).find_round(1).clue_word == 'HAT'
        assert received(again, 'clue_submitted')
    finally:
        again.disconnect(namespace='/ws')


def test_bad_session_token_is_anonymous(flask_app, setup_game):
    setup_game()
    anon = socketio.test_client(flask_app, namespace='/ws', auth={'session_token': 'forged'})
    try:
        connected = received(anon, 'connected')
        assert 'player_id' not in connected[0]
    finally:
        anon.disconnect(namespace='/ws')


def test_wordmaster_leaving_during_setup_returns_to_lobby(client, connect_player):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    connect_player(room_id, 'cid', 'Cid')
    client.put(f'/api/rooms/{room_id}/players/wendy/role', json={'role': 'wordmaster'})
    client.put(f'/api/rooms/{room_id}/players/bob/role', json={'role': 'guesser'})
    client.put(f'/api/rooms/{room_id}/players/cid/role', json={'role': 'guesser'})
    client.post(f'/api/rooms/{room_id}/start', json={'requester_id': 'wendy'})
    bob.get_received('/ws')

    res = client.delete(f'/api/rooms/{room_id}/players/wendy')
    assert res.status_code == 200
    room = res.get_json()
    assert room['status'] == 'waiting'
    assert room['admin_id'] == 'bob'
    setup = received(bob, 'wordmaster_disconnected_during_setup')
    assert setup == [{'player_id': 'wendy', 'wordmaster_nickname': 'Wendy'}]


def test_kicked_player_is_notified(client, connect_player):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    bob.get_received('/ws')

    res = client.delete(f'/api/rooms/{room_id}/players/bob', json={'requester_id': 'wendy'})
    assert res.status_code == 200
    assert received(bob, 'player_kicked') == [{'room_id': room_id, 'player_id': 'bob'}]


def test_winning_guess_does_not_need_a_separate_score_write(setup_game, monkeypatch):
    g = setup_game()
    game_id, s = g['game_id'], g['sockets']
    _clue(s['alice'], game_id, 'hat')
    _flush(s)

    def _unavailable(*args, **kwargs):
        raise PersistenceError()

    monkeypatch.setattr(store, 'update_score', _unavailable)
    s['bob'].emit('target_word_guess', {'game_id': game_id, 'guess': 'harmony'}, namespace='/ws')
    assert received(s['bob'], 'error') == []
    game = store.get_game(game_id)
    assert game.winner_id == 'bob'
    assert game.scores['bob'] == 125


def test_player_ready_toggles(client, connect_player):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    wendy, _ = connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    wendy.get_received('/ws')

    bob.emit('player_ready', {'is_ready': False}, namespace='/ws')
    assert store.get_room(room_id).find_player('bob').is_ready is False
    updates = received(wendy, 'room_updated')
    players = {p['player_id']: p for p in updates[-1]['players']}
    assert players['bob']['is_ready'] is False

    bob.emit('player_ready', {'is_ready': True}, namespace='/ws')
    assert store.get_room(room_id).find_player('bob').is_ready is True


def test_lobby_disconnect_removes_player_after_grace(client, connect_player, coordinator):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    wendy, _ = connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    wendy.get_received('/ws')

    bob.disconnect(namespace='/ws')
    assert coordinator.disconnect_timers.is_pending('bob')
    # Still seated until the grace window runs out
    assert store.get_room(room_id).find_player('bob') is not None
    assert coordinator.disconnect_timers.fire('bob')

    assert received(wendy, 'player_left') == [{'player_id': 'bob', 'nickname': 'Bob'}]
    room = store.get_room(room_id)
    assert [p.player_id for p in room.players] == ['wendy']
    assert room.status == 'waiting'


def test_last_lobby_player_disconnecting_destroys_room(client, connect_player, coordinator):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    wendy, _ = connect_player(room_id, 'wendy', 'Wendy')

    wendy.disconnect(namespace='/ws')
    assert coordinator.disconnect_timers.fire('wendy')
    assert store.find_room_by_id(room_id) is None


def test_wordmaster_disconnect_during_setup_reverts_to_lobby(client, connect_player, coordinator):
    room_id = client.post('/api/rooms', json={'player_id': 'wendy', 'nickname': 'Wendy'}).get_json()['room_id']
    wendy, _ = connect_player(room_id, 'wendy', 'Wendy')
    bob, _ = connect_player(room_id, 'bob', 'Bob')
    connect_player(room_id, 'cid', 'Cid')
    client.put(f'/api/rooms/{room_id}/players/wendy/role', json={'role': 'wordmaster'})
    client.put(f'/api/rooms/{room_id}/players/bob/role', json={'role': 'guesser'})
    client.put(f'/api/rooms/{room_id}/players/cid/role', json={'role': 'guesser'})
    client.post(f'/api/rooms/{room_id}/start', json={'requester_id': 'wendy'})
    assert store.get_room(room_id).status == 'starting'
    bob.get_received('/ws')

    wendy.disconnect(namespace='/ws')
    assert received(bob, 'wordmaster_disconnected_during_setup') == []
    assert coordinator.disconnect_timers.fire('wendy')

    notices = received(bob)
    names = [p['name'] for p in notices]
    assert 'player_left' in names
    setup = [p['args'][0] for p in notices if p['name'] == 'wordmaster_disconnected_during_setup']
    assert setup == [{'player_id': 'wendy', 'wordmaster_nickname': 'Wendy'}]

    room = store.get_room(room_id)
    assert room.status == 'waiting'
    assert room.admin_id == 'bob'
    assert room.find_player('wendy') is None
    assert store.find_active_game_by_room(room_id) is None
