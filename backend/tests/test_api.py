from pairplay.services.catalog import BULLS_AND_COWS_ID

GAME_ID = str(BULLS_AND_COWS_ID)


def test_health_check(client):
    res = client.get('/api/v1/health-check')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'


def test_unknown_route_is_json(client):
    res = client.get('/api/v1/nope')
    assert res.status_code == 404
    assert 'error' in res.get_json()


def test_login_round_trip(client, login):
    headers, user = login('Alice@Example.com ')
    assert user['email'] == 'alice@example.com'
    assert user['email_verified'] is True
    res = client.get('/api/v1/auth/me', headers=headers)
    assert res.status_code == 200
    assert res.get_json()['id'] == user['id']


def test_me_requires_token(client):
    assert client.get('/api/v1/auth/me').status_code == 401
    res = client.get('/api/v1/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert res.status_code == 401
    assert res.get_json()['error'] == 'Authentication required'


def test_wrong_code_rejected(client, flask_app):
    client.post('/api/v1/auth/request-otp', json={'email': 'carol@example.com'})
    code = flask_app.extensions['mailer'].last_code_for('carol@example.com')
    wrong = '1111' if code != '1111' else '2222'
    res = client.post('/api/v1/auth/verify-otp', json={'email': 'carol@example.com', 'otp': wrong})
    assert res.status_code == 401


def test_code_is_single_use(client, flask_app):
    client.post('/api/v1/auth/request-otp', json={'email': 'carol@example.com'})
    code = flask_app.extensions['mailer'].last_code_for('carol@example.com')
    first = client.post('/api/v1/auth/verify-otp', json={'email': 'carol@example.com', 'otp': code})
    assert first.status_code == 200
    again = client.post('/api/v1/auth/verify-otp', json={'email': 'carol@example.com', 'otp': code})
    assert again.status_code == 401


def test_request_otp_rate_limited(client):
    for _ in range(3):
        assert client.post('/api/v1/auth/request-otp', json={'email': 'dan@example.com'}).status_code == 200
    res = client.post('/api/v1/auth/request-otp', json={'email': 'dan@example.com'})
    assert res.status_code == 429


def test_request_otp_rejects_bad_email(client):
    res = client.post('/api/v1/auth/request-otp', json={'email': 'not-an-email'})
    assert res.status_code == 400


def test_non_string_code_is_rejected(client):
    res = client.post('/api/v1/auth/verify-otp', json={'email': 'carol@example.com', 'otp': 1234})
    assert res.status_code == 400


def test_non_object_bodies_are_rejected(client, login):
    assert client.post('/api/v1/auth/request-otp', json=['a@example.com']).status_code == 400
    assert client.post('/api/v1/auth/request-otp', json={'email': 42}).status_code == 400
    assert client.post('/api/v1/auth/verify-otp', json=['1234']).status_code == 400
    headers, _ = login('alice@example.com')
    assert client.post('/api/v1/partners/request', json=['bob@example.com'], headers=headers).status_code == 400
    assert client.put('/api/v1/users/me', json={'display_name': 5}, headers=headers).status_code == 400


def test_update_display_name(client, login):
    headers, _ = login('alice@example.com')
    res = client.put('/api/v1/users/me', json={'display_name': 'Al'}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()['display_name'] == 'Al'
    assert client.put('/api/v1/users/me', json={'display_name': ''}, headers=headers).status_code == 400


# ---- Partners ----

def test_accept_cancels_other_pending_requests(client, login):
    alice_h, _ = login('alice@example.com')
    bob_h, _ = login('bob@example.com')
    carol_h, _ = login('carol@example.com')
    dave_h, _ = login('dave@example.com')

    to_bob = client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=alice_h).get_json()
    client.post('/api/v1/partners/request', json={'email': 'carol@example.com'}, headers=alice_h)
    client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=dave_h)
    assert len(client.get('/api/v1/partners/requests/received', headers=bob_h).get_json()) == 2

    res = client.post(f"/api/v1/partners/accept/{to_bob['id']}", headers=bob_h)
    assert res.status_code == 201

    assert client.get('/api/v1/partners/requests/received', headers=carol_h).get_json() == []
    assert client.get('/api/v1/partners/requests/sent', headers=dave_h).get_json() == []
    current = client.get('/api/v1/partners/current', headers=alice_h).get_json()
    assert {current['user1']['email'], current['user2']['email']} == {'alice@example.com', 'bob@example.com'}


def test_duplicate_partner_request_conflicts(client, login):
    alice_h, _ = login('alice@example.com')
    assert client.post('/api/v1/partners/request', json={'email': 'x@example.com'}, headers=alice_h).status_code == 201
    res = client.post('/api/v1/partners/request', json={'email': 'x@example.com'}, headers=alice_h)
    assert res.status_code == 409


def test_cannot_request_self(client, login):
    alice_h, _ = login('alice@example.com')
    res = client.post('/api/v1/partners/request', json={'email': 'alice@example.com'}, headers=alice_h)
    assert res.status_code == 400


def test_request_to_unknown_email_is_received_after_signup(client, login):
    alice_h, _ = login('alice@example.com')
    client.post('/api/v1/partners/request', json={'email': 'erin@example.com'}, headers=alice_h)
    erin_h, _ = login('erin@example.com')
    received = client.get('/api/v1/partners/requests/received', headers=erin_h).get_json()
    assert len(received) == 1
    assert received[0]['recipient_id'] is None


def test_accept_rejected_when_already_partnered(client, partnered, login):
    carol_h, _ = login('carol@example.com')
    alice_h, _ = partnered['alice']
    req = client.post('/api/v1/partners/request', json={'email': 'alice@example.com'}, headers=carol_h).get_json()
    res = client.post(f"/api/v1/partners/accept/{req['id']}", headers=alice_h)
    assert res.status_code == 400
    assert res.get_json()['error'] == 'You already have a partner'


def test_only_recipient_can_accept(client, login):
    alice_h, _ = login('alice@example.com')
    carol_h, _ = login('carol@example.com')
    req = client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=alice_h).get_json()
    assert client.post(f"/api/v1/partners/accept/{req['id']}", headers=carol_h).status_code == 403


def test_reject_and_cancel(client, login):
    alice_h, _ = login('alice@example.com')
    bob_h, _ = login('bob@example.com')
    first = client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=alice_h).get_json()
    res = client.post(f"/api/v1/partners/reject/{first['id']}", headers=bob_h)
    assert res.get_json()['status'] == 'rejected'

    second = client.post('/api/v1/partners/request', json={'email': 'bob@example.com'}, headers=alice_h).get_json()
    assert client.delete(f"/api/v1/partners/request/{second['id']}", headers=bob_h).status_code == 403
    res = client.delete(f"/api/v1/partners/request/{second['id']}", headers=alice_h)
    assert res.get_json()['status'] == 'cancelled'


def test_disconnect(client, partnered):
    alice_h, _ = partnered['alice']
    bob_h, _ = partnered['bob']
    assert client.delete('/api/v1/partners/current', headers=bob_h).status_code == 200
    assert client.get('/api/v1/partners/current', headers=alice_h).status_code == 404


# ---- Games ----

def test_list_games(client):
    games = client.get('/api/v1/games').get_json()
    assert [g['name'] for g in games] == ['Bulls and Cows']
    assert games[0]['details']['type'] == 'bulls_and_cows'


def test_play_requires_partner(client, login):
    alice_h, _ = login('alice@example.com')
    res = client.post('/api/v1/games/play', json={'game_id': GAME_ID}, headers=alice_h)
    assert res.status_code == 400
    assert client.post('/api/v1/games/play', json={'game_id': 'nope'}, headers=alice_h).status_code == 400


def _start_play(client, partnered):
    alice_h, _ = partnered['alice']
    bob_h, _ = partnered['bob']
    res = client.post('/api/v1/games/play', json={'game_id': GAME_ID}, headers=alice_h).get_json()
    assert res['type'] == 'request'
    request_id = res['request']['id']
    # Asking again returns the same pending request
    again = client.post('/api/v1/games/play', json={'game_id': GAME_ID}, headers=alice_h).get_json()
    assert again['request']['id'] == request_id

    pending = client.get('/api/v1/games/requests/pending', headers=bob_h).get_json()
    assert [r['id'] for r in pending] == [request_id]
    res = client.post(f'/api/v1/games/requests/{request_id}/respond', json={'accept': True}, headers=bob_h)
    assert res.status_code == 200
    return res.get_json()['play']


def test_duplicate_game_request_conflicts(client, partnered):
    alice_h, _ = partnered['alice']
    assert client.post('/api/v1/games/requests', json={'game_id': GAME_ID}, headers=alice_h).status_code == 201
    res = client.post('/api/v1/games/requests', json={'game_id': GAME_ID}, headers=alice_h)
    assert res.status_code == 409


def test_only_partner_can_respond(client, partnered):
    alice_h, _ = partnered['alice']
    req = client.post('/api/v1/games/requests', json={'game_id': GAME_ID}, headers=alice_h).get_json()
    res = client.post(f"/api/v1/games/requests/{req['id']}/respond", json={'accept': True}, headers=alice_h)
    assert res.status_code == 403


def test_reject_game_request(client, partnered):
    alice_h, _ = partnered['alice']
    bob_h, _ = partnered['bob']
    req = client.post('/api/v1/games/requests', json={'game_id': GAME_ID}, headers=alice_h).get_json()
    res = client.post(f"/api/v1/games/requests/{req['id']}/respond", json={'accept': False}, headers=bob_h)
    assert res.get_json()['request']['status'] == 'rejected'
    assert 'play' not in res.get_json()
    again = client.post(f"/api/v1/games/requests/{req['id']}/respond", json={'accept': True}, headers=bob_h)
    assert again.status_code == 400


def test_full_bulls_and_cows_game(client, partnered):
    alice_h, alice = partnered['alice']
    bob_h, bob = partnered['bob']
    play = _start_play(client, partnered)
    play_id = play['id']
    assert play['partner1_id'] == alice['id']
    assert play['is_live'] is True

    joined = client.post('/api/v1/games/play', json={'game_id': GAME_ID}, headers=alice_h).get_json()
    assert joined['type'] == 'play'
    assert joined['play']['id'] == play_id

    res = client.post(f'/api/v1/games/plays/{play_id}/set-secret', json={'secret': '0123'}, headers=alice_h)
    assert res.status_code == 400
    assert 'cannot start with 0' in res.get_json()['error']

    client.post(f'/api/v1/games/plays/{play_id}/set-secret', json={'secret': '1234'}, headers=alice_h)
    seen_by_bob = client.get(f'/api/v1/games/plays/{play_id}', headers=bob_h).get_json()
    assert seen_by_bob['play_data']['partner1_secret'] is None
    res = client.post(f'/api/v1/games/plays/{play_id}/set-secret', json={'secret': '5678'}, headers=bob_h)
    assert res.get_json()['play_data']['status'] == 'playing'
    assert res.get_json()['play_data']['partner1_secret'] is None

    res = client.post(f'/api/v1/games/plays/{play_id}/guess', json={'guess': '5687'}, headers=alice_h).get_json()
    assert (res['bulls'], res['cows'], res['solved']) == (2, 2, False)

    res = client.post(f'/api/v1/games/plays/{play_id}/guess', json={'guess': '5678'}, headers=alice_h)
    assert res.status_code == 400
    assert res.get_json()['error'] == "It's not your turn"

    res = client.post(f'/api/v1/games/plays/{play_id}/guess', json={'guess': '1243'}, headers=bob_h).get_json()
    assert (res['bulls'], res['cows']) == (2, 2)

    res = client.post(f'/api/v1/games/plays/{play_id}/guess', json={'guess': '5678'}, headers=alice_h).get_json()
    assert res['solved'] is True
    final = res['play']
    assert final['is_live'] is False
    assert final['play_data']['status'] == 'completed'
    assert final['play_data']['winner_id'] == alice['id']
    assert final['play_data']['partner2_secret'] == '5678'
    assert len(final['play_data']['guesses']) == 3

    seen_by_bob = client.get(f'/api/v1/games/plays/{play_id}', headers=bob_h).get_json()
    assert seen_by_bob['play_data']['partner1_secret'] == '1234'
    assert client.get(f'/api/v1/games/{GAME_ID}/play', headers=bob_h).status_code == 404


def test_outsider_cannot_read_play(client, partnered, login):
    play = _start_play(client, partnered)
    carol_h, _ = login('carol@example.com')
    assert client.get(f"/api/v1/games/plays/{play['id']}", headers=carol_h).status_code == 403


def test_generic_update_refused_for_rules_managed_game(client, partnered):
    alice_h, _ = partnered['alice']
    play = _start_play(client, partnered)
    res = client.put(f"/api/v1/games/plays/{play['id']}", json={'play_data': {'status': 'completed'}}, headers=alice_h)
    assert res.status_code == 400
    current = client.get(f"/api/v1/games/plays/{play['id']}", headers=alice_h).get_json()
    assert current['play_data'] == {}


def test_live_play_lookup(client, partnered):
    bob_h, _ = partnered['bob']
    play = _start_play(client, partnered)
    res = client.get(f'/api/v1/games/{GAME_ID}/play', headers=bob_h)
    assert res.status_code == 200
    assert res.get_json()['id'] == play['id']
