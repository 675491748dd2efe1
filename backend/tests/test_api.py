def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json() == {'status': 'healthy'}


def test_list_challenges(client):
    res = client.get('/api/challenges')
    assert res.status_code == 200
    data = res.get_json()
    assert [c['id'] for c in data] == ['1', '2', '3']
    assert {c['difficulty'] for c in data} == {'Beginner', 'Intermediate', 'Advanced'}
    assert all('starter_code' in c for c in data)


def test_get_challenge(client):
    res = client.get('/api/challenges/2')
    assert res.status_code == 200
    assert res.get_json()['points'] == 200
    res = client.get('/api/challenges/42')
    assert res.status_code == 404
    assert 'error' in res.get_json()


def test_rooms_and_status_start_empty(client):
    assert client.get('/api/rooms').get_json() == []
    assert client.get('/api/status').get_json() == {'online': 0, 'queued': 0, 'rooms': 0}


def test_rooms_reflect_socket_activity(client, sio_factory):
    alice = sio_factory()
    alice.emit('register', {'username': 'alice', 'userId': 'u1'}, namespace='/ws')
    alice.emit('create_room', {'name': 'Arena', 'challengeId': '2'}, namespace='/ws')
    rooms = client.get('/api/rooms').get_json()
    assert len(rooms) == 1
    assert rooms[0]['name'] == 'Arena'
    assert rooms[0]['difficulty'] == 'Intermediate'
    assert rooms[0]['players'] == 1
    assert client.get('/api/status').get_json()['online'] == 1
