from cardiac_trader import socketio

from conftest import SESSION_ID


def received_names(sio_client):
    return [pkt['name'] for pkt in sio_client.get_received('/ws')]


def join(sio_client, session_id=SESSION_ID):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    sio_client.get_received('/ws')  # flush 'connected'
    sio_client.emit('join_session', {'session_id': session_id}, namespace='/ws')
    return sio_client.get_received('/ws')


def test_socket_connect_and_join(sio_client):
    assert sio_client.is_connected('/ws')

    received = join(sio_client)
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined and joined[0]['args'][0]['room'] == f'session:{SESSION_ID}'
    # No controller yet, so no state snapshot
    assert all(pkt['name'] != 'state' for pkt in received)


def test_join_requires_session_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_session', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'error'


def test_late_joiner_gets_current_state(client, sio_client):
    client.post('/api/game/start', json={'user_id': 'user-1'})
    client.post(f'/api/game/{SESSION_ID}/round/start')

    received = join(sio_client)
    state = [pkt['args'][0] for pkt in received if pkt['name'] == 'state']
    assert state[0]['state'] == 'round_active'
    assert state[0]['remaining_seconds'] == 60


def test_round_events_reach_session_room(flask_app, client, sio_client, clock):
    client.post('/api/game/start', json={'user_id': 'user-1'})
    join(sio_client)

    client.post(f'/api/game/{SESSION_ID}/round/start')
    names = received_names(sio_client)
    assert names[:2] == ['round_started', 'time_update']

    clock.advance(61_000)
    from cardiac_trader import round_registry
    round_registry(flask_app).scheduler.fire_periodic()
    names = received_names(sio_client)
    assert names == ['portfolio_update', 'time_update', 'round_completing', 'round_result']


def test_other_sessions_do_not_receive_events(flask_app, client, sio_client):
    other = socketio.test_client(flask_app, namespace='/ws')
    join(other, session_id='someone-else')
    client.post('/api/game/start', json={'user_id': 'user-1'})
    client.post(f'/api/game/{SESSION_ID}/round/start')

    assert received_names(other) == []
    other.disconnect(namespace='/ws')


def test_leave_session_stops_updates(client, sio_client):
    client.post('/api/game/start', json={'user_id': 'user-1'})
    join(sio_client)
    sio_client.emit('leave_session', {'session_id': SESSION_ID}, namespace='/ws')
    assert received_names(sio_client) == ['left']

    client.post(f'/api/game/{SESSION_ID}/round/start')
    assert received_names(sio_client) == []


def test_ping(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'pong'
    assert received[0]['args'][0] == {'n': 1}
