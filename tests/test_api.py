from datetime import datetime, timedelta

from rotomtracks.models import OrganizerRequest, Participant, SiteLog, TournamentLog


def register(client, t, name, **extra):
    return client.post(f'/api/tournaments/{t.id}/register', json=dict(player_name=name, **extra))


def test_health(client):
    resp = client.get('/api/health')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'ok'


def test_create_and_list_tournaments(client, make_user):
    organizer = make_user(role='organizer')
    start = (datetime.utcnow() + timedelta(days=30)).date().isoformat()
    resp = client.post('/api/tournaments', headers={'X-User-Id': str(organizer.id)}, json={
        'official_id': '30-03-000007',
        'name': 'Cerulean League Challenge',
        'tournament_type': 'TCG League Challenge',
        'city': 'Cerulean',
        'country': 'Kanto',
        'start_date': start,
        'max_players': 16,
    })
    assert resp.status_code == 201
    created = resp.get_json()['tournament']
    assert created['organizer_id'] == organizer.id

    listed = client.get('/api/tournaments?status=upcoming&q=cerulean').get_json()['tournaments']
    assert [t['id'] for t in listed] == [created['id']]

    bad = client.post('/api/tournaments', json={'official_id': '30-03-000007'})
    assert bad.status_code == 400
    assert bad.get_json()['error'] == 'VALIDATION_ERROR'


def test_view_tournament_reports_capacity(client, make_tournament):
    t = make_tournament(max_players=8)
    body = client.get(f'/api/tournaments/{t.id}').get_json()
    assert body['can_register'] is True
    assert body['registration_denied_reason'] is None
    assert body['capacity']['capacity_text'] == '0/8 players'
    assert client.get('/api/tournaments/999').status_code == 404


def test_register_until_full(client, make_tournament):
    t = make_tournament(max_players=1)
    ok = register(client, t, 'Ash Ketchum', player_id='1234567')
    assert ok.status_code == 201
    assert ok.get_json()['status'] == 'registered'

    full = register(client, t, 'Gary Oak')
    assert full.status_code == 409
    body = full.get_json()
    assert body['error'] == 'TOURNAMENT_FULL'
    assert body['reason'] == 'tournament_full'

    waiting = register(client, t, 'Gary Oak', allow_waitlist=True)
    assert waiting.status_code == 201
    assert waiting.get_json()['status'] == 'waitlist'
    assert 'waitlist' in waiting.get_json()['message']

    info = client.get(f'/api/tournaments/{t.id}/register').get_json()
    assert info['can_register'] is False
    assert info['reason'] == 'tournament_full'
    assert info['registration_stats']['waitlist'] == 1


def test_register_denials(client, make_tournament):
    closed = make_tournament(registration_open=False)
    resp = register(client, closed, 'Ash Ketchum')
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'registration_closed'

    started = make_tournament(status='ongoing')
    resp = register(client, started, 'Ash Ketchum')
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'tournament_not_upcoming'

    t = make_tournament()
    resp = register(client, t, 'Ash Ketchum', player_id='012345')
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'player_id'

    register(client, t, 'Ash Ketchum', player_id='12345')
    dup = register(client, t, 'Ash K.', player_id='12345')
    assert dup.status_code == 409
    assert dup.get_json()['error'] == 'DUPLICATE_REGISTRATION'


def test_failed_registration_is_logged(client, session, make_tournament):
    t = make_tournament(registration_open=False)
    register(client, t, 'Ash Ketchum')
    log = session.query(TournamentLog).filter_by(tournament_id=t.id).one()
    assert log.result == 'failure'
    assert log.error.startswith('REGISTRATION_CLOSED')
    assert session.query(SiteLog).filter_by(result='failure').count() == 1


def test_participant_status_changes(client, make_tournament):
    t = make_tournament()
    pid = register(client, t, 'Ash Ketchum').get_json()['participant']['id']
    url = f'/api/tournaments/{t.id}/participants/{pid}'

    resp = client.patch(url, json={'status': 'checked_in'})
    assert resp.status_code == 200
    assert resp.get_json()['participant']['status'] == 'checked_in'

    resp = client.patch(url, json={'status': 'registered'})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body['error'] == 'INVALID_TRANSITION'
    assert body['details'] == {'current_status': 'checked_in', 'requested_status': 'registered'}

    assert client.patch(url, json={}).status_code == 400

    release = client.post(f'{url}/release-slot')
    assert release.status_code == 409
    client.patch(url, json={'status': 'dropped'})
    release = client.post(f'{url}/release-slot').get_json()
    assert release['released'] is True
    assert release['capacity']['current'] == 0

    listed = client.get(f'/api/tournaments/{t.id}/participants?status=dropped').get_json()
    assert [p['id'] for p in listed['participants']] == [pid]


def test_delete_participant_with_results(client, session, make_tournament):
    t = make_tournament()
    a = register(client, t, 'Ash Ketchum').get_json()['participant']['id']
    b = register(client, t, 'Gary Oak').get_json()['participant']['id']
    c = register(client, t, 'Misty Waterflower').get_json()['participant']['id']
    client.post(f'/api/tournaments/{t.id}/matches', json={
        'round_number': 1, 'player1_id': a, 'player2_id': b, 'outcome': 'player1_wins',
    })

    resp = client.delete(f'/api/tournaments/{t.id}/participants/{a}')
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'REFERENTIAL_CONFLICT'

    assert client.delete(f'/api/tournaments/{t.id}/participants/{c}').status_code == 200
    session.expire_all()
    assert session.get(Participant, c) is None
    assert client.get(f'/api/tournaments/{t.id}').get_json()['capacity']['current'] == 2


def test_matches_and_standings(client, make_tournament):
    t = make_tournament()
    ids = [register(client, t, name).get_json()['participant']['id']
           for name in ('Ash Ketchum', 'Gary Oak', 'Misty Waterflower')]
    a, b, c = ids
    resp = client.post(f'/api/tournaments/{t.id}/matches', json={
        'round_number': 1, 'table_number': 1, 'player1_id': a, 'player2_id': b, 'outcome': 'draw',
    })
    assert resp.status_code == 201
    resp = client.post(f'/api/tournaments/{t.id}/matches', json={'matches': [
        {'round_number': 1, 'player1_id': c, 'outcome': 'bye'},
        {'round_number': 2, 'table_number': 1, 'player1_id': a, 'player2_id': c, 'outcome': 'player2_wins'},
    ]})
    assert resp.status_code == 201
    assert len(resp.get_json()['matches']) == 2

    bad = client.post(f'/api/tournaments/{t.id}/matches', json={
        'round_number': 3, 'player1_id': a, 'player2_id': b, 'outcome': 'forfeit',
    })
    assert bad.status_code == 400
    assert bad.get_json()['field'] == 'outcome'

    rounds = client.get(f'/api/tournaments/{t.id}/matches').get_json()['rounds']
    assert [r['round_number'] for r in rounds] == [1, 2]
    assert [m['table_number'] for m in rounds[0]['matches']] == [1, None]

    ranked = client.post(f'/api/tournaments/{t.id}/standings').get_json()['standings']
    assert [s['participant_id'] for s in ranked] == [c, b, a]
    assert ranked[0]['points'] == 3
    assert ranked[0]['byes'] == 1
    assert [s['final_standing'] for s in ranked] == [1, 2, 3]
    assert client.get(f'/api/tournaments/{t.id}/standings').get_json()['standings'] == ranked

    reported = client.post(f'/api/tournaments/{t.id}/standings',
                           json={'reported_standings': {str(b): 1}}).get_json()['standings']
    assert [(s['participant_id'], s['final_standing']) for s in reported] == [(b, 1), (c, 2), (a, 3)]


def test_tournament_status_endpoint(client, make_tournament):
    t = make_tournament()
    resp = client.post(f'/api/tournaments/{t.id}/status', json={'status': 'ongoing'})
    assert resp.status_code == 200
    body = resp.get_json()['tournament']
    assert body['status'] == 'ongoing'
    assert body['registration_open'] is False

    resp = client.post(f'/api/tournaments/{t.id}/status', json={'status': 'upcoming'})
    assert resp.status_code == 409


def test_organizer_request_flow(client, session, make_user):
    player = make_user(email='brock@example.com')
    admin = make_user(name='Professor Oak', email='oak@example.com', role='admin')

    assert client.post('/api/organizer-requests', json={'organization_name': 'Pewter Gym'}).status_code == 401

    headers = {'X-User-Id': str(player.id)}
    resp = client.post('/api/organizer-requests', headers=headers,
                       json={'organization_name': 'Pewter Gym', 'league_url': 'https://pewter.example.com'})
    assert resp.status_code == 201
    rid = resp.get_json()['request']['id']

    again = client.post('/api/organizer-requests', headers=headers, json={'organization_name': 'Pewter Gym'})
    assert again.status_code == 409
    assert again.get_json()['error'] == 'DUPLICATE_ORGANIZER_REQUEST'

    pending = client.get('/api/admin/organizer-requests?status=pending').get_json()['requests']
    assert [r['id'] for r in pending] == [rid]

    admin_headers = {'X-User-Id': str(admin.id)}
    url = f'/api/admin/organizer-requests/{rid}'
    approved = client.patch(url, headers=admin_headers,
                            json={'status': 'approved', 'admin_notes': 'Verified gym leader'}).get_json()['request']
    assert approved['status'] == 'approved'
    assert approved['reviewed_at'] is not None

    notes = client.put(f'{url}/notes', headers=admin_headers, json={'admin_notes': 'Badge on file'})
    assert notes.get_json()['request']['admin_notes'] == 'Badge on file'
    assert notes.get_json()['request']['reviewed_at'] == approved['reviewed_at']

    too_long = client.put(f'{url}/notes', json={'admin_notes': 'x' * 1001})
    assert too_long.status_code == 400

    resp = client.patch(url, json={'status': 'rejected'})
    assert resp.status_code == 409
    assert client.get(url).get_json()['request']['status'] == 'approved'
    assert client.get('/api/admin/organizer-requests/999').status_code == 404

    session.expire_all()
    assert session.get(OrganizerRequest, rid).reviewed_by_id == admin.id


def test_match_without_player_is_rejected(client, make_tournament):
    t = make_tournament()
    resp = client.post(f'/api/tournaments/{t.id}/matches', json={'round_number': 1, 'outcome': 'bye'})
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'player1_id'

    resp = client.post(f'/api/tournaments/{t.id}/matches',
                       json={'matches': [{'round_number': 1, 'outcome': 'bye'}]})
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'player1_id'
    assert client.get(f'/api/tournaments/{t.id}/matches').get_json()['rounds'] == []


def test_zero_capacity_tournament(client, make_tournament):
    t = make_tournament(max_players=0)
    body = client.get(f'/api/tournaments/{t.id}').get_json()
    assert body['can_register'] is False
    assert body['registration_denied_reason'] == 'tournament_full'
    assert body['capacity']['is_full'] is True
    assert body['capacity']['capacity_percentage'] == 100.0
