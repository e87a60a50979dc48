from flask import Flask
from app.models.account import User
from tests.test_utils_seed import ensure_user, ensure_customer, ensure_device
from tests.test_lifecycle_helpers import seed_shop, jwt_headers, ticket_payload, create_ticket_and_assert, assert_transition


def test_ticket_lifecycle_over_http(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    headers = shop.headers
    ticket = create_ticket_and_assert(client, shop)
    tid = ticket['id']
    assert ticket['code'].startswith('FX-')
    assert ticket['completed_at'] is None
    assert_transition(client, tid, headers, 'diagnosing')
    assert_transition(client, tid, headers, 'in_repair', note='parts arrived')
    assert_transition(client, tid, headers, 'repaired')
    resp = assert_transition(client, tid, headers, 'picked_up')
    assert resp.get_json()['completed_at'] is not None

    detail = client.get(f'/tickets/{tid}', headers=headers).get_json()
    assert [log['to_status'] for log in detail['status_logs']] == ['picked_up', 'repaired', 'in_repair', 'diagnosing', 'new']
    assert detail['status_logs'][-1]['from_status'] is None
    assert detail['status_logs'][2]['note'] == 'parts arrived'

    asc = client.get(f'/tickets/{tid}/status-logs?order=asc', headers=headers).get_json()['data']
    assert [log['to_status'] for log in asc][0] == 'new'
    assert len(asc) == 5


def test_create_ticket_validation_error_shape(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    resp = client.post('/tickets', json=ticket_payload(shop, issue_description='short'), headers=shop.headers)
    assert resp.status_code == 400
    err = resp.get_json()['error']
    assert err['status'] == 400
    assert err['code'] == 'VALIDATION_ERROR'
    assert 'issue_description' in err['details']


def test_create_ticket_device_mismatch(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    other = ensure_device(ensure_customer(shop.org, first_name='Grace'))
    resp = client.post('/tickets', json=ticket_payload(shop, device_id=other.id), headers=shop.headers)
    assert resp.status_code == 400
    listing = client.get('/tickets', headers=shop.headers).get_json()
    assert listing['pagination']['total'] == 0


def test_unknown_status_rejected(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    tid = create_ticket_and_assert(client, shop)['id']
    resp = assert_transition(client, tid, shop.headers, 'lost_in_space', expected_status=400)
    assert resp.get_json()['error']['code'] == 'VALIDATION_ERROR'
    resp = client.post(f'/tickets/{tid}/status', json={}, headers=shop.headers)
    assert resp.status_code == 400


def test_ticket_not_found_and_tenant_isolation(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    foreign = seed_shop()
    tid = create_ticket_and_assert(client, shop)['id']
    resp = client.get(f'/tickets/{tid}', headers=foreign.headers)
    assert resp.status_code == 404
    assert resp.get_json()['error']['code'] == 'NOT_FOUND'
    assert client.post(f'/tickets/{tid}/status', json={'status': 'closed'}, headers=foreign.headers).status_code == 404
    assert client.get('/tickets/999999', headers=shop.headers).status_code == 404
    # the foreign tenant's listing does not include it
    assert client.get('/tickets', headers=foreign.headers).get_json()['pagination']['total'] == 0


def test_assign_requires_permission(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    tech = ensure_user(shop.org, User.ROLE_TECHNICIAN)
    tid = create_ticket_and_assert(client, shop)['id']
    denied = client.post(f'/tickets/{tid}/assign', json={'assigned_to_id': tech.id}, headers=jwt_headers(tech))
    assert denied.status_code == 403
    assert 'TICKET.ASSIGN' in denied.get_json()['error']['detail']
    ok = client.post(f'/tickets/{tid}/assign', json={'assigned_to_id': tech.id}, headers=shop.headers)
    assert ok.status_code == 200
    assert ok.get_json()['assigned_to_id'] == tech.id
    cleared = client.post(f'/tickets/{tid}/assign', json={'assigned_to_id': None}, headers=shop.headers)
    assert cleared.get_json()['assigned_to_id'] is None
    logs = client.get(f'/tickets/{tid}/status-logs', headers=shop.headers).get_json()['data']
    assert len(logs) == 1


def test_requires_token(app_context: Flask):
    client = app_context.test_client()
    assert client.get('/tickets').status_code == 401


def test_patch_ticket(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    tid = create_ticket_and_assert(client, shop)['id']
    resp = client.patch(f'/tickets/{tid}', json={'priority': 'high', 'approved_cost': 80, 'tags': ['screen']}, headers=shop.headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['priority'] == 'high'
    assert body['approved_cost'] == '80.00'
    assert body['tags'] == ['screen']

    resp = client.patch(f'/tickets/{tid}', json={'status': 'closed'}, headers=shop.headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['details']['status'] == ['cannot be set directly']
    resp = client.patch(f'/tickets/{tid}', json={'colour': 'red'}, headers=shop.headers)
    assert resp.status_code == 400
    assert client.get(f'/tickets/{tid}', headers=shop.headers).get_json()['status'] == 'new'


def test_notes(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    tid = create_ticket_and_assert(client, shop)['id']
    resp = client.post(f'/tickets/{tid}/notes', json={'content': 'Backed up photos'}, headers=shop.headers)
    assert resp.status_code == 201
    assert resp.get_json()['user_id'] == shop.user.id
    client.post(f'/tickets/{tid}/notes', json={'content': 'Suggested battery swap', 'is_ai_generated': True}, headers=shop.headers)
    notes = client.get(f'/tickets/{tid}', headers=shop.headers).get_json()['notes']
    assert [n['content'] for n in notes] == ['Suggested battery swap', 'Backed up photos']
    assert notes[0]['is_ai_generated'] is True
    assert client.post(f'/tickets/{tid}/notes', json={}, headers=shop.headers).status_code == 400


def test_list_filters_search_and_sort(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    grace = ensure_customer(shop.org, first_name='Grace', last_name='Hopper', phone='5559876543')
    pixel = ensure_device(grace, brand='Google', model='Pixel 7')
    low = create_ticket_and_assert(client, shop, priority='low')
    urgent = client.post('/tickets', json={
        'customer_id': grace.id, 'device_id': pixel.id, 'issue_description': 'Does not charge at all', 'priority': 'urgent',
    }, headers=shop.headers).get_json()
    assert_transition(client, low['id'], shop.headers, 'diagnosing')

    body = client.get('/tickets?status=diagnosing', headers=shop.headers).get_json()
    assert [t['id'] for t in body['data']] == [low['id']]

    body = client.get('/tickets?search=hopper', headers=shop.headers).get_json()
    assert [t['id'] for t in body['data']] == [urgent['id']]
    body = client.get('/tickets?search=pixel', headers=shop.headers).get_json()
    assert [t['id'] for t in body['data']] == [urgent['id']]

    body = client.get('/tickets?sort_by=priority&sort_order=desc', headers=shop.headers).get_json()
    assert [t['priority'] for t in body['data']] == ['urgent', 'low']
    body = client.get('/tickets?sort_by=created_at&sort_order=asc', headers=shop.headers).get_json()
    assert [t['id'] for t in body['data']] == [low['id'], urgent['id']]

    assert client.get('/tickets?sort_by=colour', headers=shop.headers).status_code == 400
    assert client.get('/tickets?status=bogus', headers=shop.headers).status_code == 400


def test_list_pagination_and_etag(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    for _ in range(3):
        create_ticket_and_assert(client, shop)
    first = client.get('/tickets?page=1&page_size=2', headers=shop.headers)
    assert first.status_code == 200
    meta = first.get_json()['pagination']
    assert meta == {'total': 3, 'page': 1, 'page_size': 2, 'total_pages': 2, 'returned': 2}
    etag = first.headers.get('ETag')
    assert etag
    second = client.get('/tickets?page=1&page_size=2', headers={**shop.headers, 'If-None-Match': etag})
    assert second.status_code == 304
    assert second.headers.get('ETag') == etag
    assert client.get('/tickets?page=abc', headers=shop.headers).status_code == 400


def test_list_etag_changes_after_status_change(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    ticket = create_ticket_and_assert(client, shop)
    first = client.get('/tickets', headers=shop.headers)
    etag = first.headers.get('ETag')
    # ids and total are unchanged, only the row content differs
    assert_transition(client, ticket['id'], shop.headers, 'in_repair')
    again = client.get('/tickets', headers={**shop.headers, 'If-None-Match': etag})
    assert again.status_code == 200
    assert again.headers.get('ETag') != etag
    assert again.get_json()['data'][0]['status'] == 'in_repair'

    tech = ensure_user(shop.org, User.ROLE_TECHNICIAN)
    etag = again.headers.get('ETag')
    client.post(f"/tickets/{ticket['id']}/assign", json={'assigned_to_id': tech.id}, headers=shop.headers)
    after_assign = client.get('/tickets', headers={**shop.headers, 'If-None-Match': etag})
    assert after_assign.status_code == 200
    assert after_assign.get_json()['data'][0]['assigned_to_id'] == tech.id


def test_non_object_json_body_rejected(app_context: Flask):
    client = app_context.test_client()
    shop = seed_shop()
    resp = client.post('/tickets', json=[1, 2], headers=shop.headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'VALIDATION_ERROR'
    ticket = create_ticket_and_assert(client, shop)
    resp = client.post(f"/tickets/{ticket['id']}/status", json='closed', headers=shop.headers)
    assert resp.status_code == 400
    assert client.patch(f"/tickets/{ticket['id']}", json=['notes'], headers=shop.headers).status_code == 400
    assert client.post('/customers', json=[], headers=shop.headers).status_code == 400
    assert client.patch('/organization', json=[{'name': 'x'}], headers=shop.headers).status_code == 400
    assert client.post('/auth/login', json=['a@b.c', 'pw']).status_code == 400
    assert client.get(f"/tickets/{ticket['id']}", headers=shop.headers).get_json()['status'] == 'new'
