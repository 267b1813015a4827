import uuid

from fastapi.testclient import TestClient

from campus_api.main import app

client = TestClient(app)


def test_register_login_and_me():
    email = f"ada-{uuid.uuid4().hex[:6]}@campus.test"
    r = client.post('/auth/register', json={'name': 'Ada', 'email': email, 'password': 'pass123', 'role': 'instructor'})
    assert r.status_code == 201
    assert r.json()['role'] == 'instructor'
    # registering again returns the same account
    again = client.post('/auth/register', json={'name': 'Ada', 'email': email, 'password': 'other'})
    assert again.json() == {'id': r.json()['id'], 'email': email}
    login = client.post('/auth/login', json={'email': email, 'password': 'pass123'})
    assert login.status_code == 200
    token = login.json()['access_token']
    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    assert me.json()['email'] == email


def test_login_with_wrong_password():
    email = f"bob-{uuid.uuid4().hex[:6]}@campus.test"
    client.post('/auth/register', json={'name': 'Bob', 'email': email, 'password': 'right'})
    r = client.post('/auth/login', json={'email': email, 'password': 'wrong'})
    assert r.status_code == 401
    assert r.json()['status'] == 'fail'


def test_privileged_roles_cannot_self_register():
    r = client.post('/auth/register', json={'name': 'Eve', 'email': 'eve@campus.test', 'password': 'x', 'role': 'admin'})
    assert r.status_code == 400
    assert r.json() == {'status': 'fail', 'message': "role 'admin' cannot be self-assigned"}


def test_missing_and_invalid_tokens_are_rejected():
    assert client.get('/auth/me').status_code == 401
    r = client.get('/auth/me', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r.status_code == 401
    assert r.json()['status'] == 'fail'


def test_request_id_header_exists():
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.headers['X-Request-ID'] == 'abc123'
