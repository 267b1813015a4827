from datetime import datetime
from pathlib import Path

from fastapi.testclient import TestClient

from campus_api.config import settings
from campus_api.main import app

client = TestClient(app)


def _pdf(name='paper.pdf', content=b'%PDF-1.4 sample'):
    return {'file': (name, content, 'application/pdf')}


def test_create_paper_with_file(auth_headers):
    _, headers = auth_headers('staff')
    r = client.post('/papers', data={'title': 'Graph Theory', 'description': 'Lecture notes'}, files=_pdf(), headers=headers)
    assert r.status_code == 201
    paper = r.json()
    assert paper['title'] == 'Graph Theory'
    assert paper['is_deleted'] is False
    stored = Path(paper['file'])
    assert stored.exists()
    assert settings.UPLOAD_DIR in stored.parents


def test_create_paper_without_file(auth_headers):
    _, headers = auth_headers('admin')
    r = client.post('/papers', data={'title': 'Sets', 'description': 'No attachment'}, headers=headers)
    assert r.status_code == 201
    assert r.json()['file'] is None


def test_create_paper_requires_title_and_description(auth_headers):
    _, headers = auth_headers('staff')
    before = client.get('/papers').json()
    r = client.post('/papers', data={'description': 'Missing title'}, files=_pdf(), headers=headers)
    assert r.status_code == 400
    assert r.json()['message'] == 'Title and description are required'
    assert client.get('/papers').json() == before


def test_paper_write_routes_need_admin_or_staff(auth_headers):
    _, student_headers = auth_headers('student')
    _, instructor_headers = auth_headers('instructor')
    data = {'title': 'T', 'description': 'D'}
    assert client.post('/papers', data=data).status_code == 401
    assert client.post('/papers', data=data, headers=student_headers).status_code == 401
    assert client.post('/papers', data=data, headers=instructor_headers).status_code == 401


def test_paper_listing_is_public_but_single_fetch_is_not(auth_headers):
    _, headers = auth_headers('staff')
    _, student_headers = auth_headers('student')
    paper = client.post('/papers', data={'title': 'Public', 'description': 'Listing'}, headers=headers).json()
    listing = client.get('/papers')
    assert listing.status_code == 200
    assert any(p['id'] == paper['id'] for p in listing.json())
    assert client.get(f"/papers/{paper['id']}").status_code == 401
    single = client.get(f"/papers/{paper['id']}", headers=student_headers)
    assert single.status_code == 200
    assert single.json()['title'] == 'Public'


def test_update_paper_replaces_file(auth_headers):
    _, headers = auth_headers('staff')
    paper = client.post('/papers', data={'title': 'Optics', 'description': 'v1'}, files=_pdf('v1.pdf'), headers=headers).json()
    old_path = Path(paper['file'])
    r = client.put(f"/papers/{paper['id']}", data={'description': 'v2'}, files=_pdf('v2.pdf', b'%PDF-1.4 v2'), headers=headers)
    assert r.status_code == 200
    updated = r.json()
    assert updated['file'] != paper['file']
    assert not old_path.exists()
    assert Path(updated['file']).read_bytes() == b'%PDF-1.4 v2'
    assert updated['title'] == 'Optics'
    assert updated['description'] == 'v2'
    assert datetime.fromisoformat(updated['updatedAt']) > datetime.fromisoformat(paper['updatedAt'])


def test_delete_paper_is_soft(auth_headers):
    _, headers = auth_headers('admin')
    paper = client.post('/papers', data={'title': 'Gone', 'description': 'Soon'}, headers=headers).json()
    assert client.delete(f"/papers/{paper['id']}", headers=headers).status_code == 204
    assert all(p['id'] != paper['id'] for p in client.get('/papers').json())
    assert client.get(f"/papers/{paper['id']}", headers=headers).status_code == 404
    assert client.put(f"/papers/{paper['id']}", data={'title': 'Back'}, headers=headers).status_code == 404
    assert client.delete(f"/papers/{paper['id']}", headers=headers).status_code == 404


def test_paper_update_and_delete_need_admin_or_staff(auth_headers):
    _, staff_headers = auth_headers('staff')
    _, student_headers = auth_headers('student')
    _, instructor_headers = auth_headers('instructor')
    paper = client.post('/papers', data={'title': 'Guarded', 'description': 'Original'}, headers=staff_headers).json()
    url = f"/papers/{paper['id']}"
    assert client.put(url, data={'title': 'Changed'}).status_code == 401
    assert client.put(url, data={'title': 'Changed'}, headers=student_headers).status_code == 401
    assert client.put(url, data={'title': 'Changed'}, headers=instructor_headers).status_code == 401
    assert client.delete(url).status_code == 401
    assert client.delete(url, headers=student_headers).status_code == 401
    assert client.delete(url, headers=instructor_headers).status_code == 401
    current = client.get(url, headers=staff_headers)
    assert current.status_code == 200
    assert current.json()['title'] == 'Guarded'
    assert current.json()['is_deleted'] is False
