from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from campus_api import models
from campus_api.errors import NotFoundError, ValidationError
from campus_api.services import PaperService, _next_timestamp


def _stored(store, name, content=b"%PDF-1.4 test"):
    store.root.mkdir(parents=True, exist_ok=True)
    path = store.root / name
    path.write_bytes(content)
    return str(path)


def _ts(value):
    return datetime.fromisoformat(value)


def test_create_requires_title_and_description(session, store):
    svc = PaperService(session, store)
    upload = _stored(store, "orphan.pdf")
    with pytest.raises(ValidationError):
        svc.create({"title": "Graph Theory", "description": "   "}, upload)
    with pytest.raises(ValidationError):
        svc.create({"description": "No title"})
    assert svc.list_active() == []
    assert not Path(upload).exists()


def test_create_persists_file_reference(session, store):
    svc = PaperService(session, store)
    path = _stored(store, "first.pdf")
    paper = svc.create({"title": "Graph Theory", "description": "Notes"}, path)
    assert paper["file"] == path
    assert paper["is_deleted"] is False
    assert paper["createdAt"] == paper["updatedAt"]
    assert svc.get_by_id(paper["id"])["title"] == "Graph Theory"


def test_update_replaces_file_and_advances_updated_at(session, store):
    svc = PaperService(session, store)
    old = _stored(store, "old.pdf")
    paper = svc.create({"title": "Graph Theory", "description": "Notes"}, old)
    new = _stored(store, "new.pdf")
    updated = svc.update(paper["id"], {"title": None, "description": None}, new)
    assert updated["file"] == new
    assert not Path(old).exists()
    assert Path(new).exists()
    assert updated["title"] == "Graph Theory"
    assert _ts(updated["updatedAt"]) > _ts(paper["updatedAt"])
    assert updated["createdAt"] == paper["createdAt"]


def test_update_without_file_keeps_existing_file(session, store):
    svc = PaperService(session, store)
    path = _stored(store, "keep.pdf")
    paper = svc.create({"title": "Topology", "description": "Draft"}, path)
    updated = svc.update(paper["id"], {"description": "Final"})
    assert updated["file"] == path
    assert updated["description"] == "Final"
    assert updated["title"] == "Topology"
    assert Path(path).exists()


def test_update_survives_missing_old_file(session, store):
    svc = PaperService(session, store)
    old = _stored(store, "gone.pdf")
    paper = svc.create({"title": "Logic", "description": "Proofs"}, old)
    Path(old).unlink()
    new = _stored(store, "fresh.pdf")
    assert svc.update(paper["id"], {}, new)["file"] == new


def test_soft_delete_hides_paper_everywhere(session, store):
    svc = PaperService(session, store)
    paper = svc.create({"title": "Optics", "description": "Lenses"})
    svc.soft_delete(paper["id"])
    assert svc.list_active() == []
    with pytest.raises(NotFoundError):
        svc.get_by_id(paper["id"])
    with pytest.raises(NotFoundError):
        svc.soft_delete(paper["id"])
    stored = session.get(models.Paper, paper["id"])
    assert stored is not None and stored.is_deleted is True


def test_update_of_deleted_paper_discards_new_upload(session, store):
    svc = PaperService(session, store)
    paper = svc.create({"title": "Optics", "description": "Lenses"})
    svc.soft_delete(paper["id"])
    upload = _stored(store, "late.pdf")
    with pytest.raises(NotFoundError):
        svc.update(paper["id"], {"title": "Again"}, upload)
    assert not Path(upload).exists()


def test_next_timestamp_is_strictly_after_previous():
    future = datetime.now(timezone.utc) + timedelta(seconds=5)
    assert _next_timestamp(future) == future + timedelta(microseconds=1)
    naive_past = datetime(2020, 1, 1)
    assert _next_timestamp(naive_past) > naive_past.replace(tzinfo=timezone.utc)


def _failing_save(paper):
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


def test_failed_create_removes_upload(session, store, monkeypatch):
    svc = PaperService(session, store)
    upload = _stored(store, "stranded.pdf")
    monkeypatch.setattr(svc.paper_repo, "save", _failing_save)
    with pytest.raises(OperationalError):
        svc.create({"title": "Graph Theory", "description": "Notes"}, upload)
    assert not Path(upload).exists()


def test_failed_update_removes_new_upload(session, store, monkeypatch):
    svc = PaperService(session, store)
    paper = svc.create({"title": "Graph Theory", "description": "Notes"})
    upload = _stored(store, "replacement.pdf")
    monkeypatch.setattr(svc.paper_repo, "save", _failing_save)
    with pytest.raises(OperationalError):
        svc.update(paper["id"], {"title": "Renamed"}, upload)
    assert not Path(upload).exists()
