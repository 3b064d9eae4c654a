import json
import logging
from datetime import datetime
from urllib.error import URLError

from sqlalchemy.orm import Session

import mirror
from database import Base, build_engine
from mirror import DocumentMirror
from models import TransactionType
from schemas import CategoryIn, ProjectIn, TransactionIn
from services import CategoryService, ProjectService, TransactionService


class _FakeResponse:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        return b"{}"


class RecordingMirror:
    enabled = True

    def __init__(self):
        self.calls = []

    def upsert(self, collection, doc_id, payload):
        self.calls.append(("upsert", collection, doc_id, payload))
        return True

    def delete(self, collection, doc_id):
        self.calls.append(("delete", collection, doc_id, None))
        return True


def test_upsert_sends_json_put(monkeypatch):
    sent = []

    def fake_urlopen(req, timeout):
        sent.append((req, timeout))
        return _FakeResponse()

    monkeypatch.setattr(mirror, "urlopen", fake_urlopen)
    client = DocumentMirror("http://mirror.local/", timeout=2.5)

    assert client.upsert("categories", 7, {"name": "식비"}) is True

    req, timeout = sent[0]
    assert req.full_url == "http://mirror.local/categories/7"
    assert req.get_method() == "PUT"
    assert json.loads(req.data.decode("utf-8")) == {"name": "식비"}
    assert timeout == 2.5


def test_failed_push_is_logged_not_raised(monkeypatch, caplog):
    def failing_urlopen(req, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(mirror, "urlopen", failing_urlopen)
    client = DocumentMirror("http://mirror.local")

    with caplog.at_level(logging.WARNING, logger="mirror"):
        assert client.delete("transactions", 3) is False

    assert "mirror_failed" in caplog.text


def test_disabled_mirror_never_calls_out(monkeypatch):
    def unexpected(req, timeout):
        raise AssertionError("mirror should be disabled")

    monkeypatch.setattr(mirror, "urlopen", unexpected)
    client = DocumentMirror("")

    assert not client.enabled
    assert client.upsert("projects", 1, {}) is False


def test_services_push_writes_to_mirror():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    recorder = RecordingMirror()

    with Session(engine) as session:
        categories = CategoryService(session, recorder)
        first = categories.create(CategoryIn(name="A", type=TransactionType.expense))
        second = categories.create(CategoryIn(name="B", type=TransactionType.expense))
        categories.reorder(first.id, second.id)

        upserts = [c for c in recorder.calls if c[1] == "categories"]
        # two creates, then both swapped siblings
        assert len(upserts) == 4
        assert {c[2]: c[3]["order"] for c in upserts[2:]} == {
            second.id: 0,
            first.id: 1,
        }

        project = ProjectService(session, recorder).create(ProjectIn(name="Trip"))
        txn = TransactionService(session, recorder).create(
            TransactionIn(
                type=TransactionType.expense,
                amount=1000,
                category_id=first.id,
                project_id=project.id,
                occurred_at=datetime(2024, 3, 1, 12),
            )
        )
        recorder.calls.clear()

        ProjectService(session, recorder).delete(project.id)

        assert ("delete", "projects", project.id, None) in recorder.calls
        pushed = [c for c in recorder.calls if c[1] == "transactions"]
        assert pushed[0][2] == txn.id
        assert pushed[0][3]["project_id"] is None
