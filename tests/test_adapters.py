from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from content_api.api.main import register_error_handlers
from content_api.web import adapters
from content_api.web.context import RequestContext


class Paging(BaseModel):
    page: int = Field(default=1, ge=1)
    tags: list[str] = Field(default_factory=list)


class Recorder:
    def __init__(self):
        self.calls = []

    def list_things(self, ctx: RequestContext, q: Paging):
        self.calls.append((ctx, q))
        return {"page": q.page, "tags": q.tags}

    async def get_thing(self, ctx: RequestContext, thing_id: UUID, q: Paging):
        self.calls.append((ctx, thing_id, q))
        return {"id": str(thing_id), "page": q.page}


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def adapter_client(recorder):
    app = FastAPI()
    register_error_handlers(app)
    app.add_api_route("/things", adapters.query(recorder.list_things, 200, Paging), methods=["GET"])
    app.add_api_route("/things/{id}", adapters.query_id("id", recorder.get_thing, 202, Paging), methods=["GET"])
    return TestClient(app)


def test_query_decodes_and_responds_with_status(adapter_client, recorder):
    r = adapter_client.get("/things", params=[("page", "3"), ("tags", "a"), ("tags", "b")])
    assert r.status_code == 200
    assert r.json() == {"page": 3, "tags": ["a", "b"]}
    ctx, q = recorder.calls[0]
    assert ctx == RequestContext()
    assert q == Paging(page=3, tags=["a", "b"])


def test_query_decode_error_is_propagated(adapter_client, recorder):
    r = adapter_client.get("/things", params={"page": "0"})
    assert r.status_code == 400
    assert "page" in r.json()["fields"]
    assert recorder.calls == []


def test_query_id_awaits_coroutine_functions(adapter_client, recorder):
    thing_id = uuid4()
    r = adapter_client.get(f"/things/{thing_id}", params={"page": "2"})
    assert r.status_code == 202
    assert r.json() == {"id": str(thing_id), "page": 2}
    assert recorder.calls[0][1] == thing_id


def test_query_id_rejects_bad_uuid_before_decoding_query(adapter_client, recorder, monkeypatch):
    def _must_not_decode(*args, **kwargs):
        raise AssertionError("query decoded before route key was validated")

    monkeypatch.setattr(adapters, "decode_query", _must_not_decode)
    r = adapter_client.get("/things/not-a-uuid", params={"page": "0"})
    assert r.status_code == 400
    assert r.json() == {"error": "invalid route key: id"}
    assert recorder.calls == []


def test_function_errors_are_propagated(recorder):
    def explode(ctx, q):
        raise ValueError("nope")

    app = FastAPI()
    register_error_handlers(app)
    app.add_api_route("/boom", adapters.query(explode, 200, Paging), methods=["GET"])
    r = TestClient(app, raise_server_exceptions=False).get("/boom")
    assert r.status_code == 500
    assert r.json() == {"error": "internal server error"}
