"""Request pipeline: credential injection and failure classification."""

import asyncio

import httpx
import pytest

from conftest import LoopCheckedStorage, make_token
from fintrack.core.errors import (
    Forbidden,
    NetworkError,
    NotFound,
    ServerError,
    Unauthorized,
    ValidationFailed,
)
from fintrack.middlewares import request_id_ctx_var
from fintrack.schemas.category import Category
from fintrack.services.api import ApiClient, classify_failure
from fintrack.services.categories import CategoryService
from fintrack.services.storage import SessionStore
from fintrack.services.transactions import TransactionService


class Recorder:
    """Transport handler that records requests and replies with a canned response."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None) -> None:
        self.response = response or httpx.Response(200, json={"ok": True})
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _call(store, recorder, method="GET", url="/api/categories", listeners=()):
    async def go():
        async with ApiClient(
            store,
            base_url="http://backend.test",
            transport=httpx.MockTransport(recorder),
            listeners=listeners,
        ) as api:
            return await api.request(method, url)

    return asyncio.run(go())


def test_valid_token_is_sent_as_bearer(store):
    token = make_token(600)
    store.set(token, {"username": "alice"})
    recorder = Recorder()

    assert _call(store, recorder) == {"ok": True}

    assert recorder.requests[0].headers["Authorization"] == f"Bearer {token}"
    assert store.token == token


def test_no_token_means_no_authorization_header(store):
    recorder = Recorder()
    _call(store, recorder)
    assert "Authorization" not in recorder.requests[0].headers


def test_expired_token_is_purged_and_not_sent(store):
    store.set(make_token(-60), {"username": "alice"})
    recorder = Recorder()

    _call(store, recorder)

    assert "Authorization" not in recorder.requests[0].headers
    assert store.get() is None


def test_malformed_token_is_purged_and_not_sent(store):
    store.set("not-a-token", {"username": "alice"})
    recorder = Recorder()

    _call(store, recorder)

    assert "Authorization" not in recorder.requests[0].headers
    assert store.get() is None


def test_401_clears_session_and_notifies_listeners(store):
    store.set(make_token(600), {"username": "alice"})
    recorder = Recorder(httpx.Response(401, json={"message": "Token revoked"}))
    events = []

    with pytest.raises(Unauthorized) as excinfo:
        _call(store, recorder, listeners=[lambda: events.append("invalidated")])

    assert excinfo.value.session_cleared is True
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Token revoked"
    assert store.get() is None
    assert events == ["invalidated"]
    assert len(recorder.requests) == 1


def test_403_surfaces_without_purge(store):
    token = make_token(600)
    store.set(token, {"username": "alice"})
    recorder = Recorder(httpx.Response(403, json={"message": "Access denied"}))

    with pytest.raises(Forbidden) as excinfo:
        _call(store, recorder)

    assert excinfo.value.user_message == "Access denied"
    assert store.token == token


def test_404_is_not_found(store):
    recorder = Recorder(httpx.Response(404, json={"message": "Category not found"}))
    with pytest.raises(NotFound) as excinfo:
        _call(store, recorder, url="/api/categories/99")
    assert excinfo.value.message == "Category not found"


def test_conflict_is_a_server_side_validation_failure(store):
    recorder = Recorder(httpx.Response(409, json={"message": "Category is used by existing transactions"}))
    with pytest.raises(ValidationFailed) as excinfo:
        _call(store, recorder, method="DELETE", url="/api/categories/3")
    assert excinfo.value.status_code == 409
    assert excinfo.value.user_message == "Category is used by existing transactions"


def test_5xx_is_server_error_and_keeps_session(store):
    token = make_token(600)
    store.set(token, {"username": "alice"})
    recorder = Recorder(httpx.Response(503, text="<html>down</html>", headers={"content-type": "text/html"}))

    with pytest.raises(ServerError) as excinfo:
        _call(store, recorder)

    assert excinfo.value.status_code == 503
    assert excinfo.value.user_message == "Server error: 503"
    assert store.token == token
    assert len(recorder.requests) == 1


def test_transport_failure_is_network_error_and_keeps_session(store):
    token = make_token(600)
    store.set(token, {"username": "alice"})
    recorder = Recorder(error=httpx.ConnectError("connection refused"))

    with pytest.raises(NetworkError) as excinfo:
        _call(store, recorder)

    assert excinfo.value.status_code is None
    assert "check your connection" in excinfo.value.user_message
    assert store.token == token
    assert len(recorder.requests) == 1


def test_empty_body_returns_none(store):
    recorder = Recorder(httpx.Response(204))
    assert _call(store, recorder, method="DELETE", url="/api/transactions/1") is None


def test_request_id_is_forwarded(store):
    recorder = Recorder()
    token = request_id_ctx_var.set("req-123")
    try:
        _call(store, recorder)
    finally:
        request_id_ctx_var.reset(token)
    assert recorder.requests[0].headers["X-Request-ID"] == "req-123"


def test_classify_failure_prefers_message_then_detail():
    request = httpx.Request("GET", "http://backend.test/api/x")
    by_detail = classify_failure(httpx.Response(400, json={"detail": "Bad input"}, request=request))
    assert isinstance(by_detail, ValidationFailed)
    assert by_detail.message == "Bad input"

    plain = classify_failure(httpx.Response(500, text="boom", headers={"content-type": "text/plain"}, request=request))
    assert isinstance(plain, ServerError)
    assert plain.message == "boom"


def _service_call(store, body, call):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))

    async def go():
        async with ApiClient(store, base_url="http://backend.test", transport=transport) as api:
            return await call(api)

    return asyncio.run(go())


@pytest.mark.parametrize(
    "body",
    [
        [{"id": 1, "description": "x"}],
        {"content": [], "totalElements": 0},
        "not a list",
    ],
)
def test_unexpected_list_body_is_a_server_error(store, body):
    with pytest.raises(ServerError) as excinfo:
        _service_call(store, body, lambda api: TransactionService(api).list_all())
    assert excinfo.value.status_code == 200
    assert excinfo.value.user_message == "The server returned an unreadable response."


def test_unexpected_item_body_is_a_server_error(store):
    with pytest.raises(ServerError) as excinfo:
        _service_call(store, {"id": 3}, lambda api: CategoryService(api).get(3))
    assert excinfo.value.status_code == 200
    assert excinfo.value.details == {"model": "Category"}


def test_well_formed_bodies_still_parse(store):
    body = [{"id": 1, "name": "Food", "type": "EXPENSE"}]
    listed = _service_call(store, body, lambda api: CategoryService(api).list_all())
    assert listed == [Category(id=1, name="Food")]


def test_non_json_success_body_is_a_server_error(store):
    recorder = Recorder(httpx.Response(200, text="<html>", headers={"content-type": "text/html"}))
    with pytest.raises(ServerError):
        _call(store, recorder)


def test_storage_is_only_touched_off_the_event_loop():
    storage = LoopCheckedStorage()
    store = SessionStore(storage)
    store.set(make_token(600), {"username": "alice"})
    storage.loop_calls.clear()

    _call(store, Recorder())
    with pytest.raises(Unauthorized):
        _call(store, Recorder(httpx.Response(401, json={"message": "Token revoked"})))

    store.set(make_token(-60), {"username": "alice"})
    _call(store, Recorder())

    assert storage.loop_calls == []
    assert store.get() is None
