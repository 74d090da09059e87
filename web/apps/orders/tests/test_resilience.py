import httpx
import pytest

from apps.orders.http_adapters import CircuitBreaker, HttpOrderStore, _store_cb


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body if body is not None else []
    def json(self): return self._body
    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("err", request=None, response=None)


@pytest.fixture
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def scripted(monkeypatch, *responses):
    calls = {"n": 0, "retry_headers": []}

    def fake_request(self, method, url, params=None, json=None, headers=None, **kwargs):
        calls["retry_headers"].append(headers.get("X-Retry-Count"))
        resp = responses[min(calls["n"], len(responses) - 1)]
        calls["n"] += 1
        if isinstance(resp, Exception):
            raise resp
        return resp

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return calls


def test_select_retries_on_5xx(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, R(500), R(200, [{"id": "c1"}]))
    rows = HttpOrderStore(base_url="http://x").select("clients")
    assert rows == [{"id": "c1"}]
    assert calls["n"] == 2
    assert calls["retry_headers"] == ["0", "1"]


def test_select_gives_up_after_max_retries(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, httpx.ConnectError("down"))
    with pytest.raises(httpx.ConnectError):
        HttpOrderStore(base_url="http://x").select("clients")
    assert calls["n"] == 3


def test_insert_is_not_retried(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, R(503), R(201, [{"id": "c1"}]))
    with pytest.raises(httpx.HTTPStatusError):
        HttpOrderStore(base_url="http://x").insert("clients", [{"first_name": "Ana"}])
    assert calls["n"] == 1


def test_no_retry_on_4xx(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, R(400))
    with pytest.raises(ValueError):
        HttpOrderStore(base_url="http://x").update("clients", {"status": "x"}, filters={"id": "c1"})
    assert calls["n"] == 1


def test_circuit_opens_after_repeated_failures(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(_store_cb, "fail_threshold", 2)
    calls = scripted(monkeypatch, R(500))
    store = HttpOrderStore(base_url="http://x")

    for _ in range(2):
        with pytest.raises(httpx.HTTPStatusError):
            store.select("clients")
    with pytest.raises(RuntimeError) as e:
        store.select("clients")
    assert str(e.value) == "CIRCUIT_OPEN"
    assert calls["n"] == 2


def test_circuit_half_open_probe():
    cb = CircuitBreaker("t", fail_threshold=1, reset_timeout=0.0)
    cb.on_failure()
    assert cb.state == "HALF_OPEN"
    assert cb.before_call() == "HALF_OPEN"
    with pytest.raises(RuntimeError):
        cb.before_call()  # one probe at a time
    cb.on_failure()
    assert cb._state == "OPEN"
    assert cb.before_call() == "HALF_OPEN"
    cb.on_success()
    assert cb.state == "CLOSED"
