import pytest

CREATE_URL = "/api/clients/"

PAYLOAD = {
    "first_name": "Carmen",
    "last_name": "López",
    "paellas": [{"servings": 8, "rice_type": "Vegetal"}],
}


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_client_on_retry(client, employee_headers, stubs):
    key = "idem-same-1"

    r1 = client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r1.status_code == 201

    # double submit of the registration form
    r2 = client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"

    store, _, _ = stubs
    assert len(store.tables["clients"]) == 1


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client, employee_headers):
    key = "idem-conflict-1"
    p2 = {**PAYLOAD, "paellas": [{"servings": 10, "rice_type": "Vegetal"}]}

    r1 = client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r1.status_code == 201

    r2 = client.post(CREATE_URL, data=p2, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_idempotent_replay_preserves_503_status(client, employee_headers, stubs, monkeypatch):
    store, _, _ = stubs
    original_insert = store.insert

    def insert(table, rows):
        if table == "clients":
            raise RuntimeError("CIRCUIT_OPEN")
        return original_insert(table, rows)

    monkeypatch.setattr(store, "insert", insert)
    key = "idem-503"

    r1 = client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r1.status_code == 503

    r2 = client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                     HTTP_IDEMPOTENCY_KEY=key, **employee_headers)
    assert r2.status_code == 503
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
def test_without_key_each_request_creates_a_client(client, employee_headers, stubs):
    for _ in range(2):
        assert client.post(CREATE_URL, data=PAYLOAD, content_type="application/json",
                           **employee_headers).status_code == 201
    store, _, _ = stubs
    assert len(store.tables["clients"]) == 2
