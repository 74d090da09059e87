"""API tests for the clients endpoints.

These tests drive the DRF views through the Django test client with the
in-process stubs wired by ``providers``: registration, listing and
filtering, detail, admin-only edits, status changes and tickets.
"""
import pytest

CLIENTS_URL = "/api/clients/"

PAYLOAD = {
    "first_name": "Ana",
    "last_name": "García",
    "phone": "600111222",
    "paellas": [
        {"servings": 4, "rice_type": "Marisco", "notes": "Sin gluten"},
        {"servings": 6, "rice_type": "Mixta", "deposit": None, "price": 48.5},
    ],
}


def create(client, headers, payload=PAYLOAD, **extra):
    return client.post(CLIENTS_URL, data=payload, content_type="application/json", **headers, **extra)


@pytest.mark.django_db
def test_requires_session(client):
    r = client.get(CLIENTS_URL)
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.django_db
def test_unknown_token_is_rejected(client):
    r = client.get(CLIENTS_URL, HTTP_AUTHORIZATION="Bearer nope")
    assert r.status_code == 401
    assert r.json()["detail"] == "INVALID_SESSION"


@pytest.mark.django_db
def test_create_client_applies_default_deposit(client, employee_headers, stubs):
    r = create(client, employee_headers)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pendiente"
    assert body["progress"] == "pendiente"
    first, second = body["paellas"]
    assert first["deposit"] == 10 and first["price"] is None and first["notes"] == "Sin gluten"
    assert second["deposit"] is None and second["price"] == 48.5
    assert body["total_deposit"] == 10

    store, _, _ = stubs
    assert '"deposit": null' in store.tables["paellas"][1]["notes"]


@pytest.mark.django_db
def test_create_client_keeps_waived_deposit(client, employee_headers):
    payload = {**PAYLOAD, "paellas": [{"servings": 2, "deposit": 0}]}
    r = create(client, employee_headers, payload)
    assert r.status_code == 201
    assert r.json()["paellas"][0]["deposit"] == 0


@pytest.mark.django_db
@pytest.mark.parametrize("paellas", [
    [],
    [{"servings": 1}],
    [{"servings": 4, "rice_type": "Sushi"}],
    [{"servings": 4, "deposit": -5}],
    [{"servings": 4, "price": "caro"}],
])
def test_create_client_validation(client, employee_headers, paellas):
    r = create(client, employee_headers, {**PAYLOAD, "paellas": paellas})
    assert r.status_code == 400


@pytest.mark.django_db
def test_create_client_blank_name(client, employee_headers):
    r = create(client, employee_headers, {**PAYLOAD, "first_name": "   "})
    assert r.status_code == 400


@pytest.mark.django_db
def test_list_filters_by_search_and_status(client, admin_headers):
    ana = create(client, admin_headers).json()
    create(client, admin_headers, {**PAYLOAD, "first_name": "Luis", "last_name": "Pérez", "phone": "699"})
    client.patch(f"{CLIENTS_URL}{ana['id']}/status/", data={"status": "entregado"},
                 content_type="application/json", **admin_headers)

    r = client.get(CLIENTS_URL, **admin_headers)
    assert r.json()["count"] == 2
    assert [c["first_name"] for c in r.json()["results"]] == ["Luis", "Ana"]

    r = client.get(CLIENTS_URL, {"search": "pérez"}, **admin_headers)
    assert [c["first_name"] for c in r.json()["results"]] == ["Luis"]

    r = client.get(CLIENTS_URL, {"status": "entregado"}, **admin_headers)
    assert [c["first_name"] for c in r.json()["results"]] == ["Ana"]

    r = client.get(CLIENTS_URL, {"status": "todos"}, **admin_headers)
    assert r.json()["count"] == 2


@pytest.mark.django_db
def test_list_rejects_unknown_status(client, employee_headers):
    r = client.get(CLIENTS_URL, {"status": "perdido"}, **employee_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_STATUS"


@pytest.mark.django_db
def test_list_decodes_legacy_notes(client, employee_headers, stubs):
    created = create(client, employee_headers).json()
    store, _, _ = stubs
    store.tables["paellas"][0]["notes"] = "Sin gluten, fianza: 15, precio 42,50"

    r = client.get(f"{CLIENTS_URL}{created['id']}/", **employee_headers)
    p = r.json()["paellas"][0]
    assert p["notes"] == "Sin gluten, fianza: 15, precio 42,50"
    assert p["deposit"] == 15 and p["price"] == 42.5


@pytest.mark.django_db
def test_summary(client, employee_headers):
    create(client, employee_headers)
    r = client.get(f"{CLIENTS_URL}summary/", **employee_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["total_clients"] == 1
    assert body["total_paellas"] == 2
    assert body["active_paellas"] == 2
    assert body["total_deposit"] == 10


@pytest.mark.django_db
def test_detail_not_found(client, employee_headers):
    r = client.get(f"{CLIENTS_URL}missing/", **employee_headers)
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_employee_cannot_edit_or_delete(client, employee_headers):
    cid = create(client, employee_headers).json()["id"]
    r = client.put(f"{CLIENTS_URL}{cid}/", data=PAYLOAD, content_type="application/json", **employee_headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "ADMIN_ONLY"
    r = client.delete(f"{CLIENTS_URL}{cid}/", **employee_headers)
    assert r.status_code == 403


@pytest.mark.django_db
def test_admin_updates_client_and_annotations(client, admin_headers):
    created = create(client, admin_headers).json()
    first = created["paellas"][0]
    payload = {
        "first_name": "Ana María",
        "last_name": "García",
        "paellas": [{"id": first["id"], "servings": 5, "rice_type": "Carne",
                     "notes": "Con caldo", "deposit": 20, "price": 60}],
    }
    r = client.put(f"{CLIENTS_URL}{created['id']}/", data=payload, content_type="application/json", **admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["first_name"] == "Ana María"
    assert body["phone"] is None
    edited = next(p for p in body["paellas"] if p["id"] == first["id"])
    assert (edited["servings"], edited["notes"], edited["deposit"], edited["price"]) == (5, "Con caldo", 20, 60)
    untouched = next(p for p in body["paellas"] if p["id"] != first["id"])
    assert untouched["price"] == 48.5


@pytest.mark.django_db
def test_update_requires_paella_ids(client, admin_headers):
    cid = create(client, admin_headers).json()["id"]
    r = client.put(f"{CLIENTS_URL}{cid}/", data=PAYLOAD, content_type="application/json", **admin_headers)
    assert r.status_code == 400


@pytest.mark.django_db
def test_update_rejects_paella_of_another_client(client, admin_headers):
    a = create(client, admin_headers).json()
    b = create(client, admin_headers).json()
    payload = {"first_name": "X", "last_name": "Y", "paellas": [{"id": b["paellas"][0]["id"], "servings": 2}]}
    r = client.put(f"{CLIENTS_URL}{a['id']}/", data=payload, content_type="application/json", **admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "UNKNOWN_PAELLA"


@pytest.mark.django_db
def test_admin_deletes_client(client, admin_headers):
    cid = create(client, admin_headers).json()["id"]
    assert client.delete(f"{CLIENTS_URL}{cid}/", **admin_headers).status_code == 204
    assert client.get(f"{CLIENTS_URL}{cid}/", **admin_headers).status_code == 404


@pytest.mark.django_db
def test_client_status_is_admin_only(client, admin_headers, employee_headers):
    cid = create(client, admin_headers).json()["id"]
    url = f"{CLIENTS_URL}{cid}/status/"
    r = client.patch(url, data={"status": "devuelto"}, content_type="application/json", **employee_headers)
    assert r.status_code == 403
    r = client.patch(url, data={"status": "devuelto"}, content_type="application/json", **admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "devuelto"
    r = client.patch(url, data={"status": "roto"}, content_type="application/json", **admin_headers)
    assert r.status_code == 400


@pytest.mark.django_db
def test_bulk_paella_status(client, employee_headers):
    cid = create(client, employee_headers).json()["id"]
    r = client.patch(f"{CLIENTS_URL}{cid}/paellas/status/", data={"status": "entregada"},
                     content_type="application/json", **employee_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["progress"] == "entregada"
    assert {p["status"] for p in body["paellas"]} == {"entregada"}


@pytest.mark.django_db
def test_single_paella_status(client, admin_headers):
    pid = create(client, admin_headers).json()["paellas"][0]["id"]
    r = client.patch(f"/api/paellas/{pid}/status/", data={"status": "cocinando"},
                     content_type="application/json", **admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "cocinando"

    r = client.patch("/api/paellas/missing/status/", data={"status": "lista"},
                     content_type="application/json", **admin_headers)
    assert r.status_code == 404


@pytest.mark.django_db
def test_ticket(client, employee_headers, stubs, monkeypatch):
    cid = create(client, employee_headers).json()["id"]
    r = client.post(f"{CLIENTS_URL}{cid}/ticket/", **employee_headers)
    assert r.status_code == 200
    assert r.json() == {"printed": True}
    _, _, printer = stubs
    assert printer.tickets[0]["reference"] == cid

    monkeypatch.setattr(printer, "print_ticket", lambda ticket: False)
    r = client.post(f"{CLIENTS_URL}{cid}/ticket/", **employee_headers)
    assert r.json() == {"printed": False}


@pytest.mark.django_db
def test_store_outage_maps_to_503(client, employee_headers, stubs, monkeypatch):
    store, _, _ = stubs

    def boom(*a, **kw):
        raise RuntimeError("CIRCUIT_OPEN")

    monkeypatch.setattr(store, "select", boom)
    r = client.get(CLIENTS_URL, **employee_headers)
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"


@pytest.mark.django_db
@pytest.mark.parametrize("deposit", [0, None])
def test_update_without_deposit_does_not_restore_default(client, admin_headers, deposit):
    payload = {**PAYLOAD, "paellas": [{"servings": 4, "deposit": deposit}]}
    created = create(client, admin_headers, payload).json()
    pid = created["paellas"][0]["id"]

    edit = {"first_name": "Ana", "last_name": "García", "paellas": [{"id": pid, "servings": 3, "notes": "x"}]}
    r = client.put(f"{CLIENTS_URL}{created['id']}/", data=edit, content_type="application/json", **admin_headers)
    assert r.status_code == 200
    p = r.json()["paellas"][0]
    assert p["deposit"] is None
    assert p["price"] is None
    assert p["notes"] == "x"
