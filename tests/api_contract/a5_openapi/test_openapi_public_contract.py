from __future__ import annotations


def test_openapi_json_is_public(client):
    """/openapi.json must be reachable without auth headers."""
    r = client.get("/openapi.json", headers={})
    assert r.status_code == 200, r.text
    j = r.json()
    assert "openapi" in j
    assert "paths" in j


def test_health_is_public(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_openapi_documents_header_auth(client):
    j = client.get("/openapi.json").json()
    schemes = j["components"]["securitySchemes"]

    assert schemes["XRole"]["name"] == "X-Role"
    assert schemes["XActorUserId"]["name"] == "X-Actor-User-Id"
    assert j["security"] == [{"XRole": [], "XActorUserId": []}]
    assert j["paths"]["/health"]["get"]["security"] == []


def test_openapi_contains_lifecycle_endpoints(client):
    paths = client.get("/openapi.json").json()["paths"]

    expected = {
        ("/elements/{element_id}/transitions", "post"),
        ("/batches", "post"),
        ("/batches/{batch_id}/checklist/{item_key}", "put"),
        ("/batches/{batch_id}/complete", "post"),
        ("/scan", "post"),
        ("/deliveries/{delivery_id}/items", "post"),
        ("/deliveries/{delivery_id}/items/{element_id}", "delete"),
        ("/deliveries/{delivery_id}/items/{element_id}/confirm", "post"),
        ("/deliveries/{delivery_id}/depart", "post"),
        ("/deliveries/{delivery_id}/arrive", "post"),
        ("/deliveries/{delivery_id}/complete", "post"),
    }
    missing = {(p, m) for p, m in expected if m not in paths.get(p, {})}
    assert not missing, sorted(missing)


def test_transition_request_schema_is_strict(client):
    j = client.get("/openapi.json").json()
    schema = j["components"]["schemas"]["ElementTransitionRequest"]

    assert schema["required"] == ["status"]
    assert schema.get("additionalProperties") is False
