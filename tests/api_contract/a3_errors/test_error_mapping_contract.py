from __future__ import annotations

from uuid import uuid4

from tests.factories import make_element, make_project


def _hdr(role: str, actor_id=None) -> dict[str, str]:
    return {"X-Role": role, "X-Actor-User-Id": str(actor_id or uuid4())}


def test_unknown_element_is_404(client):
    r = client.get(f"/elements/{uuid4()}", headers=_hdr("admin"))
    assert r.status_code == 404, r.text
    body = r.json()
    assert body["code"] == "not_found"
    assert body["entity"] == "Element"


def test_buyer_cannot_transition(client, db):
    """buyer is read-only -> 403, status untouched"""
    element = make_element(db, project_id=make_project(db).id)
    db.commit()

    r = client.post(f"/elements/{element.id}/transitions", json={"status": "rebar"}, headers=_hdr("buyer"))
    assert r.status_code == 403, r.text
    assert r.json()["code"] == "forbidden"

    r = client.get(f"/elements/{element.id}", headers=_hdr("buyer"))
    assert r.json()["status"] == "planned"


def test_illegal_edge_is_422_with_allowed_targets(client, db):
    element = make_element(db, project_id=make_project(db).id, status="planned")
    r = client.post(f"/elements/{element.id}/transitions", json={"status": "ready"}, headers=_hdr("admin"))
    assert r.status_code == 422, r.text
    body = r.json()
    assert body["code"] == "invalid_transition"
    assert body["from_status"] == "planned"
    assert body["to_status"] == "ready"
    assert body["allowed"] == ["rebar"]
    assert "'planned'" in body["detail"]


def test_checklist_incomplete_is_409(client, db):
    project = make_project(db)
    element = make_element(db, project_id=project.id)
    r = client.post(
        "/batches",
        json={"project_id": str(project.id), "element_ids": [str(element.id)]},
        headers=_hdr("factory_manager"),
    )
    assert r.status_code == 201, r.text
    batch_id = r.json()["id"]

    r = client.post(f"/batches/{batch_id}/complete", headers=_hdr("factory_manager"))
    assert r.status_code == 409, r.text
    body = r.json()
    assert body["code"] == "checklist_incomplete"
    assert body["unchecked"] == 3


def test_empty_batch_selection_is_422(client, db):
    project = make_project(db)
    r = client.post(
        "/batches",
        json={"project_id": str(project.id), "element_ids": []},
        headers=_hdr("admin"),
    )
    assert r.status_code == 422, r.text
    assert r.json()["code"] == "invalid_selection"


def test_malformed_scan_is_400(client):
    r = client.post("/scan", json={"scan_token": "https://x.test/element/abc"}, headers=_hdr("driver"))
    assert r.status_code == 400, r.text
    assert r.json()["code"] == "malformed_token"


def test_scan_not_ready_is_422(client, db):
    element = make_element(db, project_id=make_project(db).id, status="curing")
    r = client.post("/scan", json={"scan_token": str(element.id)}, headers=_hdr("driver"))
    assert r.status_code == 422, r.text
    body = r.json()
    assert body["code"] == "not_eligible"
    assert body["status"] == "curing"


def test_scan_ok_returns_element_and_project(client, db):
    project = make_project(db, name="Hafnartorg")
    element = make_element(db, project_id=project.id, status="ready")
    r = client.post(
        "/scan",
        json={"scan_token": f"https://app.example.is/element/{element.id}"},
        headers=_hdr("driver"),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["element"]["id"] == str(element.id)
    assert body["project"]["name"] == "Hafnartorg"
