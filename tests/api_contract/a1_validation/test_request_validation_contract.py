from __future__ import annotations

from uuid import uuid4

from tests.factories import make_delivery, make_element, make_project


def _hdr(role: str = "admin", actor_id=None) -> dict[str, str]:
    return {"X-Role": role, "X-Actor-User-Id": str(actor_id or uuid4())}


def test_missing_role_header_is_401(client):
    r = client.get(f"/elements/{uuid4()}")
    assert r.status_code == 401, r.text
    assert r.json()["detail"] == "Missing X-Role header"


def test_missing_actor_header_is_401(client, db):
    project = make_project(db)
    r = client.post(
        "/elements",
        json={"project_id": str(project.id), "name": "V-1"},
        headers={"X-Role": "admin"},
    )
    assert r.status_code == 401, r.text


def test_actor_header_must_be_uuid(client, db):
    project = make_project(db)
    r = client.post(
        "/elements",
        json={"project_id": str(project.id), "name": "V-1"},
        headers={"X-Role": "admin", "X-Actor-User-Id": "nope"},
    )
    assert r.status_code == 400, r.text


def test_create_element_rejects_unknown_fields(client, db):
    project = make_project(db)
    r = client.post(
        "/elements",
        json={"project_id": str(project.id), "name": "V-1", "status": "ready"},
        headers=_hdr(),
    )
    assert r.status_code == 422, r.text


def test_create_element_rejects_out_of_range_dimensions(client, db):
    project = make_project(db)
    r = client.post(
        "/elements",
        json={"project_id": str(project.id), "name": "V-1", "length_mm": 0},
        headers=_hdr(),
    )
    assert r.status_code == 422, r.text


def test_create_element_ok(client, db):
    project = make_project(db)
    r = client.post(
        "/elements",
        json={"project_id": str(project.id), "name": "  V-101 ", "element_type": "wall", "weight_kg": 2400},
        headers=_hdr(),
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["name"] == "V-101"
    assert body["status"] == "planned"
    assert body["row_version"] == 1


def test_transition_rejects_unknown_status(client, db):
    element = make_element(db, project_id=make_project(db).id)
    r = client.post(
        f"/elements/{element.id}/transitions",
        json={"status": "shipped"},
        headers=_hdr("factory_manager"),
    )
    assert r.status_code == 422, r.text


def test_blank_truck_registration_is_validation_error(client, db):
    project = make_project(db)
    r = client.post(
        "/deliveries",
        json={"project_id": str(project.id), "truck_registration": "   "},
        headers=_hdr("driver"),
    )
    assert r.status_code == 422, r.text
    assert r.json()["code"] == "validation_error"


def test_complete_requires_receiver_name(client, db):
    driver_id = uuid4()
    delivery = make_delivery(db, project_id=make_project(db).id, driver_id=driver_id, status="arrived")
    r = client.post(
        f"/deliveries/{delivery.id}/complete",
        json={"received_by_name": ""},
        headers=_hdr("driver", driver_id),
    )
    assert r.status_code == 422, r.text


def test_patch_null_for_required_field_is_422(client, db):
    element = make_element(db, project_id=make_project(db).id, priority=2)
    db.commit()

    for field in ("priority", "element_type", "name"):
        r = client.patch(f"/elements/{element.id}", json={field: None}, headers=_hdr())
        assert r.status_code == 422, r.text

    r = client.get(f"/elements/{element.id}", headers=_hdr())
    assert r.json()["priority"] == 2


def test_patch_null_clears_optional_field(client, db):
    element = make_element(db, project_id=make_project(db).id, floor=3)
    db.commit()

    r = client.patch(f"/elements/{element.id}", json={"floor": None}, headers=_hdr())
    assert r.status_code == 200, r.text
    assert r.json()["floor"] is None
