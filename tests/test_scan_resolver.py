from __future__ import annotations

import uuid
from datetime import datetime

import pytest

from app.core.errors import AlreadyDelivered, Forbidden, MalformedToken, NotEligible, NotFound
from app.services.scan_resolver import ScanResolver, extract_identifier, parse_scan_token
from tests.factories import make_actor, make_element, make_project


@pytest.mark.parametrize(
    "token,expected",
    [
        ("https://app.example.is/element/{id}", "{id}"),
        ("https://app.example.is/element/{id}/", "{id}"),
        ("https://app.example.is/element/{id}?src=qr#top", "{id}"),
        ("  {id}  ", "{id}"),
        ("{id}", "{id}"),
    ],
)
def test_extract_identifier(token, expected):
    element_id = str(uuid.uuid4())
    assert extract_identifier(token.format(id=element_id)) == expected.format(id=element_id)


def test_parse_accepts_upper_case_uuid():
    element_id = uuid.uuid4()
    assert parse_scan_token(str(element_id).upper()) == element_id


@pytest.mark.parametrize("token", ["", "   ", "hello", "https://app.example.is/element/not-a-uuid", "12345"])
def test_parse_rejects_malformed(token):
    with pytest.raises(MalformedToken):
        parse_scan_token(token)


@pytest.mark.parametrize("status", ["ready", "loaded"])
def test_resolve_eligible_element(db, status):
    project = make_project(db, name="Hafnartorg")
    element = make_element(db, project_id=project.id, status=status)

    result = ScanResolver(db).resolve(
        f"https://app.example.is/element/{element.id}?from=label",
        make_actor("driver"),
    )

    assert result.element.id == element.id
    assert result.project.id == project.id
    assert result.project.name == "Hafnartorg"


def test_resolve_raw_identifier(db):
    project = make_project(db)
    element = make_element(db, project_id=project.id, status="ready")

    assert ScanResolver(db).resolve(str(element.id), make_actor("admin")).element.id == element.id


def test_role_is_checked_before_token_shape(db):
    with pytest.raises(Forbidden):
        ScanResolver(db).resolve("garbage", make_actor("buyer"))


def test_unknown_element(db):
    with pytest.raises(NotFound):
        ScanResolver(db).resolve(str(uuid.uuid4()), make_actor("driver"))


def test_delivered_element_reports_delivery_date(db):
    project = make_project(db)
    element = make_element(
        db,
        project_id=project.id,
        status="delivered",
        delivered_at=datetime(2026, 2, 1, 10, 30),
    )

    with pytest.raises(AlreadyDelivered) as exc:
        ScanResolver(db).resolve(str(element.id), make_actor("driver"))

    assert exc.value.params["delivered_at"] == "2026-02-01"
    assert "2026-02-01" in exc.value.message


@pytest.mark.parametrize("status", ["planned", "rebar", "cast", "curing"])
def test_not_yet_ready_is_not_eligible(db, status):
    project = make_project(db)
    element = make_element(db, project_id=project.id, status=status)

    with pytest.raises(NotEligible) as exc:
        ScanResolver(db).resolve(str(element.id), make_actor("driver"))

    assert exc.value.params["status"] == status
