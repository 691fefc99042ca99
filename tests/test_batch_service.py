from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select, update

from app.core.errors import (
    ChecklistIncomplete,
    Forbidden,
    InvalidSelection,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from app.models.element import Element
from app.models.element_event import ElementEvent
from app.models.production_batch import ProductionBatch
from app.services.batch_service import BatchService
from app.services.element_lifecycle_service import ElementLifecycleService
from app.services.notification_dispatcher import NullDispatcher
from tests.factories import make_actor, make_element, make_project


def _svc(db) -> BatchService:
    return BatchService(db, ElementLifecycleService(db, NullDispatcher()))


def _statuses(db, ids) -> dict:
    rows = db.execute(select(Element.id, Element.status).where(Element.id.in_(ids))).all()
    return {r[0]: r[1] for r in rows}


def _check_all(svc, batch, actor):
    for item in batch.checklist:
        batch = svc.set_checklist_item(batch.id, item["key"], True, actor=actor)
    return batch


def test_create_batch_assigns_members_without_status_change(db):
    project = make_project(db)
    a = make_element(db, project_id=project.id, status="planned")
    b = make_element(db, project_id=project.id, status="rebar")
    actor = make_actor("factory_manager")

    batch = _svc(db).create_batch(
        project_id=project.id,
        element_ids=[a.id, b.id],
        actor=actor,
        batch_date=date(2026, 3, 4),
        concrete_grade="C35/45",
    )

    assert batch.status == "preparing"
    assert batch.batch_number == "LOT-20260304-001"
    assert [i["key"] for i in batch.checklist] == ["formwork", "rebar", "embeds"]
    assert not any(i["checked"] for i in batch.checklist)

    members = db.execute(select(Element).where(Element.batch_id == batch.id)).scalars().all()
    assert {m.id for m in members} == {a.id, b.id}
    assert _statuses(db, [a.id, b.id]) == {a.id: "planned", b.id: "rebar"}


def test_batch_numbers_are_sequential_per_day(db):
    project = make_project(db)
    actor = make_actor("admin")
    svc = _svc(db)
    day = date(2026, 3, 4)

    numbers = []
    for _ in range(3):
        e = make_element(db, project_id=project.id)
        numbers.append(svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor, batch_date=day).batch_number)

    assert numbers == ["LOT-20260304-001", "LOT-20260304-002", "LOT-20260304-003"]


def test_batch_number_collision_is_retried(db):
    project = make_project(db)
    actor = make_actor("admin")
    day = date(2026, 3, 4)
    # one batch exists for the day, so the counter proposes -002, which is taken
    db.add(
        ProductionBatch(
            project_id=project.id,
            batch_number="LOT-20260304-002",
            batch_date=day,
            checklist=[],
            status="cancelled",
        )
    )
    db.flush()

    e = make_element(db, project_id=project.id)
    batch = _svc(db).create_batch(project_id=project.id, element_ids=[e.id], actor=actor, batch_date=day)
    assert batch.batch_number == "LOT-20260304-003"


@pytest.mark.parametrize(
    "case",
    ["empty", "unknown", "other_project", "already_batched", "already_cast"],
)
def test_create_batch_invalid_selection(db, case):
    project = make_project(db)
    other = make_project(db)
    actor = make_actor("admin")
    svc = _svc(db)

    if case == "empty":
        ids = []
    elif case == "unknown":
        ids = [uuid.uuid4()]
    elif case == "other_project":
        ids = [make_element(db, project_id=other.id).id]
    elif case == "already_batched":
        e = make_element(db, project_id=project.id)
        svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor)
        ids = [e.id]
    else:
        ids = [make_element(db, project_id=project.id, status="cast").id]

    before = db.execute(select(func.count()).select_from(ProductionBatch)).scalar_one()
    with pytest.raises(InvalidSelection):
        svc.create_batch(project_id=project.id, element_ids=ids, actor=actor)
    after = db.execute(select(func.count()).select_from(ProductionBatch)).scalar_one()
    assert after == before


def test_create_batch_requires_production_role(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    with pytest.raises(Forbidden):
        _svc(db).create_batch(project_id=project.id, element_ids=[e.id], actor=make_actor("driver"))


def test_create_batch_unknown_project(db):
    with pytest.raises(NotFound):
        _svc(db).create_batch(project_id=uuid.uuid4(), element_ids=[uuid.uuid4()], actor=make_actor("admin"))


def test_checklist_item_check_and_uncheck(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    actor = make_actor("factory_manager")
    svc = _svc(db)
    batch = svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor)

    batch = svc.set_checklist_item(batch.id, "rebar", True, actor=actor)
    by_key = {i["key"]: i for i in batch.checklist}
    assert by_key["rebar"]["checked"] is True
    assert by_key["rebar"]["checked_by"] == str(actor.actor_user_id)
    assert by_key["rebar"]["checked_at"] is not None
    assert by_key["formwork"]["checked"] is False
    assert by_key["embeds"]["checked"] is False

    batch = svc.set_checklist_item(batch.id, "rebar", False, actor=actor)
    by_key = {i["key"]: i for i in batch.checklist}
    assert by_key["rebar"] == {
        "key": "rebar",
        "label": by_key["rebar"]["label"],
        "checked": False,
        "checked_by": None,
        "checked_at": None,
    }
    # element untouched
    assert _statuses(db, [e.id]) == {e.id: "planned"}


def test_checklist_unknown_key(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    actor = make_actor("admin")
    svc = _svc(db)
    batch = svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor)

    with pytest.raises(InvalidSelection):
        svc.set_checklist_item(batch.id, "vibration", True, actor=actor)


def test_complete_batch_checklist_gate_then_cast(db):
    """Two planned elements, 3 checklist items: blocked until all checked, then both cast."""
    project = make_project(db)
    a = make_element(db, project_id=project.id, status="planned", name="A")
    b = make_element(db, project_id=project.id, status="planned", name="B")
    actor = make_actor("factory_manager")
    svc = _svc(db)

    batch = svc.create_batch(project_id=project.id, element_ids=[a.id, b.id], actor=actor)
    assert len(batch.checklist) == 3

    svc.set_checklist_item(batch.id, "formwork", True, actor=actor)
    with pytest.raises(ChecklistIncomplete) as exc:
        svc.complete_batch(batch.id, actor=actor)
    assert exc.value.params["unchecked"] == 2
    assert _statuses(db, [a.id, b.id]) == {a.id: "planned", b.id: "planned"}

    _check_all(svc, batch, actor)
    done = svc.complete_batch(batch.id, actor=actor)

    assert done.status == "completed"
    assert done.completed_by == actor.actor_user_id
    assert done.completed_at is not None
    assert _statuses(db, [a.id, b.id]) == {a.id: "cast", b.id: "cast"}

    # planned members walk planned -> rebar -> cast
    trail = db.execute(
        select(ElementEvent.previous_status, ElementEvent.status)
        .where(ElementEvent.element_id == a.id)
        .order_by(ElementEvent.created_at)
    ).all()
    assert [tuple(r) for r in trail] == [("planned", "rebar"), ("rebar", "cast")]


def test_complete_batch_twice_is_rejected_without_element_mutation(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id, status="rebar")
    actor = make_actor("admin")
    svc = _svc(db)
    batch = _check_all(svc, svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor), actor)
    svc.complete_batch(batch.id, actor=actor)

    events_before = db.execute(select(func.count()).select_from(ElementEvent)).scalar_one()
    with pytest.raises(InvalidState):
        svc.complete_batch(batch.id, actor=actor)
    events_after = db.execute(select(func.count()).select_from(ElementEvent)).scalar_one()

    assert events_after == events_before
    assert _statuses(db, [e.id]) == {e.id: "cast"}


def test_completed_batch_checklist_is_frozen(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    actor = make_actor("admin")
    svc = _svc(db)
    batch = _check_all(svc, svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor), actor)
    svc.complete_batch(batch.id, actor=actor)

    with pytest.raises(InvalidState):
        svc.set_checklist_item(batch.id, "formwork", False, actor=actor)
    with pytest.raises(InvalidState):
        svc.cancel_batch(batch.id, actor=actor)


def test_failed_member_cast_rolls_back_the_whole_batch(db):
    """A member moved concurrently to 'ready' cannot be cast: nobody ends up cast, batch stays preparing."""
    project = make_project(db)
    a = make_element(db, project_id=project.id, status="planned", name="A")
    b = make_element(db, project_id=project.id, status="planned", name="B")
    actor = make_actor("admin")
    svc = _svc(db)
    batch = _check_all(svc, svc.create_batch(project_id=project.id, element_ids=[a.id, b.id], actor=actor), actor)

    db.execute(
        update(Element)
        .where(Element.id == b.id)
        .values(status="ready")
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(InvalidTransition):
        svc.complete_batch(batch.id, actor=actor)

    assert _statuses(db, [a.id, b.id]) == {a.id: "planned", b.id: "ready"}
    assert svc.get(batch.id).status == "preparing"
    events = db.execute(
        select(func.count()).select_from(ElementEvent).where(ElementEvent.element_id == a.id)
    ).scalar_one()
    assert events == 0


def test_cancel_batch_releases_members(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    actor = make_actor("factory_manager")
    svc = _svc(db)
    batch = svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor)

    cancelled = svc.cancel_batch(batch.id, actor=actor)

    assert cancelled.status == "cancelled"
    assert db.execute(select(Element.batch_id).where(Element.id == e.id)).scalar_one() is None
    assert [c.id for c in svc.list_unbatched_elements(project.id)] == [e.id]

    with pytest.raises(InvalidState):
        svc.update_batch(batch.id, {"notes": "late"}, actor=actor)


def test_update_batch_metadata(db):
    project = make_project(db)
    e = make_element(db, project_id=project.id)
    actor = make_actor("admin")
    svc = _svc(db)
    batch = svc.create_batch(project_id=project.id, element_ids=[e.id], actor=actor)

    out = svc.update_batch(
        batch.id,
        {"concrete_supplier": "Steypustöðin", "air_temperature_c": 4.5},
        actor=actor,
    )
    assert out.concrete_supplier == "Steypustöðin"
    assert out.air_temperature_c == 4.5

    with pytest.raises(ValueError):
        svc.update_batch(batch.id, {"status": "completed"}, actor=actor)


def test_unbatched_candidates(db):
    project = make_project(db)
    planned = make_element(db, project_id=project.id, status="planned", name="A")
    rebar = make_element(db, project_id=project.id, status="rebar", name="B")
    make_element(db, project_id=project.id, status="cast", name="C")
    batched = make_element(db, project_id=project.id, status="planned", name="D")
    make_element(db, project_id=make_project(db).id, status="planned", name="E")

    svc = _svc(db)
    svc.create_batch(project_id=project.id, element_ids=[batched.id], actor=make_actor("admin"))

    assert [e.id for e in svc.list_unbatched_elements(project.id)] == [planned.id, rebar.id]
