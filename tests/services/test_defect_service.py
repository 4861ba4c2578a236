from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.core.exceptions import ForbiddenError, InvalidStatusTransitionError, ValidationError
from campusfix.models.defect import DefectPriority, DefectStatus
from campusfix.models.user import UserRole
from campusfix.schemas.defect import DefectCreate, DefectUpdate
from campusfix.services import defect as defect_service
from tests.utils.factories import create_defect, create_project, create_stage, create_user


@pytest.mark.asyncio
async def test_create_sets_new_status_and_history(db_session: AsyncSession, mock_kafka):
    engineer = await create_user(db_session, UserRole.ENGINEER)
    project = await create_project(db_session)

    defect = await defect_service.create(
        db_session,
        obj_in=DefectCreate(title="Протечка кровли", project_id=project.id, priority=DefectPriority.HIGH),
        current_user=engineer,
    )

    assert defect.status == DefectStatus.NEW
    assert defect.reported_by == engineer.id
    assert defect.reporter.id == engineer.id
    history = await defect_service.get_history(db_session, defect_id=defect.id)
    assert [h.field_name for h in history] == ["дефект"]
    assert mock_kafka.event_types() == ["defect_created"]


@pytest.mark.asyncio
async def test_create_reports_all_bad_references(db_session: AsyncSession):
    engineer = await create_user(db_session)
    project = await create_project(db_session)
    other = await create_project(db_session)
    stage = await create_stage(db_session, other)

    with pytest.raises(ValidationError) as exc_info:
        await defect_service.create(
            db_session,
            obj_in=DefectCreate(title="Скол плитки", project_id=project.id, stage_id=stage.id, assigned_to=9999),
            current_user=engineer,
        )
    assert {e["field"] for e in exc_info.value.errors} == {"stage_id", "assigned_to"}


@pytest.mark.asyncio
async def test_update_writes_one_history_row_per_changed_field(db_session: AsyncSession, mock_kafka):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session, manager)
    defect = await create_defect(db_session, project, manager, title="Старое название")

    updated = await defect_service.update(
        db_session,
        db_obj=defect,
        obj_in=DefectUpdate(title="Новое название", priority=DefectPriority.CRITICAL, description=None),
        current_user=manager,
    )

    assert updated.title == "Новое название"
    history = await defect_service.get_history(db_session, defect_id=defect.id)
    assert sorted(h.field_name for h in history) == ["priority", "title"]
    title_entry = next(h for h in history if h.field_name == "title")
    assert (title_entry.old_value, title_entry.new_value) == ("Старое название", "Новое название")
    assert mock_kafka.event_types() == ["defect_updated"]


@pytest.mark.asyncio
async def test_update_without_changes_writes_nothing(db_session: AsyncSession, mock_kafka):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, manager, status=DefectStatus.CONFIRMED)

    await defect_service.update(
        db_session,
        db_obj=defect,
        obj_in=DefectUpdate(status=DefectStatus.CONFIRMED, title=defect.title),
        current_user=manager,
    )

    assert await defect_service.get_history(db_session, defect_id=defect.id) == []
    assert mock_kafka.sent_messages == []


@pytest.mark.asyncio
async def test_explicit_null_for_required_field_rejected(db_session: AsyncSession):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, manager)

    with pytest.raises(ValidationError):
        await defect_service.update(
            db_session, db_obj=defect, obj_in=DefectUpdate(title=None), current_user=manager
        )


@pytest.mark.asyncio
async def test_explicit_null_clears_optional_field(db_session: AsyncSession):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, manager, due_date=date(2024, 1, 10))

    updated = await defect_service.update(
        db_session, db_obj=defect, obj_in=DefectUpdate(due_date=None), current_user=manager
    )
    assert updated.due_date is None


@pytest.mark.asyncio
async def test_engineer_cannot_take_new_defect(db_session: AsyncSession):
    engineer = await create_user(db_session, UserRole.ENGINEER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, engineer)

    with pytest.raises(InvalidStatusTransitionError):
        await defect_service.update(
            db_session,
            db_obj=defect,
            obj_in=DefectUpdate(status=DefectStatus.IN_PROGRESS),
            current_user=engineer,
        )
    assert await defect_service.get_history(db_session, defect_id=defect.id) == []


@pytest.mark.asyncio
async def test_closed_at_set_and_cleared(db_session: AsyncSession, mock_kafka):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, manager, status=DefectStatus.VERIFIED)

    closed = await defect_service.update(
        db_session, db_obj=defect, obj_in=DefectUpdate(status=DefectStatus.CLOSED), current_user=manager
    )
    assert closed.closed_at is not None

    reopened = await defect_service.update(
        db_session, db_obj=closed, obj_in=DefectUpdate(status=DefectStatus.IN_PROGRESS), current_user=manager
    )
    assert reopened.closed_at is None
    assert mock_kafka.event_types() == ["defect_status_changed", "defect_status_changed"]


@pytest.mark.asyncio
async def test_observer_cannot_edit_fields(db_session: AsyncSession):
    reporter = await create_user(db_session, UserRole.ENGINEER)
    observer = await create_user(db_session, UserRole.OBSERVER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, reporter)

    with pytest.raises(ForbiddenError):
        await defect_service.update(
            db_session, db_obj=defect, obj_in=DefectUpdate(title="Другое"), current_user=observer
        )


@pytest.mark.asyncio
async def test_project_change_resets_stage(db_session: AsyncSession):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    stage = await create_stage(db_session, project)
    other = await create_project(db_session)
    defect = await create_defect(db_session, project, manager, stage_id=stage.id)

    updated = await defect_service.update(
        db_session, db_obj=defect, obj_in=DefectUpdate(project_id=other.id), current_user=manager
    )
    assert updated.project_id == other.id
    assert updated.stage_id is None


@pytest.mark.asyncio
async def test_overdue_skips_closed_defects(db_session: AsyncSession):
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    late = await create_defect(db_session, project, manager, due_date=date(2024, 1, 1))
    await create_defect(db_session, project, manager, due_date=date(2024, 1, 1), status=DefectStatus.CLOSED)
    await create_defect(db_session, project, manager, due_date=date(2024, 3, 1))

    overdue = await defect_service.get_overdue(db_session, today=date(2024, 2, 1))
    assert [d.id for d in overdue] == [late.id]
