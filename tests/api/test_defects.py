import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.models.defect import DefectPriority, DefectStatus
from campusfix.models.user import UserRole
from tests.utils.factories import auth_headers, create_defect, create_project, create_stage, create_user


@pytest.mark.asyncio
async def test_create_defect(async_client: httpx.AsyncClient, db_session: AsyncSession, mock_kafka):
    engineer = await create_user(db_session, UserRole.ENGINEER)
    project = await create_project(db_session)
    stage = await create_stage(db_session, project)

    response = await async_client.post(
        "/api/defects",
        json={
            "title": "Отслоение штукатурки",
            "project_id": project.id,
            "stage_id": stage.id,
            "priority": "высокий",
            "due_date": "2024-07-01",
            "status": "закрыт",
        },
        headers=auth_headers(engineer),
    )

    assert response.status_code == 201
    defect = response.json()["defect"]
    assert defect["status"] == "новый"
    assert defect["reporter"]["id"] == engineer.id
    assert defect["project"] == {"id": project.id, "name": project.name}
    assert defect["stage"]["id"] == stage.id
    assert mock_kafka.event_types() == ["defect_created"]


@pytest.mark.asyncio
async def test_create_defect_unknown_project(async_client: httpx.AsyncClient, db_session: AsyncSession):
    engineer = await create_user(db_session)

    response = await async_client.post(
        "/api/defects", json={"title": "Скол", "project_id": 999}, headers=auth_headers(engineer)
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "project_id"


@pytest.mark.asyncio
async def test_list_filters_and_pagination(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)
    project = await create_project(db_session)
    other = await create_project(db_session)
    for _ in range(3):
        await create_defect(db_session, project, user, priority=DefectPriority.HIGH)
    await create_defect(db_session, project, user, priority=DefectPriority.LOW)
    await create_defect(db_session, other, user, priority=DefectPriority.HIGH)

    response = await async_client.get(
        "/api/defects",
        params={"project_id": project.id, "priority": "высокий", "limit": 2, "page": 2},
        headers=auth_headers(user),
    )

    data = response.json()
    assert response.status_code == 200
    assert (data["total"], data["page"], data["limit"], data["pages"]) == (3, 2, 2, 2)
    assert len(data["defects"]) == 1


@pytest.mark.asyncio
async def test_sort_by_priority(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)
    project = await create_project(db_session)
    for priority in (DefectPriority.MEDIUM, DefectPriority.CRITICAL, DefectPriority.LOW):
        await create_defect(db_session, project, user, priority=priority)

    response = await async_client.get(
        "/api/defects", params={"sortBy": "priority", "sortOrder": "asc"}, headers=auth_headers(user)
    )

    assert [d["priority"] for d in response.json()["defects"]] == ["низкий", "средний", "критический"]


@pytest.mark.asyncio
async def test_unknown_sort_field_falls_back(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)
    project = await create_project(db_session)
    first = await create_defect(db_session, project, user)
    second = await create_defect(db_session, project, user)

    response = await async_client.get(
        "/api/defects", params={"sortBy": "password_hash"}, headers=auth_headers(user)
    )

    assert response.status_code == 200
    assert {d["id"] for d in response.json()["defects"]} == {first.id, second.id}


@pytest.mark.asyncio
async def test_bad_sort_order_rejected(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)

    response = await async_client.get("/api/defects", params={"sortOrder": "sideways"}, headers=auth_headers(user))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_search_by_title(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)
    project = await create_project(db_session)
    await create_defect(db_session, project, user, title="Crack in wall")
    await create_defect(db_session, project, user, title="Leaking pipe")

    response = await async_client.get("/api/defects", params={"search": "crack"}, headers=auth_headers(user))

    assert [d["title"] for d in response.json()["defects"]] == ["Crack in wall"]


@pytest.mark.asyncio
async def test_engineer_workflow_over_api(async_client: httpx.AsyncClient, db_session: AsyncSession):
    manager = await create_user(db_session, UserRole.MANAGER)
    engineer = await create_user(db_session, UserRole.ENGINEER)
    observer = await create_user(db_session, UserRole.OBSERVER)
    project = await create_project(db_session, manager)
    defect = await create_defect(db_session, project, manager, assignee=engineer)
    url = f"/api/defects/{defect.id}"

    denied = await async_client.put(url, json={"status": "в работе"}, headers=auth_headers(engineer))
    assert denied.status_code == 400
    assert denied.json()["errors"][0]["field"] == "status"

    steps = [
        (manager, "подтвержден"),
        (engineer, "в работе"),
        (engineer, "исправлен"),
        (observer, "проверен"),
        (observer, "закрыт"),
    ]
    for user, status in steps:
        response = await async_client.put(url, json={"status": status}, headers=auth_headers(user))
        assert response.status_code == 200, response.json()
        assert response.json()["defect"]["status"] == status

    assert response.json()["defect"]["closed_at"] is not None

    history = await async_client.get(f"{url}/history", headers=auth_headers(manager))
    entries = history.json()["history"]
    assert [e["new_value"] for e in entries if e["field_name"] == "status"] == [
        "закрыт",
        "проверен",
        "исправлен",
        "в работе",
        "подтвержден",
    ]


@pytest.mark.asyncio
async def test_admin_can_reopen_closed_defect(async_client: httpx.AsyncClient, db_session: AsyncSession):
    admin = await create_user(db_session, UserRole.ADMIN)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, admin, status=DefectStatus.CLOSED)

    response = await async_client.put(
        f"/api/defects/{defect.id}", json={"status": "новый"}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.json()["defect"]["closed_at"] is None


@pytest.mark.asyncio
async def test_defect_detail_with_comments(async_client: httpx.AsyncClient, db_session: AsyncSession, mock_kafka):
    reporter = await create_user(db_session, UserRole.MANAGER)
    engineer = await create_user(db_session, UserRole.ENGINEER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, reporter, assignee=engineer)

    created = await async_client.post(
        f"/api/defects/{defect.id}/comments", json={"text": "  Взял в работу "}, headers=auth_headers(engineer)
    )
    assert created.status_code == 201
    assert created.json()["comment"]["text"] == "Взял в работу"
    assert created.json()["comment"]["author"]["id"] == engineer.id
    assert mock_kafka.sent_messages[-1]["message"]["data"]["notify_emails"] == [reporter.email]

    detail = await async_client.get(f"/api/defects/{defect.id}", headers=auth_headers(reporter))
    body = detail.json()["defect"]
    assert [c["text"] for c in body["comments"]] == ["Взял в работу"]
    assert body["attachments"] == []


@pytest.mark.asyncio
async def test_only_author_edits_comment(async_client: httpx.AsyncClient, db_session: AsyncSession):
    author = await create_user(db_session, UserRole.ENGINEER)
    stranger = await create_user(db_session, UserRole.OBSERVER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, author)
    created = await async_client.post(
        f"/api/defects/{defect.id}/comments", json={"text": "Первый"}, headers=auth_headers(author)
    )
    url = f"/api/defects/{defect.id}/comments/{created.json()['comment']['id']}"

    assert (await async_client.put(url, json={"text": "Чужой"}, headers=auth_headers(stranger))).status_code == 403
    updated = await async_client.put(url, json={"text": "Исправленный"}, headers=auth_headers(author))
    assert updated.json()["comment"]["text"] == "Исправленный"
    assert (await async_client.delete(url, headers=auth_headers(author))).status_code == 200
    listed = await async_client.get(f"/api/defects/{defect.id}/comments", headers=auth_headers(author))
    assert listed.json()["comments"] == []


@pytest.mark.asyncio
async def test_delete_defect_requires_manager(async_client: httpx.AsyncClient, db_session: AsyncSession):
    engineer = await create_user(db_session, UserRole.ENGINEER)
    manager = await create_user(db_session, UserRole.MANAGER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, engineer)
    url = f"/api/defects/{defect.id}"

    assert (await async_client.delete(url, headers=auth_headers(engineer))).status_code == 403
    assert (await async_client.delete(url, headers=auth_headers(manager))).status_code == 200
    assert (await async_client.get(url, headers=auth_headers(manager))).status_code == 404
