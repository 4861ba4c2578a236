import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.core.config import settings
from campusfix.models.defect import Attachment
from campusfix.models.user import UserRole
from tests.utils.factories import auth_headers, create_defect, create_project, create_user

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


def stored_files(upload_dir: str):
    return [os.path.join(root, name) for root, _, names in os.walk(upload_dir) for name in names]


async def attachments_count(db: AsyncSession) -> int:
    return await db.scalar(select(func.count(Attachment.id)))


@pytest_asyncio.fixture
async def defect_setup(db_session: AsyncSession):
    engineer = await create_user(db_session, UserRole.ENGINEER)
    project = await create_project(db_session)
    defect = await create_defect(db_session, project, engineer)
    return engineer, defect


async def upload(client: httpx.AsyncClient, defect_id: int, user, files):
    return await client.post(f"/api/defects/{defect_id}/attachments", files=files, headers=auth_headers(user))


@pytest.mark.asyncio
async def test_upload_and_download(async_client: httpx.AsyncClient, db_session: AsyncSession, defect_setup, upload_dir):
    engineer, defect = defect_setup

    response = await upload(
        async_client,
        defect.id,
        engineer,
        [("files", ("photo 1.png", PNG, "image/png")), ("files", ("act.pdf", b"%PDF-1.4", "application/pdf"))],
    )

    assert response.status_code == 201
    attachments = response.json()["attachments"]
    assert [a["file_name"] for a in attachments] == ["photo 1.png", "act.pdf"]
    assert attachments[0]["file_size"] == len(PNG)
    assert "file_path" not in attachments[0]
    assert len(stored_files(upload_dir)) == 2

    download = await async_client.get(f"/api/attachments/{attachments[0]['id']}", headers=auth_headers(engineer))
    assert download.status_code == 200
    assert download.content == PNG
    assert download.headers["content-disposition"].startswith("attachment")

    history = await async_client.get(f"/api/defects/{defect.id}/history", headers=auth_headers(engineer))
    assert {e["new_value"] for e in history.json()["history"]} == {
        "Добавлен файл: photo 1.png",
        "Добавлен файл: act.pdf",
    }


@pytest.mark.asyncio
async def test_too_many_files_rejected(async_client: httpx.AsyncClient, db_session: AsyncSession, defect_setup, upload_dir):
    engineer, defect = defect_setup
    files = [("files", (f"{i}.png", PNG, "image/png")) for i in range(settings.MAX_FILES_PER_REQUEST + 1)]

    response = await upload(async_client, defect.id, engineer, files)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert stored_files(upload_dir) == []
    assert await attachments_count(db_session) == 0


@pytest.mark.asyncio
async def test_oversized_file_rejects_whole_batch(
    async_client: httpx.AsyncClient, db_session: AsyncSession, defect_setup, upload_dir
):
    engineer, defect = defect_setup
    files = [
        ("files", ("ok.png", PNG, "image/png")),
        ("files", ("big.pdf", b"0" * (settings.MAX_FILE_SIZE + 1), "application/pdf")),
    ]

    response = await upload(async_client, defect.id, engineer, files)

    assert response.status_code == 400
    assert stored_files(upload_dir) == []
    assert await attachments_count(db_session) == 0


@pytest.mark.asyncio
async def test_disallowed_type_rejects_whole_batch(
    async_client: httpx.AsyncClient, db_session: AsyncSession, defect_setup, upload_dir
):
    engineer, defect = defect_setup
    files = [
        ("files", ("ok.png", PNG, "image/png")),
        ("files", ("run.exe", b"MZ", "application/x-msdownload")),
    ]

    response = await upload(async_client, defect.id, engineer, files)

    assert response.status_code == 400
    assert "run.exe" in response.json()["errors"][0]["message"]
    assert stored_files(upload_dir) == []
    assert await attachments_count(db_session) == 0


@pytest.mark.asyncio
async def test_empty_upload_rejected(async_client: httpx.AsyncClient, defect_setup):
    engineer, defect = defect_setup

    response = await async_client.post(
        f"/api/defects/{defect.id}/attachments", data={"note": "нет файлов"}, headers=auth_headers(engineer)
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_to_missing_defect(async_client: httpx.AsyncClient, defect_setup, upload_dir):
    engineer, _ = defect_setup

    response = await upload(async_client, 999, engineer, [("files", ("ok.png", PNG, "image/png"))])

    assert response.status_code == 404
    assert stored_files(upload_dir) == []


@pytest.mark.asyncio
async def test_preview_is_inline_and_embeddable(async_client: httpx.AsyncClient, defect_setup, monkeypatch):
    engineer, defect = defect_setup
    uploaded = await upload(async_client, defect.id, engineer, [("files", ("plan.png", PNG, "image/png"))])
    attachment_id = uploaded.json()["attachments"][0]["id"]

    monkeypatch.setattr(settings, "ATTACHMENT_PREVIEW_PUBLIC", True)
    preview = await async_client.get(f"/api/attachments/{attachment_id}/preview")
    assert preview.status_code == 200
    assert preview.headers["content-disposition"].startswith("inline")
    assert preview.headers["cross-origin-resource-policy"] == "cross-origin"
    assert preview.headers["content-type"] == "image/png"

    monkeypatch.setattr(settings, "ATTACHMENT_PREVIEW_PUBLIC", False)
    assert (await async_client.get(f"/api/attachments/{attachment_id}/preview")).status_code == 401
    token = auth_headers(engineer)["Authorization"].split(" ", 1)[1]
    authorized = await async_client.get(f"/api/attachments/{attachment_id}/preview", params={"token": token})
    assert authorized.status_code == 200


@pytest.mark.asyncio
async def test_download_requires_auth(async_client: httpx.AsyncClient, defect_setup):
    engineer, defect = defect_setup
    uploaded = await upload(async_client, defect.id, engineer, [("files", ("plan.png", PNG, "image/png"))])
    attachment_id = uploaded.json()["attachments"][0]["id"]

    assert (await async_client.get(f"/api/attachments/{attachment_id}")).status_code == 401


@pytest.mark.asyncio
async def test_missing_file_on_disk_is_404(async_client: httpx.AsyncClient, defect_setup, upload_dir):
    engineer, defect = defect_setup
    uploaded = await upload(async_client, defect.id, engineer, [("files", ("plan.png", PNG, "image/png"))])
    attachment_id = uploaded.json()["attachments"][0]["id"]
    for path in stored_files(upload_dir):
        os.remove(path)

    response = await async_client.get(f"/api/attachments/{attachment_id}", headers=auth_headers(engineer))

    assert response.status_code == 404
    assert response.json()["success"] is False
    info = await async_client.get(f"/api/attachments/{attachment_id}/info", headers=auth_headers(engineer))
    assert info.status_code == 200


@pytest.mark.asyncio
async def test_delete_attachment_permissions(
    async_client: httpx.AsyncClient, db_session: AsyncSession, defect_setup, upload_dir
):
    engineer, defect = defect_setup
    other = await create_user(db_session, UserRole.ENGINEER)
    uploaded = await upload(async_client, defect.id, engineer, [("files", ("plan.png", PNG, "image/png"))])
    url = f"/api/attachments/{uploaded.json()['attachments'][0]['id']}"

    assert (await async_client.delete(url, headers=auth_headers(other))).status_code == 403
    assert (await async_client.delete(url, headers=auth_headers(engineer))).status_code == 200
    assert stored_files(upload_dir) == []
    listed = await async_client.get(f"/api/defects/{defect.id}/attachments", headers=auth_headers(engineer))
    assert listed.json()["attachments"] == []
