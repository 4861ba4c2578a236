"""
Экспорт отчетов в CSV и XLSX и сводная статистика по дефектам.

Оба формата строятся из одного и того же списка строк, поэтому для одинаковых
фильтров содержат одинаковые записи и значения. CSV: разделитель ';', UTF-8 с BOM,
даты в формате DD.MM.YYYY. XLSX: жирный центрированный заголовок, ячейки дат с
форматом DD.MM.YYYY.
"""
import csv
import io
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from sqlalchemy.ext.asyncio import AsyncSession

import campusfix.repo.defect as defect_repo
from campusfix.models.defect import Defect, DefectStatus
from campusfix.models.project import Project, ProjectStage
from campusfix.repo import project as project_repo
from campusfix.services import project as project_service

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"
DATE_FORMAT = "%d.%m.%Y"
EXCEL_DATE_FORMAT = "DD.MM.YYYY"
HEADER_FONT = Font(bold=True)
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

DEFECT_HEADERS = [
    "ID",
    "Название",
    "Описание",
    "Проект",
    "Этап",
    "Статус",
    "Приоритет",
    "Автор",
    "Исполнитель",
    "Срок устранения",
    "Дата создания",
    "Дата обновления",
    "Дата закрытия",
]
STAGE_HEADERS = ["ID", "Название", "Описание", "Статус", "Дата начала", "Дата окончания", "Дефектов"]

OPEN_STATUSES = {
    DefectStatus.NEW,
    DefectStatus.CONFIRMED,
    DefectStatus.IN_PROGRESS,
    DefectStatus.FIXED,
    DefectStatus.VERIFIED,
}

Table = Tuple[List[str], List[List[Any]]]


def _as_date(value: Optional[Any]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def defect_rows(defects: Sequence[Defect]) -> List[List[Any]]:
    """Строки таблицы дефектов; даты остаются объектами date, форматирование зависит от формата файла"""
    return [
        [
            d.id,
            d.title,
            d.description,
            d.project.name if d.project else None,
            d.stage.name if d.stage else None,
            _enum_value(d.status),
            _enum_value(d.priority),
            d.reporter.full_name if d.reporter else None,
            d.assignee.full_name if d.assignee else None,
            _as_date(d.due_date),
            _as_date(d.created_at),
            _as_date(d.updated_at),
            _as_date(d.closed_at),
        ]
        for d in defects
    ]


def stage_rows(stages: Sequence[ProjectStage], defects: Sequence[Defect]) -> List[List[Any]]:
    counts: Dict[int, int] = {}
    for d in defects:
        if d.stage_id is not None:
            counts[d.stage_id] = counts.get(d.stage_id, 0) + 1
    return [
        [
            s.id,
            s.name,
            s.description,
            _enum_value(s.status),
            _as_date(s.start_date),
            _as_date(s.end_date),
            counts.get(s.id, 0),
        ]
        for s in stages
    ]


def summary_rows(project: Project, stages: Sequence[ProjectStage], defects: Sequence[Defect]) -> List[List[Any]]:
    open_count = sum(1 for d in defects if d.status in OPEN_STATUSES)
    return [
        ["Название", project.name],
        ["Описание", project.description],
        ["Адрес", project.address],
        ["Статус", _enum_value(project.status)],
        ["Приоритет", _enum_value(project.priority)],
        ["Руководитель", project.manager.full_name if project.manager else None],
        ["Дата начала", _as_date(project.start_date)],
        ["Дата окончания", _as_date(project.end_date)],
        ["Этапов", len(stages)],
        ["Всего дефектов", len(defects)],
        ["Открытых дефектов", open_count],
        ["Закрытых дефектов", sum(1 for d in defects if d.status == DefectStatus.CLOSED)],
        ["Отклоненных дефектов", sum(1 for d in defects if d.status == DefectStatus.REJECTED)],
    ]


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return _as_date(value).strftime(DATE_FORMAT)
    return str(value)


def render_csv(sections: Sequence[Tuple[Optional[str], Table]]) -> bytes:
    """
    Несколько таблиц в одном CSV: перед каждой, кроме безымянной, строка с заголовком
    раздела, между разделами пустая строка.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=CSV_DELIMITER, lineterminator="\r\n")
    for index, (title, (headers, rows)) in enumerate(sections):
        if index:
            writer.writerow([])
        if title:
            writer.writerow([title])
        if headers:
            writer.writerow(headers)
        for row in rows:
            writer.writerow([format_csv_value(v) for v in row])
    return buf.getvalue().encode("utf-8-sig")


def _fill_sheet(ws, headers: List[str], rows: List[List[Any]]) -> None:
    widths = [len(h) for h in headers] if headers else []
    start_row = 1
    if headers:
        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = HEADER_FONT
            cell.alignment = HEADER_ALIGNMENT
        start_row = 2

    for row_index, row in enumerate(rows, start_row):
        for col, value in enumerate(row, 1):
            if isinstance(value, datetime):
                value = value.date()
            cell = ws.cell(row=row_index, column=col, value=value)
            if isinstance(value, str) and value.startswith("="):
                # Пользовательский текст не должен становиться формулой
                cell.data_type = "s"
            if isinstance(value, date):
                cell.number_format = EXCEL_DATE_FORMAT
            if len(widths) < col:
                widths.append(0)
            widths[col - 1] = max(widths[col - 1], len(format_csv_value(value)))

    for col, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(col)].width = min(max(width + 2, 10), 60)


def render_xlsx(sheets: Sequence[Tuple[str, Table]]) -> bytes:
    wb = Workbook()
    for index, (title, (headers, rows)) in enumerate(sheets):
        ws = wb.active if index == 0 else wb.create_sheet()
        ws.title = title
        _fill_sheet(ws, headers, rows)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def export_filename(prefix: str, export_format: str) -> str:
    return f"{prefix}_{date.today().strftime('%Y-%m-%d')}.{'csv' if export_format == 'csv' else 'xlsx'}"


async def export_defects(
    db: AsyncSession, *, export_format: str, filters: Optional[Dict[str, Any]] = None
) -> Tuple[bytes, str, str]:
    """Возвращает содержимое файла, media type и имя файла"""
    defects = await defect_repo.get_all_defects(db, filters, sort_by="created_at", sort_order="desc")
    table = (DEFECT_HEADERS, defect_rows(defects))
    logger.info(f"Exporting {len(defects)} defect(s) as {export_format}")

    if export_format == "csv":
        return render_csv([(None, table)]), CSV_MEDIA_TYPE, export_filename("defects", "csv")
    return render_xlsx([("Дефекты", table)]), XLSX_MEDIA_TYPE, export_filename("defects", "excel")


async def export_project(db: AsyncSession, *, project_id: int, export_format: str) -> Tuple[bytes, str, str]:
    """Отчет по проекту: сводка, этапы и дефекты"""
    project = await project_service.get_or_404(db, project_id)
    stages = await project_repo.get_stages_by_project(db, project_id)
    defects = await defect_repo.get_all_defects(db, {"project_id": project_id}, sort_by="created_at", sort_order="desc")

    summary: Table = ([], summary_rows(project, stages, defects))
    stages_table: Table = (STAGE_HEADERS, stage_rows(stages, defects))
    defects_table: Table = (DEFECT_HEADERS, defect_rows(defects))
    logger.info(f"Exporting project {project_id} with {len(defects)} defect(s) as {export_format}")

    prefix = f"project_{project_id}"
    if export_format == "csv":
        content = render_csv([("Сводка", summary), ("Этапы", stages_table), ("Дефекты", defects_table)])
        return content, CSV_MEDIA_TYPE, export_filename(prefix, "csv")
    content = render_xlsx([("Сводка", summary), ("Этапы", stages_table), ("Дефекты", defects_table)])
    return content, XLSX_MEDIA_TYPE, export_filename(prefix, "excel")


async def get_stats(db: AsyncSession, *, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    by_status = await defect_repo.count_defects_by_status(db, filters)
    by_priority = await defect_repo.count_defects_by_priority(db, filters)
    by_project = await defect_repo.count_defects_by_project(db, filters)
    return {
        "total": sum(count for _, count in by_status),
        "byStatus": sorted(
            [{"status": _enum_value(status), "count": count} for status, count in by_status],
            key=lambda item: -item["count"],
        ),
        "byPriority": sorted(
            [{"priority": _enum_value(priority), "count": count} for priority, count in by_priority],
            key=lambda item: -item["count"],
        ),
        "byProject": [
            {"id": project_id, "name": name, "defects_count": count} for project_id, name, count in by_project
        ],
    }
