"""
Spreadsheet rendering of a finished survey.

Layout (column A label, column B value):
    user, branch, completion date, blank row,
    then for each answer "Вопрос N" / "Ответ N" followed by a blank row.
"""
from __future__ import annotations

import io
from datetime import datetime
from typing import Callable, Iterable

from openpyxl import Workbook
from openpyxl.styles import Font

from surveybot.dialogue.models import AnswerRecord
from surveybot.shared.exceptions import ExportError
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)

SHEET_TITLE = "Результаты"
DATE_FORMAT = "%d.%m.%Y, %H:%M:%S"
MISSING_USERNAME = "нет данных"


def build_results_workbook(
    username: str | None,
    branch_label: str,
    answers: Iterable[AnswerRecord],
    clock: Callable[[], datetime] = datetime.now,
) -> bytes:
    """Render the answers as an xlsx document.

    Raises:
        ExportError: if the workbook cannot be produced.
    """
    try:
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        ws.column_dimensions["A"].width = 20
        ws.column_dimensions["B"].width = 50

        ws.append(["Пользователь (username)", username or MISSING_USERNAME])
        ws.append(["Ветка", branch_label])
        ws.append(["Дата прохождения", clock().strftime(DATE_FORMAT)])
        ws.append([])

        for idx, item in enumerate(answers, start=1):
            ws.append([f"Вопрос {idx}", item.question])
            ws.append([f"Ответ {idx}", item.answer])
            ws.append([])

        bold = Font(bold=True)
        for row in range(1, 4):
            for cell in ws[row]:
                cell.font = bold

        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()
    except Exception as exc:
        logger.exception("Error creating Excel file")
        raise ExportError("Failed to create Excel file", error_code="SPREADSHEET_FAILED") from exc
