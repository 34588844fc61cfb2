"""
Result exporter: turns a finished answer set into a spreadsheet and mails
it to the fixed recipient.
"""
from __future__ import annotations

import html
import re
import time
from datetime import datetime
from typing import Callable

from surveybot.dialogue.models import AnswerRecord
from surveybot.export.config import EmailConfig
from surveybot.export.interfaces import EmailAttachment, EmailMessage, EmailProvider
from surveybot.export.spreadsheet import DATE_FORMAT, build_results_workbook
from surveybot.shared.exceptions import ExportError
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Zа-яА-ЯёЁ0-9]")


def attachment_filename(branch_label: str, now_ms: int) -> str:
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', branch_label)}_{now_ms}.xlsx"


class ResultExporter:
    """Builds the results document and ships it by email."""

    def __init__(
        self,
        provider: EmailProvider,
        config: EmailConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._provider = provider
        self._config = config
        self._clock = clock

    def build_message(self, branch_label: str, document: bytes) -> EmailMessage:
        now = self._clock()
        date_text = now.strftime(DATE_FORMAT)
        safe_label = html.escape(branch_label)
        return EmailMessage(
            to_email=self._config.recipient_email,
            subject=f"Ответы пользователя | {branch_label}",
            body_text=(
                f"Пользователь прошел диагностику по ветке: {branch_label}\n\n"
                "Во вложении находится файл с подробными ответами."
            ),
            body_html=(
                "<h3>Новые результаты диагностики</h3>"
                f"<p><strong>Ветка:</strong> {safe_label}</p>"
                f"<p><strong>Дата:</strong> {date_text}</p>"
                "<p>Во вложении находится файл Excel с подробными ответами пользователя.</p>"
            ),
            attachments=(
                EmailAttachment(
                    filename=attachment_filename(branch_label, int(time.time() * 1000)),
                    content=document,
                ),
            ),
        )

    async def export(
        self,
        username: str | None,
        branch_label: str,
        answers: list[AnswerRecord],
    ) -> None:
        """Build and send the results.

        Raises:
            ExportError: when the document cannot be built or both mail attempts fail.
        """
        document = build_results_workbook(username, branch_label, answers, clock=self._clock)
        message = self.build_message(branch_label, document)
        result = await self._provider.send(message)
        if not result.success:
            raise ExportError(
                f"Failed to send email: {result.error_message}",
                error_code="MAIL_FAILED",
                details={"attempts": result.attempts},
            )
        logger.info(
            "Results exported",
            extra={"branch": branch_label, "answers": len(answers), "message_id": result.provider_message_id},
        )
