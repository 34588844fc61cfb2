"""
Result export: spreadsheet rendering and mail delivery.
"""

from surveybot.export.config import EmailConfig
from surveybot.export.exporter import ResultExporter
from surveybot.export.interfaces import EmailAttachment, EmailMessage, EmailProvider, EmailResult
from surveybot.export.smtp_provider import SMTPEmailProvider

__all__ = [
    "EmailAttachment",
    "EmailConfig",
    "EmailMessage",
    "EmailProvider",
    "EmailResult",
    "ResultExporter",
    "SMTPEmailProvider",
]
