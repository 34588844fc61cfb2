"""
Domain exceptions shared across the bot.
"""

from typing import Any


class SurveyBotError(Exception):
    """Base exception for survey bot errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(SurveyBotError):
    """Required configuration is missing or invalid. Fatal at startup."""


class PayloadParseError(SurveyBotError):
    """A callback payload does not match any known button format."""


class BranchNotFoundError(SurveyBotError):
    """Neither stored state nor the inbound event identify a branch."""


class ExportError(SurveyBotError):
    """Building or mailing the result document failed."""


class SchedulingError(SurveyBotError):
    """A delayed message could not be handed to a delivery strategy."""
