"""
Webhook endpoints and update handling.

Keep import side-effect free.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from surveybot.messaging.webhooks.handler import UpdateHandler  # noqa: F401
