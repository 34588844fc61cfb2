from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DelayedJob:
    """A message to send to a user at ``due_at`` (epoch milliseconds)."""

    user_id: int
    message: str
    options: list[str] | None = None
    due_at: int = 0

    def to_member(self) -> str:
        """Serialized form stored as the sorted-set member."""
        return json.dumps(
            {"userId": self.user_id, "message": self.message, "options": self.options, "dueAt": self.due_at},
            ensure_ascii=False,
        )

    @classmethod
    def from_member(cls, raw: str) -> "DelayedJob":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("delayed job member is not an object")
        return cls.from_payload(data)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "DelayedJob":
        user_id = data.get("userId")
        message = data.get("message")
        if user_id in (None, "") or not message:
            raise ValueError("delayed job needs userId and message")
        options = data.get("options")
        if options is not None and not isinstance(options, list):
            raise ValueError("delayed job options must be a list")
        return cls(
            user_id=int(user_id),
            message=str(message),
            options=[str(o) for o in options] if options else None,
            due_at=int(data.get("dueAt") or 0),
        )


@dataclass(frozen=True)
class DrainResult:
    """Summary of one poller pass."""

    processed: int = 0
    sent: int = 0
    failed: list[str] = field(default_factory=list)
