"""
Domain models for the survey dialogue.

The dialogue definition (branches, questions, texts) is static data validated
with pydantic; the per-user conversation state is a plain mutable dataclass
that round-trips through a dict for external stores.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


STAGE_MENU = "menu"
STAGE_FINAL = "final"
_QUESTION_STAGE_PREFIX = "q_"


def question_stage(index: int) -> str:
    return f"{_QUESTION_STAGE_PREFIX}{index}"


# ============================================================
# Dialogue definition (data)
# ============================================================

class _DialogueModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Question(_DialogueModel):
    text: str
    options: list[str] = Field(min_length=1)


class GroupMenu(_DialogueModel):
    text: str
    options: list[str] = Field(min_length=1)


class Branch(_DialogueModel):
    key: str = Field(min_length=1)
    label: str
    questions: list[Question] = Field(min_length=1)
    diagnosis: str
    final_options: list[str] = Field(default_factory=list, alias="finalOptions")
    delayed: str | None = None
    group_menu: GroupMenu | None = Field(default=None, alias="groupMenu")

    @model_validator(mode="after")
    def _final_options_need_prompt(self) -> "Branch":
        if self.final_options and not self.delayed:
            raise ValueError(f"branch {self.key!r} has finalOptions but no delayed prompt text")
        return self


class DialogueTexts(_DialogueModel):
    """User-facing system messages."""

    thank_you: str = "Спасибо! Ваши ответы записаны и отправлены для обработки."
    delivery_failed: str = "Ваши ответы записаны, но возникла проблема с отправкой. Мы свяжемся с вами."
    branch_not_found: str = "Ошибка: ветка не найдена"
    callback_error: str = "Произошла ошибка, попробуйте еще раз."
    generic_error: str = "Произошла ошибка. Попробуйте начать заново с команды /start"
    start_error: str = "Произошла ошибка при запуске. Попробуйте еще раз."
    help: str = (
        "Используйте /start для начала диагностики. "
        "Если возникли проблемы, начните заново с команды /start."
    )
    unknown_message: str = "Используйте кнопки для навигации или команду /start для начала."
    final_choice_question: str = "Выбор после диагностики"
    group_choice_question: str = "Выбранная группа"


class DialogueDefinition(_DialogueModel):
    greeting: str
    branches: list[Branch] = Field(min_length=1)
    texts: DialogueTexts = Field(default_factory=DialogueTexts)

    @model_validator(mode="after")
    def _unique_keys(self) -> "DialogueDefinition":
        keys = [b.key for b in self.branches]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"duplicate branch keys: {', '.join(duplicates)}")
        return self

    def index_of(self, key: str | None) -> int | None:
        if key is None:
            return None
        for idx, branch in enumerate(self.branches):
            if branch.key == key:
                return idx
        return None

    def branch_at(self, index: int | None) -> Branch | None:
        if index is None or index < 0 or index >= len(self.branches):
            return None
        return self.branches[index]


# ============================================================
# Conversation state (per user, mutable)
# ============================================================

@dataclass
class AnswerRecord:
    question: str
    answer: str


@dataclass
class ConversationState:
    """Where a user is in the dialogue and what they answered so far."""

    stage: str = STAGE_MENU
    branch: int | None = None
    answers: list[AnswerRecord] = field(default_factory=list)
    final_choice: str | None = None
    group_choice: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "branch": self.branch,
            "answers": [{"question": a.question, "answer": a.answer} for a in self.answers],
            "finalChoice": self.final_choice,
            "groupChoice": self.group_choice,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationState":
        answers = data.get("answers") or []
        return cls(
            stage=str(data.get("stage") or STAGE_MENU),
            branch=data.get("branch"),
            answers=[
                AnswerRecord(question=str(a.get("question", "")), answer=str(a.get("answer", "")))
                for a in answers
                if isinstance(a, dict)
            ],
            final_choice=data.get("finalChoice"),
            group_choice=data.get("groupChoice"),
        )


# ============================================================
# Engine output
# ============================================================

class ReplyKind(str, Enum):
    SEND = "send"                      # new message in the chat
    EDIT = "edit"                      # replace the message the tap was attached to
    CLEAR_KEYBOARD = "clear_keyboard"  # drop the buttons of the source message
    DELETE_SOURCE = "delete_source"    # delete the message the tap was attached to
    NOTICE = "notice"                  # short toast answering the callback query


@dataclass(frozen=True)
class Button:
    text: str
    payload: str


@dataclass(frozen=True)
class Reply:
    kind: ReplyKind
    text: str = ""
    buttons: tuple[Button, ...] = ()

    @classmethod
    def send(cls, text: str, buttons: list[Button] | tuple[Button, ...] = ()) -> "Reply":
        return cls(ReplyKind.SEND, text, tuple(buttons))

    @classmethod
    def edit(cls, text: str, buttons: list[Button] | tuple[Button, ...] = ()) -> "Reply":
        return cls(ReplyKind.EDIT, text, tuple(buttons))

    @classmethod
    def notice(cls, text: str) -> "Reply":
        return cls(ReplyKind.NOTICE, text)


CLEAR_KEYBOARD = Reply(ReplyKind.CLEAR_KEYBOARD)
DELETE_SOURCE = Reply(ReplyKind.DELETE_SOURCE)
