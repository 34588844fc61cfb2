"""
Dialogue module: survey content, conversation state and the engine that
moves a user through it.
"""

from surveybot.dialogue.models import (
    AnswerRecord,
    Branch,
    Button,
    ConversationState,
    DialogueDefinition,
    GroupMenu,
    Question,
    Reply,
    ReplyKind,
)
from surveybot.dialogue.content import load_dialogue
from surveybot.dialogue.store import InMemoryStateStore, RedisStateStore, StateStore
from surveybot.dialogue.engine import DialogueEngine, UserRef

__all__ = [
    "AnswerRecord",
    "Branch",
    "Button",
    "ConversationState",
    "DialogueDefinition",
    "DialogueEngine",
    "GroupMenu",
    "InMemoryStateStore",
    "Question",
    "RedisStateStore",
    "Reply",
    "ReplyKind",
    "StateStore",
    "UserRef",
    "load_dialogue",
]
