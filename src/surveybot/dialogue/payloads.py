"""
Callback payload encoding for inline buttons.

Formats:
    branch_<branchKey>
    answer_<questionIndex>_<optionIndex>
    answer_<branchKey>_<questionIndex>_<optionIndex>   (redundant key, opt-in)
    postfinal_<branchKey>_<optionIndex>
    group_<branchKey>_<groupOptionIndex>

Branch keys may contain underscores, so numeric suffixes are captured from
the right.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from surveybot.shared.exceptions import PayloadParseError

# Telegram rejects callback_data longer than this.
MAX_PAYLOAD_BYTES = 64

# Key used on follow-up buttons; the post-final handler then falls back to
# matching the prompt text.
DELAYED_KEY = "delayed"

_BRANCH_RE = re.compile(r"^branch_(.+)$")
_ANSWER_RE = re.compile(r"^answer_(?:(.+)_)?(\d+)_(\d+)$")
_POSTFINAL_RE = re.compile(r"^postfinal_(.+)_(\d+)$")
_GROUP_RE = re.compile(r"^group_(.+)_(\d+)$")


@dataclass(frozen=True)
class SelectBranch:
    branch_key: str


@dataclass(frozen=True)
class SelectAnswer:
    question_index: int
    option_index: int
    branch_key: str | None = None


@dataclass(frozen=True)
class SelectPostFinal:
    branch_key: str
    option_index: int


@dataclass(frozen=True)
class SelectGroup:
    branch_key: str
    option_index: int


CallbackAction = SelectBranch | SelectAnswer | SelectPostFinal | SelectGroup


def _checked(payload: str) -> str:
    if len(payload.encode("utf-8")) > MAX_PAYLOAD_BYTES:
        raise ValueError(f"callback payload exceeds {MAX_PAYLOAD_BYTES} bytes: {payload!r}")
    return payload


def encode_branch(branch_key: str) -> str:
    return _checked(f"branch_{branch_key}")


def encode_answer(question_index: int, option_index: int, branch_key: str | None = None) -> str:
    if branch_key:
        return _checked(f"answer_{branch_key}_{question_index}_{option_index}")
    return _checked(f"answer_{question_index}_{option_index}")


def encode_post_final(branch_key: str, option_index: int) -> str:
    return _checked(f"postfinal_{branch_key}_{option_index}")


def encode_group(branch_key: str, option_index: int) -> str:
    return _checked(f"group_{branch_key}_{option_index}")


def parse_payload(data: str) -> CallbackAction:
    """Parse callback data into an action.

    Raises:
        PayloadParseError: when the data matches none of the known formats.
    """
    if match := _ANSWER_RE.match(data):
        key, q_idx, opt_idx = match.groups()
        return SelectAnswer(question_index=int(q_idx), option_index=int(opt_idx), branch_key=key)
    if match := _POSTFINAL_RE.match(data):
        return SelectPostFinal(branch_key=match.group(1), option_index=int(match.group(2)))
    if match := _GROUP_RE.match(data):
        return SelectGroup(branch_key=match.group(1), option_index=int(match.group(2)))
    if match := _BRANCH_RE.match(data):
        return SelectBranch(branch_key=match.group(1))
    raise PayloadParseError(
        message=f"Unknown callback payload: {data!r}",
        error_code="UNKNOWN_PAYLOAD",
        details={"payload": data},
    )
