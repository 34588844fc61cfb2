"""
Dialogue engine: interprets one inbound user action against the stored
conversation state and decides what to send next.

Every transition that depends on "which branch / which question" can be
rebuilt from the inbound event alone (the indexes in the button payload and
the text of the message the button was attached to), because the stored
state may not have survived a process recycle or may live on another
instance.

Known gap: the same answer tap delivered twice is recorded twice. There is
no per-event deduplication key.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from surveybot.dialogue import payloads
from surveybot.dialogue.models import (
    CLEAR_KEYBOARD,
    DELETE_SOURCE,
    STAGE_FINAL,
    STAGE_MENU,
    AnswerRecord,
    Branch,
    Button,
    ConversationState,
    DialogueDefinition,
    GroupMenu,
    Question,
    Reply,
    question_stage,
)
from surveybot.dialogue.content import GROUP_REQUEST_OPTION
from surveybot.dialogue.store import StateStore
from surveybot.shared.exceptions import BranchNotFoundError
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)

CLIENT_BRANCH_KEY = "client"
MIXED_BRANCH_KEY = "mixed"
MIXED_GROUP_OPTION_INDEXES = (0, 1)


@dataclass(frozen=True)
class UserRef:
    """Identity of the user behind an inbound event."""

    user_id: int
    username: str | None = None


class ResultExporterProtocol(Protocol):
    async def export(
        self,
        username: str | None,
        branch_label: str,
        answers: list[AnswerRecord],
    ) -> None:
        """Ship the finished answer set. Raises on failure."""
        ...


class DelayedSchedulerProtocol(Protocol):
    async def schedule_delayed_message(
        self,
        user_id: int,
        message: str,
        options: list[str] | None,
        delay_ms: int,
    ) -> bool:
        """Hand a future message to a delivery strategy. Never raises."""
        ...


def _opens_group_menu(branch: Branch, option_index: int, choice: str | None) -> bool:
    if branch.group_menu is None:
        return False
    if branch.key == CLIENT_BRANCH_KEY:
        return choice == GROUP_REQUEST_OPTION
    if branch.key == MIXED_BRANCH_KEY:
        return option_index in MIXED_GROUP_OPTION_INDEXES
    return False


class DialogueEngine:
    """State machine ``menu -> q_0 -> ... -> q_{n-1} -> final``.

    ``/start`` always resets to ``menu``. Actions that cannot be resolved to
    a branch produce a notice and leave the stored state untouched.
    """

    def __init__(
        self,
        dialogue: DialogueDefinition,
        store: StateStore,
        exporter: ResultExporterProtocol,
        scheduler: DelayedSchedulerProtocol | None = None,
        followup_delay_ms: int | None = None,
        embed_branch_key: bool = False,
    ) -> None:
        self._dialogue = dialogue
        self._store = store
        self._exporter = exporter
        self._scheduler = scheduler
        self._followup_delay_ms = followup_delay_ms
        self._embed_branch_key = embed_branch_key

    @property
    def dialogue(self) -> DialogueDefinition:
        return self._dialogue

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _question_buttons(self, branch: Branch, question_index: int, question: Question) -> list[Button]:
        key = branch.key if self._embed_branch_key else None
        return [
            Button(text=option, payload=payloads.encode_answer(question_index, i, key))
            for i, option in enumerate(question.options)
        ]

    @staticmethod
    def _post_final_buttons(branch: Branch) -> list[Button]:
        return [
            Button(text=option, payload=payloads.encode_post_final(branch.key, i))
            for i, option in enumerate(branch.final_options)
        ]

    @staticmethod
    def _group_buttons(branch: Branch, menu: GroupMenu) -> list[Button]:
        return [
            Button(text=option, payload=payloads.encode_group(branch.key, i))
            for i, option in enumerate(menu.options)
        ]

    def _branch_not_found(self) -> list[Reply]:
        return [Reply.notice(self._dialogue.texts.branch_not_found)]

    # ------------------------------------------------------------------
    # Branch resolution
    # ------------------------------------------------------------------

    def recover_branch_by_question(self, question_index: int, source_text: str | None) -> int:
        """Find the branch whose question at ``question_index`` has exactly ``source_text``.

        Raises:
            BranchNotFoundError: when no branch matches.
        """
        if source_text:
            for idx, branch in enumerate(self._dialogue.branches):
                if question_index < len(branch.questions) and branch.questions[question_index].text == source_text:
                    return idx
        raise BranchNotFoundError(
            message="No branch matches the answered question",
            error_code="BRANCH_NOT_FOUND",
            details={"question_index": question_index, "source_text": source_text},
        )

    def recover_branch_by_delayed_text(self, source_text: str | None) -> int | None:
        if not source_text:
            return None
        for idx, branch in enumerate(self._dialogue.branches):
            if branch.delayed and branch.delayed == source_text:
                return idx
        return None

    def _resolve_answer_branch(
        self,
        state: ConversationState,
        question_index: int,
        source_text: str | None,
        branch_key: str | None,
    ) -> int:
        if branch_key is not None:
            idx = self._dialogue.index_of(branch_key)
            if idx is not None and question_index < len(self._dialogue.branches[idx].questions):
                return idx

        branch = self._dialogue.branch_at(state.branch)
        if branch is not None and question_index < len(branch.questions):
            return state.branch  # type: ignore[return-value]

        return self.recover_branch_by_question(question_index, source_text)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def on_start(self, user: UserRef) -> list[Reply]:
        await self._store.set(user.user_id, ConversationState(stage=STAGE_MENU, answers=[]))
        buttons = [Button(text=b.label, payload=payloads.encode_branch(b.key)) for b in self._dialogue.branches]
        logger.info("Conversation started", extra={"user_id": user.user_id})
        return [Reply.send(self._dialogue.greeting, buttons)]

    async def on_select_branch(self, user: UserRef, branch_key: str) -> list[Reply]:
        idx = self._dialogue.index_of(branch_key)
        if idx is None:
            logger.warning("Unknown branch selected", extra={"user_id": user.user_id, "branch_key": branch_key})
            return self._branch_not_found()

        branch = self._dialogue.branches[idx]
        await self._store.set(user.user_id, ConversationState(stage=question_stage(0), branch=idx, answers=[]))
        question = branch.questions[0]
        logger.info("Branch selected", extra={"user_id": user.user_id, "branch_key": branch.key})
        return [Reply.edit(question.text, self._question_buttons(branch, 0, question))]

    async def on_select_answer(
        self,
        user: UserRef,
        question_index: int,
        option_index: int,
        source_text: str | None = None,
        branch_key: str | None = None,
    ) -> list[Reply]:
        state = await self._store.get(user.user_id)
        working = state if state is not None else ConversationState()

        try:
            branch_index = self._resolve_answer_branch(working, question_index, source_text, branch_key)
        except BranchNotFoundError as exc:
            logger.error(
                "Failed to recover branch",
                extra={"user_id": user.user_id, **exc.details},
            )
            return self._branch_not_found()

        branch = self._dialogue.branches[branch_index]
        question = branch.questions[question_index]
        if option_index < 0 or option_index >= len(question.options):
            logger.warning(
                "Answer option out of range",
                extra={"user_id": user.user_id, "question_index": question_index, "option_index": option_index},
            )
            return [Reply.notice(self._dialogue.texts.callback_error)]

        if working.branch != branch_index:
            # answers recorded under another branch never carry over
            logger.info(
                "Recovered branch",
                extra={"user_id": user.user_id, "branch_key": branch.key, "had_state": state is not None},
            )
            working = ConversationState(stage=question_stage(question_index), branch=branch_index, answers=[])

        working.answers.append(AnswerRecord(question=question.text, answer=question.options[option_index]))

        next_index = question_index + 1
        if next_index < len(branch.questions):
            next_question = branch.questions[next_index]
            working.stage = question_stage(next_index)
            await self._store.set(user.user_id, working)
            return [
                CLEAR_KEYBOARD,
                DELETE_SOURCE,
                Reply.send(next_question.text, self._question_buttons(branch, next_index, next_question)),
            ]

        working.stage = STAGE_FINAL
        await self._store.set(user.user_id, working)
        logger.info(
            "Final stage reached",
            extra={"user_id": user.user_id, "branch_key": branch.key, "answers": len(working.answers)},
        )

        replies = [DELETE_SOURCE, Reply.send(branch.diagnosis)]
        if branch.final_options:
            replies.append(Reply.send(branch.delayed or "", self._post_final_buttons(branch)))
            await self._schedule_followup(user, branch)
            return replies

        replies.extend(await self._finalize(user, branch, working))
        return replies

    async def on_select_post_final(
        self,
        user: UserRef,
        branch_key_hint: str,
        option_index: int,
        source_text: str | None = None,
    ) -> list[Reply]:
        state = await self._store.get(user.user_id)
        working = state if state is not None else ConversationState()

        branch_index = self._dialogue.index_of(branch_key_hint)
        if branch_index is None:
            branch_index = self.recover_branch_by_delayed_text(source_text)
        if branch_index is None and self._dialogue.branch_at(working.branch) is not None:
            branch_index = working.branch
        if branch_index is None:
            logger.error(
                "Failed to resolve post-final branch",
                extra={"user_id": user.user_id, "branch_key": branch_key_hint, "source_text": source_text},
            )
            return self._branch_not_found()

        branch = self._dialogue.branches[branch_index]
        if option_index < 0 or option_index >= len(branch.final_options):
            logger.warning(
                "Post-final option out of range",
                extra={"user_id": user.user_id, "branch_key": branch.key, "option_index": option_index},
            )
            return [Reply.notice(self._dialogue.texts.callback_error)]

        choice = branch.final_options[option_index]
        if working.branch != branch_index:
            # a late follow-up tap for a branch the user has since left
            working = ConversationState(stage=STAGE_FINAL, branch=branch_index, answers=[])
        working.stage = STAGE_FINAL
        if working.final_choice is None:
            working.final_choice = choice
        else:
            logger.info(
                "Final choice already recorded; keeping the first",
                extra={"user_id": user.user_id, "kept": working.final_choice, "ignored": choice},
            )
        await self._store.set(user.user_id, working)

        menu = branch.group_menu
        if menu is not None and _opens_group_menu(branch, option_index, choice):
            return [Reply.edit(menu.text, self._group_buttons(branch, menu))]

        return [DELETE_SOURCE, *await self._finalize(user, branch, working)]

    async def on_select_group(self, user: UserRef, branch_key_hint: str, option_index: int) -> list[Reply]:
        state = await self._store.get(user.user_id)
        working = state if state is not None else ConversationState()

        branch_index = self._dialogue.index_of(branch_key_hint)
        if branch_index is None and self._dialogue.branch_at(working.branch) is not None:
            branch_index = working.branch
        if branch_index is None:
            logger.error(
                "Failed to resolve group branch",
                extra={"user_id": user.user_id, "branch_key": branch_key_hint},
            )
            return self._branch_not_found()

        branch = self._dialogue.branches[branch_index]
        menu = branch.group_menu
        if menu is None or option_index < 0 or option_index >= len(menu.options):
            logger.warning(
                "Group option out of range",
                extra={"user_id": user.user_id, "branch_key": branch.key, "option_index": option_index},
            )
            return [Reply.notice(self._dialogue.texts.callback_error)]

        if working.branch != branch_index:
            working = ConversationState(stage=STAGE_FINAL, branch=branch_index, answers=[])
        working.stage = STAGE_FINAL
        if working.group_choice is None:
            working.group_choice = menu.options[option_index]
        await self._store.set(user.user_id, working)

        return [DELETE_SOURCE, *await self._finalize(user, branch, working)]

    def help_reply(self) -> list[Reply]:
        return [Reply.send(self._dialogue.texts.help)]

    def unknown_message_reply(self) -> list[Reply]:
        return [Reply.send(self._dialogue.texts.unknown_message)]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def enriched_answers(self, state: ConversationState) -> list[AnswerRecord]:
        texts = self._dialogue.texts
        answers = list(state.answers)
        if state.final_choice:
            answers.append(AnswerRecord(question=texts.final_choice_question, answer=state.final_choice))
        if state.group_choice:
            answers.append(AnswerRecord(question=texts.group_choice_question, answer=state.group_choice))
        return answers

    async def _finalize(self, user: UserRef, branch: Branch, state: ConversationState) -> list[Reply]:
        answers = self.enriched_answers(state)
        try:
            await self._exporter.export(user.username, branch.label, answers)
        except Exception:
            logger.exception(
                "Error processing final results",
                extra={"user_id": user.user_id, "branch_key": branch.key},
            )
            return [Reply.send(self._dialogue.texts.delivery_failed)]

        logger.info(
            "User completed branch",
            extra={"user_id": user.user_id, "branch_key": branch.key, "answers": len(answers)},
        )
        return [Reply.send(self._dialogue.texts.thank_you)]

    async def _schedule_followup(self, user: UserRef, branch: Branch) -> None:
        if self._scheduler is None or self._followup_delay_ms is None or not branch.delayed:
            return
        await self._scheduler.schedule_delayed_message(
            user.user_id,
            branch.delayed,
            list(branch.final_options),
            self._followup_delay_ms,
        )
