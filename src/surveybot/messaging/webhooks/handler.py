"""
Inbound update handler.

Routes a normalized update to the dialogue engine and renders the engine's
replies through the messaging provider. Transport failures are logged and
swallowed; a failed reply never aborts the ones after it.
"""
from __future__ import annotations

from surveybot.dialogue import payloads
from surveybot.dialogue.engine import DialogueEngine, UserRef
from surveybot.dialogue.models import Reply, ReplyKind
from surveybot.messaging.interface import (
    InboundUpdate,
    MessagingProvider,
    MessagingProviderError,
    UpdateKind,
)
from surveybot.shared.exceptions import PayloadParseError
from surveybot.shared.locks import KeyedLocks
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


class UpdateHandler:
    """Handler for processing chat platform updates.

    Updates from the same user are handled one at a time; different users
    proceed concurrently.
    """

    def __init__(
        self,
        provider: MessagingProvider,
        engine: DialogueEngine,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._provider = provider
        self._engine = engine
        self._locks = locks or KeyedLocks()

    async def handle_update(self, update: InboundUpdate) -> None:
        match update.kind:
            case UpdateKind.CALLBACK_QUERY:
                await self._handle_callback(update)
            case UpdateKind.MESSAGE:
                await self._handle_message(update)
            case _:
                logger.info("Ignoring unsupported update", extra={"update_id": update.update_id})

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _handle_message(self, update: InboundUpdate) -> None:
        if update.user_id is None:
            logger.warning("Message without sender", extra={"update_id": update.update_id})
            return
        user = UserRef(user_id=update.user_id, username=update.username)
        texts = self._engine.dialogue.texts
        command = update.command

        try:
            async with self._locks.get(user.user_id):
                if command == "/start":
                    replies = await self._engine.on_start(user)
                elif command == "/help":
                    replies = self._engine.help_reply()
                else:
                    replies = self._engine.unknown_message_reply()
        except Exception:
            logger.exception("Error in message handler", extra={"user_id": user.user_id, "command": command})
            replies = [Reply.send(texts.start_error if command == "/start" else texts.generic_error)]

        await self.render(update, replies)

    # ------------------------------------------------------------------
    # Button taps
    # ------------------------------------------------------------------

    async def _handle_callback(self, update: InboundUpdate) -> None:
        if update.user_id is None:
            logger.warning("Callback query without sender", extra={"update_id": update.update_id})
            await self._acknowledge(update)
            return
        user = UserRef(user_id=update.user_id, username=update.username)
        texts = self._engine.dialogue.texts

        # Clear the client's loading spinner before doing any work.
        await self._acknowledge(update)

        try:
            action = payloads.parse_payload(update.callback_data or "")
        except PayloadParseError as exc:
            logger.warning("Unparseable callback payload", extra={"user_id": user.user_id, **exc.details})
            await self.render(update, [Reply.notice(texts.callback_error)])
            return

        logger.info(
            "Callback received",
            extra={"user_id": user.user_id, "payload": update.callback_data},
        )

        try:
            async with self._locks.get(user.user_id):
                replies = await self._dispatch(user, action, update.source_text)
        except Exception:
            logger.exception("Error in callback handler", extra={"user_id": user.user_id, "payload": update.callback_data})
            replies = [Reply.notice(texts.callback_error)]

        await self.render(update, replies)

    async def _dispatch(
        self,
        user: UserRef,
        action: payloads.CallbackAction,
        source_text: str | None,
    ) -> list[Reply]:
        match action:
            case payloads.SelectBranch(branch_key=key):
                return await self._engine.on_select_branch(user, key)
            case payloads.SelectAnswer(question_index=q_idx, option_index=opt_idx, branch_key=key):
                return await self._engine.on_select_answer(user, q_idx, opt_idx, source_text, branch_key=key)
            case payloads.SelectPostFinal(branch_key=key, option_index=opt_idx):
                return await self._engine.on_select_post_final(user, key, opt_idx, source_text)
            case payloads.SelectGroup(branch_key=key, option_index=opt_idx):
                return await self._engine.on_select_group(user, key, opt_idx)
        raise TypeError(f"Unhandled callback action: {action!r}")

    async def _acknowledge(self, update: InboundUpdate) -> None:
        if not update.callback_query_id:
            return
        try:
            await self._provider.answer_callback_query(update.callback_query_id)
        except MessagingProviderError as exc:
            logger.warning("Failed to answer callback query", extra={"error": str(exc)})

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def render(self, update: InboundUpdate, replies: list[Reply]) -> None:
        chat_id = update.chat_id if update.chat_id is not None else update.user_id
        if chat_id is None:
            logger.warning("No chat to reply to", extra={"update_id": update.update_id})
            return

        for reply in replies:
            try:
                await self._render_one(update, chat_id, reply)
            except MessagingProviderError as exc:
                logger.warning(
                    "Failed to deliver reply",
                    extra={"chat_id": chat_id, "kind": reply.kind.value, "error": str(exc)},
                )

    async def _render_one(self, update: InboundUpdate, chat_id: int, reply: Reply) -> None:
        source_id = update.source_message_id

        match reply.kind:
            case ReplyKind.SEND:
                await self._provider.send_message(chat_id, reply.text, reply.buttons)
            case ReplyKind.EDIT:
                if source_id is None:
                    await self._provider.send_message(chat_id, reply.text, reply.buttons)
                    return
                try:
                    await self._provider.edit_message_text(chat_id, source_id, reply.text, reply.buttons)
                except MessagingProviderError as exc:
                    logger.warning("Edit failed, sending a new message", extra={"error": str(exc)})
                    await self._provider.send_message(chat_id, reply.text, reply.buttons)
            case ReplyKind.CLEAR_KEYBOARD:
                if source_id is not None:
                    await self._provider.edit_reply_markup(chat_id, source_id, ())
            case ReplyKind.DELETE_SOURCE:
                if source_id is not None:
                    await self._provider.delete_message(chat_id, source_id)
            case ReplyKind.NOTICE:
                await self._render_notice(update, chat_id, reply.text)

    async def _render_notice(self, update: InboundUpdate, chat_id: int, text: str) -> None:
        if update.callback_query_id:
            try:
                await self._provider.answer_callback_query(update.callback_query_id, text)
                return
            except MessagingProviderError:
                # the query was already acknowledged; fall back to a chat message
                pass
        await self._provider.send_message(chat_id, text)
