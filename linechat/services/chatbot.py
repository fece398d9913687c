"""Chatbot service turning LINE events into model conversations."""

import asyncio
from typing import Iterable, List, Optional

from linechat.core.logging import setup_logger
from linechat.models.chat import ChatCompletionRequest, ChatMessage
from linechat.models.line import (
    LineEventType,
    LineMessageType,
    LineOutgoingMessage,
    LineWebhookEvent,
)
from linechat.prompts.chatbot import (
    ABOUT_REPLY,
    CLEAR_REPLY,
    DEFAULT_SYSTEM_PROMPT,
    ECHO_USAGE_REPLY,
    ERROR_REPLY,
    HELP_REPLY,
    UNKNOWN_COMMAND_REPLY,
    WELCOME_REPLY,
)
from linechat.repositories import SessionStoreProtocol
from linechat.services.line_messaging import LineClientProtocol
from linechat.services.lmstudio import ChatBackendProtocol
from linechat.services.text_splitter import MessageSplitter, message_splitter

logger = setup_logger(__name__)

COMMAND_PREFIX = "/"


class ChatbotService:
    """Service to handle LINE conversations backed by an LM Studio model."""

    def __init__(
        self,
        line_client: LineClientProtocol,
        backend: ChatBackendProtocol,
        session_store: SessionStoreProtocol,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        reply_timeout: Optional[float] = None,
        splitter: MessageSplitter = message_splitter,
    ) -> None:
        """
        Initialize the chatbot service.

        Args:
            line_client: Sender for reply and push messages
            backend: Chat completion backend
            session_store: Per-user conversation history
            system_prompt: Persona prepended to every model request
            reply_timeout: Optional deadline in seconds for one backend call
            splitter: Input truncation and reply splitting rules
        """
        self._line_client = line_client
        self._backend = backend
        self._session_store = session_store
        self.system_prompt = system_prompt
        self.reply_timeout = reply_timeout
        self._splitter = splitter

        logger.info("Chatbot service initialized")

    async def handle_webhook(self, events: Iterable[LineWebhookEvent]) -> None:
        """
        Process webhook events in order.

        Raises:
            Exception: The first failure to deliver a reply or welcome message
        """
        for event in events:
            logger.info(
                f"Received LINE event: type={event.type.value}, "
                f"source={event.source.type.value}, userID={event.source.user_id}"
            )

            if event.type == LineEventType.MESSAGE:
                handler = self.handle_message_event
            elif event.type == LineEventType.FOLLOW:
                handler = self.handle_follow_event
            elif event.type == LineEventType.UNFOLLOW:
                handler = self.handle_unfollow_event
            else:
                logger.info(f"Unhandled event type: {event.type.value}")
                continue

            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Failed to handle {event.type.value} event: {e}", exc_info=True
                )
                raise

    async def handle_message_event(self, event: LineWebhookEvent) -> None:
        """
        Answer one inbound message.

        Commands are answered directly. Any other text goes to the model
        together with the user's history; on success the turn is stored and
        the reply is split into LINE-sized messages, the first sent as a reply
        and the rest pushed to the user.
        """
        if event.message is None:
            return

        if event.message.type != LineMessageType.TEXT:
            logger.info(f"Ignoring non-text message: type={event.message.type.value}")
            return

        user_id = event.source.user_id
        text = event.message.text.strip()

        if text.startswith(COMMAND_PREFIX):
            reply = await self.handle_command(text, user_id)
            if reply and event.reply_token:
                await self._line_client.reply_message(
                    event.reply_token, [LineOutgoingMessage.text_message(reply)]
                )
            return

        history = await self._load_history(user_id)
        user_text = self._splitter.truncate_user_input(text)
        request = self.build_chat_request(user_text, history)

        try:
            if self.reply_timeout:
                response = await asyncio.wait_for(
                    self._backend.complete(request), timeout=self.reply_timeout
                )
            else:
                response = await self._backend.complete(request)
        except Exception as e:
            # Full detail stays in the logs; the user only sees the apology
            logger.error(f"LM Studio error for user {user_id}: {e!r}", exc_info=True)
            await self._reply(event, ERROR_REPLY)
            return

        await self._save_turn(user_id, user_text, response.content)

        pieces = self._splitter.split_for_delivery(response.content)
        await self._deliver(event, pieces)

    def build_chat_request(
        self, user_message: str, history: List[ChatMessage]
    ) -> ChatCompletionRequest:
        """Build ``[system prompt] + history + [user message]``."""
        messages = [ChatMessage.system(self.system_prompt)]
        messages.extend(history)
        messages.append(ChatMessage.user(user_message))
        return ChatCompletionRequest(messages=messages, stream=False)

    async def handle_command(self, text: str, user_id: str) -> Optional[str]:
        """
        Answer a slash command.

        Returns:
            Reply text, or None when the text holds no command at all
        """
        parts = text.split()
        if not parts:
            return None

        command = parts[0].lower()

        if command == "/help":
            return HELP_REPLY

        if command == "/about":
            return ABOUT_REPLY

        if command == "/echo":
            if len(parts) > 1:
                return " ".join(parts[1:])
            return ECHO_USAGE_REPLY

        if command == "/clear":
            try:
                await self._session_store.delete(user_id)
            except Exception as e:
                # Confirmation is sent even when the delete failed
                logger.error(f"Failed to clear session for user {user_id}: {e}")
            return CLEAR_REPLY

        return UNKNOWN_COMMAND_REPLY.format(command=command)

    async def handle_follow_event(self, event: LineWebhookEvent) -> None:
        """Greet a user who added the bot as a friend."""
        logger.info(f"User followed: userID={event.source.user_id}")
        await self._line_client.push_message(
            event.source.user_id, [LineOutgoingMessage.text_message(WELCOME_REPLY)]
        )

    async def handle_unfollow_event(self, event: LineWebhookEvent) -> None:
        """Record that a user blocked the bot."""
        logger.info(f"User unfollowed: userID={event.source.user_id}")

    async def _load_history(self, user_id: str) -> List[ChatMessage]:
        try:
            session = await self._session_store.get(user_id)
        except Exception as e:
            logger.warning(f"Failed to get session for user {user_id}: {e}")
            return []

        if session is None:
            return []
        history = session.get_history()
        logger.debug(f"Loaded {len(history)} history messages for user {user_id}")
        return history

    async def _save_turn(self, user_id: str, user_text: str, reply: str) -> None:
        try:
            session = await self._session_store.get(user_id)
            if session is None:
                session = self._session_store.new_session(user_id)
            session.add_turn(ChatMessage.user(user_text), ChatMessage.assistant(reply))
            await self._session_store.put(session)
        except Exception as e:
            logger.warning(f"Failed to update session for user {user_id}: {e}")

    async def _reply(self, event: LineWebhookEvent, text: str) -> None:
        if not event.reply_token:
            return
        await self._line_client.reply_message(
            event.reply_token, [LineOutgoingMessage.text_message(text)]
        )

    async def _deliver(self, event: LineWebhookEvent, pieces: List[str]) -> None:
        if not pieces:
            return

        await self._reply(event, pieces[0])

        user_id = event.source.user_id
        for index, piece in enumerate(pieces[1:], start=1):
            try:
                await self._line_client.push_message(
                    user_id, [LineOutgoingMessage.text_message(piece)]
                )
            except Exception as e:
                logger.error(f"Failed to send push message {index}: {e}")
