"""Text shaping between LINE and the model: input truncation and reply splitting."""

from typing import List

from linechat.core.logging import setup_logger

logger = setup_logger(__name__)

# Longest user input forwarded to the model
MAX_USER_INPUT_LENGTH = 4000

# LINE rejects text messages longer than this
MAX_LINE_MESSAGE_LENGTH = 5000
SENTENCE_BOUNDARY_LOOKBACK = 200
MAX_MESSAGES_PER_RESPONSE = 5

SENTENCE_ENDINGS = frozenset(".!?")


class MessageSplitter:
    """Service for fitting text into the size limits on both sides of the bot."""

    def __init__(
        self,
        max_input_length: int = MAX_USER_INPUT_LENGTH,
        max_message_length: int = MAX_LINE_MESSAGE_LENGTH,
        lookback: int = SENTENCE_BOUNDARY_LOOKBACK,
        max_messages: int = MAX_MESSAGES_PER_RESPONSE,
    ) -> None:
        self.max_input_length = max_input_length
        self.max_message_length = max_message_length
        self.lookback = lookback
        self.max_messages = max_messages

    def truncate_user_input(self, text: str) -> str:
        """
        Cut user input down to ``max_input_length`` characters.

        Input at or under the limit is returned unchanged; longer input is
        cut to exactly the limit.
        """
        if len(text) <= self.max_input_length:
            return text

        logger.warning(
            f"User input truncated from {len(text)} to {self.max_input_length} characters"
        )
        return text[: self.max_input_length]

    def split_for_delivery(self, content: str) -> List[str]:
        """
        Split a model reply into LINE-sized messages.

        Every piece is at most ``max_message_length`` long. Cut points prefer
        the last sentence ending inside the lookback window before the limit
        and fall back to a hard cut at the limit. At most ``max_messages``
        pieces are produced; whatever does not fit in them is dropped.

        Args:
            content: Full reply text

        Returns:
            List of pieces whose concatenation is the original text, unless
            the piece cap forced truncation
        """
        if len(content) <= self.max_message_length:
            return [content]

        pieces: List[str] = []
        remaining = content

        while remaining and len(pieces) < self.max_messages:
            if len(remaining) <= self.max_message_length:
                pieces.append(remaining)
                remaining = ""
                break

            split_point = self.find_sentence_boundary(remaining)
            pieces.append(remaining[:split_point])
            remaining = remaining[split_point:]

        if remaining:
            logger.warning(
                f"Reply exceeded {self.max_messages} messages; "
                f"dropped {len(remaining)} trailing characters"
            )

        return pieces

    def find_sentence_boundary(self, text: str) -> int:
        """
        Return the index to cut ``text`` at so the head fits the limit.

        The cut includes the punctuation mark and, when it still fits, the
        space after it.
        """
        limit = self.max_message_length
        if len(text) <= limit:
            return len(text)

        search_start = max(limit - self.lookback, 0)
        for i in range(limit - 1, search_start - 1, -1):
            if not _is_sentence_end(text, i):
                continue
            if i + 1 < len(text) and text[i + 1] == " " and i + 2 <= limit:
                return i + 2
            return i + 1

        return limit


def _is_sentence_end(text: str, pos: int) -> bool:
    """Punctuation counts as a sentence end only before a space or the end of text."""
    if text[pos] not in SENTENCE_ENDINGS:
        return False
    next_pos = pos + 1
    return next_pos >= len(text) or text[next_pos] == " "


# Singleton instance
message_splitter = MessageSplitter()


def truncate_user_input(text: str, limit: int = MAX_USER_INPUT_LENGTH) -> str:
    if limit == message_splitter.max_input_length:
        return message_splitter.truncate_user_input(text)
    return MessageSplitter(max_input_length=limit).truncate_user_input(text)


def split_for_delivery(
    content: str,
    limit: int = MAX_LINE_MESSAGE_LENGTH,
    lookback: int = SENTENCE_BOUNDARY_LOOKBACK,
    max_pieces: int = MAX_MESSAGES_PER_RESPONSE,
) -> List[str]:
    if (limit, lookback, max_pieces) == (
        message_splitter.max_message_length,
        message_splitter.lookback,
        message_splitter.max_messages,
    ):
        return message_splitter.split_for_delivery(content)
    splitter = MessageSplitter(
        max_message_length=limit, lookback=lookback, max_messages=max_pieces
    )
    return splitter.split_for_delivery(content)
