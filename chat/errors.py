class ChatError(Exception):
    """Base class for chat engine errors surfaced to callers."""


class PlaceholderConversationError(ChatError):
    """The conversation id is a local placeholder that was never written to the store."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id!r} is not durable yet; resolve it first")
        self.conversation_id = conversation_id


class EmptyMessageError(ChatError):
    """Message text is blank."""


class SendError(ChatError):
    """The store rejected or could not receive a message."""
