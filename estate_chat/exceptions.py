"""Error taxonomy for the chat core.

Every error raised by the store, directory or facade derives from ``ChatError``
and carries the HTTP status and machine-readable code the transports use when
rendering a failure envelope.
"""


class ChatError(Exception):
    """Base class for chat errors surfaced to clients."""

    status_code = 400
    code = "chat_error"
    default_message = "Chat request failed"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class Forbidden(ChatError):
    """Caller is not a participant of the target conversation."""

    status_code = 403
    code = "forbidden"
    default_message = "Not authorized to access this conversation"


class NotParticipant(ChatError):
    """Sender is not a member of the conversation being written to."""

    code = "not_participant"
    default_message = "Sender is not a participant of this conversation"


class InvalidParticipants(ChatError):
    """A conversation needs exactly two distinct identities."""

    code = "invalid_participants"
    default_message = "A conversation requires two distinct participants"


class InvalidContent(ChatError):
    status_code = 422
    code = "invalid_content"
    default_message = "Message content is invalid"


class StorageError(ChatError):
    """The durable store failed; details are logged, never returned."""

    status_code = 500
    code = "storage_error"
    default_message = "Internal server error"


class BroadcastDeliveryFailure(Exception):
    """A live push could not reach a session. Logged only."""

    def __init__(self, session_id: str, room_id: str, event: str):
        self.session_id = session_id
        self.room_id = room_id
        self.event = event
        super().__init__(
            f"Failed to deliver '{event}' to session {session_id} in room {room_id}"
        )
