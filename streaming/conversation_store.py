"""
Client-side conversation: ordered, bounded list of messages with a single
mutation entry point (append) shared by transcribed utterances and streamed
assistant fragments.

Invariant: at most one message is streaming and it is always the last one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from core.schemas import Role


class MessagePhase(str, Enum):
    AWAITING = "awaiting"
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass
class Message:
    role: Role
    content: str = ""
    is_streaming: bool = False

    @property
    def phase(self) -> MessagePhase:
        if not self.is_streaming:
            return MessagePhase.SETTLED
        return MessagePhase.STREAMING if self.content else MessagePhase.AWAITING

    def to_turn(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationStateError(RuntimeError):
    """A mutation would leave two streaming messages or a streaming message not last."""


ChangeCallback = Callable[["ConversationStore"], None]


class ConversationStore:
    """
    Owned by one session. `append` coalesces into a trailing streaming message
    of the same role; `settle_streaming` / `fail_streaming` end a stream.
    """

    def __init__(self, max_messages: Optional[int] = 200, on_change: Optional[ChangeCallback] = None):
        self.max_messages = max_messages
        self._on_change = on_change
        self._messages: List[Message] = []

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    @property
    def streaming_message(self) -> Optional[Message]:
        last = self.last
        return last if last is not None and last.is_streaming else None

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, role: Union[Role, str], content: str, is_streaming: bool = False) -> Message:
        """
        Add a message, or extend the streaming one.

        Content for the role of a streaming last message is appended to it.
        Otherwise a new message is added.

        Raises:
            ConversationStateError: a message of another role is still streaming;
                settle or fail it first so the streaming message stays last.
            ValueError: unknown role.
        """
        role = Role(role)
        last = self.last
        if last is not None and last.is_streaming:
            if last.role == role:
                last.content += content
                self._changed()
                return last
            raise ConversationStateError(
                f"cannot append a {role.value} message while a {last.role.value} message is streaming"
            )
        message = Message(role=role, content=content, is_streaming=is_streaming)
        self._messages.append(message)
        self._trim()
        self._changed()
        return message

    def settle_streaming(self) -> Optional[Message]:
        """Mark the trailing streaming message as final. No-op if nothing streams."""
        message = self.streaming_message
        if message is None:
            return None
        message.is_streaming = False
        self._changed()
        return message

    def fail_streaming(self, text: str) -> Optional[Message]:
        """Overwrite the trailing streaming message with `text` and settle it."""
        message = self.streaming_message
        if message is None:
            return None
        message.content = text
        message.is_streaming = False
        self._changed()
        return message

    def history(self) -> List[Dict[str, str]]:
        """Role/content pairs, oldest first (the shape sent over the wire)."""
        return [m.to_turn() for m in self._messages]

    def clear(self) -> None:
        if self.streaming_message is not None:
            raise ConversationStateError("cannot clear while a message is streaming")
        self._messages.clear()
        self._changed()

    def _trim(self) -> None:
        if self.max_messages and len(self._messages) > self.max_messages:
            del self._messages[: len(self._messages) - self.max_messages]

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)
