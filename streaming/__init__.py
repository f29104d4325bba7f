"""
Client side of the relay.

- frame_decoder: buffered event-stream decoding across arbitrary read boundaries.
- conversation_store: ordered, bounded message list with a single append primitive.
- receiver: reassembles frames into the trailing assistant message.
- session: idle/recording/uploading/transcribing/streaming state machine (import separately to avoid pulling httpx).
"""

from streaming.conversation_store import ConversationStore, ConversationStateError, Message, MessagePhase
from streaming.frame_decoder import FrameDecoder, FrameParseError, decode_payload

__all__ = [
    "ConversationStore",
    "ConversationStateError",
    "Message",
    "MessagePhase",
    "FrameDecoder",
    "FrameParseError",
    "decode_payload",
]
