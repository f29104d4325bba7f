"""
Context window for the generation provider: system preamble, bounded prior
messages, new prompt. Pure functions, no I/O.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from config import CONTEXT_WINDOW_SIZE
from core.schemas import ChatTurn, OutputStyle, Role

CONCISE_PREAMBLE = (
    "You are a 'TL;DR' bot specializing in interview responses. Your single most important goal "
    "is extreme brevity. Get directly to the point. Omit all conversational fluff, introductions, "
    "and summaries or examples. Use a maximum of 3 bullet points with description not more than "
    "one line each or a short paragraph."
)

THOROUGH_PREAMBLE = (
    "You are an AI Assistant. Your goal is to provide comprehensive, educational answers. "
    "Explain concepts thoroughly. When applicable, structure your response by providing a clear "
    "definition, followed by practical examples, and concluding with strategic advice for the "
    "interview. Use formatting like **bolding** for key terms to enhance clarity."
)

PREAMBLES = {
    OutputStyle.SHORT: CONCISE_PREAMBLE,
    OutputStyle.LONG: THOROUGH_PREAMBLE,
}

# Trailing history entries that duplicate the new turn: the just-appended user
# prompt and the empty assistant placeholder.
PENDING_TURN_ENTRIES = 2

HistoryEntry = Union[ChatTurn, Mapping[str, Any]]


@dataclass(frozen=True)
class ContextWindow:
    system_preamble: str
    prior_messages: List[Dict[str, str]] = field(default_factory=list)
    new_prompt: str = ""

    def to_messages(self) -> List[Dict[str, str]]:
        """Provider message list: system, prior turns in order, then the prompt."""
        messages = [{"role": "system", "content": self.system_preamble}]
        messages.extend(dict(m) for m in self.prior_messages)
        messages.append({"role": Role.USER.value, "content": self.new_prompt})
        return messages


def select_preamble(style: Optional[Union[OutputStyle, str]] = None) -> str:
    """short/absent -> concise, long -> thorough. Raises ValueError for anything else."""
    if style is None:
        return CONCISE_PREAMBLE
    return PREAMBLES[OutputStyle(style)]


def _as_pair(entry: HistoryEntry) -> Dict[str, str]:
    if isinstance(entry, ChatTurn):
        return {"role": entry.role.value, "content": entry.content}
    role = Role(entry["role"])
    return {"role": role.value, "content": str(entry.get("content") or "")}


class ConversationWindow:
    """Windowing policy for prior messages; K is the max number kept."""

    def __init__(self, max_prior: int = CONTEXT_WINDOW_SIZE):
        self.max_prior = max(0, max_prior)

    def _tail(self, entries: Sequence[HistoryEntry]) -> List[Dict[str, str]]:
        if self.max_prior == 0:
            return []
        return [_as_pair(e) for e in entries[-self.max_prior:]]

    def build(
        self,
        history: Sequence[HistoryEntry],
        new_prompt: str,
        style: Optional[Union[OutputStyle, str]] = None,
    ) -> ContextWindow:
        """
        Client-side window over the full conversation.

        Drops the two most recent entries (pending prompt + placeholder), keeps at
        most max_prior of the rest in original order; new_prompt always goes last.
        """
        remaining = list(history)[:-PENDING_TURN_ENTRIES]
        return ContextWindow(
            system_preamble=select_preamble(style),
            prior_messages=self._tail(remaining),
            new_prompt=new_prompt,
        )

    def for_request(
        self,
        history: Sequence[HistoryEntry],
        prompt: str,
        style: Optional[Union[OutputStyle, str]] = None,
    ) -> ContextWindow:
        """
        Server-side window over history the client already windowed with build():
        only the max_prior cap is re-applied.
        """
        return ContextWindow(
            system_preamble=select_preamble(style),
            prior_messages=self._tail(list(history)),
            new_prompt=prompt,
        )
