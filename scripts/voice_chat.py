#!/usr/bin/env python3
"""
Talk to a running voice relay from the terminal.

Usage:
  # Transcribe a recording and stream the answer
  python scripts/voice_chat.py recording.webm

  # Thorough answers, explicit server and MIME type
  VOICE_RELAY_URL=http://localhost:3000 python scripts/voice_chat.py question.wav --mime audio/wav --long

  # Typed prompts only (no audio); repeat --prompt for a multi-turn conversation
  python scripts/voice_chat.py --prompt "What is a closure?" --prompt "Give an example"
"""
import argparse
import asyncio
import logging
import mimetypes
import os
import sys

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import VOICE_RELAY_URL
from core.schemas import OutputStyle, Role
from streaming.conversation_store import ConversationStore
from streaming.session import SessionState, create_session


class TerminalRenderer:
    """Prints user turns whole and the trailing assistant message piece by piece as it grows."""

    def __init__(self):
        self._printed = 0
        self._current = None

    def __call__(self, store: ConversationStore) -> None:
        last = store.last
        if last is None:
            return
        if last is not self._current:
            self._current = last
            self._printed = 0
            if last.role == Role.USER:
                print(f"You: {last.content}")
                return
            print("Assistant: ", end="", flush=True)
        elif last.role == Role.USER:
            return
        if len(last.content) < self._printed:
            # Overwritten (apology): print it on its own line.
            print("\n" + last.content, end="", flush=True)
        else:
            print(last.content[self._printed:], end="", flush=True)
        self._printed = len(last.content)
        if not last.is_streaming:
            print()


def _state_changed(from_state: SessionState, to_state: SessionState) -> None:
    logging.getLogger("voice_chat").info("%s -> %s", from_state.value, to_state.value)


async def run(args) -> int:
    store = ConversationStore(on_change=TerminalRenderer())
    session = create_session(
        base_url=args.url,
        store=store,
        output_style=OutputStyle.LONG if args.long else OutputStyle.SHORT,
        on_state_change=_state_changed,
    )
    try:
        if args.audio:
            with open(args.audio, "rb") as f:
                audio = f.read()
            mime = args.mime or mimetypes.guess_type(args.audio)[0] or "audio/webm"
            session.start_recording()
            reply = await session.stop_recording(audio, mime)
            if reply is None:
                print("(no speech detected)")
        for prompt in args.prompt or []:
            await session.ask(prompt)
    finally:
        await session.aclose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Voice relay terminal client")
    parser.add_argument("audio", nargs="?", help="Audio file to transcribe and ask")
    parser.add_argument("--mime", help="MIME type of the audio (guessed from the extension if omitted)")
    parser.add_argument("--prompt", action="append", help="Typed prompt (repeatable)")
    parser.add_argument("--long", action="store_true", help="Thorough answers instead of concise ones")
    parser.add_argument("--url", default=VOICE_RELAY_URL, help="Relay base URL")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()
    if not args.audio and not args.prompt:
        parser.error("give an audio file or at least one --prompt")
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
