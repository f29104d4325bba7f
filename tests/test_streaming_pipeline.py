"""
Tests for the client streaming pipeline (frame decoder, receiver, no message left streaming).

Uses in-memory byte chunks; no server required.
Run: python3 -m unittest tests.test_streaming_pipeline -v
"""

import asyncio
import unittest

import httpx

from core.relay import encode_frame
from core.schemas import Role
from streaming.conversation_store import ConversationStore, MessagePhase
from streaming.frame_decoder import FrameDecoder, FrameParseError, decode_payload
from streaming.receiver import APOLOGY_TEXT, ClientStreamReceiver

BODY = (encode_frame("Héllo") + encode_frame(", wörld") + encode_frame(" ✓")).encode("utf-8")


async def _chunks(*parts, error=None):
    for part in parts:
        await asyncio.sleep(0)
        yield part
    if error is not None:
        raise error


def _awaiting_store():
    store = ConversationStore()
    store.append(Role.USER, "question")
    store.append(Role.ASSISTANT, "", is_streaming=True)
    return store


class TestFrameDecoder(unittest.TestCase):
    """FrameDecoder: buffering across reads, multi-frame reads, SSE details."""

    def test_single_read(self):
        decoder = FrameDecoder()
        payloads = decoder.feed(BODY)
        self.assertEqual([decode_payload(p) for p in payloads], ["Héllo", ", wörld", " ✓"])
        self.assertEqual(decoder.pending(), "")

    def test_split_delimiter(self):
        decoder = FrameDecoder()
        first = encode_frame("a").encode()
        self.assertEqual(decoder.feed(first[:-1]), [])
        self.assertEqual(decoder.pending(), 'data: {"content":"a"}\n')
        self.assertEqual([decode_payload(p) for p in decoder.feed(first[-1:])], ["a"])

    def test_every_split_point_gives_same_frames(self):
        expected = FrameDecoder().feed(BODY)
        for i in range(1, len(BODY)):
            decoder = FrameDecoder()
            got = decoder.feed(BODY[:i]) + decoder.feed(BODY[i:]) + decoder.flush()
            self.assertEqual(got, expected, f"split at {i}")

    def test_byte_at_a_time(self):
        decoder = FrameDecoder()
        got = []
        for i in range(len(BODY)):
            got.extend(decoder.feed(BODY[i:i + 1]))
        self.assertEqual(got, FrameDecoder().feed(BODY))

    def test_crlf_and_comments(self):
        raw = b": keep-alive\r\n\r\ndata:{\"content\":\"x\"}\r\n\r\nevent: ping\n\n"
        payloads = FrameDecoder().feed(raw)
        self.assertEqual(payloads, ['{"content":"x"}'])

    def test_multiline_data_joined(self):
        payloads = FrameDecoder().feed(b'data: {"content":\ndata: "y"}\n\n')
        self.assertEqual(decode_payload(payloads[0]), "y")

    def test_flush_discards_unterminated_frame(self):
        decoder = FrameDecoder()
        self.assertEqual(decoder.feed(b'data: {"content":"tail"}'), [])
        self.assertEqual(decoder.flush(), [])
        self.assertEqual(decoder.discarded, 'data: {"content":"tail"}')

    def test_invalid_utf8_is_parse_error(self):
        decoder = FrameDecoder()
        with self.assertRaises(FrameParseError):
            decoder.feed(b"data: \xff\n\n")

    def test_truncated_utf8_at_end_is_parse_error(self):
        decoder = FrameDecoder()
        decoder.feed("data: é".encode("utf-8")[:-1])
        with self.assertRaises(FrameParseError):
            decoder.flush()

    def test_decode_payload_errors(self):
        with self.assertRaises(FrameParseError):
            decode_payload("{not json")
        with self.assertRaises(FrameParseError):
            decode_payload("[1, 2]")
        self.assertEqual(decode_payload('{"role":"assistant"}'), "")


class TestClientStreamReceiver(unittest.IsolatedAsyncioTestCase):
    """Receiver: append while streaming, settle on end, apology on error."""

    async def test_reassembles_into_one_message(self):
        store = _awaiting_store()
        message = await ClientStreamReceiver(store).consume(_chunks(BODY[:7], BODY[7:30], BODY[30:]))
        self.assertEqual(message.content, "Héllo, wörld ✓")
        self.assertFalse(message.is_streaming)
        self.assertEqual(len(store), 2)

    async def test_chunking_does_not_change_result(self):
        single = _awaiting_store()
        await ClientStreamReceiver(single).consume(_chunks(BODY))
        for i in (1, 5, len(BODY) // 2, len(BODY) - 1):
            split = _awaiting_store()
            await ClientStreamReceiver(split).consume(_chunks(BODY[:i], BODY[i:]))
            self.assertEqual(split.history(), single.history())

    async def test_message_phases(self):
        phases = []
        store = ConversationStore(on_change=lambda s: phases.append(s.last.phase))
        store.append(Role.USER, "q")
        store.append(Role.ASSISTANT, "", is_streaming=True)
        await ClientStreamReceiver(store).consume(_chunks(encode_frame("a").encode(), encode_frame("b").encode()))
        self.assertEqual(phases, [
            MessagePhase.SETTLED,
            MessagePhase.AWAITING,
            MessagePhase.STREAMING,
            MessagePhase.STREAMING,
            MessagePhase.SETTLED,
        ])

    async def test_zero_frames_settles_empty(self):
        store = _awaiting_store()
        message = await ClientStreamReceiver(store).consume(_chunks())
        self.assertEqual(message.content, "")
        self.assertFalse(message.is_streaming)

    async def test_transport_error_overwrites_with_apology(self):
        store = _awaiting_store()
        chunks = _chunks(encode_frame("partial").encode(), error=httpx.ReadError("connection reset"))
        message = await ClientStreamReceiver(store).consume(chunks)
        self.assertEqual(message.content, APOLOGY_TEXT)
        self.assertFalse(message.is_streaming)

    async def test_parse_error_overwrites_with_apology(self):
        store = _awaiting_store()
        message = await ClientStreamReceiver(store).consume(_chunks(encode_frame("ok").encode(), b"data: {oops\n\n"))
        self.assertEqual(message.content, APOLOGY_TEXT)
        self.assertFalse(message.is_streaming)

    async def test_invalid_utf8_overwrites_with_apology(self):
        store = _awaiting_store()
        message = await ClientStreamReceiver(store).consume(_chunks(encode_frame("Hi").encode(), b"\xff\xfe\n\n"))
        self.assertEqual(message.content, APOLOGY_TEXT)
        self.assertFalse(store.last.is_streaming)

    async def test_stream_closed_overwrites_with_apology(self):
        store = _awaiting_store()
        message = await ClientStreamReceiver(store).consume(
            _chunks(encode_frame("Hi").encode(), error=httpx.StreamClosed())
        )
        self.assertEqual(message.content, APOLOGY_TEXT)
        self.assertFalse(store.last.is_streaming)

    async def test_unexpected_error_settles_then_propagates(self):
        store = _awaiting_store()
        with self.assertLogs("streaming.receiver", level="ERROR"):
            with self.assertRaises(RuntimeError):
                await ClientStreamReceiver(store).consume(
                    _chunks(encode_frame("Hi").encode(), error=RuntimeError("boom"))
                )
        self.assertFalse(store.last.is_streaming)
        self.assertEqual(store.last.content, APOLOGY_TEXT)

    async def test_cancelled_receiver_never_leaves_streaming(self):
        store = _awaiting_store()
        gate = asyncio.Event()

        async def stalled():
            yield encode_frame("first").encode()
            await gate.wait()
            yield encode_frame("never").encode()

        task = asyncio.create_task(ClientStreamReceiver(store).consume(stalled()))
        await asyncio.sleep(0.01)
        self.assertEqual(store.last.content, "first")
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertFalse(store.last.is_streaming)
        self.assertEqual(store.last.content, APOLOGY_TEXT)

    async def test_no_fragments_accepted_after_settle(self):
        store = _awaiting_store()
        receiver = ClientStreamReceiver(store)
        first = await receiver.consume(_chunks(encode_frame("done").encode()))
        self.assertIsNone(store.streaming_message)
        self.assertEqual(first.content, "done")
        self.assertIsNone(receiver.fail())
        self.assertEqual(first.content, "done")


if __name__ == "__main__":
    unittest.main()
