import asyncio
import json
import unittest
from collections.abc import AsyncIterator, Iterable

from chat_relay.sse import SSEFrameDecoder, decode_stream, normalize_chunk
from chat_relay.types import NormalizedUpdate, StreamChunk


def _chunk_json(content: str | None = None, reasoning: str | None = None, *, choices: bool = True) -> str:
    delta: dict[str, str] = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    body = {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "toy",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}] if choices else [],
    }
    return json.dumps(body, ensure_ascii=False)


def _data(content: str | None = None, reasoning: str | None = None) -> str:
    return f"data: {_chunk_json(content, reasoning)}\n"


def _feed_all(fragments: Iterable[bytes]) -> list[NormalizedUpdate]:
    decoder = SSEFrameDecoder()
    updates: list[NormalizedUpdate] = []
    for fragment in fragments:
        updates.extend(decoder.feed(fragment))
    updates.extend(decoder.flush())
    return updates


def _content(updates: list[NormalizedUpdate]) -> list[str | None]:
    return [u.content_delta for u in updates]


class FrameDecoderTests(unittest.TestCase):
    def test_line_split_across_two_fragments_is_reassembled(self) -> None:
        # Regression: each fragment used to be split into lines on its own,
        # so a data line spanning two reads was lost.
        line = _data("Hello").encode()
        cut = line.index(b"Hel") + 3
        updates = _feed_all([line[:cut], line[cut:]])
        self.assertEqual(_content(updates), ["Hello"])

    def test_content_and_done_in_one_fragment(self) -> None:
        raw = (_data("Hi") + "data: [DONE]\n").encode()
        updates = _feed_all([raw])
        self.assertEqual(len(updates), 2)
        self.assertEqual(updates[0], NormalizedUpdate(content_delta="Hi"))
        self.assertTrue(updates[1].is_terminal)
        self.assertIsNone(updates[1].content_delta)
        self.assertIsNone(updates[1].reasoning_delta)

    def test_every_split_point_yields_same_updates(self) -> None:
        raw = (
            _data(reasoning="think")
            + ": keep-alive\n\n"
            + _data("héllo ✓")
            + _data("wörld")
            + "data: [DONE]\n"
        ).encode()
        expected = _feed_all([raw])
        self.assertEqual(len(expected), 4)
        for cut in range(1, len(raw)):
            with self.subTest(cut=cut):
                self.assertEqual(_feed_all([raw[:cut], raw[cut:]]), expected)

    def test_byte_by_byte_matches_single_fragment(self) -> None:
        raw = "".join(_data(word) for word in ["Ünï", "cödé", " 漢字", "🙂"]).encode()
        one = _feed_all([raw])
        many = _feed_all(raw[i : i + 1] for i in range(len(raw)))
        self.assertEqual(one, many)
        self.assertEqual(_content(many), ["Ünï", "cödé", " 漢字", "🙂"])

    def test_many_lines_in_one_fragment_keep_order(self) -> None:
        raw = "".join(_data(str(i)) for i in range(20)).encode()
        self.assertEqual(_content(_feed_all([raw])), [str(i) for i in range(20)])

    def test_nothing_after_done(self) -> None:
        decoder = SSEFrameDecoder()
        first = decoder.feed((_data("a") + "data: [DONE]\n" + _data("late")).encode())
        later = decoder.feed(_data("later").encode())
        self.assertEqual(_content(first), ["a", None])
        self.assertTrue(first[-1].is_terminal)
        self.assertEqual(later, [])
        self.assertEqual(decoder.flush(), [])
        self.assertTrue(decoder.saw_terminal)

    def test_malformed_lines_do_not_stop_the_stream(self) -> None:
        raw = (
            _data("one")
            + "data: {not json\n"
            + 'data: {"unexpected": true}\n'
            + "data:\n"
            + _data("two")
        ).encode()
        self.assertEqual(_content(_feed_all([raw])), ["one", "two"])

    def test_non_data_lines_are_ignored(self) -> None:
        raw = (
            ": comment\n"
            "event: message\n"
            "id: 7\n"
            "retry: 1000\n"
            "\n" + _data("x")
        ).encode()
        self.assertEqual(_content(_feed_all([raw])), ["x"])

    def test_data_field_without_space(self) -> None:
        raw = f"data:{_chunk_json('tight')}\n".encode()
        self.assertEqual(_content(_feed_all([raw])), ["tight"])

    def test_crlf_split_between_fragments(self) -> None:
        line = f"data: {_chunk_json('crlf')}\r".encode()
        decoder = SSEFrameDecoder()
        self.assertEqual(decoder.feed(line), [])
        updates = decoder.feed(b"\n" + _data("next").encode())
        self.assertEqual(_content(updates), ["crlf", "next"])

    def test_long_line_in_small_fragments(self) -> None:
        text = "x" * 200_000
        raw = _data(text).encode()
        decoder = SSEFrameDecoder()
        updates: list[NormalizedUpdate] = []
        for i in range(0, len(raw), 7):
            updates.extend(decoder.feed(raw[i : i + 7]))
        self.assertEqual(_content(updates), [text])
        self.assertEqual(decoder.flush(), [])

    def test_held_cr_is_released_by_next_fragment(self) -> None:
        decoder = SSEFrameDecoder()
        self.assertEqual(decoder.feed(f"data: {_chunk_json('cr')}\r".encode()), [])
        self.assertEqual(_content(decoder.feed(b"data: {")), ["cr"])

    def test_bare_cr_terminates_line(self) -> None:
        raw = f"data: {_chunk_json('a')}\rdata: {_chunk_json('b')}\r\n".encode()
        self.assertEqual(_content(_feed_all([raw])), ["a", "b"])

    def test_unterminated_tail_waits_for_more_input(self) -> None:
        decoder = SSEFrameDecoder()
        self.assertEqual(decoder.feed(b"data: [DO"), [])
        updates = decoder.feed(b"NE]\n")
        self.assertEqual(len(updates), 1)
        self.assertTrue(updates[0].is_terminal)

    def test_flush_processes_final_line_without_newline(self) -> None:
        decoder = SSEFrameDecoder()
        self.assertEqual(decoder.feed(_data("x").encode() + b"data: [DONE]"), [NormalizedUpdate(content_delta="x")])
        updates = decoder.flush()
        self.assertEqual(len(updates), 1)
        self.assertTrue(updates[0].is_terminal)
        self.assertTrue(decoder.finished)

    def test_end_without_done_emits_no_terminal(self) -> None:
        decoder = SSEFrameDecoder()
        updates = decoder.feed(_data("x").encode()) + decoder.flush()
        self.assertEqual(_content(updates), ["x"])
        self.assertFalse(any(u.is_terminal for u in updates))
        self.assertFalse(decoder.saw_terminal)

    def test_invalid_utf8_is_replaced(self) -> None:
        raw = b'data: {"id":"1","created":1,"model":"m","choices":[{"index":0,"delta":{"content":"a\xffb"}}]}\n'
        self.assertEqual(_content(_feed_all([raw])), ["a\ufffdb"])

    def test_reasoning_and_content_are_mapped(self) -> None:
        updates = _feed_all([_data("answer", "because").encode()])
        self.assertEqual(updates, [NormalizedUpdate(content_delta="answer", reasoning_delta="because")])


class NormalizeChunkTests(unittest.TestCase):
    def test_empty_choices_produce_nothing(self) -> None:
        chunk = StreamChunk.model_validate_json(_chunk_json(choices=False))
        self.assertIsNone(normalize_chunk(chunk))

    def test_empty_strings_collapse_to_absent(self) -> None:
        chunk = StreamChunk.model_validate_json(_chunk_json("", ""))
        self.assertEqual(normalize_chunk(chunk), NormalizedUpdate())

    def test_role_only_delta_still_produces_update(self) -> None:
        body = json.loads(_chunk_json())
        body["choices"][0]["delta"] = {"role": "assistant"}
        update = normalize_chunk(StreamChunk.model_validate(body))
        self.assertEqual(update, NormalizedUpdate(content_delta=None, reasoning_delta=None))
        self.assertFalse(update.is_terminal)

    def test_only_first_choice_is_used(self) -> None:
        body = json.loads(_chunk_json("first"))
        body["choices"].append({"index": 1, "delta": {"content": "second"}})
        update = normalize_chunk(StreamChunk.model_validate(body))
        self.assertEqual(update.content_delta, "first")


class DecodeStreamTests(unittest.TestCase):
    def test_stops_pulling_after_done(self) -> None:
        pulled: list[int] = []
        fragments = [_data("a").encode(), b"data: [DONE]\n", _data("never").encode()]

        async def source() -> AsyncIterator[bytes]:
            for i, fragment in enumerate(fragments):
                pulled.append(i)
                yield fragment

        updates = asyncio.run(_collect(decode_stream(source())))
        self.assertEqual(_content(updates), ["a", None])
        self.assertTrue(updates[-1].is_terminal)
        self.assertEqual(pulled, [0, 1])

    def test_read_error_propagates_after_earlier_updates(self) -> None:
        seen: list[NormalizedUpdate] = []

        async def source() -> AsyncIterator[bytes]:
            yield _data("kept").encode()
            raise ConnectionResetError("dropped")

        async def run() -> None:
            async for update in decode_stream(source()):
                seen.append(update)

        with self.assertRaises(ConnectionResetError):
            asyncio.run(run())
        self.assertEqual(_content(seen), ["kept"])


async def _collect(stream: AsyncIterator[NormalizedUpdate]) -> list[NormalizedUpdate]:
    updates: list[NormalizedUpdate] = []
    async for update in stream:
        updates.append(update)
    return updates


if __name__ == "__main__":
    unittest.main()
