from __future__ import annotations

import unittest

from misc.chunking import chunk_text
from misc.chunking import send_chunked
from misc.chunking import send_chunks


class _FakeChannel:
    def __init__(self):
        self.sent: list[str] = []

    async def send(self, content: str):
        self.sent.append(content)


class ChunkTextTests(unittest.TestCase):
    def test_short_text_is_single_chunk(self):
        self.assertEqual(chunk_text("hello", 2000), ["hello"])

    def test_empty_text_has_no_chunks(self):
        self.assertEqual(chunk_text("", 10), [])

    def test_non_positive_limit_is_rejected(self):
        with self.assertRaises(ValueError):
            chunk_text("abc", 0)

    def test_hard_cuts_reproduce_input(self):
        text = "abcdefghij" * 25 + "xyz"
        chunks = chunk_text(text, 40, word_boundaries=False)
        self.assertEqual("".join(chunks), text)
        self.assertTrue(all(len(c) == 40 for c in chunks[:-1]))
        self.assertEqual(len(chunks[-1]), len(text) % 40)

    def test_word_boundary_chunks_stay_within_limit_and_reproduce_input(self):
        text = " ".join(f"word{i}" for i in range(300))
        chunks = chunk_text(text, 50)
        self.assertEqual("".join(chunks), text)
        for chunk in chunks:
            self.assertLessEqual(len(chunk), 50)
        for chunk in chunks[:-1]:
            self.assertTrue(chunk.endswith(" "), repr(chunk))

    def test_prefers_paragraph_break_over_space(self):
        text = ("a" * 30) + "\n\n" + ("b b " * 10)
        chunks = chunk_text(text, 40)
        self.assertEqual(chunks[0], ("a" * 30) + "\n\n")

    def test_whitespace_outside_trailing_half_is_ignored(self):
        text = "ab " + ("c" * 60)
        chunks = chunk_text(text, 20)
        self.assertEqual(chunks[0], text[:20])

    def test_exact_limit_is_single_chunk(self):
        self.assertEqual(chunk_text("x" * 2000), ["x" * 2000])


class SendChunkedTests(unittest.IsolatedAsyncioTestCase):
    async def test_sends_each_chunk(self):
        channel = _FakeChannel()
        sent = await send_chunked(channel, "one two three four", 8)
        self.assertEqual("".join(channel.sent), "one two three four")
        self.assertEqual(sent, len(channel.sent))

    async def test_skips_whitespace_only_chunks(self):
        channel = _FakeChannel()
        self.assertEqual(await send_chunked(channel, "   ", 2000), 0)
        self.assertEqual(channel.sent, [])

    async def test_prechunked_reply_skips_blank_parts(self):
        channel = _FakeChannel()
        self.assertEqual(await send_chunks(channel, ["first ", "\n\n", "second"]), 2)
        self.assertEqual(channel.sent, ["first ", "second"])


if __name__ == "__main__":
    unittest.main()
