"""Tests for agentdeck.pty.buffer.OutputBuffer."""

from __future__ import annotations

import threading

import pytest

from agentdeck.pty.buffer import OUTPUT_BUFFER_SIZE, OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert len(buf) == 0
        assert buf.total_chars == 0
        assert buf.read() == ""

    def test_default_capacity_is_50kb(self) -> None:
        assert OUTPUT_BUFFER_SIZE == 50 * 1024
        assert OutputBuffer().max_chars == 50 * 1024

    def test_append(self) -> None:
        buf = OutputBuffer()
        buf.append("hello ")
        buf.append("world")
        assert buf.read() == "hello world"
        assert buf.total_chars == 11

    def test_append_empty_is_noop(self) -> None:
        buf = OutputBuffer()
        assert buf.append("") is True
        assert buf.read() == ""

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(max_chars=0)


class TestOutputBufferOverflow:
    def test_keeps_newest_suffix(self) -> None:
        buf = OutputBuffer(max_chars=5)
        buf.append("abc")
        buf.append("defg")
        assert buf.read() == "cdefg"
        assert buf.total_chars == 7

    def test_single_oversized_chunk(self) -> None:
        buf = OutputBuffer(max_chars=4)
        buf.append("0123456789")
        assert buf.read() == "6789"

    def test_never_exceeds_capacity(self) -> None:
        buf = OutputBuffer()
        chunk = "x" * 1000 + "\n"
        for i in range(200):
            buf.append(f"{i}:{chunk}")
            assert len(buf) <= 50 * 1024
        assert buf.read().endswith(f"199:{chunk}")

    def test_read_tail(self) -> None:
        buf = OutputBuffer()
        buf.append("line1\nline2\n")
        assert buf.read_tail(6) == "line2\n"
        assert buf.read_tail(0) == ""
        assert buf.read_tail(1000) == "line1\nline2\n"


class TestOutputBufferFreeze:
    def test_frozen_buffer_does_not_grow(self) -> None:
        buf = OutputBuffer()
        buf.append("before")
        buf.freeze()
        assert buf.frozen
        assert buf.append("after") is False
        assert buf.read() == "before"
        assert buf.total_chars == 6

    def test_clear(self) -> None:
        buf = OutputBuffer()
        buf.append("data")
        buf.clear()
        assert buf.read() == ""
        assert buf.total_chars == 0


class TestOutputBufferThreads:
    def test_concurrent_appends_lose_nothing(self) -> None:
        buf = OutputBuffer(max_chars=100_000)

        def writer(ch: str) -> None:
            for _ in range(1000):
                buf.append(ch)

        threads = [threading.Thread(target=writer, args=(c,)) for c in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        text = buf.read()
        assert len(text) == 4000
        assert {c: text.count(c) for c in "abcd"} == {c: 1000 for c in "abcd"}
