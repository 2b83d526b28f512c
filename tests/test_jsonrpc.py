"""Tests for LSP message framing."""

import io

import pytest

from lspsupervisor.servers import jsonrpc


class PartialReader:
    """Stream returning at most ``limit`` bytes per read, like an unbuffered pipe."""

    def __init__(self, stream, limit):
        self.stream = stream
        self.limit = limit

    def readline(self):
        return self.stream.readline()

    def read(self, size=-1):
        return self.stream.read(min(size, self.limit))


class TestFraming:
    def test_reads_framed_message(self):
        stream = io.BytesIO(jsonrpc.encode_message(jsonrpc.notification("rustDocument/diagnosticsBegin", None)))

        message = jsonrpc.read_message(stream)

        assert message == {"jsonrpc": "2.0", "method": "rustDocument/diagnosticsBegin", "params": None}
        assert jsonrpc.read_message(stream) is None

    def test_content_length_counts_bytes(self):
        encoded = jsonrpc.encode_message({"text": "é"})

        header, body = encoded.split(b"\r\n\r\n", 1)
        assert header == f"Content-Length: {len(body)}".encode()

    def test_skips_other_headers(self):
        body = b'{"jsonrpc": "2.0", "id": "1", "result": null}'
        stream = io.BytesIO(
            b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
            + f"Content-Length: {len(body)}\r\n\r\n".encode()
            + body
        )

        assert jsonrpc.read_message(stream) == {"jsonrpc": "2.0", "id": "1", "result": None}

    def test_body_arriving_in_pieces(self):
        encoded = jsonrpc.encode_message(jsonrpc.notification("rustDocument/diagnosticsBegin", {"files": ["a" * 100]}))
        stream = PartialReader(io.BytesIO(encoded), limit=16)

        message = jsonrpc.read_message(stream)

        assert message["params"] == {"files": ["a" * 100]}
        assert jsonrpc.read_message(stream) is None

    def test_truncated_body_is_end_of_stream(self):
        stream = io.BytesIO(b"Content-Length: 50\r\n\r\n{}")

        assert jsonrpc.read_message(stream) is None

    def test_rejects_non_object(self):
        stream = io.BytesIO(b"Content-Length: 2\r\n\r\n[]")

        with pytest.raises(ValueError):
            jsonrpc.read_message(stream)
