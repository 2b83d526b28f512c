"""LSP base protocol framing for JSON-RPC messages."""

import json
from typing import Any, BinaryIO, Dict, Optional

CONTENT_LENGTH = b"content-length"


def encode_message(message: Dict[str, Any]) -> bytes:
    """Frame a JSON-RPC message with a Content-Length header.

    Args:
        message: The message to encode.

    Returns:
        The header and UTF-8 JSON body.
    """
    content = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(content)}\r\n\r\n".encode()
    return header + content


def read_message(stream: BinaryIO) -> Optional[Dict[str, Any]]:
    """Read one framed message from a stream.

    Headers other than Content-Length are skipped.

    Args:
        stream: Binary stream positioned at a message header.

    Returns:
        The decoded message, or None at end of stream.

    Raises:
        ValueError: If the header or body is malformed.
    """
    content_length = None
    while True:
        line = stream.readline()
        if not line:
            return None

        line = line.strip()
        if not line:
            if content_length is None:
                # Stray blank line between messages
                continue
            break

        name, _, value = line.partition(b":")
        if name.strip().lower() == CONTENT_LENGTH:
            content_length = int(value.strip())

    # Unbuffered pipes return partial reads, keep going until the body is complete
    content = b""
    while len(content) < content_length:
        chunk = stream.read(content_length - len(content))
        if not chunk:
            return None
        content += chunk

    message = json.loads(content.decode("utf-8"))
    if not isinstance(message, dict):
        raise ValueError(f"Expected a JSON object, got: {message!r}")
    return message


def request(request_id: str, method: str, params: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}


def notification(method: str, params: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "method": method, "params": params}


def response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}
