"""Helpers for driving the serverless handlers in tests."""

import json
from typing import Optional
from io import BytesIO


class MockSocket:
    """Socket stand-in that feeds a raw HTTP request and captures the response."""

    def __init__(self, request: bytes):
        self.request = request
        self.written = b""

    def makefile(self, *args, **kwargs):
        return BytesIO(self.request)

    def sendall(self, data):
        self.written += bytes(data)

    def close(self):
        pass


def build_request(path: str, body=None, token: Optional[str] = None, raw: Optional[bytes] = None) -> bytes:
    """Build a raw HTTP POST with a JSON body and optional bearer token."""
    payload = raw if raw is not None else json.dumps(body or {}).encode('utf-8')
    headers = [
        f"POST {path} HTTP/1.1",
        "Content-Type: application/json",
        f"Content-Length: {len(payload)}",
        "Connection: close",
        "X-Correlation-ID: req_test",
    ]
    if token:
        headers.append(f"Authorization: Bearer {token}")
    return ("\r\n".join(headers) + "\r\n\r\n").encode('utf-8') + payload


def call_handler(handler_cls, path: str, body=None, token: Optional[str] = None, raw: Optional[bytes] = None):
    """
    Serve one POST request with the handler class.

    The handler processes the request while it is constructed, exactly as
    the serverless runtime does. Returns (status_code, json_body).
    """
    sock = MockSocket(build_request(path, body, token, raw))
    handler_cls(sock, ("127.0.0.1", 8000), None)

    head, _, payload = sock.written.partition(b"\r\n\r\n")
    status_line = head.split(b"\r\n", 1)[0].decode('utf-8')
    return int(status_line.split()[1]), json.loads(payload.decode('utf-8'))
